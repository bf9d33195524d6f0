"""
API routes package.

Aggregates the blueprints served under ``/api``.
"""

from flask import Blueprint

from canteen_api.routes.concessions import concessions_bp
from canteen_api.routes.order_details import order_details_bp
from canteen_api.routes.orders import orders_bp
from canteen_api.routes.reopening import reopening_bp

api_bp = Blueprint("api", __name__)

api_bp.register_blueprint(orders_bp)
api_bp.register_blueprint(order_details_bp)
api_bp.register_blueprint(reopening_bp)
api_bp.register_blueprint(concessions_bp)

__all__ = ["api_bp"]
