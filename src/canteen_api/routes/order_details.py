"""
Order details API - editing lines of an order still in the cart.
"""

from http import HTTPStatus

from flask import Blueprint, jsonify, request

from canteen_api.decorators import get_current_actor, role_required
from canteen_shared.constants import Roles
from canteen_shared.schemas import OrderLineRequest, UpdateOrderDetailRequest
from canteen_shared.serializers import success_response
from canteen_shared.services import cart_service

order_details_bp = Blueprint("order_details", __name__)


@order_details_bp.post("/orders/<int:order_id>/details")
@role_required(Roles.CUSTOMER)
def add_order_detail(order_id: int):
    line = OrderLineRequest.model_validate(request.get_json(silent=True) or {})
    order = cart_service.add_detail(order_id, line.model_dump(), get_current_actor())
    return jsonify(success_response(order, "Item added to cart")), HTTPStatus.CREATED


@order_details_bp.patch("/order-details/<int:detail_id>")
@role_required(Roles.CUSTOMER)
def update_order_detail(detail_id: int):
    """Only the fields present in the body are changed."""
    payload = UpdateOrderDetailRequest.model_validate(request.get_json(silent=True) or {})
    order = cart_service.update_detail(
        detail_id, payload.model_dump(exclude_unset=True), get_current_actor()
    )
    return jsonify(success_response(order)), HTTPStatus.OK


@order_details_bp.delete("/order-details/<int:detail_id>")
@role_required(Roles.CUSTOMER)
def delete_order_detail(detail_id: int):
    order = cart_service.remove_detail(detail_id, get_current_actor())
    return jsonify(success_response(order, "Item removed from cart")), HTTPStatus.OK
