"""
Concessions API - settings that drive the order lifecycle.
"""

from http import HTTPStatus

from flask import Blueprint, jsonify, request

from canteen_api.decorators import get_current_actor, role_required
from canteen_shared.constants import Roles
from canteen_shared.schemas import ReceiptTimerUpdateRequest
from canteen_shared.serializers import success_response
from canteen_shared.services import concession_service

concessions_bp = Blueprint("concessions", __name__)


@concessions_bp.patch("/concessions/<int:concession_id>/receipt-timer")
@role_required(Roles.CONCESSIONAIRE)
def update_receipt_timer(concession_id: int):
    payload = ReceiptTimerUpdateRequest.model_validate(request.get_json(silent=True) or {})
    result = concession_service.update_receipt_timer(
        concession_id, payload.receipt_timer, get_current_actor()
    )
    return jsonify(success_response(result, "Receipt timer updated")), HTTPStatus.OK
