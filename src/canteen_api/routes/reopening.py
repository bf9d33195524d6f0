"""
Reopening API - customers ask for auto-declined orders to be reopened and
concessionaires answer.
"""

from http import HTTPStatus

from flask import Blueprint, jsonify, request

from canteen_api.decorators import get_current_actor, login_required, role_required
from canteen_shared.constants import Roles
from canteen_shared.schemas import ReopeningRequestCreate, ReopeningResponseRequest
from canteen_shared.serializers import success_response
from canteen_shared.services import reopening_service

reopening_bp = Blueprint("reopening", __name__, url_prefix="/reopening")


@reopening_bp.get("/order/<int:order_id>/can-reopen")
@login_required
def can_reopen(order_id: int):
    result = reopening_service.check_eligibility(order_id, get_current_actor())
    return jsonify(success_response(result)), HTTPStatus.OK


@reopening_bp.get("/order/<int:order_id>/status")
@login_required
def reopening_status(order_id: int):
    result = reopening_service.get_reopening_status(order_id, get_current_actor())
    return jsonify(success_response(result)), HTTPStatus.OK


@reopening_bp.post("/order/<int:order_id>/request")
@role_required(Roles.CUSTOMER)
def request_reopen(order_id: int):
    payload = ReopeningRequestCreate.model_validate(request.get_json(silent=True) or {})
    result = reopening_service.request_reopen(
        order_id, payload.request_type, payload.message, get_current_actor()
    )
    return jsonify(success_response(result, "Reopening request sent")), HTTPStatus.CREATED


@reopening_bp.get("/concessionaire/<int:concessionaire_id>")
@role_required(Roles.CONCESSIONAIRE)
def list_requests(concessionaire_id: int):
    requests = reopening_service.list_concessionaire_requests(
        concessionaire_id, request.args.get("status", "pending"), get_current_actor()
    )
    return jsonify(success_response(requests)), HTTPStatus.OK


@reopening_bp.get("/request/<int:request_id>")
@login_required
def get_request(request_id: int):
    result = reopening_service.get_request(request_id, get_current_actor())
    return jsonify(success_response(result)), HTTPStatus.OK


@reopening_bp.put("/request/<int:request_id>/respond")
@role_required(Roles.CONCESSIONAIRE)
def respond(request_id: int):
    payload = ReopeningResponseRequest.model_validate(request.get_json(silent=True) or {})
    result = reopening_service.respond(
        request_id,
        payload.action,
        payload.response_type,
        payload.message,
        get_current_actor(),
    )
    message = "Order reopened" if payload.action == "approve" else "Reopening request declined"
    return jsonify(success_response(result, message)), HTTPStatus.OK
