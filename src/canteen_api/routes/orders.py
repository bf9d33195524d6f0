"""
Orders API - order lifecycle endpoints.
"""

from http import HTTPStatus

from flask import Blueprint, jsonify, request

from canteen_api.decorators import get_current_actor, login_required, role_required
from canteen_shared.constants import DEFAULT_PAGE_SIZE, Roles
from canteen_shared.errors import ExpiredError
from canteen_shared.logging_config import get_logger
from canteen_shared.schemas import (
    ChangePaymentMethodRequest,
    CreateOrderRequest,
    DeclineUnpaidRequest,
    RejectReceiptRequest,
    UpdateOrderStatusRequest,
    UploadReceiptRequest,
)
from canteen_shared.serializers import success_response
from canteen_shared.services import cart_service, order_service

logger = get_logger(__name__)

orders_bp = Blueprint("orders", __name__)


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _page_args() -> tuple[int, int]:
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", DEFAULT_PAGE_SIZE, type=int)
    return page, limit


@orders_bp.post("/orders")
@role_required(Roles.CUSTOMER)
def create_order():
    """Create an order, either in the cart or placed directly."""
    payload = CreateOrderRequest.model_validate(_json_body())
    actor = get_current_actor()
    customer_id = payload.customer_id if actor.is_admin and payload.customer_id else actor.user_id
    order = cart_service.create_order(
        customer_id=customer_id,
        concession_id=payload.concession_id,
        payment_method=payload.payment_method,
        items=[line.model_dump() for line in payload.items],
        in_cart=payload.in_cart,
        actor=actor,
    )
    return jsonify(success_response(order)), HTTPStatus.CREATED


@orders_bp.get("/orders/<int:order_id>")
@login_required
def get_order(order_id: int):
    order = order_service.get_order(order_id, get_current_actor())
    return jsonify(success_response(order)), HTTPStatus.OK


@orders_bp.get("/orders/customer/<int:customer_id>")
@login_required
def list_customer_orders(customer_id: int):
    page, limit = _page_args()
    result = order_service.list_customer_orders(
        customer_id,
        get_current_actor(),
        segment=request.args.get("segment"),
        page=page,
        limit=limit,
    )
    return jsonify(result), HTTPStatus.OK


@orders_bp.get("/orders/concessionaire/<int:concessionaire_id>")
@role_required(Roles.CONCESSIONAIRE)
def list_concessionaire_orders(concessionaire_id: int):
    page, limit = _page_args()
    result = order_service.list_concessionaire_orders(
        concessionaire_id,
        get_current_actor(),
        segment=request.args.get("segment"),
        page=page,
        limit=limit,
    )
    return jsonify(result), HTTPStatus.OK


@orders_bp.get("/orders/cart/<int:customer_id>")
@role_required(Roles.CUSTOMER)
def get_cart(customer_id: int):
    cart = cart_service.get_cart(customer_id, get_current_actor())
    return jsonify(success_response(cart)), HTTPStatus.OK


@orders_bp.put("/orders/checkout/<int:customer_id>")
@role_required(Roles.CUSTOMER)
def checkout_cart(customer_id: int):
    orders = cart_service.checkout_cart(customer_id, get_current_actor())
    return jsonify(success_response(orders, "Cart checked out")), HTTPStatus.OK


@orders_bp.put("/orders/<int:order_id>/checkout")
@role_required(Roles.CUSTOMER)
def checkout_order(order_id: int):
    order = cart_service.checkout_order(order_id, get_current_actor())
    return jsonify(success_response(order, "Order placed")), HTTPStatus.OK


@orders_bp.put("/orders/status/<int:order_id>")
@login_required
def update_order_status(order_id: int):
    """
    Move an order to a new status.

    Accepting takes an optional ``updated_total_price`` with
    ``price_change_reason``; declining takes ``decline_reason`` (a category),
    optional ``decline_reason_text`` and the ids of items or variations to mark
    unavailable.
    """
    payload = UpdateOrderStatusRequest.model_validate(_json_body())
    order = order_service.update_order_status(
        order_id,
        payload.status,
        get_current_actor(),
        payload.model_dump(exclude={"status"}),
    )
    return jsonify(success_response(order)), HTTPStatus.OK


@orders_bp.put("/orders/cancel/<int:order_id>")
@role_required(Roles.CUSTOMER)
def cancel_order(order_id: int):
    order = order_service.cancel_order(order_id, get_current_actor())
    return jsonify(success_response(order, "Order cancelled")), HTTPStatus.OK


@orders_bp.patch("/orders/<int:order_id>/payment-method")
@role_required(Roles.CUSTOMER)
def change_payment_method(order_id: int):
    payload = ChangePaymentMethodRequest.model_validate(_json_body())
    order = order_service.change_payment_method(
        order_id, payload.payment_method, get_current_actor()
    )
    return jsonify(success_response(order)), HTTPStatus.OK


@orders_bp.put("/orders/<int:order_id>/receipt")
@role_required(Roles.CUSTOMER)
def upload_receipt(order_id: int):
    """Accepts a multipart ``gcash_screenshot`` file or a base64 JSON field."""
    upload = request.files.get("gcash_screenshot")
    if upload is not None:
        image = upload.read()
    else:
        image = UploadReceiptRequest.model_validate(_json_body()).image_bytes()

    try:
        order = order_service.upload_receipt(order_id, image, get_current_actor())
    except ExpiredError:
        order_service.check_expired(order_id)
        raise
    return jsonify(success_response(order, "Receipt uploaded")), HTTPStatus.OK


@orders_bp.put("/orders/<int:order_id>/reject-receipt")
@role_required(Roles.CONCESSIONAIRE)
def reject_receipt(order_id: int):
    payload = RejectReceiptRequest.model_validate(_json_body())
    order = order_service.reject_receipt(
        order_id, payload.reason, payload.message, get_current_actor()
    )
    return jsonify(success_response(order, "Receipt rejected")), HTTPStatus.OK


@orders_bp.put("/orders/<int:order_id>/decline-unpaid")
@role_required(Roles.CONCESSIONAIRE)
def decline_unpaid(order_id: int):
    payload = DeclineUnpaidRequest.model_validate(_json_body())
    order = order_service.decline_unpaid_order(order_id, get_current_actor(), payload.message)
    return jsonify(success_response(order, "Order declined")), HTTPStatus.OK


@orders_bp.post("/orders/<int:order_id>/check-expired")
@login_required
def check_expired(order_id: int):
    result = order_service.check_expired(order_id, get_current_actor())
    return jsonify(success_response(result)), HTTPStatus.OK


@orders_bp.post("/orders/bulk-decline-expired")
@role_required(Roles.CONCESSIONAIRE)
def bulk_decline_expired():
    actor = get_current_actor()
    result = order_service.decline_expired_orders(
        concessionaire_id=None if actor.is_admin else actor.user_id
    )
    return jsonify(success_response(result)), HTTPStatus.OK


@orders_bp.put("/orders/<int:order_id>/recalculate")
@login_required
def recalculate_total(order_id: int):
    order = order_service.recalculate_total(order_id, get_current_actor())
    return jsonify(success_response(order)), HTTPStatus.OK


@orders_bp.get("/orders/<int:order_id>/receipt-timer")
@login_required
def get_receipt_timer(order_id: int):
    reading = order_service.get_receipt_timer(order_id, get_current_actor())
    response = jsonify(success_response(reading))
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    return response, HTTPStatus.OK
