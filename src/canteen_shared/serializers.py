"""
Serializers for consistent API responses.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from canteen_shared.datetime_utils import format_duration
from canteen_shared.models import (
    Order,
    OrderDetail,
    OrderItemVariation,
    OrderReopeningRequest,
)


def _money(value) -> str | None:
    if value is None:
        return None
    return str(Decimal(str(value)).quantize(Decimal("0.01"), ROUND_HALF_UP))


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_order_item_variation(row: OrderItemVariation) -> dict[str, Any]:
    variation = row.variation
    return {
        "id": row.id,
        "variation_id": row.variation_id,
        "name": variation.variation_name if variation else None,
        "quantity": row.quantity,
        "additional_price": _money(row.additional_price),
    }


def serialize_order_detail(detail: OrderDetail) -> dict[str, Any]:
    return {
        "id": detail.id,
        "order_id": detail.order_id,
        "item_id": detail.item_id,
        "item_name": detail.menu_item.item_name if detail.menu_item else "Item",
        "quantity": detail.quantity,
        "item_price": _money(detail.item_price),
        "total_price": _money(detail.total_price),
        "note": detail.note,
        "dining_option": detail.dining_option,
        "variations": [serialize_order_item_variation(row) for row in detail.variations],
    }


def serialize_order(order: Order, include_details: bool = True) -> dict[str, Any]:
    """Serialize Order model. The screenshot itself is never returned."""
    data = {
        "id": order.id,
        "customer_id": order.customer_id,
        "concession_id": order.concession_id,
        "concession_name": order.concession.concession_name if order.concession else None,
        "status": order.status.value,
        "payment_method": order.payment_method,
        "in_cart": order.in_cart,
        "total_price": _money(order.total_price),
        "updated_total_price": _money(order.updated_total_price),
        "price_change_reason": order.price_change_reason,
        "decline_reason": order.decline_reason,
        "decline_reason_data": order.decline_reason_data,
        "declined_at": _iso(order.declined_at),
        "accepted_at": _iso(order.accepted_at),
        "receipt_timer": format_duration(order.receipt_timer),
        "payment_receipt_expires_at": _iso(order.payment_receipt_expires_at),
        "has_gcash_screenshot": order.gcash_screenshot is not None,
        "gcash_screenshot_uploaded_at": _iso(order.gcash_screenshot_uploaded_at),
        "payment_rejection_reason": order.payment_rejection_reason,
        "reopening_count": order.reopening_count,
        "reopening_requested": order.reopening_requested,
        "reopened_at": _iso(order.reopened_at),
        "original_decline_reason": order.original_decline_reason,
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }
    if include_details:
        data["details"] = [serialize_order_detail(detail) for detail in order.details]
    return data


def serialize_reopening_request(request: OrderReopeningRequest) -> dict[str, Any]:
    data = {
        "id": request.id,
        "order_id": request.order_id,
        "customer_id": request.customer_id,
        "concessionaire_id": request.concessionaire_id,
        "request_type": request.request_type,
        "request_message": request.request_message,
        "status": request.status,
        "requested_at": _iso(request.requested_at),
        "responded_at": _iso(request.responded_at),
        "response_type": request.response_type,
        "response_message": request.response_message,
    }
    order = request.order
    if order is not None:
        data["order_status"] = order.status.value
        data["total_price"] = _money(order.total_price)
        data["payment_method"] = order.payment_method
        data["decline_reason"] = order.decline_reason
    if request.customer is not None:
        data["customer_name"] = request.customer.full_name
    return data


def paginated_response(
    items: list[Any],
    total: int,
    page: int,
    limit: int,
) -> dict[str, Any]:
    """
    Create a standardized paginated response.

    Args:
        items: List of serialized items for current page
        total: Total count of items across all pages
        page: Current page number (1-indexed)
        limit: Items per page

    Returns:
        Standardized response dict with data and meta
    """
    total_pages = (total + limit - 1) // limit if limit > 0 else 0

    return {
        "data": items,
        "meta": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def success_response(data: Any, message: str | None = None) -> dict[str, Any]:
    """Create a standardized success response."""
    response = {"status": "success", "data": data, "error": None}
    if message:
        response["message"] = message
    return response


def error_response(error: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Create a standardized error response."""
    response = {"status": "error", "data": None, "error": error}
    if details:
        response["details"] = details
    return response
