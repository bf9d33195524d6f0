"""
Application constants and enums.
"""

import re
from enum import Enum


class OrderStatus(str, Enum):
    CART = "cart"
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    READY_FOR_PICKUP = "ready-for-pickup"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def normalize(cls, value: "str | OrderStatus") -> "OrderStatus":
        """
        Map any stored spelling to the canonical status.

        Legacy rows carry both "ready for pickup" and "ready-for-pickup", plus
        occasional upper case or underscores.
        """
        if isinstance(value, cls):
            return value
        key = re.sub(r"[\s_]+", "-", str(value).strip().lower())
        return cls(key)


class PaymentMethod(str, Enum):
    GCASH = "gcash"
    ON_COUNTER = "on-counter"

    @classmethod
    def normalize(cls, value: "str | PaymentMethod") -> "PaymentMethod":
        if isinstance(value, cls):
            return value
        key = re.sub(r"[\s_]+", "-", str(value).strip().lower())
        if key == "oncounter":
            key = cls.ON_COUNTER.value
        return cls(key)


class DiningOption(str, Enum):
    DINE_IN = "dine-in"
    TAKE_OUT = "take-out"


class ConcessionStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class ReopeningStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Roles(str, Enum):
    CUSTOMER = "customer"
    CONCESSIONAIRE = "concessionaire"
    ADMIN = "admin"

    @classmethod
    def all_values(cls) -> set:
        return {member.value for member in cls}


class ActorScope(str, Enum):
    """Who is driving a transition."""

    CUSTOMER = "customer"
    CONCESSIONAIRE = "concessionaire"
    SYSTEM = "system"


class OrderSegment(str, Enum):
    ACTIVE = "active"
    HISTORY = "history"


ACTIVE_ORDER_STATUSES = {
    OrderStatus.PENDING,
    OrderStatus.ACCEPTED,
    OrderStatus.READY_FOR_PICKUP,
}

HISTORY_ORDER_STATUSES = {
    OrderStatus.DECLINED,
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
}

SEGMENT_STATUSES = {
    OrderSegment.ACTIVE: ACTIVE_ORDER_STATUSES,
    OrderSegment.HISTORY: HISTORY_ORDER_STATUSES,
}

# Transitions that are no-ops when the order already sits in the target status.
IDEMPOTENT_TARGETS = {
    OrderStatus.DECLINED,
    OrderStatus.CANCELLED,
}

RECEIPT_UPLOAD_STATUSES = {
    OrderStatus.ACCEPTED,
    OrderStatus.READY_FOR_PICKUP,
}



class OrderEvent(str, Enum):
    """Events that can drive an order transition."""

    CHECKOUT = "checkout"
    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL = "cancel"
    MARK_READY = "mark_ready"
    COMPLETE = "complete"
    EXPIRE = "expire"
    DECLINE_UNPAID = "decline_unpaid"
    REOPEN = "reopen"


ORDER_TRANSITIONS = {
    (OrderStatus.CART, OrderEvent.CHECKOUT): {
        "target": OrderStatus.PENDING,
        "allowed_scopes": {ActorScope.CUSTOMER, ActorScope.SYSTEM},
    },
    (OrderStatus.PENDING, OrderEvent.ACCEPT): {
        "target": OrderStatus.ACCEPTED,
        "allowed_scopes": {ActorScope.CONCESSIONAIRE, ActorScope.SYSTEM},
    },
    (OrderStatus.PENDING, OrderEvent.DECLINE): {
        "target": OrderStatus.DECLINED,
        "allowed_scopes": {ActorScope.CONCESSIONAIRE, ActorScope.SYSTEM},
    },
    (OrderStatus.PENDING, OrderEvent.CANCEL): {
        "target": OrderStatus.CANCELLED,
        "allowed_scopes": {ActorScope.CUSTOMER, ActorScope.SYSTEM},
    },
    (OrderStatus.ACCEPTED, OrderEvent.MARK_READY): {
        "target": OrderStatus.READY_FOR_PICKUP,
        "allowed_scopes": {ActorScope.CONCESSIONAIRE, ActorScope.SYSTEM},
    },
    (OrderStatus.ACCEPTED, OrderEvent.EXPIRE): {
        "target": OrderStatus.DECLINED,
        "allowed_scopes": {ActorScope.SYSTEM},
    },
    (OrderStatus.ACCEPTED, OrderEvent.DECLINE_UNPAID): {
        "target": OrderStatus.DECLINED,
        "allowed_scopes": {ActorScope.CONCESSIONAIRE, ActorScope.SYSTEM},
    },
    (OrderStatus.READY_FOR_PICKUP, OrderEvent.COMPLETE): {
        "target": OrderStatus.COMPLETED,
        "allowed_scopes": {ActorScope.CONCESSIONAIRE, ActorScope.SYSTEM},
    },
    (OrderStatus.DECLINED, OrderEvent.REOPEN): {
        "target": OrderStatus.ACCEPTED,
        "allowed_scopes": {ActorScope.CONCESSIONAIRE, ActorScope.SYSTEM},
    },
}

EVENT_TARGETS = {event: policy["target"] for (_, event), policy in ORDER_TRANSITIONS.items()}

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
