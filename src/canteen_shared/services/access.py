"""
Who is acting on an order, and whether they may.
"""

from __future__ import annotations

from dataclasses import dataclass

from canteen_shared.constants import ActorScope, Roles
from canteen_shared.errors import ForbiddenError
from canteen_shared.models import Order


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: Roles

    @property
    def scope(self) -> ActorScope:
        if self.role == Roles.CUSTOMER:
            return ActorScope.CUSTOMER
        return ActorScope.CONCESSIONAIRE

    @property
    def is_admin(self) -> bool:
        return self.role == Roles.ADMIN


def scope_of(actor: Actor | None) -> ActorScope:
    """``None`` stands for the system itself (timer sweeps, internal jobs)."""
    return ActorScope.SYSTEM if actor is None else actor.scope


def is_customer_of(order: Order, actor: Actor) -> bool:
    return actor.role == Roles.CUSTOMER and order.customer_id == actor.user_id


def is_concessionaire_of(order: Order, actor: Actor) -> bool:
    return actor.role == Roles.CONCESSIONAIRE and (
        order.concession is not None and order.concession.concessionaire_id == actor.user_id
    )


def ensure_can_view(order: Order, actor: Actor | None) -> None:
    if actor is None or actor.is_admin:
        return
    if is_customer_of(order, actor) or is_concessionaire_of(order, actor):
        return
    raise ForbiddenError("You do not have access to this order")


def ensure_customer(order: Order, actor: Actor | None) -> None:
    if actor is None or actor.is_admin:
        return
    if not is_customer_of(order, actor):
        raise ForbiddenError("Only the customer who placed this order can do that")


def ensure_concessionaire(order: Order, actor: Actor | None) -> None:
    if actor is None or actor.is_admin:
        return
    if not is_concessionaire_of(order, actor):
        raise ForbiddenError("Only the concessionaire of this concession can do that")


def ensure_acting_for(actor: Actor | None, user_id: int) -> None:
    """Listing endpoints: a user may only list their own orders."""
    if actor is None or actor.is_admin:
        return
    if actor.user_id != user_id:
        raise ForbiddenError("You can only view your own orders")
