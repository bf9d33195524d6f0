"""
Concession settings consumed by the order lifecycle.
"""

from __future__ import annotations

from datetime import timedelta

from canteen_shared.datetime_utils import format_duration, parse_duration
from canteen_shared.db import get_session
from canteen_shared.errors import ForbiddenError, ValidationError
from canteen_shared.logging_config import get_logger
from canteen_shared.policy import get_policy
from canteen_shared.repositories import OrderRepository
from canteen_shared.services.access import Actor

logger = get_logger(__name__)


def validate_receipt_timer(value) -> timedelta:
    try:
        timer = parse_duration(value)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    limit = get_policy().max_receipt_timer
    if timer <= timedelta(0) or timer > limit:
        raise ValidationError(
            f"Receipt timer must be greater than 0 and at most {format_duration(limit)}"
        )
    return timer


def update_receipt_timer(concession_id: int, value, actor: Actor | None = None) -> dict:
    """
    Change how long GCash customers have to upload a receipt.

    Orders already accepted keep the timer copied onto them at acceptance.
    """
    timer = validate_receipt_timer(value)
    with get_session() as session:
        repo = OrderRepository(session)
        concession = repo.get_concession(concession_id, for_update=True)
        if actor is not None and not actor.is_admin and concession.concessionaire_id != actor.user_id:
            raise ForbiddenError("You can only configure your own concession")
        concession.receipt_timer = timer
        session.flush()
        logger.info(
            "Receipt timer updated",
            extra={"concession_id": concession.id, "receipt_timer": format_duration(timer)},
        )
        return {
            "concession_id": concession.id,
            "receipt_timer": format_duration(concession.receipt_timer),
        }
