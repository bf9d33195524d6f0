"""
Persistence port for the order services.

``OrderRepository`` is bound to one SQLAlchemy session, so every call joins the
caller's transaction. Services never build queries themselves.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from canteen_shared.constants import OrderStatus, PaymentMethod, ReopeningStatus
from canteen_shared.datetime_utils import utcnow
from canteen_shared.errors import ConflictError, NotFoundError
from canteen_shared.models import (
    Concession,
    ItemVariation,
    ItemVariationGroup,
    MenuItem,
    Order,
    OrderDetail,
    OrderItemVariation,
    OrderReopeningRequest,
)


def _order_load_options():
    return (
        selectinload(Order.details)
        .selectinload(OrderDetail.variations)
        .selectinload(OrderItemVariation.variation),
        selectinload(Order.details).selectinload(OrderDetail.menu_item),
        selectinload(Order.concession),
    )


class OrderRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    # ------------------------------------------------------------------ orders

    def get_order(self, order_id: int, *, for_update: bool = False) -> Order:
        stmt = select(Order).where(Order.id == order_id).options(*_order_load_options())
        if for_update:
            stmt = stmt.with_for_update(of=Order)
        order = self.session.execute(stmt).scalars().first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def add_order(self, order: Order) -> Order:
        self.session.add(order)
        self.session.flush()
        return order

    def update_order_status(
        self,
        order_id: int,
        expected: OrderStatus,
        new: OrderStatus,
        fields: dict[str, Any] | None = None,
    ) -> Order:
        """
        Compare-and-set the status of an order.

        The write only lands when the stored status still equals ``expected``;
        otherwise another request won the race and ``ConflictError`` is raised.
        """
        self.session.flush()
        values = dict(fields or {})
        values["status"] = new
        values.setdefault("updated_at", utcnow())
        result = self.session.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConflictError(
                f"Order {order_id} is no longer '{OrderStatus.normalize(expected).value}'"
            )
        self.session.expire_all()
        return self.get_order(order_id)

    def update_order_fields(self, order: Order, fields: dict[str, Any]) -> Order:
        for key, value in fields.items():
            setattr(order, key, value)
        order.updated_at = fields.get("updated_at", utcnow())
        self.session.flush()
        return order

    def list_orders(
        self,
        *,
        customer_id: int | None = None,
        concessionaire_id: int | None = None,
        statuses: Iterable[OrderStatus] | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Order], int]:
        stmt = select(Order).where(Order.in_cart.is_(False))
        if customer_id is not None:
            stmt = stmt.where(Order.customer_id == customer_id)
        if concessionaire_id is not None:
            stmt = stmt.join(Concession, Concession.id == Order.concession_id).where(
                Concession.concessionaire_id == concessionaire_id
            )
        if statuses is not None:
            stmt = stmt.where(Order.status.in_([s.value for s in statuses]))

        total = self.session.execute(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        ).scalar_one()
        orders = (
            self.session.execute(
                stmt.options(*_order_load_options())
                .order_by(Order.created_at.desc(), Order.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            .scalars()
            .all()
        )
        return list(orders), total

    def list_cart_orders(self, customer_id: int) -> list[Order]:
        stmt = (
            select(Order)
            .where(
                Order.customer_id == customer_id,
                Order.in_cart.is_(True),
                Order.status == OrderStatus.CART,
            )
            .options(*_order_load_options())
            .order_by(Order.id)
        )
        return list(self.session.execute(stmt).scalars().all())

    def list_receipt_pending_orders(
        self,
        *,
        customer_id: int | None = None,
        concessionaire_id: int | None = None,
    ) -> list[Order]:
        """Accepted GCash orders still waiting for a screenshot."""
        stmt = select(Order).where(
            Order.status == OrderStatus.ACCEPTED,
            Order.payment_method == PaymentMethod.GCASH.value,
            Order.gcash_screenshot.is_(None),
        )
        if customer_id is not None:
            stmt = stmt.where(Order.customer_id == customer_id)
        if concessionaire_id is not None:
            stmt = stmt.join(Concession, Concession.id == Order.concession_id).where(
                Concession.concessionaire_id == concessionaire_id
            )
        stmt = stmt.options(*_order_load_options()).order_by(Order.id)
        return list(self.session.execute(stmt).scalars().all())

    # ----------------------------------------------------------- order details

    def get_order_details(self, order_id: int) -> list[OrderDetail]:
        stmt = (
            select(OrderDetail)
            .where(OrderDetail.order_id == order_id)
            .options(selectinload(OrderDetail.variations))
            .order_by(OrderDetail.id)
        )
        return list(self.session.execute(stmt).scalars().all())

    def get_order_detail(self, detail_id: int) -> OrderDetail:
        detail = self.session.get(OrderDetail, detail_id)
        if detail is None:
            raise NotFoundError(f"Order detail {detail_id} not found")
        return detail

    def insert_order_detail(
        self,
        order: Order,
        *,
        item: MenuItem,
        quantity: int,
        total_price: Decimal,
        note: str | None,
        dining_option: str,
    ) -> OrderDetail:
        detail = OrderDetail(
            order_id=order.id,
            item_id=item.id,
            quantity=quantity,
            item_price=item.price,
            total_price=total_price,
            note=note,
            dining_option=dining_option,
        )
        order.details.append(detail)
        self.session.flush()
        return detail

    def delete_order_detail(self, detail: OrderDetail) -> None:
        detail.order.details.remove(detail)
        self.session.flush()

    def insert_order_item_variation(
        self, detail: OrderDetail, variation: ItemVariation, quantity: int
    ) -> OrderItemVariation:
        row = OrderItemVariation(
            order_detail_id=detail.id,
            variation_id=variation.id,
            quantity=quantity,
            additional_price=variation.additional_price,
        )
        detail.variations.append(row)
        self.session.flush()
        return row

    def delete_order_item_variations_for_detail(self, detail: OrderDetail) -> None:
        detail.variations.clear()
        self.session.flush()

    # ------------------------------------------------------------------- menu

    def get_concession(self, concession_id: int, *, for_update: bool = False) -> Concession:
        stmt = select(Concession).where(Concession.id == concession_id)
        if for_update:
            stmt = stmt.with_for_update()
        concession = self.session.execute(stmt).scalars().first()
        if concession is None:
            raise NotFoundError(f"Concession {concession_id} not found")
        return concession

    def get_menu_item(self, item_id: int) -> MenuItem:
        stmt = (
            select(MenuItem)
            .where(MenuItem.id == item_id)
            .options(
                selectinload(MenuItem.variation_groups).selectinload(
                    ItemVariationGroup.variations
                )
            )
        )
        item = self.session.execute(stmt).scalars().first()
        if item is None:
            raise NotFoundError(f"Menu item {item_id} not found")
        return item

    def get_variation(self, variation_id: int) -> ItemVariation:
        variation = self.session.get(ItemVariation, variation_id)
        if variation is None:
            raise NotFoundError(f"Item variation {variation_id} not found")
        return variation

    def set_item_availability(self, item_id: int, available: bool, now: datetime) -> MenuItem:
        item = self.session.get(MenuItem, item_id)
        if item is None:
            raise NotFoundError(f"Menu item {item_id} not found")
        item.available = available
        item.updated_at = now
        self.session.flush()
        return item

    def set_variation_availability(
        self, variation_id: int, available: bool, now: datetime
    ) -> ItemVariation:
        variation = self.get_variation(variation_id)
        variation.available = available
        variation.updated_at = now
        self.session.flush()
        return variation

    # -------------------------------------------------------------- reopening

    def insert_reopening_request(self, **values: Any) -> OrderReopeningRequest:
        request = OrderReopeningRequest(**values)
        self.session.add(request)
        self.session.flush()
        return request

    def update_reopening_request(
        self, request: OrderReopeningRequest, fields: dict[str, Any]
    ) -> OrderReopeningRequest:
        for key, value in fields.items():
            setattr(request, key, value)
        request.updated_at = fields.get("updated_at", utcnow())
        self.session.flush()
        return request

    def get_reopening_request(
        self, request_id: int, *, for_update: bool = False
    ) -> OrderReopeningRequest:
        stmt = select(OrderReopeningRequest).where(OrderReopeningRequest.id == request_id)
        if for_update:
            stmt = stmt.with_for_update()
        request = self.session.execute(stmt).scalars().first()
        if request is None:
            raise NotFoundError(f"Reopening request {request_id} not found")
        return request

    def latest_reopening_request(self, order_id: int) -> OrderReopeningRequest | None:
        stmt = (
            select(OrderReopeningRequest)
            .where(OrderReopeningRequest.order_id == order_id)
            .order_by(OrderReopeningRequest.requested_at.desc(), OrderReopeningRequest.id.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalars().first()

    def has_pending_reopening_request(self, order_id: int) -> bool:
        stmt = select(func.count(OrderReopeningRequest.id)).where(
            OrderReopeningRequest.order_id == order_id,
            OrderReopeningRequest.status == ReopeningStatus.PENDING.value,
        )
        return self.session.execute(stmt).scalar_one() > 0

    def list_reopening_requests(
        self, concessionaire_id: int, status: str | None = None
    ) -> list[OrderReopeningRequest]:
        stmt = select(OrderReopeningRequest).where(
            OrderReopeningRequest.concessionaire_id == concessionaire_id
        )
        if status:
            stmt = stmt.where(OrderReopeningRequest.status == status)
        stmt = stmt.options(
            selectinload(OrderReopeningRequest.order), selectinload(OrderReopeningRequest.customer)
        ).order_by(OrderReopeningRequest.requested_at.desc(), OrderReopeningRequest.id.desc())
        return list(self.session.execute(stmt).scalars().all())
