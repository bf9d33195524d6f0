"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from canteen_api.app import create_app
from canteen_shared.config import AppConfig
from canteen_shared.constants import ConcessionStatus, Roles
from canteen_shared.db import dispose_engine, get_session, init_db, init_engine
from canteen_shared.models import (
    Base,
    Concession,
    ItemVariation,
    ItemVariationGroup,
    MenuItem,
    User,
)
from canteen_shared.policy import OrderPolicy, install_policy
from canteen_shared.services import cart_service, order_service
from canteen_shared.services.access import Actor
from canteen_shared.services.notifications_service import (
    NotificationDispatcher,
    get_notifier,
    set_notifier,
)

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite://"


class RecordingNotifier(NotificationDispatcher):
    """Keeps every delivered notification in memory."""

    def __init__(self):
        self.sent = []

    def deliver(self, user_id, notification_type, message, order_id):
        self.sent.append(
            {
                "user_id": user_id,
                "notification_type": notification_type,
                "message": message,
                "order_id": order_id,
            }
        )

    def types_for(self, user_id):
        return [n["notification_type"] for n in self.sent if n["user_id"] == user_id]


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(
        app_name="canteen-test",
        db_host="localhost",
        db_port=5432,
        db_user="test",
        db_password="test",
        db_name="test",
        db_sslmode="",
        secret_key="test-secret-key",
        log_level="WARNING",
        debug_mode=True,
        flask_debug=False,
        cors_origins=["http://localhost:5173"],
    )


@pytest.fixture(autouse=True)
def database(app_config):
    """Fresh in-memory database and default policy for every test."""
    dispose_engine()
    init_engine(app_config, TEST_DATABASE_URL)
    init_db(Base.metadata)
    install_policy(OrderPolicy())
    yield
    dispose_engine()
    install_policy(OrderPolicy())


@pytest.fixture(autouse=True)
def notifier():
    previous = get_notifier()
    recorder = RecordingNotifier()
    set_notifier(recorder)
    yield recorder
    set_notifier(previous)


@pytest.fixture
def t0() -> datetime:
    return datetime(2026, 3, 2, 9, 0, 0)


@pytest.fixture
def seed():
    """
    Two concessions with their owners and two customers.

    Ate Ana's Kitchen takes GCash and on-counter payments; Kuya's Snacks only
    on-counter.
    """
    with get_session() as session:
        customer = User(first_name="Juan", last_name="Dela Cruz", email="juan@example.com", role="customer")
        other_customer = User(first_name="Maria", last_name="Santos", email="maria@example.com", role="customer")
        owner = User(first_name="Ana", last_name="Reyes", email="ana@example.com", role="concessionaire")
        other_owner = User(first_name="Ben", last_name="Cruz", email="ben@example.com", role="concessionaire")
        session.add_all([customer, other_customer, owner, other_owner])
        session.flush()

        kitchen = Concession(
            concession_name="Ate Ana's Kitchen",
            concessionaire_id=owner.id,
            gcash_payment_available=True,
            oncounter_payment_available=True,
            gcash_number="09171234567",
            receipt_timer=timedelta(minutes=15),
            status=ConcessionStatus.OPEN.value,
        )
        snacks = Concession(
            concession_name="Kuya's Snacks",
            concessionaire_id=other_owner.id,
            gcash_payment_available=False,
            oncounter_payment_available=True,
            receipt_timer=timedelta(minutes=15),
            status=ConcessionStatus.OPEN.value,
        )

        adobo = MenuItem(
            concession=kitchen, item_name="Chicken Adobo", price=Decimal("50.00"),
            category="Meals", available=True,
        )
        addons = ItemVariationGroup(
            menu_item=adobo, variation_group_name="Add-ons", min_selection=0, max_selection=2
        )
        rice = ItemVariation(
            group=addons, variation_name="Extra Rice", additional_price=Decimal("15.00"),
            max_amount=3, available=True,
        )
        egg = ItemVariation(
            group=addons, variation_name="Fried Egg", additional_price=Decimal("10.00"),
            max_amount=1, available=True,
        )

        sisig = MenuItem(
            concession=kitchen, item_name="Pork Sisig", price=Decimal("65.00"),
            category="Meals", available=True,
        )
        rice_choice = ItemVariationGroup(
            menu_item=sisig, variation_group_name="Rice", min_selection=1, max_selection=1
        )
        plain_rice = ItemVariation(
            group=rice_choice, variation_name="Plain Rice", additional_price=Decimal("0.00"),
            max_amount=1, available=True,
        )
        garlic_rice = ItemVariation(
            group=rice_choice, variation_name="Garlic Rice", additional_price=Decimal("5.00"),
            max_amount=1, available=True,
        )

        iced_tea = MenuItem(
            concession=kitchen, item_name="Iced Tea", price=Decimal("25.00"),
            category="Drinks", available=True,
        )
        siomai = MenuItem(
            concession=snacks, item_name="Siomai", price=Decimal("30.00"),
            category="Snacks", available=True,
        )
        session.add_all([kitchen, snacks])
        session.flush()

        return {
            "customer_id": customer.id,
            "other_customer_id": other_customer.id,
            "concessionaire_id": owner.id,
            "other_concessionaire_id": other_owner.id,
            "concession_id": kitchen.id,
            "other_concession_id": snacks.id,
            "adobo_id": adobo.id,
            "rice_id": rice.id,
            "egg_id": egg.id,
            "sisig_id": sisig.id,
            "plain_rice_id": plain_rice.id,
            "garlic_rice_id": garlic_rice.id,
            "iced_tea_id": iced_tea.id,
            "siomai_id": siomai.id,
        }


@pytest.fixture
def customer(seed) -> Actor:
    return Actor(user_id=seed["customer_id"], role=Roles.CUSTOMER)


@pytest.fixture
def other_customer(seed) -> Actor:
    return Actor(user_id=seed["other_customer_id"], role=Roles.CUSTOMER)


@pytest.fixture
def concessionaire(seed) -> Actor:
    return Actor(user_id=seed["concessionaire_id"], role=Roles.CONCESSIONAIRE)


@pytest.fixture
def other_concessionaire(seed) -> Actor:
    return Actor(user_id=seed["other_concessionaire_id"], role=Roles.CONCESSIONAIRE)


@pytest.fixture
def place_order(seed, customer, t0):
    """Factory: one Chicken Adobo with Extra Rice x2 (total 80.00) by default."""

    def _place(payment_method="gcash", rice_quantity=2, in_cart=False, now=None):
        variations = []
        if rice_quantity:
            variations.append({"variation_id": seed["rice_id"], "quantity": rice_quantity})
        items = [{"menu_item_id": seed["adobo_id"], "quantity": 1, "variations": variations}]
        return cart_service.create_order(
            seed["customer_id"],
            seed["concession_id"],
            payment_method,
            items,
            in_cart=in_cart,
            actor=customer,
            now=now or t0,
        )

    return _place


@pytest.fixture
def accepted_gcash_order(place_order, concessionaire, t0):
    order = place_order()
    return order_service.accept_order(order["id"], concessionaire, now=t0)


@pytest.fixture
def auto_declined_order(accepted_gcash_order, t0):
    """A GCash order declined by the receipt timer at t0 + 16 minutes."""
    result = order_service.check_expired(
        accepted_gcash_order["id"], now=t0 + timedelta(minutes=16)
    )
    assert result["auto_declined"] is True
    return result["order"]


@pytest.fixture
def headers_for():
    """Gateway headers identifying the caller."""

    def _headers(user_id, role):
        return {"X-User-Id": str(user_id), "X-User-Role": role}

    return _headers


@pytest.fixture
def client(app_config):
    app = create_app(config=app_config, database_url=TEST_DATABASE_URL)
    app.config["TESTING"] = True
    with app.test_client() as test_client:
        yield test_client
