"""
Pytest fixtures for PapuEnvios backend tests.

Provides an in-memory database, customers and an admin with API tokens,
a stocked catalog, a shipping zone, a commission profile and a recording
notification sink.
"""

import pytest

from papu import create_app
from papu.config import TestConfig
from papu.errors import NotificationError
from papu.extensions import db
from papu.models import ShippingZone
from papu.models.auth import ROLE_ADMIN
from papu.services import catalog_service, inventory_service, notification_service, remittance_service, token_service
from papu.services.authorization_service import Caller


class RecordingSink(notification_service.NotificationSink):
    """Collects sent messages; set fail=True to simulate a gateway outage."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, destination, message):
        if self.fail:
            raise NotificationError("gateway down")
        self.sent.append((destination, message))


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """App on in-memory SQLite with proofs stored in a temp directory."""
    class _Config(TestConfig):
        PROOF_STORAGE_DIR = str(tmp_path_factory.mktemp("proofs"))

    app = create_app(_Config)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Flask test client for route tests."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty tables for every test; the schema stays."""
    with app.app_context():
        # wipe rows in reverse FK order
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # drop anything the test left uncommitted
        db.session.rollback()


@pytest.fixture(scope='function')
def sink(app):
    recording = RecordingSink()
    notification_service.set_sink(app, recording)
    yield recording
    notification_service.set_sink(app, None)


# =============================================================================
# USERS
# =============================================================================


@pytest.fixture(scope='function')
def customer(db_session):
    return token_service.create_user("ana@example.com", "Ana Perez", phone="+1 (305) 555-0100")


@pytest.fixture(scope='function')
def other_customer(db_session):
    return token_service.create_user("luis@example.com", "Luis Gomez", phone="+1 (305) 555-0199")


@pytest.fixture(scope='function')
def admin(db_session):
    return token_service.create_user("admin@papu.local", "Admin", role=ROLE_ADMIN, phone="+1 (561) 601-1675")


@pytest.fixture(scope='function')
def customer_caller(customer):
    return Caller.from_user(customer)


@pytest.fixture(scope='function')
def other_caller(other_customer):
    return Caller.from_user(other_customer)


@pytest.fixture(scope='function')
def admin_caller(admin):
    return Caller.from_user(admin)


def auth_headers(token: str) -> dict:
    """Bearer header for a freshly issued token."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def customer_headers(customer):
    _, token = token_service.issue_token(customer.id, label="test")
    return auth_headers(token)


@pytest.fixture(scope='function')
def other_headers(other_customer):
    _, token = token_service.issue_token(other_customer.id, label="test")
    return auth_headers(token)


@pytest.fixture(scope='function')
def admin_headers(admin):
    _, token = token_service.issue_token(admin.id, label="test")
    return auth_headers(token)


# =============================================================================
# CATALOG
# =============================================================================


@pytest.fixture(scope='function')
def rice(db_session, admin_caller):
    """Product with 5 on hand and a low-stock threshold of 1."""
    product = catalog_service.create_product(
        admin_caller, sku="RICE-1KG", name="Rice 1kg", price_cents=350, min_stock_alert=1
    )
    inventory_service.receive_stock(admin_caller, product.id, 5)
    return product


@pytest.fixture(scope='function')
def oil(db_session, admin_caller):
    """Product with 20 on hand."""
    product = catalog_service.create_product(
        admin_caller, sku="OIL-1L", name="Oil 1L", price_cents=500, min_stock_alert=2
    )
    inventory_service.receive_stock(admin_caller, product.id, 20)
    return product


@pytest.fixture(scope='function')
def combo(db_session, admin_caller, rice, oil):
    """2 x rice + 1 x oil at a 35% margin: base 1200, price 1620."""
    return catalog_service.create_combo(
        admin_caller,
        name="Family Box",
        items=[{"product_id": rice.id, "quantity": 2}, {"product_id": oil.id, "quantity": 1}],
    )


@pytest.fixture(scope='function')
def remittance_type(db_session, admin_caller):
    """USD -> CUP cash profile: min 10.00, max 5000.00, 2% commission, rate 120."""
    return remittance_service.create_remittance_type(admin_caller, {
        "name": "Cash CUP",
        "currency_code": "USD",
        "delivery_currency": "CUP",
        "exchange_rate": "120",
        "commission_percentage": "2",
        "commission_fixed_cents": 0,
        "min_amount_cents": 1000,
        "max_amount_cents": 500000,
        "delivery_method": "CASH",
        "max_delivery_days": 3,
    })


RECIPIENT_INFO = {
    "full_name": "Maria Lopez",
    "phone": "+53 5 555 1234",
    "province": "La Habana",
    "address": "Calle 23 #456",
}


@pytest.fixture(scope='function')
def shipping_zone(db_session):
    """Province default for La Habana at 5.00 USD."""
    zone = ShippingZone(province_name="La Habana", shipping_cost_cents=500)
    db.session.add(zone)
    db.session.commit()
    return zone


@pytest.fixture(scope='function')
def recipient_info(shipping_zone):
    return dict(RECIPIENT_INFO)


def _stock(product_id: int):
    record = inventory_service.get_inventory_record(product_id)
    db.session.refresh(record)
    return record.quantity, record.reserved_quantity, record.available_quantity


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Fresh (quantity, reserved, available) for a product."""
    return _stock
