"""
Concurrent writers against a file-backed SQLite database.

Verifies:
- Two admins validating the same payment: one wins, the other gets
  InvalidTransitionError, and stock is committed exactly once
- Two reservations racing for the last unit: one succeeds, the other gets
  InsufficientStockError, and nothing is oversold

Each worker thread pushes its own app context and so gets its own session
and connection, which is how concurrent requests reach the store.
"""

import threading

import pytest

from papu import create_app
from papu.config import TestConfig
from papu.extensions import db
from papu.models import Order, ShippingZone
from papu.models.auth import ROLE_ADMIN
from papu.services import catalog_service, history_service, inventory_service, order_service, token_service
from papu.services.authorization_service import Caller
from papu.services.concurrency import run_with_retry
from papu.services.history_service import FIELD_STATUS, KIND_ORDER

WORKERS = 2


@pytest.fixture(scope='function')
def race_app(tmp_path):
    class _Config(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'race.sqlite3'}"
        PROOF_STORAGE_DIR = str(tmp_path / "proofs")

    app = create_app(_Config)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def callers(race_app):
    admin = token_service.create_user("admin@papu.local", "Admin", role=ROLE_ADMIN)
    other_admin = token_service.create_user("ops@papu.local", "Ops", role=ROLE_ADMIN)
    customer = token_service.create_user("ana@example.com", "Ana Perez", phone="+1 (305) 555-0100")
    db.session.add(ShippingZone(province_name="La Habana", shipping_cost_cents=500))
    db.session.commit()
    return Caller.from_user(admin), Caller.from_user(other_admin), Caller.from_user(customer)


def _product(admin_caller, quantity):
    product = catalog_service.create_product(admin_caller, sku="RICE-1KG", name="Rice 1kg", price_cents=350)
    inventory_service.receive_stock(admin_caller, product.id, quantity)
    return product.id


def _stock(product_id):
    record = inventory_service.get_inventory_record(product_id)
    db.session.refresh(record)
    return record.quantity, record.reserved_quantity, record.available_quantity


def _run_concurrently(app, targets):
    """Run each target on its own thread and app context; collect outcome names."""
    outcomes = []
    lock = threading.Lock()

    def _worker(target):
        with app.app_context():
            try:
                target()
                outcome = "OK"
            except Exception as exc:
                outcome = type(exc).__name__
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=_worker, args=(t,)) for t in targets]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    assert not any(thread.is_alive() for thread in threads)
    return sorted(outcomes)


def test_double_validation_commits_stock_once(race_app, callers, monkeypatch):
    admin, other_admin, customer = callers
    product_id = _product(admin, 5)
    order = order_service.create_order(
        customer,
        [{"item_type": "PRODUCT", "product_id": product_id, "quantity": 2}],
        recipient_info={"full_name": "Maria Lopez", "phone": "+53 5 555 1234", "province": "La Habana"},
        payment_proof_ref="order-payment/1/receipt.png",
    )
    order_id = order.id
    db.session.remove()

    # both admins read the PENDING order before either writes
    barrier = threading.Barrier(WORKERS)
    seen = threading.local()
    load_for_update = order_service.load_for_update

    def _load_then_wait(model, transaction_id, label):
        transaction = load_for_update(model, transaction_id, label)
        if not getattr(seen, "loaded", False):
            seen.loaded = True
            barrier.wait(timeout=10)
        return transaction

    monkeypatch.setattr(order_service, "load_for_update", _load_then_wait)

    outcomes = _run_concurrently(
        race_app,
        [
            lambda: order_service.validate_payment(admin, order_id),
            lambda: order_service.validate_payment(other_admin, order_id),
        ],
    )

    assert outcomes == ["InvalidTransitionError", "OK"]
    order = db.session.get(Order, order_id)
    assert (order.status, order.payment_status, order.inventory_state) == ("PROCESSING", "VALIDATED", "COMMITTED")
    assert _stock(product_id) == (3, 0, 3)
    assert history_service.visited_states(KIND_ORDER, order_id, FIELD_STATUS) == ["PENDING", "PROCESSING"]


def test_last_unit_reserved_once(race_app, callers):
    admin, _, _ = callers
    product_id = _product(admin, 1)
    db.session.remove()

    barrier = threading.Barrier(WORKERS)

    def _reserve_last_unit():
        barrier.wait(timeout=10)

        def _op():
            inventory_service.reserve(product_id, 1)
            db.session.commit()

        run_with_retry(_op)

    outcomes = _run_concurrently(race_app, [_reserve_last_unit] * WORKERS)

    assert outcomes == ["InsufficientStockError", "OK"]
    assert _stock(product_id) == (1, 1, 0)
