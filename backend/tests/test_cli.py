"""
CLI command tests, run through Flask's test CLI runner.
"""

from papu.extensions import db
from papu.models import ApiToken, Product, User
from papu.services import order_service


def test_init_creates_admin_with_token(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["system", "init", "--admin-email", "boss@papu.local"])

    assert result.exit_code == 0, result.output
    assert "PASS Created admin: boss@papu.local" in result.output
    user = db.session.query(User).filter_by(email="boss@papu.local").one()
    assert user.role == "SUPER_ADMIN"
    assert db.session.query(ApiToken).filter_by(user_id=user.id).count() == 1

    again = runner.invoke(args=["system", "init", "--admin-email", "boss@papu.local"])
    assert again.exit_code == 0
    assert "already exists" in again.output


def test_reset_requires_confirmation(app, db_session):
    result = app.test_cli_runner().invoke(args=["system", "reset-db"])
    assert result.exit_code != 0
    assert "--yes" in result.output


def test_issue_token_prints_plaintext_once(app, customer):
    result = app.test_cli_runner().invoke(args=["users", "issue-token", "--email", "ana@example.com"])

    assert result.exit_code == 0, result.output
    token = result.output.strip().splitlines()[-1]
    assert len(token) == 64
    assert db.session.query(ApiToken).filter_by(user_id=customer.id).count() == 1


def test_users_list(app, customer, admin):
    result = app.test_cli_runner().invoke(args=["users", "list"])
    assert result.exit_code == 0
    assert "ana@example.com" in result.output
    assert "admin@papu.local" in result.output


def test_catalog_commands_require_admin(app, customer):
    result = app.test_cli_runner().invoke(
        args=["catalog", "add-product", "--as", "ana@example.com", "--sku", "X", "--name", "X", "--price-cents", "100"]
    )
    assert result.exit_code != 0
    assert "is not an admin" in result.output


def test_add_product_and_receive(app, admin):
    runner = app.test_cli_runner()
    result = runner.invoke(
        args=["catalog", "add-product", "--as", "admin@papu.local", "--sku", "SUGAR", "--name", "Sugar",
              "--price-cents", "275"]
    )
    assert result.exit_code == 0, result.output

    result = runner.invoke(
        args=["catalog", "receive", "--as", "admin@papu.local", "--sku", "SUGAR", "--quantity", "12"]
    )
    assert result.exit_code == 0, result.output
    assert "on hand 12, reserved 0, available 12" in result.output
    assert db.session.query(Product).filter_by(sku="SUGAR").one().price_cents == 275


def test_add_zone(app, admin):
    runner = app.test_cli_runner()
    result = runner.invoke(
        args=["catalog", "add-zone", "--as", "admin@papu.local", "--province", "Holguin", "--cost-cents", "900"]
    )
    assert result.exit_code == 0, result.output
    assert "PASS Shipping zone Holguin: 900 cents" in result.output

    result = runner.invoke(
        args=["catalog", "add-zone", "--as", "admin@papu.local", "--province", "Holguin",
              "--municipality", "Gibara", "--cost-cents", "900", "--free"]
    )
    assert result.exit_code == 0, result.output
    assert "PASS Shipping zone Holguin / Gibara: 0 cents" in result.output

    result = runner.invoke(args=["catalog", "add-zone", "--as", "admin@papu.local", "--province", "holguin"])
    assert result.exit_code != 0
    assert "already exists" in result.output


def test_dispatch_command(app, db_session, sink, customer_caller, rice, recipient_info):
    order_service.create_order(
        customer_caller,
        [{"item_type": "PRODUCT", "product_id": rice.id, "quantity": 1}],
        recipient_info=recipient_info,
    )

    result = app.test_cli_runner().invoke(args=["notifications", "dispatch"])
    assert result.exit_code == 0, result.output
    assert "sent=1 retrying=0 failed=0" in result.output
    assert len(sink.sent) == 1
