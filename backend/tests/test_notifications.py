"""
Notification outbox tests.

Verifies:
- Rows are queued in the same transaction as the transition
- The dispatcher marks rows SENT, retries failures, then gives up
- A row is claimed before its send, so overlapping dispatchers send it once
- A gateway outage never undoes or blocks a transition
- The HTTP gateway sink posts JSON and wraps transport errors
"""

from datetime import timedelta

import httpx
import pytest

from papu.errors import InsufficientStockError, NotificationError
from papu.extensions import db
from papu.models import NotificationOutbox
from papu.services import notification_service, order_service
from papu.time_utils import utcnow


class TestFormatting:

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("+1 (305) 555-0100", "13055550100"),
            ("0053 5 555 1234", "5355551234"),
            ("053555512345", "53555512345"),
            ("", ""),
            (None, ""),
            ("n/a", ""),
        ],
    )
    def test_format_phone(self, raw, expected):
        assert notification_service.format_phone(raw) == expected

    def test_format_money(self):
        assert notification_service.format_money(10200, "USD") == "102.00 USD"
        assert notification_service.format_money(1224000, "CUP") == "12240.00 CUP"
        assert notification_service.format_money(5, "USD") == "0.05 USD"
        assert notification_service.format_money(None) == "N/A"

    def test_render_fills_missing_values(self, app):
        message = notification_service.render(
            notification_service.ORDER_SHIPPED, number="ORD-20260101-00001", tracking=None
        )
        assert message == "PapuEnvios: order ORD-20260101-00001 has shipped. Tracking: N/A."

    def test_render_unknown_event(self, app):
        with pytest.raises(ValueError):
            notification_service.render("NOPE")


class TestOutbox:

    def test_missing_destination_is_skipped(self, db_session):
        row = notification_service.enqueue(
            notification_service.ORDER_DELIVERED, None, transaction_kind="ORDER", transaction_id=1, number="X"
        )
        assert row is None

    def test_failed_operation_queues_nothing(self, db_session, customer_caller, rice, recipient_info):
        with pytest.raises(InsufficientStockError):
            order_service.create_order(
                customer_caller,
                [{"item_type": "PRODUCT", "product_id": rice.id, "quantity": 6}],
                recipient_info=recipient_info,
            )
        assert db.session.query(NotificationOutbox).count() == 0

    def test_committed_transition_queues_its_row(self, db_session, customer_caller, rice, recipient_info):
        order = order_service.create_order(
            customer_caller,
            [{"item_type": "PRODUCT", "product_id": rice.id, "quantity": 1}],
            recipient_info=recipient_info,
        )
        rows = notification_service.list_outbox(notification_service.STATUS_PENDING)
        assert [(r.transaction_id, r.event) for r in rows] == [(order.id, notification_service.ORDER_CREATED)]


class TestDispatcher:

    def _queue(self, count=1):
        for i in range(count):
            notification_service.enqueue(
                notification_service.ORDER_COMPLETED, "+1 305 555 0100", number=f"ORD-{i}"
            )
        db.session.commit()

    def test_sends_pending_rows(self, db_session, sink):
        self._queue(2)
        summary = notification_service.dispatch_pending()

        assert summary == {"sent": 2, "retrying": 0, "failed": 0}
        assert [dest for dest, _ in sink.sent] == ["13055550100", "13055550100"]
        assert {r.status for r in notification_service.list_outbox()} == {notification_service.STATUS_SENT}

    def test_failures_retry_then_fail(self, app, db_session, sink):
        self._queue()
        sink.fail = True
        max_attempts = app.config["NOTIFICATION_MAX_ATTEMPTS"]

        for _ in range(max_attempts - 1):
            assert notification_service.dispatch_pending()["retrying"] == 1
        assert notification_service.dispatch_pending()["failed"] == 1

        row = db.session.query(NotificationOutbox).one()
        assert row.status == notification_service.STATUS_FAILED
        assert row.attempts == max_attempts
        assert "gateway down" in row.last_error

        # FAILED rows are not picked up again
        assert notification_service.dispatch_pending() == {"sent": 0, "retrying": 0, "failed": 0}

    def test_row_is_claimed_before_send(self, db_session, sink):
        self._queue()
        nested = []

        class ReentrantSink:
            def send(self, destination, message):
                # an overlapping dispatcher while the first send is in flight
                nested.append(notification_service.dispatch_pending(sink=sink))
                sink.send(destination, message)

        summary = notification_service.dispatch_pending(sink=ReentrantSink())

        assert summary["sent"] == 1
        assert nested == [{"sent": 0, "retrying": 0, "failed": 0}]
        assert len(sink.sent) == 1
        row = db.session.query(NotificationOutbox).one()
        assert row.status == notification_service.STATUS_SENT
        assert row.attempts == 1

    def test_abandoned_claim_is_taken_over(self, db_session, sink):
        self._queue(2)
        stale, fresh = db.session.query(NotificationOutbox).order_by(NotificationOutbox.id).all()
        for row in (stale, fresh):
            row.status = notification_service.STATUS_SENDING
            row.attempts = 1
        stale.last_attempt_at = utcnow() - timedelta(hours=1)
        fresh.last_attempt_at = utcnow()
        db.session.commit()

        summary = notification_service.dispatch_pending()

        assert summary == {"sent": 1, "retrying": 0, "failed": 0}
        db.session.refresh(stale)
        db.session.refresh(fresh)
        assert stale.status == notification_service.STATUS_SENT
        assert stale.attempts == 2
        assert fresh.status == notification_service.STATUS_SENDING

    def test_gateway_outage_does_not_undo_transition(
        self, db_session, sink, admin_caller, customer_caller, rice, recipient_info
    ):
        sink.fail = True
        order = order_service.create_order(
            customer_caller,
            [{"item_type": "PRODUCT", "product_id": rice.id, "quantity": 1}],
            recipient_info=recipient_info,
            payment_proof_ref="order-payment/1/p.png",
        )
        order = order_service.validate_payment(admin_caller, order.id)

        notification_service.dispatch_pending()
        assert order.status == "PROCESSING"
        assert db.session.query(NotificationOutbox).filter_by(status="SENT").count() == 0

    def test_transition_queues_owner_message(self, db_session, sink, admin_caller, customer_caller, rice, recipient_info):
        order = order_service.create_order(
            customer_caller,
            [{"item_type": "PRODUCT", "product_id": rice.id, "quantity": 1}],
            recipient_info=recipient_info,
            payment_proof_ref="order-payment/1/p.png",
        )
        order_service.reject_payment(admin_caller, order.id, "Unreadable")
        notification_service.dispatch_pending()

        to_customer = [msg for dest, msg in sink.sent if dest == "13055550100"]
        assert len(to_customer) == 1
        assert "Reason: Unreadable" in to_customer[0]


class TestHttpGatewaySink:

    def test_posts_json_with_token(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = request.read()
            return httpx.Response(200, json={"ok": True})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        sink = notification_service.HttpGatewaySink("https://gw.example/send", token="s3cret", client=client)
        sink.send("13055550100", "hello")

        assert seen["auth"] == "Bearer s3cret"
        assert b'"to":"13055550100"' in seen["body"].replace(b" ", b"")

    def test_http_error_becomes_notification_error(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(502)))
        sink = notification_service.HttpGatewaySink("https://gw.example/send", client=client)
        with pytest.raises(NotificationError):
            sink.send("13055550100", "hello")

    def test_default_sink_is_log_sink_without_gateway(self, app):
        notification_service.set_sink(app, None)
        assert isinstance(notification_service.get_sink(app), notification_service.LogSink)
        notification_service.set_sink(app, None)
