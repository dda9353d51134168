"""
Remittance lifecycle tests.

Verifies:
- Figures are computed server-side and snapshotted from the commission profile
- Payment review, processing, delivery and completion follow the graph
- The linked recipient account may confirm delivery
- Delivery alerts and statistics
"""

import re
from datetime import timedelta

import pytest

from papu.errors import AuthorizationError, InvalidTransitionError, ValidationError
from papu.extensions import db
from papu.models import NotificationOutbox, Remittance
from papu.services import history_service, notification_service, recipient_service, remittance_service
from papu.services.history_service import FIELD_PAYMENT_STATUS, FIELD_STATUS, KIND_REMITTANCE
from papu.services.state_machine import PAYMENT_MACHINE, REMITTANCE_MACHINE


@pytest.fixture(scope='function')
def remittance(db_session, customer_caller, remittance_type, recipient_info):
    return remittance_service.create_remittance(
        customer_caller, remittance_type.id, 10000, recipient_info=recipient_info
    )


@pytest.fixture(scope='function')
def validated(db_session, customer_caller, admin_caller, remittance):
    remittance_service.submit_payment_proof(
        customer_caller, remittance.id, "remittance-payment/1/zelle.png", payment_reference="Ana P."
    )
    return remittance_service.validate_payment(admin_caller, remittance.id)


class TestRemittanceTypes:

    def test_customer_cannot_manage_types(self, db_session, customer_caller):
        with pytest.raises(AuthorizationError):
            remittance_service.create_remittance_type(customer_caller, {"name": "x"})

    def test_rejects_non_positive_rate(self, db_session, admin_caller):
        with pytest.raises(ValidationError):
            remittance_service.create_remittance_type(admin_caller, {
                "name": "Bad", "currency_code": "USD", "delivery_currency": "CUP",
                "exchange_rate": "0", "min_amount_cents": 1000,
            })

    def test_rejects_max_below_min(self, db_session, admin_caller):
        with pytest.raises(ValidationError):
            remittance_service.create_remittance_type(admin_caller, {
                "name": "Bad", "currency_code": "USD", "delivery_currency": "CUP",
                "exchange_rate": "120", "min_amount_cents": 1000, "max_amount_cents": 500,
            })

    def test_inactive_types_hidden(self, db_session, admin_caller, remittance_type):
        remittance_service.set_remittance_type_active(admin_caller, remittance_type.id, False)
        assert remittance_service.list_remittance_types() == []
        assert len(remittance_service.list_remittance_types(include_inactive=True)) == 1


class TestQuoteAndCreate:

    def test_quote_matches_reference_figures(self, db_session, customer_caller, remittance_type):
        quote = remittance_service.quote(customer_caller, remittance_type.id, 10000)
        assert (quote.commission_cents, quote.total_cents, quote.delivered_cents) == (200, 10200, 1224000)

    def test_quote_on_inactive_type_rejected(self, db_session, admin_caller, customer_caller, remittance_type):
        remittance_service.set_remittance_type_active(admin_caller, remittance_type.id, False)
        with pytest.raises(ValidationError):
            remittance_service.quote(customer_caller, remittance_type.id, 10000)

    def test_create_snapshots_figures(self, db_session, remittance):
        assert remittance.status == "PAYMENT_PENDING"
        assert remittance.payment_status == "PENDING"
        assert remittance.commission_cents == 200
        assert remittance.total_cents == 10200
        assert remittance.delivered_cents == 1224000
        assert remittance.currency_sent == "USD"
        assert remittance.currency_delivered == "CUP"
        assert re.match(r"^REM-\d{4}-\d{4}$", remittance.remittance_number)

    def test_profile_edit_does_not_touch_existing(self, db_session, admin_caller, remittance_type, remittance):
        remittance_service.update_remittance_type(admin_caller, remittance_type.id, {"exchange_rate": "130"})

        stored = db.session.get(Remittance, remittance.id)
        db.session.refresh(stored)
        assert stored.delivered_cents == 1224000
        assert str(stored.exchange_rate).startswith("120")

    def test_amount_outside_bounds_rejected(self, db_session, customer_caller, remittance_type, recipient_info):
        with pytest.raises(ValidationError):
            remittance_service.create_remittance(customer_caller, remittance_type.id, 999, recipient_info=recipient_info)
        assert db.session.query(Remittance).count() == 0

    def test_saved_recipient_links_account(self, db_session, customer_caller, other_customer, remittance_type):
        recipient = recipient_service.create_recipient(customer_caller, {
            "full_name": "Luis Gomez", "phone": "+53 5 123 4567", "user_id": other_customer.id,
        })
        rem = remittance_service.create_remittance(
            customer_caller, remittance_type.id, 5000, recipient_id=recipient.id
        )
        assert rem.recipient_user_id == other_customer.id
        assert rem.recipient_name == "Luis Gomez"

    def test_cannot_use_someone_elses_recipient(self, db_session, customer_caller, other_caller, remittance_type):
        recipient = recipient_service.create_recipient(other_caller, {"full_name": "X", "phone": "+53 5 000 0000"})
        with pytest.raises(AuthorizationError):
            remittance_service.create_remittance(customer_caller, remittance_type.id, 5000, recipient_id=recipient.id)


class TestPaymentReview:

    def test_validate_sets_delivery_deadline(self, db_session, validated):
        assert validated.status == "PAYMENT_VALIDATED"
        assert validated.payment_status == "VALIDATED"
        assert validated.max_delivery_date - validated.payment_validated_at == timedelta(days=3)

    def test_reject_loops_back_to_pending(self, db_session, customer_caller, admin_caller, remittance):
        remittance_service.submit_payment_proof(customer_caller, remittance.id, "remittance-payment/1/a.png")
        rem = remittance_service.reject_payment(admin_caller, remittance.id, "Wrong amount")

        assert rem.status == "PAYMENT_PENDING"
        assert rem.payment_status == "PENDING"
        assert rem.payment_rejection_reason == "Wrong amount"
        assert history_service.visited_states(KIND_REMITTANCE, rem.id, FIELD_STATUS) == [
            "PAYMENT_PENDING", "PAYMENT_PROOF_UPLOADED", "PAYMENT_REJECTED", "PAYMENT_PENDING",
        ]

    def test_validate_twice_fails(self, db_session, admin_caller, validated):
        with pytest.raises(InvalidTransitionError):
            remittance_service.validate_payment(admin_caller, validated.id)

    def test_only_owner_submits_proof(self, db_session, other_caller, remittance):
        with pytest.raises(AuthorizationError):
            remittance_service.submit_payment_proof(other_caller, remittance.id, "remittance-payment/1/a.png")


class TestFulfilment:

    def test_full_lifecycle(self, db_session, admin_caller, validated):
        remittance_service.start_processing(admin_caller, validated.id)
        remittance_service.confirm_delivery(admin_caller, validated.id, delivery_proof_ref="remittance-delivery/1/d.jpg")
        rem = remittance_service.complete_remittance(admin_caller, validated.id)

        assert rem.status == "COMPLETED"
        assert rem.delivery_proof_ref == "remittance-delivery/1/d.jpg"
        history_service.verify_history(
            KIND_REMITTANCE, rem.id, {FIELD_STATUS: REMITTANCE_MACHINE, FIELD_PAYMENT_STATUS: PAYMENT_MACHINE}
        )

    def test_linked_recipient_confirms_delivery(
        self, db_session, customer_caller, admin_caller, other_caller, other_customer, remittance_type
    ):
        recipient = recipient_service.create_recipient(customer_caller, {
            "full_name": "Luis Gomez", "phone": "+53 5 123 4567", "user_id": other_customer.id,
        })
        rem = remittance_service.create_remittance(customer_caller, remittance_type.id, 5000, recipient_id=recipient.id)
        remittance_service.submit_payment_proof(customer_caller, rem.id, "remittance-payment/2/a.png")
        remittance_service.validate_payment(admin_caller, rem.id)
        remittance_service.start_processing(admin_caller, rem.id)

        assert remittance_service.get_remittance(other_caller, rem.id).id == rem.id
        rem = remittance_service.confirm_delivery(other_caller, rem.id)
        assert rem.status == "DELIVERED"
        assert rem.delivered_by_user_id == other_caller.user_id

    def test_stranger_cannot_confirm_delivery(self, db_session, admin_caller, other_caller, validated):
        remittance_service.start_processing(admin_caller, validated.id)
        with pytest.raises(AuthorizationError):
            remittance_service.confirm_delivery(other_caller, validated.id)

    def test_cannot_cancel_once_processing(self, db_session, admin_caller, customer_caller, validated):
        remittance_service.start_processing(admin_caller, validated.id)
        with pytest.raises(InvalidTransitionError):
            remittance_service.cancel_remittance(customer_caller, validated.id, "Too late")

    def test_owner_cancels_before_processing(self, db_session, customer_caller, remittance):
        rem = remittance_service.cancel_remittance(customer_caller, remittance.id, "Sent by mistake")
        assert rem.status == "CANCELLED"
        assert rem.cancellation_reason == "Sent by mistake"

    def test_admin_cannot_cancel_for_sender(self, db_session, admin_caller, remittance):
        with pytest.raises(AuthorizationError):
            remittance_service.cancel_remittance(admin_caller, remittance.id, "Cleaning up")

        rem = db.session.get(Remittance, remittance.id)
        db.session.refresh(rem)
        assert rem.status == "PAYMENT_PENDING"


class TestDeliveryAlerts:

    def test_alert_levels(self, db_session, validated):
        deadline = validated.max_delivery_date

        assert remittance_service.calculate_delivery_alert(validated, deadline - timedelta(hours=72))["level"] == "info"
        assert remittance_service.calculate_delivery_alert(validated, deadline - timedelta(hours=36))["level"] == "warning"
        assert remittance_service.calculate_delivery_alert(validated, deadline - timedelta(hours=12))["level"] == "error"

        overdue = remittance_service.calculate_delivery_alert(validated, deadline + timedelta(hours=1))
        assert overdue["level"] == "error"
        assert overdue["message"] == "Delivery overdue"

    def test_unvalidated_is_info(self, db_session, remittance):
        alert = remittance_service.calculate_delivery_alert(remittance)
        assert alert["level"] == "info"
        assert alert["hours_remaining"] is None

    def test_needing_alert_window(self, db_session, admin_caller, validated):
        deadline = validated.max_delivery_date
        assert remittance_service.get_remittances_needing_alert(admin_caller, deadline - timedelta(hours=48)) == []
        due = remittance_service.get_remittances_needing_alert(admin_caller, deadline - timedelta(hours=12))
        assert [r.id for r in due] == [validated.id]

    def test_send_delivery_alerts_queues_admin_messages(self, db_session, admin_caller, validated):
        now = validated.max_delivery_date - timedelta(hours=6)
        assert remittance_service.send_delivery_alerts(admin_caller, now) == 1

        row = (
            db.session.query(NotificationOutbox)
            .filter_by(event=notification_service.REMITTANCE_DELIVERY_ALERT)
            .one()
        )
        assert validated.remittance_number in row.message

    def test_alerts_are_admin_only(self, db_session, customer_caller, validated):
        with pytest.raises(AuthorizationError):
            remittance_service.send_delivery_alerts(customer_caller)


class TestStats:

    def test_stats(self, db_session, customer_caller, admin_caller, remittance_type, recipient_info, validated):
        remittance_service.create_remittance(customer_caller, remittance_type.id, 2000, recipient_info=recipient_info)
        remittance_service.start_processing(admin_caller, validated.id)
        remittance_service.confirm_delivery(admin_caller, validated.id)
        remittance_service.complete_remittance(admin_caller, validated.id)

        stats = remittance_service.get_remittance_stats(admin_caller)
        assert stats["total"] == 2
        assert stats["by_status"] == {"COMPLETED": 1, "PAYMENT_PENDING": 1}
        assert stats["total_amount_cents"] == 12000
        assert stats["completed_amount_cents"] == 10000
        assert stats["avg_processing_hours"] >= 0

    def test_stats_admin_only(self, db_session, customer_caller):
        with pytest.raises(AuthorizationError):
            remittance_service.get_remittance_stats(customer_caller)
