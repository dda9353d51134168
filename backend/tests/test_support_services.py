"""
Tests for document numbering, saved recipients, API tokens and proof storage.
"""

import os
from datetime import datetime

import pytest

from papu.errors import AuthorizationError, NotFoundError, ValidationError
from papu.extensions import db
from papu.services import proof_service, recipient_service, sequence_service, token_service


class TestDocumentNumbers:

    def test_order_numbers_reset_daily(self, db_session):
        day_one = datetime(2026, 3, 1, 10, 0)
        day_two = datetime(2026, 3, 2, 9, 0)

        assert sequence_service.next_order_number(day_one) == "ORD-20260301-00001"
        assert sequence_service.next_order_number(day_one) == "ORD-20260301-00002"
        assert sequence_service.next_order_number(day_two) == "ORD-20260302-00001"
        db.session.commit()

    def test_remittance_numbers_reset_yearly(self, db_session):
        assert sequence_service.next_remittance_number(datetime(2026, 1, 5)) == "REM-2026-0001"
        assert sequence_service.next_remittance_number(datetime(2026, 12, 31)) == "REM-2026-0002"
        assert sequence_service.next_remittance_number(datetime(2027, 1, 1)) == "REM-2027-0001"
        db.session.commit()

    def test_rolled_back_allocation_is_not_burned(self, db_session):
        now = datetime(2026, 6, 1)
        sequence_service.next_remittance_number(now)
        db.session.commit()

        sequence_service.next_remittance_number(now)
        db.session.rollback()

        assert sequence_service.next_remittance_number(now) == "REM-2026-0002"
        db.session.commit()

    def test_order_and_remittance_counters_are_independent(self, db_session):
        now = datetime(2026, 6, 1)
        sequence_service.next_order_number(now)
        sequence_service.next_order_number(now)
        assert sequence_service.next_remittance_number(now) == "REM-2026-0001"
        db.session.commit()


class TestRecipients:

    def test_create_and_list_own(self, db_session, customer_caller, other_caller):
        recipient_service.create_recipient(customer_caller, {"full_name": " Maria Lopez ", "phone": "+53 5 555 1234"})

        mine = recipient_service.list_recipients(customer_caller)
        assert [r.full_name for r in mine] == ["Maria Lopez"]
        assert recipient_service.list_recipients(other_caller) == []

    def test_name_and_phone_required(self, db_session, customer_caller):
        with pytest.raises(ValidationError):
            recipient_service.create_recipient(customer_caller, {"full_name": "Maria"})

    def test_partial_update_cannot_blank_required(self, db_session, customer_caller):
        recipient = recipient_service.create_recipient(customer_caller, {"full_name": "Maria", "phone": "1"})
        with pytest.raises(ValidationError):
            recipient_service.update_recipient(customer_caller, recipient.id, {"phone": "  "})

        updated = recipient_service.update_recipient(customer_caller, recipient.id, {"province": "Matanzas"})
        assert updated.province == "Matanzas"
        assert updated.phone == "1"

    def test_unknown_linked_user_rejected(self, db_session, customer_caller):
        with pytest.raises(ValidationError):
            recipient_service.create_recipient(
                customer_caller, {"full_name": "Maria", "phone": "1", "user_id": 9999}
            )

    def test_only_owner_edits(self, db_session, customer_caller, other_caller):
        recipient = recipient_service.create_recipient(customer_caller, {"full_name": "Maria", "phone": "1"})
        with pytest.raises(AuthorizationError):
            recipient_service.update_recipient(other_caller, recipient.id, {"province": "X"})

    def test_deactivated_recipient_disappears(self, db_session, customer_caller):
        recipient = recipient_service.create_recipient(customer_caller, {"full_name": "Maria", "phone": "1"})
        recipient_service.deactivate_recipient(customer_caller, recipient.id)

        assert recipient_service.list_recipients(customer_caller) == []
        with pytest.raises(NotFoundError):
            recipient_service.get_recipient(customer_caller, recipient.id)


class TestTokens:

    def test_only_hash_is_stored(self, db_session, customer):
        record, token = token_service.issue_token(customer.id, label="phone")
        assert len(token) == 64
        assert record.token_hash == token_service.hash_token(token)
        assert token not in record.token_hash

    def test_resolve_and_revoke(self, db_session, customer):
        record, token = token_service.issue_token(customer.id)
        assert token_service.resolve_token(token).id == customer.id

        token_service.revoke_token(record.id)
        assert token_service.resolve_token(token) is None

    def test_inactive_user_does_not_resolve(self, db_session, customer):
        _, token = token_service.issue_token(customer.id)
        customer.is_active = False
        db.session.commit()
        assert token_service.resolve_token(token) is None

    def test_duplicate_email_rejected(self, db_session, customer):
        with pytest.raises(ValidationError):
            token_service.create_user("ANA@example.com", "Ana again")

    def test_unknown_role_rejected(self, db_session):
        with pytest.raises(ValidationError):
            token_service.create_user("x@example.com", "X", role="ROOT")


class TestProofStore:

    def test_store_and_discard(self, app):
        with app.app_context():
            ref = proof_service.store_proof("order-payment", 77, "r.png", "image/png", b"png")
            assert os.path.isfile(proof_service.resolve_proof_path(ref))
            assert proof_service.discard_proof(ref) is True
            assert proof_service.discard_proof(ref) is False

    def test_upload_removed_when_operation_fails(self, app):
        with app.app_context():
            ref = proof_service.store_proof("remittance-payment", 78, "r.pdf", "application/pdf", b"%PDF")
            with pytest.raises(ValidationError):
                with proof_service.discard_on_error(ref):
                    raise ValidationError("refused")
            with pytest.raises(NotFoundError):
                proof_service.resolve_proof_path(ref)

    def test_upload_kept_when_operation_succeeds(self, app):
        with app.app_context():
            ref = proof_service.store_proof("remittance-payment", 79, "r.pdf", "application/pdf", b"%PDF")
            with proof_service.discard_on_error(ref):
                pass
            assert os.path.isfile(proof_service.resolve_proof_path(ref))
