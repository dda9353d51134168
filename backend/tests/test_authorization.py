"""
Authorization boundary tests.

authorize() is pure: it reads only the caller and the loaded transaction,
so these tests need no database.
"""

from types import SimpleNamespace

import pytest

from papu.errors import AuthorizationError
from papu.services import authorization_service as authz
from papu.services.authorization_service import Caller


OWNER = Caller(user_id=1)
STRANGER = Caller(user_id=2)
RECIPIENT = Caller(user_id=3)
ADMIN = Caller(user_id=9, role="ADMIN")
SUPER_ADMIN = Caller(user_id=10, role="SUPER_ADMIN")
INACTIVE_ADMIN = Caller(user_id=11, role="ADMIN", is_active=False)

ORDER = SimpleNamespace(id=100, user_id=1)
REMITTANCE = SimpleNamespace(id=200, user_id=1, recipient_user_id=3)
RECIPIENT_ROW = SimpleNamespace(id=300, owner_user_id=1, user_id=3)


# =============================================================================
# ADMIN-ONLY ACTIONS
# =============================================================================


class TestAdminActions:

    @pytest.mark.parametrize(
        "action",
        [
            authz.ORDER_VALIDATE_PAYMENT,
            authz.ORDER_REJECT_PAYMENT,
            authz.ORDER_SHIP,
            authz.ORDER_CONFIRM_DELIVERY,
            authz.ORDER_COMPLETE,
            authz.REMITTANCE_VALIDATE_PAYMENT,
            authz.REMITTANCE_START_PROCESSING,
            authz.REMITTANCE_COMPLETE,
        ],
    )
    def test_owner_denied(self, action):
        with pytest.raises(AuthorizationError) as exc:
            authz.authorize(OWNER, action, ORDER)
        assert exc.value.details["required_policy"] == authz.POLICY_ADMIN
        assert exc.value.status_code == 403

    @pytest.mark.parametrize("caller", [ADMIN, SUPER_ADMIN])
    def test_admins_allowed(self, caller):
        authz.authorize(caller, authz.ORDER_VALIDATE_PAYMENT, ORDER)
        authz.authorize(caller, authz.INVENTORY_MANAGE)

    def test_inactive_admin_denied(self):
        assert not authz.is_allowed(INACTIVE_ADMIN, authz.ORDER_VALIDATE_PAYMENT, ORDER)


# =============================================================================
# OWNER ACTIONS
# =============================================================================


class TestOwnerActions:

    def test_owner_submits_proof(self):
        authz.authorize(OWNER, authz.ORDER_SUBMIT_PROOF, ORDER)

    def test_stranger_cannot_submit_proof(self):
        with pytest.raises(AuthorizationError):
            authz.authorize(STRANGER, authz.ORDER_SUBMIT_PROOF, ORDER)

    def test_admin_cannot_submit_proof_for_customer(self):
        assert not authz.is_allowed(ADMIN, authz.ORDER_SUBMIT_PROOF, ORDER)

    def test_create_has_no_transaction_yet(self):
        authz.authorize(STRANGER, authz.ORDER_CREATE)

    def test_owner_or_admin_cancel(self):
        authz.authorize(OWNER, authz.ORDER_CANCEL, ORDER)
        authz.authorize(ADMIN, authz.ORDER_CANCEL, ORDER)
        assert not authz.is_allowed(STRANGER, authz.ORDER_CANCEL, ORDER)

    def test_owner_or_admin_needs_a_transaction_for_non_admins(self):
        assert not authz.is_allowed(OWNER, authz.ORDER_VIEW, None)

    def test_recipient_rows_use_owner_not_linked_account(self):
        authz.authorize(OWNER, authz.RECIPIENTS_MANAGE, RECIPIENT_ROW)
        assert not authz.is_allowed(RECIPIENT, authz.RECIPIENTS_MANAGE, RECIPIENT_ROW)


# =============================================================================
# PARTICIPANT ACTIONS
# =============================================================================


class TestParticipantActions:

    @pytest.mark.parametrize("caller", [OWNER, RECIPIENT, ADMIN])
    def test_participants_confirm_delivery(self, caller):
        authz.authorize(caller, authz.REMITTANCE_CONFIRM_DELIVERY, REMITTANCE)

    def test_stranger_cannot_view(self):
        with pytest.raises(AuthorizationError):
            authz.authorize(STRANGER, authz.REMITTANCE_VIEW, REMITTANCE)

    def test_recipient_cannot_cancel(self):
        assert not authz.is_allowed(RECIPIENT, authz.REMITTANCE_CANCEL, REMITTANCE)

    def test_only_sender_cancels_remittance(self):
        assert authz.is_allowed(OWNER, authz.REMITTANCE_CANCEL, REMITTANCE)
        assert not authz.is_allowed(ADMIN, authz.REMITTANCE_CANCEL, REMITTANCE)
        # orders stay cancellable by admins
        assert authz.is_allowed(ADMIN, authz.ORDER_CANCEL, ORDER)


# =============================================================================
# FAIL CLOSED
# =============================================================================


class TestFailClosed:

    def test_unknown_action_denied_even_for_admin(self):
        assert not authz.is_allowed(SUPER_ADMIN, "DROP_TABLES")

    def test_missing_caller_denied(self):
        with pytest.raises(AuthorizationError):
            authz.authorize(None, authz.ORDER_CREATE)

    def test_every_action_has_a_policy(self):
        actions = [
            value for name, value in vars(authz).items()
            if name.isupper() and isinstance(value, str) and not name.startswith(("POLICY_", "ROLE_"))
        ]
        assert set(actions) == set(authz.ACTION_POLICIES)

    def test_denial_is_logged(self, caplog):
        with caplog.at_level("WARNING", logger="papu.services.authorization_service"):
            assert not authz.is_allowed(STRANGER, authz.ORDER_VIEW, ORDER)
            with pytest.raises(AuthorizationError):
                authz.authorize(STRANGER, authz.ORDER_VIEW, ORDER)
        assert "Authorization denied" in caplog.text
