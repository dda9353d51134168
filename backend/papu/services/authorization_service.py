# Overview: Role checks gating which transaction operations a caller may invoke.

"""
Authorization Boundary

WHY: One explicit authorize(caller, action, transaction) replaces ad-hoc
"is this user an admin" checks scattered across handlers. It is pure: it
reads only the caller and the already-loaded transaction, so it is testable
without a database or request context.

This check is always performed, even when the data store enforces its own
row-level policies.

DESIGN PRINCIPLES:
- Fail closed: unknown actions and inactive callers are denied
- The acting user is an explicit argument, never an ambient global
- Denials are logged; grants are not
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import AuthorizationError
from ..models.auth import ROLE_ADMIN, ROLE_SUPER_ADMIN, ROLE_USER

logger = logging.getLogger(__name__)


# =============================================================================
# ACTIONS
# =============================================================================

ORDER_CREATE = "ORDER_CREATE"
ORDER_VIEW = "ORDER_VIEW"
ORDER_LIST_ALL = "ORDER_LIST_ALL"
ORDER_SUBMIT_PROOF = "ORDER_SUBMIT_PROOF"
ORDER_VALIDATE_PAYMENT = "ORDER_VALIDATE_PAYMENT"
ORDER_REJECT_PAYMENT = "ORDER_REJECT_PAYMENT"
ORDER_SHIP = "ORDER_SHIP"
ORDER_CONFIRM_DELIVERY = "ORDER_CONFIRM_DELIVERY"
ORDER_COMPLETE = "ORDER_COMPLETE"
ORDER_CANCEL = "ORDER_CANCEL"

REMITTANCE_QUOTE = "REMITTANCE_QUOTE"
REMITTANCE_CREATE = "REMITTANCE_CREATE"
REMITTANCE_VIEW = "REMITTANCE_VIEW"
REMITTANCE_LIST_ALL = "REMITTANCE_LIST_ALL"
REMITTANCE_SUBMIT_PROOF = "REMITTANCE_SUBMIT_PROOF"
REMITTANCE_VALIDATE_PAYMENT = "REMITTANCE_VALIDATE_PAYMENT"
REMITTANCE_REJECT_PAYMENT = "REMITTANCE_REJECT_PAYMENT"
REMITTANCE_START_PROCESSING = "REMITTANCE_START_PROCESSING"
REMITTANCE_CONFIRM_DELIVERY = "REMITTANCE_CONFIRM_DELIVERY"
REMITTANCE_COMPLETE = "REMITTANCE_COMPLETE"
REMITTANCE_CANCEL = "REMITTANCE_CANCEL"
REMITTANCE_VIEW_STATS = "REMITTANCE_VIEW_STATS"

REMITTANCE_TYPES_MANAGE = "REMITTANCE_TYPES_MANAGE"
SHIPPING_ZONES_MANAGE = "SHIPPING_ZONES_MANAGE"
INVENTORY_MANAGE = "INVENTORY_MANAGE"
CATALOG_MANAGE = "CATALOG_MANAGE"
NOTIFICATIONS_MANAGE = "NOTIFICATIONS_MANAGE"
RECIPIENTS_MANAGE = "RECIPIENTS_MANAGE"


# =============================================================================
# POLICIES
# =============================================================================

POLICY_OWNER = "OWNER"
POLICY_ADMIN = "ADMIN"
POLICY_OWNER_OR_ADMIN = "OWNER_OR_ADMIN"
POLICY_PARTICIPANT_OR_ADMIN = "PARTICIPANT_OR_ADMIN"

ACTION_POLICIES = {
    ORDER_CREATE: POLICY_OWNER,
    ORDER_SUBMIT_PROOF: POLICY_OWNER,
    ORDER_VIEW: POLICY_OWNER_OR_ADMIN,
    ORDER_CANCEL: POLICY_OWNER_OR_ADMIN,
    ORDER_LIST_ALL: POLICY_ADMIN,
    ORDER_VALIDATE_PAYMENT: POLICY_ADMIN,
    ORDER_REJECT_PAYMENT: POLICY_ADMIN,
    ORDER_SHIP: POLICY_ADMIN,
    ORDER_CONFIRM_DELIVERY: POLICY_ADMIN,
    ORDER_COMPLETE: POLICY_ADMIN,

    REMITTANCE_QUOTE: POLICY_OWNER,
    REMITTANCE_CREATE: POLICY_OWNER,
    REMITTANCE_SUBMIT_PROOF: POLICY_OWNER,
    REMITTANCE_VIEW: POLICY_PARTICIPANT_OR_ADMIN,
    REMITTANCE_CANCEL: POLICY_OWNER,
    REMITTANCE_CONFIRM_DELIVERY: POLICY_PARTICIPANT_OR_ADMIN,
    REMITTANCE_LIST_ALL: POLICY_ADMIN,
    REMITTANCE_VALIDATE_PAYMENT: POLICY_ADMIN,
    REMITTANCE_REJECT_PAYMENT: POLICY_ADMIN,
    REMITTANCE_START_PROCESSING: POLICY_ADMIN,
    REMITTANCE_COMPLETE: POLICY_ADMIN,
    REMITTANCE_VIEW_STATS: POLICY_ADMIN,

    REMITTANCE_TYPES_MANAGE: POLICY_ADMIN,
    SHIPPING_ZONES_MANAGE: POLICY_ADMIN,
    INVENTORY_MANAGE: POLICY_ADMIN,
    CATALOG_MANAGE: POLICY_ADMIN,
    NOTIFICATIONS_MANAGE: POLICY_ADMIN,
    RECIPIENTS_MANAGE: POLICY_OWNER,
}


@dataclass(frozen=True)
class Caller:
    """The acting user, passed explicitly into every operation."""
    user_id: int
    role: str = ROLE_USER
    is_active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.role in (ROLE_ADMIN, ROLE_SUPER_ADMIN)

    @classmethod
    def from_user(cls, user) -> "Caller":
        return cls(user_id=user.id, role=user.role, is_active=bool(user.is_active))


def _is_owner(caller: Caller, transaction) -> bool:
    # With no transaction yet (create), the caller becomes the owner.
    if transaction is None:
        return True
    # Recipients carry owner_user_id; their user_id is the linked account.
    if hasattr(transaction, "owner_user_id"):
        owner_id = transaction.owner_user_id
    else:
        owner_id = getattr(transaction, "user_id", None)
    return owner_id is not None and owner_id == caller.user_id


def _is_recipient(caller: Caller, transaction) -> bool:
    recipient_user_id = getattr(transaction, "recipient_user_id", None)
    return recipient_user_id is not None and recipient_user_id == caller.user_id


def is_allowed(caller: Caller | None, action: str, transaction=None) -> bool:
    if caller is None or not caller.is_active:
        return False

    policy = ACTION_POLICIES.get(action)
    if policy is None:
        return False

    if policy == POLICY_ADMIN:
        return caller.is_admin
    if policy == POLICY_OWNER:
        return _is_owner(caller, transaction)
    if policy == POLICY_OWNER_OR_ADMIN:
        return caller.is_admin or (transaction is not None and _is_owner(caller, transaction))
    if policy == POLICY_PARTICIPANT_OR_ADMIN:
        if caller.is_admin:
            return True
        if transaction is None:
            return False
        return _is_owner(caller, transaction) or _is_recipient(caller, transaction)
    return False


def authorize(caller: Caller | None, action: str, transaction=None) -> None:
    """
    Raise AuthorizationError unless caller may perform action on transaction.

    Args:
        caller: Acting user (explicit, never read from a request global)
        action: One of the action constants above
        transaction: Loaded Order/Remittance/Recipient, or None for creation
                     and collection-level actions
    """
    if is_allowed(caller, action, transaction):
        return

    logger.warning(
        "Authorization denied: user=%s role=%s action=%s target=%s:%s",
        getattr(caller, "user_id", None),
        getattr(caller, "role", None),
        action,
        type(transaction).__name__ if transaction is not None else None,
        getattr(transaction, "id", None),
    )
    raise AuthorizationError(
        "Not allowed to perform this action",
        details={"action": action, "required_policy": ACTION_POLICIES.get(action)},
    )
