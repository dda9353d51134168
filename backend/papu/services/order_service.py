# Overview: Order orchestrator; drives order and payment state with the inventory ledger.

"""
Order Lifecycle (authoritative)

    create_order           status PENDING, payment PENDING (or PROOF_UPLOADED
                           when a proof is supplied), stock RESERVED
    submit_payment_proof   payment PENDING -> PROOF_UPLOADED
                           (re-reserves stock released by an earlier rejection)
    validate_payment       payment PROOF_UPLOADED -> VALIDATED,
                           status PENDING -> PROCESSING, reservation COMMITTED
    reject_payment         payment PROOF_UPLOADED -> REJECTED -> PENDING,
                           reservation RELEASED
    mark_shipped           PROCESSING -> SHIPPED
    confirm_delivery       SHIPPED -> DELIVERED
    complete_order         DELIVERED -> COMPLETED
    cancel_order           PENDING | PROCESSING -> CANCELLED,
                           RESERVED stock released, COMMITTED stock restocked

inventory_state records what the order holds in the ledger, so each
release / commit / restock is applied at most once.
"""

from __future__ import annotations

import math
from datetime import datetime

from flask import current_app

from ..errors import InventoryError, InvalidTransitionError, ValidationError
from ..extensions import db
from ..models import Combo, Order, OrderLine, Product, Recipient, User
from ..time_utils import utcnow
from . import authorization_service as authz
from . import inventory_service as ledger
from . import notification_service as notify
from .catalog_service import get_combo_price
from .history_service import FIELD_PAYMENT_STATUS, FIELD_STATUS, KIND_ORDER
from .pricing_service import calculate_order_totals, require_positive_int
from .sequence_service import next_order_number
from .shipping_service import calculate_shipping
from .state_machine import (
    ORDER_CANCELLED,
    ORDER_COMPLETED,
    ORDER_DELIVERED,
    ORDER_MACHINE,
    ORDER_PENDING,
    ORDER_PROCESSING,
    ORDER_SHIPPED,
    PAYMENT_MACHINE,
    PAYMENT_PENDING,
    PAYMENT_PROOF_UPLOADED,
    PAYMENT_REJECTED,
    PAYMENT_VALIDATED,
)
from .transition_service import (
    apply_transition,
    claim_transition,
    execute,
    load,
    load_for_update,
    record_initial_state,
    require_reason,
    validate_all,
)

INVENTORY_NONE = "NONE"
INVENTORY_RESERVED = "RESERVED"
INVENTORY_RELEASED = "RELEASED"
INVENTORY_COMMITTED = "COMMITTED"
INVENTORY_RESTOCKED = "RESTOCKED"

RECIPIENT_FIELDS = ("full_name", "phone", "province", "municipality", "address", "id_number")


def _status(order: Order, new_state: str, caller, reason: str | None = None) -> None:
    apply_transition(
        order, kind=KIND_ORDER, field=FIELD_STATUS, machine=ORDER_MACHINE,
        new_state=new_state, actor_user_id=caller.user_id, reason=reason,
    )


def _payment(order: Order, new_state: str, caller, reason: str | None = None) -> None:
    apply_transition(
        order, kind=KIND_ORDER, field=FIELD_PAYMENT_STATUS, machine=PAYMENT_MACHINE,
        new_state=new_state, actor_user_id=caller.user_id, reason=reason,
    )


def _notify_owner(order: Order, event: str, **context) -> None:
    owner = db.session.get(User, order.user_id)
    notify.enqueue(
        event,
        owner.phone if owner else None,
        transaction_kind=KIND_ORDER,
        transaction_id=order.id,
        number=order.order_number,
        total=notify.format_money(order.total_cents, order.currency_code),
        **context,
    )


def _notify_admin(order: Order, event: str, **context) -> None:
    notify.enqueue_admin(
        event,
        transaction_kind=KIND_ORDER,
        transaction_id=order.id,
        number=order.order_number,
        total=notify.format_money(order.total_cents, order.currency_code),
        **context,
    )


def _notify_low_stock(product_ids) -> None:
    for record in ledger.find_low_stock(product_ids):
        db.session.refresh(record)
        notify.enqueue_admin(
            notify.LOW_STOCK,
            product=record.product.name if record.product else record.product_id,
            available=record.available_quantity,
            threshold=record.min_stock_alert,
        )


# =============================================================================
# CREATE
# =============================================================================

def _price_lines(raw_lines) -> list[OrderLine]:
    if not raw_lines:
        raise ValidationError("An order needs at least one line")

    lines: list[OrderLine] = []
    for raw in raw_lines:
        item_type = raw.get("item_type") or ledger.ITEM_TYPE_PRODUCT
        quantity = require_positive_int(raw.get("quantity"), field="quantity")

        if item_type == ledger.ITEM_TYPE_PRODUCT:
            product = db.session.get(Product, raw.get("product_id"))
            if product is None or not product.is_active:
                raise ValidationError("Product not available", details={"product_id": raw.get("product_id")})
            lines.append(OrderLine(
                item_type=item_type, product_id=product.id, item_name=product.name,
                quantity=quantity, unit_price_cents=product.price_cents,
                line_total_cents=product.price_cents * quantity,
            ))
        elif item_type == ledger.ITEM_TYPE_COMBO:
            combo = db.session.get(Combo, raw.get("combo_id"))
            if combo is None or not combo.is_active or not combo.items:
                raise ValidationError("Combo not available", details={"combo_id": raw.get("combo_id")})
            unit_price = get_combo_price(combo)["final_cents"]
            lines.append(OrderLine(
                item_type=item_type, combo_id=combo.id, item_name=combo.name,
                quantity=quantity, unit_price_cents=unit_price,
                line_total_cents=unit_price * quantity,
            ))
        else:
            raise ValidationError("Unknown item_type", details={"item_type": item_type})
    return lines


def _recipient_snapshot(caller, recipient_id, recipient_info) -> dict:
    if recipient_id is not None:
        recipient = db.session.get(Recipient, recipient_id)
        if recipient is None or not recipient.is_active:
            raise ValidationError("Recipient not found", details={"recipient_id": recipient_id})
        authz.authorize(caller, authz.RECIPIENTS_MANAGE, recipient)
        return recipient.snapshot()

    if not isinstance(recipient_info, dict):
        raise ValidationError("recipient_id or recipient_info is required")
    snapshot = {field: recipient_info.get(field) for field in RECIPIENT_FIELDS}
    if not snapshot["full_name"] or not snapshot["phone"]:
        raise ValidationError("recipient full_name and phone are required")
    return snapshot


def create_order(
    caller,
    lines: list[dict],
    *,
    recipient_id: int | None = None,
    recipient_info: dict | None = None,
    delivery_instructions: str | None = None,
    payment_method: str = "ZELLE",
    payment_reference: str | None = None,
    payment_proof_ref: str | None = None,
) -> Order:
    """
    Create an order owned by the caller and reserve its stock.

    lines: [{"item_type": "PRODUCT"|"COMBO", "product_id"|"combo_id": int, "quantity": int}]
    Prices are read from the catalog and shipping from the zone serving the
    recipient's province / municipality; the client supplies neither.
    Any shortage aborts creation with no partial reservation.
    """
    authz.authorize(caller, authz.ORDER_CREATE)

    def _op():
        order_lines = _price_lines(lines)
        snapshot = _recipient_snapshot(caller, recipient_id, recipient_info)
        shipping = calculate_shipping(snapshot.get("province"), snapshot.get("municipality"))
        totals = calculate_order_totals([line.line_total_cents for line in order_lines], shipping.cost_cents)

        order = Order(
            order_number=next_order_number(),
            user_id=caller.user_id,
            status=ORDER_MACHINE.initial,
            payment_status=PAYMENT_MACHINE.initial,
            inventory_state=INVENTORY_NONE,
            currency_code=current_app.config.get("ORDER_CURRENCY", "USD"),
            shipping_zone_id=shipping.zone_id,
            recipient_info=snapshot,
            delivery_instructions=delivery_instructions,
            payment_method=payment_method or "ZELLE",
            payment_reference=payment_reference,
            created_at=utcnow(),
            **totals,
        )
        db.session.add(order)
        db.session.flush()

        for line in order_lines:
            line.order_id = order.id
            db.session.add(line)
        db.session.flush()

        ledger.reserve_lines(order_lines, order_id=order.id, actor_user_id=caller.user_id)
        order.inventory_state = INVENTORY_RESERVED

        record_initial_state(order, kind=KIND_ORDER, field=FIELD_STATUS, actor_user_id=caller.user_id)
        record_initial_state(order, kind=KIND_ORDER, field=FIELD_PAYMENT_STATUS, actor_user_id=caller.user_id)

        owner = db.session.get(User, caller.user_id)
        _notify_admin(order, notify.ORDER_CREATED, customer=owner.full_name if owner else caller.user_id)

        if payment_proof_ref:
            order.payment_proof_ref = payment_proof_ref
            order.payment_proof_uploaded_at = utcnow()
            _payment(order, PAYMENT_PROOF_UPLOADED, caller)
            _notify_admin(order, notify.ORDER_PROOF_SUBMITTED, reference=payment_reference)
        return order

    return execute(_op)


# =============================================================================
# PAYMENT
# =============================================================================

def submit_payment_proof(caller, order_id: int, proof_ref: str, *, payment_reference: str | None = None) -> Order:
    if not isinstance(proof_ref, str) or not proof_ref.strip():
        raise ValidationError("payment proof is required")

    def _op():
        order = load_for_update(Order, order_id, "Order")
        authz.authorize(caller, authz.ORDER_SUBMIT_PROOF, order)
        if order.status != ORDER_PENDING:
            raise InvalidTransitionError(
                "Payment proof can only be submitted while the order is pending",
                details={"current": order.status},
            )
        validate_all((PAYMENT_MACHINE, order.payment_status, PAYMENT_PROOF_UPLOADED))

        order.payment_proof_ref = proof_ref.strip()
        if payment_reference:
            order.payment_reference = payment_reference
        order.payment_proof_uploaded_at = utcnow()
        order.rejection_reason = None
        _payment(order, PAYMENT_PROOF_UPLOADED, caller)
        claim_transition()

        if order.inventory_state == INVENTORY_RELEASED:
            ledger.reserve_lines(order.lines, order_id=order.id, actor_user_id=caller.user_id)
            order.inventory_state = INVENTORY_RESERVED

        _notify_admin(order, notify.ORDER_PROOF_SUBMITTED, reference=order.payment_reference)
        return order

    return execute(_op)


def validate_payment(caller, order_id: int) -> Order:
    """Accept the payment proof: commit reserved stock and start processing."""
    def _op():
        order = load_for_update(Order, order_id, "Order")
        authz.authorize(caller, authz.ORDER_VALIDATE_PAYMENT, order)
        validate_all(
            (PAYMENT_MACHINE, order.payment_status, PAYMENT_VALIDATED),
            (ORDER_MACHINE, order.status, ORDER_PROCESSING),
        )
        if order.inventory_state != INVENTORY_RESERVED:
            raise InventoryError(
                "Order holds no reservation to commit",
                details={"order_id": order.id, "inventory_state": order.inventory_state},
            )

        now = utcnow()
        order.validated_at = now
        order.validated_by_user_id = caller.user_id
        order.processing_started_at = now
        _payment(order, PAYMENT_VALIDATED, caller)
        _status(order, ORDER_PROCESSING, caller)
        claim_transition()

        pairs = ledger.commit_lines(order.lines, order_id=order.id, actor_user_id=caller.user_id)
        order.inventory_state = INVENTORY_COMMITTED

        _notify_owner(order, notify.ORDER_PAYMENT_VALIDATED)
        _notify_low_stock([product_id for product_id, _ in pairs])
        return order

    return execute(_op)


def reject_payment(caller, order_id: int, reason: str) -> Order:
    """Reject the proof; the payment returns to PENDING and the reservation is released."""
    reason = require_reason(reason)

    def _op():
        order = load_for_update(Order, order_id, "Order")
        authz.authorize(caller, authz.ORDER_REJECT_PAYMENT, order)
        if order.status != ORDER_PENDING:
            raise InvalidTransitionError(
                "Payment can only be rejected while the order is pending",
                details={"current": order.status},
            )
        validate_all(
            (PAYMENT_MACHINE, order.payment_status, PAYMENT_REJECTED),
            (PAYMENT_MACHINE, PAYMENT_REJECTED, PAYMENT_PENDING),
        )

        order.rejection_reason = reason
        order.rejected_by_user_id = caller.user_id
        _payment(order, PAYMENT_REJECTED, caller, reason=reason)
        _payment(order, PAYMENT_PENDING, caller)
        claim_transition()

        if order.inventory_state == INVENTORY_RESERVED:
            ledger.release_lines(order.lines, order_id=order.id, actor_user_id=caller.user_id)
            order.inventory_state = INVENTORY_RELEASED

        _notify_owner(order, notify.ORDER_PAYMENT_REJECTED, reason=reason)
        return order

    return execute(_op)


# =============================================================================
# FULFILMENT
# =============================================================================

def mark_shipped(caller, order_id: int, *, tracking_info: str | None = None) -> Order:
    def _op():
        order = load_for_update(Order, order_id, "Order")
        authz.authorize(caller, authz.ORDER_SHIP, order)
        validate_all((ORDER_MACHINE, order.status, ORDER_SHIPPED))

        order.shipped_at = utcnow()
        order.shipped_by_user_id = caller.user_id
        if tracking_info:
            order.tracking_info = tracking_info.strip()
        _status(order, ORDER_SHIPPED, caller)
        _notify_owner(order, notify.ORDER_SHIPPED, tracking=order.tracking_info)
        return order

    return execute(_op)


def confirm_delivery(caller, order_id: int, *, delivery_proof_ref: str | None = None) -> Order:
    def _op():
        order = load_for_update(Order, order_id, "Order")
        authz.authorize(caller, authz.ORDER_CONFIRM_DELIVERY, order)
        validate_all((ORDER_MACHINE, order.status, ORDER_DELIVERED))

        order.delivered_at = utcnow()
        order.delivered_by_user_id = caller.user_id
        if delivery_proof_ref:
            order.delivery_proof_ref = delivery_proof_ref
        _status(order, ORDER_DELIVERED, caller)
        _notify_owner(order, notify.ORDER_DELIVERED)
        return order

    return execute(_op)


def complete_order(caller, order_id: int) -> Order:
    def _op():
        order = load_for_update(Order, order_id, "Order")
        authz.authorize(caller, authz.ORDER_COMPLETE, order)
        validate_all((ORDER_MACHINE, order.status, ORDER_COMPLETED))

        order.completed_at = utcnow()
        order.completed_by_user_id = caller.user_id
        _status(order, ORDER_COMPLETED, caller)
        _notify_owner(order, notify.ORDER_COMPLETED)
        return order

    return execute(_op)


def cancel_order(caller, order_id: int, reason: str) -> Order:
    """
    Cancel a pending or processing order.

    A live reservation is released; stock already committed by payment
    validation is put back on hand.
    """
    reason = require_reason(reason)

    def _op():
        order = load_for_update(Order, order_id, "Order")
        authz.authorize(caller, authz.ORDER_CANCEL, order)
        validate_all((ORDER_MACHINE, order.status, ORDER_CANCELLED))

        order.cancelled_at = utcnow()
        order.cancelled_by_user_id = caller.user_id
        order.cancellation_reason = reason
        _status(order, ORDER_CANCELLED, caller, reason=reason)
        claim_transition()

        if order.inventory_state == INVENTORY_RESERVED:
            ledger.release_lines(order.lines, order_id=order.id, actor_user_id=caller.user_id)
            order.inventory_state = INVENTORY_RELEASED
        elif order.inventory_state == INVENTORY_COMMITTED:
            ledger.restock_lines(order.lines, order_id=order.id, actor_user_id=caller.user_id)
            order.inventory_state = INVENTORY_RESTOCKED

        _notify_owner(order, notify.ORDER_CANCELLED, reason=reason)
        return order

    return execute(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_order(caller, order_id: int) -> Order:
    order = load(Order, order_id, "Order")
    authz.authorize(caller, authz.ORDER_VIEW, order)
    return order


def list_orders(
    caller,
    *,
    status: str | None = None,
    payment_status: str | None = None,
    all_users: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> list[Order]:
    """Caller's own orders; admins may pass all_users=True."""
    query = db.session.query(Order)
    if all_users:
        authz.authorize(caller, authz.ORDER_LIST_ALL)
    else:
        query = query.filter(Order.user_id == caller.user_id)
    if status:
        query = query.filter(Order.status == status)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()


def get_days_in_processing(order: Order, now: datetime | None = None) -> int | None:
    """Whole days (rounded up) since processing started; None unless PROCESSING."""
    if order.status != ORDER_PROCESSING or order.processing_started_at is None:
        return None
    now = now or utcnow()
    elapsed = abs((now - order.processing_started_at).total_seconds())
    return math.ceil(elapsed / 86400)
