# Overview: Service-layer operations for the inventory ledger; conditional stock updates.

"""
Inventory Ledger Invariants (authoritative)

Stock model:
- One InventoryRecord per product: quantity (on hand) and reserved_quantity.
- available = quantity - reserved_quantity; never stored.
- 0 <= reserved_quantity <= quantity at all times (also a DB check).

Operations (all quantities strictly positive):
- reserve:  reserved += n  iff available >= n            else InsufficientStockError
- release:  reserved -= n  iff reserved >= n             else InventoryError
- commit:   quantity -= n, reserved -= n  iff reserved >= n  else InventoryError
- restock:  quantity += n  (undo of a commit on cancellation)
- receive:  quantity += n  (new stock arrives)
- adjust:   quantity += delta  iff result stays >= reserved

Concurrency:
- Every mutation is ONE conditional UPDATE (check-and-set in the WHERE
  clause). rowcount == 0 means the precondition failed; there is no
  read-then-write window.
- Nothing here commits. The orchestrator's unit of work commits or rolls
  back everything, including these UPDATEs.

Combos:
- A COMBO line expands to its constituent products (combo qty x item qty).
- Expansion is batched (one query for all combos) and returned in ascending
  product_id order so concurrent reservations lock rows in the same order.

Audit:
- Every mutation appends an InventoryMovement row in the same transaction.
"""

from __future__ import annotations

import logging

from sqlalchemy import update

from ..errors import InsufficientStockError, InventoryError, NotFoundError, ValidationError
from ..extensions import db
from ..models import ComboItem, InventoryMovement, InventoryRecord, Product
from ..time_utils import utcnow
from .authorization_service import INVENTORY_MANAGE, authorize
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)

ITEM_TYPE_PRODUCT = "PRODUCT"
ITEM_TYPE_COMBO = "COMBO"

MOVEMENT_RECEIVED = "RECEIVED"
MOVEMENT_ADJUSTED = "ADJUSTED"
MOVEMENT_RESERVED = "RESERVED"
MOVEMENT_RELEASED = "RELEASED"
MOVEMENT_COMMITTED = "COMMITTED"
MOVEMENT_RESTOCKED = "RESTOCKED"

DEFAULT_MIN_STOCK_ALERT = 10


def _require_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", details={"quantity": quantity})
    return quantity


def get_inventory_record(product_id: int) -> InventoryRecord:
    record = db.session.query(InventoryRecord).filter_by(product_id=product_id).first()
    if record is None:
        raise NotFoundError("Inventory record not found", details={"product_id": product_id})
    return record


def ensure_inventory_record(product_id: int, *, min_stock_alert: int = DEFAULT_MIN_STOCK_ALERT) -> InventoryRecord:
    """Return the product's record, creating an empty one if missing. Does not commit."""
    record = db.session.query(InventoryRecord).filter_by(product_id=product_id).first()
    if record is None:
        record = InventoryRecord(
            product_id=product_id,
            quantity=0,
            reserved_quantity=0,
            min_stock_alert=min_stock_alert,
        )
        db.session.add(record)
        db.session.flush()
    return record


def _record_id(product_id: int) -> int:
    record_id = (
        db.session.query(InventoryRecord.id)
        .filter(InventoryRecord.product_id == product_id)
        .scalar()
    )
    if record_id is None:
        raise NotFoundError("Inventory record not found", details={"product_id": product_id})
    return record_id


def _log_movement(
    product_id: int,
    movement_type: str,
    quantity_change: int,
    *,
    order_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> InventoryMovement:
    movement = InventoryMovement(
        inventory_record_id=_record_id(product_id),
        product_id=product_id,
        movement_type=movement_type,
        quantity_change=quantity_change,
        order_id=order_id,
        actor_user_id=actor_user_id,
        note=note,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    return movement


def _conditional_update(product_id: int, condition, values: dict) -> bool:
    stmt = (
        update(InventoryRecord)
        .where(InventoryRecord.product_id == product_id)
        .where(condition)
        .values(updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return bool(result.rowcount)


def _stock_snapshot(product_id: int) -> tuple[int, int]:
    row = (
        db.session.query(InventoryRecord.quantity, InventoryRecord.reserved_quantity)
        .filter(InventoryRecord.product_id == product_id)
        .first()
    )
    if row is None:
        raise NotFoundError("Inventory record not found", details={"product_id": product_id})
    return int(row[0]), int(row[1])


# =============================================================================
# LEDGER PRIMITIVES (no commit)
# =============================================================================

def reserve(product_id: int, quantity: int, *, order_id: int | None = None, actor_user_id: int | None = None) -> None:
    """Hold quantity for an order. Fails with no change if available < quantity."""
    _require_quantity(quantity)
    ok = _conditional_update(
        product_id,
        InventoryRecord.quantity - InventoryRecord.reserved_quantity >= quantity,
        {"reserved_quantity": InventoryRecord.reserved_quantity + quantity},
    )
    if not ok:
        on_hand, reserved = _stock_snapshot(product_id)
        raise InsufficientStockError(
            "Insufficient stock",
            details={"product_id": product_id, "requested": quantity, "available": on_hand - reserved},
        )
    _log_movement(product_id, MOVEMENT_RESERVED, -quantity, order_id=order_id, actor_user_id=actor_user_id)


def release(product_id: int, quantity: int, *, order_id: int | None = None, actor_user_id: int | None = None) -> None:
    _require_quantity(quantity)
    ok = _conditional_update(
        product_id,
        InventoryRecord.reserved_quantity >= quantity,
        {"reserved_quantity": InventoryRecord.reserved_quantity - quantity},
    )
    if not ok:
        _, reserved = _stock_snapshot(product_id)
        raise InventoryError(
            "Cannot release more than is reserved",
            details={"product_id": product_id, "requested": quantity, "reserved": reserved},
        )
    _log_movement(product_id, MOVEMENT_RELEASED, quantity, order_id=order_id, actor_user_id=actor_user_id)


def commit(product_id: int, quantity: int, *, order_id: int | None = None, actor_user_id: int | None = None) -> None:
    """Turn a reservation into a permanent decrement of on-hand stock."""
    _require_quantity(quantity)
    ok = _conditional_update(
        product_id,
        InventoryRecord.reserved_quantity >= quantity,
        {
            "quantity": InventoryRecord.quantity - quantity,
            "reserved_quantity": InventoryRecord.reserved_quantity - quantity,
        },
    )
    if not ok:
        _, reserved = _stock_snapshot(product_id)
        raise InventoryError(
            "Cannot commit more than is reserved",
            details={"product_id": product_id, "requested": quantity, "reserved": reserved},
        )
    # Available is unchanged by a commit; on-hand drops.
    _log_movement(product_id, MOVEMENT_COMMITTED, 0, order_id=order_id, actor_user_id=actor_user_id,
                  note=f"on_hand -{quantity}")


def restock(product_id: int, quantity: int, *, order_id: int | None = None, actor_user_id: int | None = None) -> None:
    _require_quantity(quantity)
    ok = _conditional_update(
        product_id,
        InventoryRecord.quantity >= 0,
        {"quantity": InventoryRecord.quantity + quantity},
    )
    if not ok:
        raise NotFoundError("Inventory record not found", details={"product_id": product_id})
    _log_movement(product_id, MOVEMENT_RESTOCKED, quantity, order_id=order_id, actor_user_id=actor_user_id)


def receive(product_id: int, quantity: int, *, actor_user_id: int | None = None, note: str | None = None) -> None:
    _require_quantity(quantity)
    ensure_inventory_record(product_id)
    _conditional_update(
        product_id,
        InventoryRecord.quantity >= 0,
        {"quantity": InventoryRecord.quantity + quantity},
    )
    _log_movement(product_id, MOVEMENT_RECEIVED, quantity, actor_user_id=actor_user_id, note=note)


def adjust(product_id: int, delta: int, *, actor_user_id: int | None = None, note: str | None = None) -> None:
    """Signed correction of on-hand stock. May never drop below what is reserved."""
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("delta must be a non-zero integer", details={"delta": delta})
    ok = _conditional_update(
        product_id,
        InventoryRecord.quantity + delta >= InventoryRecord.reserved_quantity,
        {"quantity": InventoryRecord.quantity + delta},
    )
    if not ok:
        on_hand, reserved = _stock_snapshot(product_id)
        raise ValidationError(
            "Adjustment would drop on-hand stock below reserved quantity",
            details={"product_id": product_id, "delta": delta, "quantity": on_hand, "reserved": reserved},
        )
    _log_movement(product_id, MOVEMENT_ADJUSTED, delta, actor_user_id=actor_user_id, note=note)


# =============================================================================
# LINE EXPANSION
# =============================================================================

def _line_value(line, key):
    if isinstance(line, dict):
        return line.get(key)
    return getattr(line, key, None)


def expand_lines(lines) -> list[tuple[int, int]]:
    """
    Resolve order lines to (product_id, quantity) pairs.

    Accepts OrderLine rows or dicts with item_type, product_id, combo_id,
    quantity. Quantities for the same product are summed. Result is sorted
    by product_id.
    """
    totals: dict[int, int] = {}
    combo_quantities: dict[int, int] = {}

    for line in lines:
        item_type = _line_value(line, "item_type") or ITEM_TYPE_PRODUCT
        quantity = _require_quantity(_line_value(line, "quantity"))
        if item_type == ITEM_TYPE_PRODUCT:
            product_id = _line_value(line, "product_id")
            if product_id is None:
                raise ValidationError("product_id is required for PRODUCT lines")
            totals[product_id] = totals.get(product_id, 0) + quantity
        elif item_type == ITEM_TYPE_COMBO:
            combo_id = _line_value(line, "combo_id")
            if combo_id is None:
                raise ValidationError("combo_id is required for COMBO lines")
            combo_quantities[combo_id] = combo_quantities.get(combo_id, 0) + quantity
        else:
            raise ValidationError("Unknown item_type", details={"item_type": item_type})

    if combo_quantities:
        items = (
            db.session.query(ComboItem)
            .filter(ComboItem.combo_id.in_(list(combo_quantities.keys())))
            .all()
        )
        seen_combos = {item.combo_id for item in items}
        missing = sorted(set(combo_quantities) - seen_combos)
        if missing:
            raise NotFoundError("Combo not found or has no items", details={"combo_ids": missing})
        for item in items:
            qty = combo_quantities[item.combo_id] * item.quantity
            totals[item.product_id] = totals.get(item.product_id, 0) + qty

    return sorted(totals.items())


def _apply_to_lines(operation, lines, *, order_id=None, actor_user_id=None) -> list[tuple[int, int]]:
    pairs = expand_lines(lines)
    for product_id, quantity in pairs:
        operation(product_id, quantity, order_id=order_id, actor_user_id=actor_user_id)
    return pairs


def reserve_lines(lines, *, order_id=None, actor_user_id=None):
    """Reserve every constituent; the first shortage aborts the whole unit of work."""
    return _apply_to_lines(reserve, lines, order_id=order_id, actor_user_id=actor_user_id)


def release_lines(lines, *, order_id=None, actor_user_id=None):
    return _apply_to_lines(release, lines, order_id=order_id, actor_user_id=actor_user_id)


def commit_lines(lines, *, order_id=None, actor_user_id=None):
    return _apply_to_lines(commit, lines, order_id=order_id, actor_user_id=actor_user_id)


def restock_lines(lines, *, order_id=None, actor_user_id=None):
    return _apply_to_lines(restock, lines, order_id=order_id, actor_user_id=actor_user_id)


# =============================================================================
# QUERIES
# =============================================================================

def find_low_stock(product_ids=None) -> list[InventoryRecord]:
    """Records whose available quantity is at or below their alert threshold."""
    query = db.session.query(InventoryRecord).filter(
        InventoryRecord.quantity - InventoryRecord.reserved_quantity <= InventoryRecord.min_stock_alert
    )
    if product_ids is not None:
        ids = list(product_ids)
        if not ids:
            return []
        query = query.filter(InventoryRecord.product_id.in_(ids))
    return query.order_by(InventoryRecord.product_id.asc()).all()


def list_inventory(*, low_stock_only: bool = False) -> list[InventoryRecord]:
    if low_stock_only:
        return find_low_stock()
    return db.session.query(InventoryRecord).order_by(InventoryRecord.product_id.asc()).all()


def list_movements(product_id: int, *, limit: int = 100) -> list[InventoryMovement]:
    return (
        db.session.query(InventoryMovement)
        .filter(InventoryMovement.product_id == product_id)
        .order_by(InventoryMovement.occurred_at.desc(), InventoryMovement.id.desc())
        .limit(limit)
        .all()
    )


# =============================================================================
# ADMIN OPERATIONS (own unit of work)
# =============================================================================

def _require_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def receive_stock(caller, product_id: int, quantity: int, *, note: str | None = None) -> InventoryRecord:
    authorize(caller, INVENTORY_MANAGE)

    def _op():
        _require_product(product_id)
        receive(product_id, quantity, actor_user_id=caller.user_id, note=note)
        db.session.commit()

    run_with_retry(_op)
    logger.info("Received stock: product=%s qty=%s by user=%s", product_id, quantity, caller.user_id)
    return db.session.query(InventoryRecord).populate_existing().filter_by(product_id=product_id).one()


def adjust_stock(caller, product_id: int, delta: int, *, note: str | None = None) -> InventoryRecord:
    authorize(caller, INVENTORY_MANAGE)

    def _op():
        _require_product(product_id)
        get_inventory_record(product_id)
        adjust(product_id, delta, actor_user_id=caller.user_id, note=note)
        db.session.commit()

    run_with_retry(_op)
    logger.info("Adjusted stock: product=%s delta=%s by user=%s", product_id, delta, caller.user_id)
    return db.session.query(InventoryRecord).populate_existing().filter_by(product_id=product_id).one()


def set_min_stock_alert(caller, product_id: int, threshold: int) -> InventoryRecord:
    authorize(caller, INVENTORY_MANAGE)
    if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 0:
        raise ValidationError("min_stock_alert must be a non-negative integer")

    def _op():
        record = get_inventory_record(product_id)
        record.min_stock_alert = threshold
        db.session.commit()
        return record

    return run_with_retry(_op)
