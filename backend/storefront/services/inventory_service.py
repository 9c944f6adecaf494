# Overview: Service-layer operations for inventory; stock counters, derived alerts and the movement log.

"""
Storefront Inventory Invariants (authoritative)

Stock model:
- One Inventory row per (product, variant-or-null).
- current_stock and reserved_stock are never negative, and reserved_stock
  never exceeds current_stock, so available_stock = current - reserved >= 0.
- available_stock and the alert flags are derived by recompute_derived() and
  written in the same UPDATE as the counters. Nothing else writes them.

Alerts:
- out_of_stock: available_stock <= 0
- low_stock:    0 < available_stock <= reorder_point
- over_stock:   current_stock > max_stock

Movements:
- IN          current += qty, total_purchased += qty, last_restocked = now
- OUT         current -= qty, total_sold += qty
- RESERVED    reserved += qty, rejected when qty > available (nothing mutated)
- UNRESERVED  reserved -= qty
- ADJUSTMENT  current := qty
- RETURN      current += qty

Concurrency:
- A movement reads the row with a plain SELECT, computes the next levels,
  then writes them with UPDATE ... WHERE id = :id AND version_id = :read_version
  (plus available_stock >= :qty for RESERVED). Zero matched rows means a
  concurrent writer won; the movement re-reads and tries again.
- The InventoryMovement row is inserted in the same transaction as the
  counter update. Movements are never updated or deleted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import case, func, select

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Inventory, InventoryMovement, Product, ProductVariant
from storefront.money import to_decimal
from storefront.time_utils import to_utc_z, utcnow
from .concurrency import LostUpdateError, guarded_update

logger = logging.getLogger(__name__)

MAX_CAS_ATTEMPTS = 5

DEFAULT_REORDER_POINT = 10
DEFAULT_MAX_STOCK = 1000


class MovementType(str, Enum):
    IN = "IN"
    OUT = "OUT"
    RESERVED = "RESERVED"
    UNRESERVED = "UNRESERVED"
    ADJUSTMENT = "ADJUSTMENT"
    RETURN = "RETURN"

    @classmethod
    def parse(cls, value) -> "MovementType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise ValidationError(f"type must be one of: {allowed}")


@dataclass(frozen=True)
class StockLevels:
    current_stock: int
    reserved_stock: int
    available_stock: int
    is_low_stock: bool
    is_out_of_stock: bool
    is_over_stock: bool

    def as_values(self) -> dict:
        return {
            "current_stock": self.current_stock,
            "reserved_stock": self.reserved_stock,
            "available_stock": self.available_stock,
            "is_low_stock": self.is_low_stock,
            "is_out_of_stock": self.is_out_of_stock,
            "is_over_stock": self.is_over_stock,
        }


# =============================================================================
# PURE COMPUTATION
# =============================================================================

def recompute_derived(current_stock: int, reserved_stock: int, reorder_point: int, max_stock: int) -> StockLevels:
    """Clamp counters and derive availability and alerts. No I/O."""
    current = max(0, int(current_stock))
    reserved = min(max(0, int(reserved_stock)), current)
    available = current - reserved

    return StockLevels(
        current_stock=current,
        reserved_stock=reserved,
        available_stock=available,
        is_low_stock=0 < available <= reorder_point,
        is_out_of_stock=available <= 0,
        is_over_stock=current > max_stock,
    )


def next_levels(row, movement_type: MovementType, quantity: int) -> StockLevels:
    """
    Levels after applying one movement to a row snapshot.

    row needs current_stock, reserved_stock, available_stock, reorder_point
    and max_stock. Raises ConflictError for a reservation larger than the
    available stock.
    """
    current = row["current_stock"]
    reserved = row["reserved_stock"]

    if movement_type in (MovementType.IN, MovementType.RETURN):
        current += quantity
    elif movement_type == MovementType.OUT:
        current -= quantity
    elif movement_type == MovementType.RESERVED:
        if quantity > row["available_stock"]:
            raise ConflictError("Insufficient stock available for reservation")
        reserved += quantity
    elif movement_type == MovementType.UNRESERVED:
        reserved -= quantity
    elif movement_type == MovementType.ADJUSTMENT:
        current = quantity

    return recompute_derived(current, reserved, row["reorder_point"], row["max_stock"])


# =============================================================================
# MOVEMENTS
# =============================================================================

def _read_row(inventory_id: int):
    """Fresh column read, bypassing the session identity map."""
    table = Inventory.__table__
    stmt = select(
        table.c.id,
        table.c.current_stock,
        table.c.reserved_stock,
        table.c.available_stock,
        table.c.reorder_point,
        table.c.max_stock,
        table.c.total_sold,
        table.c.total_purchased,
        table.c.version_id,
    ).where(table.c.id == inventory_id)
    return db.session.execute(stmt).mappings().first()


def _coerce_quantity(quantity, movement_type: MovementType) -> int:
    if isinstance(quantity, bool):
        raise ValidationError("quantity must be an integer")
    try:
        value = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("quantity must be an integer")
    if value != to_decimal(quantity, default="NaN"):
        raise ValidationError("quantity must be an integer")
    value = abs(value)
    if value == 0 and movement_type != MovementType.ADJUSTMENT:
        raise ValidationError("quantity must be non-zero")
    return value


def apply_movement(
    inventory_id: int,
    movement_type,
    quantity,
    reason: str,
    *,
    order_id: int | None = None,
    actor_id: int | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> Inventory:
    """
    Apply one stock movement as a compare-and-swap UPDATE and append it to the log.

    Quantity is taken as an absolute amount. With commit=False the caller owns
    the transaction (payment completion, restocks) and the movement becomes
    visible only when the caller commits.

    Raises:
        NotFoundError: no inventory row
        ConflictError: reservation exceeds available stock (nothing mutated)
        LostUpdateError: still losing the race after MAX_CAS_ATTEMPTS
    """
    movement_type = MovementType.parse(movement_type)
    qty = _coerce_quantity(quantity, movement_type)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required")

    levels = None
    for attempt in range(MAX_CAS_ATTEMPTS):
        row = _read_row(inventory_id)
        if row is None:
            raise NotFoundError("Inventory item not found")

        levels = next_levels(row, movement_type, qty)

        values = levels.as_values()
        values["version_id"] = row["version_id"] + 1
        if movement_type == MovementType.IN:
            values["total_purchased"] = row["total_purchased"] + qty
            values["last_restocked"] = utcnow()
        elif movement_type == MovementType.OUT:
            values["total_sold"] = row["total_sold"] + qty

        conditions = [Inventory.id == inventory_id, Inventory.version_id == row["version_id"]]
        if movement_type == MovementType.RESERVED:
            conditions.append(Inventory.available_stock >= qty)

        if guarded_update(Inventory, *conditions, values=values) == 1:
            break
        logger.debug("inventory %s changed concurrently (attempt %s)", inventory_id, attempt + 1)
    else:
        raise LostUpdateError(f"inventory {inventory_id}: too many concurrent updates")

    movement = InventoryMovement(
        inventory_id=inventory_id,
        type=movement_type.value,
        quantity=qty,
        reason=reason,
        notes=notes,
        order_id=order_id,
        actor_user_id=actor_id,
        stock_after=levels.current_stock,
        reserved_after=levels.reserved_stock,
        occurred_at=utcnow(),
    )
    db.session.add(movement)

    if commit:
        db.session.commit()
    else:
        db.session.flush()

    inventory = db.session.get(Inventory, inventory_id)
    db.session.refresh(inventory)
    return inventory


def reserve_stock(inventory_id: int, quantity: int, order_id: int | None = None, actor_id: int | None = None,
                  commit: bool = True) -> Inventory:
    return apply_movement(inventory_id, MovementType.RESERVED, quantity, "Order reservation",
                          order_id=order_id, actor_id=actor_id, commit=commit)


def unreserve_stock(inventory_id: int, quantity: int, order_id: int | None = None, actor_id: int | None = None,
                    commit: bool = True) -> Inventory:
    return apply_movement(inventory_id, MovementType.UNRESERVED, quantity, "Order cancellation",
                          order_id=order_id, actor_id=actor_id, commit=commit)


def fulfill_order(inventory_id: int, quantity: int, order_id: int | None = None, actor_id: int | None = None,
                  commit: bool = True) -> Inventory:
    return apply_movement(inventory_id, MovementType.OUT, quantity, "Order fulfillment",
                          order_id=order_id, actor_id=actor_id, commit=commit)


def find_inventory(product_id: int, variant_id: int | None = None) -> Inventory | None:
    query = db.session.query(Inventory).filter(Inventory.product_id == product_id)
    if variant_id is None:
        query = query.filter(Inventory.variant_id.is_(None))
    else:
        query = query.filter(Inventory.variant_id == variant_id)
    return query.first()


def apply_order_movement(
    lines,
    movement_type,
    reason: str,
    *,
    order_id: int | None = None,
    actor_id: int | None = None,
) -> list[Inventory]:
    """
    One movement per order line whose (product, variant) has an inventory row.

    Lines without an inventory row are skipped (stock not tracked). Never
    commits: callers run this inside their own transaction.
    """
    touched = []
    for line in lines:
        inventory = find_inventory(line.product_id, line.variant_id)
        if inventory is None:
            logger.debug("no inventory row for product=%s variant=%s; skipping", line.product_id, line.variant_id)
            continue
        touched.append(
            apply_movement(
                inventory.id,
                movement_type,
                line.quantity,
                reason,
                order_id=order_id,
                actor_id=actor_id,
                commit=False,
            )
        )
    return touched


def _update_thresholds(inventory_id: int, *, reorder_point=None, max_stock=None, extra: dict | None = None) -> None:
    """Change reorder_point/max_stock and re-derive alerts under the same version guard."""
    for attempt in range(MAX_CAS_ATTEMPTS):
        row = _read_row(inventory_id)
        if row is None:
            raise NotFoundError("Inventory item not found")

        new_reorder = row["reorder_point"] if reorder_point is None else reorder_point
        new_max = row["max_stock"] if max_stock is None else max_stock
        levels = recompute_derived(row["current_stock"], row["reserved_stock"], new_reorder, new_max)

        values = levels.as_values()
        values.update(reorder_point=new_reorder, max_stock=new_max, version_id=row["version_id"] + 1)
        if extra:
            values.update(extra)

        if guarded_update(
            Inventory,
            Inventory.id == inventory_id,
            Inventory.version_id == row["version_id"],
            values=values,
        ) == 1:
            return
    raise LostUpdateError(f"inventory {inventory_id}: too many concurrent updates")


def _non_negative_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer")
    return value


# =============================================================================
# ADMIN OPERATIONS
# =============================================================================

def create_or_update_inventory(
    product_id: int,
    variant_id: int | None = None,
    *,
    initial_stock=None,
    reorder_point=None,
    max_stock=None,
    location: dict | None = None,
    cost_price=None,
    actor_id: int | None = None,
) -> tuple[Inventory, bool]:
    """
    Upsert the inventory row for (product, variant).

    Returns (inventory, created). Setting initial_stock on an existing row is
    recorded as an ADJUSTMENT movement.
    """
    if not product_id:
        raise ValidationError("Product ID is required")
    if db.session.get(Product, product_id) is None:
        raise NotFoundError("Product not found")
    if variant_id is not None:
        variant = db.session.get(ProductVariant, variant_id)
        if variant is None or variant.product_id != product_id:
            raise NotFoundError("Variant not found")

    if initial_stock is not None:
        initial_stock = _non_negative_int(initial_stock, "initial_stock")
    if reorder_point is not None:
        reorder_point = _non_negative_int(reorder_point, "reorder_point")
    if max_stock is not None:
        max_stock = _non_negative_int(max_stock, "max_stock")

    extra = {}
    if location:
        for key in ("warehouse", "section", "shelf"):
            if location.get(key):
                extra[key] = str(location[key])
    if cost_price is not None:
        try:
            extra["cost_price"] = to_decimal(cost_price)
        except ValueError:
            raise ValidationError("cost_price must be a number")

    existing = find_inventory(product_id, variant_id)
    if existing is not None:
        _update_thresholds(existing.id, reorder_point=reorder_point, max_stock=max_stock, extra=extra)
        if initial_stock is not None:
            apply_movement(
                existing.id,
                MovementType.ADJUSTMENT,
                initial_stock,
                "Stock set via inventory update",
                actor_id=actor_id,
                commit=False,
            )
        db.session.commit()
        db.session.refresh(existing)
        return existing, False

    stock = initial_stock or 0
    reorder = DEFAULT_REORDER_POINT if reorder_point is None else reorder_point
    maximum = DEFAULT_MAX_STOCK if max_stock is None else max_stock
    levels = recompute_derived(stock, 0, reorder, maximum)

    inventory = Inventory(
        product_id=product_id,
        variant_id=variant_id,
        reorder_point=reorder,
        max_stock=maximum,
        version_id=1,
        **levels.as_values(),
        **extra,
    )
    db.session.add(inventory)
    db.session.flush()

    if stock:
        db.session.add(InventoryMovement(
            inventory_id=inventory.id,
            type=MovementType.ADJUSTMENT.value,
            quantity=stock,
            reason="Initial stock",
            actor_user_id=actor_id,
            stock_after=levels.current_stock,
            reserved_after=levels.reserved_stock,
            occurred_at=utcnow(),
        ))

    db.session.commit()
    return inventory, True


def bulk_update_reorder_points(updates) -> list[dict]:
    """Per-item results; one bad entry does not abort the others."""
    if not isinstance(updates, list):
        raise ValidationError("Updates must be an array")

    results = []
    for item in updates:
        item = item if isinstance(item, dict) else {}
        inventory_id = item.get("inventory_id")
        reorder_point = item.get("reorder_point")

        if (
            not isinstance(inventory_id, int)
            or isinstance(reorder_point, bool)
            or not isinstance(reorder_point, int)
            or reorder_point < 0
        ):
            results.append({
                "inventory_id": inventory_id,
                "success": False,
                "error": "Invalid inventory ID or reorder point",
            })
            continue

        try:
            _update_thresholds(inventory_id, reorder_point=reorder_point)
            db.session.commit()
        except (NotFoundError, LostUpdateError) as exc:
            db.session.rollback()
            results.append({"inventory_id": inventory_id, "success": False, "error": str(exc)})
            continue

        results.append({"inventory_id": inventory_id, "success": True})
    return results


# =============================================================================
# QUERIES
# =============================================================================

def get_inventory(inventory_id: int) -> Inventory:
    inventory = db.session.get(Inventory, inventory_id)
    if inventory is None:
        raise NotFoundError("Inventory item not found")
    return inventory


def get_inventory_summary() -> dict:
    row = db.session.query(
        func.count(Inventory.id),
        func.coalesce(func.sum(Inventory.current_stock), 0),
        func.coalesce(func.sum(Inventory.reserved_stock), 0),
        func.coalesce(func.sum(Inventory.available_stock), 0),
        func.coalesce(func.sum(case((Inventory.is_low_stock.is_(True), 1), else_=0)), 0),
        func.coalesce(func.sum(case((Inventory.is_out_of_stock.is_(True), 1), else_=0)), 0),
        func.coalesce(func.sum(case((Inventory.is_over_stock.is_(True), 1), else_=0)), 0),
    ).one()

    return {
        "total_products": int(row[0]),
        "total_stock": int(row[1]),
        "total_reserved": int(row[2]),
        "total_available": int(row[3]),
        "low_stock_count": int(row[4]),
        "out_of_stock_count": int(row[5]),
        "over_stock_count": int(row[6]),
    }


STOCK_STATUS_FILTERS = {
    "low": Inventory.is_low_stock,
    "out": Inventory.is_out_of_stock,
    "over": Inventory.is_over_stock,
}

SORT_OPTIONS = {
    "stock_asc": (Inventory.available_stock.asc(), Inventory.id.asc()),
    "stock_desc": (Inventory.available_stock.desc(), Inventory.id.asc()),
    "updated": (Inventory.updated_at.desc(), Inventory.id.desc()),
    "product": (Inventory.product_id.asc(), Inventory.id.asc()),
}


def _paginate(query, page: int, limit: int) -> tuple[list, dict]:
    page = max(int(page), 1)
    limit = min(max(int(limit), 1), 200)
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return rows, {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit,
    }


def list_inventory(
    page: int = 1,
    limit: int = 20,
    stock_status: str | None = None,
    location: str | None = None,
    sort: str = "product",
) -> dict:
    query = db.session.query(Inventory)

    if stock_status:
        column = STOCK_STATUS_FILTERS.get(stock_status)
        if column is None:
            raise ValidationError("stock_status must be one of: low, out, over")
        query = query.filter(column.is_(True))

    if location:
        query = query.filter(Inventory.warehouse.ilike(f"%{location}%"))

    query = query.order_by(*SORT_OPTIONS.get(sort, SORT_OPTIONS["product"]))
    rows, pagination = _paginate(query, page, limit)
    return {"inventory": [_with_product(r) for r in rows], "pagination": pagination}


def get_low_stock_items() -> list[dict]:
    rows = (
        db.session.query(Inventory)
        .filter(db.or_(Inventory.is_low_stock.is_(True), Inventory.is_out_of_stock.is_(True)))
        .order_by(Inventory.available_stock.asc(), Inventory.id.asc())
        .all()
    )
    return [_with_product(r) for r in rows]


def get_movements(inventory_id: int, page: int = 1, limit: int = 20) -> dict:
    get_inventory(inventory_id)
    query = (
        db.session.query(InventoryMovement)
        .filter(InventoryMovement.inventory_id == inventory_id)
        .order_by(InventoryMovement.occurred_at.desc(), InventoryMovement.id.desc())
    )
    rows, pagination = _paginate(query, page, limit)
    return {"movements": [m.to_dict() for m in rows], "pagination": pagination}


def generate_stock_report(include_movements: bool = False, report_format: str = "json") -> dict:
    if report_format != "json":
        raise ValidationError("Only JSON format is currently supported")

    rows = (
        db.session.query(Inventory)
        .join(Product, Product.id == Inventory.product_id)
        .order_by(Product.title.asc(), Inventory.id.asc())
        .all()
    )

    report = []
    for item in rows:
        entry = {
            "inventory_id": item.id,
            "product_title": item.product.title,
            "sku": item.product.sku,
            "variant_name": item.variant.name if item.variant else "N/A",
            "current_stock": item.current_stock,
            "reserved_stock": item.reserved_stock,
            "available_stock": item.available_stock,
            "reorder_point": item.reorder_point,
            "alerts": {
                "low_stock": item.is_low_stock,
                "out_of_stock": item.is_out_of_stock,
                "over_stock": item.is_over_stock,
            },
            "location": {"warehouse": item.warehouse, "section": item.section, "shelf": item.shelf},
            "last_restocked": to_utc_z(item.last_restocked),
        }
        if include_movements:
            entry["movements"] = [m.to_dict() for m in item.movements]
        report.append(entry)

    return {"report": report, "generated_at": to_utc_z(utcnow())}


def _with_product(inventory: Inventory) -> dict:
    data = inventory.to_dict()
    product = inventory.product
    data["product"] = {"id": product.id, "title": product.title, "sku": product.sku} if product else None
    data["variant"] = inventory.variant.to_dict() if inventory.variant else None
    return data
