# purchases/services/order_service.py

"""
======================================================
PATH: purchases/services/order_service.py
======================================================
SUPPLIER ORDER LIFECYCLE

State machine:
    ordered -> partially_received -> received
    ordered | partially_received -> cancelled   (terminal, like received)

Create:
- validates supplier + every medication
- total = Σ(quantity × unit_price), lines start with received = 0
- never touches stock

Receive (one outer atomic unit, order row locked):
- every outstanding line -> stock ledger IN with a lot number derived from the order number
- line.quantity_received advanced, medication reference price refreshed
- status re-derived from lines
- no outstanding quantity -> no-op (zero ledger rows, status unchanged)
- any line failure rolls back the whole receive

Cancel:
- only while open; partial receipts stand
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.utils import timezone

from audit.sink import record_after_commit
from medications.models import Medication, StockMovement
from medications.services.exceptions import (
    InventoryConflictError,
    InventoryNotFoundError,
    InventoryTransactionError,
    InventoryValidationError,
)
from medications.services.stock_ledger import StockChangeResult, apply_stock_change
from purchases.models import Supplier, SupplierOrder, SupplierOrderLine
from purchases.services.number_series import (
    KEY_ORDER,
    PREFIX_ORDER,
    NumberAllocator,
    get_number_allocator,
    lot_number,
)

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")

MAX_LINE_QUANTITY = 10000


def _money(v) -> Decimal:
    return Decimal(str(v or "0.00")).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _require_positive_int(value, field_name: str, maximum: Optional[int] = None) -> int:
    if isinstance(value, bool):
        raise InventoryValidationError(f"{field_name} must be an integer")
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise InventoryValidationError(f"{field_name} must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise InventoryValidationError(f"{field_name} must be an integer")
    if n <= 0:
        raise InventoryValidationError(f"{field_name} must be greater than zero")
    if maximum is not None and n > maximum:
        raise InventoryValidationError(f"{field_name} cannot exceed {maximum}")
    return n


def _require_price(value, field_name: str) -> Decimal:
    try:
        price = _money(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InventoryValidationError(f"{field_name} must be a decimal amount")
    if price < Decimal("0.00"):
        raise InventoryValidationError(f"{field_name} cannot be negative")
    return price


def derive_order_status(lines: Iterable[SupplierOrderLine], cancelled: bool = False) -> str:
    """
    received            <=> every line fully received
    partially_received  <=> at least one unit received, not all
    ordered             otherwise
    """
    if cancelled:
        return SupplierOrder.Status.CANCELLED

    lines = list(lines)
    if not lines:
        return SupplierOrder.Status.ORDERED

    if all(line.quantity_received >= line.quantity_ordered for line in lines):
        return SupplierOrder.Status.RECEIVED
    if any(line.quantity_received > 0 for line in lines):
        return SupplierOrder.Status.PARTIALLY_RECEIVED
    return SupplierOrder.Status.ORDERED


def order_outstanding_lines(order: SupplierOrder) -> List[SupplierOrderLine]:
    return [line for line in order.lines.all() if line.outstanding > 0]


@dataclass(frozen=True)
class ReceiveResult:
    order: SupplierOrder
    previous_status: str
    changes: List[StockChangeResult] = field(default_factory=list)

    @property
    def received_any(self) -> bool:
        return bool(self.changes)

    @property
    def movements(self) -> List[StockMovement]:
        return [c.movement for c in self.changes if c.movement is not None]


# =========================================================
# CREATE
# =========================================================
def _normalize_lines(lines) -> List[dict]:
    if not lines:
        raise InventoryValidationError("An order requires at least one line")

    normalized = []
    for i, raw in enumerate(lines, start=1):
        medication_id = raw.get("medication_id") or raw.get("medication")
        if not medication_id:
            raise InventoryValidationError(f"Line {i}: medication_id is required")
        try:
            medication_id = str(uuid.UUID(str(medication_id)))
        except ValueError:
            raise InventoryNotFoundError(f"Line {i}: medication {medication_id} not found")

        normalized.append(
            {
                "medication_id": medication_id,
                "quantity": _require_positive_int(
                    raw.get("quantity"), f"Line {i}: quantity", maximum=MAX_LINE_QUANTITY
                ),
                "unit_price": _require_price(raw.get("unit_price"), f"Line {i}: unit_price"),
            }
        )
    return normalized


def create_supplier_order(
    *,
    supplier_id,
    lines,
    actor=None,
    expected_delivery_date=None,
    allocator: Optional[NumberAllocator] = None,
) -> SupplierOrder:
    """
    The order number is allocated before the order transaction opens, so the
    series row is locked only for the increment. A failed insert leaves a gap
    in the daily sequence, never a duplicate.
    """
    normalized = _normalize_lines(lines)

    try:
        supplier = Supplier.objects.get(pk=supplier_id)
    except (Supplier.DoesNotExist, ValidationError, ValueError):
        raise InventoryNotFoundError(f"Supplier {supplier_id} not found")

    if not supplier.is_active:
        raise InventoryConflictError(f"Supplier {supplier.name} is inactive")

    wanted_ids = {str(line["medication_id"]) for line in normalized}
    medications = {str(m.pk): m for m in Medication.objects.filter(pk__in=wanted_ids)}

    missing = sorted(wanted_ids - set(medications))
    if missing:
        raise InventoryNotFoundError(f"Medication(s) not found: {', '.join(missing)}")

    total = sum(
        (_money(Decimal(line["quantity"]) * line["unit_price"]) for line in normalized),
        Decimal("0.00"),
    )

    allocator = allocator or get_number_allocator()
    order_number = allocator.next_number(KEY_ORDER, PREFIX_ORDER)

    with transaction.atomic():
        order = SupplierOrder.objects.create(
            supplier=supplier,
            order_number=order_number,
            status=SupplierOrder.Status.ORDERED,
            total_amount=total,
            expected_delivery_date=expected_delivery_date,
            created_by=actor,
        )

        SupplierOrderLine.objects.bulk_create(
            [
                SupplierOrderLine(
                    order=order,
                    medication=medications[str(line["medication_id"])],
                    quantity_ordered=line["quantity"],
                    quantity_received=0,
                    unit_price=line["unit_price"],
                )
                for line in normalized
            ]
        )

        record_after_commit(
            actor=actor,
            action="supplier_order.created",
            entity_id=order.pk,
            details={
                "order_number": order.order_number,
                "supplier_id": str(supplier.pk),
                "total_amount": str(total),
                "line_count": len(normalized),
            },
        )

    logger.info(
        "Supplier order created",
        extra={
            "order_id": str(order.pk),
            "order_number": order.order_number,
            "line_count": len(normalized),
        },
    )
    return order


# =========================================================
# RECEIVE
# =========================================================
def _lock_order(order_id) -> SupplierOrder:
    try:
        return SupplierOrder.objects.select_for_update().get(pk=order_id)
    except (SupplierOrder.DoesNotExist, ValidationError, ValueError):
        raise InventoryNotFoundError(f"Supplier order {order_id} not found")


def _normalize_quantities(quantities) -> Optional[Dict[str, int]]:
    if quantities is None:
        return None
    if not quantities:
        raise InventoryValidationError("quantities cannot be empty")
    return {
        str(line_id): _require_positive_int(qty, f"Line {line_id}: quantity")
        for line_id, qty in quantities.items()
    }


def _plan_receipt(order: SupplierOrder, lines, wanted: Optional[Dict[str, int]]):
    if wanted is None:
        return [(line, line.outstanding) for line in lines if line.outstanding > 0]

    by_id = {str(line.pk): line for line in lines}
    unknown = sorted(set(wanted) - set(by_id))
    if unknown:
        raise InventoryValidationError(
            f"Line(s) not on order {order.order_number}: {', '.join(unknown)}"
        )

    plan = []
    for line_id, qty in wanted.items():
        line = by_id[line_id]
        if qty > line.outstanding:
            raise InventoryValidationError(
                f"Cannot receive {qty} of {line.medication.name}: "
                f"only {line.outstanding} outstanding"
            )
        plan.append((line, qty))
    return plan


def receive_supplier_order(
    *,
    order_id,
    actor=None,
    quantities=None,
) -> ReceiveResult:
    """
    Receive an order in full (quantities=None) or in part
    (quantities={line_id: qty}, each 0 < qty <= outstanding).

    Locks taken: the order row, then each received medication row.
    Lot numbers come from the order itself, so receipts for different
    orders and medications never wait on each other.
    """
    wanted = _normalize_quantities(quantities)

    try:
        with transaction.atomic():
            order = _lock_order(order_id)
            previous_status = order.status

            if order.status == SupplierOrder.Status.CANCELLED:
                raise InventoryConflictError(
                    f"Order {order.order_number} is cancelled and cannot be received"
                )

            lines = list(order.lines.select_related("medication"))
            plan = _plan_receipt(order, lines, wanted)

            if not plan:
                logger.info(
                    "Supplier order has nothing outstanding",
                    extra={"order_id": str(order.pk), "order_number": order.order_number},
                )
                return ReceiveResult(order=order, previous_status=previous_status)

            changes = []
            reason = f"Receipt of order {order.order_number}"
            lots_issued = StockMovement.objects.filter(order=order).count()

            for index, (line, qty) in enumerate(plan, start=lots_issued + 1):
                change = apply_stock_change(
                    medication_id=line.medication_id,
                    delta=qty,
                    reason=reason,
                    actor=actor,
                    kind=StockMovement.MovementType.IN,
                    order=order,
                    batch_number=lot_number(order.order_number, index),
                    unit_price=line.unit_price,
                )
                changes.append(change)

                line.quantity_received = int(line.quantity_received) + qty
                line.save(update_fields=["quantity_received"])

                medication = change.medication
                if medication.unit_price != line.unit_price:
                    medication.unit_price = line.unit_price
                    medication.save(update_fields=["unit_price", "updated_at"])

            order.status = derive_order_status(lines)
            if order.status == SupplierOrder.Status.RECEIVED:
                order.received_at = timezone.now()
            order.save(update_fields=["status", "received_at", "updated_at"])

    except ValidationError as exc:
        raise InventoryValidationError("; ".join(exc.messages)) from exc
    except DatabaseError as exc:
        logger.exception("Supplier order receipt rolled back", extra={"order_id": str(order_id)})
        raise InventoryTransactionError(
            f"Receipt of order {order_id} failed and was rolled back"
        ) from exc

    logger.info(
        "Supplier order received",
        extra={
            "order_id": str(order.pk),
            "order_number": order.order_number,
            "status": order.status,
            "lines_received": len(changes),
        },
    )

    record_after_commit(
        actor=actor,
        action="supplier_order.received",
        entity_id=order.pk,
        details={
            "order_number": order.order_number,
            "previous_status": previous_status,
            "status": order.status,
            "lines": [
                {
                    "medication_id": str(c.medication.pk),
                    "quantity": c.delta,
                    "batch_number": c.movement.batch_number,
                }
                for c in changes
            ],
        },
    )

    return ReceiveResult(order=order, previous_status=previous_status, changes=changes)


# =========================================================
# CANCEL
# =========================================================
@transaction.atomic
def cancel_supplier_order(*, order_id, actor=None, reason: str = "") -> SupplierOrder:
    order = _lock_order(order_id)

    if not order.is_open:
        raise InventoryConflictError(
            f"Order {order.order_number} is {order.get_status_display().lower()} and cannot be cancelled"
        )

    previous_status = order.status
    order.status = SupplierOrder.Status.CANCELLED
    order.cancelled_at = timezone.now()
    order.cancel_reason = (reason or "").strip()[:255]
    order.save(update_fields=["status", "cancelled_at", "cancel_reason", "updated_at"])

    logger.info(
        "Supplier order cancelled",
        extra={"order_id": str(order.pk), "order_number": order.order_number},
    )

    record_after_commit(
        actor=actor,
        action="supplier_order.cancelled",
        entity_id=order.pk,
        details={
            "order_number": order.order_number,
            "previous_status": previous_status,
            "reason": order.cancel_reason,
        },
    )
    return order


# =========================================================
# QUERIES
# =========================================================
def list_pending_orders():
    return (
        SupplierOrder.objects.filter(status__in=SupplierOrder.OPEN_STATUSES)
        .select_related("supplier", "created_by")
        .prefetch_related("lines__medication")
        .order_by("-created_at")
    )


def get_order(order_id) -> SupplierOrder:
    try:
        return (
            SupplierOrder.objects.select_related("supplier", "created_by")
            .prefetch_related("lines__medication")
            .get(pk=order_id)
        )
    except (SupplierOrder.DoesNotExist, ValidationError, ValueError):
        raise InventoryNotFoundError(f"Supplier order {order_id} not found")
