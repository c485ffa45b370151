# medications/services/stock_ledger.py

"""
STOCK LEDGER & MUTATION ENGINE

Purpose:
- The ONLY writer of Medication.current_stock and of StockMovement rows.
- Serialize concurrent writers per medication (row lock), never globally.
- Keep the ledger invariant: Σ quantity_delta == current_stock.

Rules:
- exactly one of delta / target
- zero net change -> no-op (no ledger row, no alert)
- nonzero change requires a non-empty reason
- resulting stock < 0 -> rejected, unless clamp_at_zero (consumption only)
- status transitions are handed to threshold alerting AFTER commit
- any failure leaves stock, ledger and status untouched
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError, connection, transaction

from medications.models import Medication, StockMovement
from medications.services.exceptions import (
    InventoryNotFoundError,
    InventoryTransactionError,
    InventoryValidationError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockChangeResult:
    medication: Medication
    previous_stock: int
    new_stock: int
    previous_status: str
    new_status: str
    movement: Optional[StockMovement]

    @property
    def changed(self) -> bool:
        return self.movement is not None

    @property
    def delta(self) -> int:
        return self.new_stock - self.previous_stock

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.new_status


def _to_int(value, field: str) -> int:
    if value is None or value == "":
        raise InventoryValidationError(f"{field} is required")

    if isinstance(value, bool):
        # guardrail: bool is an int subclass in Python
        raise InventoryValidationError(f"{field} must be an integer")

    if isinstance(value, float) and not value.is_integer():
        raise InventoryValidationError(f"{field} must be an integer")

    try:
        return int(value)
    except (TypeError, ValueError):
        raise InventoryValidationError(f"{field} must be an integer")


def _apply_lock_timeout() -> None:
    timeout = int(getattr(settings, "PHARMACY_LOCK_TIMEOUT_MS", 0) or 0)
    if timeout <= 0 or connection.vendor != "postgresql":
        return

    # SET does not accept bind parameters; timeout is an int
    with connection.cursor() as cursor:
        cursor.execute(f"SET LOCAL lock_timeout = {timeout:d}")


def _schedule_status_alert(medication: Medication, previous_status: str, new_status: str) -> None:
    from alerts.services.threshold_alerts import on_stock_status_change

    medication_id = medication.pk

    def _fire():
        try:
            fresh = Medication.objects.get(pk=medication_id)
        except Medication.DoesNotExist:
            return
        on_stock_status_change(fresh, previous_status, new_status)

    transaction.on_commit(_fire, robust=True)


def mutate_stock(
    *,
    medication_id,
    compute: Callable[[int], int],
    reason: str,
    actor=None,
    kind: str,
    order=None,
    batch_number: str = "",
    unit_price: Optional[Decimal] = None,
    clamp_at_zero: bool = False,
) -> StockChangeResult:
    """
    Lock the medication row, compute the new stock from the current one,
    persist it and append the ledger row, all in one atomic unit.

    compute must be pure: it receives the locked current stock and returns
    the desired new stock. Nothing is written when it raises.
    """
    if kind not in StockMovement.MovementType.values:
        raise InventoryValidationError(f"Unknown movement kind: {kind}")

    try:
        with transaction.atomic():
            _apply_lock_timeout()

            try:
                medication = Medication.objects.select_for_update().get(pk=medication_id)
            except (Medication.DoesNotExist, ValidationError, ValueError):
                raise InventoryNotFoundError(f"Medication {medication_id} not found")

            previous_stock = int(medication.current_stock or 0)
            previous_status = medication.stock_status

            new_stock = _to_int(compute(previous_stock), "new stock")

            if new_stock < 0:
                if not clamp_at_zero:
                    raise InventoryValidationError(
                        f"Insufficient stock for {medication.name}. "
                        f"Available: {previous_stock}, resulting: {new_stock}"
                    )
                logger.warning(
                    "Stock deduction clamped at zero",
                    extra={
                        "medication_id": str(medication.pk),
                        "available": previous_stock,
                        "shortfall": -new_stock,
                    },
                )
                new_stock = 0

            delta = new_stock - previous_stock

            if delta == 0:
                return StockChangeResult(
                    medication=medication,
                    previous_stock=previous_stock,
                    new_stock=previous_stock,
                    previous_status=previous_status,
                    new_status=previous_status,
                    movement=None,
                )

            reason = (reason or "").strip()
            if not reason:
                raise InventoryValidationError("A reason is required for any stock change")

            direction = StockMovement.MOVEMENT_DIRECTION.get(kind)
            if direction is not None and (delta > 0) != (direction > 0):
                raise InventoryValidationError(
                    f"{kind} movement cannot change stock by {delta:+d}"
                )

            if unit_price is None:
                unit_price = medication.unit_price

            medication.current_stock = new_stock
            try:
                medication.save(update_fields=["current_stock", "updated_at"])
                movement = StockMovement.objects.create(
                    medication=medication,
                    movement_type=kind,
                    quantity=abs(delta),
                    quantity_delta=delta,
                    stock_after=new_stock,
                    unit_price_snapshot=unit_price,
                    reason=reason,
                    batch_number=batch_number or "",
                    order=order,
                    performed_by=actor,
                )
            except ValidationError as exc:
                raise InventoryValidationError("; ".join(exc.messages)) from exc

            new_status = medication.stock_status
            if new_status != previous_status:
                _schedule_status_alert(medication, previous_status, new_status)

    except DatabaseError as exc:
        logger.exception(
            "Stock mutation rolled back",
            extra={"medication_id": str(medication_id), "kind": kind},
        )
        raise InventoryTransactionError(
            f"Stock update for medication {medication_id} failed and was rolled back"
        ) from exc

    logger.info(
        "Stock mutated",
        extra={
            "medication_id": str(medication.pk),
            "kind": kind,
            "delta": delta,
            "stock_after": new_stock,
        },
    )

    return StockChangeResult(
        medication=medication,
        previous_stock=previous_stock,
        new_stock=new_stock,
        previous_status=previous_status,
        new_status=new_status,
        movement=movement,
    )


def apply_stock_change(
    *,
    medication_id,
    delta=None,
    target=None,
    reason: str = "",
    actor=None,
    kind: str,
    order=None,
    batch_number: str = "",
    unit_price: Optional[Decimal] = None,
    clamp_at_zero: bool = False,
) -> StockChangeResult:
    """
    delta mode:  new = current + delta (receipts, deliveries)
    target mode: new = target          (physical counts, accepted verbatim)
    """
    if (delta is None) == (target is None):
        raise InventoryValidationError("Exactly one of delta or target is required")

    if delta is not None:
        change = _to_int(delta, "delta")

        def compute(current: int) -> int:
            return current + change

    else:
        wanted = _to_int(target, "target")
        if wanted < 0:
            raise InventoryValidationError("Target stock cannot be negative")

        def compute(current: int) -> int:
            return wanted

    return mutate_stock(
        medication_id=medication_id,
        compute=compute,
        reason=reason,
        actor=actor,
        kind=kind,
        order=order,
        batch_number=batch_number,
        unit_price=unit_price,
        clamp_at_zero=clamp_at_zero,
    )
