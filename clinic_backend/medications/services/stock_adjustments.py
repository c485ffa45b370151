# medications/services/stock_adjustments.py

"""
STOCK ADJUSTMENTS SERVICE (PHYSICAL COUNT)

Purpose:
- Reconcile recorded stock with a physical count.
- The operator supplies the counted quantity; the ledger engine
  computes delta = counted - current under the row lock.

Rules:
- counted_quantity must be an integer >= 0
- nonzero delta requires a reason
- zero delta is a pure no-op (no ledger row, no audit record)
- creates StockMovement(movement_type=ADJUSTMENT) with the signed delta
"""

from __future__ import annotations

import logging

from audit.sink import record_after_commit
from medications.models import StockMovement
from medications.services.exceptions import InventoryValidationError
from medications.services.stock_ledger import StockChangeResult, apply_stock_change

logger = logging.getLogger(__name__)


def _to_count(value) -> int:
    if value is None or value == "":
        raise InventoryValidationError("counted_quantity is required")

    if isinstance(value, bool):
        # guardrail: bool is an int subclass in Python
        raise InventoryValidationError("counted_quantity must be an integer")

    try:
        count = int(value)
    except (TypeError, ValueError):
        raise InventoryValidationError("counted_quantity must be an integer")

    if isinstance(value, float) and not value.is_integer():
        raise InventoryValidationError("counted_quantity must be an integer")

    if count < 0:
        raise InventoryValidationError("counted_quantity cannot be negative")

    return count


def adjust_stock_to_count(
    *,
    medication_id,
    counted_quantity,
    reason: str = "",
    actor=None,
) -> StockChangeResult:
    counted = _to_count(counted_quantity)

    result = apply_stock_change(
        medication_id=medication_id,
        target=counted,
        reason=reason,
        actor=actor,
        kind=StockMovement.MovementType.ADJUSTMENT,
    )

    if not result.changed:
        logger.info(
            "Physical count matches recorded stock",
            extra={"medication_id": str(medication_id), "stock": result.new_stock},
        )
        return result

    record_after_commit(
        actor=actor,
        action="stock.adjusted",
        entity_id=result.medication.pk,
        details={
            "medication_name": result.medication.name,
            "old_stock": result.previous_stock,
            "new_stock": result.new_stock,
            "delta": result.delta,
            "reason": result.movement.reason,
        },
    )
    return result
