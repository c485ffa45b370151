# medications/services/medication_service.py

"""
MEDICATION ADMINISTRATION

- create: row at zero stock, opening balance posted through the ledger engine
- update: catalogue fields and minimum_stock only (stock is ledger-managed)
- delete: refused once ledger history exists
"""

from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, DecimalField, F, Q, Sum
from django.utils import timezone

from audit.sink import record_after_commit
from medications.models import Medication, StockMovement
from medications.services.exceptions import (
    InventoryConflictError,
    InventoryNotFoundError,
    InventoryValidationError,
)
from medications.services.stock_ledger import apply_stock_change

logger = logging.getLogger(__name__)

OPENING_STOCK_REASON = "Opening stock"

EDITABLE_FIELDS = (
    "name",
    "active_ingredient",
    "dosage",
    "form",
    "manufacturer",
    "barcode",
    "unit_price",
    "minimum_stock",
    "expiration_date",
    "prescription_required",
)

EXPIRING_SOON_DAYS = 30


def _validation_error(exc: ValidationError) -> InventoryValidationError:
    if hasattr(exc, "message_dict"):
        parts = [f"{k}: {'; '.join(v)}" for k, v in exc.message_dict.items()]
        return InventoryValidationError(", ".join(parts))
    return InventoryValidationError("; ".join(exc.messages))


def get_medication(medication_id) -> Medication:
    try:
        return Medication.objects.get(pk=medication_id)
    except (Medication.DoesNotExist, ValidationError, ValueError):
        raise InventoryNotFoundError(f"Medication {medication_id} not found")


@transaction.atomic
def create_medication(*, actor=None, initial_stock=0, **fields) -> Medication:
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise InventoryValidationError(f"Unknown or read-only field(s): {', '.join(sorted(unknown))}")

    try:
        opening = int(initial_stock or 0)
    except (TypeError, ValueError):
        raise InventoryValidationError("initial_stock must be an integer")
    if opening < 0:
        raise InventoryValidationError("initial_stock cannot be negative")

    try:
        medication = Medication(current_stock=0, **fields)
        medication.save()
    except ValidationError as exc:
        raise _validation_error(exc) from exc

    if opening:
        result = apply_stock_change(
            medication_id=medication.pk,
            delta=opening,
            reason=OPENING_STOCK_REASON,
            actor=actor,
            kind=StockMovement.MovementType.IN,
        )
        medication = result.medication

    logger.info(
        "Medication created",
        extra={"medication_id": str(medication.pk), "initial_stock": opening},
    )

    record_after_commit(
        actor=actor,
        action="medication.created",
        entity_id=medication.pk,
        details={"name": medication.name, "initial_stock": opening},
    )
    return medication


@transaction.atomic
def update_medication(*, medication_id, actor=None, **fields) -> Medication:
    """
    Stock fields are rejected here; use the ledger engine instead.
    Changing minimum_stock re-derives stock_status without alerting.
    """
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise InventoryValidationError(f"Unknown or read-only field(s): {', '.join(sorted(unknown))}")

    try:
        medication = Medication.objects.select_for_update().get(pk=medication_id)
    except (Medication.DoesNotExist, ValidationError, ValueError):
        raise InventoryNotFoundError(f"Medication {medication_id} not found")

    changed = {}
    for name, value in fields.items():
        if getattr(medication, name) != value:
            changed[name] = value
            setattr(medication, name, value)

    if not changed:
        return medication

    try:
        medication.save(update_fields=[*changed, "updated_at"])
    except ValidationError as exc:
        raise _validation_error(exc) from exc

    record_after_commit(
        actor=actor,
        action="medication.updated",
        entity_id=medication.pk,
        details={"fields": sorted(changed)},
    )
    return medication


@transaction.atomic
def delete_medication(*, medication_id, actor=None) -> None:
    try:
        medication = Medication.objects.select_for_update().get(pk=medication_id)
    except (Medication.DoesNotExist, ValidationError, ValueError):
        raise InventoryNotFoundError(f"Medication {medication_id} not found")

    if medication.stock_movements.exists():
        raise InventoryConflictError(
            f"{medication.name} has stock history and cannot be deleted"
        )
    if medication.supplier_order_lines.exists() or medication.prescriptions.exists():
        raise InventoryConflictError(
            f"{medication.name} is referenced by orders or prescriptions and cannot be deleted"
        )

    name = medication.name
    pk = medication.pk
    medication.delete()

    record_after_commit(
        actor=actor,
        action="medication.deleted",
        entity_id=pk,
        details={"name": name},
    )


def medication_movements(medication_id, limit: Optional[int] = 50):
    get_medication(medication_id)
    qs = (
        StockMovement.objects.filter(medication_id=medication_id)
        .select_related("performed_by", "order")
        .order_by("-created_at")
    )
    return qs[:limit] if limit else qs


def inventory_stats(today=None) -> dict:
    today = today or timezone.localdate()
    horizon = today + timedelta(days=EXPIRING_SOON_DAYS)

    totals = Medication.objects.aggregate(
        total_medications=Count("id"),
        total_value=Sum(
            F("unit_price") * F("current_stock"),
            output_field=DecimalField(max_digits=18, decimal_places=2),
        ),
        low_stock=Count("id", filter=Q(current_stock__lte=F("minimum_stock"))),
        expiring_soon=Count(
            "id",
            filter=Q(expiration_date__isnull=False, expiration_date__lte=horizon),
        ),
    )

    return {
        "total_medications": totals["total_medications"] or 0,
        "total_value": Decimal(totals["total_value"] or 0).quantize(Decimal("0.01")),
        "low_stock": totals["low_stock"] or 0,
        "expiring_soon": totals["expiring_soon"] or 0,
    }
