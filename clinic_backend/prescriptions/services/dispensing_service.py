# prescriptions/services/dispensing_service.py

"""
PRESCRIPTION DISPENSING (CONSUMPTION ADAPTER)

Stock is deducted when the pharmacist confirms delivery, never at
prescribing time.

Delivery modes (settings.PRESCRIPTION_DELIVERY_ATOMIC):
- True (default): deduction and the delivered flag share one atomic unit.
  If the deduction fails, the prescription stays pending.
- False (legacy): deduction runs in its own savepoint; a failure is logged
  and the delivery is still recorded.

Deductions clamp at zero: dispensing more than is on hand empties the
stock and logs the shortfall instead of failing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from alerts.models import Notification
from alerts.services.notifier import Audience, notify_safely
from audit.sink import record_after_commit
from medications.models import StockMovement
from medications.services.exceptions import (
    InventoryConflictError,
    InventoryError,
    InventoryNotFoundError,
    InventoryValidationError,
)
from medications.services.stock_ledger import StockChangeResult, apply_stock_change
from prescriptions.models import Prescription

logger = logging.getLogger(__name__)

CATEGORY_DELIVERED = "prescription.delivered"

UPDATABLE_FIELDS = ("quantity", "dosage_instructions", "treatment_duration", "special_instructions")


@dataclass(frozen=True)
class DeliveryResult:
    prescription: Prescription
    stock_change: Optional[StockChangeResult]
    deduction_error: Optional[str] = None

    @property
    def shortfall(self) -> int:
        if self.stock_change is None:
            return 0
        return max(self.prescription.quantity + self.stock_change.delta, 0)


def _lock_prescription(prescription_id) -> Prescription:
    try:
        return (
            Prescription.objects.select_for_update()
            .select_related("medication")
            .get(pk=prescription_id)
        )
    except (Prescription.DoesNotExist, ValidationError, ValueError):
        raise InventoryNotFoundError(f"Prescription {prescription_id} not found")


def _require_pending(prescription: Prescription, action: str) -> None:
    if prescription.status == Prescription.Status.DELIVERED:
        raise InventoryConflictError(f"Prescription already delivered; cannot {action}")
    if prescription.status == Prescription.Status.CANCELLED:
        raise InventoryConflictError(f"Prescription is cancelled; cannot {action}")


def _deduct(prescription: Prescription, actor) -> StockChangeResult:
    patient = prescription.patient_name or prescription.patient_id
    return apply_stock_change(
        medication_id=prescription.medication_id,
        delta=-int(prescription.quantity),
        reason=f"Prescription delivery: {prescription.medication.name} for {patient}",
        actor=actor,
        kind=StockMovement.MovementType.OUT,
        clamp_at_zero=True,
    )


def _notify_prescriber(prescription: Prescription) -> None:
    if not prescription.prescriber_id:
        return

    patient = prescription.patient_name or prescription.patient_id
    notify_safely(
        Audience.users(prescription.prescriber_id),
        "Prescription delivered",
        f"{prescription.medication.name} x {prescription.quantity} was delivered to {patient}.",
        urgency=Notification.Urgency.LOW,
        category=CATEGORY_DELIVERED,
        target_ref=("prescription", str(prescription.pk)),
        silent=True,
    )


@transaction.atomic
def deliver_prescription(*, prescription_id, actor=None) -> DeliveryResult:
    prescription = _lock_prescription(prescription_id)
    _require_pending(prescription, "deliver")

    atomic_delivery = getattr(settings, "PRESCRIPTION_DELIVERY_ATOMIC", True)

    deduction_error = None
    change = None

    if atomic_delivery:
        change = _deduct(prescription, actor)
    else:
        try:
            change = _deduct(prescription, actor)
        except InventoryError as exc:
            deduction_error = str(exc)
            logger.exception(
                "Stock deduction failed for delivered prescription",
                extra={
                    "prescription_id": str(prescription.pk),
                    "medication_id": str(prescription.medication_id),
                },
            )

    prescription.status = Prescription.Status.DELIVERED
    prescription.delivered_at = timezone.now()
    prescription.delivered_by = actor
    prescription.save(update_fields=["status", "delivered_at", "delivered_by", "updated_at"])

    result = DeliveryResult(
        prescription=prescription,
        stock_change=change,
        deduction_error=deduction_error,
    )

    if result.shortfall:
        logger.warning(
            "Prescription delivered with insufficient stock",
            extra={"prescription_id": str(prescription.pk), "shortfall": result.shortfall},
        )

    record_after_commit(
        actor=actor,
        action="prescription.delivered",
        entity_id=prescription.pk,
        details={
            "medication_id": str(prescription.medication_id),
            "medication_name": prescription.medication.name,
            "quantity": prescription.quantity,
            "patient_id": prescription.patient_id,
            "patient_name": prescription.patient_name,
            "prescriber_id": prescription.prescriber_id,
            "stock_deducted": -change.delta if change else 0,
            "deduction_error": deduction_error,
        },
    )
    transaction.on_commit(lambda: _notify_prescriber(prescription), robust=True)

    return result


def _to_quantity(value) -> int:
    if isinstance(value, bool):
        raise InventoryValidationError("quantity must be an integer")
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        raise InventoryValidationError("quantity must be an integer")
    if quantity <= 0:
        raise InventoryValidationError("quantity must be greater than zero")
    return quantity


@transaction.atomic
def update_prescription(*, prescription_id, actor=None, **fields) -> Prescription:
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise InventoryValidationError(f"Unknown or read-only field(s): {', '.join(sorted(unknown))}")

    if "quantity" in fields:
        fields["quantity"] = _to_quantity(fields["quantity"])

    prescription = _lock_prescription(prescription_id)
    _require_pending(prescription, "update")

    changed = {}
    for name, value in fields.items():
        if value is None:
            continue
        if getattr(prescription, name) != value:
            changed[name] = {"old": getattr(prescription, name), "new": value}
            setattr(prescription, name, value)

    if not changed:
        return prescription

    prescription.save(update_fields=[*changed, "updated_at"])

    record_after_commit(
        actor=actor,
        action="prescription.updated",
        entity_id=prescription.pk,
        details={"changes": changed},
    )
    return prescription


@transaction.atomic
def cancel_prescription(*, prescription_id, actor=None, reason: str = "") -> Prescription:
    prescription = _lock_prescription(prescription_id)
    _require_pending(prescription, "cancel")

    prescription.status = Prescription.Status.CANCELLED
    prescription.cancelled_at = timezone.now()
    prescription.cancelled_by = actor
    prescription.save(update_fields=["status", "cancelled_at", "cancelled_by", "updated_at"])

    record_after_commit(
        actor=actor,
        action="prescription.cancelled",
        entity_id=prescription.pk,
        details={
            "medication_id": str(prescription.medication_id),
            "quantity": prescription.quantity,
            "patient_id": prescription.patient_id,
            "reason": (reason or "").strip(),
        },
    )
    return prescription


def list_pending_prescriptions(*, patient_id=None, search=None):
    qs = Prescription.objects.filter(status=Prescription.Status.PENDING).select_related(
        "medication"
    )
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if search:
        qs = qs.filter(
            Q(patient_name__icontains=search)
            | Q(medication__name__icontains=search)
            | Q(prescriber_name__icontains=search)
        )
    return qs.order_by("prescribed_at")
