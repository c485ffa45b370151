# prescriptions/models.py

"""
PRESCRIPTION LINE (PHARMACY VIEW)

One medication prescribed during a consultation. Consultations, patients
and prescribers live in other clinic services; only their identifiers and
a display snapshot are kept here.

Stock is NOT touched when prescribing. It is deducted only when the
pharmacist confirms delivery (prescriptions.services.dispensing_service).
"""

import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q

from medications.models import Medication


class Prescription(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        DELIVERED = "delivered", "Delivered"
        CANCELLED = "cancelled", "Cancelled"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    consultation_id = models.CharField(max_length=64, blank=True, default="", db_index=True)
    patient_id = models.CharField(max_length=64, db_index=True)
    patient_name = models.CharField(max_length=200, blank=True, default="")
    prescriber_id = models.CharField(max_length=64, blank=True, default="")
    prescriber_name = models.CharField(max_length=200, blank=True, default="")

    medication = models.ForeignKey(
        Medication,
        on_delete=models.PROTECT,
        related_name="prescriptions",
    )

    quantity = models.PositiveIntegerField()
    dosage_instructions = models.CharField(max_length=255, blank=True, default="")
    treatment_duration = models.CharField(max_length=100, blank=True, default="")
    special_instructions = models.TextField(blank=True, default="")

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )

    prescribed_at = models.DateTimeField(auto_now_add=True)

    delivered_at = models.DateTimeField(null=True, blank=True)
    delivered_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="prescriptions_delivered",
    )

    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="prescriptions_cancelled",
    )

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["prescribed_at"]
        indexes = [
            models.Index(fields=["status", "prescribed_at"], name="prescription_status_idx"),
            models.Index(fields=["patient_id", "status"], name="prescription_patient_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gt=0),
                name="chk_prescription_quantity_gt_zero",
            ),
        ]

    def clean(self):
        if not self.quantity or self.quantity <= 0:
            raise ValidationError({"quantity": "quantity must be greater than zero"})

        if self.status == self.Status.DELIVERED and not self.delivered_at:
            raise ValidationError(
                {"delivered_at": "delivered_at is required when status is delivered"}
            )

        if self.status == self.Status.CANCELLED and not self.cancelled_at:
            raise ValidationError(
                {"cancelled_at": "cancelled_at is required when status is cancelled"}
            )

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    @property
    def is_pending(self) -> bool:
        return self.status == self.Status.PENDING

    def __str__(self):
        medication_name = getattr(self.medication, "name", "Medication")
        return f"{medication_name} x {self.quantity} for {self.patient_name or self.patient_id}"
