# medications/models/stock_movement.py

"""
CANONICAL INVENTORY LEDGER

Immutable stock ledger entry.

GUARANTEES:
- Append-only (no updates, no deletes)
- Created ONCE, never edited, by the stock ledger engine only
- quantity is the magnitude, quantity_delta the signed change
- Sum of quantity_delta per medication == Medication.current_stock
- Movement direction validated against movement_type
"""

import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q

from .medication import Medication


class StockMovement(models.Model):
    class MovementType(models.TextChoices):
        IN = "IN", "Stock In"
        OUT = "OUT", "Stock Out"
        ADJUSTMENT = "ADJUSTMENT", "Adjustment"

    # +1 must increase stock, -1 must decrease, None = either direction
    MOVEMENT_DIRECTION = {
        MovementType.IN: 1,
        MovementType.OUT: -1,
        MovementType.ADJUSTMENT: None,
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    medication = models.ForeignKey(
        Medication,
        on_delete=models.PROTECT,
        related_name="stock_movements",
    )

    movement_type = models.CharField(max_length=10, choices=MovementType.choices)

    quantity = models.PositiveIntegerField()
    quantity_delta = models.IntegerField(
        help_text="Signed stock change (positive = in, negative = out).",
    )
    stock_after = models.PositiveIntegerField(
        help_text="Medication stock right after this movement.",
    )

    unit_price_snapshot = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        default=None,
        help_text="Unit price at movement time (immutable).",
    )

    reason = models.CharField(max_length=255)
    batch_number = models.CharField(max_length=64, blank=True, default="", db_index=True)

    order = models.ForeignKey(
        "purchases.SupplierOrder",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="stock_movements",
    )

    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="stock_movements",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["medication", "created_at"], name="stockmove_med_created_idx"),
            models.Index(fields=["order", "created_at"], name="stockmove_order_created_idx"),
            models.Index(fields=["movement_type"], name="stockmove_type_idx"),
            models.Index(fields=["created_at"], name="stockmove_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gt=0),
                name="chk_stockmovement_quantity_gt_zero",
            ),
            models.CheckConstraint(
                condition=~Q(quantity_delta=0),
                name="chk_stockmovement_delta_nonzero",
            ),
        ]

    def clean(self):
        if not self.quantity or self.quantity <= 0:
            raise ValidationError("quantity must be greater than zero")

        if self.quantity_delta is None or abs(int(self.quantity_delta)) != int(self.quantity):
            raise ValidationError("quantity must equal the magnitude of quantity_delta")

        if not (self.reason or "").strip():
            raise ValidationError({"reason": "reason is required"})

        direction = self.MOVEMENT_DIRECTION.get(self.movement_type)
        if direction is not None and (self.quantity_delta > 0) != (direction > 0):
            raise ValidationError(
                f"{self.movement_type} movement cannot have quantity_delta={self.quantity_delta}"
            )

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("StockMovement records are immutable")

        self.reason = (self.reason or "").strip()
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(
            "StockMovement records are immutable and cannot be deleted"
        )

    def __str__(self):
        medication_name = getattr(self.medication, "name", "Medication")
        return f"{medication_name} | {self.movement_type} | {self.quantity_delta:+d}"
