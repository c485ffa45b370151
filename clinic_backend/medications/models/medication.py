# medications/models/medication.py

"""
MEDICATION (STOCKED ITEM)

STOCK MODEL (IMPORTANT):
- current_stock is a materialized projection of the StockMovement ledger
- current_stock is mutated ONLY by medications.services.stock_ledger
- stock_status is ALWAYS derived (never user-controlled)
- unit_price is the reference purchase price (updated on order receipt)
"""

import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q


def derive_stock_status(current_stock, minimum_stock) -> str:
    """
    out_of_stock  <=> stock == 0
    low_stock     <=> 0 < stock <= minimum
    in_stock      otherwise
    """
    stock = int(current_stock or 0)
    minimum = int(minimum_stock or 0)

    if stock <= 0:
        return Medication.StockStatus.OUT_OF_STOCK
    if stock <= minimum:
        return Medication.StockStatus.LOW_STOCK
    return Medication.StockStatus.IN_STOCK


class Medication(models.Model):
    class StockStatus(models.TextChoices):
        IN_STOCK = "in_stock", "In stock"
        LOW_STOCK = "low_stock", "Low stock"
        OUT_OF_STOCK = "out_of_stock", "Out of stock"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=200, db_index=True)
    active_ingredient = models.CharField(max_length=200, blank=True, default="")
    dosage = models.CharField(max_length=100, blank=True, default="")
    form = models.CharField(max_length=50, blank=True, default="")
    manufacturer = models.CharField(max_length=200, blank=True, default="")
    barcode = models.CharField(max_length=50, blank=True, default="", db_index=True)

    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Reference purchase price (refreshed on supplier order receipt).",
    )

    current_stock = models.PositiveIntegerField(
        default=0,
        help_text="Stock on hand (ledger-managed only)",
    )
    minimum_stock = models.PositiveIntegerField(default=10)

    # Derived field, NEVER edited directly
    stock_status = models.CharField(
        max_length=20,
        choices=StockStatus.choices,
        default=StockStatus.OUT_OF_STOCK,
        db_index=True,
    )

    expiration_date = models.DateField(null=True, blank=True)
    prescription_required = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["name"], name="medications_name_idx"),
            models.Index(fields=["expiration_date"], name="medications_expiry_idx"),
            models.Index(fields=["stock_status", "name"], name="medications_status_name_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(current_stock__gte=0),
                name="chk_medication_stock_gte_zero",
            ),
            models.CheckConstraint(
                condition=Q(unit_price__gte=Decimal("0.00")),
                name="chk_medication_unit_price_nonnegative",
            ),
        ]

    def clean(self):
        if not (self.name or "").strip():
            raise ValidationError({"name": "name is required"})

        if self.unit_price is not None and self.unit_price < Decimal("0.00"):
            raise ValidationError({"unit_price": "unit_price cannot be negative"})

        if self.current_stock is not None and self.current_stock < 0:
            raise ValidationError({"current_stock": "current_stock cannot be negative"})

    def save(self, *args, **kwargs):
        if self.name is not None:
            self.name = self.name.strip()

        # stock_status is ALWAYS derived
        self.stock_status = derive_stock_status(self.current_stock, self.minimum_stock)

        update_fields = kwargs.get("update_fields")
        if update_fields is not None:
            fields = set(update_fields)
            if fields & {"current_stock", "minimum_stock"}:
                fields.add("stock_status")
            kwargs["update_fields"] = list(fields)

        self.full_clean()
        return super().save(*args, **kwargs)

    @property
    def is_low_stock(self) -> bool:
        return self.stock_status != self.StockStatus.IN_STOCK

    @property
    def stock_value(self) -> Decimal:
        return (self.unit_price or Decimal("0.00")) * Decimal(int(self.current_stock or 0))

    def __str__(self):
        label = f"{self.name} {self.dosage}".strip()
        return f"{label} (stock: {self.current_stock})"
