# purchases/models.py

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from medications.models import Medication

TWOPLACES = Decimal("0.01")


def _money(v) -> Decimal:
    return Decimal(str(v or "0.00")).quantize(TWOPLACES)


User = settings.AUTH_USER_MODEL


class Supplier(models.Model):
    """
    Supplier master.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=200)
    contact_name = models.CharField(max_length=200, blank=True, default="")
    phone = models.CharField(max_length=50, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    address = models.TextField(blank=True, default="")

    average_lead_time_days = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Typical days between order and delivery",
    )

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["name"], name="supplier_name_idx"),
            models.Index(fields=["is_active"], name="supplier_active_idx"),
        ]

    def clean(self):
        if not (self.name or "").strip():
            raise ValidationError({"name": "name is required"})

    def save(self, *args, **kwargs):
        if self.name is not None:
            self.name = self.name.strip()
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return self.name


class SupplierOrder(models.Model):
    """
    Supplier purchase order header.

    Lifecycle (services only, see purchases.services.order_service):
    - ORDERED -> PARTIALLY_RECEIVED -> RECEIVED
    - ORDERED | PARTIALLY_RECEIVED -> CANCELLED
    - status is a pure function of the lines (plus the cancel flag)
    """

    class Status(models.TextChoices):
        ORDERED = "ordered", "Ordered"
        PARTIALLY_RECEIVED = "partially_received", "Partially received"
        RECEIVED = "received", "Received"
        CANCELLED = "cancelled", "Cancelled"

    OPEN_STATUSES = (Status.ORDERED, Status.PARTIALLY_RECEIVED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    supplier = models.ForeignKey(
        Supplier,
        on_delete=models.PROTECT,
        related_name="orders",
    )

    order_number = models.CharField(max_length=32, unique=True)

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ORDERED,
        db_index=True,
    )

    total_amount = models.DecimalField(
        max_digits=14, decimal_places=2, default=Decimal("0.00")
    )

    expected_delivery_date = models.DateField(null=True, blank=True)

    received_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancel_reason = models.CharField(max_length=255, blank=True, default="")

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="supplier_orders_created",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gte=Decimal("0.00")),
                name="supplier_order_total_nonnegative",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "created_at"], name="supplier_order_status_idx"),
            models.Index(fields=["supplier", "created_at"], name="supplier_order_supplier_idx"),
        ]

    def clean(self):
        if not (self.order_number or "").strip():
            raise ValidationError({"order_number": "order_number is required"})

        if self.total_amount is not None and self.total_amount < Decimal("0.00"):
            raise ValidationError({"total_amount": "total_amount cannot be negative"})

        if self.status == self.Status.RECEIVED and not self.received_at:
            raise ValidationError(
                {"received_at": "received_at is required when status is received"}
            )

        if self.status == self.Status.CANCELLED and not self.cancelled_at:
            raise ValidationError(
                {"cancelled_at": "cancelled_at is required when status is cancelled"}
            )

    def save(self, *args, **kwargs):
        if self.order_number is not None:
            self.order_number = self.order_number.strip()

        self.full_clean()
        return super().save(*args, **kwargs)

    @property
    def is_open(self) -> bool:
        return self.status in self.OPEN_STATUSES

    def __str__(self):
        return f"{self.order_number} ({self.supplier.name})"


class SupplierOrderLine(models.Model):
    """
    One medication on a supplier order.

    quantity_received only moves forward, and never past quantity_ordered.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey(
        SupplierOrder,
        on_delete=models.CASCADE,
        related_name="lines",
    )
    medication = models.ForeignKey(
        Medication,
        on_delete=models.PROTECT,
        related_name="supplier_order_lines",
    )

    quantity_ordered = models.PositiveIntegerField()
    quantity_received = models.PositiveIntegerField(default=0)

    unit_price = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity_ordered__gt=0),
                name="supplier_order_line_ordered_gt_zero",
            ),
            models.CheckConstraint(
                condition=models.Q(quantity_received__lte=models.F("quantity_ordered")),
                name="supplier_order_line_received_lte_ordered",
            ),
            models.CheckConstraint(
                condition=models.Q(unit_price__gte=Decimal("0.00")),
                name="supplier_order_line_unit_price_nonnegative",
            ),
        ]
        indexes = [
            models.Index(fields=["order", "created_at"], name="order_line_order_idx"),
            models.Index(fields=["medication", "created_at"], name="order_line_medication_idx"),
        ]

    def clean(self):
        if not self.quantity_ordered or self.quantity_ordered <= 0:
            raise ValidationError({"quantity_ordered": "quantity_ordered must be > 0"})

        if (self.quantity_received or 0) > (self.quantity_ordered or 0):
            raise ValidationError(
                {"quantity_received": "quantity_received cannot exceed quantity_ordered"}
            )

        if self.unit_price is not None and self.unit_price < Decimal("0.00"):
            raise ValidationError({"unit_price": "unit_price cannot be negative"})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    @property
    def outstanding(self) -> int:
        return max(int(self.quantity_ordered or 0) - int(self.quantity_received or 0), 0)

    @property
    def line_total(self) -> Decimal:
        return _money(Decimal(str(self.quantity_ordered)) * Decimal(str(self.unit_price)))

    def __str__(self):
        medication_name = getattr(self.medication, "name", "Medication")
        return f"{medication_name} {self.quantity_received}/{self.quantity_ordered}"


class DocumentNumberSeries(models.Model):
    """
    Per-key, per-day counter backing order number allocation.

    Rows are locked with select_for_update() and incremented in place.
    """

    key = models.CharField(max_length=32)
    date_key = models.DateField()
    next_seq = models.PositiveIntegerField(default=1)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["key", "date_key"],
                name="uniq_document_number_series_key_date",
            ),
        ]

    def __str__(self):
        return f"{self.key}@{self.date_key}: {self.next_seq}"
