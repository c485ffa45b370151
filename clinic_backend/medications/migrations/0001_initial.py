import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Medication",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(db_index=True, max_length=200)),
                ("active_ingredient", models.CharField(blank=True, default="", max_length=200)),
                ("dosage", models.CharField(blank=True, default="", max_length=100)),
                ("form", models.CharField(blank=True, default="", max_length=50)),
                ("manufacturer", models.CharField(blank=True, default="", max_length=200)),
                ("barcode", models.CharField(blank=True, db_index=True, default="", max_length=50)),
                (
                    "unit_price",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Reference purchase price (refreshed on supplier order receipt).",
                        max_digits=12,
                    ),
                ),
                ("current_stock", models.PositiveIntegerField(default=0, help_text="Stock on hand (ledger-managed only)")),
                ("minimum_stock", models.PositiveIntegerField(default=10)),
                (
                    "stock_status",
                    models.CharField(
                        choices=[
                            ("in_stock", "In stock"),
                            ("low_stock", "Low stock"),
                            ("out_of_stock", "Out of stock"),
                        ],
                        db_index=True,
                        default="out_of_stock",
                        max_length=20,
                    ),
                ),
                ("expiration_date", models.DateField(blank=True, null=True)),
                ("prescription_required", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
                "indexes": [
                    models.Index(fields=["name"], name="medications_name_idx"),
                    models.Index(fields=["expiration_date"], name="medications_expiry_idx"),
                    models.Index(fields=["stock_status", "name"], name="medications_status_name_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(current_stock__gte=0),
                        name="chk_medication_stock_gte_zero",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(unit_price__gte=Decimal("0.00")),
                        name="chk_medication_unit_price_nonnegative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockMovement",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "movement_type",
                    models.CharField(
                        choices=[("IN", "Stock In"), ("OUT", "Stock Out"), ("ADJUSTMENT", "Adjustment")],
                        max_length=10,
                    ),
                ),
                ("quantity", models.PositiveIntegerField()),
                ("quantity_delta", models.IntegerField(help_text="Signed stock change (positive = in, negative = out).")),
                ("stock_after", models.PositiveIntegerField(help_text="Medication stock right after this movement.")),
                (
                    "unit_price_snapshot",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        default=None,
                        help_text="Unit price at movement time (immutable).",
                        max_digits=12,
                        null=True,
                    ),
                ),
                ("reason", models.CharField(max_length=255)),
                ("batch_number", models.CharField(blank=True, db_index=True, default="", max_length=64)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "medication",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stock_movements",
                        to="medications.medication",
                    ),
                ),
                (
                    "performed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="stock_movements",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["medication", "created_at"], name="stockmove_med_created_idx"),
                    models.Index(fields=["movement_type"], name="stockmove_type_idx"),
                    models.Index(fields=["created_at"], name="stockmove_created_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(quantity__gt=0),
                        name="chk_stockmovement_quantity_gt_zero",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("quantity_delta", 0), _negated=True),
                        name="chk_stockmovement_delta_nonzero",
                    ),
                ],
            },
        ),
    ]
