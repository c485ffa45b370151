import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("medications", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Prescription",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("consultation_id", models.CharField(blank=True, db_index=True, default="", max_length=64)),
                ("patient_id", models.CharField(db_index=True, max_length=64)),
                ("patient_name", models.CharField(blank=True, default="", max_length=200)),
                ("prescriber_id", models.CharField(blank=True, default="", max_length=64)),
                ("prescriber_name", models.CharField(blank=True, default="", max_length=200)),
                ("quantity", models.PositiveIntegerField()),
                ("dosage_instructions", models.CharField(blank=True, default="", max_length=255)),
                ("treatment_duration", models.CharField(blank=True, default="", max_length=100)),
                ("special_instructions", models.TextField(blank=True, default="")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("delivered", "Delivered"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("prescribed_at", models.DateTimeField(auto_now_add=True)),
                ("delivered_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "cancelled_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="prescriptions_cancelled",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "delivered_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="prescriptions_delivered",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "medication",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="prescriptions",
                        to="medications.medication",
                    ),
                ),
            ],
            options={
                "ordering": ["prescribed_at"],
                "indexes": [
                    models.Index(fields=["status", "prescribed_at"], name="prescription_status_idx"),
                    models.Index(fields=["patient_id", "status"], name="prescription_patient_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(quantity__gt=0),
                        name="chk_prescription_quantity_gt_zero",
                    ),
                ],
            },
        ),
    ]
