# medications/api/serializers.py

"""
MEDICATION SERIALIZERS

GUARANTEES:
- current_stock and stock_status are read-only (ledger-managed)
- opening stock is write-only and posted through the ledger engine
"""

from rest_framework import serializers

from medications.models import Medication, StockMovement


class MedicationSerializer(serializers.ModelSerializer):
    initial_stock = serializers.IntegerField(
        write_only=True, required=False, min_value=0, default=0
    )
    stock_value = serializers.DecimalField(max_digits=18, decimal_places=2, read_only=True)

    class Meta:
        model = Medication
        fields = [
            "id",
            "name",
            "active_ingredient",
            "dosage",
            "form",
            "manufacturer",
            "barcode",
            "unit_price",
            "current_stock",
            "minimum_stock",
            "stock_status",
            "stock_value",
            "expiration_date",
            "prescription_required",
            "initial_stock",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "id",
            "current_stock",
            "stock_status",
            "stock_value",
            "created_at",
            "updated_at",
        ]

    def validate_name(self, value):
        value = (value or "").strip()
        if not value:
            raise serializers.ValidationError("Name is required")
        return value

    def validate_unit_price(self, value):
        if value is None or value < 0:
            raise serializers.ValidationError("Unit price must be non-negative")
        return value


class StockMovementSerializer(serializers.ModelSerializer):
    performed_by_email = serializers.EmailField(source="performed_by.email", read_only=True, default=None)
    order_number = serializers.CharField(source="order.order_number", read_only=True, default=None)

    class Meta:
        model = StockMovement
        fields = [
            "id",
            "movement_type",
            "quantity",
            "quantity_delta",
            "stock_after",
            "unit_price_snapshot",
            "reason",
            "batch_number",
            "order",
            "order_number",
            "performed_by",
            "performed_by_email",
            "created_at",
        ]
        read_only_fields = fields


class StockAdjustmentSerializer(serializers.Serializer):
    medication_id = serializers.UUIDField()
    counted_quantity = serializers.IntegerField(min_value=0)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")


class ExpiryAlertSerializer(serializers.Serializer):
    medication_id = serializers.UUIDField(source="medication.id")
    name = serializers.CharField(source="medication.name")
    current_stock = serializers.IntegerField(source="medication.current_stock")
    expiration_date = serializers.DateField()
    days_remaining = serializers.IntegerField()
    urgency = serializers.CharField()


class InventoryStatsSerializer(serializers.Serializer):
    total_medications = serializers.IntegerField()
    total_value = serializers.DecimalField(max_digits=18, decimal_places=2)
    low_stock = serializers.IntegerField()
    expiring_soon = serializers.IntegerField()
