# purchases/api/serializers.py

from rest_framework import serializers

from purchases.models import Supplier, SupplierOrder, SupplierOrderLine
from purchases.services.order_service import MAX_LINE_QUANTITY


class SupplierSerializer(serializers.ModelSerializer):
    class Meta:
        model = Supplier
        fields = "__all__"
        read_only_fields = ("id", "created_at")


class SupplierOrderLineCreateSerializer(serializers.Serializer):
    medication_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_LINE_QUANTITY)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)


class SupplierOrderCreateSerializer(serializers.Serializer):
    supplier_id = serializers.UUIDField()
    expected_delivery_date = serializers.DateField(required=False, allow_null=True)
    lines = SupplierOrderLineCreateSerializer(many=True, allow_empty=False)


class SupplierOrderLineSerializer(serializers.ModelSerializer):
    medication_name = serializers.CharField(source="medication.name", read_only=True)
    outstanding = serializers.IntegerField(read_only=True)
    line_total = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = SupplierOrderLine
        fields = (
            "id",
            "medication",
            "medication_name",
            "quantity_ordered",
            "quantity_received",
            "outstanding",
            "unit_price",
            "line_total",
        )


class SupplierOrderSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source="supplier.name", read_only=True)
    lines = SupplierOrderLineSerializer(many=True, read_only=True)

    class Meta:
        model = SupplierOrder
        fields = (
            "id",
            "order_number",
            "supplier",
            "supplier_name",
            "status",
            "total_amount",
            "expected_delivery_date",
            "received_at",
            "cancelled_at",
            "cancel_reason",
            "created_by",
            "created_at",
            "lines",
        )


class ReceiveLineSerializer(serializers.Serializer):
    line_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class ReceiveSupplierOrderSerializer(serializers.Serializer):
    """Omit lines to receive everything outstanding."""

    lines = ReceiveLineSerializer(many=True, required=False, allow_empty=False)

    def validate_lines(self, value):
        ids = [str(line["line_id"]) for line in value]
        if len(ids) != len(set(ids)):
            raise serializers.ValidationError("Each line may appear only once")
        return value


class CancelSupplierOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)
