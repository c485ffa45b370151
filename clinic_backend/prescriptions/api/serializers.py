# prescriptions/api/serializers.py

from rest_framework import serializers

from prescriptions.models import Prescription


class PrescriptionSerializer(serializers.ModelSerializer):
    medication_name = serializers.CharField(source="medication.name", read_only=True)
    medication_stock = serializers.IntegerField(source="medication.current_stock", read_only=True)

    class Meta:
        model = Prescription
        fields = [
            "id",
            "consultation_id",
            "patient_id",
            "patient_name",
            "prescriber_id",
            "prescriber_name",
            "medication",
            "medication_name",
            "medication_stock",
            "quantity",
            "dosage_instructions",
            "treatment_duration",
            "special_instructions",
            "status",
            "prescribed_at",
            "delivered_at",
            "delivered_by",
            "cancelled_at",
            "cancelled_by",
        ]
        read_only_fields = fields


class PrescriptionUpdateSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(required=False, min_value=1)
    dosage_instructions = serializers.CharField(required=False, allow_blank=True, max_length=255)
    treatment_duration = serializers.CharField(required=False, allow_blank=True, max_length=100)
    special_instructions = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide at least one field to update")
        return attrs


class PrescriptionCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)
