from django.contrib import admin

from .models import Prescription


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ("medication", "quantity", "patient_name", "status", "prescribed_at", "delivered_at")
    list_filter = ("status",)
    search_fields = ("patient_name", "patient_id", "consultation_id", "medication__name")
    readonly_fields = ("status", "delivered_at", "delivered_by", "cancelled_at", "cancelled_by", "prescribed_at")
