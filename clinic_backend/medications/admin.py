from django.contrib import admin

from .models import Medication, StockMovement


@admin.register(Medication)
class MedicationAdmin(admin.ModelAdmin):
    """Catalogue fields only; stock changes go through the stock ledger."""

    list_display = ("name", "dosage", "form", "current_stock", "minimum_stock", "stock_status", "expiration_date")
    list_filter = ("stock_status", "form", "prescription_required")
    search_fields = ("name", "active_ingredient", "barcode")
    readonly_fields = ("current_stock", "stock_status", "created_at", "updated_at")


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ("medication", "movement_type", "quantity_delta", "stock_after", "reason", "batch_number", "created_at")
    list_filter = ("movement_type",)
    search_fields = ("medication__name", "reason", "batch_number")
    readonly_fields = [f.name for f in StockMovement._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
