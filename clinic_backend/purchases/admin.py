from django.contrib import admin

from .models import DocumentNumberSeries, Supplier, SupplierOrder, SupplierOrderLine


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ("name", "contact_name", "phone", "email", "average_lead_time_days", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name", "contact_name", "email")


class SupplierOrderLineInline(admin.TabularInline):
    model = SupplierOrderLine
    extra = 0
    can_delete = False
    readonly_fields = ("medication", "quantity_ordered", "quantity_received", "unit_price")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(SupplierOrder)
class SupplierOrderAdmin(admin.ModelAdmin):
    """Orders change state through the order service only."""

    list_display = ("order_number", "supplier", "status", "total_amount", "created_at", "received_at")
    list_filter = ("status",)
    search_fields = ("order_number", "supplier__name")
    inlines = [SupplierOrderLineInline]
    readonly_fields = (
        "order_number",
        "supplier",
        "status",
        "total_amount",
        "received_at",
        "cancelled_at",
        "cancel_reason",
        "created_by",
        "created_at",
    )

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(DocumentNumberSeries)
class DocumentNumberSeriesAdmin(admin.ModelAdmin):
    list_display = ("key", "date_key", "next_seq", "updated_at")
    list_filter = ("key",)
