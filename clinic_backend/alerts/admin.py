from django.contrib import admin

from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("title", "recipient", "urgency", "category", "silent", "is_read", "created_at")
    list_filter = ("urgency", "category", "silent", "is_read")
    search_fields = ("title", "body", "target_id")
    readonly_fields = ("created_at",)
