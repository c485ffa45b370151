# alerts/models.py

"""
IN-APP NOTIFICATIONS

Written by alerts.services.notifier.DatabaseNotifier only.
Delivery transport (push, email, SMS) is outside this project.
"""

import uuid

from django.conf import settings
from django.db import models


class Notification(models.Model):
    class Urgency(models.TextChoices):
        LOW = "low", "Low"
        NORMAL = "normal", "Normal"
        HIGH = "high", "High"
        URGENT = "urgent", "Urgent"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
    )

    title = models.CharField(max_length=200)
    body = models.TextField(blank=True, default="")

    urgency = models.CharField(
        max_length=10,
        choices=Urgency.choices,
        default=Urgency.NORMAL,
    )
    category = models.CharField(max_length=50, db_index=True)

    target_type = models.CharField(max_length=50, blank=True, default="")
    target_id = models.CharField(max_length=64, blank=True, default="")

    silent = models.BooleanField(default=False)
    is_read = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["recipient", "is_read", "created_at"], name="notification_inbox_idx"),
        ]

    def __str__(self):
        return f"[{self.urgency}] {self.title} -> {self.recipient_id}"
