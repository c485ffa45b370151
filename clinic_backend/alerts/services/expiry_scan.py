# alerts/services/expiry_scan.py

"""
EXPIRY SCAN

Medications still in stock whose expiration date falls within the horizon.

Urgency buckets (days remaining):
- <= 30 (including already expired) : high
- <= 60                             : medium
- otherwise                         : low
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional

from django.conf import settings
from django.utils import timezone

from alerts.models import Notification
from alerts.services.notifier import Audience, notify_safely
from medications.models import Medication

logger = logging.getLogger(__name__)

CATEGORY_EXPIRY = "stock.expiry"

URGENCY_HIGH = "high"
URGENCY_MEDIUM = "medium"
URGENCY_LOW = "low"


@dataclass(frozen=True)
class ExpiryAlert:
    medication: Medication
    expiration_date: date
    days_remaining: int
    urgency: str

    @property
    def is_expired(self) -> bool:
        return self.days_remaining < 0


def expiry_urgency(days_remaining: int) -> str:
    if days_remaining <= 30:
        return URGENCY_HIGH
    if days_remaining <= 60:
        return URGENCY_MEDIUM
    return URGENCY_LOW


def _horizon(horizon_days: Optional[int]) -> int:
    if horizon_days is None:
        horizon_days = getattr(settings, "PHARMACY_EXPIRY_HORIZON_DAYS", 90)
    horizon_days = int(horizon_days)
    if horizon_days < 0:
        raise ValueError("horizon_days cannot be negative")
    return horizon_days


def scan_expiring_medications(
    *,
    horizon_days: Optional[int] = None,
    today: Optional[date] = None,
) -> List[ExpiryAlert]:
    today = today or timezone.localdate()
    limit = today + timedelta(days=_horizon(horizon_days))

    medications = Medication.objects.filter(
        current_stock__gt=0,
        expiration_date__isnull=False,
        expiration_date__lte=limit,
    ).order_by("expiration_date", "name")

    alerts = []
    for medication in medications:
        days = (medication.expiration_date - today).days
        alerts.append(
            ExpiryAlert(
                medication=medication,
                expiration_date=medication.expiration_date,
                days_remaining=days,
                urgency=expiry_urgency(days),
            )
        )
    return alerts


def notify_expiring_medications(
    *,
    horizon_days: Optional[int] = None,
    today: Optional[date] = None,
) -> List[ExpiryAlert]:
    """
    Scan and send one pharmacy notification per high-urgency item.
    Returns the high-urgency alerts.
    """
    urgent = [
        a
        for a in scan_expiring_medications(horizon_days=horizon_days, today=today)
        if a.urgency == URGENCY_HIGH
    ]

    for alert in urgent:
        med = alert.medication
        if alert.is_expired:
            body = f"{med.name} expired on {alert.expiration_date:%Y-%m-%d} ({med.current_stock} in stock)."
        else:
            body = (
                f"{med.name} expires in {alert.days_remaining} day(s) "
                f"({med.current_stock} in stock)."
            )

        notify_safely(
            Audience.pharmacy(),
            f"Expiring soon: {med.name}",
            body,
            urgency=Notification.Urgency.HIGH,
            category=CATEGORY_EXPIRY,
            target_ref=("medication", str(med.pk)),
        )

    logger.info("Expiry scan finished", extra={"high_urgency": len(urgent)})
    return urgent
