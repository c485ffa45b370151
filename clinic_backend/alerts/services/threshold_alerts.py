# alerts/services/threshold_alerts.py

"""
THRESHOLD ALERTING

Called by the stock ledger engine once a mutation that changed
stock_status has committed.

Routing:
- any -> out_of_stock       : URGENT to pharmacy, silent HIGH info to management
- in_stock -> low_stock     : HIGH low-stock alert to pharmacy
- anything else             : nothing

Never raises: notifier failures are logged and swallowed.
"""

from __future__ import annotations

import logging
from typing import List

from alerts.models import Notification
from alerts.services.notifier import Audience, notify_safely
from medications.models import Medication

logger = logging.getLogger(__name__)

CATEGORY_OUT_OF_STOCK = "stock.out_of_stock"
CATEGORY_LOW_STOCK = "stock.low_stock"

Status = Medication.StockStatus


def on_stock_status_change(medication: Medication, previous_status: str, new_status: str) -> int:
    """
    Emit alerts for a committed status transition.

    Returns the number of notifications successfully handed to the notifier.
    """
    if previous_status == new_status:
        return 0

    target = ("medication", str(medication.pk))
    sent = 0

    if new_status == Status.OUT_OF_STOCK:
        sent += notify_safely(
            Audience.pharmacy(),
            f"Out of stock: {medication.name}",
            f"{medication.name} is out of stock. Reorder immediately.",
            urgency=Notification.Urgency.URGENT,
            category=CATEGORY_OUT_OF_STOCK,
            target_ref=target,
        )
        sent += notify_safely(
            Audience.management(),
            f"Out of stock: {medication.name}",
            f"The pharmacy has run out of {medication.name}.",
            urgency=Notification.Urgency.HIGH,
            category=CATEGORY_OUT_OF_STOCK,
            target_ref=target,
            silent=True,
        )

    elif previous_status == Status.IN_STOCK and new_status == Status.LOW_STOCK:
        sent += notify_safely(
            Audience.pharmacy(),
            f"Low stock: {medication.name}",
            (
                f"{medication.name} is down to {medication.current_stock} "
                f"(minimum {medication.minimum_stock})."
            ),
            urgency=Notification.Urgency.HIGH,
            category=CATEGORY_LOW_STOCK,
            target_ref=target,
        )

    if sent:
        logger.info(
            "Stock status alert sent",
            extra={
                "medication_id": str(medication.pk),
                "previous_status": previous_status,
                "new_status": new_status,
            },
        )

    return sent


def list_low_stock() -> List[Medication]:
    """Medications at or below their minimum (including empty ones)."""
    return list(
        Medication.objects.exclude(stock_status=Status.IN_STOCK).order_by(
            "current_stock", "name"
        )
    )
