# alerts/services/notifier.py

"""
NOTIFICATION COLLABORATOR

Purpose:
- Single seam through which pharmacy alerts leave the inventory core.
- Audiences are roles and/or explicit user ids, resolved by the notifier.

Configured by settings.PHARMACY_NOTIFIER (dotted path to a class).
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db.models import Q
from django.utils.module_loading import import_string

from alerts.models import Notification
from permissions.roles import MANAGEMENT_ROLES, PHARMACY_ROLES

logger = logging.getLogger(__name__)

DEFAULT_NOTIFIER = "alerts.services.notifier.DatabaseNotifier"


@dataclass(frozen=True)
class Audience:
    roles: FrozenSet[str] = field(default_factory=frozenset)
    user_ids: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def pharmacy(cls) -> "Audience":
        return cls(roles=frozenset(PHARMACY_ROLES))

    @classmethod
    def management(cls) -> "Audience":
        return cls(roles=frozenset(MANAGEMENT_ROLES))

    @classmethod
    def users(cls, *user_ids) -> "Audience":
        return cls(user_ids=frozenset(str(u) for u in user_ids if u))

    @property
    def is_empty(self) -> bool:
        return not self.roles and not self.user_ids


def _is_uuid(value) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class Notifier:
    """Base notifier. Subclasses override notify()."""

    def notify(
        self,
        audience: Audience,
        title: str,
        body: str,
        *,
        urgency: str = Notification.Urgency.NORMAL,
        category: str,
        target_ref: Optional[Tuple[str, str]] = None,
        silent: bool = False,
    ) -> None:
        raise NotImplementedError


class DatabaseNotifier(Notifier):
    """Writes one Notification row per active user in the audience."""

    def notify(
        self,
        audience,
        title,
        body,
        *,
        urgency=Notification.Urgency.NORMAL,
        category,
        target_ref=None,
        silent=False,
    ) -> None:
        if audience.is_empty:
            return

        User = get_user_model()

        match = Q()
        if audience.roles:
            match |= Q(role__in=audience.roles)
        if audience.user_ids:
            # ids from other clinic services may not be local user keys
            match |= Q(pk__in=[u for u in audience.user_ids if _is_uuid(u)])

        recipients = User.objects.filter(match, is_active=True)

        target_type, target_id = target_ref or ("", "")

        rows = [
            Notification(
                recipient=user,
                title=title,
                body=body,
                urgency=urgency,
                category=category,
                target_type=target_type,
                target_id=str(target_id),
                silent=silent,
            )
            for user in recipients
        ]
        Notification.objects.bulk_create(rows)

        logger.info(
            "Notifications created",
            extra={"category": category, "urgency": urgency, "count": len(rows)},
        )


def get_notifier() -> Notifier:
    path = getattr(settings, "PHARMACY_NOTIFIER", None) or DEFAULT_NOTIFIER
    return import_string(path)()


def notify_safely(audience: Audience, title: str, body: str, **kwargs) -> bool:
    """
    Best-effort delivery. Returns False when the notifier raised;
    the failure is logged and never propagated.
    """
    try:
        get_notifier().notify(audience, title, body, **kwargs)
    except Exception:
        logger.exception(
            "Notifier failed",
            extra={"category": kwargs.get("category"), "title": title},
        )
        return False
    return True
