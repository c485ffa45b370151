# purchases/services/supplier_service.py

"""
SUPPLIER MASTER

Suppliers are never hard-deleted: orders keep pointing at them.
Deactivation hides a supplier from the active list and blocks new orders
(create_supplier_order refuses inactive suppliers); history is untouched.
"""

from __future__ import annotations

import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from audit.sink import record_after_commit
from medications.services.exceptions import InventoryNotFoundError, InventoryValidationError
from purchases.models import Supplier

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "name",
    "contact_name",
    "phone",
    "email",
    "address",
    "average_lead_time_days",
    "is_active",
)


def get_supplier(supplier_id) -> Supplier:
    try:
        return Supplier.objects.get(pk=supplier_id)
    except (Supplier.DoesNotExist, ValidationError, ValueError):
        raise InventoryNotFoundError(f"Supplier {supplier_id} not found")


@transaction.atomic
def update_supplier(*, supplier_id, actor=None, **fields) -> Supplier:
    supplier = get_supplier(supplier_id)

    changed = []
    for name in EDITABLE_FIELDS:
        if name in fields and getattr(supplier, name) != fields[name]:
            setattr(supplier, name, fields[name])
            changed.append(name)

    if not changed:
        return supplier

    try:
        supplier.save(update_fields=changed)
    except ValidationError as exc:
        raise InventoryValidationError("; ".join(exc.messages)) from exc

    record_after_commit(
        actor=actor,
        action="supplier.updated",
        entity_id=supplier.pk,
        details={"fields": changed},
    )
    return supplier


@transaction.atomic
def deactivate_supplier(*, supplier_id, actor=None) -> Supplier:
    supplier = get_supplier(supplier_id)
    if not supplier.is_active:
        return supplier

    supplier.is_active = False
    supplier.save(update_fields=["is_active"])

    logger.info("Supplier deactivated", extra={"supplier_id": str(supplier.pk)})

    record_after_commit(
        actor=actor,
        action="supplier.deactivated",
        entity_id=supplier.pk,
        details={"name": supplier.name},
    )
    return supplier
