# permissions/roles.py

from __future__ import annotations

from typing import Optional

from rest_framework.permissions import BasePermission


# =========================================================
# ROLE CONSTANTS (CLINIC STAFF ROLES)
# =========================================================
# They describe what the staff member does in the clinic.
ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_PHARMACIST = "pharmacist"
ROLE_DOCTOR = "doctor"
ROLE_NURSE = "nurse"
ROLE_RECEPTION = "reception"

STAFF_ROLES = {
    ROLE_ADMIN,
    ROLE_MANAGER,
    ROLE_PHARMACIST,
    ROLE_DOCTOR,
    ROLE_NURSE,
    ROLE_RECEPTION,
}

# Notification audiences
PHARMACY_ROLES = {ROLE_PHARMACIST}
MANAGEMENT_ROLES = {ROLE_ADMIN, ROLE_MANAGER}


# =========================================================
# CAPABILITIES (THE REAL PERMISSION LANGUAGE)
# =========================================================
# Views should protect capabilities, not raw roles.
CAP_INVENTORY_VIEW = "inventory.view"
CAP_INVENTORY_EDIT = "inventory.edit"         # medication catalogue
CAP_INVENTORY_ADJUST = "inventory.adjust"     # physical count corrections

CAP_PURCHASES_VIEW = "purchases.view"
CAP_PURCHASES_ORDER = "purchases.order"       # create / cancel supplier orders
CAP_PURCHASES_RECEIVE = "purchases.receive"

CAP_PRESCRIPTIONS_VIEW = "prescriptions.view"
CAP_PRESCRIPTIONS_EDIT = "prescriptions.edit"
CAP_PHARMACY_DISPENSE = "pharmacy.dispense"

CAP_REPORTS_VIEW_INVENTORY = "reports.view_inventory"

ALL_CAPABILITIES = {
    CAP_INVENTORY_VIEW,
    CAP_INVENTORY_EDIT,
    CAP_INVENTORY_ADJUST,
    CAP_PURCHASES_VIEW,
    CAP_PURCHASES_ORDER,
    CAP_PURCHASES_RECEIVE,
    CAP_PRESCRIPTIONS_VIEW,
    CAP_PRESCRIPTIONS_EDIT,
    CAP_PHARMACY_DISPENSE,
    CAP_REPORTS_VIEW_INVENTORY,
}


# =========================================================
# ROLE → CAPABILITY MAP
# =========================================================
ROLE_CAPABILITIES: dict[str, set[str]] = {
    ROLE_ADMIN: {
        # admin can do everything
        *ALL_CAPABILITIES,
    },
    ROLE_MANAGER: {
        CAP_INVENTORY_VIEW,
        CAP_PURCHASES_VIEW,
        CAP_PURCHASES_ORDER,
        CAP_PRESCRIPTIONS_VIEW,
        CAP_REPORTS_VIEW_INVENTORY,
    },
    ROLE_PHARMACIST: {
        CAP_INVENTORY_VIEW,
        CAP_INVENTORY_EDIT,
        CAP_INVENTORY_ADJUST,
        CAP_PURCHASES_VIEW,
        CAP_PURCHASES_ORDER,
        CAP_PURCHASES_RECEIVE,
        CAP_PRESCRIPTIONS_VIEW,
        CAP_PRESCRIPTIONS_EDIT,
        CAP_PHARMACY_DISPENSE,
        CAP_REPORTS_VIEW_INVENTORY,
    },
    ROLE_DOCTOR: {
        CAP_INVENTORY_VIEW,
        CAP_PRESCRIPTIONS_VIEW,
        CAP_PRESCRIPTIONS_EDIT,
    },
    ROLE_NURSE: {
        CAP_INVENTORY_VIEW,
        CAP_PRESCRIPTIONS_VIEW,
    },
    ROLE_RECEPTION: set(),
}


# =========================================================
# Helpers
# =========================================================
def get_user_role(user) -> Optional[str]:
    return getattr(user, "role", None)


def capabilities_for(user) -> set[str]:
    if getattr(user, "is_superuser", False):
        return set(ALL_CAPABILITIES)
    return set(ROLE_CAPABILITIES.get(get_user_role(user), set()))


# =========================================================
# Capability Permissions
# =========================================================
class HasCapability(BasePermission):
    """
    Require a specific capability.

    Usage:
        permission_classes = [IsAuthenticated, HasCapability]
        view.required_capability = CAP_PURCHASES_RECEIVE

    Views with per-action needs may define get_required_capability().
    """

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        getter = getattr(view, "get_required_capability", None)
        required = getter() if callable(getter) else getattr(view, "required_capability", None)
        if not required:
            # If not set, deny-by-default to avoid accidental open endpoints
            return False

        return required in capabilities_for(user)


class HasAnyCapability(BasePermission):
    """
    Require ANY capability from a list.

    Usage:
        view.required_any_capabilities = {CAP_INVENTORY_VIEW, CAP_PURCHASES_VIEW}
    """

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        required = getattr(view, "required_any_capabilities", None)
        if not required:
            return False

        caps = capabilities_for(user)
        return any(cap in caps for cap in set(required))
