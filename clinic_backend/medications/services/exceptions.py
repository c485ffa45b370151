# medications/services/exceptions.py

"""
PHARMACY INVENTORY SERVICE ERRORS

Centralized domain errors shared by the stock ledger, supplier orders,
stock adjustments and prescription dispensing.
"""


class InventoryError(Exception):
    """Base exception for all pharmacy inventory service failures."""


class InventoryValidationError(InventoryError):
    """Raised when input is rejected before anything is written."""


class InventoryNotFoundError(InventoryError):
    """Raised when a medication, order, supplier or prescription does not exist."""


class InventoryConflictError(InventoryError):
    """Raised when the requested change conflicts with the current state."""


class InventoryTransactionError(InventoryError):
    """Raised when the atomic unit failed and was rolled back."""
