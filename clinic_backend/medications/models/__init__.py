"""
Medications models export surface.
"""

from .medication import Medication, derive_stock_status
from .stock_movement import StockMovement

__all__ = [
    "Medication",
    "StockMovement",
    "derive_stock_status",
]
