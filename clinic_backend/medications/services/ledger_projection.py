# medications/services/ledger_projection.py

"""
LEDGER PROJECTION

current_stock is a materialized view of the StockMovement ledger.
These helpers replay the ledger and report any drift.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from django.db.models import Sum

from medications.models import Medication, StockMovement, derive_stock_status


@dataclass(frozen=True)
class LedgerCheck:
    medication: Medication
    stored_stock: int
    ledger_balance: int
    stored_status: str
    derived_status: str

    @property
    def is_consistent(self) -> bool:
        return (
            self.stored_stock == self.ledger_balance
            and self.stored_status == self.derived_status
        )


def ledger_balance(medication_id) -> int:
    total = (
        StockMovement.objects.filter(medication_id=medication_id)
        .aggregate(total=Sum("quantity_delta"))
        .get("total")
    )
    return int(total or 0)


def verify_medication(medication: Medication) -> LedgerCheck:
    stored = int(medication.current_stock or 0)
    return LedgerCheck(
        medication=medication,
        stored_stock=stored,
        ledger_balance=ledger_balance(medication.pk),
        stored_status=medication.stock_status,
        derived_status=derive_stock_status(stored, medication.minimum_stock),
    )


def find_inconsistencies() -> List[LedgerCheck]:
    balances = dict(
        StockMovement.objects.values("medication_id")
        .annotate(total=Sum("quantity_delta"))
        .values_list("medication_id", "total")
    )

    mismatches = []
    for medication in Medication.objects.order_by("name"):
        stored = int(medication.current_stock or 0)
        check = LedgerCheck(
            medication=medication,
            stored_stock=stored,
            ledger_balance=int(balances.get(medication.pk) or 0),
            stored_status=medication.stock_status,
            derived_status=derive_stock_status(stored, medication.minimum_stock),
        )
        if not check.is_consistent:
            mismatches.append(check)

    return mismatches
