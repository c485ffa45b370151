# purchases/services/number_series.py

"""
DOCUMENT NUMBER ALLOCATION

Order numbers come from a per-key, per-day counter row
(DocumentNumberSeries, UNIQUE(key, date_key)) locked FOR UPDATE,
so concurrent callers never collide and never retry. Callers allocate
before opening their own transaction so the counter lock is held only
for the increment.

Lot numbers are derived from the order number plus a per-order index
(the order row is already locked while receiving), so receipts never
touch a shared counter row.

Format: <PREFIX>-<yy><m><d><NNN>
- m : month 1-9, then A-C (10-12)
- d : day 1-9, then A-V (10-31)
- NNN: daily sequence, zero padded to 3 digits

Examples:
    CMD-24C5001     first order of 5 December 2024
    LOT-24C5001-02  second lot received against that order
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django.utils.module_loading import import_string

from purchases.models import DocumentNumberSeries

KEY_ORDER = "ORDER"

PREFIX_ORDER = "CMD"
PREFIX_LOT = "LOT"

DEFAULT_NUMBER_ALLOCATOR = "purchases.services.number_series.DatabaseNumberAllocator"


def _code_char(n: int) -> str:
    # 1..9 -> "1".."9", 10 -> "A", 11 -> "B", ...
    return str(n) if n < 10 else chr(64 + n - 9)


def date_code(d: date) -> str:
    return f"{d.year % 100:02d}{_code_char(d.month)}{_code_char(d.day)}"


def format_number(prefix: str, d: date, seq: int) -> str:
    return f"{prefix}-{date_code(d)}{seq:03d}"


def lot_number(order_number: str, index: int) -> str:
    """LOT-<order body>-<NN>; index counts lots issued against the order, from 1."""
    body = order_number.split("-", 1)[-1]
    return f"{PREFIX_LOT}-{body}-{index:02d}"


class NumberAllocator:
    """Base allocator. next_number must be unique per (key, day)."""

    def next_number(self, key: str, prefix: str, on_date: Optional[date] = None) -> str:
        raise NotImplementedError


class DatabaseNumberAllocator(NumberAllocator):
    def next_number(self, key, prefix, on_date=None) -> str:
        day = on_date or timezone.localdate()

        with transaction.atomic():
            # get_or_create absorbs the creation race via its own savepoint
            DocumentNumberSeries.objects.get_or_create(key=key, date_key=day)

            row = DocumentNumberSeries.objects.select_for_update().get(
                key=key, date_key=day
            )
            seq = int(row.next_seq or 1)
            row.next_seq = seq + 1
            row.save(update_fields=["next_seq", "updated_at"])

        return format_number(prefix, day, seq)


class SequentialNumberAllocator(NumberAllocator):
    """In-memory allocator for tests and scripts. Deterministic, not shared across processes."""

    def __init__(self, start: int = 1):
        self._counters = defaultdict(lambda: start)

    def next_number(self, key, prefix, on_date=None) -> str:
        day = on_date or timezone.localdate()
        seq = self._counters[(key, day)]
        self._counters[(key, day)] = seq + 1
        return format_number(prefix, day, seq)


def get_number_allocator() -> NumberAllocator:
    path = getattr(settings, "PHARMACY_NUMBER_ALLOCATOR", None) or DEFAULT_NUMBER_ALLOCATOR
    return import_string(path)()
