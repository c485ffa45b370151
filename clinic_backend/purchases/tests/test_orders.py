# purchases/tests/test_orders.py

import threading
from datetime import date
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.db import IntegrityError, connection, transaction
from django.test import TestCase, TransactionTestCase, override_settings, skipUnlessDBFeature
from django.test.utils import CaptureQueriesContext

from audit.testing import RecordingAuditSink
from medications.models import Medication, StockMovement
from medications.services.exceptions import (
    InventoryConflictError,
    InventoryNotFoundError,
    InventoryTransactionError,
    InventoryValidationError,
)
from medications.services.ledger_projection import find_inconsistencies
from medications.services.medication_service import create_medication
from medications.services.stock_ledger import apply_stock_change
from purchases.models import DocumentNumberSeries, Supplier, SupplierOrder
from purchases.services.number_series import (
    KEY_ORDER,
    PREFIX_LOT,
    PREFIX_ORDER,
    DatabaseNumberAllocator,
    SequentialNumberAllocator,
    date_code,
    format_number,
    lot_number,
)
from purchases.services.order_service import (
    cancel_supplier_order,
    create_supplier_order,
    derive_order_status,
    list_pending_orders,
    receive_supplier_order,
)

User = get_user_model()


class NumberSeriesTests(TestCase):
    """
    GUARANTEES:
    - <PREFIX>-<yy><m><d><NNN>, month/day above 9 encoded as letters
    - Numbers are unique per key and day, restarting each day
    """

    def test_format(self):
        self.assertEqual(format_number("CMD", date(2024, 12, 5), 1), "CMD-24C5001")
        self.assertEqual(format_number("LOT", date(2024, 10, 31), 7), "LOT-24AV007")
        self.assertEqual(date_code(date(2025, 1, 9)), "2519")

    def test_database_allocator_increments_per_key_and_day(self):
        allocator = DatabaseNumberAllocator()
        day = date(2024, 12, 5)

        self.assertEqual(allocator.next_number(KEY_ORDER, PREFIX_ORDER, on_date=day), "CMD-24C5001")
        self.assertEqual(allocator.next_number(KEY_ORDER, PREFIX_ORDER, on_date=day), "CMD-24C5002")
        self.assertEqual(allocator.next_number("GRN", "GRN", on_date=day), "GRN-24C5001")
        self.assertEqual(
            allocator.next_number(KEY_ORDER, PREFIX_ORDER, on_date=date(2024, 12, 6)),
            "CMD-24C6001",
        )

    def test_sequential_allocator(self):
        allocator = SequentialNumberAllocator(start=41)
        day = date(2024, 1, 1)
        self.assertEqual(allocator.next_number(KEY_ORDER, PREFIX_ORDER, on_date=day), "CMD-2411041")
        self.assertEqual(allocator.next_number(KEY_ORDER, PREFIX_ORDER, on_date=day), "CMD-2411042")

    def test_lot_number_follows_order_number(self):
        self.assertEqual(lot_number("CMD-24C5001", 1), "LOT-24C5001-01")
        self.assertEqual(lot_number("CMD-24C5001", 12), "LOT-24C5001-12")
        self.assertTrue(lot_number("CMD-2519003", 3).startswith(f"{PREFIX_LOT}-2519003"))


@override_settings(
    PHARMACY_NOTIFIER="alerts.testing.RecordingNotifier",
    PHARMACY_AUDIT_SINK="audit.testing.RecordingAuditSink",
)
class SupplierOrderTests(TestCase):
    """
    Supplier order lifecycle.

    GUARANTEES:
    - Creating an order never touches stock
    - Receiving posts one IN ledger row per received line, with a lot number
    - Status is derived from the lines
    - Re-receiving a fully received order is a no-op
    - Over-receipt and cancelled orders are rejected without side effects
    - Any line failure rolls back the whole receipt
    """

    def setUp(self):
        RecordingAuditSink.reset()
        self.user = User.objects.create_user(
            email="pharmacist@example.com", password="pass", role="pharmacist"
        )
        self.supplier = Supplier.objects.create(name="MedSupply Ltd")
        self.med_a = create_medication(name="Amoxicillin", unit_price=Decimal("1.00"), minimum_stock=10)
        self.med_b = create_medication(name="Ciprofloxacin", unit_price=Decimal("2.00"), minimum_stock=10)
        self.allocator = SequentialNumberAllocator()

    def _order(self, lines=None):
        if lines is None:
            lines = [
                {"medication_id": self.med_a.pk, "quantity": 50, "unit_price": "1.10"},
                {"medication_id": self.med_b.pk, "quantity": 30, "unit_price": "2.50"},
            ]
        return create_supplier_order(
            supplier_id=self.supplier.pk,
            lines=lines,
            actor=self.user,
            allocator=self.allocator,
        )

    def _movements(self):
        return StockMovement.objects.filter(order__isnull=False)

    # -----------------------------
    # create
    # -----------------------------
    def test_create_order(self):
        with self.captureOnCommitCallbacks(execute=True):
            order = self._order()

        self.assertEqual(order.status, SupplierOrder.Status.ORDERED)
        self.assertTrue(order.order_number.startswith("CMD-"))
        self.assertEqual(order.total_amount, Decimal("130.00"))
        self.assertEqual(order.lines.count(), 2)
        self.assertTrue(all(line.quantity_received == 0 for line in order.lines.all()))

        self.med_a.refresh_from_db()
        self.assertEqual(self.med_a.current_stock, 0)
        self.assertFalse(self._movements().exists())
        self.assertEqual(RecordingAuditSink.actions(), ["supplier_order.created"])

    def test_create_validation(self):
        with self.assertRaises(InventoryValidationError):
            self._order(lines=[])
        with self.assertRaises(InventoryValidationError):
            self._order(lines=[{"medication_id": self.med_a.pk, "quantity": 0, "unit_price": "1"}])
        with self.assertRaises(InventoryValidationError):
            self._order(lines=[{"medication_id": self.med_a.pk, "quantity": 10001, "unit_price": "1"}])
        with self.assertRaises(InventoryValidationError):
            self._order(lines=[{"medication_id": self.med_a.pk, "quantity": 1, "unit_price": "-1"}])
        with self.assertRaises(InventoryNotFoundError):
            self._order(
                lines=[
                    {
                        "medication_id": "00000000-0000-0000-0000-000000000000",
                        "quantity": 1,
                        "unit_price": "1",
                    }
                ]
            )
        self.assertFalse(SupplierOrder.objects.exists())

    def test_create_requires_active_supplier(self):
        with self.assertRaises(InventoryNotFoundError):
            create_supplier_order(
                supplier_id="00000000-0000-0000-0000-000000000000",
                lines=[{"medication_id": self.med_a.pk, "quantity": 1, "unit_price": "1"}],
            )

        self.supplier.is_active = False
        self.supplier.save()
        with self.assertRaises(InventoryConflictError):
            self._order()

    # -----------------------------
    # receive
    # -----------------------------
    def test_receive_full_order(self):
        order = self._order()

        with self.captureOnCommitCallbacks(execute=True):
            result = receive_supplier_order(order_id=order.pk, actor=self.user)

        self.assertTrue(result.received_any)
        self.assertEqual(result.previous_status, SupplierOrder.Status.ORDERED)
        self.assertEqual(sorted(m.quantity_delta for m in result.movements), [30, 50])

        order.refresh_from_db()
        self.assertEqual(order.status, SupplierOrder.Status.RECEIVED)
        self.assertIsNotNone(order.received_at)
        self.assertTrue(all(line.outstanding == 0 for line in order.lines.all()))

        movements = self._movements()
        self.assertEqual(movements.count(), 2)
        for movement in movements:
            self.assertEqual(movement.movement_type, StockMovement.MovementType.IN)
            self.assertEqual(movement.order, order)
            self.assertTrue(movement.batch_number.startswith("LOT-"))
            self.assertEqual(movement.reason, f"Receipt of order {order.order_number}")
            self.assertEqual(movement.performed_by, self.user)
        self.assertEqual(
            {m.batch_number for m in movements},
            {lot_number(order.order_number, 1), lot_number(order.order_number, 2)},
        )

        self.med_a.refresh_from_db()
        self.med_b.refresh_from_db()
        self.assertEqual(self.med_a.current_stock, 50)
        self.assertEqual(self.med_b.current_stock, 30)
        # reference price follows the latest receipt
        self.assertEqual(self.med_a.unit_price, Decimal("1.10"))
        self.assertEqual(self.med_b.unit_price, Decimal("2.50"))

        self.assertIn("supplier_order.received", RecordingAuditSink.actions())
        self.assertEqual(find_inconsistencies(), [])

    def test_receive_again_is_a_no_op(self):
        order = self._order()
        receive_supplier_order(order_id=order.pk)

        with self.captureOnCommitCallbacks(execute=True):
            result = receive_supplier_order(order_id=order.pk)

        self.assertFalse(result.received_any)
        self.assertEqual(result.order.status, SupplierOrder.Status.RECEIVED)
        self.assertEqual(self._movements().count(), 2)
        self.assertNotIn("supplier_order.received", RecordingAuditSink.actions())

        self.med_a.refresh_from_db()
        self.assertEqual(self.med_a.current_stock, 50)

    def test_partial_receipts(self):
        order = self._order()
        line_a = order.lines.get(medication=self.med_a)
        line_b = order.lines.get(medication=self.med_b)

        result = receive_supplier_order(order_id=order.pk, quantities={line_a.pk: 20})
        self.assertEqual(result.order.status, SupplierOrder.Status.PARTIALLY_RECEIVED)
        self.assertIsNone(result.order.received_at)
        self.assertEqual(len(list_pending_orders()), 1)

        # the remainder: everything outstanding
        result = receive_supplier_order(order_id=order.pk)
        self.assertEqual(sorted(c.delta for c in result.changes), [30, 30])
        self.assertEqual(result.order.status, SupplierOrder.Status.RECEIVED)
        self.assertEqual(len(list_pending_orders()), 0)
        # lots keep counting across receipts of the same order
        self.assertEqual(
            sorted(m.batch_number for m in self._movements()),
            [lot_number(order.order_number, i) for i in (1, 2, 3)],
        )

        line_a.refresh_from_db()
        line_b.refresh_from_db()
        self.assertEqual(line_a.quantity_received, 50)
        self.assertEqual(line_b.quantity_received, 30)

    def test_over_receipt_is_rejected(self):
        order = self._order(
            lines=[{"medication_id": self.med_a.pk, "quantity": 10, "unit_price": "1.00"}]
        )
        line = order.lines.get()

        with self.assertRaises(InventoryValidationError):
            receive_supplier_order(order_id=order.pk, quantities={line.pk: 15})

        order.refresh_from_db()
        line.refresh_from_db()
        self.med_a.refresh_from_db()
        self.assertEqual(order.status, SupplierOrder.Status.ORDERED)
        self.assertEqual(line.quantity_received, 0)
        self.assertEqual(self.med_a.current_stock, 0)
        self.assertFalse(self._movements().exists())

    def test_receive_unknown_line_or_order(self):
        order = self._order()
        with self.assertRaises(InventoryValidationError):
            receive_supplier_order(
                order_id=order.pk,
                quantities={"00000000-0000-0000-0000-000000000000": 1},
            )
        with self.assertRaises(InventoryValidationError):
            receive_supplier_order(order_id=order.pk, quantities={})
        with self.assertRaises(InventoryNotFoundError):
            receive_supplier_order(order_id="00000000-0000-0000-0000-000000000000")

    def test_line_failure_rolls_back_whole_receipt(self):
        order = self._order()
        calls = []

        def fail_on_second_line(**kwargs):
            calls.append(kwargs["medication_id"])
            if len(calls) == 2:
                raise InventoryTransactionError("simulated lock timeout")
            return apply_stock_change(**kwargs)

        with mock.patch(
            "purchases.services.order_service.apply_stock_change",
            side_effect=fail_on_second_line,
        ):
            with self.assertRaises(InventoryTransactionError):
                receive_supplier_order(order_id=order.pk)

        self.assertEqual(len(calls), 2)
        order.refresh_from_db()
        self.assertEqual(order.status, SupplierOrder.Status.ORDERED)
        self.assertTrue(all(line.quantity_received == 0 for line in order.lines.all()))
        self.assertEqual(
            Medication.objects.filter(current_stock__gt=0).count(), 0
        )
        self.assertFalse(self._movements().exists())

    # -----------------------------
    # cancel
    # -----------------------------
    def test_cancel_open_order(self):
        order = self._order()
        line_a = order.lines.get(medication=self.med_a)
        receive_supplier_order(order_id=order.pk, quantities={line_a.pk: 5})

        with self.captureOnCommitCallbacks(execute=True):
            cancelled = cancel_supplier_order(order_id=order.pk, actor=self.user, reason="Supplier out")

        self.assertEqual(cancelled.status, SupplierOrder.Status.CANCELLED)
        self.assertEqual(cancelled.cancel_reason, "Supplier out")
        # partial receipt stands
        self.med_a.refresh_from_db()
        self.assertEqual(self.med_a.current_stock, 5)
        self.assertEqual(RecordingAuditSink.actions()[-1], "supplier_order.cancelled")

        with self.assertRaises(InventoryConflictError):
            receive_supplier_order(order_id=order.pk)
        with self.assertRaises(InventoryConflictError):
            cancel_supplier_order(order_id=order.pk)

    def test_received_order_cannot_be_cancelled(self):
        order = self._order()
        receive_supplier_order(order_id=order.pk)
        with self.assertRaises(InventoryConflictError):
            cancel_supplier_order(order_id=order.pk)

    def test_derive_order_status(self):
        order = self._order()
        lines = list(order.lines.all())
        self.assertEqual(derive_order_status(lines), SupplierOrder.Status.ORDERED)

        lines[0].quantity_received = 1
        self.assertEqual(derive_order_status(lines), SupplierOrder.Status.PARTIALLY_RECEIVED)

        for line in lines:
            line.quantity_received = line.quantity_ordered
        self.assertEqual(derive_order_status(lines), SupplierOrder.Status.RECEIVED)
        self.assertEqual(derive_order_status(lines, cancelled=True), SupplierOrder.Status.CANCELLED)


@override_settings(
    PHARMACY_NOTIFIER="alerts.testing.RecordingNotifier",
    PHARMACY_AUDIT_SINK="audit.testing.RecordingAuditSink",
    PHARMACY_NUMBER_ALLOCATOR="purchases.services.number_series.DatabaseNumberAllocator",
)
class OrderLockScopeTests(TestCase):
    """
    GUARANTEES:
    - Receiving locks only the order row and the received medication rows
      (no shared counter row), so unrelated receipts never queue
    - The order number is allocated outside the order's own unit of work
    """

    def setUp(self):
        self.supplier = Supplier.objects.create(name="MedSupply Ltd")
        self.med_a = create_medication(name="Amoxicillin")
        self.med_b = create_medication(name="Ciprofloxacin")

    def _order(self, medication):
        return create_supplier_order(
            supplier_id=self.supplier.pk,
            lines=[{"medication_id": medication.pk, "quantity": 10, "unit_price": "1.00"}],
        )

    def test_receive_never_touches_number_series(self):
        order = self._order(self.med_a)
        series_before = list(DocumentNumberSeries.objects.values_list("key", "date_key", "next_seq"))
        series_table = DocumentNumberSeries._meta.db_table

        with CaptureQueriesContext(connection) as queries:
            receive_supplier_order(order_id=order.pk)

        self.assertFalse(any(series_table in q["sql"] for q in queries.captured_queries))
        self.assertEqual(
            list(DocumentNumberSeries.objects.values_list("key", "date_key", "next_seq")),
            series_before,
        )

    def test_failed_create_burns_a_number_but_never_reuses_it(self):
        first = self._order(self.med_a)

        with mock.patch(
            "purchases.services.order_service.SupplierOrderLine.objects.bulk_create",
            side_effect=IntegrityError("simulated"),
        ):
            with self.assertRaises(IntegrityError):
                self._order(self.med_b)

        self.assertEqual(SupplierOrder.objects.count(), 1)
        second = self._order(self.med_b)
        self.assertEqual(first.order_number[-3:], "001")
        self.assertEqual(second.order_number[-3:], "003")


@override_settings(
    PHARMACY_NOTIFIER="alerts.testing.RecordingNotifier",
    PHARMACY_AUDIT_SINK="audit.testing.RecordingAuditSink",
    PHARMACY_NUMBER_ALLOCATOR="purchases.services.number_series.DatabaseNumberAllocator",
)
class ConcurrentReceiptTests(TransactionTestCase):
    """
    GUARANTEES:
    - A receipt still open on medication A does not block a receipt on medication B
    """

    @skipUnlessDBFeature("has_select_for_update")
    def test_receipts_for_different_medications_do_not_queue(self):
        supplier = Supplier.objects.create(name="MedSupply Ltd")
        med_a = create_medication(name="Amoxicillin")
        med_b = create_medication(name="Ciprofloxacin")
        order_a = create_supplier_order(
            supplier_id=supplier.pk,
            lines=[{"medication_id": med_a.pk, "quantity": 10, "unit_price": "1.00"}],
        )
        order_b = create_supplier_order(
            supplier_id=supplier.pk,
            lines=[{"medication_id": med_b.pk, "quantity": 5, "unit_price": "1.00"}],
        )

        holding = threading.Event()
        release = threading.Event()
        b_done = threading.Event()
        errors = []

        def receive_a_and_hold():
            try:
                with transaction.atomic():
                    receive_supplier_order(order_id=order_a.pk)
                    holding.set()
                    release.wait(timeout=30)
            except Exception as exc:  # collected and asserted below
                errors.append(exc)
            finally:
                holding.set()
                connection.close()

        def receive_b():
            try:
                receive_supplier_order(order_id=order_b.pk)
                b_done.set()
            except Exception as exc:  # collected and asserted below
                errors.append(exc)
            finally:
                connection.close()

        t_a = threading.Thread(target=receive_a_and_hold)
        t_a.start()
        self.assertTrue(holding.wait(timeout=10))

        t_b = threading.Thread(target=receive_b)
        t_b.start()
        finished_while_a_open = b_done.wait(timeout=10)

        release.set()
        t_a.join()
        t_b.join()

        self.assertEqual(errors, [])
        self.assertTrue(finished_while_a_open)

        med_a.refresh_from_db()
        med_b.refresh_from_db()
        self.assertEqual(med_a.current_stock, 10)
        self.assertEqual(med_b.current_stock, 5)
