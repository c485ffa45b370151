# prescriptions/tests/test_dispensing.py

from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase, TransactionTestCase, override_settings
from rest_framework.test import APIClient

from alerts.testing import RecordingNotifier
from audit.testing import RecordingAuditSink
from medications.models import Medication, StockMovement
from medications.services.exceptions import (
    InventoryConflictError,
    InventoryNotFoundError,
    InventoryTransactionError,
    InventoryValidationError,
)
from medications.services.medication_service import create_medication
from prescriptions.models import Prescription
from prescriptions.services.dispensing_service import (
    cancel_prescription,
    deliver_prescription,
    list_pending_prescriptions,
    update_prescription,
)

User = get_user_model()


@override_settings(
    PHARMACY_NOTIFIER="alerts.testing.RecordingNotifier",
    PHARMACY_AUDIT_SINK="audit.testing.RecordingAuditSink",
)
class PrescriptionDeliveryTests(TestCase):
    """
    Prescription delivery.

    GUARANTEES:
    - Prescribing never touches stock; delivery deducts it once
    - Delivering more than is on hand empties stock and reports the shortfall
    - A failed deduction keeps the prescription pending (atomic mode)
    - Delivered / cancelled prescriptions are final
    """

    def setUp(self):
        RecordingNotifier.reset()
        RecordingAuditSink.reset()

        self.pharmacist = User.objects.create_user(
            email="pharmacist@example.com", password="pass", role="pharmacist"
        )
        self.doctor = User.objects.create_user(
            email="doctor@example.com", password="pass", role="doctor"
        )
        self.med = create_medication(name="Amoxicillin", minimum_stock=5, initial_stock=20)
        self.prescription = Prescription.objects.create(
            consultation_id="CONS-1",
            patient_id="PAT-9",
            patient_name="Jane Roe",
            prescriber_id=str(self.doctor.pk),
            prescriber_name="Dr. Who",
            medication=self.med,
            quantity=6,
            dosage_instructions="1 tablet 3x daily",
        )

    def _stock(self):
        self.med.refresh_from_db()
        return self.med.current_stock

    def test_prescribing_does_not_touch_stock(self):
        self.assertEqual(self._stock(), 20)
        self.assertEqual(StockMovement.objects.filter(medication=self.med).count(), 1)

    def test_deliver(self):
        with self.captureOnCommitCallbacks(execute=True):
            result = deliver_prescription(
                prescription_id=self.prescription.pk, actor=self.pharmacist
            )

        self.assertEqual(result.prescription.status, Prescription.Status.DELIVERED)
        self.assertEqual(result.prescription.delivered_by, self.pharmacist)
        self.assertIsNotNone(result.prescription.delivered_at)
        self.assertEqual(result.shortfall, 0)

        self.assertEqual(self._stock(), 14)
        movement = result.stock_change.movement
        self.assertEqual(movement.movement_type, StockMovement.MovementType.OUT)
        self.assertEqual(movement.quantity_delta, -6)
        self.assertIn("Jane Roe", movement.reason)

        self.assertIn("prescription.delivered", RecordingAuditSink.actions())
        self.assertEqual(RecordingNotifier.categories(), ["prescription.delivered"])
        notice = RecordingNotifier.sent[0]
        self.assertTrue(notice["silent"])
        self.assertEqual(notice["audience"].user_ids, frozenset({str(self.doctor.pk)}))

    def test_deliver_with_insufficient_stock_clamps_and_alerts(self):
        self.prescription.quantity = 25
        self.prescription.save()

        with self.captureOnCommitCallbacks(execute=True):
            result = deliver_prescription(prescription_id=self.prescription.pk)

        self.assertEqual(result.shortfall, 5)
        self.assertEqual(self._stock(), 0)
        self.assertEqual(self.med.stock_status, Medication.StockStatus.OUT_OF_STOCK)
        self.assertEqual(result.stock_change.movement.quantity_delta, -20)
        self.assertIn("stock.out_of_stock", RecordingNotifier.categories())

    def test_delivery_is_final(self):
        deliver_prescription(prescription_id=self.prescription.pk)

        with self.assertRaises(InventoryConflictError):
            deliver_prescription(prescription_id=self.prescription.pk)
        with self.assertRaises(InventoryConflictError):
            cancel_prescription(prescription_id=self.prescription.pk)
        with self.assertRaises(InventoryConflictError):
            update_prescription(prescription_id=self.prescription.pk, quantity=1)

        self.assertEqual(self._stock(), 14)

    def test_failed_deduction_keeps_prescription_pending(self):
        with mock.patch(
            "prescriptions.services.dispensing_service.apply_stock_change",
            side_effect=InventoryTransactionError("lock timeout"),
        ):
            with self.assertRaises(InventoryTransactionError):
                deliver_prescription(prescription_id=self.prescription.pk)

        self.prescription.refresh_from_db()
        self.assertEqual(self.prescription.status, Prescription.Status.PENDING)
        self.assertEqual(self._stock(), 20)

    @override_settings(PRESCRIPTION_DELIVERY_ATOMIC=False)
    def test_legacy_mode_records_delivery_despite_failed_deduction(self):
        with mock.patch(
            "prescriptions.services.dispensing_service.apply_stock_change",
            side_effect=InventoryTransactionError("lock timeout"),
        ):
            with self.assertLogs("prescriptions.services.dispensing_service", level="ERROR"):
                result = deliver_prescription(prescription_id=self.prescription.pk)

        self.assertEqual(result.prescription.status, Prescription.Status.DELIVERED)
        self.assertIsNone(result.stock_change)
        self.assertEqual(result.deduction_error, "lock timeout")
        self.assertEqual(self._stock(), 20)

    def test_unknown_prescription(self):
        with self.assertRaises(InventoryNotFoundError):
            deliver_prescription(prescription_id="00000000-0000-0000-0000-000000000000")

    def test_update_pending(self):
        with self.captureOnCommitCallbacks(execute=True):
            updated = update_prescription(
                prescription_id=self.prescription.pk,
                actor=self.doctor,
                quantity=8,
                special_instructions="Take with food",
            )

        self.assertEqual(updated.quantity, 8)
        self.assertEqual(updated.special_instructions, "Take with food")
        changes = RecordingAuditSink.records[-1]["details"]["changes"]
        self.assertEqual(changes["quantity"], {"old": 6, "new": 8})

        with self.assertRaises(InventoryValidationError):
            update_prescription(prescription_id=self.prescription.pk, quantity=0)
        with self.assertRaises(InventoryValidationError):
            update_prescription(prescription_id=self.prescription.pk, medication=self.med)

    def test_cancel_pending(self):
        with self.captureOnCommitCallbacks(execute=True):
            cancelled = cancel_prescription(
                prescription_id=self.prescription.pk, actor=self.doctor, reason="Allergy"
            )

        self.assertEqual(cancelled.status, Prescription.Status.CANCELLED)
        self.assertEqual(cancelled.cancelled_by, self.doctor)
        self.assertEqual(self._stock(), 20)
        self.assertEqual(RecordingAuditSink.records[-1]["details"]["reason"], "Allergy")

    def test_list_pending(self):
        Prescription.objects.create(
            patient_id="PAT-2", patient_name="John Doe", medication=self.med, quantity=1
        )
        deliver_prescription(prescription_id=self.prescription.pk)

        self.assertEqual(
            [p.patient_name for p in list_pending_prescriptions()], ["John Doe"]
        )
        self.assertEqual(list(list_pending_prescriptions(patient_id="PAT-9")), [])
        self.assertEqual(len(list_pending_prescriptions(search="amoxi")), 1)


@override_settings(
    PHARMACY_NOTIFIER="alerts.testing.RecordingNotifier",
    PHARMACY_AUDIT_SINK="audit.testing.RecordingAuditSink",
)
class PrescriptionApiTests(TestCase):
    """
    GUARANTEES:
    - Only dispensing staff can deliver
    - Delivery response reports stock deducted and shortfall
    """

    def setUp(self):
        self.client = APIClient()
        self.pharmacist = User.objects.create_user(
            email="pharmacist@example.com", password="pass", role="pharmacist"
        )
        self.nurse = User.objects.create_user(email="nurse@example.com", password="pass", role="nurse")
        self.med = create_medication(name="Ibuprofen", minimum_stock=2, initial_stock=3)
        self.prescription = Prescription.objects.create(
            patient_id="PAT-1", patient_name="Jane Roe", medication=self.med, quantity=5
        )

    def test_pending_list(self):
        self.client.force_authenticate(self.nurse)
        res = self.client.get("/api/prescriptions/pending/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["count"], 1)
        self.assertEqual(res.data["results"][0]["medication_stock"], 3)

    def test_deliver(self):
        url = f"/api/prescriptions/{self.prescription.pk}/deliver/"

        self.client.force_authenticate(self.nurse)
        self.assertEqual(self.client.post(url).status_code, 403)

        self.client.force_authenticate(self.pharmacist)
        res = self.client.post(url)
        self.assertEqual(res.status_code, 200, res.data)
        self.assertEqual(res.data["status"], Prescription.Status.DELIVERED)
        self.assertEqual(res.data["stock_deducted"], 3)
        self.assertEqual(res.data["shortfall"], 2)

        self.assertEqual(self.client.post(url).status_code, 409)

    def test_patch_and_cancel(self):
        self.client.force_authenticate(self.pharmacist)
        base = f"/api/prescriptions/{self.prescription.pk}/"

        res = self.client.patch(base, {"quantity": 2}, format="json")
        self.assertEqual(res.status_code, 200, res.data)
        self.assertEqual(res.data["quantity"], 2)

        self.assertEqual(self.client.patch(base, {}, format="json").status_code, 400)

        res = self.client.post(f"{base}cancel/", {"reason": "Duplicate"}, format="json")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["status"], Prescription.Status.CANCELLED)


@override_settings(
    PHARMACY_NOTIFIER="alerts.testing.RecordingNotifier",
    PHARMACY_AUDIT_SINK="audit.testing.RecordingAuditSink",
)
class DeliveryAfterCommitTests(TransactionTestCase):
    """
    GUARANTEES:
    - A failing prescriber notice after commit does not fail the delivery
    """

    def test_prescriber_notice_failure_is_contained(self):
        med = create_medication(name="Amoxicillin", initial_stock=10)
        prescription = Prescription.objects.create(
            patient_id="PAT-1",
            patient_name="Jane Roe",
            prescriber_id="external-prescriber",
            medication=med,
            quantity=4,
        )

        with mock.patch(
            "prescriptions.services.dispensing_service._notify_prescriber",
            side_effect=RuntimeError("notice failed"),
        ) as notice:
            result = deliver_prescription(prescription_id=prescription.pk)

        notice.assert_called_once()
        self.assertEqual(result.prescription.status, Prescription.Status.DELIVERED)
        prescription.refresh_from_db()
        med.refresh_from_db()
        self.assertEqual(prescription.status, Prescription.Status.DELIVERED)
        self.assertEqual(med.current_stock, 6)
