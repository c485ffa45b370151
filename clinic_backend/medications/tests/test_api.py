# medications/tests/test_api.py

from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from medications.models import Medication, StockMovement
from medications.services.medication_service import create_medication

User = get_user_model()

BASE = "/api/pharmacy/medications/"


@override_settings(
    PHARMACY_NOTIFIER="alerts.testing.RecordingNotifier",
    PHARMACY_AUDIT_SINK="audit.testing.RecordingAuditSink",
)
class MedicationApiTests(TestCase):
    """
    Medication endpoints.

    GUARANTEES:
    - Anonymous users are rejected
    - Capabilities gate every action
    - Stock fields cannot be written through the API
    - Service errors map to 400 / 404 / 409
    """

    def setUp(self):
        self.client = APIClient()
        self.pharmacist = User.objects.create_user(
            email="pharmacist@example.com", password="pass", role="pharmacist"
        )
        self.nurse = User.objects.create_user(
            email="nurse@example.com", password="pass", role="nurse"
        )
        self.med = create_medication(
            name="Paracetamol", unit_price=Decimal("2.00"), minimum_stock=10, initial_stock=12
        )

    def test_anonymous_is_rejected(self):
        res = self.client.get(BASE)
        self.assertEqual(res.status_code, 401)

    def test_nurse_can_read_but_not_write(self):
        self.client.force_authenticate(self.nurse)

        res = self.client.get(BASE)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["count"], 1)

        res = self.client.post(BASE, {"name": "Ibuprofen"}, format="json")
        self.assertEqual(res.status_code, 403)

        res = self.client.post(
            f"{BASE}adjust-stock/",
            {"medication_id": str(self.med.pk), "counted_quantity": 1, "reason": "x"},
            format="json",
        )
        self.assertEqual(res.status_code, 403)

    def test_create_with_opening_stock(self):
        self.client.force_authenticate(self.pharmacist)

        res = self.client.post(
            BASE,
            {"name": "Ibuprofen", "unit_price": "1.20", "minimum_stock": 5, "initial_stock": 40},
            format="json",
        )

        self.assertEqual(res.status_code, 201, res.data)
        self.assertEqual(res.data["current_stock"], 40)
        self.assertEqual(res.data["stock_status"], Medication.StockStatus.IN_STOCK)
        self.assertNotIn("initial_stock", res.data)

    def test_stock_fields_are_read_only(self):
        self.client.force_authenticate(self.pharmacist)

        res = self.client.patch(
            f"{BASE}{self.med.pk}/",
            {"current_stock": 999, "stock_status": "in_stock", "manufacturer": "Acme"},
            format="json",
        )

        self.assertEqual(res.status_code, 200, res.data)
        self.med.refresh_from_db()
        self.assertEqual(self.med.current_stock, 12)
        self.assertEqual(self.med.manufacturer, "Acme")

    def test_delete_with_history_conflicts(self):
        self.client.force_authenticate(self.pharmacist)
        res = self.client.delete(f"{BASE}{self.med.pk}/")
        self.assertEqual(res.status_code, 409)

    def test_adjust_stock(self):
        self.client.force_authenticate(self.pharmacist)

        res = self.client.post(
            f"{BASE}adjust-stock/",
            {"medication_id": str(self.med.pk), "counted_quantity": 7, "reason": "Count"},
            format="json",
        )

        self.assertEqual(res.status_code, 200, res.data)
        self.assertTrue(res.data["changed"])
        self.assertEqual(res.data["new_stock"], 7)
        self.assertEqual(res.data["stock_status"], Medication.StockStatus.LOW_STOCK)
        self.assertEqual(res.data["movement"]["quantity_delta"], -5)

    def test_adjust_stock_errors(self):
        self.client.force_authenticate(self.pharmacist)

        res = self.client.post(
            f"{BASE}adjust-stock/",
            {"medication_id": str(self.med.pk), "counted_quantity": 7, "reason": ""},
            format="json",
        )
        self.assertEqual(res.status_code, 400)

        res = self.client.post(
            f"{BASE}adjust-stock/",
            {
                "medication_id": "00000000-0000-0000-0000-000000000000",
                "counted_quantity": 7,
                "reason": "Count",
            },
            format="json",
        )
        self.assertEqual(res.status_code, 404)

    def test_movements(self):
        self.client.force_authenticate(self.nurse)

        res = self.client.get(f"{BASE}{self.med.pk}/movements/")

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["count"], 1)
        self.assertEqual(res.data["results"][0]["movement_type"], StockMovement.MovementType.IN)

        res = self.client.get(f"{BASE}{self.med.pk}/movements/?limit=0")
        self.assertEqual(res.status_code, 400)

    def test_low_stock_and_expiry(self):
        self.client.force_authenticate(self.pharmacist)
        create_medication(name="Empty", minimum_stock=5)
        create_medication(
            name="Soon",
            minimum_stock=1,
            initial_stock=10,
            expiration_date=timezone.localdate() + timedelta(days=20),
        )

        res = self.client.get(f"{BASE}low-stock/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual([m["name"] for m in res.data["results"]], ["Empty"])

        res = self.client.get(f"{BASE}expiry-alerts/?days=30")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["count"], 1)
        self.assertEqual(res.data["results"][0]["name"], "Soon")
        self.assertEqual(res.data["results"][0]["urgency"], "high")

        res = self.client.get(f"{BASE}expiry-alerts/?days=-1")
        self.assertEqual(res.status_code, 400)

    def test_stats_requires_reports_capability(self):
        self.client.force_authenticate(self.nurse)
        self.assertEqual(self.client.get(f"{BASE}stats/").status_code, 403)

        self.client.force_authenticate(self.pharmacist)
        res = self.client.get(f"{BASE}stats/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["total_medications"], 1)
        self.assertEqual(Decimal(res.data["total_value"]), Decimal("24.00"))
