# purchases/tests/test_api.py

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from audit.testing import RecordingAuditSink
from medications.models import StockMovement
from medications.services.medication_service import create_medication
from purchases.models import Supplier, SupplierOrder

User = get_user_model()

BASE = "/api/purchases/"


@override_settings(
    PHARMACY_NOTIFIER="alerts.testing.RecordingNotifier",
    PHARMACY_AUDIT_SINK="audit.testing.RecordingAuditSink",
)
class SupplierOrderApiTests(TestCase):
    """
    GUARANTEES:
    - Managers may order but only pharmacy staff may receive
    - Receive accepts an optional per-line quantity list
    - Conflicts (cancelled / already received) answer 409
    """

    def setUp(self):
        self.client = APIClient()
        self.pharmacist = User.objects.create_user(
            email="pharmacist@example.com", password="pass", role="pharmacist"
        )
        self.manager = User.objects.create_user(
            email="manager@example.com", password="pass", role="manager"
        )
        self.supplier = Supplier.objects.create(name="MedSupply Ltd")
        self.med = create_medication(name="Amoxicillin", unit_price=Decimal("1.00"))

    def _create_order(self, quantity=10):
        res = self.client.post(
            f"{BASE}orders/",
            {
                "supplier_id": str(self.supplier.pk),
                "lines": [
                    {"medication_id": str(self.med.pk), "quantity": quantity, "unit_price": "1.25"}
                ],
            },
            format="json",
        )
        self.assertEqual(res.status_code, 201, res.data)
        return res.data

    def test_manager_orders_pharmacist_receives(self):
        self.client.force_authenticate(self.manager)
        order = self._create_order()
        self.assertEqual(order["status"], SupplierOrder.Status.ORDERED)
        self.assertEqual(Decimal(order["total_amount"]), Decimal("12.50"))

        res = self.client.post(f"{BASE}orders/{order['id']}/receive/", {}, format="json")
        self.assertEqual(res.status_code, 403)

        self.client.force_authenticate(self.pharmacist)
        res = self.client.post(f"{BASE}orders/{order['id']}/receive/", {}, format="json")

        self.assertEqual(res.status_code, 200, res.data)
        self.assertTrue(res.data["received"])
        self.assertEqual(res.data["movements"], 1)
        self.assertEqual(res.data["order"]["status"], SupplierOrder.Status.RECEIVED)

        self.med.refresh_from_db()
        self.assertEqual(self.med.current_stock, 10)

        # second receive is a successful no-op
        res = self.client.post(f"{BASE}orders/{order['id']}/receive/", {}, format="json")
        self.assertEqual(res.status_code, 200)
        self.assertFalse(res.data["received"])
        self.assertEqual(StockMovement.objects.filter(medication=self.med).count(), 1)

    def test_partial_receive_and_over_receipt(self):
        self.client.force_authenticate(self.pharmacist)
        order = self._create_order(quantity=10)
        line_id = order["lines"][0]["id"]

        res = self.client.post(
            f"{BASE}orders/{order['id']}/receive/",
            {"lines": [{"line_id": line_id, "quantity": 15}]},
            format="json",
        )
        self.assertEqual(res.status_code, 400)

        res = self.client.post(
            f"{BASE}orders/{order['id']}/receive/",
            {"lines": [{"line_id": line_id, "quantity": 4}]},
            format="json",
        )
        self.assertEqual(res.status_code, 200, res.data)
        self.assertEqual(res.data["order"]["status"], SupplierOrder.Status.PARTIALLY_RECEIVED)

        res = self.client.get(f"{BASE}orders/pending/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual([o["id"] for o in res.data], [order["id"]])

    def test_cancel_then_receive_conflicts(self):
        self.client.force_authenticate(self.pharmacist)
        order = self._create_order()

        res = self.client.post(
            f"{BASE}orders/{order['id']}/cancel/", {"reason": "Wrong supplier"}, format="json"
        )
        self.assertEqual(res.status_code, 200, res.data)
        self.assertEqual(res.data["status"], SupplierOrder.Status.CANCELLED)

        res = self.client.post(f"{BASE}orders/{order['id']}/receive/", {}, format="json")
        self.assertEqual(res.status_code, 409)

    def test_unknown_order(self):
        self.client.force_authenticate(self.pharmacist)
        missing = "00000000-0000-0000-0000-000000000000"
        self.assertEqual(self.client.get(f"{BASE}orders/{missing}/").status_code, 404)
        self.assertEqual(
            self.client.post(f"{BASE}orders/{missing}/receive/", {}, format="json").status_code,
            404,
        )

    def test_suppliers(self):
        self.client.force_authenticate(self.manager)
        res = self.client.post(f"{BASE}suppliers/", {"name": "PharmaDirect"}, format="json")
        self.assertEqual(res.status_code, 201, res.data)

        res = self.client.get(f"{BASE}suppliers/")
        self.assertEqual(sorted(s["name"] for s in res.data), ["MedSupply Ltd", "PharmaDirect"])

    def test_supplier_detail_patch_and_deactivate(self):
        self.client.force_authenticate(self.manager)
        url = f"{BASE}suppliers/{self.supplier.pk}/"

        res = self.client.get(url)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["name"], "MedSupply Ltd")

        res = self.client.patch(url, {"phone": "+237 600 000 000"}, format="json")
        self.assertEqual(res.status_code, 200, res.data)
        self.assertEqual(res.data["phone"], "+237 600 000 000")
        self.assertEqual(res.data["name"], "MedSupply Ltd")

        self.assertEqual(self.client.patch(url, {"name": ""}, format="json").status_code, 400)

        res = self.client.delete(url)
        self.assertEqual(res.status_code, 200)
        self.assertFalse(res.data["is_active"])

        # deactivated, not deleted: hidden from the list, refused for new orders
        self.supplier.refresh_from_db()
        self.assertFalse(self.supplier.is_active)
        self.assertEqual(self.client.get(f"{BASE}suppliers/").data, [])
        res = self.client.post(
            f"{BASE}orders/",
            {
                "supplier_id": str(self.supplier.pk),
                "lines": [{"medication_id": str(self.med.pk), "quantity": 1, "unit_price": "1.00"}],
            },
            format="json",
        )
        self.assertEqual(res.status_code, 409)

        missing = "00000000-0000-0000-0000-000000000000"
        self.assertEqual(self.client.get(f"{BASE}suppliers/{missing}/").status_code, 404)
        self.assertEqual(self.client.delete(f"{BASE}suppliers/{missing}/").status_code, 404)

    def test_supplier_changes_are_audited(self):
        RecordingAuditSink.reset()
        self.client.force_authenticate(self.manager)
        url = f"{BASE}suppliers/{self.supplier.pk}/"

        with self.captureOnCommitCallbacks(execute=True):
            self.client.patch(url, {"contact_name": "Ada"}, format="json")
        with self.captureOnCommitCallbacks(execute=True):
            self.client.delete(url)

        self.assertEqual(RecordingAuditSink.actions(), ["supplier.updated", "supplier.deactivated"])
        self.assertEqual(RecordingAuditSink.records[0]["details"]["fields"], ["contact_name"])
        self.assertEqual(RecordingAuditSink.records[1]["actor_id"], str(self.manager.pk))
