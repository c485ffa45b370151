# medications/api/views.py

"""
MEDICATION VIEWSET

Purpose:
- Pharmacy catalogue CRUD, stock history, physical count adjustments
- Low stock / expiry alerts and inventory statistics

Key rule alignment:
- Views never write stock; every write goes through medications.services
"""

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from alerts.services.expiry_scan import scan_expiring_medications
from alerts.services.threshold_alerts import list_low_stock
from medications.api.errors import inventory_error_response
from medications.api.serializers import (
    ExpiryAlertSerializer,
    InventoryStatsSerializer,
    MedicationSerializer,
    StockAdjustmentSerializer,
    StockMovementSerializer,
)
from medications.models import Medication
from medications.services.exceptions import InventoryError
from medications.services.medication_service import (
    create_medication,
    delete_medication,
    inventory_stats,
    medication_movements,
    update_medication,
)
from medications.services.stock_adjustments import adjust_stock_to_count
from permissions.roles import (
    CAP_INVENTORY_ADJUST,
    CAP_INVENTORY_EDIT,
    CAP_INVENTORY_VIEW,
    CAP_REPORTS_VIEW_INVENTORY,
    HasCapability,
)


class MedicationViewSet(viewsets.ModelViewSet):
    serializer_class = MedicationSerializer
    permission_classes = [IsAuthenticated, HasCapability]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ["stock_status", "form", "prescription_required"]
    search_fields = ["name", "active_ingredient", "manufacturer", "barcode"]
    ordering_fields = ["name", "current_stock", "expiration_date"]

    capability_by_action = {
        "list": CAP_INVENTORY_VIEW,
        "retrieve": CAP_INVENTORY_VIEW,
        "movements": CAP_INVENTORY_VIEW,
        "low_stock": CAP_INVENTORY_VIEW,
        "expiry_alerts": CAP_INVENTORY_VIEW,
        "create": CAP_INVENTORY_EDIT,
        "update": CAP_INVENTORY_EDIT,
        "partial_update": CAP_INVENTORY_EDIT,
        "destroy": CAP_INVENTORY_EDIT,
        "adjust_stock": CAP_INVENTORY_ADJUST,
        "stats": CAP_REPORTS_VIEW_INVENTORY,
    }

    def get_required_capability(self):
        return self.capability_by_action.get(self.action)

    def get_queryset(self):
        return Medication.objects.all().order_by("name")

    def create(self, request, *args, **kwargs):
        s = self.get_serializer(data=request.data)
        s.is_valid(raise_exception=True)
        fields = dict(s.validated_data)
        initial_stock = fields.pop("initial_stock", 0)

        try:
            medication = create_medication(
                actor=request.user, initial_stock=initial_stock, **fields
            )
        except InventoryError as exc:
            return inventory_error_response(exc)

        return Response(
            self.get_serializer(medication).data, status=status.HTTP_201_CREATED
        )

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        instance = self.get_object()

        s = self.get_serializer(instance, data=request.data, partial=partial)
        s.is_valid(raise_exception=True)
        fields = dict(s.validated_data)
        fields.pop("initial_stock", None)

        try:
            medication = update_medication(
                medication_id=instance.pk, actor=request.user, **fields
            )
        except InventoryError as exc:
            return inventory_error_response(exc)

        return Response(self.get_serializer(medication).data, status=status.HTTP_200_OK)

    def destroy(self, request, *args, **kwargs):
        instance = self.get_object()
        try:
            delete_medication(medication_id=instance.pk, actor=request.user)
        except InventoryError as exc:
            return inventory_error_response(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)

    # -----------------------------
    # Ledger history
    # -----------------------------
    @extend_schema(
        parameters=[
            OpenApiParameter(name="limit", type=int, location=OpenApiParameter.QUERY, required=False),
        ],
        responses=StockMovementSerializer(many=True),
    )
    @action(detail=True, methods=["get"], url_path="movements")
    def movements(self, request, pk=None):
        raw_limit = (request.query_params.get("limit") or "50").strip()
        try:
            limit = int(raw_limit)
            if limit <= 0:
                raise ValueError
        except ValueError:
            return Response({"detail": "limit must be a positive integer"}, status=400)

        try:
            qs = medication_movements(pk, limit=limit)
        except InventoryError as exc:
            return inventory_error_response(exc)

        data = StockMovementSerializer(qs, many=True).data
        return Response({"count": len(data), "results": data})

    # -----------------------------
    # Physical count
    # -----------------------------
    @extend_schema(request=StockAdjustmentSerializer, responses=MedicationSerializer)
    @action(detail=False, methods=["post"], url_path="adjust-stock")
    def adjust_stock(self, request):
        s = StockAdjustmentSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        try:
            result = adjust_stock_to_count(
                medication_id=data["medication_id"],
                counted_quantity=data["counted_quantity"],
                reason=data.get("reason", ""),
                actor=request.user,
            )
        except InventoryError as exc:
            return inventory_error_response(exc)

        return Response(
            {
                "changed": result.changed,
                "previous_stock": result.previous_stock,
                "new_stock": result.new_stock,
                "stock_status": result.new_status,
                "movement": (
                    StockMovementSerializer(result.movement).data if result.movement else None
                ),
            },
            status=status.HTTP_200_OK,
        )

    # -----------------------------
    # Alerts
    # -----------------------------
    @extend_schema(responses=MedicationSerializer(many=True))
    @action(detail=False, methods=["get"], url_path="low-stock")
    def low_stock(self, request):
        data = self.get_serializer(list_low_stock(), many=True).data
        return Response({"count": len(data), "results": data})

    @extend_schema(
        parameters=[
            OpenApiParameter(name="days", type=int, location=OpenApiParameter.QUERY, required=False),
        ],
        responses=ExpiryAlertSerializer(many=True),
    )
    @action(detail=False, methods=["get"], url_path="expiry-alerts")
    def expiry_alerts(self, request):
        raw_days = (request.query_params.get("days") or "").strip()
        days = None
        if raw_days:
            try:
                days = int(raw_days)
                if days < 0:
                    raise ValueError
            except ValueError:
                return Response(
                    {"detail": "days must be a non-negative integer"}, status=400
                )

        alerts = scan_expiring_medications(horizon_days=days)
        data = ExpiryAlertSerializer(alerts, many=True).data
        return Response({"count": len(data), "results": data})

    @extend_schema(responses=InventoryStatsSerializer)
    @action(detail=False, methods=["get"], url_path="stats")
    def stats(self, request):
        return Response(InventoryStatsSerializer(inventory_stats()).data)
