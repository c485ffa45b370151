# prescriptions/api/views.py

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.generics import GenericAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from medications.api.errors import inventory_error_response
from medications.services.exceptions import InventoryError
from permissions.roles import (
    CAP_PHARMACY_DISPENSE,
    CAP_PRESCRIPTIONS_EDIT,
    CAP_PRESCRIPTIONS_VIEW,
    HasCapability,
)
from prescriptions.api.serializers import (
    PrescriptionCancelSerializer,
    PrescriptionSerializer,
    PrescriptionUpdateSerializer,
)
from prescriptions.services.dispensing_service import (
    cancel_prescription,
    deliver_prescription,
    list_pending_prescriptions,
    update_prescription,
)


class PendingPrescriptionsView(GenericAPIView):
    permission_classes = [IsAuthenticated, HasCapability]
    required_capability = CAP_PRESCRIPTIONS_VIEW
    serializer_class = PrescriptionSerializer

    @extend_schema(
        tags=["prescriptions"],
        parameters=[
            OpenApiParameter(name="patient_id", type=str, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="search", type=str, location=OpenApiParameter.QUERY, required=False),
        ],
        responses=PrescriptionSerializer(many=True),
    )
    def get(self, request):
        qs = list_pending_prescriptions(
            patient_id=(request.query_params.get("patient_id") or "").strip() or None,
            search=(request.query_params.get("search") or "").strip() or None,
        )
        data = PrescriptionSerializer(qs, many=True).data
        return Response({"count": len(data), "results": data}, status=status.HTTP_200_OK)


class PrescriptionUpdateView(GenericAPIView):
    permission_classes = [IsAuthenticated, HasCapability]
    required_capability = CAP_PRESCRIPTIONS_EDIT
    serializer_class = PrescriptionUpdateSerializer

    @extend_schema(
        tags=["prescriptions"],
        request=PrescriptionUpdateSerializer,
        responses={200: PrescriptionSerializer},
    )
    def patch(self, request, prescription_id):
        s = self.get_serializer(data=request.data)
        s.is_valid(raise_exception=True)

        try:
            prescription = update_prescription(
                prescription_id=prescription_id,
                actor=request.user,
                **s.validated_data,
            )
        except InventoryError as exc:
            return inventory_error_response(exc)

        return Response(PrescriptionSerializer(prescription).data, status=status.HTTP_200_OK)


class PrescriptionDeliverView(GenericAPIView):
    permission_classes = [IsAuthenticated, HasCapability]
    required_capability = CAP_PHARMACY_DISPENSE
    serializer_class = PrescriptionSerializer

    @extend_schema(tags=["prescriptions"], request=None, responses={200: PrescriptionSerializer})
    def post(self, request, prescription_id):
        try:
            result = deliver_prescription(prescription_id=prescription_id, actor=request.user)
        except InventoryError as exc:
            return inventory_error_response(exc)

        payload = PrescriptionSerializer(result.prescription).data
        payload["stock_deducted"] = -result.stock_change.delta if result.stock_change else 0
        payload["shortfall"] = result.shortfall
        if result.deduction_error:
            payload["deduction_error"] = result.deduction_error

        return Response(payload, status=status.HTTP_200_OK)


class PrescriptionCancelView(GenericAPIView):
    permission_classes = [IsAuthenticated, HasCapability]
    required_capability = CAP_PRESCRIPTIONS_EDIT
    serializer_class = PrescriptionCancelSerializer

    @extend_schema(
        tags=["prescriptions"],
        request=PrescriptionCancelSerializer,
        responses={200: PrescriptionSerializer},
    )
    def post(self, request, prescription_id):
        s = self.get_serializer(data=request.data)
        s.is_valid(raise_exception=True)

        try:
            prescription = cancel_prescription(
                prescription_id=prescription_id,
                actor=request.user,
                reason=s.validated_data.get("reason", ""),
            )
        except InventoryError as exc:
            return inventory_error_response(exc)

        return Response(PrescriptionSerializer(prescription).data, status=status.HTTP_200_OK)
