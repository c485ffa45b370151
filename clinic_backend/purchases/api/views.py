# purchases/api/views.py

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.generics import GenericAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from medications.api.errors import inventory_error_response
from medications.services.exceptions import InventoryError
from permissions.roles import (
    CAP_PURCHASES_ORDER,
    CAP_PURCHASES_RECEIVE,
    CAP_PURCHASES_VIEW,
    HasCapability,
)
from purchases.api.serializers import (
    CancelSupplierOrderSerializer,
    ReceiveSupplierOrderSerializer,
    SupplierOrderCreateSerializer,
    SupplierOrderSerializer,
    SupplierSerializer,
)
from purchases.models import Supplier, SupplierOrder
from purchases.services.order_service import (
    cancel_supplier_order,
    create_supplier_order,
    get_order,
    list_pending_orders,
    receive_supplier_order,
)
from purchases.services.supplier_service import (
    deactivate_supplier,
    get_supplier,
    update_supplier,
)


class ReadWriteCapabilityMixin:
    read_capability = CAP_PURCHASES_VIEW
    write_capability = CAP_PURCHASES_ORDER

    def get_required_capability(self):
        if self.request.method in ("GET", "HEAD", "OPTIONS"):
            return self.read_capability
        return self.write_capability


class SupplierListCreateView(ReadWriteCapabilityMixin, GenericAPIView):
    permission_classes = [IsAuthenticated, HasCapability]
    serializer_class = SupplierSerializer

    @extend_schema(tags=["purchases"], responses=SupplierSerializer(many=True))
    def get(self, request):
        qs = Supplier.objects.filter(is_active=True).order_by("name")
        return Response(
            SupplierSerializer(qs, many=True).data, status=status.HTTP_200_OK
        )

    @extend_schema(
        tags=["purchases"],
        request=SupplierSerializer,
        responses={201: SupplierSerializer},
    )
    def post(self, request):
        s = SupplierSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        supplier = s.save()
        return Response(
            SupplierSerializer(supplier).data, status=status.HTTP_201_CREATED
        )


class SupplierDetailView(ReadWriteCapabilityMixin, GenericAPIView):
    """
    Retrieve / patch a supplier. DELETE deactivates: orders keep their supplier.
    """

    permission_classes = [IsAuthenticated, HasCapability]
    serializer_class = SupplierSerializer

    @extend_schema(tags=["purchases"], responses=SupplierSerializer)
    def get(self, request, supplier_id):
        try:
            supplier = get_supplier(supplier_id)
        except InventoryError as exc:
            return inventory_error_response(exc)
        return Response(SupplierSerializer(supplier).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["purchases"],
        request=SupplierSerializer,
        responses={200: SupplierSerializer},
    )
    def patch(self, request, supplier_id):
        s = SupplierSerializer(data=request.data, partial=True)
        s.is_valid(raise_exception=True)

        try:
            supplier = update_supplier(
                supplier_id=supplier_id, actor=request.user, **s.validated_data
            )
        except InventoryError as exc:
            return inventory_error_response(exc)

        return Response(SupplierSerializer(supplier).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["purchases"], responses={200: SupplierSerializer})
    def delete(self, request, supplier_id):
        try:
            supplier = deactivate_supplier(supplier_id=supplier_id, actor=request.user)
        except InventoryError as exc:
            return inventory_error_response(exc)
        return Response(SupplierSerializer(supplier).data, status=status.HTTP_200_OK)


class SupplierOrderListCreateView(ReadWriteCapabilityMixin, GenericAPIView):
    permission_classes = [IsAuthenticated, HasCapability]
    serializer_class = SupplierOrderCreateSerializer

    @extend_schema(tags=["purchases"], responses=SupplierOrderSerializer(many=True))
    def get(self, request):
        qs = (
            SupplierOrder.objects.select_related("supplier")
            .prefetch_related("lines__medication")
            .order_by("-created_at")
        )
        order_status = request.query_params.get("status")
        if order_status:
            qs = qs.filter(status=order_status)
        return Response(
            SupplierOrderSerializer(qs, many=True).data, status=status.HTTP_200_OK
        )

    @extend_schema(
        tags=["purchases"],
        request=SupplierOrderCreateSerializer,
        responses={201: SupplierOrderSerializer},
    )
    def post(self, request):
        s = self.get_serializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        try:
            order = create_supplier_order(
                supplier_id=data["supplier_id"],
                lines=data["lines"],
                actor=request.user,
                expected_delivery_date=data.get("expected_delivery_date"),
            )
        except InventoryError as exc:
            return inventory_error_response(exc)

        return Response(
            SupplierOrderSerializer(get_order(order.pk)).data,
            status=status.HTTP_201_CREATED,
        )


class PendingSupplierOrdersView(GenericAPIView):
    permission_classes = [IsAuthenticated, HasCapability]
    required_capability = CAP_PURCHASES_VIEW
    serializer_class = SupplierOrderSerializer

    @extend_schema(tags=["purchases"], responses=SupplierOrderSerializer(many=True))
    def get(self, request):
        return Response(
            SupplierOrderSerializer(list_pending_orders(), many=True).data,
            status=status.HTTP_200_OK,
        )


class SupplierOrderDetailView(GenericAPIView):
    permission_classes = [IsAuthenticated, HasCapability]
    required_capability = CAP_PURCHASES_VIEW
    serializer_class = SupplierOrderSerializer

    @extend_schema(tags=["purchases"], responses=SupplierOrderSerializer)
    def get(self, request, order_id):
        try:
            order = get_order(order_id)
        except InventoryError as exc:
            return inventory_error_response(exc)
        return Response(SupplierOrderSerializer(order).data, status=status.HTTP_200_OK)


class SupplierOrderReceiveView(GenericAPIView):
    permission_classes = [IsAuthenticated, HasCapability]
    required_capability = CAP_PURCHASES_RECEIVE
    serializer_class = ReceiveSupplierOrderSerializer

    @extend_schema(
        tags=["purchases"],
        request=ReceiveSupplierOrderSerializer,
        responses={200: SupplierOrderSerializer},
    )
    def post(self, request, order_id):
        s = self.get_serializer(data=request.data)
        s.is_valid(raise_exception=True)

        lines = s.validated_data.get("lines")
        quantities = None
        if lines:
            quantities = {str(line["line_id"]): line["quantity"] for line in lines}

        try:
            result = receive_supplier_order(
                order_id=order_id,
                actor=request.user,
                quantities=quantities,
            )
        except InventoryError as exc:
            return inventory_error_response(exc)

        return Response(
            {
                "received": result.received_any,
                "movements": len(result.movements),
                "order": SupplierOrderSerializer(get_order(result.order.pk)).data,
            },
            status=status.HTTP_200_OK,
        )


class SupplierOrderCancelView(GenericAPIView):
    permission_classes = [IsAuthenticated, HasCapability]
    required_capability = CAP_PURCHASES_ORDER
    serializer_class = CancelSupplierOrderSerializer

    @extend_schema(
        tags=["purchases"],
        request=CancelSupplierOrderSerializer,
        responses={200: SupplierOrderSerializer},
    )
    def post(self, request, order_id):
        s = self.get_serializer(data=request.data)
        s.is_valid(raise_exception=True)

        try:
            order = cancel_supplier_order(
                order_id=order_id,
                actor=request.user,
                reason=s.validated_data.get("reason", ""),
            )
        except InventoryError as exc:
            return inventory_error_response(exc)

        return Response(SupplierOrderSerializer(get_order(order.pk)).data, status=status.HTTP_200_OK)
