# purchases/api/urls.py

from django.urls import path

from purchases.api.views import (
    PendingSupplierOrdersView,
    SupplierDetailView,
    SupplierListCreateView,
    SupplierOrderCancelView,
    SupplierOrderDetailView,
    SupplierOrderListCreateView,
    SupplierOrderReceiveView,
)

urlpatterns = [
    path("suppliers/", SupplierListCreateView.as_view(), name="purchase-suppliers"),
    path(
        "suppliers/<uuid:supplier_id>/",
        SupplierDetailView.as_view(),
        name="purchase-supplier-detail",
    ),
    path("orders/", SupplierOrderListCreateView.as_view(), name="supplier-orders"),
    path(
        "orders/pending/",
        PendingSupplierOrdersView.as_view(),
        name="supplier-orders-pending",
    ),
    path(
        "orders/<uuid:order_id>/",
        SupplierOrderDetailView.as_view(),
        name="supplier-order-detail",
    ),
    path(
        "orders/<uuid:order_id>/receive/",
        SupplierOrderReceiveView.as_view(),
        name="supplier-order-receive",
    ),
    path(
        "orders/<uuid:order_id>/cancel/",
        SupplierOrderCancelView.as_view(),
        name="supplier-order-cancel",
    ),
]
