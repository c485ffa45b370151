# prescriptions/api/urls.py

from django.urls import path

from prescriptions.api.views import (
    PendingPrescriptionsView,
    PrescriptionCancelView,
    PrescriptionDeliverView,
    PrescriptionUpdateView,
)

urlpatterns = [
    path("pending/", PendingPrescriptionsView.as_view(), name="prescriptions-pending"),
    path(
        "<uuid:prescription_id>/",
        PrescriptionUpdateView.as_view(),
        name="prescription-update",
    ),
    path(
        "<uuid:prescription_id>/deliver/",
        PrescriptionDeliverView.as_view(),
        name="prescription-deliver",
    ),
    path(
        "<uuid:prescription_id>/cancel/",
        PrescriptionCancelView.as_view(),
        name="prescription-cancel",
    ),
]
