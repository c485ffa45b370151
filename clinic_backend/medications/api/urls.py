# medications/api/urls.py

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from medications.api.views import MedicationViewSet

router = DefaultRouter()

router.register(r"medications", MedicationViewSet, basename="medications")

urlpatterns = [
    path("", include(router.urls)),
]
