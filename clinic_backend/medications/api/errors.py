# medications/api/errors.py

from rest_framework import status
from rest_framework.response import Response

from medications.services.exceptions import (
    InventoryConflictError,
    InventoryError,
    InventoryNotFoundError,
    InventoryTransactionError,
    InventoryValidationError,
)

STATUS_BY_ERROR = (
    (InventoryValidationError, status.HTTP_400_BAD_REQUEST),
    (InventoryNotFoundError, status.HTTP_404_NOT_FOUND),
    (InventoryConflictError, status.HTTP_409_CONFLICT),
    (InventoryTransactionError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def inventory_error_response(exc: InventoryError) -> Response:
    for error_class, http_status in STATUS_BY_ERROR:
        if isinstance(exc, error_class):
            return Response({"detail": str(exc)}, status=http_status)
    return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
