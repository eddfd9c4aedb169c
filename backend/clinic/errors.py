# clinic/errors.py
#
# Error kinds shared by every app. Services raise these; the views let them
# propagate and exception_handler() below turns them into JSON responses of
# the form {"error": "...", "code": "<kind>", ...extra}.

import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class ClinicError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"
    kind = "Error"

    def __init__(self, detail=None, **extra):
        super().__init__(detail=detail)
        self.extra = extra

    @property
    def message(self) -> str:
        return str(self.detail)


class InvalidInput(ClinicError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input"
    kind = "InvalidInput"


class Unauthorized(ClinicError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not allowed to perform this action"
    kind = "Unauthorized"


class NotFound(ClinicError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"
    kind = "NotFound"


class Conflict(ClinicError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict"
    kind = "Conflict"


class InvalidTransition(ClinicError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Invalid state transition"
    kind = "InvalidTransition"


class RoleConflict(ClinicError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Role is already taken"
    kind = "RoleConflict"


class StoreUnavailable(ClinicError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Storage is unavailable"
    kind = "StoreUnavailable"


def exception_handler(exc, context):
    """DRF exception handler keeping the {"error": ...} body shape."""
    if isinstance(exc, ClinicError):
        body = {"error": exc.message, "code": exc.kind}
        body.update(exc.extra)
        if exc.status_code >= 500:
            logger.error("%s in %s: %s", exc.kind, context.get("view").__class__.__name__, exc.message)
        return Response(body, status=exc.status_code)

    response = drf_exception_handler(exc, context)
    if response is not None and isinstance(response.data, dict) and "detail" in response.data:
        response.data = {"error": str(response.data["detail"])}
    return response
