# cm_core/common/api/exceptions.py
from __future__ import annotations

import logging
import uuid
from typing import Any

from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, NotAuthenticated, NotFound, PermissionDenied, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "Request failed."
SERVER_ERROR_MESSAGE = "Unexpected server error."

# checked in order; first match wins
_FIXED_CODES = (
    (ValidationError, "validation_error"),
    (NotAuthenticated, "not_authenticated"),
    (PermissionDenied, "permission_denied"),
    (Http404, "not_found"),
)


class ConflictError(APIException):
    """
    A business rule refused the request (409).

    `code` is the rejection kind the client branches on, e.g. "has_payments"
    or "invoice_cancelled"; `detail` is the human message.
    """
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict."
    default_code = "conflict"

    def __init__(self, detail=None, code=None):
        super().__init__(detail=detail or self.default_detail, code=code or self.default_code)


def error_body(*, request=None, code: str, message: str, details: Any = None) -> dict[str, Any]:
    """
    {"error": {code, message, details, request_id}}

    The request id is minted once per request and reused if the handler runs again.
    """
    request_id = getattr(request, "request_id", None)
    if not request_id:
        request_id = uuid.uuid4().hex
        if request is not None:
            request.request_id = request_id
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": request_id,
        }
    }


def error_code(exc: Exception) -> str:
    for exc_type, code in _FIXED_CODES:
        if isinstance(exc, exc_type):
            return code
    if isinstance(exc, (ConflictError, NotFound)):
        codes = exc.get_codes()
        return codes if isinstance(codes, str) else exc.default_code
    return getattr(exc, "default_code", None) or "api_error"


def _message_and_details(data: Any) -> tuple[str, Any]:
    if not isinstance(data, dict) or "detail" not in data:
        # field errors: {"amount": [...], ...}
        return GENERIC_MESSAGE, data

    detail = data["detail"]
    if isinstance(detail, list) and len(detail) == 1:
        detail = detail[0]
    extra = {k: v for k, v in data.items() if k != "detail"}
    return str(detail), extra or None


def api_exception_handler(exc: Exception, context: dict[str, Any]):
    request = context.get("request")
    response = drf_exception_handler(exc, context)

    if response is None:
        logger.exception("Unhandled API error", exc_info=exc)
        body = error_body(request=request, code="server_error", message=SERVER_ERROR_MESSAGE)
        return Response(body, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    message, details = _message_and_details(response.data)
    body = error_body(request=request, code=error_code(exc), message=message, details=details)
    return Response(body, status=response.status_code, headers=response.headers)
