from __future__ import annotations

from django.conf import settings
from rest_framework.exceptions import ValidationError
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class DefaultPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 200


def paginate(request, queryset, serializer_class, *, paginator: PageNumberPagination | None = None) -> Response:
    """
    Shared pagination helper to enforce a stable contract:
      { count, next, previous, results }
    """
    p = paginator or DefaultPagination()
    page = p.paginate_queryset(queryset, request)
    if page is not None:
        ser = serializer_class(page, many=True)
        return p.get_paginated_response(ser.data)

    ser = serializer_class(queryset, many=True)
    return Response(ser.data)


def _positive_int(raw, field_name: str, default: int) -> int:
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError({field_name: "Must be an integer."})
    if value < 1:
        raise ValidationError({field_name: "Must be >= 1."})
    return value


def page_and_limit(request) -> tuple[int, int]:
    """
    Reads ?page=&limit= for endpoints that page in the service layer
    (billing lists carry a summary next to the page, so they don't use DefaultPagination).
    """
    default_limit = getattr(settings, "BILLING_DEFAULT_PAGE_SIZE", 10)
    max_limit = getattr(settings, "BILLING_MAX_PAGE_SIZE", 100)

    page = _positive_int(request.query_params.get("page"), "page", 1)
    limit = _positive_int(request.query_params.get("limit"), "limit", default_limit)
    return page, min(limit, max_limit)
