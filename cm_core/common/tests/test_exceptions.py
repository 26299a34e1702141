# cm_core/common/tests/test_exceptions.py
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.test import APIRequestFactory

from cm_core.common.api.exceptions import ConflictError, api_exception_handler


def _ctx():
    request = APIRequestFactory().get("/")
    return {"request": request, "view": None}


def test_conflict_error_keeps_its_code():
    resp = api_exception_handler(ConflictError("No se puede eliminar una factura pagada", code="already_paid"), _ctx())

    assert resp.status_code == 409
    assert resp.data["error"]["code"] == "already_paid"
    assert resp.data["error"]["message"] == "No se puede eliminar una factura pagada"
    assert resp.data["error"]["details"] is None
    assert resp.data["error"]["request_id"]


def test_not_found_envelope():
    resp = api_exception_handler(NotFound("Factura no encontrada"), _ctx())

    assert resp.status_code == 404
    assert resp.data["error"]["code"] == "not_found"


def test_validation_error_details_are_kept():
    resp = api_exception_handler(ValidationError({"amount": ["Must be > 0."]}), _ctx())

    assert resp.status_code == 400
    assert resp.data["error"]["code"] == "validation_error"
    assert resp.data["error"]["message"] == "Request failed."
    assert resp.data["error"]["details"] == {"amount": ["Must be > 0."]}


def test_unhandled_error_becomes_server_error(caplog):
    resp = api_exception_handler(RuntimeError("boom"), _ctx())

    assert resp.status_code == 500
    assert resp.data["error"]["code"] == "server_error"
    assert "Unhandled API error" in caplog.text


def test_request_id_is_reused_within_a_request():
    ctx = _ctx()

    first = api_exception_handler(NotFound("Factura no encontrada"), ctx)
    second = api_exception_handler(ConflictError("Conflicto", code="has_payments"), ctx)

    assert first.data["error"]["request_id"] == second.data["error"]["request_id"]
    assert ctx["request"].request_id == first.data["error"]["request_id"]


def test_detail_with_extra_keys_splits_message_and_details():
    exc = ValidationError({"detail": ["Cantidad invalida"], "items": ["Linea 2 sin precio"]})

    resp = api_exception_handler(exc, _ctx())

    assert resp.status_code == 400
    assert resp.data["error"]["message"] == "Cantidad invalida"
    assert resp.data["error"]["details"] == {"items": ["Linea 2 sin precio"]}
