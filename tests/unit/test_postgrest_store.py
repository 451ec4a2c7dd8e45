"""
Unit tests for PostgrestRowStore.

Usa httpx.MockTransport para validar la traducción a PostgREST:
- filtros como query params
- order / Range / Prefer: count=exact
- escrituras con Prefer: return=representation
- errores HTTP y de transporte → StoreError
"""
import json

import httpx
import pytest

from sierra_backend.exceptions import StoreError
from sierra_backend.models.enums import EstadoSierra
from sierra_backend.repositories.postgrest_store import (
    PostgrestRowStore,
    filter_to_param,
    parse_content_range,
)
from sierra_backend.repositories.row_store import (
    Order,
    eq,
    ilike,
    in_,
    is_null,
    not_null,
)


def _store(handler) -> PostgrestRowStore:
    client = httpx.Client(
        base_url="http://supabase.test/rest/v1",
        transport=httpx.MockTransport(handler)
    )
    return PostgrestRowStore("http://supabase.test", "service-key", client=client)


# ==================== HELPERS ====================


def test_filter_to_param():
    assert filter_to_param(eq("estado_id", EstadoSierra.LISTA_PARA_RETIRO)) == ("estado_id", "eq.3")
    assert filter_to_param(eq("activo", True)) == ("activo", "eq.true")
    assert filter_to_param(is_null("fecha_salida")) == ("fecha_salida", "is.null")
    assert filter_to_param(not_null("fecha_salida")) == ("fecha_salida", "not.is.null")
    assert filter_to_param(in_("id", [1, 2, 3])) == ("id", "in.(1,2,3)")
    assert filter_to_param(ilike("codigo_barras", "%SRR%")) == ("codigo_barras", "ilike.%SRR%")


def test_filter_to_param_quotes_in_values_with_commas():
    assert filter_to_param(in_("codigo_barras", ["A,1", "B"])) == ("codigo_barras", 'in.("A,1",B)')


def test_parse_content_range():
    assert parse_content_range("0-19/57") == 57
    assert parse_content_range("*/0") == 0
    assert parse_content_range("0-9/*") is None
    assert parse_content_range(None) is None


def test_default_client_headers():
    store = PostgrestRowStore("https://abc.supabase.co/", "service-key")
    try:
        assert str(store._client.base_url) == "https://abc.supabase.co/rest/v1/"
        assert store._client.headers["apikey"] == "service-key"
        assert store._client.headers["Authorization"] == "Bearer service-key"
    finally:
        store.close()


# ==================== SELECT ====================


def test_select_builds_query_and_reads_count():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["request"] = request
        return httpx.Response(
            200,
            json=[{"id": 1}, {"id": 2}],
            headers={"Content-Range": "0-1/12"}
        )

    store = _store(handler)
    result = store.select(
        "afilados",
        filters=[eq("sierra_id", 5), is_null("fecha_salida")],
        order=[Order("fecha_afilado", desc=True), Order("id", desc=True)],
        range_=(0, 1),
        count=True
    )

    request = captured["request"]
    assert request.method == "GET"
    assert request.url.path == "/rest/v1/afilados"
    params = request.url.params
    assert params["select"] == "*"
    assert params["sierra_id"] == "eq.5"
    assert params["fecha_salida"] == "is.null"
    assert params["order"] == "fecha_afilado.desc,id.desc"
    assert request.headers["Range"] == "0-1"
    assert request.headers["Range-Unit"] == "items"
    assert request.headers["Prefer"] == "count=exact"
    assert result.rows == [{"id": 1}, {"id": 2}]
    assert result.count == 12


def test_select_out_of_range_page_returns_empty_with_total():
    def handler(request):
        return httpx.Response(416, json={"message": "Requested range not satisfiable"},
                              headers={"Content-Range": "*/5"})

    result = _store(handler).select("sierras", range_=(20, 39), count=True)

    assert result.rows == []
    assert result.count == 5


def test_select_retries_transport_errors():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        if calls["n"] < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json=[{"id": 1}])

    result = _store(handler).select("estados_sierra")

    assert calls["n"] == 3
    assert result.rows == [{"id": 1}]


def test_select_gives_up_after_retries():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(StoreError) as exc_info:
        _store(handler).select("estados_sierra")

    assert exc_info.value.data["table"] == "estados_sierra"


def test_select_http_error_raises_store_error():
    def handler(request):
        return httpx.Response(500, json={"message": "boom"})

    with pytest.raises(StoreError) as exc_info:
        _store(handler).select("sierras")

    assert "boom" in exc_info.value.message


# ==================== WRITES ====================


def test_insert_posts_with_return_representation():
    captured = {}

    def handler(request):
        captured["request"] = request
        body = json.loads(request.content)
        return httpx.Response(201, json=[{**body, "id": 9}])

    created = _store(handler).insert("sierras", {"codigo_barras": "SRR-9", "estado_id": EstadoSierra.DISPONIBLE})

    request = captured["request"]
    assert request.method == "POST"
    assert request.headers["Prefer"] == "return=representation"
    assert json.loads(request.content) == {"codigo_barras": "SRR-9", "estado_id": 1}
    assert created == [{"codigo_barras": "SRR-9", "estado_id": 1, "id": 9}]


def test_conditional_update_sends_filters():
    captured = {}

    def handler(request):
        captured["request"] = request
        return httpx.Response(200, json=[])

    rows = _store(handler).update(
        "afilados", {"fecha_salida": None}, [eq("id", 4), not_null("fecha_salida")]
    )

    request = captured["request"]
    assert request.method == "PATCH"
    assert request.url.params["id"] == "eq.4"
    assert request.url.params["fecha_salida"] == "not.is.null"
    assert json.loads(request.content) == {"fecha_salida": None}
    assert rows == []


def test_update_conflict_raises_store_error():
    def handler(request):
        return httpx.Response(409, json={"message": "duplicate key value violates unique constraint"})

    with pytest.raises(StoreError) as exc_info:
        _store(handler).update("sierras", {"codigo_barras": "X"}, [eq("id", 1)])

    assert exc_info.value.data["table"] == "sierras"


def test_write_transport_error_not_retried():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        raise httpx.ReadTimeout("timeout", request=request)

    with pytest.raises(StoreError):
        _store(handler).delete("salida_masiva_afilados", [eq("id", 1)])

    assert calls["n"] == 1


def test_update_and_delete_require_filters():
    store = _store(lambda request: httpx.Response(200, json=[]))
    with pytest.raises(ValueError):
        store.update("sierras", {"activo": False}, [])
    with pytest.raises(ValueError):
        store.delete("sierras", [])
