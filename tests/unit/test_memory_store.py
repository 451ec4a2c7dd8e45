"""
Unit tests for InMemoryRowStore.

Valida la semántica que los repositorios esperan del row store:
filtros, orden, paginación inclusiva, conteo, updates condicionales y UNIQUE.
"""
from datetime import date

import pytest

from sierra_backend.exceptions import StoreError
from sierra_backend.models.enums import EstadoSierra
from sierra_backend.repositories.memory_store import InMemoryRowStore
from sierra_backend.repositories.row_store import (
    Filter,
    Order,
    eq,
    gte,
    ilike,
    in_,
    is_null,
    lte,
    neq,
    not_null,
)


@pytest.fixture
def mem():
    store = InMemoryRowStore(unique={"sierras": ["codigo_barras"]})
    store.insert("sierras", [
        {"codigo_barras": "SRR-001", "sucursal_id": 1, "estado_id": EstadoSierra.DISPONIBLE, "activo": True},
        {"codigo_barras": "SRR-002", "sucursal_id": 1, "estado_id": EstadoSierra.EN_PROCESO_AFILADO, "activo": True},
        {"codigo_barras": "XYZ-003", "sucursal_id": 2, "estado_id": EstadoSierra.FUERA_DE_SERVICIO, "activo": False},
    ])
    return store


# ==================== INSERT ====================


def test_insert_assigns_incremental_ids(mem):
    created = mem.insert("sierras", {"codigo_barras": "SRR-004", "sucursal_id": 3})
    assert created[0]["id"] == 4


def test_insert_serializes_enums_and_dates():
    store = InMemoryRowStore()
    row = store.insert("afilados", {"estado_id": EstadoSierra.LISTA_PARA_RETIRO, "fecha": date(2026, 3, 2)})[0]
    assert row["estado_id"] == 3
    assert row["fecha"] == "2026-03-02"


def test_insert_duplicate_unique_column_raises_store_error(mem):
    with pytest.raises(StoreError) as exc_info:
        mem.insert("sierras", {"codigo_barras": "SRR-001", "sucursal_id": 2})

    assert exc_info.value.error_code == "STORE_ERROR"
    assert exc_info.value.data["table"] == "sierras"


def test_insert_returns_copies(mem):
    created = mem.insert("sierras", {"codigo_barras": "SRR-005", "sucursal_id": 1})[0]
    created["activo"] = False
    stored = mem.select("sierras", filters=[eq("id", created["id"])]).rows[0]
    assert "activo" not in stored


# ==================== SELECT ====================


def test_select_filters(mem):
    assert len(mem.select("sierras", filters=[eq("activo", True)]).rows) == 2
    assert len(mem.select("sierras", filters=[neq("sucursal_id", 1)]).rows) == 1
    assert len(mem.select("sierras", filters=[in_("id", [1, 3])]).rows) == 2
    assert [r["id"] for r in mem.select("sierras", filters=[ilike("codigo_barras", "%srr%")]).rows] == [1, 2]


def test_select_enum_filter_matches_stored_int(mem):
    rows = mem.select("sierras", filters=[eq("estado_id", EstadoSierra.EN_PROCESO_AFILADO)]).rows
    assert [r["codigo_barras"] for r in rows] == ["SRR-002"]


def test_select_null_filters():
    store = InMemoryRowStore()
    store.insert("afilados", [
        {"sierra_id": 1, "fecha_salida": None},
        {"sierra_id": 1, "fecha_salida": "2026-03-09"},
    ])
    assert len(store.select("afilados", filters=[is_null("fecha_salida")]).rows) == 1
    assert len(store.select("afilados", filters=[not_null("fecha_salida")]).rows) == 1


def test_select_date_range():
    store = InMemoryRowStore()
    store.insert("afilados", [
        {"fecha_afilado": "2026-03-01"},
        {"fecha_afilado": "2026-03-05"},
        {"fecha_afilado": "2026-03-10"},
    ])
    rows = store.select(
        "afilados",
        filters=[gte("fecha_afilado", date(2026, 3, 2)), lte("fecha_afilado", date(2026, 3, 10))]
    ).rows
    assert [r["fecha_afilado"] for r in rows] == ["2026-03-05", "2026-03-10"]


def test_select_order_and_inclusive_range_with_count(mem):
    result = mem.select(
        "sierras",
        order=[Order("codigo_barras", desc=True)],
        range_=(0, 1),
        count=True
    )
    assert [r["codigo_barras"] for r in result.rows] == ["XYZ-003", "SRR-002"]
    assert result.count == 3


def test_select_count_only_when_requested(mem):
    assert mem.select("sierras").count is None


def test_select_projection(mem):
    rows = mem.select("sierras", columns="id, activo", filters=[eq("id", 1)]).rows
    assert rows == [{"id": 1, "activo": True}]


def test_select_unknown_table_is_empty(mem):
    assert mem.select("no_existe").rows == []


def test_filter_rejects_unknown_op():
    with pytest.raises(ValueError):
        Filter("id", "between", (1, 2))


# ==================== UPDATE / DELETE ====================


def test_conditional_update_returns_matching_rows(mem):
    updated = mem.update("sierras", {"estado_id": EstadoSierra.LISTA_PARA_RETIRO}, [eq("id", 2), eq("activo", True)])
    assert updated[0]["estado_id"] == 3


def test_conditional_update_miss_returns_empty(mem):
    assert mem.update("sierras", {"activo": True}, [eq("id", 1), eq("activo", False)]) == []


def test_update_without_filters_not_allowed(mem):
    with pytest.raises(ValueError):
        mem.update("sierras", {"activo": False}, [])


def test_update_violating_unique_raises_and_leaves_row(mem):
    with pytest.raises(StoreError):
        mem.update("sierras", {"codigo_barras": "SRR-001"}, [eq("id", 2)])
    assert mem.select("sierras", filters=[eq("id", 2)]).rows[0]["codigo_barras"] == "SRR-002"


def test_delete_returns_deleted_rows(mem):
    deleted = mem.delete("sierras", [eq("sucursal_id", 1)])
    assert {r["id"] for r in deleted} == {1, 2}
    assert len(mem.select("sierras").rows) == 1


def test_delete_without_filters_not_allowed(mem):
    with pytest.raises(ValueError):
        mem.delete("sierras", [])
