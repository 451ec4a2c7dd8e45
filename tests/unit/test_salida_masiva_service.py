"""
Unit tests for SalidaMasivaService.

Tests validate:
- Validación todo-o-nada: un item inválido rechaza el lote sin escribir
- Detalle escrito antes de cada despacho
- Éxito parcial reportado con ids exitosos y fallidos
- Reversión: reabre afilados en su estado previo, borra detalles y cabecera; no repetible
"""
from datetime import date
from unittest.mock import MagicMock

import pytest

from sierra_backend.exceptions import (
    AfiladoNoEncontradoError,
    LoteDemasiadoGrandeError,
    LoteEnCursoError,
    LoteInvalidoError,
    PartialFailureError,
    SalidaMasivaNoEncontradaError,
)
from sierra_backend.models.enums import EstadoAfilado, EstadoSierra
from sierra_backend.models.salida_masiva import SalidaMasivaCreateRequest
from sierra_backend.services.claim_service import RedisClaimRegistry
from sierra_backend.services.salida_masiva_service import SalidaMasivaService


FECHA = date(2026, 3, 10)


def _request(afilados_ids, sucursal_id=1):
    return SalidaMasivaCreateRequest(
        sucursal_id=sucursal_id, fecha_salida=FECHA, afilados_ids=afilados_ids
    )


@pytest.fixture
def lote(sistema):
    """Dos sierras de la sucursal 1 con afilados completados."""
    s1 = sistema.sierra("SRR-1")
    s2 = sistema.sierra("SRR-2")
    return {"s1": s1, "s2": s2, "a1": sistema.afilado(s1), "a2": sistema.afilado(s2)}


# ==================== CREAR ====================


def test_create_dispatches_all_afilados(sistema, lote):
    response = sistema.salidas.create_salida_masiva(_request([lote["a1"], lote["a2"]]))

    assert response.total == 2
    assert response.afilados_ids == [lote["a1"], lote["a2"]]
    assert response.salida.fecha_salida == FECHA
    for afilado_id, sierra_id in [(lote["a1"], lote["s1"]), (lote["a2"], lote["s2"])]:
        afilado = sistema.afilado_repo.get(afilado_id)
        assert afilado.fecha_salida == FECHA
        assert afilado.estado == EstadoAfilado.ENTREGADO
        assert sistema.estado(sierra_id) == EstadoSierra.DISPONIBLE

    detalles = sistema.salida_repo.list_detalles(response.salida.id)
    assert [d.afilado_id for d in detalles] == [lote["a1"], lote["a2"]]


def test_invalid_items_reject_whole_batch(sistema, lote):
    """a2 ya despachado y a3 de otra sucursal: nada se escribe."""
    sistema.afilados.registrar_salida(lote["a2"], date(2026, 3, 5))
    s3 = sistema.sierra("SRR-3", sucursal_id=2)
    a3 = sistema.afilado(s3)

    with pytest.raises(LoteInvalidoError) as exc_info:
        sistema.salidas.create_salida_masiva(_request([lote["a1"], lote["a2"], a3]))

    data = exc_info.value.data
    assert data["invalid_ids"] == [lote["a2"], a3]
    assert set(data["motivos"]) == {str(lote["a2"]), str(a3)}
    assert sistema.salidas.list_salidas() == []
    assert sistema.afilado_repo.get(lote["a1"]).abierto is True


def test_inactive_sierra_rejects_batch(sistema_force_close):
    sistema = sistema_force_close
    sierra_id = sistema.sierra("SRR-1")
    afilado_id = sistema.afilado(sierra_id)
    sistema.sierras.aplicar_baja(sierra_id, date(2026, 3, 5))
    sistema.afilado_repo.update_if_closed(afilado_id, {"fecha_salida": None})

    with pytest.raises(LoteInvalidoError) as exc_info:
        sistema.salidas.create_salida_masiva(_request([afilado_id]))

    assert exc_info.value.data["invalid_ids"] == [afilado_id]


def test_unknown_afilado_not_found(sistema, lote):
    with pytest.raises(AfiladoNoEncontradoError) as exc_info:
        sistema.salidas.create_salida_masiva(_request([lote["a1"], 999]))

    assert exc_info.value.data["afilado_ids"] == [999]
    assert sistema.salidas.list_salidas() == []


def test_batch_too_large(sistema):
    service = SalidaMasivaService(
        sistema.sierras, sistema.salida_repo, sistema.afilado_repo, sistema.sierra_repo,
        max_batch_size=2
    )

    with pytest.raises(LoteDemasiadoGrandeError) as exc_info:
        service.create_salida_masiva(_request([1, 2, 3]))

    assert exc_info.value.data == {"cantidad": 3, "maximo": 2}


def test_claimed_sierras_reject_batch(sistema, lote):
    redis_mock = MagicMock()
    redis_mock.set.return_value = False
    service = SalidaMasivaService(
        sistema.sierras, sistema.salida_repo, sistema.afilado_repo, sistema.sierra_repo,
        claims=RedisClaimRegistry(redis_mock, ttl_seconds=30)
    )

    with pytest.raises(LoteEnCursoError):
        service.create_salida_masiva(_request([lote["a1"]]))

    assert sistema.salidas.list_salidas() == []
    assert sistema.afilado_repo.get(lote["a1"]).abierto is True


def test_partial_failure_reports_succeeded_and_failed(sistema_flaky):
    sistema = sistema_flaky
    s1, s2 = sistema.sierra("SRR-1"), sistema.sierra("SRR-2")
    a1, a2 = sistema.afilado(s1), sistema.afilado(s2)
    sistema.store.fail_updates.add(("sierras", s2))

    with pytest.raises(PartialFailureError) as exc_info:
        sistema.salidas.create_salida_masiva(_request([a1, a2]))

    error = exc_info.value
    assert error.error_code == "FALLA_PARCIAL"
    assert error.succeeded == [a1]
    assert error.failed == [a2]
    # La cabecera queda; el detalle del item fallido se descarta
    detalles = sistema.salida_repo.list_detalles(error.batch_id)
    assert [d.afilado_id for d in detalles] == [a1]
    assert sistema.afilado_repo.get(a2).abierto is True


def test_detail_write_failure_skips_mutation(sistema_flaky):
    sistema = sistema_flaky
    a1 = sistema.afilado(sistema.sierra("SRR-1"))
    sistema.store.fail_inserts.add("salida_masiva_afilados")

    with pytest.raises(PartialFailureError) as exc_info:
        sistema.salidas.create_salida_masiva(_request([a1]))

    assert exc_info.value.failed == [a1]
    assert sistema.afilado_repo.get(a1).abierto is True


# ==================== CONSULTAS ====================


def test_get_and_list_salidas(sistema, lote):
    creada = sistema.salidas.create_salida_masiva(_request([lote["a1"]]))
    otra = sistema.salidas.create_salida_masiva(_request([lote["a2"]]))

    detalle = sistema.salidas.get_salida(creada.salida.id)

    assert detalle.afilados_ids == [lote["a1"]]
    assert [s.id for s in sistema.salidas.list_salidas()] == [otra.salida.id, creada.salida.id]
    assert sistema.salidas.list_salidas(sucursal_id=2) == []


def test_get_unknown_salida(sistema):
    with pytest.raises(SalidaMasivaNoEncontradaError):
        sistema.salidas.get_salida(77)


# ==================== REVERTIR ====================


def test_reversal_reopens_afilados_and_deletes_batch(sistema, lote):
    salida = sistema.salidas.create_salida_masiva(_request([lote["a1"], lote["a2"]])).salida

    response = sistema.salidas.delete_salida_masiva(salida.id)

    assert response.revertidos == [lote["a1"], lote["a2"]]
    for afilado_id, sierra_id in [(lote["a1"], lote["s1"]), (lote["a2"], lote["s2"])]:
        afilado = sistema.afilado_repo.get(afilado_id)
        assert afilado.abierto is True
        assert afilado.estado == EstadoAfilado.COMPLETADO
        assert sistema.estado(sierra_id) == EstadoSierra.LISTA_PARA_RETIRO
    assert sistema.salida_repo.get_header(salida.id) is None
    assert sistema.salida_repo.list_detalles(salida.id) == []


def test_reversal_restores_uncompleted_afilado(sistema, lote):
    """Un afilado PENDIENTE despachado en lote vuelve a PENDIENTE y su sierra a EN_PROCESO."""
    s3 = sistema.sierra("SRR-3")
    a3 = sistema.afilado(s3, completar=False)
    salida = sistema.salidas.create_salida_masiva(_request([lote["a1"], a3])).salida

    detalles = {d.afilado_id: d for d in sistema.salida_repo.list_detalles(salida.id)}
    assert detalles[a3].estado_anterior == EstadoAfilado.PENDIENTE
    assert detalles[a3].estado_id_anterior == EstadoSierra.EN_PROCESO_AFILADO
    assert detalles[lote["a1"]].estado_anterior == EstadoAfilado.COMPLETADO
    assert detalles[lote["a1"]].estado_id_anterior == EstadoSierra.LISTA_PARA_RETIRO

    sistema.salidas.delete_salida_masiva(salida.id)

    pendiente = sistema.afilado_repo.get(a3)
    assert pendiente.abierto is True
    assert pendiente.estado == EstadoAfilado.PENDIENTE
    assert sistema.estado(s3) == EstadoSierra.EN_PROCESO_AFILADO
    assert sistema.afilado_repo.get(lote["a1"]).estado == EstadoAfilado.COMPLETADO
    assert sistema.estado(lote["s1"]) == EstadoSierra.LISTA_PARA_RETIRO

    # El ciclo restaurado sigue su curso normal
    sistema.afilados.completar_afilado(a3)
    assert sistema.estado(s3) == EstadoSierra.LISTA_PARA_RETIRO


def test_second_reversal_not_found(sistema, lote):
    salida = sistema.salidas.create_salida_masiva(_request([lote["a1"]])).salida
    sistema.salidas.delete_salida_masiva(salida.id)

    with pytest.raises(SalidaMasivaNoEncontradaError):
        sistema.salidas.delete_salida_masiva(salida.id)


def test_reversal_blocked_by_new_cycle_is_partial(sistema, lote):
    salida = sistema.salidas.create_salida_masiva(_request([lote["a1"], lote["a2"]])).salida
    nuevo = sistema.afilado(lote["s1"], fecha=date(2026, 3, 12), completar=False)

    with pytest.raises(PartialFailureError) as exc_info:
        sistema.salidas.delete_salida_masiva(salida.id)

    error = exc_info.value
    assert error.error_code == "REVERSION_PARCIAL"
    assert error.succeeded == [lote["a2"]]
    assert error.failed == [lote["a1"]]
    assert sistema.afilado_repo.count_open(lote["s1"]) == 1
    detalles = sistema.salida_repo.list_detalles(salida.id)
    assert [d.afilado_id for d in detalles] == [lote["a1"]]

    # Cancelado el ciclo nuevo, la reversión puede reintentarse
    sistema.afilados.eliminar_afilado(nuevo)
    response = sistema.salidas.delete_salida_masiva(salida.id)

    assert response.revertidos == [lote["a1"]]
    assert sistema.salida_repo.get_header(salida.id) is None


def test_reversal_blocked_by_decommission(sistema, lote):
    salida = sistema.salidas.create_salida_masiva(_request([lote["a1"]])).salida
    sistema.sierras.dar_de_baja(lote["s1"], date(2026, 3, 11))

    with pytest.raises(PartialFailureError) as exc_info:
        sistema.salidas.delete_salida_masiva(salida.id)

    assert exc_info.value.failed == [lote["a1"]]
    assert sistema.afilado_repo.get(lote["a1"]).abierto is False
