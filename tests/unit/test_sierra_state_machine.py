"""
Unit tests for SierraStateMachine and estado derivation.

Tests validate:
- Transiciones válidas del ciclo de vida
- Transiciones inválidas → TransicionInvalidaError
- Política de baja (reject / force_close)
- Restauración al estado previo registrado
- derivar_estado a partir de activo + afilado abierto + estado_id
"""
from datetime import date

import pytest

from sierra_backend.exceptions import TransicionInvalidaError
from sierra_backend.models.afilado import Afilado, DespachoRealizado
from sierra_backend.models.enums import DecommissionPolicy, EstadoAfilado, EstadoSierra
from sierra_backend.models.sierra import Sierra
from sierra_backend.services.state_machines.sierra_state_machine import (
    SierraStateMachine,
    derivar_estado,
    transicionar,
)


def _sierra(activo=True, estado_id=EstadoSierra.DISPONIBLE):
    return Sierra(
        id=1, codigo_barras="SRR-1", sucursal_id=1, tipo_sierra_id=1,
        estado_id=estado_id, activo=activo
    )


def _afilado(estado=EstadoAfilado.PENDIENTE):
    return Afilado(
        id=7, sierra_id=1, tipo_afilado_id=1, fecha_afilado=date(2026, 3, 2), estado=estado
    )


# ==================== ESTRUCTURA ====================


def test_initial_state_is_disponible():
    machine = SierraStateMachine(sierra_id=1)
    assert machine.estado == EstadoSierra.DISPONIBLE


def test_hydrates_from_estado():
    machine = SierraStateMachine(sierra_id=1, estado=EstadoSierra.LISTA_PARA_RETIRO)
    assert machine.estado == EstadoSierra.LISTA_PARA_RETIRO


def test_state_values_match_catalog():
    """Los valores de estado coinciden con estado_id del catálogo."""
    assert SierraStateMachine.disponible.value == 1
    assert SierraStateMachine.en_proceso_afilado.value == 2
    assert SierraStateMachine.lista_para_retiro.value == 3
    assert SierraStateMachine.fuera_de_servicio.value == 4


# ==================== CICLO DE AFILADO ====================


def test_full_sharpening_cycle():
    estado = transicionar(1, EstadoSierra.DISPONIBLE, "iniciar_afilado")
    assert estado == EstadoSierra.EN_PROCESO_AFILADO

    estado = transicionar(1, estado, "completar_afilado")
    assert estado == EstadoSierra.LISTA_PARA_RETIRO

    estado = transicionar(1, estado, "despachar")
    assert estado == EstadoSierra.DISPONIBLE


def test_despachar_allowed_from_en_proceso():
    """Una salida puede cerrar un afilado no completado."""
    assert transicionar(1, EstadoSierra.EN_PROCESO_AFILADO, "despachar") == EstadoSierra.DISPONIBLE


def test_iniciar_afilado_twice_rejected():
    with pytest.raises(TransicionInvalidaError) as exc_info:
        transicionar(1, EstadoSierra.EN_PROCESO_AFILADO, "iniciar_afilado")

    assert exc_info.value.error_code == "TRANSICION_INVALIDA"
    assert exc_info.value.data["estado_actual"] == "EN_PROCESO_AFILADO"


def test_despachar_from_disponible_rejected():
    with pytest.raises(TransicionInvalidaError):
        transicionar(1, EstadoSierra.DISPONIBLE, "despachar")


def test_fuera_de_servicio_cannot_start_afilado():
    with pytest.raises(TransicionInvalidaError):
        transicionar(1, EstadoSierra.FUERA_DE_SERVICIO, "iniciar_afilado")


def test_reabrir_only_from_disponible():
    assert transicionar(1, EstadoSierra.DISPONIBLE, "reabrir") == EstadoSierra.LISTA_PARA_RETIRO

    with pytest.raises(TransicionInvalidaError):
        transicionar(1, EstadoSierra.EN_PROCESO_AFILADO, "reabrir")


def test_reabrir_to_recorded_target():
    reabierta = transicionar(
        1, EstadoSierra.DISPONIBLE, "reabrir", destino=EstadoSierra.EN_PROCESO_AFILADO
    )
    assert reabierta == EstadoSierra.EN_PROCESO_AFILADO

    with pytest.raises(TransicionInvalidaError):
        transicionar(1, EstadoSierra.DISPONIBLE, "reabrir", destino=EstadoSierra.FUERA_DE_SERVICIO)


def test_cancelar_afilado_returns_to_disponible():
    assert transicionar(1, EstadoSierra.LISTA_PARA_RETIRO, "cancelar_afilado") == EstadoSierra.DISPONIBLE


# ==================== BAJA ====================


def test_dar_de_baja_from_disponible_any_policy():
    for policy in DecommissionPolicy:
        estado = transicionar(1, EstadoSierra.DISPONIBLE, "dar_de_baja", policy=policy)
        assert estado == EstadoSierra.FUERA_DE_SERVICIO


@pytest.mark.parametrize("estado", [EstadoSierra.EN_PROCESO_AFILADO, EstadoSierra.LISTA_PARA_RETIRO])
def test_dar_de_baja_with_open_afilado_rejected_by_default(estado):
    with pytest.raises(TransicionInvalidaError):
        transicionar(1, estado, "dar_de_baja")


@pytest.mark.parametrize("estado", [EstadoSierra.EN_PROCESO_AFILADO, EstadoSierra.LISTA_PARA_RETIRO])
def test_dar_de_baja_with_open_afilado_force_close(estado):
    resultado = transicionar(1, estado, "dar_de_baja", policy=DecommissionPolicy.FORCE_CLOSE)
    assert resultado == EstadoSierra.FUERA_DE_SERVICIO


def test_dar_de_baja_twice_rejected():
    with pytest.raises(TransicionInvalidaError):
        transicionar(1, EstadoSierra.FUERA_DE_SERVICIO, "dar_de_baja")


# ==================== RESTAURAR ====================


@pytest.mark.parametrize("destino", [
    EstadoSierra.DISPONIBLE,
    EstadoSierra.EN_PROCESO_AFILADO,
    EstadoSierra.LISTA_PARA_RETIRO,
])
def test_restaurar_to_recorded_state(destino):
    assert transicionar(1, EstadoSierra.FUERA_DE_SERVICIO, "restaurar", destino=destino) == destino


def test_restaurar_defaults_to_disponible():
    assert transicionar(1, EstadoSierra.FUERA_DE_SERVICIO, "restaurar") == EstadoSierra.DISPONIBLE


def test_restaurar_active_sierra_rejected():
    with pytest.raises(TransicionInvalidaError):
        transicionar(1, EstadoSierra.DISPONIBLE, "restaurar", destino=EstadoSierra.DISPONIBLE)


# ==================== DERIVACIÓN ====================


def test_derivar_inactiva_is_fuera_de_servicio():
    assert derivar_estado(_sierra(activo=False), None) == EstadoSierra.FUERA_DE_SERVICIO


def test_derivar_sin_afilado_is_disponible():
    # estado_id desactualizado no cambia el resultado
    sierra = _sierra(estado_id=EstadoSierra.EN_PROCESO_AFILADO)
    assert derivar_estado(sierra, None) == EstadoSierra.DISPONIBLE


def test_derivar_afilado_pendiente_is_en_proceso():
    assert derivar_estado(_sierra(), _afilado()) == EstadoSierra.EN_PROCESO_AFILADO


def test_derivar_afilado_completado_is_lista():
    assert derivar_estado(_sierra(), _afilado(EstadoAfilado.COMPLETADO)) == EstadoSierra.LISTA_PARA_RETIRO


def test_derivar_uses_estado_id_for_lista():
    sierra = _sierra(estado_id=EstadoSierra.LISTA_PARA_RETIRO)
    assert derivar_estado(sierra, _afilado()) == EstadoSierra.LISTA_PARA_RETIRO


@pytest.mark.parametrize("estado, esperado", [
    ("Completado", EstadoSierra.LISTA_PARA_RETIRO),
    ("pendiente", EstadoSierra.EN_PROCESO_AFILADO),
    ("En revisión", EstadoSierra.EN_PROCESO_AFILADO),
])
def test_derivar_tolerates_free_form_estado(estado, esperado):
    assert derivar_estado(_sierra(), _afilado(estado)) == esperado


def test_afilado_despacho_sum_type():
    abierto = _afilado()
    cerrado = abierto.model_copy(update={"despacho": DespachoRealizado(fecha_salida=date(2026, 3, 9))})

    assert abierto.abierto is True
    assert abierto.fecha_salida is None
    assert cerrado.abierto is False
    assert cerrado.fecha_salida == date(2026, 3, 9)
