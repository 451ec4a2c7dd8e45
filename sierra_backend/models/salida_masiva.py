"""
Modelos Pydantic para salidas masivas (despacho en lote de afilados).
"""
from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing import Any, Optional
from datetime import date

from .enums import EstadoAfilado, EstadoSierra
from sierra_backend.utils.date_formatter import parse_date


class SalidaMasiva(BaseModel):
    """Cabecera de la tabla salidas_masivas."""
    id: int
    sucursal_id: int
    fecha_salida: date
    observaciones: Optional[str] = None
    usuario_id: Optional[str] = None
    creado_en: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SalidaMasiva":
        return cls(
            id=row["id"],
            sucursal_id=row["sucursal_id"],
            fecha_salida=parse_date(row["fecha_salida"]),
            observaciones=row.get("observaciones"),
            usuario_id=row.get("usuario_id"),
            creado_en=row.get("creado_en"),
        )


class SalidaMasivaDetalle(BaseModel):
    """
    Fila de salida_masiva_afilados: qué afilado marcó esta salida.

    Registra el estado previo al despacho para poder revertir:
    - estado_anterior: estado del afilado antes de la salida
    - estado_id_anterior: estado derivado de la sierra antes de la salida
    """
    id: int
    salida_masiva_id: int
    afilado_id: int
    estado_anterior: str = EstadoAfilado.COMPLETADO.value
    estado_id_anterior: EstadoSierra = EstadoSierra.LISTA_PARA_RETIRO

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SalidaMasivaDetalle":
        # Filas sin registro previo: se asume un afilado completado
        return cls(
            id=row["id"],
            salida_masiva_id=row["salida_masiva_id"],
            afilado_id=row["afilado_id"],
            estado_anterior=row.get("estado_anterior") or EstadoAfilado.COMPLETADO.value,
            estado_id_anterior=row.get("estado_id_anterior") or EstadoSierra.LISTA_PARA_RETIRO,
        )


class SalidaMasivaCreateRequest(BaseModel):
    """
    Request body para crear una salida masiva.

    Utilizado por endpoint POST /api/salidas-masivas.
    Todos los afilados deben estar abiertos y pertenecer a sierras
    activas de la sucursal indicada; si alguno no cumple, se rechaza
    el lote completo sin escribir nada.
    """
    sucursal_id: int = Field(..., gt=0, examples=[3])
    fecha_salida: Optional[date] = Field(
        None,
        description="Fecha de salida (default: hoy en timezone local)",
        examples=["2026-03-10"]
    )
    observaciones: Optional[str] = Field(None, max_length=500)
    usuario_id: Optional[str] = None
    afilados_ids: list[int] = Field(
        ...,
        min_length=1,
        description="IDs de afilados a despachar (sin duplicados)",
        examples=[[101, 102, 103]]
    )

    @field_validator('afilados_ids')
    @classmethod
    def validate_unique_ids(cls, v: list[int]) -> list[int]:
        """Rechazar IDs duplicados."""
        if len(v) != len(set(v)):
            duplicates = sorted({x for x in v if v.count(x) > 1})
            raise ValueError(f"IDs de afilado duplicados: {duplicates}")
        return v

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "sucursal_id": 3,
                    "fecha_salida": "2026-03-10",
                    "observaciones": "Retiro semanal",
                    "afilados_ids": [101, 102, 103]
                }
            ]
        }
    )


class SalidaMasivaResponse(BaseModel):
    """Salida masiva con los afilados que registra."""
    salida: SalidaMasiva
    afilados_ids: list[int]
    total: int
