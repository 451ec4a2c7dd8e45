"""
Modelos Pydantic para bajas masivas (decommission en lote de sierras).
"""
from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing import Any, Optional
from datetime import date

from .enums import EstadoSierra
from sierra_backend.utils.date_formatter import parse_date


class BajaMasiva(BaseModel):
    """Cabecera de la tabla bajas_masivas."""
    id: int
    fecha_baja: date
    observaciones: Optional[str] = None
    usuario_id: Optional[str] = None
    creado_en: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "BajaMasiva":
        return cls(
            id=row["id"],
            fecha_baja=parse_date(row["fecha_baja"]),
            observaciones=row.get("observaciones"),
            usuario_id=row.get("usuario_id"),
            creado_en=row.get("creado_en"),
        )


class BajaMasivaDetalle(BaseModel):
    """
    Fila de baja_masiva_sierras.

    Registra el estado previo de cada sierra para poder revertir:
    - estado_anterior: valor de activo antes de la baja
    - estado_id_anterior: estado_id de catálogo antes de la baja
    - afilado_cerrado_id: afilado cerrado por la baja (política force_close)
    """
    id: int
    baja_masiva_id: int
    sierra_id: int
    estado_anterior: bool = True
    estado_id_anterior: EstadoSierra = EstadoSierra.DISPONIBLE
    afilado_cerrado_id: Optional[int] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "BajaMasivaDetalle":
        estado_anterior = row.get("estado_anterior")
        return cls(
            id=row["id"],
            baja_masiva_id=row["baja_masiva_id"],
            sierra_id=row["sierra_id"],
            estado_anterior=True if estado_anterior is None else bool(estado_anterior),
            estado_id_anterior=row.get("estado_id_anterior") or EstadoSierra.DISPONIBLE,
            afilado_cerrado_id=row.get("afilado_cerrado_id"),
        )


class BajaMasivaCreateRequest(BaseModel):
    """
    Request body para crear una baja masiva.

    Utilizado por endpoint POST /api/bajas-masivas.
    """
    fecha_baja: Optional[date] = Field(
        None,
        description="Fecha de baja (default: hoy en timezone local)",
        examples=["2026-03-10"]
    )
    observaciones: Optional[str] = Field(None, max_length=500)
    usuario_id: Optional[str] = None
    sierras_ids: list[int] = Field(
        ...,
        min_length=1,
        description="IDs de sierras a dar de baja (sin duplicados)",
        examples=[[15, 16]]
    )

    @field_validator('sierras_ids')
    @classmethod
    def validate_unique_ids(cls, v: list[int]) -> list[int]:
        """Rechazar IDs duplicados."""
        if len(v) != len(set(v)):
            duplicates = sorted({x for x in v if v.count(x) > 1})
            raise ValueError(f"IDs de sierra duplicados: {duplicates}")
        return v

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "fecha_baja": "2026-03-10",
                    "observaciones": "Sierras con fisuras",
                    "sierras_ids": [15, 16]
                }
            ]
        }
    )


class BajaMasivaResponse(BaseModel):
    """Baja masiva con el detalle de sierras afectadas."""
    baja: BajaMasiva
    detalles: list[BajaMasivaDetalle]
    total: int
