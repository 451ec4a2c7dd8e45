"""
Modelos Pydantic para sierras (hojas de sierra físicas).
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Optional
from datetime import date

from .enums import EstadoSierra
from sierra_backend.utils.date_formatter import parse_date


class Sierra(BaseModel):
    """
    Fila de la tabla sierras.

    activo=false significa dada de baja; nunca se elimina físicamente.
    """
    id: int
    codigo_barras: str = Field(..., description="Código de escaneo único")
    sucursal_id: int
    tipo_sierra_id: int
    estado_id: EstadoSierra = EstadoSierra.DISPONIBLE
    activo: bool = True
    fecha_registro: Optional[date] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Sierra":
        return cls(
            id=row["id"],
            codigo_barras=row["codigo_barras"],
            sucursal_id=row["sucursal_id"],
            tipo_sierra_id=row["tipo_sierra_id"],
            estado_id=row.get("estado_id") or EstadoSierra.DISPONIBLE,
            activo=bool(row.get("activo", True)),
            fecha_registro=parse_date(row.get("fecha_registro")),
        )


class SierraConEstado(Sierra):
    """Sierra con su estado derivado (activo + afilado abierto + estado_id)."""
    estado_derivado: EstadoSierra = Field(
        ...,
        description="Estado calculado a partir de activo y del ciclo de afilado abierto"
    )
    afilado_abierto_id: Optional[int] = Field(
        None,
        description="Id del afilado con fecha_salida null, si existe"
    )


class SierraCreateRequest(BaseModel):
    """
    Request body para registrar una sierra.

    Utilizado por endpoint POST /api/sierras.
    """
    codigo_barras: str = Field(
        ...,
        min_length=1,
        description="Código de barras único de la sierra",
        examples=["SRR-000123"]
    )
    sucursal_id: int = Field(..., gt=0, examples=[3])
    tipo_sierra_id: int = Field(..., gt=0, examples=[1])
    fecha_registro: Optional[date] = Field(
        None,
        description="Fecha de registro (default: hoy en timezone local)"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "codigo_barras": "SRR-000123",
                    "sucursal_id": 3,
                    "tipo_sierra_id": 1
                }
            ]
        }
    )


class SierraFiltros(BaseModel):
    """Filtros de búsqueda de sierras (todos opcionales)."""
    codigo_barras: Optional[str] = Field(None, description="Búsqueda parcial (ilike)")
    sucursal_id: Optional[int] = None
    tipo_sierra_id: Optional[int] = None
    estado_id: Optional[EstadoSierra] = None
    activo: Optional[bool] = None


class SierraListResponse(BaseModel):
    """Página de sierras con conteo total."""
    items: list[Sierra]
    total: int
    page: int
    page_size: int


class PuedeAfilarResponse(BaseModel):
    """Respuesta de GET /api/sierras/{id}/puede-afilar."""
    sierra_id: int
    puede_afilar: bool
    activo: bool
    afilados_abiertos: int = Field(..., ge=0, le=1)
