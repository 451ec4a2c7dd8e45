"""
Modelos Pydantic para afilados (ciclos de afilado de una sierra).

El estado de despacho de un afilado es un tipo suma:
- DespachoPendiente: ciclo abierto (en la tabla: fecha_salida IS NULL)
- DespachoRealizado: ciclo cerrado con su fecha_salida

La columna nullable existe solo en el borde de persistencia (from_row / to_row).
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Annotated, Any, Literal, Optional, Union
from datetime import date

from .enums import EstadoAfilado
from sierra_backend.utils.date_formatter import parse_date, format_date


class DespachoPendiente(BaseModel):
    """Afilado abierto: aún no sale de la planta."""
    tipo: Literal["pendiente"] = "pendiente"


class DespachoRealizado(BaseModel):
    """Afilado cerrado: salida (o cierre por baja) registrada."""
    tipo: Literal["realizado"] = "realizado"
    fecha_salida: date


def normalizar_estado(estado: Optional[str]) -> Optional[EstadoAfilado]:
    """
    Estado de afilado como EstadoAfilado, sin distinguir mayúsculas.

    La columna es texto libre: filas históricas pueden traer valores
    como 'Completado' o estados propios de otros clientes (→ None).
    """
    if isinstance(estado, EstadoAfilado):
        return estado
    try:
        return EstadoAfilado((estado or "").strip().upper())
    except ValueError:
        return None


EstadoDespacho = Annotated[
    Union[DespachoPendiente, DespachoRealizado],
    Field(discriminator="tipo")
]


class Afilado(BaseModel):
    """Fila de la tabla afilados."""
    id: int
    sierra_id: int
    tipo_afilado_id: int
    fecha_afilado: date
    despacho: EstadoDespacho = Field(default_factory=DespachoPendiente)
    estado: str = EstadoAfilado.PENDIENTE.value
    observaciones: Optional[str] = None
    usuario_id: Optional[str] = None

    @property
    def abierto(self) -> bool:
        return isinstance(self.despacho, DespachoPendiente)

    @property
    def estado_conocido(self) -> Optional[EstadoAfilado]:
        return normalizar_estado(self.estado)

    @property
    def fecha_salida(self) -> Optional[date]:
        if isinstance(self.despacho, DespachoRealizado):
            return self.despacho.fecha_salida
        return None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Afilado":
        fecha_salida = parse_date(row.get("fecha_salida"))
        despacho = (
            DespachoRealizado(fecha_salida=fecha_salida)
            if fecha_salida is not None
            else DespachoPendiente()
        )
        estado = row.get("estado") or EstadoAfilado.PENDIENTE
        if isinstance(estado, EstadoAfilado):
            estado = estado.value
        return cls(
            id=row["id"],
            sierra_id=row["sierra_id"],
            tipo_afilado_id=row["tipo_afilado_id"],
            fecha_afilado=parse_date(row["fecha_afilado"]),
            despacho=despacho,
            estado=estado,
            observaciones=row.get("observaciones"),
            usuario_id=row.get("usuario_id"),
        )


def despacho_to_row(despacho: Union[DespachoPendiente, DespachoRealizado]) -> dict[str, Any]:
    """Patch de la columna fecha_salida para un estado de despacho."""
    if isinstance(despacho, DespachoRealizado):
        return {"fecha_salida": format_date(despacho.fecha_salida)}
    return {"fecha_salida": None}


class AfiladoCreateRequest(BaseModel):
    """
    Request body para iniciar un ciclo de afilado.

    Utilizado por endpoint POST /api/afilados.
    """
    sierra_id: int = Field(..., gt=0, examples=[15])
    tipo_afilado_id: int = Field(..., gt=0, examples=[1])
    observaciones: Optional[str] = Field(None, max_length=500)
    usuario_id: Optional[str] = Field(None, description="Usuario que registra el afilado")
    fecha_afilado: Optional[date] = Field(
        None,
        description="Fecha del afilado (default: hoy en timezone local)"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "sierra_id": 15,
                    "tipo_afilado_id": 1,
                    "observaciones": "Dientes con desgaste irregular",
                    "usuario_id": "b6f1c0de-7d1e-4c1e-9d8e-2f0c3a6f9a11"
                }
            ]
        }
    )


class CompletarAfiladoRequest(BaseModel):
    """Request body para POST /api/afilados/{id}/completar."""
    observaciones: Optional[str] = Field(None, max_length=500)


class SalidaAfiladoRequest(BaseModel):
    """Request body para POST /api/afilados/{id}/salida (salida individual)."""
    fecha_salida: Optional[date] = Field(
        None,
        description="Fecha de salida (default: hoy en timezone local)"
    )


class AfiladoFiltros(BaseModel):
    """Filtros de listado de afilados."""
    sierra_id: Optional[int] = None
    tipo_afilado_id: Optional[int] = None
    fecha_desde: Optional[date] = None
    fecha_hasta: Optional[date] = None
    solo_abiertos: bool = False


class AfiladoListResponse(BaseModel):
    """Página de afilados con conteo total."""
    items: list[Afilado]
    total: int
    page: int
    page_size: int
