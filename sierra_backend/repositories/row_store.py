"""
Contrato genérico de row-store consumido por los repositorios.

El backend real es una API REST por fila (PostgREST / Supabase) sin
transacciones multi-tabla expuestas; todo el núcleo se escribe contra
select/insert/update/delete con filtros simples.

Filtros soportados:
- eq / neq: igualdad
- is_null / not_null
- gte / lte / gt / lt: rangos (fechas como 'YYYY-MM-DD')
- ilike: patrón SQL con % como comodín
- in: pertenencia a una lista
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Sequence, Union


FILTER_OPS = ("eq", "neq", "is_null", "not_null", "gte", "lte", "gt", "lt", "ilike", "in")


@dataclass(frozen=True)
class Filter:
    """Condición sobre una columna."""
    column: str
    op: str
    value: Any = None

    def __post_init__(self):
        if self.op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter op: {self.op}")


@dataclass(frozen=True)
class Order:
    column: str
    desc: bool = False


@dataclass
class SelectResult:
    """Filas retornadas y conteo total (solo si se pidió count)."""
    rows: list[dict[str, Any]] = field(default_factory=list)
    count: Optional[int] = None


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


def is_null(column: str) -> Filter:
    return Filter(column, "is_null")


def not_null(column: str) -> Filter:
    return Filter(column, "not_null")


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


def lte(column: str, value: Any) -> Filter:
    return Filter(column, "lte", value)


def ilike(column: str, pattern: str) -> Filter:
    return Filter(column, "ilike", pattern)


def in_(column: str, values: Sequence[Any]) -> Filter:
    return Filter(column, "in", tuple(values))


def serialize_value(value: Any) -> Any:
    """Normaliza valores Python al formato que guarda el store."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def serialize_row(row: dict[str, Any]) -> dict[str, Any]:
    return {key: serialize_value(value) for key, value in row.items()}


class RowStore(ABC):
    """
    Acceso por fila a las tablas del sistema.

    Toda falla de comunicación o rechazo del backend se reporta como
    StoreError; los métodos nunca retornan un indicador de error.
    """

    @abstractmethod
    def select(
        self,
        table: str,
        columns: str = "*",
        filters: Sequence[Filter] = (),
        order: Sequence[Order] = (),
        range_: Optional[tuple[int, int]] = None,
        count: bool = False
    ) -> SelectResult:
        """
        Lee filas.

        Args:
            range_: (desde, hasta) inclusivo, como Range de PostgREST
            count: si True, SelectResult.count trae el total sin paginar
        """

    @abstractmethod
    def insert(
        self,
        table: str,
        rows: Union[dict[str, Any], list[dict[str, Any]]]
    ) -> list[dict[str, Any]]:
        """Inserta filas y retorna las filas creadas (con id)."""

    @abstractmethod
    def update(
        self,
        table: str,
        patch: dict[str, Any],
        filters: Sequence[Filter]
    ) -> list[dict[str, Any]]:
        """
        Actualiza las filas que cumplen TODOS los filtros.

        Retorna las filas actualizadas; una lista vacía significa que
        ninguna fila cumplía la condición (update condicional perdido).
        """

    @abstractmethod
    def delete(self, table: str, filters: Sequence[Filter]) -> list[dict[str, Any]]:
        """Elimina las filas que cumplen los filtros y las retorna."""

    def ping(self) -> None:
        """Verifica conectividad; lanza StoreError si el store no responde."""
        self.select("estados_sierra", columns="id", range_=(0, 0))
