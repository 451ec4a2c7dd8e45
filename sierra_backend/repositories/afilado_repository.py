"""
Repositorio de la tabla afilados.

Un afilado está abierto mientras fecha_salida IS NULL. Las escrituras que
cierran o reabren un ciclo son condicionales sobre esa columna, de modo que
dos lotes concurrentes no pueden cerrar el mismo afilado dos veces.
"""
import logging
from typing import Any, Optional, Sequence

from sierra_backend.models.afilado import Afilado, AfiladoFiltros
from sierra_backend.repositories.row_store import (
    Filter,
    Order,
    RowStore,
    eq,
    gte,
    in_,
    is_null,
    lte,
    not_null,
)
from sierra_backend.utils.date_formatter import timestamp_iso

logger = logging.getLogger(__name__)

NEWEST_FIRST = (Order("fecha_afilado", desc=True), Order("id", desc=True))


class AfiladoRepository:
    """Lectura y escritura de afilados."""

    TABLE = "afilados"

    def __init__(self, store: RowStore):
        self.store = store

    def get(self, afilado_id: int) -> Optional[Afilado]:
        rows = self.store.select(self.TABLE, filters=[eq("id", afilado_id)]).rows
        return Afilado.from_row(rows[0]) if rows else None

    def get_many(self, afilado_ids: Sequence[int]) -> dict[int, Afilado]:
        if not afilado_ids:
            return {}
        rows = self.store.select(self.TABLE, filters=[in_("id", list(afilado_ids))]).rows
        return {row["id"]: Afilado.from_row(row) for row in rows}

    def find_open(self, sierra_id: int) -> list[Afilado]:
        """Afilados abiertos de una sierra (0 o 1 si el invariante se cumple)."""
        rows = self.store.select(
            self.TABLE,
            filters=[eq("sierra_id", sierra_id), is_null("fecha_salida")],
            order=NEWEST_FIRST
        ).rows
        return [Afilado.from_row(r) for r in rows]

    def find_open_by_sierras(self, sierra_ids: Sequence[int]) -> dict[int, Afilado]:
        """Afilado abierto por sierra, para un conjunto de sierras."""
        if not sierra_ids:
            return {}
        rows = self.store.select(
            self.TABLE,
            filters=[in_("sierra_id", list(sierra_ids)), is_null("fecha_salida")],
            order=NEWEST_FIRST
        ).rows
        result: dict[int, Afilado] = {}
        for row in rows:
            result.setdefault(row["sierra_id"], Afilado.from_row(row))
        return result

    def count_open(self, sierra_id: int) -> int:
        result = self.store.select(
            self.TABLE,
            columns="id",
            filters=[eq("sierra_id", sierra_id), is_null("fecha_salida")],
            count=True
        )
        return result.count if result.count is not None else len(result.rows)

    def history(self, sierra_id: int) -> list[Afilado]:
        rows = self.store.select(
            self.TABLE,
            filters=[eq("sierra_id", sierra_id)],
            order=NEWEST_FIRST
        ).rows
        return [Afilado.from_row(r) for r in rows]

    def listar(
        self,
        filtros: AfiladoFiltros,
        offset: int,
        limit: int,
        sierra_ids: Optional[Sequence[int]] = None
    ) -> tuple[list[Afilado], int]:
        """
        Página de afilados, más recientes primero.

        Args:
            sierra_ids: si no es None, restringe el listado a esas sierras
        """
        filters: list[Filter] = []
        if sierra_ids is not None:
            if not sierra_ids:
                return [], 0
            filters.append(in_("sierra_id", list(sierra_ids)))
        if filtros.sierra_id is not None:
            filters.append(eq("sierra_id", filtros.sierra_id))
        if filtros.tipo_afilado_id is not None:
            filters.append(eq("tipo_afilado_id", filtros.tipo_afilado_id))
        if filtros.fecha_desde is not None:
            filters.append(gte("fecha_afilado", filtros.fecha_desde))
        if filtros.fecha_hasta is not None:
            filters.append(lte("fecha_afilado", filtros.fecha_hasta))
        if filtros.solo_abiertos:
            filters.append(is_null("fecha_salida"))

        result = self.store.select(
            self.TABLE,
            filters=filters,
            order=NEWEST_FIRST,
            range_=(offset, offset + limit - 1),
            count=True
        )
        return [Afilado.from_row(r) for r in result.rows], result.count or 0

    def insert(self, row: dict[str, Any]) -> Afilado:
        now = timestamp_iso()
        created = self.store.insert(
            self.TABLE,
            {**row, "fecha_salida": None, "creado_en": now, "modificado_en": now}
        )
        return Afilado.from_row(created[0])

    def update_if_open(self, afilado_id: int, patch: dict[str, Any]) -> Optional[Afilado]:
        """Actualiza solo si el afilado sigue abierto; None si ya estaba cerrado."""
        return self._update(afilado_id, patch, [is_null("fecha_salida")])

    def update_if_closed(self, afilado_id: int, patch: dict[str, Any]) -> Optional[Afilado]:
        """Actualiza solo si el afilado está cerrado; None si ya estaba abierto."""
        return self._update(afilado_id, patch, [not_null("fecha_salida")])

    def _update(
        self,
        afilado_id: int,
        patch: dict[str, Any],
        conditions: Sequence[Filter]
    ) -> Optional[Afilado]:
        rows = self.store.update(
            self.TABLE,
            {**patch, "modificado_en": timestamp_iso()},
            [eq("id", afilado_id), *conditions]
        )
        return Afilado.from_row(rows[0]) if rows else None

    def delete(self, afilado_id: int) -> bool:
        return bool(self.store.delete(self.TABLE, [eq("id", afilado_id)]))
