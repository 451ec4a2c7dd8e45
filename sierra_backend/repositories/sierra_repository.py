"""
Repositorio de la tabla sierras y catálogos relacionados.
"""
import logging
from typing import Any, Optional, Sequence

from sierra_backend.models.sierra import Sierra, SierraFiltros
from sierra_backend.repositories.row_store import (
    Filter,
    Order,
    RowStore,
    eq,
    ilike,
    in_,
)
from sierra_backend.utils.date_formatter import timestamp_iso

logger = logging.getLogger(__name__)


class SierraRepository:
    """Lectura y escritura de sierras, sucursales y tipos de afilado."""

    TABLE = "sierras"
    SUCURSALES = "sucursales"
    TIPOS_AFILADO = "tipos_afilado"

    def __init__(self, store: RowStore):
        self.store = store

    def get(self, sierra_id: int) -> Optional[Sierra]:
        rows = self.store.select(self.TABLE, filters=[eq("id", sierra_id)]).rows
        return Sierra.from_row(rows[0]) if rows else None

    def get_by_codigo(self, codigo_barras: str) -> Optional[Sierra]:
        rows = self.store.select(self.TABLE, filters=[eq("codigo_barras", codigo_barras)]).rows
        return Sierra.from_row(rows[0]) if rows else None

    def get_many(self, sierra_ids: Sequence[int]) -> dict[int, Sierra]:
        if not sierra_ids:
            return {}
        rows = self.store.select(self.TABLE, filters=[in_("id", list(sierra_ids))]).rows
        return {row["id"]: Sierra.from_row(row) for row in rows}

    def buscar(
        self,
        filtros: SierraFiltros,
        offset: int,
        limit: int
    ) -> tuple[list[Sierra], int]:
        """Página de sierras ordenada por código de barras, con total."""
        filters: list[Filter] = []
        if filtros.codigo_barras:
            filters.append(ilike("codigo_barras", f"%{filtros.codigo_barras}%"))
        if filtros.sucursal_id is not None:
            filters.append(eq("sucursal_id", filtros.sucursal_id))
        if filtros.tipo_sierra_id is not None:
            filters.append(eq("tipo_sierra_id", filtros.tipo_sierra_id))
        if filtros.estado_id is not None:
            filters.append(eq("estado_id", filtros.estado_id))
        if filtros.activo is not None:
            filters.append(eq("activo", filtros.activo))

        result = self.store.select(
            self.TABLE,
            filters=filters,
            order=[Order("codigo_barras")],
            range_=(offset, offset + limit - 1),
            count=True
        )
        return [Sierra.from_row(r) for r in result.rows], result.count or 0

    def insert(self, row: dict[str, Any]) -> Sierra:
        now = timestamp_iso()
        created = self.store.insert(self.TABLE, {**row, "creado_en": now, "modificado_en": now})
        return Sierra.from_row(created[0])

    def update(
        self,
        sierra_id: int,
        patch: dict[str, Any],
        conditions: Sequence[Filter] = ()
    ) -> Optional[Sierra]:
        """
        Update condicional de una sierra.

        Returns:
            La sierra actualizada, o None si no cumplía las condiciones.
        """
        rows = self.store.update(
            self.TABLE,
            {**patch, "modificado_en": timestamp_iso()},
            [eq("id", sierra_id), *conditions]
        )
        return Sierra.from_row(rows[0]) if rows else None

    # ==================== CATÁLOGOS ====================

    def tipo_afilado_existe(self, tipo_afilado_id: int) -> bool:
        rows = self.store.select(
            self.TIPOS_AFILADO, columns="id", filters=[eq("id", tipo_afilado_id)]
        ).rows
        return bool(rows)

    def sucursal_ids_de_empresa(self, empresa_id: int) -> list[int]:
        rows = self.store.select(
            self.SUCURSALES, columns="id", filters=[eq("empresa_id", empresa_id)]
        ).rows
        return [r["id"] for r in rows]

    def ids_por_sucursales(self, sucursal_ids: Sequence[int]) -> list[int]:
        if not sucursal_ids:
            return []
        rows = self.store.select(
            self.TABLE, columns="id", filters=[in_("sucursal_id", list(sucursal_ids))]
        ).rows
        return [r["id"] for r in rows]
