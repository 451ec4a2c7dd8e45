"""
Repositorios de cabeceras y detalles de lotes (salidas y bajas masivas).

La tabla de detalle es la única fuente de verdad de qué tocó un lote y
qué cambió; cada fila se escribe antes de la mutación del item.
"""
import logging
from typing import Any, Optional

from sierra_backend.models.baja_masiva import BajaMasiva, BajaMasivaDetalle
from sierra_backend.models.salida_masiva import SalidaMasiva, SalidaMasivaDetalle
from sierra_backend.repositories.row_store import Order, RowStore, eq
from sierra_backend.utils.date_formatter import timestamp_iso

logger = logging.getLogger(__name__)


class SalidaMasivaRepository:
    """Tablas salidas_masivas y salida_masiva_afilados."""

    HEADER = "salidas_masivas"
    DETAIL = "salida_masiva_afilados"

    def __init__(self, store: RowStore):
        self.store = store

    def insert_header(self, row: dict[str, Any]) -> SalidaMasiva:
        created = self.store.insert(self.HEADER, {**row, "creado_en": timestamp_iso()})
        return SalidaMasiva.from_row(created[0])

    def get_header(self, salida_id: int) -> Optional[SalidaMasiva]:
        rows = self.store.select(self.HEADER, filters=[eq("id", salida_id)]).rows
        return SalidaMasiva.from_row(rows[0]) if rows else None

    def list_headers(self, sucursal_id: Optional[int], limit: int) -> list[SalidaMasiva]:
        filters = [eq("sucursal_id", sucursal_id)] if sucursal_id is not None else []
        rows = self.store.select(
            self.HEADER,
            filters=filters,
            order=[Order("fecha_salida", desc=True), Order("id", desc=True)],
            range_=(0, limit - 1)
        ).rows
        return [SalidaMasiva.from_row(r) for r in rows]

    def delete_header(self, salida_id: int) -> bool:
        return bool(self.store.delete(self.HEADER, [eq("id", salida_id)]))

    def insert_detalle(self, row: dict[str, Any]) -> SalidaMasivaDetalle:
        created = self.store.insert(self.DETAIL, row)
        return SalidaMasivaDetalle.from_row(created[0])

    def list_detalles(self, salida_id: int) -> list[SalidaMasivaDetalle]:
        rows = self.store.select(
            self.DETAIL,
            filters=[eq("salida_masiva_id", salida_id)],
            order=[Order("id")]
        ).rows
        return [SalidaMasivaDetalle.from_row(r) for r in rows]

    def find_detalle_por_afilado(self, afilado_id: int) -> Optional[SalidaMasivaDetalle]:
        rows = self.store.select(self.DETAIL, filters=[eq("afilado_id", afilado_id)]).rows
        return SalidaMasivaDetalle.from_row(rows[0]) if rows else None

    def delete_detalle(self, detalle_id: int) -> bool:
        return bool(self.store.delete(self.DETAIL, [eq("id", detalle_id)]))


class BajaMasivaRepository:
    """Tablas bajas_masivas y baja_masiva_sierras."""

    HEADER = "bajas_masivas"
    DETAIL = "baja_masiva_sierras"

    def __init__(self, store: RowStore):
        self.store = store

    def insert_header(self, row: dict[str, Any]) -> BajaMasiva:
        now = timestamp_iso()
        created = self.store.insert(
            self.HEADER, {**row, "creado_en": now, "modificado_en": now}
        )
        return BajaMasiva.from_row(created[0])

    def get_header(self, baja_id: int) -> Optional[BajaMasiva]:
        rows = self.store.select(self.HEADER, filters=[eq("id", baja_id)]).rows
        return BajaMasiva.from_row(rows[0]) if rows else None

    def list_headers(self, limit: int) -> list[BajaMasiva]:
        rows = self.store.select(
            self.HEADER,
            order=[Order("fecha_baja", desc=True), Order("id", desc=True)],
            range_=(0, limit - 1)
        ).rows
        return [BajaMasiva.from_row(r) for r in rows]

    def delete_header(self, baja_id: int) -> bool:
        return bool(self.store.delete(self.HEADER, [eq("id", baja_id)]))

    def insert_detalle(self, row: dict[str, Any]) -> BajaMasivaDetalle:
        created = self.store.insert(self.DETAIL, row)
        return BajaMasivaDetalle.from_row(created[0])

    def list_detalles(self, baja_id: int) -> list[BajaMasivaDetalle]:
        rows = self.store.select(
            self.DETAIL,
            filters=[eq("baja_masiva_id", baja_id)],
            order=[Order("id")]
        ).rows
        return [BajaMasivaDetalle.from_row(r) for r in rows]

    def find_detalle_por_afilado_cerrado(self, afilado_id: int) -> Optional[BajaMasivaDetalle]:
        rows = self.store.select(self.DETAIL, filters=[eq("afilado_cerrado_id", afilado_id)]).rows
        return BajaMasivaDetalle.from_row(rows[0]) if rows else None

    def delete_detalle(self, detalle_id: int) -> bool:
        return bool(self.store.delete(self.DETAIL, [eq("id", detalle_id)]))
