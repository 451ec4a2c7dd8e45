"""
RowStore en memoria para desarrollo local (STORE_BACKEND=memory) y tests.

Replica la semántica que el núcleo necesita de PostgREST:
- ids autoincrementales por tabla
- updates/deletes condicionales que retornan las filas afectadas
- paginación inclusiva y conteo total
- restricciones UNIQUE opcionales por tabla (409 en PostgREST → StoreError)

Cada operación individual es atómica (lock por store); igual que el backend
real, no existen transacciones que abarquen varias operaciones.
"""
import copy
import re
import threading
from itertools import count as counter
from typing import Any, Optional, Sequence, Union

from sierra_backend.exceptions import StoreError
from sierra_backend.repositories.row_store import (
    Filter,
    Order,
    RowStore,
    SelectResult,
    serialize_row,
    serialize_value,
)


def _like_to_regex(pattern: str) -> re.Pattern:
    parts = []
    for ch in pattern:
        if ch in ("%", "*"):
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def _matches(row: dict[str, Any], flt: Filter) -> bool:
    current = row.get(flt.column)
    if flt.op == "is_null":
        return current is None
    if flt.op == "not_null":
        return current is not None
    if flt.op == "in":
        return current in {serialize_value(v) for v in flt.value}

    expected = serialize_value(flt.value)
    if flt.op == "eq":
        return current == expected
    if flt.op == "neq":
        return current is not None and current != expected
    if current is None:
        return False
    if flt.op == "gte":
        return current >= expected
    if flt.op == "lte":
        return current <= expected
    if flt.op == "gt":
        return current > expected
    if flt.op == "lt":
        return current < expected
    if flt.op == "ilike":
        return _like_to_regex(str(expected)).fullmatch(str(current)) is not None
    return False


def _sort(rows: list[dict[str, Any]], order: Sequence[Order]) -> list[dict[str, Any]]:
    # Orden estable aplicado de la última clave a la primera
    for o in reversed(order):
        present = [r for r in rows if r.get(o.column) is not None]
        missing = [r for r in rows if r.get(o.column) is None]
        present.sort(key=lambda r: r[o.column], reverse=o.desc)
        # NULLS FIRST en desc, NULLS LAST en asc (default de Postgres)
        rows = missing + present if o.desc else present + missing
    return rows


class InMemoryRowStore(RowStore):
    """Tablas como dict[id, fila] protegidas por un lock."""

    def __init__(self, unique: Optional[dict[str, Sequence[str]]] = None):
        """
        Args:
            unique: columnas UNIQUE por tabla, ej. {"sierras": ["codigo_barras"]}
        """
        self._tables: dict[str, dict[int, dict[str, Any]]] = {}
        self._ids: dict[str, Any] = {}
        self._unique = {table: tuple(cols) for table, cols in (unique or {}).items()}
        self._lock = threading.Lock()

    def _table(self, name: str) -> dict[int, dict[str, Any]]:
        if name not in self._tables:
            self._tables[name] = {}
            self._ids[name] = counter(1)
        return self._tables[name]

    def _filtered(self, table: str, filters: Sequence[Filter]) -> list[dict[str, Any]]:
        return [
            row for row in self._table(table).values()
            if all(_matches(row, f) for f in filters)
        ]

    def _check_unique(self, table: str, row: dict[str, Any]) -> None:
        for column in self._unique.get(table, ()):
            value = row.get(column)
            if value is None:
                continue
            for other in self._table(table).values():
                if other is not row and other.get(column) == value and other["id"] != row.get("id"):
                    raise StoreError(
                        f"duplicate key value violates unique constraint on {table}.{column}",
                        details=f"{column}={value}",
                        table=table
                    )

    @staticmethod
    def _project(row: dict[str, Any], columns: str) -> dict[str, Any]:
        if columns.strip() == "*":
            return copy.deepcopy(row)
        wanted = [c.strip() for c in columns.split(",") if c.strip()]
        return {c: copy.deepcopy(row.get(c)) for c in wanted}

    def select(
        self,
        table: str,
        columns: str = "*",
        filters: Sequence[Filter] = (),
        order: Sequence[Order] = (),
        range_: Optional[tuple[int, int]] = None,
        count: bool = False
    ) -> SelectResult:
        with self._lock:
            rows = _sort(self._filtered(table, filters), order)
            total = len(rows) if count else None
            if range_ is not None:
                rows = rows[range_[0]:range_[1] + 1]
            return SelectResult(rows=[self._project(r, columns) for r in rows], count=total)

    def insert(
        self,
        table: str,
        rows: Union[dict[str, Any], list[dict[str, Any]]]
    ) -> list[dict[str, Any]]:
        batch = rows if isinstance(rows, list) else [rows]
        created = []
        with self._lock:
            data = self._table(table)
            for raw in batch:
                row = serialize_row(raw)
                if row.get("id") is None:
                    row["id"] = next(self._ids[table])
                    while row["id"] in data:
                        row["id"] = next(self._ids[table])
                elif row["id"] in data:
                    raise StoreError(
                        f"duplicate key value violates unique constraint on {table}.id",
                        details=f"id={row['id']}",
                        table=table
                    )
                self._check_unique(table, row)
                data[row["id"]] = row
                created.append(copy.deepcopy(row))
        return created

    def update(
        self,
        table: str,
        patch: dict[str, Any],
        filters: Sequence[Filter]
    ) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("update sin filtros no permitido")
        values = serialize_row(patch)
        with self._lock:
            targets = self._filtered(table, filters)
            for row in targets:
                candidate = {**row, **values}
                self._check_unique(table, candidate)
            for row in targets:
                row.update(values)
            return [copy.deepcopy(r) for r in targets]

    def delete(self, table: str, filters: Sequence[Filter]) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("delete sin filtros no permitido")
        with self._lock:
            data = self._table(table)
            targets = self._filtered(table, filters)
            for row in targets:
                del data[row["id"]]
            return targets

    def ping(self) -> None:
        return None
