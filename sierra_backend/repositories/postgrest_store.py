"""
RowStore sobre la API REST de PostgREST (Supabase) usando httpx.

Traducción del contrato genérico a la sintaxis de PostgREST:
- filtros como query params: ?estado_id=eq.1&fecha_salida=is.null
- orden: ?order=fecha_afilado.desc,id.desc
- paginación: headers Range-Unit: items / Range: 0-19
- conteo: Prefer: count=exact, total leído de Content-Range (0-19/57)
- escrituras con Prefer: return=representation para recibir las filas

Solo las lecturas se reintentan ante errores de transporte; una escritura
fallida se reporta de inmediato como StoreError.
"""
import logging
from typing import Any, Optional, Sequence, Union

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)

from sierra_backend.exceptions import StoreError
from sierra_backend.repositories.row_store import (
    Filter,
    Order,
    RowStore,
    SelectResult,
    serialize_row,
    serialize_value,
)

logger = logging.getLogger(__name__)


def _literal(value: Any) -> str:
    value = serialize_value(value)
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return "null"
    return str(value)


def _quote_in(value: Any) -> str:
    text = _literal(value)
    if any(ch in text for ch in ',()" '):
        return '"' + text.replace('"', '\\"') + '"'
    return text


def filter_to_param(flt: Filter) -> tuple[str, str]:
    """
    Convierte un Filter a (columna, operador PostgREST).

    Examples:
        >>> filter_to_param(Filter("estado_id", "eq", 1))
        ('estado_id', 'eq.1')
        >>> filter_to_param(Filter("fecha_salida", "is_null"))
        ('fecha_salida', 'is.null')
        >>> filter_to_param(Filter("id", "in", (1, 2)))
        ('id', 'in.(1,2)')
    """
    if flt.op == "is_null":
        return flt.column, "is.null"
    if flt.op == "not_null":
        return flt.column, "not.is.null"
    if flt.op == "in":
        return flt.column, "in.(" + ",".join(_quote_in(v) for v in flt.value) + ")"
    return flt.column, f"{flt.op}.{_literal(flt.value)}"


def parse_content_range(header: Optional[str]) -> Optional[int]:
    """
    Extrae el total de un header Content-Range ('0-9/57', '*/0').

    Returns:
        Total de filas, o None si el servidor no lo informó ('0-9/*').
    """
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1].strip()
    if total == "*":
        return None
    try:
        return int(total)
    except ValueError:
        return None


class PostgrestRowStore(RowStore):
    """
    Cliente PostgREST síncrono.

    Un handler de request procesa los items de un lote secuencialmente,
    por lo que basta un httpx.Client compartido (thread-safe para requests).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None
    ):
        """
        Args:
            base_url: URL del proyecto Supabase (sin /rest/v1)
            api_key: service key del proyecto
            timeout: timeout por request en segundos
            client: cliente httpx preconfigurado (tests con MockTransport)
        """
        if client is None:
            client = httpx.Client(
                base_url=f"{base_url.rstrip('/')}/rest/v1",
                headers={
                    "apikey": api_key,
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
                timeout=timeout,
            )
        self._client = client

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _params(filters: Sequence[Filter]) -> list[tuple[str, str]]:
        return [filter_to_param(f) for f in filters]

    @staticmethod
    def _raise_for_status(response: httpx.Response, table: str) -> None:
        if response.status_code < 400:
            return
        try:
            body = response.json()
            details = body.get("message") or body.get("details") or response.text
        except ValueError:
            details = response.text
        raise StoreError(
            f"{response.request.method} {table} respondió {response.status_code}",
            details=details,
            table=table
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, max=2),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True
    )
    def _get(self, table: str, params: list[tuple[str, str]], headers: dict[str, str]) -> httpx.Response:
        return self._client.get(f"/{table}", params=params, headers=headers)

    def _send(self, method: str, table: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, f"/{table}", **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {table} falló: {e}")
            raise StoreError(f"{method} {table} falló", details=str(e), table=table)
        self._raise_for_status(response, table)
        return response

    # ------------------------------------------------------------------
    # RowStore
    # ------------------------------------------------------------------

    def select(
        self,
        table: str,
        columns: str = "*",
        filters: Sequence[Filter] = (),
        order: Sequence[Order] = (),
        range_: Optional[tuple[int, int]] = None,
        count: bool = False
    ) -> SelectResult:
        params = [("select", columns)] + self._params(filters)
        if order:
            params.append((
                "order",
                ",".join(f"{o.column}.{'desc' if o.desc else 'asc'}" for o in order)
            ))

        headers: dict[str, str] = {}
        if count:
            headers["Prefer"] = "count=exact"
        if range_ is not None:
            headers["Range-Unit"] = "items"
            headers["Range"] = f"{range_[0]}-{range_[1]}"

        try:
            response = self._get(table, params, headers)
        except httpx.HTTPError as e:
            logger.error(f"GET {table} falló tras reintentos: {e}")
            raise StoreError(f"GET {table} falló", details=str(e), table=table)

        total = parse_content_range(response.headers.get("Content-Range")) if count else None

        # Página fuera de rango: PostgREST responde 416 con el total en Content-Range
        if response.status_code == 416:
            return SelectResult(rows=[], count=total)

        self._raise_for_status(response, table)
        return SelectResult(rows=response.json(), count=total)

    def insert(
        self,
        table: str,
        rows: Union[dict[str, Any], list[dict[str, Any]]]
    ) -> list[dict[str, Any]]:
        payload = [serialize_row(r) for r in rows] if isinstance(rows, list) else serialize_row(rows)
        response = self._send(
            "POST",
            table,
            json=payload,
            headers={"Prefer": "return=representation"}
        )
        return response.json()

    def update(
        self,
        table: str,
        patch: dict[str, Any],
        filters: Sequence[Filter]
    ) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("update sin filtros no permitido")
        response = self._send(
            "PATCH",
            table,
            params=self._params(filters),
            json=serialize_row(patch),
            headers={"Prefer": "return=representation"}
        )
        return response.json()

    def delete(self, table: str, filters: Sequence[Filter]) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("delete sin filtros no permitido")
        response = self._send(
            "DELETE",
            table,
            params=self._params(filters),
            headers={"Prefer": "return=representation"}
        )
        return response.json()
