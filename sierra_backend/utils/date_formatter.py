"""
Utilidades de fecha con timezone del negocio (America/Santiago por defecto).

Las fechas de afilado, salida y baja son fechas de calendario locales;
los timestamps de auditoría (creado_en, modificado_en) son ISO 8601 con offset.
"""

from datetime import date, datetime, tzinfo
from typing import Optional, Union
import pytz
from sierra_backend.config import config


def get_timezone() -> tzinfo:
    """
    Obtiene el timezone configurado del sistema.

    Examples:
        >>> get_timezone().zone
        'America/Santiago'
    """
    return pytz.timezone(config.TIMEZONE)


def now_local() -> datetime:
    """Datetime actual en el timezone configurado."""
    return datetime.now(get_timezone())


def today_local() -> date:
    """Fecha actual en el timezone configurado."""
    return now_local().date()


def timestamp_iso() -> str:
    """
    Timestamp de auditoría para columnas creado_en / modificado_en.

    Examples:
        >>> timestamp_iso()
        '2026-03-10T14:30:00.123456-03:00'
    """
    return now_local().isoformat()


def parse_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """
    Normaliza el valor de una columna de fecha leída desde el store.

    PostgREST devuelve columnas date como 'YYYY-MM-DD' y timestamptz como
    ISO 8601; ambas se reducen a date.

    Examples:
        >>> parse_date("2026-03-10")
        datetime.date(2026, 3, 10)
        >>> parse_date("2026-03-10T14:30:00+00:00")
        datetime.date(2026, 3, 10)
        >>> parse_date(None) is None
        True
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def format_date(value: date) -> str:
    """Serializa una fecha para el store ('YYYY-MM-DD')."""
    return value.isoformat()
