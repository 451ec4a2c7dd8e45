"""
Logger configuration for the sierra sharpening backend.

Configuración centralizada de logging con formato consistente:
- Nivel DEBUG en local, LOG_LEVEL configurado en otros ambientes
- Handler a stdout
- Formato: [TIMESTAMP] [LEVEL] [MODULE] MESSAGE
"""

import logging
import sys
from sierra_backend.config import config


def setup_logger() -> None:
    """
    Configura logging global del sistema.

    Nivel según ambiente:
    - ENVIRONMENT=local → DEBUG
    - Otros ambientes → config.LOG_LEVEL (default INFO)

    Formato de log:
        [2026-03-10 14:30:00] [INFO] [sierra_backend.services.salida_masiva_service] Salida masiva 12 creada

    Usage:
        >>> from sierra_backend.utils.logger import setup_logger
        >>> setup_logger()
        >>> logger = logging.getLogger(__name__)
    """
    if config.ENVIRONMENT == "local":
        level = logging.DEBUG
    else:
        level = logging.getLevelName(config.LOG_LEVEL.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format='[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    # httpx loguea cada request a INFO; demasiado ruido por item de lote
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configurado: nivel={logging.getLevelName(level)}, ambiente={config.ENVIRONMENT}")

