"""
Health Check Router - Monitoreo del estado del sistema.

Endpoint para verificar que la API está funcionando y que la conexión
con el row store (y Redis, si los claims están activos) es operativa.

Endpoints:
- GET /api/health - Health check con test de conexión al store
"""

from fastapi import APIRouter, Depends, status
from datetime import datetime, timezone

from sierra_backend.core.dependency import get_claim_registry, get_row_store
from sierra_backend.repositories.row_store import RowStore
from sierra_backend.services.claim_service import ClaimRegistry
from sierra_backend.exceptions import SierraBackendException
from sierra_backend.config import config
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(
    store: RowStore = Depends(get_row_store),
    claims: ClaimRegistry = Depends(get_claim_registry)
):
    """
    Health check endpoint para monitoreo del sistema.

    Verifica:
    - Estado general de la API (si responde, está "alive")
    - Conexión con el row store (lee el catálogo estados_sierra)
    - Conexión con Redis cuando BATCH_CLAIMS_BACKEND=redis

    Si alguna dependencia falla, retorna status "degraded" en lugar de 503,
    para que el monitoreo vea que la API responde con funcionalidad reducida.

    Example response (degraded):
        ```json
        {
            "status": "degraded",
            "timestamp": "2026-03-10T14:30:00+00:00",
            "environment": "production",
            "store_connection": "error",
            "claims_connection": "ok",
            "version": "1.0.0"
        }
        ```
    """
    logger.info("Health check requested")

    store_status = "ok"
    try:
        store.ping()
    except SierraBackendException as e:
        logger.error(f"Health check failed: store error - {e.message}")
        store_status = "error"

    claims_status = "ok"
    try:
        claims.ping()
    except SierraBackendException as e:
        logger.error(f"Health check failed: claims error - {e.message}")
        claims_status = "error"

    healthy = store_status == "ok" and claims_status == "ok"
    return {
        "status": "healthy" if healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": config.ENVIRONMENT,
        "store_connection": store_status,
        "claims_connection": claims_status,
        "version": "1.0.0"
    }
