"""
Lotes Router - Resumen de operaciones en lote recientes.

Endpoints:
- GET /api/lotes/resumen - Últimas salidas y bajas masivas
"""

from fastapi import APIRouter, Depends, status

from sierra_backend.config import config
from sierra_backend.core.dependency import get_baja_masiva_service, get_salida_masiva_service
from sierra_backend.models.batch import ResumenLotesResponse
from sierra_backend.services.baja_masiva_service import BajaMasivaService
from sierra_backend.services.salida_masiva_service import SalidaMasivaService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/lotes/resumen", response_model=ResumenLotesResponse, status_code=status.HTTP_200_OK)
async def resumen_lotes(
    salidas: SalidaMasivaService = Depends(get_salida_masiva_service),
    bajas: BajaMasivaService = Depends(get_baja_masiva_service)
):
    """
    Panel de lotes recientes (RECENT_BATCHES_LIMIT de cada tipo).

    Example response (200 OK):
        ```json
        {
            "salidas_recientes": [{"id": 12, "sucursal_id": 3, "fecha_salida": "2026-03-10"}],
            "bajas_recientes": []
        }
        ```
    """
    limit = config.RECENT_BATCHES_LIMIT
    return ResumenLotesResponse(
        salidas_recientes=salidas.list_salidas(limit=limit),
        bajas_recientes=bajas.list_bajas(limit=limit)
    )
