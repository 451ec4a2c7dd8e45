"""
Bajas Masivas Router - Decommission en lote de sierras.

Endpoints:
- GET    /api/bajas-masivas       - Bajas recientes
- POST   /api/bajas-masivas       - Crear baja masiva
- GET    /api/bajas-masivas/{id}  - Baja con el estado previo de cada sierra
- DELETE /api/bajas-masivas/{id}  - Revertir y eliminar la baja
"""

from fastapi import APIRouter, Depends, Query, status

from sierra_backend.core.dependency import get_baja_masiva_service
from sierra_backend.models.baja_masiva import (
    BajaMasiva,
    BajaMasivaCreateRequest,
    BajaMasivaResponse,
)
from sierra_backend.models.batch import ReversionResponse
from sierra_backend.services.baja_masiva_service import BajaMasivaService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/bajas-masivas", response_model=list[BajaMasiva], status_code=status.HTTP_200_OK)
async def listar_bajas(
    limit: int = Query(50, ge=1, le=200),
    service: BajaMasivaService = Depends(get_baja_masiva_service)
):
    return service.list_bajas(limit=limit)


@router.post(
    "/bajas-masivas",
    response_model=BajaMasivaResponse,
    status_code=status.HTTP_201_CREATED
)
async def crear_baja_masiva(
    request: BajaMasivaCreateRequest,
    service: BajaMasivaService = Depends(get_baja_masiva_service)
):
    """
    Da de baja un conjunto de sierras.

    Cada detalle guarda activo y estado_id previos (y el afilado cerrado,
    con política force_close) para que la baja sea reversible.

    Raises:
        400 LOTE_INVALIDO: alguna sierra ya estaba dada de baja
        404 SIERRA_NO_ENCONTRADA
        409 SIERRAS_CON_AFILADO_ABIERTO: política reject
        500 FALLA_PARCIAL: lote creado con items fallidos
    """
    logger.info(f"POST /api/bajas-masivas - sierras={len(request.sierras_ids)}")
    response = service.create_baja_masiva(request)
    logger.info(f"Baja masiva {response.baja.id} creada con {response.total} sierras")
    return response


@router.get(
    "/bajas-masivas/{baja_id}",
    response_model=BajaMasivaResponse,
    status_code=status.HTTP_200_OK
)
async def get_baja_masiva(
    baja_id: int,
    service: BajaMasivaService = Depends(get_baja_masiva_service)
):
    return service.get_baja(baja_id)


@router.delete(
    "/bajas-masivas/{baja_id}",
    response_model=ReversionResponse,
    status_code=status.HTTP_200_OK
)
async def eliminar_baja_masiva(
    baja_id: int,
    service: BajaMasivaService = Depends(get_baja_masiva_service)
):
    """
    Revierte una baja masiva: cada sierra recupera activo y estado_id
    previos y se reabre el afilado cerrado por la baja.

    Raises:
        404 BAJA_MASIVA_NO_ENCONTRADA: no existe o ya fue revertida
        500 REVERSION_PARCIAL
    """
    logger.info(f"DELETE /api/bajas-masivas/{baja_id}")
    return service.delete_baja_masiva(baja_id)
