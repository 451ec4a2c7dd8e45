"""
Salidas Masivas Router - Despacho en lote de afilados.

Endpoints:
- GET    /api/salidas-masivas       - Salidas recientes (opcional por sucursal)
- POST   /api/salidas-masivas       - Crear salida masiva
- GET    /api/salidas-masivas/{id}  - Salida con sus afilados
- DELETE /api/salidas-masivas/{id}  - Revertir y eliminar la salida
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from sierra_backend.core.dependency import get_salida_masiva_service
from sierra_backend.models.batch import ReversionResponse
from sierra_backend.models.salida_masiva import (
    SalidaMasiva,
    SalidaMasivaCreateRequest,
    SalidaMasivaResponse,
)
from sierra_backend.services.salida_masiva_service import SalidaMasivaService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/salidas-masivas", response_model=list[SalidaMasiva], status_code=status.HTTP_200_OK)
async def listar_salidas(
    sucursal_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    service: SalidaMasivaService = Depends(get_salida_masiva_service)
):
    """Salidas masivas más recientes primero (fecha_salida desc, id desc)."""
    return service.list_salidas(sucursal_id=sucursal_id, limit=limit)


@router.post(
    "/salidas-masivas",
    response_model=SalidaMasivaResponse,
    status_code=status.HTTP_201_CREATED
)
async def crear_salida_masiva(
    request: SalidaMasivaCreateRequest,
    service: SalidaMasivaService = Depends(get_salida_masiva_service)
):
    """
    Despacha un conjunto de afilados de una sucursal.

    Validación todo-o-nada: si algún afilado no está abierto o su sierra no
    es una sierra activa de la sucursal, el lote se rechaza sin escribir nada.
    Luego cada afilado se despacha individualmente; un item fallido no
    detiene al resto.

    Example request:
        ```bash
        curl -X POST http://localhost:8000/api/salidas-masivas \\
          -H "Content-Type: application/json" \\
          -d '{"sucursal_id": 3, "afilados_ids": [101, 102, 103]}'
        ```

    Example response (500 - falla parcial):
        ```json
        {
            "success": false,
            "error": "FALLA_PARCIAL",
            "message": "Salida masiva 12 aplicada parcialmente: 1 de 3 items fallaron",
            "data": {"batch_id": 12, "succeeded": [101, 103], "failed": [102]}
        }
        ```

    Raises:
        400 LOTE_INVALIDO / LOTE_DEMASIADO_GRANDE: nada escrito
        404 AFILADO_NO_ENCONTRADO: nada escrito
        409 LOTE_EN_CURSO: otro lote está procesando las mismas sierras
        500 FALLA_PARCIAL: lote creado con items fallidos
    """
    logger.info(
        f"POST /api/salidas-masivas - sucursal={request.sucursal_id} "
        f"afilados={len(request.afilados_ids)}"
    )
    response = service.create_salida_masiva(request)
    logger.info(f"Salida masiva {response.salida.id} creada con {response.total} afilados")
    return response


@router.get(
    "/salidas-masivas/{salida_id}",
    response_model=SalidaMasivaResponse,
    status_code=status.HTTP_200_OK
)
async def get_salida_masiva(
    salida_id: int,
    service: SalidaMasivaService = Depends(get_salida_masiva_service)
):
    return service.get_salida(salida_id)


@router.delete(
    "/salidas-masivas/{salida_id}",
    response_model=ReversionResponse,
    status_code=status.HTTP_200_OK
)
async def eliminar_salida_masiva(
    salida_id: int,
    service: SalidaMasivaService = Depends(get_salida_masiva_service)
):
    """
    Revierte una salida masiva: cada afilado vuelve a estar abierto
    (COMPLETADO) y su sierra a LISTA_PARA_RETIRO; luego se borra el lote.

    Raises:
        404 SALIDA_MASIVA_NO_ENCONTRADA: no existe o ya fue revertida
        500 REVERSION_PARCIAL: el lote queda con los detalles no revertidos
    """
    logger.info(f"DELETE /api/salidas-masivas/{salida_id}")
    return service.delete_salida_masiva(salida_id)
