"""
Afilados Router - Ciclo de afilado de una sierra.

Endpoints:
- GET    /api/afilados                 - Listado paginado (global o por empresa)
- POST   /api/afilados                 - Iniciar ciclo (sierra → EN_PROCESO_AFILADO)
- POST   /api/afilados/{id}/completar  - Completar (sierra → LISTA_PARA_RETIRO)
- POST   /api/afilados/{id}/salida     - Salida individual (sierra → DISPONIBLE)
- DELETE /api/afilados/{id}            - Eliminar afilado fuera de lotes
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status

from sierra_backend.core.dependency import get_afilado_service
from sierra_backend.models.afilado import (
    Afilado,
    AfiladoCreateRequest,
    AfiladoFiltros,
    AfiladoListResponse,
    CompletarAfiladoRequest,
    SalidaAfiladoRequest,
)
from sierra_backend.services.afilado_service import AfiladoService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/afilados", response_model=AfiladoListResponse, status_code=status.HTTP_200_OK)
async def listar_afilados(
    sierra_id: Optional[int] = Query(None),
    tipo_afilado_id: Optional[int] = Query(None),
    fecha_desde: Optional[date] = Query(None),
    fecha_hasta: Optional[date] = Query(None),
    solo_abiertos: bool = Query(False, description="Solo afilados con fecha_salida null"),
    empresa_id: Optional[int] = Query(
        None,
        description="Empresa del usuario; obligatorio con AFILADO_QUERY_MODE=improved"
    ),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    afilado_service: AfiladoService = Depends(get_afilado_service)
):
    """
    Listado paginado de afilados, más recientes primero.

    La estrategia de listado se fija al iniciar el proceso:
    - original: listado global, empresa_id se ignora
    - improved: solo sierras de sucursales de la empresa indicada

    Raises:
        400 EMPRESA_REQUERIDA: modo improved sin empresa_id
        400 RANGO_FECHAS_INVALIDO: fecha_desde > fecha_hasta
    """
    filtros = AfiladoFiltros(
        sierra_id=sierra_id,
        tipo_afilado_id=tipo_afilado_id,
        fecha_desde=fecha_desde,
        fecha_hasta=fecha_hasta,
        solo_abiertos=solo_abiertos
    )
    logger.info(f"GET /api/afilados - empresa_id={empresa_id} page={page}")
    return afilado_service.listar(filtros, page=page, page_size=page_size, empresa_id=empresa_id)


@router.post("/afilados", response_model=Afilado, status_code=status.HTTP_201_CREATED)
async def crear_afilado(
    request: AfiladoCreateRequest,
    afilado_service: AfiladoService = Depends(get_afilado_service)
):
    """
    Inicia un ciclo de afilado.

    Solo una sierra activa y sin afilado abierto puede iniciar un ciclo.

    Example request:
        ```bash
        curl -X POST http://localhost:8000/api/afilados \\
          -H "Content-Type: application/json" \\
          -d '{"sierra_id": 15, "tipo_afilado_id": 1}'
        ```

    Raises:
        404 SIERRA_NO_ENCONTRADA / TIPO_AFILADO_NO_ENCONTRADO
        409 SIERRA_INACTIVA / AFILADO_ABIERTO_EXISTENTE
    """
    logger.info(f"POST /api/afilados - sierra_id={request.sierra_id}")
    return afilado_service.create_afilado(request)


@router.post(
    "/afilados/{afilado_id}/completar",
    response_model=Afilado,
    status_code=status.HTTP_200_OK
)
async def completar_afilado(
    afilado_id: int,
    request: Optional[CompletarAfiladoRequest] = Body(None),
    afilado_service: AfiladoService = Depends(get_afilado_service)
):
    """Marca el afilado como COMPLETADO; la sierra queda lista para retiro."""
    logger.info(f"POST /api/afilados/{afilado_id}/completar")
    observaciones = request.observaciones if request else None
    return afilado_service.completar_afilado(afilado_id, observaciones)


@router.post(
    "/afilados/{afilado_id}/salida",
    response_model=Afilado,
    status_code=status.HTTP_200_OK
)
async def registrar_salida(
    afilado_id: int,
    request: Optional[SalidaAfiladoRequest] = Body(None),
    afilado_service: AfiladoService = Depends(get_afilado_service)
):
    """
    Salida individual: cierra el afilado (fecha_salida) y libera la sierra.

    Raises:
        409 AFILADO_NO_ABIERTO: el afilado ya tenía salida
    """
    logger.info(f"POST /api/afilados/{afilado_id}/salida")
    fecha_salida = request.fecha_salida if request else None
    return afilado_service.registrar_salida(afilado_id, fecha_salida)


@router.delete("/afilados/{afilado_id}", status_code=status.HTTP_200_OK)
async def eliminar_afilado(
    afilado_id: int,
    afilado_service: AfiladoService = Depends(get_afilado_service)
):
    """
    Elimina un afilado; si estaba abierto la sierra vuelve a DISPONIBLE.

    Raises:
        409 AFILADO_EN_LOTE: registrado en una salida o baja masiva vigente
    """
    logger.info(f"DELETE /api/afilados/{afilado_id}")
    afilado_service.eliminar_afilado(afilado_id)
    return {
        "success": True,
        "afilado_id": afilado_id,
        "message": f"Afilado {afilado_id} eliminado"
    }
