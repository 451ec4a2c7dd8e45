"""
Sierras Router - Registro y consulta de sierras.

Endpoints:
- GET    /api/sierras                      - Búsqueda paginada con filtros
- POST   /api/sierras                      - Registrar sierra nueva
- GET    /api/sierras/codigo/{codigo}      - Lookup por código de barras (escáner)
- GET    /api/sierras/{id}                 - Sierra con su estado derivado
- GET    /api/sierras/{id}/puede-afilar    - ¿Se puede iniciar un afilado?
- GET    /api/sierras/{id}/historial       - Afilados de la sierra, recientes primero
- DELETE /api/sierras/{id}                 - Baja individual
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from sierra_backend.core.dependency import get_afilado_service, get_sierra_service
from sierra_backend.models.afilado import Afilado
from sierra_backend.models.enums import EstadoSierra
from sierra_backend.models.sierra import (
    PuedeAfilarResponse,
    Sierra,
    SierraConEstado,
    SierraCreateRequest,
    SierraFiltros,
    SierraListResponse,
)
from sierra_backend.services.afilado_service import AfiladoService
from sierra_backend.services.sierra_service import SierraService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/sierras", response_model=SierraListResponse, status_code=status.HTTP_200_OK)
async def buscar_sierras(
    codigo_barras: Optional[str] = Query(None, description="Búsqueda parcial por código"),
    sucursal_id: Optional[int] = Query(None),
    tipo_sierra_id: Optional[int] = Query(None),
    estado_id: Optional[EstadoSierra] = Query(None),
    activo: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    sierra_service: SierraService = Depends(get_sierra_service)
):
    """
    Búsqueda paginada de sierras.

    Todos los filtros son opcionales y se combinan con AND.

    Example request:
        ```bash
        curl "http://localhost:8000/api/sierras?sucursal_id=3&activo=true&page=1"
        ```
    """
    filtros = SierraFiltros(
        codigo_barras=codigo_barras,
        sucursal_id=sucursal_id,
        tipo_sierra_id=tipo_sierra_id,
        estado_id=estado_id,
        activo=activo
    )
    logger.info(f"GET /api/sierras - filtros={filtros.model_dump(exclude_none=True)} page={page}")
    return sierra_service.buscar(filtros, page=page, page_size=page_size)


@router.post("/sierras", response_model=Sierra, status_code=status.HTTP_201_CREATED)
async def registrar_sierra(
    request: SierraCreateRequest,
    sierra_service: SierraService = Depends(get_sierra_service)
):
    """
    Registra una sierra nueva en estado DISPONIBLE.

    Raises:
        409 CODIGO_BARRAS_DUPLICADO: el código ya está registrado
    """
    logger.info(f"POST /api/sierras - codigo={request.codigo_barras}")
    return sierra_service.registrar(request)


@router.get("/sierras/codigo/{codigo}", response_model=Sierra, status_code=status.HTTP_200_OK)
async def get_sierra_por_codigo(
    codigo: str,
    sierra_service: SierraService = Depends(get_sierra_service)
):
    """
    Lookup por código de barras (flujo de escaneo).

    Raises:
        404 SIERRA_NO_ENCONTRADA
    """
    return sierra_service.lookup_by_code(codigo)


@router.get("/sierras/{sierra_id}", response_model=SierraConEstado, status_code=status.HTTP_200_OK)
async def get_sierra(
    sierra_id: int,
    sierra_service: SierraService = Depends(get_sierra_service)
):
    """Sierra con su estado derivado y el id del afilado abierto (si existe)."""
    return sierra_service.get_con_estado(sierra_id)


@router.get(
    "/sierras/{sierra_id}/puede-afilar",
    response_model=PuedeAfilarResponse,
    status_code=status.HTTP_200_OK
)
async def puede_afilar(
    sierra_id: int,
    sierra_service: SierraService = Depends(get_sierra_service)
):
    """
    Indica si se puede iniciar un afilado: sierra activa y sin ciclo abierto.

    Example response (200 OK):
        ```json
        {"sierra_id": 15, "puede_afilar": false, "activo": true, "afilados_abiertos": 1}
        ```
    """
    return sierra_service.puede_afilar(sierra_id)


@router.get(
    "/sierras/{sierra_id}/historial",
    response_model=list[Afilado],
    status_code=status.HTTP_200_OK
)
async def historial_sierra(
    sierra_id: int,
    afilado_service: AfiladoService = Depends(get_afilado_service)
):
    """Afilados de la sierra ordenados por fecha_afilado desc, id desc."""
    return afilado_service.history(sierra_id)


@router.delete("/sierras/{sierra_id}", response_model=Sierra, status_code=status.HTTP_200_OK)
async def dar_de_baja_sierra(
    sierra_id: int,
    fecha_baja: Optional[date] = Query(None, description="Default: hoy en timezone local"),
    sierra_service: SierraService = Depends(get_sierra_service)
):
    """
    Baja individual de una sierra (activo = false, nunca se borra la fila).

    Con política reject, una sierra con afilado abierto responde 409.
    Con force_close, el afilado abierto se cierra como CERRADO_POR_BAJA.

    Raises:
        404 SIERRA_NO_ENCONTRADA
        409 TRANSICION_INVALIDA: ya dada de baja o afilado abierto (reject)
    """
    logger.info(f"DELETE /api/sierras/{sierra_id} - baja individual")
    return sierra_service.dar_de_baja(sierra_id, fecha_baja)
