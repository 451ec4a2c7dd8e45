"""
Estrategias de listado de afilados.

Se elige una sola vez al iniciar el proceso (config.AFILADO_QUERY_MODE)
y se inyecta en AfiladoService:
- OriginalAfiladoQuery: listado global de afilados
- EmpresaScopedAfiladoQuery: solo afilados de sierras cuyas sucursales
  pertenecen a la empresa del usuario (sierra → sucursal → empresa_id)
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from sierra_backend.exceptions import EmpresaRequeridaError
from sierra_backend.models.afilado import AfiladoFiltros, AfiladoListResponse
from sierra_backend.models.enums import AfiladoQueryMode
from sierra_backend.repositories.afilado_repository import AfiladoRepository
from sierra_backend.repositories.sierra_repository import SierraRepository

logger = logging.getLogger(__name__)


class AfiladoQueryStrategy(ABC):
    mode: AfiladoQueryMode

    @abstractmethod
    def listar(
        self,
        afilado_repo: AfiladoRepository,
        sierra_repo: SierraRepository,
        filtros: AfiladoFiltros,
        page: int,
        page_size: int,
        empresa_id: Optional[int] = None
    ) -> AfiladoListResponse:
        """Página de afilados según la estrategia."""


class OriginalAfiladoQuery(AfiladoQueryStrategy):
    """Listado global; empresa_id se ignora."""

    mode = AfiladoQueryMode.ORIGINAL

    def listar(self, afilado_repo, sierra_repo, filtros, page, page_size, empresa_id=None):
        items, total = afilado_repo.listar(
            filtros, offset=(page - 1) * page_size, limit=page_size
        )
        return AfiladoListResponse(items=items, total=total, page=page, page_size=page_size)


class EmpresaScopedAfiladoQuery(AfiladoQueryStrategy):
    """Listado acotado a una empresa; empresa_id es obligatorio."""

    mode = AfiladoQueryMode.IMPROVED

    def listar(self, afilado_repo, sierra_repo, filtros, page, page_size, empresa_id=None):
        if empresa_id is None:
            raise EmpresaRequeridaError()

        sucursales = sierra_repo.sucursal_ids_de_empresa(empresa_id)
        sierra_ids = sierra_repo.ids_por_sucursales(sucursales)
        logger.debug(
            f"Empresa {empresa_id}: {len(sucursales)} sucursales, {len(sierra_ids)} sierras"
        )

        items, total = afilado_repo.listar(
            filtros,
            offset=(page - 1) * page_size,
            limit=page_size,
            sierra_ids=sierra_ids
        )
        return AfiladoListResponse(items=items, total=total, page=page, page_size=page_size)


def build_query_strategy(mode: str) -> AfiladoQueryStrategy:
    """Factory usada por core/dependency.py al iniciar."""
    if AfiladoQueryMode(mode) == AfiladoQueryMode.ORIGINAL:
        return OriginalAfiladoQuery()
    return EmpresaScopedAfiladoQuery()
