"""
AfiladoService - Libro de afilados (Sharpening Ledger).

Invariante central: a lo sumo un afilado por sierra con fecha_salida IS NULL.

Flujo de un ciclo:
- create_afilado: DISPONIBLE → EN_PROCESO_AFILADO (estado PENDIENTE)
- completar_afilado: EN_PROCESO_AFILADO → LISTA_PARA_RETIRO (estado COMPLETADO)
- registrar_salida / salida masiva: → DISPONIBLE (fecha_salida fijada)
"""
import logging
from datetime import date
from typing import Optional

from sierra_backend.exceptions import (
    AfiladoAbiertoExistenteError,
    AfiladoEnLoteError,
    AfiladoNoAbiertoError,
    AfiladoNoEncontradoError,
    RangoFechasInvalidoError,
    SierraBackendException,
    SierraInactivaError,
    TipoAfiladoNoEncontradoError,
)
from sierra_backend.models.afilado import (
    Afilado,
    AfiladoCreateRequest,
    AfiladoFiltros,
    AfiladoListResponse,
)
from sierra_backend.models.enums import EstadoAfilado, EstadoSierra
from sierra_backend.repositories.afilado_repository import AfiladoRepository
from sierra_backend.repositories.batch_repository import (
    BajaMasivaRepository,
    SalidaMasivaRepository,
)
from sierra_backend.repositories.row_store import eq
from sierra_backend.repositories.sierra_repository import SierraRepository
from sierra_backend.services.afilado_query_strategy import (
    AfiladoQueryStrategy,
    OriginalAfiladoQuery,
)
from sierra_backend.services.sierra_service import SierraService
from sierra_backend.services.state_machines.sierra_state_machine import (
    derivar_estado,
    transicionar,
)
from sierra_backend.utils.date_formatter import format_date, today_local

logger = logging.getLogger(__name__)


class AfiladoService:
    """
    Service para el ciclo de afilado de una sierra.

    Dependencias:
    - SierraService: transiciones de la sierra y despacho individual
    - AfiladoRepository / SierraRepository: acceso a filas
    - Salida/BajaMasivaRepository: bloquear eliminación de afilados en lotes
    - AfiladoQueryStrategy: listado global o acotado por empresa
    """

    def __init__(
        self,
        sierra_service: SierraService,
        afilado_repository: AfiladoRepository,
        sierra_repository: SierraRepository,
        salida_repository: SalidaMasivaRepository,
        baja_repository: BajaMasivaRepository,
        query_strategy: Optional[AfiladoQueryStrategy] = None
    ):
        self.sierra_service = sierra_service
        self.afilado_repo = afilado_repository
        self.sierra_repo = sierra_repository
        self.salida_repo = salida_repository
        self.baja_repo = baja_repository
        self.query_strategy = query_strategy or OriginalAfiladoQuery()

    def create_afilado(self, request: AfiladoCreateRequest) -> Afilado:
        """
        Inicia un ciclo de afilado para una sierra.

        Flujo:
        1. Validar sierra y tipo de afilado (404)
        2. Validar sierra activa y sin ciclo abierto (409)
        3. Insertar afilado PENDIENTE con fecha_salida null
        4. Sierra → EN_PROCESO_AFILADO (update condicional activo = true)
        5. Re-verificar el invariante: si otra request abrió un ciclo en
           paralelo, eliminar el propio y responder 409

        Raises:
            SierraNoEncontradaError, TipoAfiladoNoEncontradoError: 404
            SierraInactivaError, AfiladoAbiertoExistenteError: 409
        """
        sierra_id = request.sierra_id

        # PASO 1: Existencia
        sierra = self.sierra_service.get(sierra_id)
        if not self.sierra_repo.tipo_afilado_existe(request.tipo_afilado_id):
            raise TipoAfiladoNoEncontradoError(request.tipo_afilado_id)

        # PASO 2: Estado de la sierra
        if not sierra.activo:
            raise SierraInactivaError(sierra_id)
        abiertos = self.afilado_repo.find_open(sierra_id)
        if abiertos:
            raise AfiladoAbiertoExistenteError(sierra_id, abiertos[0].id)
        nuevo_estado = transicionar(
            sierra_id, derivar_estado(sierra, None), "iniciar_afilado"
        )

        # PASO 3: Insertar afilado abierto
        afilado = self.afilado_repo.insert({
            "sierra_id": sierra_id,
            "tipo_afilado_id": request.tipo_afilado_id,
            "fecha_afilado": format_date(request.fecha_afilado or today_local()),
            "estado": EstadoAfilado.PENDIENTE,
            "observaciones": request.observaciones,
            "usuario_id": request.usuario_id,
        })

        # PASO 4: Sierra en proceso
        try:
            actualizada = self.sierra_repo.update(
                sierra_id, {"estado_id": nuevo_estado}, [eq("activo", True)]
            )
        except SierraBackendException:
            self.afilado_repo.delete(afilado.id)
            raise
        if actualizada is None:
            self.afilado_repo.delete(afilado.id)
            raise SierraInactivaError(sierra_id)

        # PASO 5: Carrera con otra creación concurrente
        if self.afilado_repo.count_open(sierra_id) > 1:
            logger.warning(f"Afilado concurrente detectado en sierra {sierra_id}; descartando {afilado.id}")
            self.afilado_repo.delete(afilado.id)
            raise AfiladoAbiertoExistenteError(sierra_id)

        logger.info(f"Afilado {afilado.id} creado para sierra {sierra_id}")
        return afilado

    def completar_afilado(self, afilado_id: int, observaciones: Optional[str] = None) -> Afilado:
        """
        Marca un afilado abierto como COMPLETADO; la sierra queda LISTA_PARA_RETIRO.

        Raises:
            AfiladoNoEncontradoError: 404
            AfiladoNoAbiertoError, TransicionInvalidaError: 409
        """
        afilado = self.get(afilado_id)
        if not afilado.abierto:
            raise AfiladoNoAbiertoError(afilado_id, afilado.estado)

        sierra = self.sierra_service.get(afilado.sierra_id)
        nuevo_estado = transicionar(
            sierra.id, derivar_estado(sierra, afilado), "completar_afilado"
        )

        patch = {"estado": EstadoAfilado.COMPLETADO}
        if observaciones is not None:
            patch["observaciones"] = observaciones
        completado = self.afilado_repo.update_if_open(afilado_id, patch)
        if completado is None:
            current = self.get(afilado_id)
            raise AfiladoNoAbiertoError(afilado_id, current.estado)

        self.sierra_repo.update(sierra.id, {"estado_id": nuevo_estado}, [eq("activo", True)])
        logger.info(f"Afilado {afilado_id} completado; sierra {sierra.id} lista para retiro")
        return completado

    def registrar_salida(self, afilado_id: int, fecha_salida: Optional[date] = None) -> Afilado:
        """Salida individual de un afilado (sin lote)."""
        return self.sierra_service.mark_dispatched(afilado_id, fecha_salida or today_local())

    def eliminar_afilado(self, afilado_id: int) -> None:
        """
        Elimina un afilado.

        Si estaba abierto, la sierra vuelve a DISPONIBLE. No se permite
        eliminar afilados registrados en un lote vigente: la reversión del
        lote los necesita.

        Raises:
            AfiladoNoEncontradoError: 404
            AfiladoEnLoteError: 409
        """
        afilado = self.get(afilado_id)

        detalle_salida = self.salida_repo.find_detalle_por_afilado(afilado_id)
        if detalle_salida is not None:
            raise AfiladoEnLoteError(afilado_id, "salida masiva", detalle_salida.salida_masiva_id)
        detalle_baja = self.baja_repo.find_detalle_por_afilado_cerrado(afilado_id)
        if detalle_baja is not None:
            raise AfiladoEnLoteError(afilado_id, "baja masiva", detalle_baja.baja_masiva_id)

        nuevo_estado: Optional[EstadoSierra] = None
        sierra = None
        if afilado.abierto:
            sierra = self.sierra_service.get(afilado.sierra_id)
            if sierra.activo:
                nuevo_estado = transicionar(
                    sierra.id, derivar_estado(sierra, afilado), "cancelar_afilado"
                )

        self.afilado_repo.delete(afilado_id)
        if sierra is not None and nuevo_estado is not None:
            self.sierra_repo.update(sierra.id, {"estado_id": nuevo_estado}, [eq("activo", True)])
        logger.info(f"Afilado {afilado_id} eliminado")

    # ==================== CONSULTAS ====================

    def get(self, afilado_id: int) -> Afilado:
        afilado = self.afilado_repo.get(afilado_id)
        if afilado is None:
            raise AfiladoNoEncontradoError([afilado_id])
        return afilado

    def history(self, sierra_id: int) -> list[Afilado]:
        """Afilados de la sierra, más recientes primero (fecha_afilado, id)."""
        self.sierra_service.get(sierra_id)
        return self.afilado_repo.history(sierra_id)

    def count_open(self, sierra_id: int) -> int:
        return min(self.afilado_repo.count_open(sierra_id), 1)

    def listar(
        self,
        filtros: AfiladoFiltros,
        page: int = 1,
        page_size: int = 20,
        empresa_id: Optional[int] = None
    ) -> AfiladoListResponse:
        if (
            filtros.fecha_desde is not None
            and filtros.fecha_hasta is not None
            and filtros.fecha_desde > filtros.fecha_hasta
        ):
            raise RangoFechasInvalidoError(str(filtros.fecha_desde), str(filtros.fecha_hasta))
        return self.query_strategy.listar(
            self.afilado_repo, self.sierra_repo, filtros, page, page_size, empresa_id
        )
