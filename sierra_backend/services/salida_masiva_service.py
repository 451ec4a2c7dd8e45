"""
SalidaMasivaService - Motor de despacho en lote.

Crear:
1. Validar todos los afilados (abiertos, sierra activa de la sucursal);
   cualquier violación rechaza el lote completo sin escribir nada
2. Insertar cabecera salidas_masivas
3. Por afilado: detalle salida_masiva_afilados (con el estado previo del
   afilado y de la sierra) → mark_dispatched
4. Items fallidos → PartialFailureError (la cabecera queda)

Eliminar (reversión): por detalle, reabrir afilado y sierra en el estado
registrado → borrar
detalle; la cabecera se borra solo cuando no queda ningún detalle.
"""
import logging
from typing import Optional

from sierra_backend.config import config
from sierra_backend.exceptions import (
    AfiladoNoEncontradoError,
    LoteDemasiadoGrandeError,
    LoteInvalidoError,
    PartialFailureError,
    SalidaMasivaNoEncontradaError,
)
from sierra_backend.models.batch import ReversionResponse
from sierra_backend.models.salida_masiva import (
    SalidaMasiva,
    SalidaMasivaCreateRequest,
    SalidaMasivaResponse,
)
from sierra_backend.repositories.afilado_repository import AfiladoRepository
from sierra_backend.repositories.batch_repository import SalidaMasivaRepository
from sierra_backend.repositories.sierra_repository import SierraRepository
from sierra_backend.services.claim_service import ClaimRegistry, NoopClaimRegistry
from sierra_backend.services.reversal import aplicar_items, revertir_items
from sierra_backend.services.sierra_service import SierraService
from sierra_backend.services.state_machines.sierra_state_machine import derivar_estado
from sierra_backend.utils.date_formatter import format_date, today_local

logger = logging.getLogger(__name__)

OPERACION = "salida masiva"


class SalidaMasivaService:
    """Creación, consulta y reversión de salidas masivas."""

    def __init__(
        self,
        sierra_service: SierraService,
        salida_repository: SalidaMasivaRepository,
        afilado_repository: AfiladoRepository,
        sierra_repository: SierraRepository,
        claims: Optional[ClaimRegistry] = None,
        max_batch_size: Optional[int] = None
    ):
        self.sierra_service = sierra_service
        self.salida_repo = salida_repository
        self.afilado_repo = afilado_repository
        self.sierra_repo = sierra_repository
        self.claims = claims or NoopClaimRegistry()
        self.max_batch_size = max_batch_size or config.MAX_BATCH_SIZE

    # ==================== CREAR ====================

    def create_salida_masiva(self, request: SalidaMasivaCreateRequest) -> SalidaMasivaResponse:
        """
        Despacha un conjunto de afilados de una sucursal.

        Raises:
            LoteDemasiadoGrandeError, LoteInvalidoError: 400, nada escrito
            AfiladoNoEncontradoError: 404, nada escrito
            LoteEnCursoError: 409, otra operación en lote toca las mismas sierras
            StoreError: 503 al insertar la cabecera, nada escrito
            PartialFailureError: cabecera creada y algunos items fallidos
        """
        afilado_ids = list(dict.fromkeys(request.afilados_ids))
        if len(afilado_ids) > self.max_batch_size:
            raise LoteDemasiadoGrandeError(len(afilado_ids), self.max_batch_size)
        fecha_salida = request.fecha_salida or today_local()

        afilados = self._cargar_afilados(afilado_ids)
        sierra_ids = sorted({a.sierra_id for a in afilados.values()})

        with self.claims.claim(OPERACION, sierra_ids):
            # PASO 1: Validación todo-o-nada (re-lectura bajo claim)
            previos = self._validar(afilado_ids, request.sucursal_id)

            # PASO 2: Cabecera
            salida = self.salida_repo.insert_header({
                "sucursal_id": request.sucursal_id,
                "fecha_salida": format_date(fecha_salida),
                "observaciones": request.observaciones,
                "usuario_id": request.usuario_id,
            })
            etiqueta = f"{OPERACION} {salida.id}"
            logger.info(f"[{etiqueta}] creada con {len(afilado_ids)} afilados")

            # PASO 3: Detalle antes de cada mutación
            resultado = aplicar_items(
                afilado_ids,
                escribir_detalle=lambda afilado_id: self.salida_repo.insert_detalle({
                    "salida_masiva_id": salida.id,
                    "afilado_id": afilado_id,
                    **previos[afilado_id],
                }),
                mutar=lambda afilado_id, _detalle: self.sierra_service.mark_dispatched(
                    afilado_id, fecha_salida
                ),
                descartar_detalle=lambda detalle: self.salida_repo.delete_detalle(detalle.id),
                etiqueta=etiqueta
            )

        # PASO 4: Reporte de éxito parcial
        if resultado.failed:
            logger.error(
                f"[{etiqueta}] aplicada parcialmente: fallidos {resultado.failed} "
                f"({resultado.motivos})"
            )
            raise PartialFailureError(
                message=(
                    f"Salida masiva {salida.id} aplicada parcialmente: "
                    f"{len(resultado.failed)} de {len(afilado_ids)} items fallaron"
                ),
                batch_id=salida.id,
                succeeded=resultado.succeeded,
                failed=resultado.failed
            )

        return SalidaMasivaResponse(
            salida=salida,
            afilados_ids=resultado.succeeded,
            total=len(resultado.succeeded)
        )

    def _cargar_afilados(self, afilado_ids: list[int]) -> dict:
        afilados = self.afilado_repo.get_many(afilado_ids)
        missing = [i for i in afilado_ids if i not in afilados]
        if missing:
            raise AfiladoNoEncontradoError(missing)
        return afilados

    def _validar(self, afilado_ids: list[int], sucursal_id: int) -> dict[int, dict]:
        """
        Cada afilado debe estar abierto y pertenecer a una sierra activa
        de la sucursal. Reúne TODOS los ids inválidos antes de rechazar.

        Returns:
            por afilado, el estado previo a registrar en su detalle
            (estado_anterior, estado_id_anterior)
        """
        afilados = self._cargar_afilados(afilado_ids)
        sierras = self.sierra_repo.get_many(sorted({a.sierra_id for a in afilados.values()}))

        motivos: dict[int, str] = {}
        for afilado_id in afilado_ids:
            afilado = afilados[afilado_id]
            sierra = sierras.get(afilado.sierra_id)
            if not afilado.abierto:
                motivos[afilado_id] = f"afilado ya despachado ({afilado.fecha_salida})"
            elif sierra is None:
                motivos[afilado_id] = f"sierra {afilado.sierra_id} no existe"
            elif sierra.sucursal_id != sucursal_id:
                motivos[afilado_id] = f"sierra {sierra.id} pertenece a la sucursal {sierra.sucursal_id}"
            elif not sierra.activo:
                motivos[afilado_id] = f"sierra {sierra.id} fuera de servicio"

        if motivos:
            invalid_ids = [i for i in afilado_ids if i in motivos]
            logger.info(f"Salida masiva rechazada: {motivos}")
            raise LoteInvalidoError(OPERACION, invalid_ids, motivos)

        previos: dict[int, dict] = {}
        for afilado_id in afilado_ids:
            afilado = afilados[afilado_id]
            previos[afilado_id] = {
                "estado_anterior": afilado.estado,
                "estado_id_anterior": derivar_estado(sierras[afilado.sierra_id], afilado),
            }
        return previos

    # ==================== REVERTIR ====================

    def delete_salida_masiva(self, salida_id: int) -> ReversionResponse:
        """
        Revierte una salida masiva: reabre sus afilados y elimina el lote.

        Raises:
            SalidaMasivaNoEncontradaError: 404 (también si ya fue revertida)
            PartialFailureError: algunos afilados no pudieron reabrirse; el lote
                queda con esos detalles para reintentar
        """
        salida = self.salida_repo.get_header(salida_id)
        if salida is None:
            raise SalidaMasivaNoEncontradaError(salida_id)

        detalles = self.salida_repo.list_detalles(salida_id)
        afilados = self.afilado_repo.get_many([d.afilado_id for d in detalles])
        sierra_ids = sorted({a.sierra_id for a in afilados.values()})
        etiqueta = f"{OPERACION} {salida_id}"

        with self.claims.claim(OPERACION, sierra_ids):
            resultado = revertir_items(
                detalles,
                item_id=lambda d: d.afilado_id,
                invertir=lambda d: (
                    self.sierra_service.revertir_despacho(
                        d.afilado_id, d.estado_anterior, d.estado_id_anterior
                    )
                    if d.afilado_id in afilados else None
                ),
                borrar_detalle=lambda d: self.salida_repo.delete_detalle(d.id),
                etiqueta=etiqueta
            )

            if resultado.failed:
                raise PartialFailureError(
                    message=(
                        f"Reversión de salida masiva {salida_id} incompleta: "
                        f"afilados no revertidos {resultado.failed}"
                    ),
                    batch_id=salida_id,
                    succeeded=resultado.succeeded,
                    failed=resultado.failed,
                    error_code="REVERSION_PARCIAL"
                )

            self.salida_repo.delete_header(salida_id)

        logger.info(f"[{etiqueta}] revertida: {len(resultado.succeeded)} afilados reabiertos")
        return ReversionResponse(
            batch_id=salida_id,
            revertidos=resultado.succeeded,
            message=f"Salida masiva {salida_id} eliminada; {len(resultado.succeeded)} afilados reabiertos"
        )

    # ==================== CONSULTAS ====================

    def list_salidas(self, sucursal_id: Optional[int] = None, limit: int = 50) -> list[SalidaMasiva]:
        return self.salida_repo.list_headers(sucursal_id, limit)

    def get_salida(self, salida_id: int) -> SalidaMasivaResponse:
        salida = self.salida_repo.get_header(salida_id)
        if salida is None:
            raise SalidaMasivaNoEncontradaError(salida_id)
        afilados_ids = [d.afilado_id for d in self.salida_repo.list_detalles(salida_id)]
        return SalidaMasivaResponse(salida=salida, afilados_ids=afilados_ids, total=len(afilados_ids))
