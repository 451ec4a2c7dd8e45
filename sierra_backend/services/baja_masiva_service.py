"""
BajaMasivaService - Motor de baja (decommission) en lote.

Crear:
1. Validar que todas las sierras existan y estén activas; las sierras con
   afilado abierto se rechazan (política REJECT) o se aceptan para cierre
   forzado (política FORCE_CLOSE)
2. Insertar cabecera bajas_masivas
3. Por sierra: detalle baja_masiva_sierras con el estado previo →
   cierre forzado del afilado (si aplica) → activo = false
4. Items fallidos → PartialFailureError (la cabecera queda)

Eliminar (reversión): por detalle, restaurar activo/estado_id y reabrir el
afilado cerrado por la baja → borrar detalle; cabecera al final.
"""
import logging
from typing import Optional

from sierra_backend.config import config
from sierra_backend.exceptions import (
    BajaMasivaNoEncontradaError,
    LoteDemasiadoGrandeError,
    LoteInvalidoError,
    PartialFailureError,
    SierrasConAfiladoAbiertoError,
    SierrasNoEncontradasError,
)
from sierra_backend.models.baja_masiva import (
    BajaMasiva,
    BajaMasivaCreateRequest,
    BajaMasivaResponse,
)
from sierra_backend.models.batch import ReversionResponse
from sierra_backend.models.enums import DecommissionPolicy
from sierra_backend.repositories.afilado_repository import AfiladoRepository
from sierra_backend.repositories.batch_repository import BajaMasivaRepository
from sierra_backend.repositories.sierra_repository import SierraRepository
from sierra_backend.services.claim_service import ClaimRegistry, NoopClaimRegistry
from sierra_backend.services.reversal import aplicar_items, revertir_items
from sierra_backend.services.sierra_service import SierraService
from sierra_backend.services.state_machines.sierra_state_machine import derivar_estado
from sierra_backend.utils.date_formatter import format_date, today_local

logger = logging.getLogger(__name__)

OPERACION = "baja masiva"


class BajaMasivaService:
    """Creación, consulta y reversión de bajas masivas."""

    def __init__(
        self,
        sierra_service: SierraService,
        baja_repository: BajaMasivaRepository,
        afilado_repository: AfiladoRepository,
        sierra_repository: SierraRepository,
        claims: Optional[ClaimRegistry] = None,
        max_batch_size: Optional[int] = None
    ):
        self.sierra_service = sierra_service
        self.baja_repo = baja_repository
        self.afilado_repo = afilado_repository
        self.sierra_repo = sierra_repository
        self.claims = claims or NoopClaimRegistry()
        self.max_batch_size = max_batch_size or config.MAX_BATCH_SIZE

    @property
    def policy(self) -> DecommissionPolicy:
        return self.sierra_service.decommission_policy

    # ==================== CREAR ====================

    def create_baja_masiva(self, request: BajaMasivaCreateRequest) -> BajaMasivaResponse:
        """
        Da de baja un conjunto de sierras.

        Raises:
            LoteDemasiadoGrandeError, LoteInvalidoError: 400, nada escrito
            SierrasNoEncontradasError: 404, nada escrito
            SierrasConAfiladoAbiertoError: 409 con política REJECT, nada escrito
            LoteEnCursoError: 409, otra operación en lote toca las mismas sierras
            PartialFailureError: cabecera creada y algunos items fallidos
        """
        sierra_ids = list(dict.fromkeys(request.sierras_ids))
        if len(sierra_ids) > self.max_batch_size:
            raise LoteDemasiadoGrandeError(len(sierra_ids), self.max_batch_size)
        fecha_baja = request.fecha_baja or today_local()

        with self.claims.claim(OPERACION, sorted(sierra_ids)):
            # PASO 1: Validación todo-o-nada
            sierras = self.sierra_repo.get_many(sierra_ids)
            missing = [i for i in sierra_ids if i not in sierras]
            if missing:
                raise SierrasNoEncontradasError(missing)

            inactivas = {i: "sierra ya dada de baja" for i in sierra_ids if not sierras[i].activo}
            if inactivas:
                raise LoteInvalidoError(OPERACION, list(inactivas), inactivas)

            abiertos = self.afilado_repo.find_open_by_sierras(sierra_ids)
            if abiertos and self.policy == DecommissionPolicy.REJECT:
                raise SierrasConAfiladoAbiertoError(sorted(abiertos))

            # PASO 2: Cabecera
            baja = self.baja_repo.insert_header({
                "fecha_baja": format_date(fecha_baja),
                "observaciones": request.observaciones,
                "usuario_id": request.usuario_id,
            })
            etiqueta = f"{OPERACION} {baja.id}"
            logger.info(
                f"[{etiqueta}] creada con {len(sierra_ids)} sierras "
                f"({len(abiertos)} con afilado abierto, política {self.policy.value})"
            )

            # PASO 3: Detalle con estado previo → mutación
            def escribir_detalle(sierra_id: int):
                sierra = sierras[sierra_id]
                afilado = abiertos.get(sierra_id)
                return self.baja_repo.insert_detalle({
                    "baja_masiva_id": baja.id,
                    "sierra_id": sierra_id,
                    "estado_anterior": sierra.activo,
                    "estado_id_anterior": derivar_estado(sierra, afilado),
                    "afilado_cerrado_id": afilado.id if afilado else None,
                })

            resultado = aplicar_items(
                sierra_ids,
                escribir_detalle=escribir_detalle,
                mutar=lambda sierra_id, detalle: self.sierra_service.aplicar_baja(
                    sierra_id,
                    fecha_baja,
                    afilado_esperado_id=detalle.afilado_cerrado_id,
                    verificar_afilado=True
                ),
                descartar_detalle=lambda detalle: self.baja_repo.delete_detalle(detalle.id),
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
                    f"Baja masiva {baja.id} aplicada parcialmente: "
                    f"{len(resultado.failed)} de {len(sierra_ids)} items fallaron"
                ),
                batch_id=baja.id,
                succeeded=resultado.succeeded,
                failed=resultado.failed
            )

        return BajaMasivaResponse(
            baja=baja,
            detalles=self.baja_repo.list_detalles(baja.id),
            total=len(resultado.succeeded)
        )

    # ==================== REVERTIR ====================

    def delete_baja_masiva(self, baja_id: int) -> ReversionResponse:
        """
        Revierte una baja masiva: reactiva sus sierras y elimina el lote.

        Raises:
            BajaMasivaNoEncontradaError: 404 (también si ya fue revertida)
            PartialFailureError: algunas sierras no pudieron restaurarse
        """
        baja = self.baja_repo.get_header(baja_id)
        if baja is None:
            raise BajaMasivaNoEncontradaError(baja_id)

        detalles = self.baja_repo.list_detalles(baja_id)
        etiqueta = f"{OPERACION} {baja_id}"

        with self.claims.claim(OPERACION, sorted({d.sierra_id for d in detalles})):
            resultado = revertir_items(
                detalles,
                item_id=lambda d: d.sierra_id,
                invertir=lambda d: self.sierra_service.revertir_baja(
                    d.sierra_id,
                    activo_anterior=d.estado_anterior,
                    estado_id_anterior=d.estado_id_anterior,
                    afilado_cerrado_id=d.afilado_cerrado_id
                ),
                borrar_detalle=lambda d: self.baja_repo.delete_detalle(d.id),
                etiqueta=etiqueta
            )

            if resultado.failed:
                raise PartialFailureError(
                    message=(
                        f"Reversión de baja masiva {baja_id} incompleta: "
                        f"sierras no restauradas {resultado.failed}"
                    ),
                    batch_id=baja_id,
                    succeeded=resultado.succeeded,
                    failed=resultado.failed,
                    error_code="REVERSION_PARCIAL"
                )

            self.baja_repo.delete_header(baja_id)

        logger.info(f"[{etiqueta}] revertida: {len(resultado.succeeded)} sierras reactivadas")
        return ReversionResponse(
            batch_id=baja_id,
            revertidos=resultado.succeeded,
            message=f"Baja masiva {baja_id} eliminada; {len(resultado.succeeded)} sierras reactivadas"
        )

    # ==================== CONSULTAS ====================

    def list_bajas(self, limit: int = 50) -> list[BajaMasiva]:
        return self.baja_repo.list_headers(limit)

    def get_baja(self, baja_id: int) -> BajaMasivaResponse:
        baja = self.baja_repo.get_header(baja_id)
        if baja is None:
            raise BajaMasivaNoEncontradaError(baja_id)
        detalles = self.baja_repo.list_detalles(baja_id)
        return BajaMasivaResponse(baja=baja, detalles=detalles, total=len(detalles))
