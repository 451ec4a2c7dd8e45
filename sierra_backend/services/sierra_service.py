"""
SierraService - Registro de sierras y transiciones de su ciclo de vida.

Responsabilidades:
- Consultas: por id, por código de barras, búsqueda paginada
- Registro de sierras nuevas (código de barras único)
- canStartAfilado: activa y sin afilado abierto
- Mutaciones de item compartidas por flujos individuales y lotes:
  despacho (mark_dispatched), reversión de despacho, baja

Cada mutación de item sigue el mismo orden:
1. Hidratar la máquina de estados con el estado derivado y validar el evento
2. Update condicional del afilado (fecha_salida IS NULL / NOT NULL)
3. Update condicional de la sierra (activo = true)
4. Si el paso 3 no aplica, compensar el paso 2 y lanzar ConflictError
"""
import logging
from datetime import date
from typing import Optional

from sierra_backend.exceptions import (
    AfiladoNoAbiertoError,
    AfiladoNoEncontradoError,
    CodigoBarrasDuplicadoError,
    ModificacionConcurrenteError,
    SierraInactivaError,
    SierraNoEncontradaError,
    StoreError,
)
from sierra_backend.models.afilado import Afilado, normalizar_estado
from sierra_backend.models.enums import DecommissionPolicy, EstadoAfilado, EstadoSierra
from sierra_backend.models.sierra import (
    PuedeAfilarResponse,
    Sierra,
    SierraConEstado,
    SierraCreateRequest,
    SierraFiltros,
    SierraListResponse,
)
from sierra_backend.repositories.afilado_repository import AfiladoRepository
from sierra_backend.repositories.row_store import eq
from sierra_backend.repositories.sierra_repository import SierraRepository
from sierra_backend.services.state_machines.sierra_state_machine import (
    derivar_estado,
    transicionar,
)
from sierra_backend.utils.date_formatter import format_date, today_local

logger = logging.getLogger(__name__)

SOLO_ACTIVAS = (eq("activo", True),)


class SierraService:
    """
    Registro de sierras y dueño de los campos activo / estado_id.
    """

    def __init__(
        self,
        sierra_repository: SierraRepository,
        afilado_repository: AfiladoRepository,
        decommission_policy: DecommissionPolicy = DecommissionPolicy.REJECT
    ):
        self.sierra_repo = sierra_repository
        self.afilado_repo = afilado_repository
        self.decommission_policy = decommission_policy

    # ==================== CONSULTAS ====================

    def get(self, sierra_id: int) -> Sierra:
        sierra = self.sierra_repo.get(sierra_id)
        if sierra is None:
            raise SierraNoEncontradaError(sierra_id=sierra_id)
        return sierra

    def lookup_by_code(self, codigo_barras: str) -> Sierra:
        """
        Busca una sierra por su código de escaneo.

        Raises:
            SierraNoEncontradaError: si no existe
        """
        sierra = self.sierra_repo.get_by_codigo(codigo_barras.strip())
        if sierra is None:
            raise SierraNoEncontradaError(codigo_barras=codigo_barras)
        return sierra

    def estado_actual(self, sierra: Sierra) -> tuple[EstadoSierra, Optional[Afilado]]:
        """Estado derivado de la sierra y su afilado abierto (si hay)."""
        abiertos = self.afilado_repo.find_open(sierra.id)
        afilado = abiertos[0] if abiertos else None
        return derivar_estado(sierra, afilado), afilado

    def get_con_estado(self, sierra_id: int) -> SierraConEstado:
        sierra = self.get(sierra_id)
        estado, afilado = self.estado_actual(sierra)
        return SierraConEstado(
            **sierra.model_dump(),
            estado_derivado=estado,
            afilado_abierto_id=afilado.id if afilado else None
        )

    def buscar(self, filtros: SierraFiltros, page: int = 1, page_size: int = 20) -> SierraListResponse:
        offset = (page - 1) * page_size
        items, total = self.sierra_repo.buscar(filtros, offset=offset, limit=page_size)
        return SierraListResponse(items=items, total=total, page=page, page_size=page_size)

    def can_start_afilado(self, sierra_id: int) -> bool:
        """False si la sierra está inactiva o ya tiene un afilado abierto."""
        sierra = self.get(sierra_id)
        if not sierra.activo:
            return False
        return self.afilado_repo.count_open(sierra_id) == 0

    def puede_afilar(self, sierra_id: int) -> PuedeAfilarResponse:
        sierra = self.get(sierra_id)
        abiertos = min(self.afilado_repo.count_open(sierra_id), 1)
        return PuedeAfilarResponse(
            sierra_id=sierra_id,
            puede_afilar=sierra.activo and abiertos == 0,
            activo=sierra.activo,
            afilados_abiertos=abiertos
        )

    # ==================== REGISTRO ====================

    def registrar(self, request: SierraCreateRequest) -> Sierra:
        """
        Registra una sierra nueva en estado DISPONIBLE.

        Raises:
            CodigoBarrasDuplicadoError: si el código ya existe
        """
        codigo = request.codigo_barras.strip()
        if self.sierra_repo.get_by_codigo(codigo) is not None:
            raise CodigoBarrasDuplicadoError(codigo)

        try:
            sierra = self.sierra_repo.insert({
                "codigo_barras": codigo,
                "sucursal_id": request.sucursal_id,
                "tipo_sierra_id": request.tipo_sierra_id,
                "estado_id": EstadoSierra.DISPONIBLE,
                "activo": True,
                "fecha_registro": format_date(request.fecha_registro or today_local()),
            })
        except StoreError:
            # UNIQUE de la tabla: otra request registró el mismo código
            if self.sierra_repo.get_by_codigo(codigo) is not None:
                raise CodigoBarrasDuplicadoError(codigo)
            raise

        logger.info(f"Sierra {sierra.id} registrada con código {codigo}")
        return sierra

    # ==================== DESPACHO ====================

    def mark_dispatched(self, afilado_id: int, fecha_salida: date) -> Afilado:
        """
        Cierra un afilado abierto y deja la sierra DISPONIBLE.

        Raises:
            AfiladoNoEncontradoError: el afilado no existe
            AfiladoNoAbiertoError: ya tenía fecha_salida
            TransicionInvalidaError: la sierra no admite despacho (ej. dada de baja)
            ModificacionConcurrenteError: otra request cerró el afilado primero
            SierraInactivaError: la sierra fue dada de baja durante el despacho
        """
        afilado = self.afilado_repo.get(afilado_id)
        if afilado is None:
            raise AfiladoNoEncontradoError([afilado_id])
        if not afilado.abierto:
            raise AfiladoNoAbiertoError(afilado_id, afilado.estado)

        sierra = self.get(afilado.sierra_id)
        nuevo_estado = transicionar(
            sierra.id, derivar_estado(sierra, afilado), "despachar"
        )

        cerrado = self.afilado_repo.update_if_open(afilado_id, {
            "fecha_salida": format_date(fecha_salida),
            "estado": EstadoAfilado.ENTREGADO,
        })
        if cerrado is None:
            raise ModificacionConcurrenteError("afilados", afilado_id, "fecha_salida IS NULL")

        self._actualizar_sierra_o_compensar(
            sierra.id,
            {"estado_id": nuevo_estado},
            compensar=lambda: self.afilado_repo.update_if_closed(afilado_id, {
                "fecha_salida": None,
                "estado": afilado.estado,
            })
        )
        logger.info(f"Afilado {afilado_id} despachado ({fecha_salida}); sierra {sierra.id} disponible")
        return cerrado

    def revertir_despacho(
        self,
        afilado_id: int,
        estado_anterior: Optional[str] = None,
        estado_id_anterior: Optional[EstadoSierra] = None
    ) -> Afilado:
        """
        Reabre un afilado despachado con el estado que tenía antes de la salida.

        Sin estado registrado el afilado vuelve como COMPLETADO. La sierra
        vuelve a estado_id_anterior o, si no se registró, a EN_PROCESO_AFILADO
        para un afilado PENDIENTE y a LISTA_PARA_RETIRO en otro caso.

        Idempotente: si el afilado ya está abierto no hace nada.

        Raises:
            TransicionInvalidaError: la sierra inició otro ciclo o fue dada de baja;
                reabrir rompería el invariante de un solo afilado abierto
        """
        afilado = self.afilado_repo.get(afilado_id)
        if afilado is None:
            raise AfiladoNoEncontradoError([afilado_id])
        if afilado.abierto:
            return afilado

        estado_afilado = estado_anterior or EstadoAfilado.COMPLETADO.value
        destino = estado_id_anterior
        if destino is None:
            destino = (
                EstadoSierra.EN_PROCESO_AFILADO
                if normalizar_estado(estado_afilado) == EstadoAfilado.PENDIENTE
                else EstadoSierra.LISTA_PARA_RETIRO
            )

        sierra = self.get(afilado.sierra_id)
        estado, _ = self.estado_actual(sierra)
        nuevo_estado = transicionar(sierra.id, estado, "reabrir", destino=destino)

        reabierto = self.afilado_repo.update_if_closed(afilado_id, {
            "fecha_salida": None,
            "estado": estado_afilado,
        })
        if reabierto is None:
            return self.afilado_repo.get(afilado_id) or afilado

        self._actualizar_sierra_o_compensar(
            sierra.id,
            {"estado_id": nuevo_estado},
            compensar=lambda: self.afilado_repo.update_if_open(afilado_id, {
                "fecha_salida": format_date(afilado.fecha_salida),
                "estado": afilado.estado,
            })
        )
        logger.info(
            f"Despacho del afilado {afilado_id} revertido ({estado_afilado}); "
            f"sierra {sierra.id} en {EstadoSierra(nuevo_estado).name}"
        )
        return reabierto

    # ==================== BAJA ====================

    def aplicar_baja(
        self,
        sierra_id: int,
        fecha_baja: date,
        afilado_esperado_id: Optional[int] = None,
        verificar_afilado: bool = False
    ) -> tuple[Sierra, Optional[Afilado]]:
        """
        Da de baja una sierra (activo = false, estado FUERA_DE_SERVICIO).

        Con política FORCE_CLOSE el afilado abierto se cierra con
        fecha_salida = fecha_baja y estado CERRADO_POR_BAJA.

        Args:
            afilado_esperado_id: afilado abierto registrado al validar el lote
            verificar_afilado: si True y el afilado abierto actual difiere de
                afilado_esperado_id, la sierra cambió entre validación y mutación

        Returns:
            (sierra actualizada, afilado cerrado por la baja o None)

        Raises:
            TransicionInvalidaError: ya está fuera de servicio, o tiene afilado
                abierto con política REJECT
        """
        sierra = self.get(sierra_id)
        estado, afilado = self.estado_actual(sierra)
        abierto_id = afilado.id if afilado else None
        if verificar_afilado and abierto_id != afilado_esperado_id:
            raise ModificacionConcurrenteError(
                "sierras", sierra_id, f"afilado abierto = {afilado_esperado_id}"
            )

        transicionar(sierra_id, estado, "dar_de_baja", policy=self.decommission_policy)

        cerrado: Optional[Afilado] = None
        if afilado is not None:
            cerrado = self.afilado_repo.update_if_open(afilado.id, {
                "fecha_salida": format_date(fecha_baja),
                "estado": EstadoAfilado.CERRADO_POR_BAJA,
            })
            if cerrado is None:
                raise ModificacionConcurrenteError("afilados", afilado.id, "fecha_salida IS NULL")

        def reabrir_cerrado():
            if afilado is not None:
                self.afilado_repo.update_if_closed(afilado.id, {
                    "fecha_salida": None,
                    "estado": afilado.estado,
                })

        actualizada = self._actualizar_sierra_o_compensar(
            sierra_id,
            {"activo": False, "estado_id": EstadoSierra.FUERA_DE_SERVICIO},
            compensar=reabrir_cerrado
        )
        logger.info(
            f"Sierra {sierra_id} dada de baja"
            + (f"; afilado {cerrado.id} cerrado por baja" if cerrado else "")
        )
        return actualizada, cerrado

    def revertir_baja(
        self,
        sierra_id: int,
        activo_anterior: bool,
        estado_id_anterior: EstadoSierra,
        afilado_cerrado_id: Optional[int] = None
    ) -> Sierra:
        """
        Restaura una sierra al estado registrado antes de la baja.

        Reabre el afilado cerrado por la baja (si hubo) antes de reactivar
        la sierra. Idempotente: una sierra ya activa se deja como está.
        """
        sierra = self.get(sierra_id)
        if sierra.activo or not activo_anterior:
            return sierra

        destino = EstadoSierra(estado_id_anterior)
        afilado = self.afilado_repo.get(afilado_cerrado_id) if afilado_cerrado_id else None
        reabrir = afilado is not None and afilado.estado_conocido == EstadoAfilado.CERRADO_POR_BAJA
        if not reabrir or destino == EstadoSierra.FUERA_DE_SERVICIO:
            # Sin ciclo que reabrir la sierra solo puede volver a DISPONIBLE
            destino = EstadoSierra.DISPONIBLE

        transicionar(sierra_id, EstadoSierra.FUERA_DE_SERVICIO, "restaurar", destino=destino)

        if reabrir:
            reabierto = self.afilado_repo.update_if_closed(afilado.id, {
                "fecha_salida": None,
                "estado": (
                    EstadoAfilado.COMPLETADO
                    if destino == EstadoSierra.LISTA_PARA_RETIRO
                    else EstadoAfilado.PENDIENTE
                ),
            })
            if reabierto is None:
                destino = EstadoSierra.DISPONIBLE

        try:
            restaurada = self.sierra_repo.update(
                sierra_id,
                {"activo": True, "estado_id": destino},
                [eq("activo", False)]
            )
        except StoreError:
            if reabrir:
                self._compensar(lambda: self._recerrar(afilado), sierra_id)
            raise

        if restaurada is None:
            # Otra reversión la reactivó primero
            if reabrir:
                self._compensar(lambda: self._recerrar(afilado), sierra_id)
            return self.get(sierra_id)

        logger.info(f"Sierra {sierra_id} restaurada a {destino.name}")
        return restaurada

    def dar_de_baja(self, sierra_id: int, fecha_baja: Optional[date] = None) -> Sierra:
        """Baja individual (sin lote, no reversible por lote)."""
        sierra, _ = self.aplicar_baja(sierra_id, fecha_baja or today_local())
        return sierra

    def _recerrar(self, afilado: Afilado) -> None:
        self.afilado_repo.update_if_open(afilado.id, {
            "fecha_salida": format_date(afilado.fecha_salida),
            "estado": afilado.estado,
        })

    # ==================== HELPERS ====================

    def _actualizar_sierra_o_compensar(self, sierra_id: int, patch: dict, compensar) -> Sierra:
        """
        Update de la sierra condicionado a activo = true.

        Si la sierra ya no está activa (o el store falla), ejecuta
        `compensar` para deshacer la mutación previa del afilado.
        """
        try:
            actualizada = self.sierra_repo.update(sierra_id, patch, SOLO_ACTIVAS)
        except StoreError:
            self._compensar(compensar, sierra_id)
            raise

        if actualizada is None:
            self._compensar(compensar, sierra_id)
            raise SierraInactivaError(sierra_id)
        return actualizada

    @staticmethod
    def _compensar(compensar, sierra_id: int) -> None:
        try:
            compensar()
        except StoreError as e:
            logger.error(
                f"Compensación fallida para sierra {sierra_id}; requiere reconciliación manual: {e.message}"
            )
