"""
Máquina de estados del ciclo de vida de una sierra.

Estados (valor = estado_id del catálogo estados_sierra):
- disponible (1, inicial): activa, sin afilado abierto
- en_proceso_afilado (2): activa, afilado abierto en curso
- lista_para_retiro (3): activa, afilado abierto completado, sin salida
- fuera_de_servicio (4): dada de baja

La máquina solo valida transiciones; los servicios persisten el nuevo
estado_id en la misma secuencia de escrituras que la mutación del afilado.
Se hidrata en cada operación a partir del estado derivado de la sierra.
"""
from typing import Optional

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from sierra_backend.exceptions import TransicionInvalidaError
from sierra_backend.models.afilado import Afilado
from sierra_backend.models.enums import DecommissionPolicy, EstadoAfilado, EstadoSierra
from sierra_backend.models.sierra import Sierra


class SierraStateMachine(StateMachine):
    """
    Transiciones:
    - iniciar_afilado: disponible → en_proceso_afilado
    - completar_afilado: en_proceso_afilado → lista_para_retiro
    - despachar: en_proceso_afilado/lista_para_retiro → disponible
    - cancelar_afilado: en_proceso_afilado/lista_para_retiro → disponible
    - reabrir: disponible → en_proceso_afilado/lista_para_retiro según el estado
      previo al despacho (reversión de una salida; default lista_para_retiro)
    - dar_de_baja: disponible → fuera_de_servicio; desde un afilado abierto
      solo con política FORCE_CLOSE
    - restaurar: fuera_de_servicio → estado previo registrado (reversión de baja)
    """

    disponible = State("Disponible", value=EstadoSierra.DISPONIBLE.value, initial=True)
    en_proceso_afilado = State("En proceso de afilado", value=EstadoSierra.EN_PROCESO_AFILADO.value)
    lista_para_retiro = State("Lista para retiro", value=EstadoSierra.LISTA_PARA_RETIRO.value)
    fuera_de_servicio = State("Fuera de servicio", value=EstadoSierra.FUERA_DE_SERVICIO.value)

    iniciar_afilado = disponible.to(en_proceso_afilado)
    completar_afilado = en_proceso_afilado.to(lista_para_retiro)
    despachar = (
        en_proceso_afilado.to(disponible) |
        lista_para_retiro.to(disponible)
    )
    cancelar_afilado = (
        en_proceso_afilado.to(disponible) |
        lista_para_retiro.to(disponible)
    )
    reabrir = (
        disponible.to(lista_para_retiro, cond="es_destino_reapertura") |
        disponible.to(en_proceso_afilado, cond="es_destino_reapertura")
    )
    dar_de_baja = (
        disponible.to(fuera_de_servicio) |
        en_proceso_afilado.to(fuera_de_servicio, cond="forzar_cierre") |
        lista_para_retiro.to(fuera_de_servicio, cond="forzar_cierre")
    )
    restaurar = (
        fuera_de_servicio.to(disponible, cond="es_destino") |
        fuera_de_servicio.to(en_proceso_afilado, cond="es_destino") |
        fuera_de_servicio.to(lista_para_retiro, cond="es_destino")
    )

    def __init__(
        self,
        sierra_id: int,
        estado: EstadoSierra = EstadoSierra.DISPONIBLE,
        policy: DecommissionPolicy = DecommissionPolicy.REJECT
    ):
        """
        Args:
            sierra_id: sierra sobre la que opera la máquina
            estado: estado derivado actual (hidratación)
            policy: política de baja con afilado abierto
        """
        self.sierra_id = sierra_id
        self.policy = policy
        super().__init__(start_value=EstadoSierra(estado).value)

    def forzar_cierre(self) -> bool:
        return self.policy == DecommissionPolicy.FORCE_CLOSE

    def es_destino(self, target, destino: Optional[int] = None) -> bool:
        destino = EstadoSierra.DISPONIBLE if destino is None else destino
        return target.value == int(destino)

    def es_destino_reapertura(self, target, destino: Optional[int] = None) -> bool:
        destino = EstadoSierra.LISTA_PARA_RETIRO if destino is None else destino
        return target.value == int(destino)

    @property
    def estado(self) -> EstadoSierra:
        return EstadoSierra(self.current_state.value)


def derivar_estado(sierra: Sierra, afilado_abierto: Optional[Afilado]) -> EstadoSierra:
    """
    Estado de la sierra a partir de (activo, afilado abierto, estado_id).

    estado_id se usa solo para distinguir EN_PROCESO de LISTA_PARA_RETIRO
    cuando el afilado abierto no registra la completación.
    """
    if not sierra.activo:
        return EstadoSierra.FUERA_DE_SERVICIO
    if afilado_abierto is None:
        return EstadoSierra.DISPONIBLE
    if (
        afilado_abierto.estado_conocido == EstadoAfilado.COMPLETADO
        or sierra.estado_id == EstadoSierra.LISTA_PARA_RETIRO
    ):
        return EstadoSierra.LISTA_PARA_RETIRO
    return EstadoSierra.EN_PROCESO_AFILADO


def transicionar(
    sierra_id: int,
    estado: EstadoSierra,
    evento: str,
    policy: DecommissionPolicy = DecommissionPolicy.REJECT,
    **kwargs
) -> EstadoSierra:
    """
    Ejecuta un evento sobre una máquina hidratada y retorna el estado destino.

    Raises:
        TransicionInvalidaError: si el evento no es válido desde `estado`
    """
    machine = SierraStateMachine(sierra_id, estado=estado, policy=policy)
    try:
        machine.send(evento, **kwargs)
    except TransitionNotAllowed:
        raise TransicionInvalidaError(sierra_id, evento, EstadoSierra(estado).name)
    return machine.estado
