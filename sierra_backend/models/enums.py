"""
Enumeraciones del sistema de afilado.

Define el catálogo de estados de sierra, los estados de un afilado y
las opciones de las estrategias configurables.
"""
from enum import Enum, IntEnum


class EstadoSierra(IntEnum):
    """
    Catálogo estados_sierra (estado_id persistido en sierras).

    DISPONIBLE: 1 - Activa, sin afilado abierto
    EN_PROCESO_AFILADO: 2 - Activa, afilado abierto en curso
    LISTA_PARA_RETIRO: 3 - Activa, afilado abierto completado, pendiente de salida
    FUERA_DE_SERVICIO: 4 - Dada de baja (activo = false)
    """
    DISPONIBLE = 1
    EN_PROCESO_AFILADO = 2
    LISTA_PARA_RETIRO = 3
    FUERA_DE_SERVICIO = 4

    @property
    def nombre(self) -> str:
        return _NOMBRES_ESTADO[self]


_NOMBRES_ESTADO = {
    EstadoSierra.DISPONIBLE: "Disponible",
    EstadoSierra.EN_PROCESO_AFILADO: "En proceso de afilado",
    EstadoSierra.LISTA_PARA_RETIRO: "Lista para retiro",
    EstadoSierra.FUERA_DE_SERVICIO: "Fuera de servicio",
}


class EstadoAfilado(str, Enum):
    """
    Valores canónicos de afilados.estado (columna de texto libre; ver
    Afilado.estado_conocido para filas con otras grafías).

    PENDIENTE: abierto, trabajo en curso
    COMPLETADO: abierto, afilado terminado, esperando retiro
    ENTREGADO: cerrado por salida (individual o masiva)
    CERRADO_POR_BAJA: cerrado al dar de baja la sierra (política force_close)
    """
    PENDIENTE = "PENDIENTE"
    COMPLETADO = "COMPLETADO"
    ENTREGADO = "ENTREGADO"
    CERRADO_POR_BAJA = "CERRADO_POR_BAJA"


class DecommissionPolicy(str, Enum):
    """Qué hacer al dar de baja una sierra con un afilado abierto."""
    REJECT = "reject"
    FORCE_CLOSE = "force_close"


class AfiladoQueryMode(str, Enum):
    """
    Estrategia de listado de afilados.

    ORIGINAL: listado global, sin acotar por empresa
    IMPROVED: listado acotado a la empresa del usuario vía sierra → sucursal
    """
    ORIGINAL = "original"
    IMPROVED = "improved"
