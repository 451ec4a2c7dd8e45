"""
Jerarquía de excepciones custom para el backend de afilado de sierras.

Todas las excepciones del sistema heredan de SierraBackendException.
Las cinco clases de taxonomía (NotFoundError, ValidationError, ConflictError,
PartialFailureError, StoreError) determinan el HTTP status en main.py; las
subclases concretas solo fijan mensaje, error_code y data.
"""
from typing import Optional, Any


class SierraBackendException(Exception):
    """
    Excepción base para todo el sistema.

    Todas las excepciones custom heredan de esta clase.
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        data: Optional[dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.data = data or {}
        super().__init__(self.message)


# ==================== TAXONOMÍA ====================

class NotFoundError(SierraBackendException):
    """Sierra, afilado o lote referenciado no existe (404)."""


class ValidationError(SierraBackendException):
    """Entrada o precondición inválida; nada fue modificado (400)."""


class ConflictError(SierraBackendException):
    """Transición de estado rechazada; nada fue modificado (409)."""


class PartialFailureError(SierraBackendException):
    """
    Lote aplicado parcialmente (500).

    Se lanza DESPUÉS de que algunas mutaciones ya fueron aplicadas.
    No hay rollback automático: data trae los ids exitosos y fallidos
    para reconciliación manual o reintento del subconjunto fallido.
    """

    def __init__(
        self,
        message: str,
        batch_id: Optional[int],
        succeeded: list[int],
        failed: list[int],
        error_code: str = "FALLA_PARCIAL"
    ):
        self.batch_id = batch_id
        self.succeeded = succeeded
        self.failed = failed
        super().__init__(
            message=message,
            error_code=error_code,
            data={
                "batch_id": batch_id,
                "succeeded": succeeded,
                "failed": failed
            }
        )


class StoreError(SierraBackendException):
    """Falla del row-store subyacente (503). No se reintenta."""

    def __init__(self, message: str, details: Optional[str] = None, table: Optional[str] = None):
        full_message = f"Error en el almacenamiento: {message}"
        if details:
            full_message += f" | Detalles: {details}"

        data: dict[str, Any] = {}
        if table:
            data["table"] = table
        if details:
            data["details"] = details

        super().__init__(
            message=full_message,
            error_code="STORE_ERROR",
            data=data
        )


# ==================== EXCEPCIONES 404 (NOT FOUND) ====================

class SierraNoEncontradaError(NotFoundError):
    """Sierra no existe (por id o por código de barras)."""

    def __init__(self, sierra_id: Optional[int] = None, codigo_barras: Optional[str] = None):
        referencia = f"código '{codigo_barras}'" if codigo_barras else f"id {sierra_id}"
        super().__init__(
            message=f"Sierra con {referencia} no encontrada",
            error_code="SIERRA_NO_ENCONTRADA",
            data={"sierra_id": sierra_id, "codigo_barras": codigo_barras}
        )


class SierrasNoEncontradasError(NotFoundError):
    """Uno o más ids de un lote no corresponden a sierras existentes."""

    def __init__(self, sierra_ids: list[int]):
        super().__init__(
            message=f"Sierras no encontradas: {sierra_ids}",
            error_code="SIERRA_NO_ENCONTRADA",
            data={"sierra_ids": sierra_ids}
        )


class AfiladoNoEncontradoError(NotFoundError):
    """Uno o más afilados no existen."""

    def __init__(self, afilado_ids: list[int]):
        super().__init__(
            message=f"Afilados no encontrados: {afilado_ids}",
            error_code="AFILADO_NO_ENCONTRADO",
            data={"afilado_ids": afilado_ids}
        )


class TipoAfiladoNoEncontradoError(NotFoundError):
    """El tipo de afilado referenciado no existe."""

    def __init__(self, tipo_afilado_id: int):
        super().__init__(
            message=f"Tipo de afilado {tipo_afilado_id} no encontrado",
            error_code="TIPO_AFILADO_NO_ENCONTRADO",
            data={"tipo_afilado_id": tipo_afilado_id}
        )


class SalidaMasivaNoEncontradaError(NotFoundError):
    """Salida masiva no existe (o ya fue revertida)."""

    def __init__(self, salida_id: int):
        super().__init__(
            message=f"Salida masiva {salida_id} no encontrada",
            error_code="SALIDA_MASIVA_NO_ENCONTRADA",
            data={"salida_id": salida_id}
        )


class BajaMasivaNoEncontradaError(NotFoundError):
    """Baja masiva no existe (o ya fue revertida)."""

    def __init__(self, baja_id: int):
        super().__init__(
            message=f"Baja masiva {baja_id} no encontrada",
            error_code="BAJA_MASIVA_NO_ENCONTRADA",
            data={"baja_id": baja_id}
        )


# ==================== EXCEPCIONES 400 (VALIDACIÓN) ====================

class LoteInvalidoError(ValidationError):
    """
    Uno o más items de un lote no cumplen las precondiciones.

    El lote completo se rechaza antes de escribir nada.
    """

    def __init__(self, operacion: str, invalid_ids: list[int], motivos: dict[int, str]):
        super().__init__(
            message=f"Lote de {operacion} rechazado: items inválidos {invalid_ids}",
            error_code="LOTE_INVALIDO",
            data={
                "operacion": operacion,
                "invalid_ids": invalid_ids,
                "motivos": {str(k): v for k, v in motivos.items()}
            }
        )


class LoteDemasiadoGrandeError(ValidationError):
    """El lote excede MAX_BATCH_SIZE."""

    def __init__(self, cantidad: int, maximo: int):
        super().__init__(
            message=f"El lote tiene {cantidad} items; máximo permitido {maximo}",
            error_code="LOTE_DEMASIADO_GRANDE",
            data={"cantidad": cantidad, "maximo": maximo}
        )


class EmpresaRequeridaError(ValidationError):
    """El listado acotado por empresa requiere empresa_id."""

    def __init__(self):
        super().__init__(
            message="Debe indicar empresa_id para listar afilados",
            error_code="EMPRESA_REQUERIDA",
            data={}
        )


class RangoFechasInvalidoError(ValidationError):
    """fecha_desde posterior a fecha_hasta."""

    def __init__(self, fecha_desde: str, fecha_hasta: str):
        super().__init__(
            message=f"Rango de fechas inválido: {fecha_desde} > {fecha_hasta}",
            error_code="RANGO_FECHAS_INVALIDO",
            data={"fecha_desde": fecha_desde, "fecha_hasta": fecha_hasta}
        )


# ==================== EXCEPCIONES 409 (CONFLICTO DE ESTADO) ====================

class AfiladoAbiertoExistenteError(ConflictError):
    """La sierra ya tiene un ciclo de afilado abierto (fecha_salida null)."""

    def __init__(self, sierra_id: int, afilado_id: Optional[int] = None):
        super().__init__(
            message=f"La sierra {sierra_id} ya tiene un afilado abierto",
            error_code="AFILADO_ABIERTO_EXISTENTE",
            data={"sierra_id": sierra_id, "afilado_id": afilado_id}
        )


class SierraInactivaError(ConflictError):
    """La sierra está dada de baja (activo = false)."""

    def __init__(self, sierra_id: int):
        super().__init__(
            message=f"La sierra {sierra_id} está fuera de servicio",
            error_code="SIERRA_INACTIVA",
            data={"sierra_id": sierra_id}
        )


class CodigoBarrasDuplicadoError(ConflictError):
    """Ya existe una sierra con el mismo código de barras."""

    def __init__(self, codigo_barras: str):
        super().__init__(
            message=f"Ya existe una sierra con código '{codigo_barras}'",
            error_code="CODIGO_BARRAS_DUPLICADO",
            data={"codigo_barras": codigo_barras}
        )


class TransicionInvalidaError(ConflictError):
    """La máquina de estados de la sierra rechazó la transición."""

    def __init__(self, sierra_id: int, evento: str, estado_actual: str):
        super().__init__(
            message=(
                f"No se puede ejecutar '{evento}' sobre la sierra {sierra_id} "
                f"en estado {estado_actual}"
            ),
            error_code="TRANSICION_INVALIDA",
            data={"sierra_id": sierra_id, "evento": evento, "estado_actual": estado_actual}
        )


class SierrasConAfiladoAbiertoError(ConflictError):
    """Baja rechazada por política: sierras con ciclo de afilado abierto."""

    def __init__(self, sierra_ids: list[int]):
        super().__init__(
            message=f"Sierras con afilado abierto no pueden darse de baja: {sierra_ids}",
            error_code="SIERRAS_CON_AFILADO_ABIERTO",
            data={"sierra_ids": sierra_ids}
        )


class AfiladoEnLoteError(ConflictError):
    """El afilado está referenciado por un lote vigente (salida o baja masiva)."""

    def __init__(self, afilado_id: int, lote: str, lote_id: int):
        super().__init__(
            message=(
                f"El afilado {afilado_id} pertenece a la {lote} {lote_id}; "
                "elimine el lote primero"
            ),
            error_code="AFILADO_EN_LOTE",
            data={"afilado_id": afilado_id, "lote": lote, "lote_id": lote_id}
        )


class LoteEnCursoError(ConflictError):
    """Items reclamados por otro lote en curso (claims Redis)."""

    def __init__(self, operacion: str, ids: list[int]):
        super().__init__(
            message=f"Items {ids} están siendo procesados por otro lote de {operacion}",
            error_code="LOTE_EN_CURSO",
            data={"operacion": operacion, "ids": ids}
        )


class AfiladoNoAbiertoError(ConflictError):
    """El afilado ya tiene fecha_salida (ciclo cerrado)."""

    def __init__(self, afilado_id: int, estado: str):
        super().__init__(
            message=f"El afilado {afilado_id} ya está cerrado (estado {estado})",
            error_code="AFILADO_NO_ABIERTO",
            data={"afilado_id": afilado_id, "estado": estado}
        )


class ModificacionConcurrenteError(ConflictError):
    """
    Un update condicional no encontró la fila en el estado esperado.

    Otra request modificó el registro entre la validación y la escritura.
    """

    def __init__(self, tabla: str, registro_id: int, condicion: str):
        super().__init__(
            message=(
                f"El registro {registro_id} de {tabla} fue modificado por otra operación "
                f"(se esperaba {condicion})"
            ),
            error_code="MODIFICACION_CONCURRENTE",
            data={"tabla": tabla, "registro_id": registro_id, "condicion": condicion}
        )
