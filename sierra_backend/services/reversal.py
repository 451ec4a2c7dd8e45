"""
Protocolo compartido por las operaciones en lote.

Creación (create-batch-then-fan-out-mutate), por item:
1. Escribir la fila de detalle (antes de mutar, nunca después)
2. Aplicar la mutación del item
3. Si la mutación falla, borrar la fila de detalle recién escrita

Reversión, por fila de detalle:
1. Invertir la mutación registrada
2. Borrar la fila de detalle

Los items se procesan secuencialmente; un item fallido no detiene el
resto del lote y se reporta en ResultadoLote.failed. No hay reintentos.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence, TypeVar

from sierra_backend.exceptions import SierraBackendException, StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")
D = TypeVar("D")


@dataclass
class ResultadoLote:
    """IDs de items aplicados y fallidos, con el motivo de cada falla."""
    succeeded: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    motivos: dict[int, str] = field(default_factory=dict)

    def fallo(self, item_id: int, error: SierraBackendException) -> None:
        self.failed.append(item_id)
        self.motivos[item_id] = error.error_code


def aplicar_items(
    item_ids: Sequence[int],
    escribir_detalle: Callable[[int], D],
    mutar: Callable[[int, D], object],
    descartar_detalle: Callable[[D], object],
    etiqueta: str
) -> ResultadoLote:
    """
    Fan-out de la creación de un lote.

    Args:
        item_ids: ids en el orden del request
        escribir_detalle: inserta la fila de detalle del item
        mutar: aplica la mutación del item (recibe el detalle escrito)
        descartar_detalle: elimina el detalle de un item cuya mutación falló
        etiqueta: nombre del lote para logs (ej. 'salida masiva 12')
    """
    resultado = ResultadoLote()
    for item_id in item_ids:
        try:
            detalle = escribir_detalle(item_id)
        except SierraBackendException as e:
            logger.error(f"[{etiqueta}] item {item_id}: no se pudo escribir detalle: {e.message}")
            resultado.fallo(item_id, e)
            continue

        try:
            mutar(item_id, detalle)
        except SierraBackendException as e:
            logger.warning(f"[{etiqueta}] item {item_id} falló: {e.message}")
            resultado.fallo(item_id, e)
            try:
                descartar_detalle(detalle)
            except StoreError as cleanup_error:
                logger.error(
                    f"[{etiqueta}] detalle del item {item_id} no pudo eliminarse: "
                    f"{cleanup_error.message}"
                )
            continue

        resultado.succeeded.append(item_id)
    return resultado


def revertir_items(
    detalles: Sequence[T],
    item_id: Callable[[T], int],
    invertir: Callable[[T], object],
    borrar_detalle: Callable[[T], object],
    etiqueta: str
) -> ResultadoLote:
    """
    Fan-out de la reversión de un lote.

    Un detalle solo se borra si su inversión tuvo éxito; los detalles
    restantes permiten reintentar la reversión.
    """
    resultado = ResultadoLote()
    for detalle in detalles:
        key = item_id(detalle)
        try:
            invertir(detalle)
            borrar_detalle(detalle)
        except SierraBackendException as e:
            logger.warning(f"[{etiqueta}] item {key} no revertido: {e.message}")
            resultado.fallo(key, e)
            continue
        resultado.succeeded.append(key)
    return resultado
