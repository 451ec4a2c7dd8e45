"""
Modelos compartidos por las operaciones en lote y su reversión.
"""
from pydantic import BaseModel, Field

from .salida_masiva import SalidaMasiva
from .baja_masiva import BajaMasiva


class ReversionResponse(BaseModel):
    """
    Resultado de revertir (eliminar) un lote completo.

    Solo se retorna cuando todos los items fueron revertidos y la cabecera
    eliminada; una reversión parcial se reporta como PartialFailureError.
    """
    success: bool = True
    batch_id: int
    revertidos: list[int] = Field(..., description="IDs de items restaurados")
    message: str


class ResumenLotesResponse(BaseModel):
    """Últimas salidas y bajas masivas (panel de resumen)."""
    salidas_recientes: list[SalidaMasiva]
    bajas_recientes: list[BajaMasiva]
