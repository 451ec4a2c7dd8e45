"""
Modelo Pydantic para respuestas de error.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Any


class ErrorResponse(BaseModel):
    """
    Response estándar para errores en la API.

    Utilizado por los exception handlers para retornar errores consistentes.
    """
    success: bool = Field(
        False,
        description="Siempre False para errores"
    )
    error: str = Field(
        ...,
        description="Código de error (ej: SIERRA_NO_ENCONTRADA, LOTE_INVALIDO)",
        examples=["SIERRA_NO_ENCONTRADA", "LOTE_INVALIDO", "AFILADO_ABIERTO_EXISTENTE"]
    )
    message: str = Field(
        ...,
        description="Mensaje de error legible para el usuario",
        examples=[
            "Sierra con código 'SRR-999' no encontrada",
            "La sierra 15 ya tiene un afilado abierto"
        ]
    )
    data: Optional[dict[str, Any]] = Field(
        None,
        description="Contexto adicional sobre el error (opcional)"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "success": False,
                    "error": "LOTE_INVALIDO",
                    "message": "Lote de salida masiva rechazado: items inválidos [102]",
                    "data": {
                        "operacion": "salida masiva",
                        "invalid_ids": [102],
                        "motivos": {"102": "afilado ya despachado"}
                    }
                },
                {
                    "success": False,
                    "error": "FALLA_PARCIAL",
                    "message": "Salida masiva 12 aplicada parcialmente: 1 de 3 items fallaron",
                    "data": {
                        "batch_id": 12,
                        "succeeded": [101, 103],
                        "failed": [102]
                    }
                },
                {
                    "success": False,
                    "error": "STORE_ERROR",
                    "message": "Error en el almacenamiento: timeout",
                    "data": None
                }
            ]
        }
    )
