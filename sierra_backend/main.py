"""
Sierras API - Entry Point.

Backend del ciclo de vida de sierras: registro, afilado, salida (individual
y masiva) y baja (individual y masiva), con reversión de lotes.

Configuración:
- FastAPI app con OpenAPI docs automática
- CORS para frontend
- Exception handler único para SierraBackendException (taxonomía → HTTP status)
- Errores de forma del request → 400 VALIDACION (mismo cuerpo ErrorResponse)
- Logging comprehensivo

Endpoints:
- GET  /                       - Root endpoint (info API)
- GET  /api/docs               - OpenAPI documentation (Swagger UI)
- GET  /api/health             - Health check
- *    /api/sierras/*          - Registro y consulta de sierras
- *    /api/afilados/*         - Ciclo de afilado
- *    /api/salidas-masivas/*  - Despacho en lote
- *    /api/bajas-masivas/*    - Baja en lote
- GET  /api/lotes/resumen      - Lotes recientes
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from sierra_backend.config import config
from sierra_backend.core import dependency
from sierra_backend.exceptions import (
    ConflictError,
    NotFoundError,
    PartialFailureError,
    SierraBackendException,
    StoreError,
    ValidationError,
)
from sierra_backend.models.error import ErrorResponse
from sierra_backend.utils.logger import setup_logger

from sierra_backend.routers import (
    afilados,
    bajas_masivas,
    health,
    lotes,
    salidas_masivas,
    sierras,
)


# ============================================================================
# INICIALIZACIÓN FASTAPI
# ============================================================================

app = FastAPI(
    title="Sierras API",
    description="""
    API del ciclo de vida de sierras de corte.

    ## Ciclo de una sierra

    1. **DISPONIBLE** → iniciar afilado → **EN_PROCESO_AFILADO**
    2. **EN_PROCESO_AFILADO** → completar → **LISTA_PARA_RETIRO**
    3. **LISTA_PARA_RETIRO** → salida (individual o masiva) → **DISPONIBLE**
    4. Cualquier estado activo → baja → **FUERA_DE_SERVICIO**

    Una sierra tiene a lo sumo un afilado abierto (sin fecha de salida).

    ## Operaciones en lote

    - **Salida masiva**: despacha varios afilados de una sucursal
    - **Baja masiva**: da de baja varias sierras registrando su estado previo
    - Eliminar un lote revierte sus efectos item por item
    - Un lote aplicado parcialmente responde 500 con los ids exitosos y fallidos
    """,
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    license_info={
        "name": "Proprietary"
    }
)


# ============================================================================
# MIDDLEWARE - CORS
# ============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"]
)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

# Orden importa: se evalúa el primer isinstance que coincide
STATUS_BY_TAXONOMY = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
    (PartialFailureError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (StoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(exc: SierraBackendException) -> int:
    """HTTP status de una excepción del dominio según su clase de taxonomía."""
    for exc_type, http_status in STATUS_BY_TAXONOMY:
        if isinstance(exc, exc_type):
            return http_status
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(SierraBackendException)
async def sierra_exception_handler(request: Request, exc: SierraBackendException):
    """
    Handler global para todas las excepciones del dominio.

    Mapeo de taxonomía → HTTP status:
        - NotFoundError → 404
        - ValidationError → 400
        - ConflictError → 409
        - PartialFailureError → 500 (data: batch_id, succeeded, failed)
        - StoreError → 503

    Logging según severidad:
        - 500+: ERROR
        - 409: WARNING
        - 400/404: INFO
    """
    http_status = status_for(exc)

    error_response = ErrorResponse(
        success=False,
        error=exc.error_code,
        message=exc.message,
        data=exc.data if exc.data else None
    )

    if http_status >= 500:
        logging.error(f"Server error [{exc.error_code}] {request.url.path}: {exc.message}")
    elif http_status == status.HTTP_409_CONFLICT:
        logging.warning(f"Conflict [{exc.error_code}] {request.url.path}: {exc.message}")
    else:
        logging.info(f"Client error [{exc.error_code}] {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=http_status,
        content=error_response.model_dump()
    )


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Body, path o query inválidos (ids duplicados, lista vacía, tipos).

    Responde 400 con ErrorResponse en vez del 422 por defecto de FastAPI.
    """
    errores = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": str(err.get("msg", ""))}
        for err in exc.errors()
    ]
    message = "; ".join(
        f"{'.'.join(e['loc'])}: {e['msg']}" for e in errores
    ) or "Request inválido"
    logging.info(f"Client error [VALIDACION] {request.url.path}: {message}")

    error_response = ErrorResponse(
        success=False,
        error="VALIDACION",
        message=message,
        data={"errors": errores}
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_response.model_dump()
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """
    Handler para excepciones no manejadas (fallback).

    En desarrollo (ENVIRONMENT=local) incluye el detalle del error en data.
    """
    logging.error(f"Unhandled exception: {str(exc)}", exc_info=True)

    error_response = ErrorResponse(
        success=False,
        error="INTERNAL_SERVER_ERROR",
        message="Error interno del servidor. Contacta al administrador.",
        data={"detail": str(exc)} if config.ENVIRONMENT == "local" else None
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response.model_dump()
    )


# ============================================================================
# STARTUP/SHUTDOWN EVENTS
# ============================================================================


@app.on_event("startup")
async def startup_event():
    """
    Configurar sistema al iniciar app.

    Las estrategias (query mode, política de baja, claims) se fijan aquí
    para todo el proceso.
    """
    setup_logger()
    config.validate()
    logging.info("✅ Sierras API iniciada correctamente")
    logging.info(f"Environment: {config.ENVIRONMENT}")
    logging.info(f"Store backend: {config.STORE_BACKEND}")
    logging.info(f"Afilado query mode: {config.AFILADO_QUERY_MODE}")
    logging.info(f"Decommission policy: {config.DECOMMISSION_POLICY}")
    logging.info(f"Batch claims: {config.BATCH_CLAIMS_BACKEND}")
    logging.info(f"CORS Origins: {config.ALLOWED_ORIGINS}")


@app.on_event("shutdown")
async def shutdown_event():
    """Cerrar el cliente HTTP del store y descartar singletons."""
    dependency.reset_singletons()
    logging.info("🔴 Sierras API shutting down...")


# ============================================================================
# ROUTERS
# ============================================================================

app.include_router(health.router, prefix="/api", tags=["Health"])
app.include_router(sierras.router, prefix="/api", tags=["Sierras"])
app.include_router(afilados.router, prefix="/api", tags=["Afilados"])
app.include_router(salidas_masivas.router, prefix="/api", tags=["Salidas Masivas"])
app.include_router(bajas_masivas.router, prefix="/api", tags=["Bajas Masivas"])
app.include_router(lotes.router, prefix="/api", tags=["Lotes"])


# ============================================================================
# ROOT ENDPOINT
# ============================================================================


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint - Información básica de la API."""
    return {
        "message": "Sierras API - Saw blade sharpening lifecycle",
        "version": "1.0.0",
        "docs": "/api/docs",
        "redoc": "/api/redoc",
        "health": "/api/health"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sierra_backend.main:app",
        host=config.API_HOST,
        port=config.API_PORT,
        reload=config.ENVIRONMENT == "local"
    )
