"""
Dependency Injection para FastAPI.

Centraliza la creación de dependencias (store, repositorios, services)
usando Depends().

Estrategia:
- Singletons (se eligen una sola vez por proceso, desde config):
  - RowStore: PostgrestRowStore o InMemoryRowStore (STORE_BACKEND)
  - ClaimRegistry: NoopClaimRegistry o RedisClaimRegistry (BATCH_CLAIMS_BACKEND)
  - AfiladoQueryStrategy: original o acotada por empresa (AFILADO_QUERY_MODE)
  - DecommissionPolicy: reject o force_close (DECOMMISSION_POLICY)
- Nuevas instancias por request: repositorios y services

Testability:
- Sobreescribir factories con app.dependency_overrides
- reset_singletons() entre tests

Usage en routers:
    from sierra_backend.core.dependency import get_salida_masiva_service

    @router.post("/salidas-masivas")
    async def crear(request: SalidaMasivaCreateRequest,
                    service: SalidaMasivaService = Depends(get_salida_masiva_service)):
        return service.create_salida_masiva(request)
"""

from typing import Optional

import redis
from fastapi import Depends

from sierra_backend.config import config
from sierra_backend.models.enums import DecommissionPolicy
from sierra_backend.repositories.afilado_repository import AfiladoRepository
from sierra_backend.repositories.batch_repository import (
    BajaMasivaRepository,
    SalidaMasivaRepository,
)
from sierra_backend.repositories.memory_store import InMemoryRowStore
from sierra_backend.repositories.postgrest_store import PostgrestRowStore
from sierra_backend.repositories.row_store import RowStore
from sierra_backend.repositories.sierra_repository import SierraRepository
from sierra_backend.services.afilado_query_strategy import (
    AfiladoQueryStrategy,
    build_query_strategy,
)
from sierra_backend.services.afilado_service import AfiladoService
from sierra_backend.services.baja_masiva_service import BajaMasivaService
from sierra_backend.services.claim_service import (
    ClaimRegistry,
    NoopClaimRegistry,
    RedisClaimRegistry,
)
from sierra_backend.services.salida_masiva_service import SalidaMasivaService
from sierra_backend.services.sierra_service import SierraService


# ============================================================================
# SINGLETONS - Instancias compartidas por toda la aplicación
# ============================================================================

_store_singleton: Optional[RowStore] = None
_claims_singleton: Optional[ClaimRegistry] = None
_query_strategy_singleton: Optional[AfiladoQueryStrategy] = None


def get_row_store() -> RowStore:
    """
    Factory para el RowStore (singleton, lazy).

    STORE_BACKEND=memory usa un store en proceso (desarrollo local);
    cualquier otro valor conecta a PostgREST con SUPABASE_URL / SUPABASE_KEY.
    """
    global _store_singleton

    if _store_singleton is None:
        if config.STORE_BACKEND == "memory":
            _store_singleton = InMemoryRowStore(unique={"sierras": ["codigo_barras"]})
        else:
            _store_singleton = PostgrestRowStore(
                base_url=config.SUPABASE_URL,
                api_key=config.SUPABASE_KEY,
                timeout=config.STORE_TIMEOUT_SECONDS
            )

    return _store_singleton


def get_claim_registry() -> ClaimRegistry:
    """Factory para ClaimRegistry (singleton)."""
    global _claims_singleton

    if _claims_singleton is None:
        if config.BATCH_CLAIMS_BACKEND == "redis":
            client = redis.Redis.from_url(config.REDIS_URL, decode_responses=True)
            _claims_singleton = RedisClaimRegistry(client, ttl_seconds=config.BATCH_CLAIM_TTL_SECONDS)
        else:
            _claims_singleton = NoopClaimRegistry()

    return _claims_singleton


def get_query_strategy() -> AfiladoQueryStrategy:
    """Factory para la estrategia de listado de afilados (singleton)."""
    global _query_strategy_singleton

    if _query_strategy_singleton is None:
        _query_strategy_singleton = build_query_strategy(config.AFILADO_QUERY_MODE)

    return _query_strategy_singleton


def get_decommission_policy() -> DecommissionPolicy:
    return DecommissionPolicy(config.DECOMMISSION_POLICY)


def reset_singletons() -> None:
    """Descarta los singletons (shutdown, tests y recarga de configuración)."""
    global _store_singleton, _claims_singleton, _query_strategy_singleton
    if isinstance(_store_singleton, PostgrestRowStore):
        _store_singleton.close()
    _store_singleton = None
    _claims_singleton = None
    _query_strategy_singleton = None


# ============================================================================
# FACTORY FUNCTIONS - Repositorios (nueva instancia por request)
# ============================================================================


def get_sierra_repository(store: RowStore = Depends(get_row_store)) -> SierraRepository:
    return SierraRepository(store)


def get_afilado_repository(store: RowStore = Depends(get_row_store)) -> AfiladoRepository:
    return AfiladoRepository(store)


def get_salida_masiva_repository(store: RowStore = Depends(get_row_store)) -> SalidaMasivaRepository:
    return SalidaMasivaRepository(store)


def get_baja_masiva_repository(store: RowStore = Depends(get_row_store)) -> BajaMasivaRepository:
    return BajaMasivaRepository(store)


# ============================================================================
# FACTORY FUNCTIONS - Services (nueva instancia por request)
# ============================================================================


def get_sierra_service(
    sierra_repo: SierraRepository = Depends(get_sierra_repository),
    afilado_repo: AfiladoRepository = Depends(get_afilado_repository),
    policy: DecommissionPolicy = Depends(get_decommission_policy)
) -> SierraService:
    """
    Factory para SierraService.

    Recibe la política de baja elegida al inicio; todos los flujos de baja
    (individual y masiva) la comparten.
    """
    return SierraService(
        sierra_repository=sierra_repo,
        afilado_repository=afilado_repo,
        decommission_policy=policy
    )


def get_afilado_service(
    sierra_service: SierraService = Depends(get_sierra_service),
    afilado_repo: AfiladoRepository = Depends(get_afilado_repository),
    sierra_repo: SierraRepository = Depends(get_sierra_repository),
    salida_repo: SalidaMasivaRepository = Depends(get_salida_masiva_repository),
    baja_repo: BajaMasivaRepository = Depends(get_baja_masiva_repository),
    query_strategy: AfiladoQueryStrategy = Depends(get_query_strategy)
) -> AfiladoService:
    return AfiladoService(
        sierra_service=sierra_service,
        afilado_repository=afilado_repo,
        sierra_repository=sierra_repo,
        salida_repository=salida_repo,
        baja_repository=baja_repo,
        query_strategy=query_strategy
    )


def get_salida_masiva_service(
    sierra_service: SierraService = Depends(get_sierra_service),
    salida_repo: SalidaMasivaRepository = Depends(get_salida_masiva_repository),
    afilado_repo: AfiladoRepository = Depends(get_afilado_repository),
    sierra_repo: SierraRepository = Depends(get_sierra_repository),
    claims: ClaimRegistry = Depends(get_claim_registry)
) -> SalidaMasivaService:
    return SalidaMasivaService(
        sierra_service=sierra_service,
        salida_repository=salida_repo,
        afilado_repository=afilado_repo,
        sierra_repository=sierra_repo,
        claims=claims,
        max_batch_size=config.MAX_BATCH_SIZE
    )


def get_baja_masiva_service(
    sierra_service: SierraService = Depends(get_sierra_service),
    baja_repo: BajaMasivaRepository = Depends(get_baja_masiva_repository),
    afilado_repo: AfiladoRepository = Depends(get_afilado_repository),
    sierra_repo: SierraRepository = Depends(get_sierra_repository),
    claims: ClaimRegistry = Depends(get_claim_registry)
) -> BajaMasivaService:
    return BajaMasivaService(
        sierra_service=sierra_service,
        baja_repository=baja_repo,
        afilado_repository=afilado_repo,
        sierra_repository=sierra_repo,
        claims=claims,
        max_batch_size=config.MAX_BATCH_SIZE
    )
