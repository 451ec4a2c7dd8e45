"""
Claims por sierra para lotes concurrentes.

Cierra la ventana check-then-act entre la validación de un lote y sus
mutaciones: antes de validar, el lote reclama cada sierra que va a tocar.
Un segundo lote que incluya alguna de esas sierras falla con
LoteEnCursoError en vez de doble-reclamarla.

Implementaciones:
- NoopClaimRegistry: sin claims (BATCH_CLAIMS_BACKEND=none); solo protegen
  los updates condicionales del store.
- RedisClaimRegistry: SET NX EX por sierra, liberación con script Lua que
  verifica el token del dueño.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import ContextManager, Iterator, Sequence

import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)

from sierra_backend.exceptions import LoteEnCursoError, StoreError

logger = logging.getLogger(__name__)

# Libera el claim solo si sigue perteneciendo al token de este lote
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class ClaimRegistry(ABC):
    """Reserva temporal de sierras mientras un lote está en curso."""

    @abstractmethod
    def claim(self, operacion: str, sierra_ids: Sequence[int]) -> ContextManager[str]:
        """
        Reclama todas las sierras o ninguna.

        Yields:
            Token del lote.

        Raises:
            LoteEnCursoError: si alguna sierra ya está reclamada por otro lote
        """

    def ping(self) -> None:
        return None


class NoopClaimRegistry(ClaimRegistry):
    """Sin claims: conserva la ventana de carrera de la validación."""

    @contextmanager
    def claim(self, operacion: str, sierra_ids: Sequence[int]) -> Iterator[str]:
        yield str(uuid.uuid4())


class RedisClaimRegistry(ClaimRegistry):
    """
    Claims en Redis con expiración automática.

    Attributes:
        redis: cliente Redis síncrono (decode_responses=True)
        ttl: segundos de vida del claim; acota el bloqueo si el proceso muere
    """

    def __init__(self, redis_client: redis.Redis, ttl_seconds: int = 120):
        self.redis = redis_client
        self.ttl = ttl_seconds

    @staticmethod
    def _claim_key(sierra_id: int) -> str:
        """Format: 'sierra_claim:{sierra_id}'."""
        return f"sierra_claim:{sierra_id}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, max=1),
        retry=retry_if_exception_type((RedisConnectionError, RedisTimeoutError)),
        reraise=True
    )
    def _acquire(self, key: str, token: str) -> bool:
        return bool(self.redis.set(key, token, nx=True, ex=self.ttl))

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, max=1),
        retry=retry_if_exception_type((RedisConnectionError, RedisTimeoutError)),
        reraise=True
    )
    def _release(self, key: str, token: str) -> bool:
        return bool(self.redis.eval(RELEASE_SCRIPT, 1, key, token))

    @contextmanager
    def claim(self, operacion: str, sierra_ids: Sequence[int]) -> Iterator[str]:
        token = f"{operacion}:{uuid.uuid4()}"
        acquired: list[str] = []
        try:
            busy: list[int] = []
            try:
                for sierra_id in sierra_ids:
                    key = self._claim_key(sierra_id)
                    if self._acquire(key, token):
                        acquired.append(key)
                    else:
                        busy.append(sierra_id)
            except RedisError as e:
                logger.error(f"Redis no disponible al reclamar lote de {operacion}: {e}")
                raise StoreError("Redis no disponible para claims de lote", details=str(e))

            if busy:
                logger.warning(f"Lote de {operacion} rechazado: sierras {busy} en otro lote")
                raise LoteEnCursoError(operacion, busy)

            logger.debug(f"Claims adquiridos para {len(acquired)} sierras ({operacion})")
            yield token
        finally:
            for key in acquired:
                try:
                    if not self._release(key, token):
                        logger.warning(f"Claim {key} expiró antes de liberarse")
                except RedisError as e:
                    # El TTL libera el claim igualmente
                    logger.error(f"Error liberando claim {key}: {e}")

    def ping(self) -> None:
        try:
            self.redis.ping()
        except RedisError as e:
            raise StoreError("Redis no disponible", details=str(e))
