"""
Fixtures compartidos.

Provee:
- Store en memoria con catálogos sembrados (estados_sierra, tipos_afilado,
  sucursales de dos empresas)
- Repositorios y services cableados sobre ese store
- FlakyRowStore: store en memoria que falla en escrituras elegidas, para
  simular fallas parciales de lotes
- client / client_factory: TestClient con dependency_overrides
"""
from datetime import date

import pytest
from fastapi.testclient import TestClient

from sierra_backend.core.dependency import (
    get_claim_registry,
    get_decommission_policy,
    get_query_strategy,
    get_row_store,
    reset_singletons,
)
from sierra_backend.exceptions import StoreError
from sierra_backend.main import app
from sierra_backend.models.afilado import AfiladoCreateRequest
from sierra_backend.models.enums import DecommissionPolicy, EstadoSierra
from sierra_backend.repositories.afilado_repository import AfiladoRepository
from sierra_backend.repositories.batch_repository import (
    BajaMasivaRepository,
    SalidaMasivaRepository,
)
from sierra_backend.repositories.memory_store import InMemoryRowStore
from sierra_backend.repositories.row_store import eq
from sierra_backend.repositories.sierra_repository import SierraRepository
from sierra_backend.services.afilado_query_strategy import OriginalAfiladoQuery
from sierra_backend.services.afilado_service import AfiladoService
from sierra_backend.services.baja_masiva_service import BajaMasivaService
from sierra_backend.services.claim_service import NoopClaimRegistry
from sierra_backend.services.salida_masiva_service import SalidaMasivaService
from sierra_backend.services.sierra_service import SierraService


# Sucursales 1 y 2 → empresa 10; sucursal 3 → empresa 20
SUCURSALES = [
    {"id": 1, "nombre": "Casa Matriz", "empresa_id": 10},
    {"id": 2, "nombre": "Planta Norte", "empresa_id": 10},
    {"id": 3, "nombre": "Aserradero Sur", "empresa_id": 20},
]
TIPOS_AFILADO = [
    {"id": 1, "nombre": "Afilado completo"},
    {"id": 2, "nombre": "Repaso"},
]


class FlakyRowStore(InMemoryRowStore):
    """
    InMemoryRowStore que lanza StoreError en las escrituras indicadas.

    fail_updates: conjunto de (tabla, id) cuyo update debe fallar
    fail_inserts: conjunto de tablas cuyo insert debe fallar
    """

    def __init__(self, unique=None):
        super().__init__(unique=unique)
        self.fail_updates: set[tuple[str, int]] = set()
        self.fail_inserts: set[str] = set()

    @staticmethod
    def _target_id(filters):
        for f in filters:
            if f.column == "id" and f.op == "eq":
                return f.value
        return None

    def insert(self, table, rows):
        if table in self.fail_inserts:
            raise StoreError(f"insert en {table} rechazado", table=table)
        return super().insert(table, rows)

    def update(self, table, patch, filters):
        if (table, self._target_id(filters)) in self.fail_updates:
            raise StoreError(f"update en {table} rechazado", table=table)
        return super().update(table, patch, filters)


def seed_catalogs(store: InMemoryRowStore) -> InMemoryRowStore:
    store.insert("estados_sierra", [
        {"id": e.value, "nombre": e.nombre} for e in EstadoSierra
    ])
    store.insert("tipos_afilado", TIPOS_AFILADO)
    store.insert("sucursales", SUCURSALES)
    return store


class Sistema:
    """Repositorios y services cableados sobre un mismo store."""

    def __init__(self, store, policy: DecommissionPolicy = DecommissionPolicy.REJECT, query_strategy=None):
        self.store = store
        self.sierra_repo = SierraRepository(store)
        self.afilado_repo = AfiladoRepository(store)
        self.salida_repo = SalidaMasivaRepository(store)
        self.baja_repo = BajaMasivaRepository(store)
        self.sierras = SierraService(self.sierra_repo, self.afilado_repo, policy)
        self.afilados = AfiladoService(
            self.sierras,
            self.afilado_repo,
            self.sierra_repo,
            self.salida_repo,
            self.baja_repo,
            query_strategy=query_strategy or OriginalAfiladoQuery()
        )
        self.salidas = SalidaMasivaService(
            self.sierras, self.salida_repo, self.afilado_repo, self.sierra_repo
        )
        self.bajas = BajaMasivaService(
            self.sierras, self.baja_repo, self.afilado_repo, self.sierra_repo
        )

    # ==================== HELPERS DE ESCENARIO ====================

    def sierra(self, codigo: str, sucursal_id: int = 1, tipo_sierra_id: int = 1) -> int:
        """Inserta una sierra DISPONIBLE y retorna su id."""
        return self.sierra_repo.insert({
            "codigo_barras": codigo,
            "sucursal_id": sucursal_id,
            "tipo_sierra_id": tipo_sierra_id,
            "estado_id": EstadoSierra.DISPONIBLE,
            "activo": True,
            "fecha_registro": "2026-01-05",
        }).id

    def afilado(
        self,
        sierra_id: int,
        tipo_afilado_id: int = 1,
        fecha: date = date(2026, 3, 2),
        completar: bool = True
    ) -> int:
        """Inicia (y por defecto completa) un afilado vía AfiladoService."""
        afilado = self.afilados.create_afilado(AfiladoCreateRequest(
            sierra_id=sierra_id,
            tipo_afilado_id=tipo_afilado_id,
            fecha_afilado=fecha
        ))
        if completar:
            self.afilados.completar_afilado(afilado.id)
        return afilado.id

    def estado(self, sierra_id: int) -> EstadoSierra:
        return self.sierras.get_con_estado(sierra_id).estado_derivado

    def fila(self, table: str, row_id: int):
        rows = self.store.select(table, filters=[eq("id", row_id)]).rows
        return rows[0] if rows else None


# ==================== FIXTURES ====================


@pytest.fixture
def store():
    """Store en memoria con catálogos sembrados."""
    return seed_catalogs(InMemoryRowStore(unique={"sierras": ["codigo_barras"]}))


@pytest.fixture
def flaky_store():
    return seed_catalogs(FlakyRowStore(unique={"sierras": ["codigo_barras"]}))


@pytest.fixture
def sistema(store):
    """Sistema con política de baja REJECT (default de configuración)."""
    return Sistema(store)


@pytest.fixture
def sistema_force_close(store):
    return Sistema(store, policy=DecommissionPolicy.FORCE_CLOSE)


@pytest.fixture
def sistema_flaky(flaky_store):
    return Sistema(flaky_store)


@pytest.fixture
def sistema_flaky_force_close(flaky_store):
    return Sistema(flaky_store, policy=DecommissionPolicy.FORCE_CLOSE)


# ==================== API ====================


@pytest.fixture
def client_factory(store):
    """
    Crea un TestClient con dependencias sobreescritas.

    Sin `with`: el evento startup (config.validate) no se ejecuta.
    """

    def _make(
        row_store=None,
        policy: DecommissionPolicy = DecommissionPolicy.REJECT,
        query_strategy=None,
        claims=None
    ) -> TestClient:
        app.dependency_overrides[get_row_store] = lambda: row_store if row_store is not None else store
        app.dependency_overrides[get_claim_registry] = lambda: claims or NoopClaimRegistry()
        app.dependency_overrides[get_query_strategy] = lambda: query_strategy or OriginalAfiladoQuery()
        app.dependency_overrides[get_decommission_policy] = lambda: policy
        return TestClient(app)

    yield _make

    app.dependency_overrides.clear()
    reset_singletons()


@pytest.fixture
def client(client_factory):
    """TestClient sobre el store en memoria sembrado, política reject."""
    return client_factory()
