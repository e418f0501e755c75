"""Pytest fixtures and configuration."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from atomop.data.models import PoolKey
from atomop.data.storage import Base
from atomop.flash.orchestrator import FlashOrchestrator
from fakes import (
    NOW,
    ORCHESTRATOR,
    POOL,
    TOKEN0,
    TOKEN1,
    FakeFlashPool,
    FakePositionManager,
    FakeToken,
    HonestReceiver,
)


@pytest.fixture(autouse=True)
def _set_required_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests independent of any local .env or shell configuration."""
    for key in ("ATOMOP_RPC_URL", "ATOMOP_PRIVATE_KEY", "ATOMOP_POSITION_MANAGER_ADDRESS"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("ATOMOP_DB_URL", "sqlite:///:memory:")
    monkeypatch.setenv("ATOMOP_LOG_FORMAT", "console")
    monkeypatch.setenv("ATOMOP_LEDGER_MODIFY_POLICY", "clear")
    monkeypatch.setenv("ATOMOP_DEFAULT_DEADLINE_SECONDS", "300")

    # Clear cached settings between tests
    from atomop.config.settings import get_settings

    get_settings.cache_clear()


@pytest.fixture
def db_session() -> Session:
    """Create in-memory test database session."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(engine)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def pool_key() -> PoolKey:
    return PoolKey(currency0=TOKEN0, currency1=TOKEN1, fee=3000, tick_spacing=60)


@pytest.fixture
def manager() -> FakePositionManager:
    return FakePositionManager()


@pytest.fixture
def tokens() -> dict[str, FakeToken]:
    return {
        TOKEN0: FakeToken(TOKEN0, {POOL: 10_000_000}),
        TOKEN1: FakeToken(TOKEN1, {POOL: 10_000_000}),
    }


@pytest.fixture
def flash_pool(tokens) -> FakeFlashPool:
    return FakeFlashPool(tokens, fee_bps=5)


@pytest.fixture
def orchestrator(flash_pool, tokens) -> FlashOrchestrator:
    orch = FlashOrchestrator(
        address=ORCHESTRATOR,
        pool=flash_pool.as_caller(ORCHESTRATOR),
        tokens=lambda asset: tokens[asset].as_account(ORCHESTRATOR),
    )
    flash_pool.register(orch)
    return orch


@pytest.fixture
def receiver(tokens) -> HonestReceiver:
    r = HonestReceiver(tokens, ORCHESTRATOR)
    # Enough to cover fees on loans up to 1,000,000
    tokens[TOKEN0].mint(r.address, 1_000)
    tokens[TOKEN1].mint(r.address, 1_000)
    return r
