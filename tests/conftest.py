from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.notifications.circuit_breaker import CircuitBreaker
from src.notifications.retry import RetryExecutor
from src.notifications.service import NotificationService
from src.storage.repository import DeviceRepository
from tests.helpers import FakeClock, RecordingSleep, ScriptedProvider


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorded_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def repository() -> DeviceRepository:
    return DeviceRepository()


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def breaker(clock) -> CircuitBreaker:
    return CircuitBreaker(threshold=5, open_seconds=60, clock=clock)


@pytest.fixture
def service(repository, provider, breaker, recorded_sleep) -> NotificationService:
    return NotificationService(
        repository=repository,
        provider=provider,
        breaker=breaker,
        retry=RetryExecutor(sleep=recorded_sleep),
    )


@pytest.fixture
def sql_session_local(tmp_path) -> Generator[sessionmaker, None, None]:
    from src.models import tables  # noqa: F401
    from src.models.db import Base

    db_file = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{db_file}", connect_args={"check_same_thread": False}, future=True)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    yield TestingSessionLocal

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def api_ctx(monkeypatch, service, provider, repository) -> Generator[dict, None, None]:
    import src.api.routes as routes_module

    monkeypatch.setattr(routes_module, "notification_service", service)

    from src.app import app

    with TestClient(app) as client:
        yield {
            "client": client,
            "provider": provider,
            "repository": repository,
        }
