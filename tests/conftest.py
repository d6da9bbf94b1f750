"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- An in-memory store
- A controllable clock for auth session expiry
- Auth flow engines and registration services wired for tests
"""

import pytest

from homeserver.adapters.repository.memory import InMemoryRegistrationStore
from homeserver.domain.auth_flow import (
    STAGE_DUMMY,
    STAGE_REGISTRATION_TOKEN,
    AuthFlowEngine,
    DummyStageChecker,
    RegistrationTokenStageChecker,
)
from homeserver.domain.registration import RegistrationConfig, RegistrationService

SERVER_NAME = "example.org"
REGISTRATION_TOKEN = "letmein"
SESSION_TTL = 600


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryRegistrationStore:
    return InMemoryRegistrationStore()


@pytest.fixture
def config() -> RegistrationConfig:
    # bcrypt's minimum cost keeps the suite fast
    return RegistrationConfig(server_name=SERVER_NAME, bcrypt_cost=4)


@pytest.fixture
def auth_flow(clock: FakeClock) -> AuthFlowEngine:
    """Single-stage flow: m.login.dummy."""
    return AuthFlowEngine(
        flows=[[STAGE_DUMMY]],
        checkers={STAGE_DUMMY: DummyStageChecker()},
        session_ttl_seconds=SESSION_TTL,
        clock=clock,
    )


@pytest.fixture
def two_stage_flow(clock: FakeClock) -> AuthFlowEngine:
    """Single flow needing a registration token and m.login.dummy."""
    return AuthFlowEngine(
        flows=[[STAGE_REGISTRATION_TOKEN, STAGE_DUMMY]],
        checkers={
            STAGE_DUMMY: DummyStageChecker(),
            STAGE_REGISTRATION_TOKEN: RegistrationTokenStageChecker([REGISTRATION_TOKEN]),
        },
        session_ttl_seconds=SESSION_TTL,
        clock=clock,
    )


@pytest.fixture
def service(
    store: InMemoryRegistrationStore, auth_flow: AuthFlowEngine, config: RegistrationConfig
) -> RegistrationService:
    return RegistrationService(store=store, auth_flow=auth_flow, config=config)
