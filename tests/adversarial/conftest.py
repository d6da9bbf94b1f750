"""
Shared fixtures for adversarial tests.

Provides common test infrastructure for race condition tests.
"""

import pytest

from homeserver.adapters.repository.memory import InMemoryRegistrationStore
from homeserver.domain.accounts import AccountProvisioner
from homeserver.domain.sessions import SessionIssuer


@pytest.fixture
def provisioner(store: InMemoryRegistrationStore) -> AccountProvisioner:
    return AccountProvisioner(store=store, server_name="example.org", bcrypt_cost=4)


@pytest.fixture
def issuer(store: InMemoryRegistrationStore) -> SessionIssuer:
    return SessionIssuer(store=store)
