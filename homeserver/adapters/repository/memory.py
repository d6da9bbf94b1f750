"""
In-memory repository adapter - Implements RegistrationStore protocol.

Thread-safe, process-local store for development (``storage_backend=memory``)
and tests. A single lock makes every operation atomic, which gives the same
insert-if-absent and replace-token guarantees as the PostgreSQL adapter.
"""

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime

from homeserver.domain.ports import AccountKind, TokenOwner


@dataclass(frozen=True)
class StoredAccount:
    user_id: str
    kind: AccountKind
    password_hash: str | None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class InMemoryRegistrationStore:
    """
    Implements RegistrationStore protocol with dictionaries.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._accounts: dict[str, StoredAccount] = {}
        self._devices: dict[tuple[str, str], str | None] = {}
        self._device_tokens: dict[tuple[str, str], str] = {}
        self._tokens: dict[str, tuple[str, str]] = {}

    def check_username_exists(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._accounts

    def insert_account(
        self, user_id: str, kind: AccountKind, password_hash: str | None
    ) -> bool:
        with self._lock:
            if user_id in self._accounts:
                return False
            self._accounts[user_id] = StoredAccount(user_id, kind, password_hash)
            return True

    def insert_or_replace_device_token(
        self, user_id: str, device_id: str, token: str, display_name: str | None
    ) -> None:
        key = (user_id, device_id)
        with self._lock:
            if key not in self._devices or display_name is not None:
                self._devices[key] = display_name

            previous = self._device_tokens.get(key)
            if previous is not None:
                del self._tokens[previous]

            self._device_tokens[key] = token
            self._tokens[token] = key

    def get_user_by_access_token(self, token: str) -> TokenOwner | None:
        with self._lock:
            key = self._tokens.get(token)
            if key is None:
                return None
            account = self._accounts.get(key[0])
            is_guest = account is not None and account.kind is AccountKind.GUEST
            return TokenOwner(user_id=key[0], device_id=key[1], is_guest=is_guest)

    def get_account(self, user_id: str) -> StoredAccount | None:
        with self._lock:
            return self._accounts.get(user_id)

    def get_device_display_name(self, user_id: str, device_id: str) -> str | None:
        with self._lock:
            return self._devices.get((user_id, device_id))

    def ping(self) -> None:
        """Liveness probe; always healthy."""
        return None
