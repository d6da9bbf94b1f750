"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol


class AccountKind(str, Enum):
    """
    Kind of account being registered.

    - USER: full account, chosen (or generated) username, password, auth flow
    - GUEST: reduced-privilege account; server picks every identifier
    """

    USER = "user"
    GUEST = "guest"


class AuthSessionState(Enum):
    """
    User-Interactive Authentication session lifecycle.

    State Transitions:
    - NOT_STARTED -> IN_PROGRESS (first request without a completing proof)
    - IN_PROGRESS -> IN_PROGRESS (stage completed, rejected, or repeated)
    - IN_PROGRESS -> COMPLETED (completed stages satisfy an acceptable flow)
    - IN_PROGRESS -> EXPIRED (TTL exceeded before completion)

    COMPLETED and EXPIRED sessions are dropped from the session table; a later
    request quoting their session ID is treated as NOT_STARTED.
    """

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"


@dataclass(frozen=True)
class TokenOwner:
    """Account and device an access token is bound to."""

    user_id: str
    device_id: str
    is_guest: bool


class RegistrationStore(Protocol):
    """
    Port interface for account, device and access token persistence.

    The store is the sole arbiter of user ID uniqueness. Implementations
    raise StorageFailure for any backend error or timeout.
    """

    def check_username_exists(self, user_id: str) -> bool:
        """
        Report whether an account already owns the canonical user ID.

        Read-only: never creates or reserves anything.
        """
        ...

    def insert_account(
        self, user_id: str, kind: AccountKind, password_hash: str | None
    ) -> bool:
        """
        Atomically insert an account if the user ID is free.

        Args:
            user_id: Canonical user ID (@localpart:server_name)
            kind: Account kind
            password_hash: bcrypt hash, or None for guests

        Returns:
            True if inserted, False if the user ID already exists (collision)
        """
        ...

    def insert_or_replace_device_token(
        self, user_id: str, device_id: str, token: str, display_name: str | None
    ) -> None:
        """
        Create the device if needed and bind a new access token to it.

        Any token previously bound to (user_id, device_id) is invalidated in
        the same atomic operation. Tokens of other devices are untouched.
        """
        ...

    def get_user_by_access_token(self, token: str) -> TokenOwner | None:
        """Resolve an active access token, or None if it is not active."""
        ...


class AuthStageChecker(Protocol):
    """Port interface for verifying one authentication stage proof."""

    def check(self, auth: Mapping[str, Any]) -> bool:
        """
        Verify the stage proof submitted in the request's auth dict.

        Returns:
            True if the proof is valid for this stage
        """
        ...
