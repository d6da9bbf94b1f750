"""
Session issuer - device IDs and access tokens.

Each (user, device) pair holds at most one active access token. Replacement
is delegated to the store's atomic insert-or-replace so two concurrent
issuances for one device can never leave two active tokens.
"""

import base64
import logging
import secrets
import string
from dataclasses import dataclass

from .exceptions import UnknownToken
from .ports import RegistrationStore, TokenOwner

logger = logging.getLogger(__name__)

DEVICE_ID_LENGTH = 10


def generate_device_id() -> str:
    """Random upper-case device ID, e.g. ``QWERTYUIOP``."""
    return "".join(secrets.choice(string.ascii_uppercase) for _ in range(DEVICE_ID_LENGTH))


def generate_access_token(user_id: str) -> str:
    """
    Mint an opaque access token.

    Format: ``syt_<base64 localpart>_<random>``. The localpart prefix only
    helps operators recognise tokens; the random part carries the entropy.
    """
    localpart = user_id[1:].split(":", 1)[0]
    encoded = base64.urlsafe_b64encode(localpart.encode()).decode().rstrip("=")
    return f"syt_{encoded}_{secrets.token_urlsafe(32)}"


@dataclass(frozen=True)
class IssuedSession:
    """Device and access token handed back to the client."""

    device_id: str
    access_token: str


@dataclass
class SessionIssuer:
    """Binds fresh access tokens to devices."""

    store: RegistrationStore

    def issue(
        self,
        user_id: str,
        device_id: str | None = None,
        display_name: str | None = None,
    ) -> IssuedSession:
        """
        Issue an access token for a device, replacing any prior token.

        Args:
            user_id: Account the token authorizes
            device_id: Client-chosen device ID, or None to generate one
            display_name: Initial device display name

        Raises:
            StorageFailure: If the store fails
        """
        if device_id is None:
            device_id = generate_device_id()

        token = generate_access_token(user_id)
        self.store.insert_or_replace_device_token(user_id, device_id, token, display_name)

        logger.info("Issued access token for %s on device %s", user_id, device_id)
        return IssuedSession(device_id=device_id, access_token=token)

    def get_token_owner(self, token: str) -> TokenOwner:
        """
        Authorize an access token.

        Raises:
            UnknownToken: If the token was never issued or has been replaced
        """
        owner = self.store.get_user_by_access_token(token)
        if owner is None:
            raise UnknownToken("Unrecognised access token")
        return owner
