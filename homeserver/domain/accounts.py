"""
Account provisioner - allocates account records.

User IDs are derived from the requested localpart without transformation
(see username.validate_username). Uniqueness is enforced by the store's
atomic insert-if-absent, never by a check-then-insert in this layer.
"""

import logging
import secrets
from dataclasses import dataclass

import bcrypt

from .exceptions import StorageFailure, UserInUse
from .ports import AccountKind, RegistrationStore
from .username import user_id_for, validate_username

logger = logging.getLogger(__name__)

# Fresh values tried when a generated localpart collides at insert time
GENERATED_LOCALPART_ATTEMPTS = 5


def generate_localpart() -> str:
    """
    Generate a random purely numeric localpart.

    Numeric localparts are rejected for client-chosen usernames, so generated
    IDs can only ever collide with other generated IDs.
    """
    return str(10**18 + secrets.randbelow(9 * 10**18))


@dataclass
class AccountProvisioner:
    """Creates user and guest accounts through the store."""

    store: RegistrationStore
    server_name: str
    bcrypt_cost: int = 10

    def provision(
        self,
        kind: AccountKind,
        localpart: str | None = None,
        password: str | None = None,
    ) -> str:
        """
        Insert a new account and return its canonical user ID.

        Args:
            kind: USER or GUEST
            localpart: Requested username (ignored for guests; None means
                server-assigned)
            password: Plaintext password to hash (ignored for guests)

        Returns:
            Canonical user ID (@localpart:server_name)

        Raises:
            InvalidUsername: If the requested localpart fails validation
            UserInUse: If a concurrent registration committed the same ID first
            StorageFailure: If the store fails
        """
        if kind is AccountKind.GUEST:
            return self._provision_generated(kind, None)

        if localpart is not None:
            validate_username(localpart, self.server_name)

        password_hash = self._hash_password(password) if password is not None else None

        if localpart is None:
            return self._provision_generated(kind, password_hash)

        user_id = user_id_for(localpart, self.server_name)
        if not self.store.insert_account(user_id, kind, password_hash):
            logger.info("User ID %s taken at commit time", user_id)
            raise UserInUse(user_id)

        logger.info("Provisioned %s account %s", kind.value, user_id)
        return user_id

    def _provision_generated(self, kind: AccountKind, password_hash: str | None) -> str:
        for _ in range(GENERATED_LOCALPART_ATTEMPTS):
            user_id = user_id_for(generate_localpart(), self.server_name)
            if self.store.insert_account(user_id, kind, password_hash):
                logger.info("Provisioned %s account %s", kind.value, user_id)
                return user_id

        raise StorageFailure("Could not allocate a unique user ID")

    def _hash_password(self, password: str) -> str:
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=self.bcrypt_cost)).decode()
