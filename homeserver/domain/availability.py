"""
Availability checker - advisory username collision lookup.

The check does not reserve anything. A username reported as available can
still be taken by a concurrent registration before this client commits; that
race surfaces later as UserInUse from the account provisioner.
"""

from dataclasses import dataclass
from enum import Enum

from .ports import RegistrationStore
from .username import user_id_for


class Availability(Enum):
    """Outcome of an availability check."""

    AVAILABLE = "available"
    USER_IN_USE = "user_in_use"


@dataclass
class AvailabilityChecker:
    """Stateless wrapper over the store's existence lookup."""

    store: RegistrationStore
    server_name: str

    def is_taken(self, localpart: str) -> bool:
        """
        Report whether an account already owns the localpart.

        Raises:
            StorageFailure: If the store cannot answer (never read as "free")
        """
        return self.store.check_username_exists(user_id_for(localpart, self.server_name))

    def check(self, localpart: str) -> Availability:
        if self.is_taken(localpart):
            return Availability.USER_IN_USE
        return Availability.AVAILABLE
