"""
Username validation - localpart grammar and policy checks.

A localpart is accepted when it is non-empty, fits within the user ID length
limit, and uses only lowercase ASCII letters, digits and the punctuation
``. _ = - /``. Client-supplied usernames are never transformed: anything
outside the grammar (including upper case) is rejected.

Purely numeric localparts are reserved for server-assigned identifiers
(guests, and users who register without a username).
"""

import re

from .exceptions import InvalidUsername

MAX_USER_ID_LENGTH = 255

_LOCALPART_PATTERN = re.compile(r"[a-z0-9._=\-/]+")
_NUMERIC_PATTERN = re.compile(r"[0-9]+")


def user_id_for(localpart: str, server_name: str) -> str:
    """Build the canonical user ID for a localpart on this server."""
    return f"@{localpart}:{server_name}"


def max_localpart_length(server_name: str) -> int:
    """Longest localpart whose full user ID still fits the length limit."""
    # "@" + localpart + ":" + server_name
    return MAX_USER_ID_LENGTH - len(server_name) - 2


def validate_username(localpart: str, server_name: str) -> None:
    """
    Check a client-requested localpart against grammar and policy.

    Pure function: no I/O, no side effects.

    Args:
        localpart: Requested username, without "@" or server name
        server_name: Homeserver domain, used for the length limit

    Raises:
        InvalidUsername: If the localpart is empty, too long, contains a
            character outside the grammar, or is purely numeric
    """
    if not localpart:
        raise InvalidUsername("User ID cannot be empty")

    if len(localpart) > max_localpart_length(server_name):
        raise InvalidUsername(
            f"User ID may not be longer than {MAX_USER_ID_LENGTH} characters"
        )

    if not _LOCALPART_PATTERN.fullmatch(localpart):
        raise InvalidUsername("User ID can only contain characters a-z, 0-9, or '=_-./'")

    if _NUMERIC_PATTERN.fullmatch(localpart):
        raise InvalidUsername("Numeric user IDs are reserved for server-assigned accounts")


def is_username_valid(localpart: str, server_name: str) -> bool:
    """Boolean form of validate_username()."""
    try:
        validate_username(localpart, server_name)
    except InvalidUsername:
        return False
    return True
