"""
Domain exceptions - Semantic error types for registration.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
Each exception maps to exactly one protocol error code in the API layer.
"""


class RegistrationError(Exception):
    """Base class for registration domain errors."""

    pass


class InvalidUsername(RegistrationError):
    """Requested localpart violates the username grammar or policy."""

    pass


class UserInUse(RegistrationError):
    """User ID is already owned by an account (early check or commit race)."""

    pass


class MissingParam(RegistrationError):
    """A required request parameter is absent."""

    pass


class InvalidParam(RegistrationError):
    """A request parameter is present but unacceptable."""

    pass


class RegistrationDisabled(RegistrationError):
    """Registration of full user accounts is turned off on this server."""

    pass


class GuestAccessForbidden(RegistrationError):
    """Guest registration is turned off on this server."""

    pass


class MissingToken(RegistrationError):
    """No access token was supplied."""

    pass


class UnknownToken(RegistrationError):
    """Access token is not recognised (never issued, or replaced)."""

    pass


class NotSupported(RegistrationError):
    """Endpoint or feature is not provided by this server."""

    pass


class StorageFailure(RegistrationError):
    """Persistence collaborator is unavailable, timed out, or errored."""

    pass
