"""
Domain layer - Pure business logic with zero framework imports.

This package contains the core business logic for homeserver account
registration. It defines its own port interfaces for infrastructure
abstraction, ensuring true hexagonal architecture decoupling.
"""

from .accounts import AccountProvisioner
from .auth_flow import (
    STAGE_DUMMY,
    STAGE_REGISTRATION_TOKEN,
    AuthFlowEngine,
    AuthFlowStatus,
    DummyStageChecker,
    RegistrationTokenStageChecker,
)
from .availability import Availability, AvailabilityChecker
from .exceptions import (
    GuestAccessForbidden,
    InvalidParam,
    InvalidUsername,
    MissingParam,
    MissingToken,
    NotSupported,
    RegistrationDisabled,
    RegistrationError,
    StorageFailure,
    UnknownToken,
    UserInUse,
)
from .ports import AccountKind, AuthSessionState, AuthStageChecker, RegistrationStore, TokenOwner
from .registration import (
    RegistrationConfig,
    RegistrationRequest,
    RegistrationResult,
    RegistrationService,
)
from .sessions import IssuedSession, SessionIssuer
from .username import is_username_valid, validate_username

__all__ = [
    "STAGE_DUMMY",
    "STAGE_REGISTRATION_TOKEN",
    "AccountKind",
    "AccountProvisioner",
    "AuthFlowEngine",
    "AuthFlowStatus",
    "AuthSessionState",
    "AuthStageChecker",
    "Availability",
    "AvailabilityChecker",
    "DummyStageChecker",
    "GuestAccessForbidden",
    "InvalidParam",
    "InvalidUsername",
    "IssuedSession",
    "MissingParam",
    "MissingToken",
    "NotSupported",
    "RegistrationConfig",
    "RegistrationDisabled",
    "RegistrationError",
    "RegistrationRequest",
    "RegistrationResult",
    "RegistrationService",
    "RegistrationStore",
    "RegistrationTokenStageChecker",
    "SessionIssuer",
    "StorageFailure",
    "TokenOwner",
    "UnknownToken",
    "UserInUse",
    "is_username_valid",
    "validate_username",
]
