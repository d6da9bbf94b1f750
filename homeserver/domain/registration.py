"""
Registration domain service - account registration orchestration.

This module composes the validator, availability checker, auth flow engine,
account provisioner and session issuer into the two operations exposed to
the transport layer: checking username availability and registering.

User registration (kind=user)
=============================

    validate username -> availability check -> auth flow -> provision -> issue

Every step short-circuits:
- Invalid username        -> InvalidUsername
- Username taken          -> UserInUse
- Auth flow not completed -> AuthFlowStatus returned (normal protocol round)
- Commit-time collision   -> UserInUse (same as the early check)

Validation always runs before any store I/O.

Guest registration (kind=guest)
===============================

Only ``initial_device_display_name`` is honoured. Username, password, device
ID, auth and inhibit_login are ignored; the validator, availability checker
and auth flow are bypassed and the server picks every identifier.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .accounts import AccountProvisioner
from .auth_flow import AuthFlowEngine, AuthFlowStatus
from .availability import Availability, AvailabilityChecker
from .exceptions import (
    GuestAccessForbidden,
    InvalidParam,
    MissingParam,
    MissingToken,
    RegistrationDisabled,
    UserInUse,
)
from .ports import AccountKind, RegistrationStore, TokenOwner
from .sessions import SessionIssuer
from .username import validate_username

logger = logging.getLogger(__name__)

MAX_PASSWORD_LENGTH = 512


@dataclass(frozen=True)
class RegistrationConfig:
    """Registration policy, passed in explicitly at construction."""

    server_name: str
    enable_registration: bool = True
    allow_guest_access: bool = True
    bcrypt_cost: int = 10


@dataclass(frozen=True)
class RegistrationRequest:
    """Parsed registration request. Transient; never persisted as-is."""

    kind: AccountKind = AccountKind.USER
    username: str | None = None
    password: str | None = None
    device_id: str | None = None
    initial_device_display_name: str | None = None
    inhibit_login: bool = False
    auth: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class RegistrationResult:
    """Successful registration. Device and token are None with inhibit_login."""

    user_id: str
    kind: AccountKind
    device_id: str | None = None
    access_token: str | None = None


@dataclass
class RegistrationService:
    """
    Domain service for account registration.

    Stateless apart from the shared auth flow engine; safe to build per
    request around long-lived collaborators.
    """

    store: RegistrationStore
    auth_flow: AuthFlowEngine
    config: RegistrationConfig
    availability: AvailabilityChecker = field(init=False)
    provisioner: AccountProvisioner = field(init=False)
    issuer: SessionIssuer = field(init=False)

    def __post_init__(self) -> None:
        self.availability = AvailabilityChecker(self.store, self.config.server_name)
        self.provisioner = AccountProvisioner(
            self.store, self.config.server_name, bcrypt_cost=self.config.bcrypt_cost
        )
        self.issuer = SessionIssuer(self.store)

    def check_availability(self, username: str) -> Availability:
        """
        Check whether a username could be registered right now.

        Advisory only: nothing is reserved.

        Raises:
            InvalidUsername: If the username fails validation (no store I/O)
            StorageFailure: If the store cannot answer
        """
        validate_username(username, self.config.server_name)
        return self.availability.check(username)

    def register(self, request: RegistrationRequest) -> RegistrationResult | AuthFlowStatus:
        """
        Run one round of registration.

        Returns:
            RegistrationResult on success, or AuthFlowStatus when more auth
            stages are required

        Raises:
            RegistrationError subclass for every failure
        """
        if request.kind is AccountKind.GUEST:
            return self._register_guest(request.initial_device_display_name)
        return self._register_user(request)

    def whoami(self, access_token: str | None) -> TokenOwner:
        """
        Resolve the account and device behind an access token.

        Raises:
            MissingToken: If no token was supplied
            UnknownToken: If the token is not active
        """
        if not access_token:
            raise MissingToken("Missing access token")
        return self.issuer.get_token_owner(access_token)

    def _register_user(self, request: RegistrationRequest) -> RegistrationResult | AuthFlowStatus:
        if not self.config.enable_registration:
            raise RegistrationDisabled("Registration has been disabled")

        if request.password is not None and len(request.password) > MAX_PASSWORD_LENGTH:
            raise InvalidParam("Password too long")

        if request.username is not None:
            validate_username(request.username, self.config.server_name)
            if self.availability.is_taken(request.username):
                raise UserInUse("Desired user ID is already taken.")

        status = self.auth_flow.check_auth(request.auth)
        if not status.is_completed:
            return status

        try:
            result = self._commit_user(request)
        except Exception:
            # Completed stages survive a failed commit; the client retries
            # with the same session
            self.auth_flow.release(status.session_id)
            raise

        self.auth_flow.finish(status.session_id)
        return result

    def _commit_user(self, request: RegistrationRequest) -> RegistrationResult:
        if request.password is None:
            raise MissingParam("Missing password")

        try:
            user_id = self.provisioner.provision(
                AccountKind.USER, request.username, request.password
            )
        except UserInUse:
            raise UserInUse("Desired user ID is already taken.") from None

        if request.inhibit_login:
            return RegistrationResult(user_id=user_id, kind=AccountKind.USER)

        issued = self.issuer.issue(
            user_id, request.device_id, request.initial_device_display_name
        )
        return RegistrationResult(
            user_id=user_id,
            kind=AccountKind.USER,
            device_id=issued.device_id,
            access_token=issued.access_token,
        )

    def _register_guest(self, display_name: str | None) -> RegistrationResult:
        if not self.config.allow_guest_access:
            raise GuestAccessForbidden("Guest access is disabled")

        user_id = self.provisioner.provision(AccountKind.GUEST)
        issued = self.issuer.issue(user_id, display_name=display_name)
        logger.info("Registered guest %s", user_id)
        return RegistrationResult(
            user_id=user_id,
            kind=AccountKind.GUEST,
            device_id=issued.device_id,
            access_token=issued.access_token,
        )
