"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
Long-lived collaborators (store, auth flow engine, registration config) are
created during app lifespan startup and stored in app.state.
"""

from typing import Any

from fastapi import Body, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from homeserver.api.models import GuestRegisterRequest, RegisterRequest

from homeserver.config.settings import Settings
from homeserver.domain.auth_flow import (
    STAGE_DUMMY,
    STAGE_REGISTRATION_TOKEN,
    AuthFlowEngine,
    DummyStageChecker,
    RegistrationTokenStageChecker,
)
from homeserver.domain.ports import AccountKind, AuthStageChecker, RegistrationStore
from homeserver.domain.registration import (
    RegistrationConfig,
    RegistrationRequest,
    RegistrationService,
)


def create_auth_flow_engine(settings: Settings) -> AuthFlowEngine:
    """
    Build the process-wide auth flow engine from settings.

    The registration token stage is only available when tokens are
    configured; a flow naming it without tokens fails at startup.
    """
    checkers: dict[str, AuthStageChecker] = {STAGE_DUMMY: DummyStageChecker()}
    if settings.registration_tokens:
        checkers[STAGE_REGISTRATION_TOKEN] = RegistrationTokenStageChecker(
            settings.registration_tokens
        )
    return AuthFlowEngine(
        flows=settings.registration_flows,
        checkers=checkers,
        session_ttl_seconds=settings.auth_session_ttl_seconds,
    )


def get_store(request: Request) -> RegistrationStore:
    """Get the store created during app lifespan startup."""
    return request.app.state.store


def get_auth_flow_engine(request: Request) -> AuthFlowEngine:
    """Get the shared auth flow engine (holds the session table)."""
    return request.app.state.auth_flow


def get_registration_config(request: Request) -> RegistrationConfig:
    return request.app.state.registration_config


def get_registration_service(request: Request) -> RegistrationService:
    """
    Create registration service with injected dependencies.

    Wires together the store, auth flow engine and policy for the domain service.
    """
    return RegistrationService(
        store=get_store(request),
        auth_flow=get_auth_flow_engine(request),
        config=get_registration_config(request),
    )



def get_register_request(
    body: dict[str, Any] = Body(..., description="Registration body (see RegisterRequest)"),
    kind: AccountKind = Query(default=AccountKind.USER),
) -> RegistrationRequest:
    """
    Parse the registration body for the requested account kind.

    User bodies are validated against RegisterRequest. Guest bodies only have
    their display name validated, since nothing else in them is used.
    """
    model = GuestRegisterRequest if kind is AccountKind.GUEST else RegisterRequest
    try:
        parsed = model.model_validate(body)
    except ValidationError as e:
        errors = [{**error, "loc": ("body", *error["loc"])} for error in e.errors()]
        raise RequestValidationError(errors, body=body) from None
    return parsed.to_domain(kind)

# Bearer token security scheme for OpenAPI documentation
http_bearer = HTTPBearer(auto_error=False)


def get_access_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
    access_token: str | None = Query(default=None, description="Deprecated query-string token"),
) -> str | None:
    """
    Extract the access token from the Authorization header or query string.

    Returns None when neither is present; the route decides how to reject.
    """
    if credentials is not None:
        return credentials.credentials
    return access_token
