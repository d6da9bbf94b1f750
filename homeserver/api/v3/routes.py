"""
Client-server API routes.

Defines the registration endpoints. Mounted under ``/_matrix/client/v3``.
Handlers are plain ``def`` so FastAPI runs the blocking domain calls in its
threadpool.
"""

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from homeserver.api.dependencies import (
    get_access_token,
    get_register_request,
    get_registration_service,
)
from homeserver.api.errors import error_response
from homeserver.api.models import (
    AuthFlowResponse,
    AvailableResponse,
    ErrorResponse,
    RegisterResponse,
    WhoamiResponse,
)
from homeserver.domain.auth_flow import AuthFlowStatus
from homeserver.domain.availability import Availability
from homeserver.domain.exceptions import NotSupported, RegistrationError, UserInUse
from homeserver.domain.registration import RegistrationRequest, RegistrationService

router = APIRouter(tags=["registration"])


@router.get(
    "/register/available",
    response_model=AvailableResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid or taken username"},
        500: {"model": ErrorResponse, "description": "Storage failure"},
    },
    summary="Check username availability",
    description="Checks that a username is valid and not currently in use. "
    "The username is not reserved: it may be taken before registration completes.",
)
def get_available(
    username: str = Query(..., description="Desired localpart"),
    service: RegistrationService = Depends(get_registration_service),
) -> AvailableResponse | JSONResponse:
    try:
        availability = service.check_availability(username)
    except RegistrationError as e:
        return error_response(e)

    if availability is Availability.USER_IN_USE:
        return error_response(UserInUse("Desired user ID is already taken."))
    return AvailableResponse(available=True)


@router.post(
    "/register",
    response_model=RegisterResponse,
    response_model_exclude_none=True,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid username, username in use, bad params"},
        401: {"model": AuthFlowResponse, "description": "Additional authentication required"},
        403: {"model": ErrorResponse, "description": "Registration or guest access disabled"},
        500: {"model": ErrorResponse, "description": "Storage failure"},
    },
    summary="Register an account",
    description="Register a user or guest account. User registration uses "
    "User-Interactive Authentication; guests are registered immediately and "
    "every body field except initial_device_display_name is ignored.",
)
def register(
    registration: RegistrationRequest = Depends(get_register_request),
    service: RegistrationService = Depends(get_registration_service),
) -> RegisterResponse | JSONResponse:
    """
    Run one registration round.

    - **kind**: ``user`` (default) or ``guest``
    - **auth**: auth dict for the current stage, with the session ID from
      the previous 401 response

    Returns the user ID, device ID and access token on success.
    """
    try:
        outcome = service.register(registration)
    except RegistrationError as e:
        return error_response(e)

    if isinstance(outcome, AuthFlowStatus):
        body = AuthFlowResponse.from_status(outcome)
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content=body.model_dump(exclude_none=True),
        )

    return RegisterResponse(
        user_id=outcome.user_id,
        home_server=service.config.server_name,
        device_id=outcome.device_id,
        access_token=outcome.access_token,
    )


@router.post(
    "/register/email/requestToken",
    responses={404: {"model": ErrorResponse, "description": "Not supported"}},
    summary="Request an email validation token (not supported)",
)
@router.post(
    "/register/msisdn/requestToken",
    responses={404: {"model": ErrorResponse, "description": "Not supported"}},
    summary="Request a phone validation token (not supported)",
)
def request_threepid_token() -> JSONResponse:
    return error_response(NotSupported("Third-party identifier registration is not supported"))


@router.get(
    "/account/whoami",
    response_model=WhoamiResponse,
    responses={401: {"model": ErrorResponse, "description": "Missing or unknown token"}},
    summary="Identify the owner of an access token",
)
def whoami(
    access_token: str | None = Depends(get_access_token),
    service: RegistrationService = Depends(get_registration_service),
) -> WhoamiResponse | JSONResponse:
    try:
        owner = service.whoami(access_token)
    except RegistrationError as e:
        return error_response(e)

    return WhoamiResponse(user_id=owner.user_id, device_id=owner.device_id, is_guest=owner.is_guest)
