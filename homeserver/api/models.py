"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
Field names follow the client-server protocol wire format.
"""

from typing import Any

from pydantic import BaseModel, Field

from homeserver.domain.auth_flow import AuthFlowStatus
from homeserver.domain.ports import AccountKind
from homeserver.domain.registration import RegistrationRequest


class RegisterRequest(BaseModel):
    """Request body for POST /register. Unknown fields are ignored."""

    username: str | None = Field(default=None, description="Desired localpart")
    password: str | None = Field(default=None, description="Account password")
    device_id: str | None = Field(default=None, min_length=1, description="Existing device ID")
    initial_device_display_name: str | None = None
    inhibit_login: bool = False
    auth: dict[str, Any] | None = Field(
        default=None, description="User-Interactive Authentication dict (type, session, ...)"
    )

    def to_domain(self, kind: AccountKind) -> RegistrationRequest:
        """Build the transient domain request for this body and kind."""
        return RegistrationRequest(
            kind=kind,
            username=self.username,
            password=self.password,
            device_id=self.device_id,
            initial_device_display_name=self.initial_device_display_name,
            inhibit_login=self.inhibit_login,
            auth=self.auth,
        )


class GuestRegisterRequest(BaseModel):
    """
    Request body for POST /register?kind=guest.

    Only the device display name is read; every other field is ignored
    without being validated.
    """

    initial_device_display_name: str | None = None

    def to_domain(self, kind: AccountKind = AccountKind.GUEST) -> RegistrationRequest:
        return RegistrationRequest(
            kind=kind, initial_device_display_name=self.initial_device_display_name
        )


class RegisterResponse(BaseModel):
    """Response model for successful registration."""

    user_id: str
    home_server: str
    device_id: str | None = None
    access_token: str | None = None


class AvailableResponse(BaseModel):
    """Response model for an available username."""

    available: bool = True


class FlowInfo(BaseModel):
    """One acceptable stage combination."""

    stages: list[str]


class AuthFlowResponse(BaseModel):
    """401 body asking the client for more authentication stages."""

    flows: list[FlowInfo]
    params: dict[str, Any] = Field(default_factory=dict)
    session: str
    completed: list[str] = Field(default_factory=list)
    errcode: str | None = None
    error: str | None = None

    @classmethod
    def from_status(cls, status: AuthFlowStatus) -> "AuthFlowResponse":
        return cls(
            flows=[FlowInfo(stages=list(flow)) for flow in status.flows],
            session=status.session_id,
            completed=list(status.completed),
            errcode=status.errcode,
            error=status.error,
        )


class WhoamiResponse(BaseModel):
    """Owner of the presented access token."""

    user_id: str
    device_id: str
    is_guest: bool


class ErrorResponse(BaseModel):
    """Standard protocol error body."""

    errcode: str
    error: str
