"""
Unit tests for RegistrationService domain logic.

Tests domain logic with an in-memory store and mocked ports to verify:
- Multi-round user registration through the auth flow
- Short-circuit ordering (validation, availability, auth, provisioning)
- Commit-time collisions
- Completed auth sessions surviving a failed commit
- Guest registration ignoring all but the display name
- Policy switches and exception handling
"""

import re
from unittest.mock import Mock

import pytest

from homeserver.adapters.repository.memory import InMemoryRegistrationStore
from homeserver.domain.auth_flow import (
    STAGE_DUMMY,
    STAGE_REGISTRATION_TOKEN,
    AuthFlowEngine,
    AuthFlowStatus,
)
from homeserver.domain.exceptions import (
    GuestAccessForbidden,
    InvalidParam,
    InvalidUsername,
    MissingParam,
    MissingToken,
    RegistrationDisabled,
    StorageFailure,
    UnknownToken,
    UserInUse,
)
from homeserver.domain.ports import AccountKind, AuthSessionState
from homeserver.domain.registration import (
    MAX_PASSWORD_LENGTH,
    RegistrationConfig,
    RegistrationRequest,
    RegistrationResult,
    RegistrationService,
)
from tests.conftest import REGISTRATION_TOKEN

GENERATED_USER_ID = re.compile(r"^@[0-9]+:example\.org$")


def user_request(session: str | None = None, **overrides) -> RegistrationRequest:
    fields = {
        "kind": AccountKind.USER,
        "username": "alice",
        "password": "password123",
        "auth": {"type": STAGE_DUMMY, "session": session} if session else None,
    }
    fields.update(overrides)
    return RegistrationRequest(**fields)


def register_completely(service: RegistrationService, **overrides) -> RegistrationResult:
    first = service.register(user_request(**overrides))
    assert isinstance(first, AuthFlowStatus)
    result = service.register(user_request(session=first.session_id, **overrides))
    assert isinstance(result, RegistrationResult)
    return result


class TestUserRegistrationFlow:
    """Tests for kind=user registration."""

    def test_first_round_requires_auth(
        self, service: RegistrationService, store: InMemoryRegistrationStore
    ) -> None:
        """Without auth the service returns the flows and creates nothing."""
        outcome = service.register(user_request())

        assert isinstance(outcome, AuthFlowStatus)
        assert outcome.state is AuthSessionState.IN_PROGRESS
        assert outcome.flows == ((STAGE_DUMMY,),)
        assert store.get_account("@alice:example.org") is None

    def test_completed_auth_registers_account(
        self, service: RegistrationService, store: InMemoryRegistrationStore
    ) -> None:
        result = register_completely(service)

        assert result.user_id == "@alice:example.org"
        assert result.kind is AccountKind.USER
        assert result.device_id
        assert result.access_token
        assert store.get_account("@alice:example.org").kind is AccountKind.USER

    def test_issued_token_is_bound_to_device(self, service: RegistrationService) -> None:
        result = register_completely(service, device_id="PHONE")

        owner = service.whoami(result.access_token)

        assert owner.user_id == "@alice:example.org"
        assert owner.device_id == "PHONE"
        assert owner.is_guest is False

    def test_display_name_passed_to_device(
        self, service: RegistrationService, store: InMemoryRegistrationStore
    ) -> None:
        result = register_completely(service, initial_device_display_name="Alice's laptop")

        assert store.get_device_display_name(result.user_id, result.device_id) == "Alice's laptop"

    def test_inhibit_login_skips_token(self) -> None:
        """inhibit_login creates the account but no device or token."""
        store = Mock()
        store.check_username_exists.return_value = False
        store.insert_account.return_value = True
        auth_flow = Mock()
        auth_flow.check_auth.return_value = AuthFlowStatus(
            session_id="s", state=AuthSessionState.COMPLETED, flows=(), completed=()
        )
        service = RegistrationService(
            store=store,
            auth_flow=auth_flow,
            config=RegistrationConfig(server_name="example.org", bcrypt_cost=4),
        )

        result = service.register(user_request(inhibit_login=True))

        assert result.user_id == "@alice:example.org"
        assert result.device_id is None
        assert result.access_token is None
        store.insert_or_replace_device_token.assert_not_called()

    def test_missing_username_gets_generated_id(self, service: RegistrationService) -> None:
        result = register_completely(service, username=None)

        assert GENERATED_USER_ID.match(result.user_id)

    def test_first_round_may_omit_password(self, service: RegistrationService) -> None:
        """Clients may fetch flows before sending credentials."""
        outcome = service.register(user_request(password=None))

        assert isinstance(outcome, AuthFlowStatus)

    def test_missing_password_after_auth(self, service: RegistrationService) -> None:
        first = service.register(user_request(password=None))

        with pytest.raises(MissingParam):
            service.register(user_request(session=first.session_id, password=None))


class TestShortCircuits:
    """Tests for the order in which user registration fails."""

    def test_invalid_username_before_any_io(self, auth_flow: AuthFlowEngine, config) -> None:
        store = Mock()
        service = RegistrationService(store=store, auth_flow=auth_flow, config=config)

        with pytest.raises(InvalidUsername):
            service.register(user_request(username="t@ken"))

        store.check_username_exists.assert_not_called()
        store.insert_account.assert_not_called()
        assert auth_flow.active_sessions == 0

    def test_taken_username_before_auth(
        self,
        service: RegistrationService,
        store: InMemoryRegistrationStore,
        auth_flow: AuthFlowEngine,
    ) -> None:
        """UserInUse is reported before an auth session is started."""
        store.insert_account("@taken:example.org", AccountKind.USER, None)

        with pytest.raises(UserInUse):
            service.register(user_request(username="taken"))

        assert auth_flow.active_sessions == 0

    def test_commit_race_surfaces_as_user_in_use(self, auth_flow: AuthFlowEngine, config) -> None:
        """Availability passed but the insert lost the race: UserInUse."""
        store = Mock()
        store.check_username_exists.return_value = False
        store.insert_account.return_value = False
        service = RegistrationService(store=store, auth_flow=auth_flow, config=config)

        first = service.register(user_request())
        with pytest.raises(UserInUse) as exc_info:
            service.register(user_request(session=first.session_id))

        assert str(exc_info.value) == "Desired user ID is already taken."
        store.insert_or_replace_device_token.assert_not_called()

    def test_storage_failure_is_not_availability(self, auth_flow: AuthFlowEngine, config) -> None:
        """A failed lookup raises StorageFailure and never proceeds."""
        store = Mock()
        store.check_username_exists.side_effect = StorageFailure("timeout")
        service = RegistrationService(store=store, auth_flow=auth_flow, config=config)

        with pytest.raises(StorageFailure):
            service.register(user_request())

        store.insert_account.assert_not_called()

    def test_password_too_long(self, service: RegistrationService) -> None:
        with pytest.raises(InvalidParam):
            service.register(user_request(password="x" * (MAX_PASSWORD_LENGTH + 1)))

    def test_registration_disabled(
        self, store: InMemoryRegistrationStore, auth_flow: AuthFlowEngine
    ) -> None:
        config = RegistrationConfig(server_name="example.org", enable_registration=False)
        service = RegistrationService(store=store, auth_flow=auth_flow, config=config)

        with pytest.raises(RegistrationDisabled):
            service.register(user_request())

    def test_incomplete_auth_creates_nothing(self, auth_flow: AuthFlowEngine, config) -> None:
        store = Mock()
        store.check_username_exists.return_value = False
        service = RegistrationService(store=store, auth_flow=auth_flow, config=config)

        outcome = service.register(user_request(auth={"type": "m.login.recaptcha"}))

        assert isinstance(outcome, AuthFlowStatus)
        assert outcome.errcode == "M_UNRECOGNIZED"
        store.insert_account.assert_not_called()


class TestAuthSessionRetry:
    """Tests for retrying a registration whose auth already completed."""

    def _complete_two_stages(self, service: RegistrationService, **overrides) -> str:
        first = service.register(user_request(**overrides))
        session_id = first.session_id
        service.register(
            user_request(
                auth={
                    "type": STAGE_REGISTRATION_TOKEN,
                    "token": REGISTRATION_TOKEN,
                    "session": session_id,
                },
                **overrides,
            )
        )
        return session_id

    def test_retry_after_missing_password(
        self, store: InMemoryRegistrationStore, two_stage_flow: AuthFlowEngine, config
    ) -> None:
        """Stages completed before MissingParam are kept for the retry."""
        service = RegistrationService(store=store, auth_flow=two_stage_flow, config=config)
        session_id = self._complete_two_stages(service, password=None)

        with pytest.raises(MissingParam):
            service.register(user_request(session=session_id, password=None))

        result = service.register(user_request(auth={"session": session_id}))

        assert isinstance(result, RegistrationResult)
        assert result.user_id == "@alice:example.org"

    def test_retry_after_storage_failure(
        self, two_stage_flow: AuthFlowEngine, config
    ) -> None:
        """A failed insert does not cost the client its completed stages."""
        store = Mock()
        store.check_username_exists.return_value = False
        store.insert_account.side_effect = [StorageFailure("connection lost"), True]
        service = RegistrationService(store=store, auth_flow=two_stage_flow, config=config)
        session_id = self._complete_two_stages(service)

        with pytest.raises(StorageFailure):
            service.register(user_request(session=session_id))

        result = service.register(user_request(auth={"session": session_id}))

        assert isinstance(result, RegistrationResult)
        assert store.insert_account.call_count == 2

    def test_retry_with_other_username_after_commit_race(
        self, auth_flow: AuthFlowEngine, config
    ) -> None:
        store = Mock()
        store.check_username_exists.return_value = False
        store.insert_account.side_effect = [False, True]
        service = RegistrationService(store=store, auth_flow=auth_flow, config=config)
        first = service.register(user_request())

        with pytest.raises(UserInUse):
            service.register(user_request(session=first.session_id))

        result = service.register(
            user_request(username="alice2", auth={"session": first.session_id})
        )

        assert result.user_id == "@alice2:example.org"

    def test_session_finished_after_success(
        self, service: RegistrationService, auth_flow: AuthFlowEngine
    ) -> None:
        """A committed registration destroys its session; replay starts over."""
        first = service.register(user_request())
        service.register(user_request(session=first.session_id))

        assert auth_flow.active_sessions == 0

        replay = service.register(
            user_request(username="bob", auth={"session": first.session_id})
        )

        assert isinstance(replay, AuthFlowStatus)
        assert replay.session_id != first.session_id
        assert not replay.is_completed


class TestGuestRegistration:
    """Tests for kind=guest registration."""

    def test_guest_ignores_username(self, service: RegistrationService) -> None:
        """Two guests with different usernames get distinct generated IDs."""
        first = service.register(
            RegistrationRequest(kind=AccountKind.GUEST, username="alice", password="x")
        )
        second = service.register(
            RegistrationRequest(kind=AccountKind.GUEST, username="bob", password="x")
        )

        assert first.user_id != second.user_id
        for result, supplied in ((first, "alice"), (second, "bob")):
            assert GENERATED_USER_ID.match(result.user_id)
            assert supplied not in result.user_id
            assert result.kind is AccountKind.GUEST

    def test_guest_bypasses_auth_and_availability(self, config: RegistrationConfig) -> None:
        store = Mock()
        store.insert_account.return_value = True
        auth_flow = Mock()
        service = RegistrationService(store=store, auth_flow=auth_flow, config=config)

        result = service.register(
            RegistrationRequest(kind=AccountKind.GUEST, username="t@ken", auth={"type": "bogus"})
        )

        assert isinstance(result, RegistrationResult)
        auth_flow.check_auth.assert_not_called()
        store.check_username_exists.assert_not_called()

    def test_guest_ignores_device_id_and_inhibit_login(self, service: RegistrationService) -> None:
        """Server picks the device; a token is always issued."""
        result = service.register(
            RegistrationRequest(kind=AccountKind.GUEST, device_id="MINE", inhibit_login=True)
        )

        assert result.device_id != "MINE"
        assert result.access_token
        assert service.whoami(result.access_token).is_guest is True

    def test_guest_honours_display_name(
        self, service: RegistrationService, store: InMemoryRegistrationStore
    ) -> None:
        result = service.register(
            RegistrationRequest(kind=AccountKind.GUEST, initial_device_display_name="Kiosk")
        )

        assert store.get_device_display_name(result.user_id, result.device_id) == "Kiosk"

    def test_guest_access_disabled(
        self, store: InMemoryRegistrationStore, auth_flow: AuthFlowEngine
    ) -> None:
        config = RegistrationConfig(server_name="example.org", allow_guest_access=False)
        service = RegistrationService(store=store, auth_flow=auth_flow, config=config)

        with pytest.raises(GuestAccessForbidden):
            service.register(RegistrationRequest(kind=AccountKind.GUEST))

    def test_guest_allowed_when_registration_disabled(
        self, store: InMemoryRegistrationStore, auth_flow: AuthFlowEngine
    ) -> None:
        config = RegistrationConfig(
            server_name="example.org", enable_registration=False, bcrypt_cost=4
        )
        service = RegistrationService(store=store, auth_flow=auth_flow, config=config)

        result = service.register(RegistrationRequest(kind=AccountKind.GUEST))

        assert result.kind is AccountKind.GUEST


class TestWhoami:
    """Tests for access token authorization."""

    def test_missing_token(self, service: RegistrationService) -> None:
        with pytest.raises(MissingToken):
            service.whoami(None)

    def test_unknown_token(self, service: RegistrationService) -> None:
        with pytest.raises(UnknownToken):
            service.whoami("syt_nope")
