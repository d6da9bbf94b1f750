"""
User-Interactive Authentication - registration auth flow state machine.

A registration attempt must complete every stage of at least one configured
flow (for example ``[["m.login.dummy"], ["m.login.registration_token"]]``)
before an account is created. Progress is tracked in a server-held session
table keyed by an opaque session ID handed to the client on the first round.

Session lifecycle (see AuthSessionState):
    NOT_STARTED -> IN_PROGRESS -> COMPLETED -> (finished)
                               -> EXPIRED

A COMPLETED session stays in the table until the caller reports that the
account was committed (``finish``). Until then it is claimed by one
request at a time; ``release`` hands it back so a failed commit can be
retried without repeating the stages.

Concurrency:
- The session table is guarded by one lock held only for lookups, inserts
  and removals.
- Each session carries its own lock, held while a stage proof is verified
  and applied, so concurrent rounds for one session never interleave.
- Lock order is always session lock, then table lock.

Expiry is lazy: every call sweeps sessions older than the TTL.
"""

import logging
import secrets
import threading
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .ports import AuthSessionState, AuthStageChecker

logger = logging.getLogger(__name__)

STAGE_DUMMY = "m.login.dummy"
STAGE_REGISTRATION_TOKEN = "m.login.registration_token"


class DummyStageChecker:
    """m.login.dummy: always succeeds, used to let clients finish a flow."""

    def check(self, auth: Mapping[str, Any]) -> bool:
        return True


class RegistrationTokenStageChecker:
    """
    m.login.registration_token: proof is a pre-shared registration token.

    Every configured token is compared in constant time so response timing
    does not reveal which token (if any) was close.
    """

    def __init__(self, tokens: Iterable[str]) -> None:
        self._tokens = [token.encode() for token in tokens]

    def check(self, auth: Mapping[str, Any]) -> bool:
        token = auth.get("token")
        if not isinstance(token, str) or not token:
            return False

        candidate = token.encode()
        matched = False
        for known in self._tokens:
            matched |= secrets.compare_digest(known, candidate)
        return matched


@dataclass
class AuthSession:
    """Server-held progress of one registration attempt."""

    session_id: str
    created_at: float
    completed: set[str] = field(default_factory=set)
    state: AuthSessionState = AuthSessionState.IN_PROGRESS
    claimed: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


@dataclass(frozen=True)
class AuthFlowStatus:
    """
    Result of one auth round.

    When ``state`` is IN_PROGRESS the client must retry with ``session_id``;
    ``errcode``/``error`` are set if the submitted proof was rejected.
    """

    session_id: str
    state: AuthSessionState
    flows: tuple[tuple[str, ...], ...]
    completed: tuple[str, ...]
    errcode: str | None = None
    error: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.state is AuthSessionState.COMPLETED


class AuthFlowEngine:
    """
    Selects and verifies the stages required before registration completes.

    Shared by all requests for the lifetime of the process.
    """

    def __init__(
        self,
        flows: Sequence[Sequence[str]],
        checkers: Mapping[str, AuthStageChecker],
        session_ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize engine with the server's acceptable flows.

        Args:
            flows: Alternative stage combinations; completing any one suffices
            checkers: Stage type -> proof verifier
            session_ttl_seconds: Lifetime of an uncompleted session
            clock: Monotonic time source (injectable for tests)

        Raises:
            ValueError: If no flows are configured, a flow is empty, or a flow
                names a stage that has no checker
        """
        if not flows:
            raise ValueError("At least one registration flow must be configured")
        for flow in flows:
            if not flow:
                raise ValueError("Registration flows must name at least one stage")
            missing = [stage for stage in flow if stage not in checkers]
            if missing:
                raise ValueError(f"No checker configured for stage(s): {', '.join(missing)}")

        self._flows = tuple(tuple(flow) for flow in flows)
        self._stages = {stage for flow in self._flows for stage in flow}
        self._checkers = dict(checkers)
        self._ttl = session_ttl_seconds
        self._clock = clock
        self._sessions: dict[str, AuthSession] = {}
        self._lock = threading.Lock()

    @property
    def flows(self) -> tuple[tuple[str, ...], ...]:
        return self._flows

    @property
    def active_sessions(self) -> int:
        """Number of unexpired sessions not yet finished."""
        with self._lock:
            self._expire_sessions(self._clock())
            return len(self._sessions)

    def get_state(self, session_id: str) -> AuthSessionState:
        """
        Current state of a session as seen by a new request.

        Finished and expired sessions are no longer held, so they read as
        NOT_STARTED.
        """
        with self._lock:
            self._expire_sessions(self._clock())
            session = self._sessions.get(session_id)
        if session is None:
            return AuthSessionState.NOT_STARTED
        return session.state

    def check_auth(self, auth: Mapping[str, Any] | None) -> AuthFlowStatus:
        """
        Apply one round of the auth protocol.

        Args:
            auth: Client auth dict: optional ``session``, optional ``type``
                naming the stage being proven, plus stage-specific fields.
                None on the first round.

        Returns:
            AuthFlowStatus, COMPLETED once an acceptable flow is satisfied.
            A COMPLETED status claims the session: the caller must follow up
            with ``finish`` or ``release``.
        """
        auth = auth or {}
        stage = auth.get("type")
        session_id = auth.get("session")

        while True:
            session = self._get_or_start(session_id)
            with session.lock:
                if session.state is AuthSessionState.COMPLETED and not session.claimed:
                    session.claimed = True
                    return self._status(session)
                if session.state is not AuthSessionState.IN_PROGRESS:
                    # Expired, or claimed by a concurrent round; start over
                    session_id = None
                    continue
                return self._advance(session, stage, auth)

    def finish(self, session_id: str) -> None:
        """Destroy a completed session once its account has been committed."""
        with self._lock:
            self._sessions.pop(session_id, None)
        logger.info("Auth session %s finished", session_id)

    def release(self, session_id: str) -> None:
        """Hand a claimed session back after a failed commit so it can be retried."""
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            return
        with session.lock:
            session.claimed = False

    def _get_or_start(self, session_id: Any) -> AuthSession:
        now = self._clock()
        with self._lock:
            self._expire_sessions(now)
            if isinstance(session_id, str) and session_id in self._sessions:
                return self._sessions[session_id]

            session = AuthSession(session_id=secrets.token_urlsafe(24), created_at=now)
            self._sessions[session.session_id] = session
            if session_id is not None:
                logger.info("Unknown or expired auth session; started %s", session.session_id)
            return session

    def _advance(self, session: AuthSession, stage: Any, auth: Mapping[str, Any]) -> AuthFlowStatus:
        errcode = None
        error = None

        if stage is not None:
            if not isinstance(stage, str) or stage not in self._stages:
                errcode, error = "M_UNRECOGNIZED", f"Unrecognised stage type: {stage}"
            elif stage in session.completed:
                pass
            elif self._checkers[stage].check(auth):
                session.completed.add(stage)
            else:
                logger.warning("Auth stage %s rejected for session %s", stage, session.session_id)
                errcode, error = "M_FORBIDDEN", f"Stage {stage} was not completed"

        if any(session.completed.issuperset(flow) for flow in self._flows):
            session.state = AuthSessionState.COMPLETED
            session.claimed = True
            logger.info("Auth session %s completed", session.session_id)

        return self._status(session, errcode, error)

    def _status(
        self, session: AuthSession, errcode: str | None = None, error: str | None = None
    ) -> AuthFlowStatus:
        return AuthFlowStatus(
            session_id=session.session_id,
            state=session.state,
            flows=self._flows,
            completed=tuple(sorted(session.completed)),
            errcode=errcode,
            error=error,
        )

    def _expire_sessions(self, now: float) -> None:
        """Drop sessions past their TTL. Caller holds the table lock."""
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if now - session.created_at >= self._ttl
        ]
        for session_id in expired:
            self._sessions.pop(session_id).state = AuthSessionState.EXPIRED
        if expired:
            logger.warning("Expired %d abandoned auth session(s)", len(expired))
