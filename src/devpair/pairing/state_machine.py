"""Pairing state machine.

Consumes router-validated verification events and user actions, computes the
next phase and issues commands through the CommandGateway. Command results
come back as messages through ``post`` so that they are applied on the same
serialized path as everything else.

Phases:
    IDLE -> REQUEST_SENT | REQUEST_RECEIVED -> PIN_DISPLAY -> PIN_VERIFYING
         -> COMPLETE | FAILED | CANCELLED -> IDLE
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Optional

from devpair.errors import (
    PairingError,
    PairingErrorCode,
    SessionConflictError,
    classify_remote_error,
)
from devpair.pairing.gateway import CommandGateway
from devpair.pairing.registry import SessionRegistry
from devpair.pairing.scheduler import AsyncioScheduler, Scheduler, TimerHandle
from devpair.pairing.types import (
    ACTIVE_PHASES,
    PIN_EVENT_KINDS,
    AcceptRequest,
    CancelPairing,
    ConfirmPin,
    EventKind,
    InitiateResponse,
    PairingOutcome,
    PairingPhase,
    PairingSession,
    RejectRequest,
    Role,
    SelectPeer,
    UserAction,
    VerificationEvent,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Internal messages posted back into the dispatch path
# ============================================================================


@dataclass(frozen=True)
class InitiateResolved:
    """``initiate`` returned for the session of the given generation."""

    generation: int
    response: InitiateResponse


@dataclass(frozen=True)
class CommandFailed:
    """A command that the session depends on raised."""

    generation: int
    command: str
    error: BaseException


@dataclass(frozen=True)
class ReturnToIdle:
    """Return delay elapsed for a finished session."""

    generation: int


InternalMessage = InitiateResolved | CommandFailed | ReturnToIdle

OutcomeCallback = Callable[[PairingOutcome], None]


class PairingStateMachine:
    """Finite-state core of the pairing coordinator.

    Not thread-safe and not re-entrant: all methods must be called from the
    owning coordinator's dispatch path, one message at a time. No method
    raises; failures become a FAILED transition.

    A ``generation`` counter identifies each session instance, including an
    Initiator session whose id is not known yet. Results and timers carry the
    generation they were started under and are ignored once it has moved on.
    """

    DEFAULT_RETURN_DELAY = 2.0  # seconds

    def __init__(
        self,
        registry: SessionRegistry,
        gateway: CommandGateway,
        post: Callable[[Any], None],
        scheduler: Optional[Scheduler] = None,
        return_delay: float = DEFAULT_RETURN_DELAY,
        on_outcome: Optional[OutcomeCallback] = None,
    ):
        """Initialize state machine.

        Args:
            registry: Active session slot shared with the router.
            gateway: Outbound command boundary.
            post: Enqueues an internal message on the dispatch path.
            scheduler: Timer source for the return delay.
            return_delay: Seconds COMPLETE/FAILED stay visible before IDLE.
            on_outcome: Called once per terminal transition.
        """
        self._registry = registry
        self._gateway = gateway
        self._post = post
        self._scheduler = scheduler or AsyncioScheduler()
        self._return_delay = return_delay
        self._on_outcome = on_outcome

        self._session: Optional[PairingSession] = None
        self._generation = 0
        self._return_timer: Optional[TimerHandle] = None
        self._tasks: set[asyncio.Future] = set()

    @property
    def session(self) -> Optional[PairingSession]:
        """Current session, or None when idle."""
        return self._session

    @property
    def phase(self) -> PairingPhase:
        """Current phase."""
        if self._session is None:
            return PairingPhase.IDLE
        return self._session.phase

    @property
    def pending_commands(self) -> list[asyncio.Future]:
        """Commands that have been issued and not yet finished."""
        return list(self._tasks)

    def can_start_session(self) -> bool:
        """A new session may begin unless one is in progress."""
        return self.phase not in ACTIVE_PHASES

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def handle_action(self, action: UserAction) -> None:
        """Apply a user decision."""
        if isinstance(action, SelectPeer):
            self._select_peer(action)
        elif isinstance(action, AcceptRequest):
            self._accept()
        elif isinstance(action, RejectRequest):
            self._reject()
        elif isinstance(action, ConfirmPin):
            self._confirm_pin(action.matches)
        elif isinstance(action, CancelPairing):
            self._cancel()
        else:
            logger.warning(f"Unknown pairing action: {action!r}")

    def handle_event(self, event: VerificationEvent) -> None:
        """Apply a router-validated verification event."""
        if event.kind is EventKind.REQUEST:
            self._request_received(event)
            return

        session = self._session
        if session is None or session.session_id != event.session_id:
            logger.debug(f"Ignoring {event.kind.value}: no matching session")
            return

        if event.kind in PIN_EVENT_KINDS:
            self._pin_ready(session, event)
        elif event.kind is EventKind.COMPLETE:
            if session.phase in ACTIVE_PHASES:
                self._complete(session)
        elif event.kind is EventKind.FAILED:
            if session.phase in ACTIVE_PHASES:
                self._fail(session, classify_remote_error(event.error), event.error)

    def handle_internal(self, message: InternalMessage) -> None:
        """Apply a command result or timer firing."""
        if isinstance(message, InitiateResolved):
            self._initiate_resolved(message)
        elif isinstance(message, CommandFailed):
            self._command_failed(message)
        elif isinstance(message, ReturnToIdle):
            self._return_to_idle(message)

    def close(self) -> None:
        """Cancel the pending return timer."""
        self._cancel_return_timer()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _select_peer(self, action: SelectPeer) -> None:
        if not self.can_start_session():
            logger.debug(f"Ignoring select peer in {self.phase.value}")
            return

        self._begin(
            PairingSession(
                role=Role.INITIATOR,
                peer_id=action.peer_id,
                peer_device_name=action.device_name,
                phase=PairingPhase.REQUEST_SENT,
            )
        )
        logger.info(f"Pairing with peer {action.peer_id}")
        self._issue("initiate", self._gateway.initiate(action.peer_id), fatal=True)

    def _request_received(self, event: VerificationEvent) -> None:
        if not self.can_start_session():
            logger.debug(f"Ignoring request in {self.phase.value}")
            return

        self._begin(
            PairingSession(
                role=Role.RESPONDER,
                peer_id=event.peer_id,
                session_id=event.session_id,
                peer_device_name=event.device_name,
                phase=PairingPhase.REQUEST_RECEIVED,
            )
        )
        logger.info(
            f"Pairing request from {event.device_name or event.peer_id or 'unknown'} "
            f"({event.session_id[:8]}...)"
        )

    def _initiate_resolved(self, message: InitiateResolved) -> None:
        response = message.response
        session = self._session

        if (
            message.generation != self._generation
            or session is None
            or session.phase is not PairingPhase.REQUEST_SENT
        ):
            # User moved on before the service answered
            if response.success and response.session_id:
                logger.info(
                    f"Cancelling superseded session {response.session_id[:8]}..."
                )
                self._issue("cancel", self._gateway.cancel(response.session_id))
            return

        if not response.success:
            self._fail(session, PairingErrorCode.PAIRING_FAILED, response.error)
            return

        try:
            self._registry.set_active(response.session_id, Role.INITIATOR)
        except SessionConflictError as e:
            logger.warning(f"Cannot bind pairing session: {e}")
            self._issue("cancel", self._gateway.cancel(response.session_id))
            self._fail(session, PairingErrorCode.SESSION_CONFLICT, None)
            return

        session.session_id = response.session_id
        logger.info(f"Pairing session started: {session.short_id()}")

    def _pin_ready(self, session: PairingSession, event: VerificationEvent) -> None:
        if session.phase in (PairingPhase.REQUEST_SENT, PairingPhase.REQUEST_RECEIVED):
            self._store_pin(session, event)
            session.phase = PairingPhase.PIN_DISPLAY
            logger.info(f"PIN ready for session {session.short_id()}")
        elif (
            session.phase is PairingPhase.PIN_DISPLAY
            and event.kind is EventKind.VERIFICATION
        ):
            self._store_pin(session, event)

    def _accept(self) -> None:
        session = self._session
        if session is None or session.phase is not PairingPhase.REQUEST_RECEIVED:
            logger.debug(f"Ignoring accept in {self.phase.value}")
            return
        if session.accepted:
            return

        session.accepted = True
        self._issue("accept", self._gateway.accept(session.session_id), fatal=True)

    def _reject(self) -> None:
        session = self._session
        if session is None or session.phase is not PairingPhase.REQUEST_RECEIVED:
            logger.debug(f"Ignoring reject in {self.phase.value}")
            return

        self._issue("reject", self._gateway.reject(session.session_id, session.peer_id))
        logger.info(f"Pairing request rejected: {session.short_id()}")
        self._end_locally(session, PairingErrorCode.PAIRING_REJECTED)

    def _confirm_pin(self, matches: bool) -> None:
        session = self._session
        if session is None or session.phase is not PairingPhase.PIN_DISPLAY:
            logger.debug(f"Ignoring PIN confirmation in {self.phase.value}")
            return

        if matches:
            session.phase = PairingPhase.PIN_VERIFYING
            self._issue(
                "verify_pin",
                self._gateway.verify_pin(session.session_id, True),
                fatal=True,
            )
            return

        # Resolved locally; the remote side reports its own failure
        self._issue("verify_pin", self._gateway.verify_pin(session.session_id, False))
        self._fail(session, PairingErrorCode.PIN_MISMATCH, None)

    def _cancel(self) -> None:
        session = self._session
        if session is None:
            return

        if session.phase in ACTIVE_PHASES:
            if session.session_id:
                self._issue("cancel", self._gateway.cancel(session.session_id))
            logger.info(f"Pairing cancelled: {session.short_id()}")
            self._end_locally(session, None)
        else:
            # Dismissing a finished session during the return delay
            self._reset()

    def _complete(self, session: PairingSession) -> None:
        session.phase = PairingPhase.COMPLETE
        self._release(session)
        logger.info(f"Pairing complete: {session.short_id()}")
        self._emit(session)
        self._schedule_return()

    def _fail(
        self,
        session: PairingSession,
        code: PairingErrorCode,
        error: Optional[str],
    ) -> None:
        session.phase = PairingPhase.FAILED
        session.error_code = code
        session.error = error
        self._release(session)
        logger.warning(
            f"Pairing failed: {session.short_id()} ({code.value}"
            f"{': ' + error if error else ''})"
        )
        self._emit(session)
        self._schedule_return()

    def _end_locally(
        self, session: PairingSession, code: Optional[PairingErrorCode]
    ) -> None:
        """Tear down immediately without a return delay."""
        session.phase = PairingPhase.CANCELLED
        session.error_code = code
        self._release(session)
        self._emit(session)
        self._reset()

    def _command_failed(self, message: CommandFailed) -> None:
        session = self._session
        if (
            message.generation != self._generation
            or session is None
            or session.phase not in ACTIVE_PHASES
        ):
            logger.debug(f"Ignoring stale {message.command} failure: {message.error}")
            return

        logger.warning(f"Pairing command {message.command} failed: {message.error}")
        code = PairingErrorCode.COMMAND_DISPATCH_ERROR
        if isinstance(message.error, PairingError):
            code = message.error.code
        self._fail(session, code, None)

    def _return_to_idle(self, message: ReturnToIdle) -> None:
        if message.generation != self._generation:
            return
        if self.phase in (PairingPhase.COMPLETE, PairingPhase.FAILED):
            self._reset()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _begin(self, session: PairingSession) -> None:
        self._cancel_return_timer()
        self._generation += 1
        self._session = session

    def _reset(self) -> None:
        self._cancel_return_timer()
        self._generation += 1
        self._session = None

    def _release(self, session: PairingSession) -> None:
        """Free the registry slot if this session holds it."""
        if self._registry.is_active(session.session_id):
            self._registry.clear()

    def _store_pin(self, session: PairingSession, event: VerificationEvent) -> None:
        session.pin_code = event.code or session.pin_code
        session.local_fingerprint = event.local_fingerprint or session.local_fingerprint
        session.peer_fingerprint = event.peer_fingerprint or session.peer_fingerprint
        session.peer_device_name = event.device_name or session.peer_device_name
        session.peer_id = session.peer_id or event.peer_id

    def _emit(self, session: PairingSession) -> None:
        if self._on_outcome is None:
            return
        self._on_outcome(
            PairingOutcome(
                session_id=session.session_id,
                peer_id=session.peer_id,
                phase=session.phase,
                error_code=session.error_code,
                error=session.error,
            )
        )

    def _schedule_return(self) -> None:
        self._cancel_return_timer()
        generation = self._generation
        self._return_timer = self._scheduler.call_later(
            self._return_delay, lambda: self._post(ReturnToIdle(generation))
        )

    def _cancel_return_timer(self) -> None:
        if self._return_timer is not None:
            self._return_timer.cancel()
            self._return_timer = None

    def _issue(
        self,
        command: str,
        coro: Coroutine[Any, Any, Any],
        fatal: bool = False,
    ) -> None:
        """Run a gateway command in the background.

        Args:
            command: Command name for logging.
            coro: The gateway call.
            fatal: Whether a failure should fail the current session.
                Best-effort commands only log.
        """
        generation = self._generation
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            # No running event loop; the command can never be sent
            coro.close()
            self._on_command_done_error(command, generation, fatal, e)
            return

        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(
            lambda t: self._on_command_done(t, command, generation, fatal)
        )

    def _on_command_done(
        self, task: asyncio.Future, command: str, generation: int, fatal: bool
    ) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return

        error = task.exception()
        if error is not None:
            self._on_command_done_error(command, generation, fatal, error)
        elif command == "initiate":
            self._post(InitiateResolved(generation, task.result()))

    def _on_command_done_error(
        self, command: str, generation: int, fatal: bool, error: BaseException
    ) -> None:
        if fatal:
            self._post(CommandFailed(generation, command, error))
        else:
            logger.warning(f"Best-effort {command} failed: {error}")
