"""Pairing during first-run setup (joining an existing space).

A simplified variant of the pairing coordinator: the joining device is
always the Initiator, confirms the short code once and then waits for the
service to finish. Fencing and completion dedup are shared with the main
coordinator through SessionRegistry and EventRouter.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from devpair.errors import (
    PairingError,
    PairingErrorCode,
    SessionConflictError,
    classify_remote_error,
)
from devpair.pairing.gateway import CommandGateway
from devpair.pairing.registry import SessionRegistry
from devpair.pairing.router import EventRouter
from devpair.pairing.types import (
    PIN_EVENT_KINDS,
    CancelPairing,
    EventKind,
    Role,
    SelectPeer,
    VerificationEvent,
)

logger = logging.getLogger(__name__)


class SetupError(Enum):
    """Errors shown on the setup screens."""

    NETWORK_TIMEOUT = "NetworkTimeout"
    PEER_UNAVAILABLE = "PeerUnavailable"
    PAIRING_REJECTED = "PairingRejected"
    PAIRING_FAILED = "PairingFailed"


_SETUP_ERRORS = {
    PairingErrorCode.NETWORK_TIMEOUT: SetupError.NETWORK_TIMEOUT,
    PairingErrorCode.PEER_UNAVAILABLE: SetupError.PEER_UNAVAILABLE,
    PairingErrorCode.PAIRING_REJECTED: SetupError.PAIRING_REJECTED,
}


def to_setup_error(code: PairingErrorCode) -> SetupError:
    """Collapse the pairing taxonomy onto the setup one."""
    return _SETUP_ERRORS.get(code, SetupError.PAIRING_FAILED)


# ============================================================================
# States
# ============================================================================


@dataclass(frozen=True)
class JoinSpaceSelectDevice:
    """Picking the device to join through."""

    error: Optional[SetupError] = None


@dataclass(frozen=True)
class JoinSpaceConfirmPeer:
    """Short code shown, waiting for the user to confirm it."""

    session_id: str
    short_code: str
    peer_fingerprint: Optional[str] = None
    error: Optional[SetupError] = None


@dataclass(frozen=True)
class ProcessingJoinSpace:
    """Waiting on the service."""

    message: Optional[str] = None


@dataclass(frozen=True)
class Completed:
    """Pairing finished; setup can move on."""


SetupState = Union[
    JoinSpaceSelectDevice, JoinSpaceConfirmPeer, ProcessingJoinSpace, Completed
]


# ============================================================================
# Events
# ============================================================================


@dataclass(frozen=True)
class ConfirmPeer:
    """User confirmed the short code matches."""


SetupEvent = Union[SelectPeer, ConfirmPeer, CancelPairing]

StateListener = Callable[[SetupState], None]


class SetupPairingFlow:
    """Drives pairing for the join-space setup screens.

    Network events go through ``on_event``; user events through ``handle``.
    The joining device never accepts inbound pairing requests.
    """

    def __init__(
        self,
        gateway: CommandGateway,
        registry: Optional[SessionRegistry] = None,
    ):
        """Initialize setup flow.

        Args:
            gateway: Outbound command boundary.
            registry: Active session slot (created if not given).
        """
        self._gateway = gateway
        self._registry = registry or SessionRegistry()
        self._router = EventRouter(self._registry, self)
        self._state: SetupState = JoinSpaceSelectDevice()
        self._session_id: Optional[str] = None
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> SetupState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener for state changes."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def handle(self, event: SetupEvent) -> SetupState:
        """Apply a user event and return the resulting state."""
        if isinstance(event, SelectPeer):
            await self._select_peer(event.peer_id)
        elif isinstance(event, ConfirmPeer):
            await self._confirm()
        elif isinstance(event, CancelPairing):
            await self._cancel()
        return self._state

    def on_event(self, event: VerificationEvent) -> SetupState:
        """Apply a verification event from the service."""
        self._router.on_event(event)
        return self._state

    # EventSink

    def can_start_session(self) -> bool:
        return False

    def handle_event(self, event: VerificationEvent) -> None:
        if event.session_id != self._session_id:
            return

        if event.kind in PIN_EVENT_KINDS:
            if isinstance(self._state, ProcessingJoinSpace) and event.code:
                self._set_state(
                    JoinSpaceConfirmPeer(
                        session_id=event.session_id,
                        short_code=event.code,
                        peer_fingerprint=event.peer_fingerprint,
                    )
                )
        elif event.kind is EventKind.COMPLETE:
            self._session_id = None
            self._set_state(Completed())
        elif event.kind is EventKind.FAILED:
            self._session_id = None
            self._set_state(
                JoinSpaceSelectDevice(
                    error=to_setup_error(classify_remote_error(event.error))
                )
            )

    # Transitions

    async def _select_peer(self, peer_id: str) -> None:
        if not isinstance(self._state, JoinSpaceSelectDevice):
            return

        waiting = ProcessingJoinSpace(message=f"Connecting to {peer_id}")
        self._set_state(waiting)

        try:
            response = await self._gateway.initiate(peer_id)
        except PairingError as e:
            logger.warning(f"Setup pairing initiate failed: {e}")
            self._fail_if_current(waiting, to_setup_error(e.code))
            return
        except Exception as e:
            logger.warning(f"Setup pairing initiate failed: {e}")
            self._fail_if_current(waiting, SetupError.PAIRING_FAILED)
            return

        if self._state is not waiting:
            # Cancelled while waiting for the service
            if response.success and response.session_id:
                await self._cancel_remote(response.session_id)
            return

        if not response.success:
            logger.warning(f"Setup pairing refused: {response.error}")
            self._set_state(
                JoinSpaceSelectDevice(
                    error=to_setup_error(classify_remote_error(response.error))
                )
            )
            return

        try:
            self._registry.set_active(response.session_id, Role.INITIATOR)
        except SessionConflictError as e:
            logger.warning(f"Setup pairing conflict: {e}")
            await self._cancel_remote(response.session_id)
            self._set_state(JoinSpaceSelectDevice(error=SetupError.PAIRING_FAILED))
            return

        self._session_id = response.session_id

    async def _confirm(self) -> None:
        state = self._state
        if not isinstance(state, JoinSpaceConfirmPeer):
            return

        waiting = ProcessingJoinSpace(message="Verifying")
        self._set_state(waiting)
        try:
            await self._gateway.verify_pin(state.session_id, True)
        except Exception as e:
            logger.warning(f"Setup pairing confirmation failed: {e}")
            code = PairingErrorCode.PAIRING_FAILED
            if isinstance(e, PairingError):
                code = e.code
            self._fail_if_current(waiting, to_setup_error(code))

    async def _cancel(self) -> None:
        session_id = self._session_id
        self._session_id = None
        if session_id is not None and self._registry.is_active(session_id):
            self._registry.clear()
        self._set_state(JoinSpaceSelectDevice())
        if session_id is not None:
            await self._cancel_remote(session_id)

    # Helpers

    def _fail_if_current(self, expected: SetupState, error: SetupError) -> None:
        if self._state is not expected:
            return
        if self._session_id is not None and self._registry.is_active(self._session_id):
            self._registry.clear()
        self._session_id = None
        self._set_state(JoinSpaceSelectDevice(error=error))

    async def _cancel_remote(self, session_id: str) -> None:
        try:
            await self._gateway.cancel(session_id)
        except Exception as e:
            logger.warning(f"Best-effort cancel failed: {e}")

    def _set_state(self, state: SetupState) -> None:
        self._state = state
        logger.debug(f"Setup pairing state: {state!r}")
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"Setup state listener error: {e}")
