"""Pairing coordinator: the single dispatch path for pairing state.

Wires SessionRegistry, EventRouter and PairingStateMachine together behind
one mailbox and exposes the presentation API (subscribe, view model, user
actions).
"""

import asyncio
import logging
from collections import deque
from typing import Any, Callable, Iterable, Optional

from devpair.pairing.gateway import CommandGateway
from devpair.pairing.projector import project
from devpair.pairing.registry import SessionRegistry
from devpair.pairing.router import EventRouter
from devpair.pairing.scheduler import Scheduler
from devpair.pairing.state_machine import (
    CommandFailed,
    InitiateResolved,
    PairingStateMachine,
    ReturnToIdle,
)
from devpair.pairing.types import (
    CancelPairing,
    PairingOutcome,
    PairingPhase,
    PairingSession,
    UserAction,
    VerificationEvent,
    ViewModel,
)

logger = logging.getLogger(__name__)

ViewModelListener = Callable[[ViewModel], None]
OutcomeListener = Callable[[PairingOutcome], None]


class PairingCoordinator:
    """Serialized owner of the pairing session.

    Inbound events, user actions, command results and timer firings all go
    through one mailbox and are applied to completion one at a time. Anything
    posted while a message is being applied (for example by a listener calling
    ``dispatch``) is queued behind it. Gateway calls run as background tasks;
    ``drain()`` waits for them.

    Usage:
        coordinator = PairingCoordinator(gateway)
        unsubscribe = coordinator.subscribe(render)
        coordinator.dispatch(SelectPeer("peer-9"))
        coordinator.handle_event(event)  # from the event stream
    """

    def __init__(
        self,
        gateway: CommandGateway,
        registry: Optional[SessionRegistry] = None,
        scheduler: Optional[Scheduler] = None,
        return_delay: float = PairingStateMachine.DEFAULT_RETURN_DELAY,
    ):
        """Initialize coordinator.

        Args:
            gateway: Outbound command boundary.
            registry: Active session slot (created if not given).
            scheduler: Timer source for the return delay.
            return_delay: Seconds a finished session stays visible.
        """
        self._registry = registry or SessionRegistry()
        self._machine = PairingStateMachine(
            registry=self._registry,
            gateway=gateway,
            post=self._post,
            scheduler=scheduler,
            return_delay=return_delay,
            on_outcome=self._queue_outcome,
        )
        self._router = EventRouter(self._registry, self._machine)

        self._mailbox: deque[Any] = deque()
        self._draining = False
        self._pending_outcomes: list[PairingOutcome] = []
        self._listeners: list[ViewModelListener] = []
        self._outcome_listeners: list[OutcomeListener] = []
        self._view_model = ViewModel()

    # ------------------------------------------------------------------
    # Presentation API
    # ------------------------------------------------------------------

    def subscribe(self, listener: ViewModelListener) -> Callable[[], None]:
        """Register a listener for view model changes.

        Args:
            listener: Called with each new snapshot.

        Returns:
            Function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def subscribe_outcomes(self, listener: OutcomeListener) -> Callable[[], None]:
        """Register a listener for terminal outcomes (success/failure/cancel).

        Args:
            listener: Called exactly once per finished session.

        Returns:
            Function that removes the listener.
        """
        self._outcome_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._outcome_listeners:
                self._outcome_listeners.remove(listener)

        return unsubscribe

    def get_view_model(self) -> ViewModel:
        """Current presentation snapshot."""
        return self._view_model

    @property
    def phase(self) -> PairingPhase:
        return self._machine.phase

    @property
    def session(self) -> Optional[PairingSession]:
        return self._machine.session

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    def dispatch(self, action: UserAction) -> None:
        """Apply a user action."""
        self._post(action)

    def handle_event(self, event: VerificationEvent) -> None:
        """Apply an event from the peer-networking service."""
        self._post(event)

    def handle_events(self, events: Iterable[VerificationEvent]) -> None:
        """Apply several events delivered in the same turn, in order."""
        for event in events:
            self._post(event)

    async def drain(self) -> None:
        """Wait until no gateway command is outstanding."""
        while True:
            pending = self._machine.pending_commands
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
            # Let done callbacks post their results
            await asyncio.sleep(0)

    async def close(self) -> None:
        """Cancel any active session and wait for outstanding commands."""
        self.dispatch(CancelPairing())
        await self.drain()
        self._machine.close()
        self._listeners.clear()
        self._outcome_listeners.clear()

    # ------------------------------------------------------------------
    # Mailbox
    # ------------------------------------------------------------------

    def _post(self, message: Any) -> None:
        self._mailbox.append(message)
        if self._draining:
            return

        self._draining = True
        try:
            while self._mailbox:
                self._process(self._mailbox.popleft())
        finally:
            self._draining = False

    def _process(self, message: Any) -> None:
        try:
            if isinstance(message, VerificationEvent):
                self._router.on_event(message)
            elif isinstance(message, (InitiateResolved, CommandFailed, ReturnToIdle)):
                self._machine.handle_internal(message)
            else:
                self._machine.handle_action(message)
        except Exception:
            logger.exception(f"Error applying pairing message {message!r}")

        self._publish()

    def _queue_outcome(self, outcome: PairingOutcome) -> None:
        self._pending_outcomes.append(outcome)

    def _publish(self) -> None:
        outcomes, self._pending_outcomes = self._pending_outcomes, []
        view_model = project(self._machine.session, self._machine.phase)
        changed = view_model != self._view_model
        self._view_model = view_model

        if changed:
            for listener in list(self._listeners):
                try:
                    listener(view_model)
                except Exception as e:
                    logger.error(f"View model listener error: {e}")

        for outcome in outcomes:
            for listener in list(self._outcome_listeners):
                try:
                    listener(outcome)
                except Exception as e:
                    logger.error(f"Outcome listener error: {e}")
