"""Fencing and idempotence filter for the verification event stream."""

import logging
from typing import Protocol

from devpair.errors import SessionConflictError
from devpair.pairing.registry import SessionRegistry
from devpair.pairing.types import (
    OUTCOME_EVENT_KINDS,
    PIN_EVENT_KINDS,
    DedupKey,
    EventKind,
    Role,
    VerificationEvent,
)

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    """Consumer of validated events (a pairing or setup state machine)."""

    def can_start_session(self) -> bool:
        """Whether an inbound request may open a new session right now."""
        ...

    def handle_event(self, event: VerificationEvent) -> None:
        """Apply a validated event."""
        ...


class EventRouter:
    """Validate raw verification events before they reach the state machine.

    Routing rules, applied in order:
    - ``request`` with no active session registers it synchronously as a
      Responder session and forwards it, so a ``verification`` queued right
      behind it in the same turn is already recognised.
    - ``verification``/``verifying`` are forwarded only for the active session.
    - ``complete``/``failed`` are forwarded at most once per dedup key, for the
      active session only, after which the registry is cleared.

    Everything else is dropped silently.
    """

    def __init__(self, registry: SessionRegistry, sink: EventSink):
        """Initialize router.

        Args:
            registry: Active session slot used for fencing.
            sink: Receives validated events.
        """
        self._registry = registry
        self._sink = sink

    def on_event(self, event: VerificationEvent) -> bool:
        """Route one event.

        Args:
            event: Raw event from the peer-networking service.

        Returns:
            True if the event was forwarded, False if it was discarded.
        """
        if event.kind is EventKind.REQUEST:
            return self._route_request(event)

        if not self._registry.is_active(event.session_id):
            logger.debug(
                f"Dropping {event.kind.value} for inactive session "
                f"{event.session_id[:8]}..."
            )
            return False

        if event.kind in PIN_EVENT_KINDS:
            self._sink.handle_event(event)
            return True

        if event.kind in OUTCOME_EVENT_KINDS:
            return self._route_outcome(event)

        return False

    def _route_request(self, event: VerificationEvent) -> bool:
        if self._registry.has_active() or not self._sink.can_start_session():
            logger.debug(
                f"Dropping pairing request {event.session_id[:8]}...: "
                "another session is in progress"
            )
            return False

        try:
            self._registry.set_active(event.session_id, Role.RESPONDER)
        except SessionConflictError as e:
            logger.debug(f"Dropping pairing request: {e}")
            return False

        self._sink.handle_event(event)
        return True

    def _route_outcome(self, event: VerificationEvent) -> bool:
        if not self._registry.mark_seen(DedupKey.from_event(event)):
            logger.debug(
                f"Dropping duplicate {event.kind.value} for "
                f"{event.session_id[:8]}..."
            )
            return False

        try:
            self._sink.handle_event(event)
        finally:
            self._registry.clear()
        return True
