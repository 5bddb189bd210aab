"""Pairing data model: sessions, inbound events, user actions, snapshots.

Every loosely-typed shape coming off the wire is parsed into one of the
closed variants defined here before the coordinator looks at it.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from devpair.errors import EventParseError, PairingErrorCode


class Role(Enum):
    """Which side of the handshake this device plays."""

    INITIATOR = "initiator"
    RESPONDER = "responder"


class PairingPhase(Enum):
    """Pairing state machine phases."""

    IDLE = "idle"
    REQUEST_SENT = "request_sent"
    REQUEST_RECEIVED = "request_received"
    PIN_DISPLAY = "pin_display"
    PIN_VERIFYING = "pin_verifying"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_PHASES = frozenset(
    {PairingPhase.COMPLETE, PairingPhase.FAILED, PairingPhase.CANCELLED}
)

ACTIVE_PHASES = frozenset(
    {
        PairingPhase.REQUEST_SENT,
        PairingPhase.REQUEST_RECEIVED,
        PairingPhase.PIN_DISPLAY,
        PairingPhase.PIN_VERIFYING,
    }
)


class EventKind(Enum):
    """Kind of verification event emitted by the peer-networking service."""

    REQUEST = "request"
    VERIFICATION = "verification"
    VERIFYING = "verifying"
    COMPLETE = "complete"
    FAILED = "failed"


PIN_EVENT_KINDS = frozenset({EventKind.VERIFICATION, EventKind.VERIFYING})
OUTCOME_EVENT_KINDS = frozenset({EventKind.COMPLETE, EventKind.FAILED})


@dataclass
class PairingSession:
    """The single pairing attempt currently owned by the coordinator.

    Attributes:
        role: Initiator or Responder; never inferred from the UI.
        peer_id: Remote peer identifier.
        session_id: Service-issued id. None for an Initiator until
            ``initiate`` resolves.
        peer_device_name: Human-readable name of the remote device.
        phase: Current phase.
        pin_code: Short verification code shown to the user.
        local_fingerprint: Fingerprint of this device's identity.
        peer_fingerprint: Fingerprint of the peer's identity.
        error: Failure message (remote text verbatim when available).
        error_code: Failure taxonomy tag.
        accepted: Responder has accepted the inbound request.
        created_at: Unix timestamp when the session was created.
    """

    role: Role
    peer_id: Optional[str]
    session_id: Optional[str] = None
    peer_device_name: Optional[str] = None
    phase: PairingPhase = PairingPhase.IDLE
    pin_code: Optional[str] = None
    local_fingerprint: Optional[str] = None
    peer_fingerprint: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[PairingErrorCode] = None
    accepted: bool = False
    created_at: float = field(default_factory=time.time)

    @property
    def is_initiator(self) -> bool:
        return self.role is Role.INITIATOR

    def short_id(self) -> str:
        """Session id truncated for logging."""
        if not self.session_id:
            return "<pending>"
        return f"{self.session_id[:8]}..."


# Wire keys (camelCase) -> VerificationEvent field names
_EVENT_FIELDS = {
    "peerId": "peer_id",
    "deviceName": "device_name",
    "code": "code",
    "localFingerprint": "local_fingerprint",
    "peerFingerprint": "peer_fingerprint",
    "error": "error",
    "timestamp": "timestamp",
}


@dataclass(frozen=True)
class VerificationEvent:
    """Immutable verification event from the peer-networking service."""

    session_id: str
    kind: EventKind
    peer_id: Optional[str] = None
    device_name: Optional[str] = None
    code: Optional[str] = None
    local_fingerprint: Optional[str] = None
    peer_fingerprint: Optional[str] = None
    error: Optional[str] = None
    timestamp: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VerificationEvent":
        """Parse the wire representation of an event.

        Args:
            data: Decoded JSON object with camelCase keys.

        Returns:
            Parsed event.

        Raises:
            EventParseError: If the payload is not an object, has no
                session id, or carries an unknown kind.
        """
        if not isinstance(data, dict):
            raise EventParseError("Event payload must be an object")

        session_id = data.get("sessionId")
        if not isinstance(session_id, str) or not session_id:
            raise EventParseError("Event is missing sessionId")

        try:
            kind = EventKind(data.get("kind"))
        except ValueError:
            raise EventParseError(
                f"Unknown event kind: {data.get('kind')!r}"
            ) from None

        optional = {
            attr: data[key]
            for key, attr in _EVENT_FIELDS.items()
            if data.get(key) is not None
        }
        return cls(session_id=session_id, kind=kind, **optional)


@dataclass(frozen=True)
class DedupKey:
    """Identity of a completion notification, used to drop redeliveries."""

    session_id: str
    peer_id: Optional[str]
    outcome: EventKind
    reason: Optional[str]
    timestamp: Optional[int]

    @classmethod
    def from_event(cls, event: VerificationEvent) -> "DedupKey":
        return cls(
            session_id=event.session_id,
            peer_id=event.peer_id,
            outcome=event.kind,
            reason=event.error,
            timestamp=event.timestamp,
        )


@dataclass(frozen=True)
class InitiateResponse:
    """Result of asking the service to start pairing with a peer."""

    session_id: str
    success: bool = True
    error: Optional[str] = None


@dataclass(frozen=True)
class PairingOutcome:
    """Terminal result of a pairing session, emitted exactly once."""

    session_id: Optional[str]
    peer_id: Optional[str]
    phase: PairingPhase
    error_code: Optional[PairingErrorCode] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.phase is PairingPhase.COMPLETE


# ============================================================================
# User actions
# ============================================================================


@dataclass(frozen=True)
class SelectPeer:
    """Start pairing with a discovered peer (becomes Initiator)."""

    peer_id: str
    device_name: Optional[str] = None


@dataclass(frozen=True)
class AcceptRequest:
    """Accept the inbound pairing request (Responder)."""


@dataclass(frozen=True)
class RejectRequest:
    """Reject the inbound pairing request (Responder)."""


@dataclass(frozen=True)
class ConfirmPin:
    """User's answer to "does the PIN match the other device?"."""

    matches: bool


@dataclass(frozen=True)
class CancelPairing:
    """Abandon the current pairing attempt."""


UserAction = Union[SelectPeer, AcceptRequest, RejectRequest, ConfirmPin, CancelPairing]


# ============================================================================
# Presentation snapshot
# ============================================================================


class DialogKind(Enum):
    """Which dialog the presentation layer should show."""

    NONE = "none"
    CONNECTING = "connecting"
    REQUEST = "request"
    PIN = "pin"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class ViewModel:
    """Presentation-ready snapshot of pairing progress."""

    dialog_open: bool = False
    dialog_kind: DialogKind = DialogKind.NONE
    pin_code: Optional[str] = None
    peer_name: Optional[str] = None
    is_initiator: bool = False
    busy: bool = False
    error_message: Optional[str] = None
    peer_fingerprint: Optional[str] = None
    local_fingerprint: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize with camelCase keys for the presentation layer."""
        return {
            "dialogOpen": self.dialog_open,
            "dialogKind": self.dialog_kind.value,
            "pinCode": self.pin_code,
            "peerName": self.peer_name,
            "isInitiator": self.is_initiator,
            "busy": self.busy,
            "errorMessage": self.error_message,
            "peerFingerprint": self.peer_fingerprint,
            "localFingerprint": self.local_fingerprint,
        }
