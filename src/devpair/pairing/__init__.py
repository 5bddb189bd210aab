"""Pairing module for devpair.

Provides the client-side pairing session coordinator including:
- Session fencing and completion dedup (SessionRegistry, EventRouter)
- The pairing state machine
- Command gateway and event stream clients for the peer-networking service
- View model projection for the presentation layer
"""

from .coordinator import PairingCoordinator
from .event_stream import PairingEventStream
from .gateway import CommandGateway, HttpCommandGateway
from .projector import project
from .registry import SessionRegistry
from .router import EventRouter
from .scheduler import AsyncioScheduler, ManualScheduler
from .state_machine import PairingStateMachine
from .types import (
    AcceptRequest,
    CancelPairing,
    ConfirmPin,
    DedupKey,
    DialogKind,
    EventKind,
    InitiateResponse,
    PairingOutcome,
    PairingPhase,
    PairingSession,
    RejectRequest,
    Role,
    SelectPeer,
    VerificationEvent,
    ViewModel,
)

__all__ = [
    "AcceptRequest",
    "AsyncioScheduler",
    "CancelPairing",
    "CommandGateway",
    "ConfirmPin",
    "DedupKey",
    "DialogKind",
    "EventKind",
    "EventRouter",
    "HttpCommandGateway",
    "InitiateResponse",
    "ManualScheduler",
    "PairingCoordinator",
    "PairingEventStream",
    "PairingOutcome",
    "PairingPhase",
    "PairingSession",
    "PairingStateMachine",
    "RejectRequest",
    "Role",
    "SelectPeer",
    "SessionRegistry",
    "VerificationEvent",
    "ViewModel",
    "project",
]
