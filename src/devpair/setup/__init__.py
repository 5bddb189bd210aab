"""First-run setup pairing flow."""

from .flow import (
    Completed,
    ConfirmPeer,
    JoinSpaceConfirmPeer,
    JoinSpaceSelectDevice,
    ProcessingJoinSpace,
    SetupError,
    SetupPairingFlow,
)

__all__ = [
    "Completed",
    "ConfirmPeer",
    "JoinSpaceConfirmPeer",
    "JoinSpaceSelectDevice",
    "ProcessingJoinSpace",
    "SetupError",
    "SetupPairingFlow",
]
