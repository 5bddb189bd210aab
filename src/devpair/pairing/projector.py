"""Pure projection of pairing state onto a presentation snapshot."""

from typing import Optional

from devpair.errors import PairingErrorCode
from devpair.pairing.types import (
    DialogKind,
    PairingPhase,
    PairingSession,
    ViewModel,
)

DEFAULT_ERROR_MESSAGES = {
    PairingErrorCode.NETWORK_TIMEOUT: "Pairing timed out",
    PairingErrorCode.PEER_UNAVAILABLE: "Device is not reachable",
    PairingErrorCode.PAIRING_REJECTED: "Pairing was rejected",
    PairingErrorCode.PAIRING_FAILED: "Pairing failed",
    PairingErrorCode.PIN_MISMATCH: "PIN codes did not match",
    PairingErrorCode.COMMAND_DISPATCH_ERROR: "Could not reach the pairing service",
    PairingErrorCode.SESSION_CONFLICT: "Another pairing is already in progress",
}

_DIALOG_KINDS = {
    PairingPhase.IDLE: DialogKind.NONE,
    PairingPhase.CANCELLED: DialogKind.NONE,
    PairingPhase.REQUEST_SENT: DialogKind.CONNECTING,
    PairingPhase.REQUEST_RECEIVED: DialogKind.REQUEST,
    PairingPhase.PIN_DISPLAY: DialogKind.PIN,
    PairingPhase.PIN_VERIFYING: DialogKind.PIN,
    PairingPhase.COMPLETE: DialogKind.SUCCESS,
    PairingPhase.FAILED: DialogKind.FAILED,
}


def error_message(session: PairingSession) -> Optional[str]:
    """Message shown for a failed session (remote text wins)."""
    if session.error:
        return session.error
    if session.error_code is not None:
        return DEFAULT_ERROR_MESSAGES[session.error_code]
    return None


def project(session: Optional[PairingSession], phase: PairingPhase) -> ViewModel:
    """Map the current session and phase to a view model.

    Args:
        session: The current session, or None when idle.
        phase: Current state machine phase.

    Returns:
        Snapshot for the presentation layer. Equal inputs give equal outputs.
    """
    dialog_kind = _DIALOG_KINDS[phase]
    if session is None or dialog_kind is DialogKind.NONE:
        return ViewModel()

    busy = phase in (PairingPhase.REQUEST_SENT, PairingPhase.PIN_VERIFYING) or (
        phase is PairingPhase.REQUEST_RECEIVED and session.accepted
    )
    show_pin = dialog_kind in (DialogKind.PIN, DialogKind.SUCCESS)

    return ViewModel(
        dialog_open=True,
        dialog_kind=dialog_kind,
        pin_code=session.pin_code if show_pin else None,
        peer_name=session.peer_device_name or session.peer_id,
        is_initiator=session.is_initiator,
        busy=busy,
        error_message=error_message(session) if phase is PairingPhase.FAILED else None,
        peer_fingerprint=session.peer_fingerprint if show_pin else None,
        local_fingerprint=session.local_fingerprint if show_pin else None,
    )
