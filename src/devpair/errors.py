"""Base exceptions and error taxonomy for devpair."""

from enum import Enum


class PairingErrorCode(Enum):
    """Failure tags carried by a failed pairing session."""

    NETWORK_TIMEOUT = "NetworkTimeout"
    PEER_UNAVAILABLE = "PeerUnavailable"
    PAIRING_REJECTED = "PairingRejected"
    PAIRING_FAILED = "PairingFailed"
    PIN_MISMATCH = "PinMismatch"
    COMMAND_DISPATCH_ERROR = "CommandDispatchError"
    SESSION_CONFLICT = "SessionConflict"


class DevpairError(Exception):
    """Base exception for all devpair errors."""

    pass


class EventParseError(DevpairError):
    """Inbound verification event could not be parsed."""

    pass


class PairingError(DevpairError):
    """Pairing operation failed.

    Attributes:
        code: Taxonomy tag surfaced to the view model.
    """

    code = PairingErrorCode.PAIRING_FAILED

    def __init__(self, message: str = "", code: PairingErrorCode | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class SessionConflictError(PairingError):
    """Another pairing session is already active."""

    code = PairingErrorCode.SESSION_CONFLICT


class CommandDispatchError(PairingError):
    """A command to the peer-networking service failed."""

    code = PairingErrorCode.COMMAND_DISPATCH_ERROR


# Substrings the service uses in failure reasons, checked in order
_REMOTE_ERROR_HINTS = [
    ("timeout", PairingErrorCode.NETWORK_TIMEOUT),
    ("timed out", PairingErrorCode.NETWORK_TIMEOUT),
    ("reject", PairingErrorCode.PAIRING_REJECTED),
    ("mismatch", PairingErrorCode.PIN_MISMATCH),
    ("unavailable", PairingErrorCode.PEER_UNAVAILABLE),
    ("unreachable", PairingErrorCode.PEER_UNAVAILABLE),
    ("not found", PairingErrorCode.PEER_UNAVAILABLE),
]


def classify_remote_error(reason: str | None) -> PairingErrorCode:
    """Map a remote failure reason onto the error taxonomy.

    Args:
        reason: Free-form reason reported with a ``failed`` event.

    Returns:
        Best matching code, PAIRING_FAILED when nothing matches.
    """
    if reason:
        lowered = reason.lower()
        for hint, code in _REMOTE_ERROR_HINTS:
            if hint in lowered:
                return code
    return PairingErrorCode.PAIRING_FAILED
