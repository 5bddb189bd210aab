"""Tests for view model projection."""

import pytest

from devpair.errors import PairingErrorCode
from devpair.pairing.projector import DEFAULT_ERROR_MESSAGES, error_message, project
from devpair.pairing.types import (
    DialogKind,
    PairingPhase,
    PairingSession,
    Role,
    ViewModel,
)


def _session(phase: PairingPhase, role: Role = Role.INITIATOR, **fields) -> PairingSession:
    defaults = {
        "peer_id": "peer-9",
        "session_id": "s1",
        "pin_code": "482913",
        "local_fingerprint": "aa:bb",
        "peer_fingerprint": "cc:dd",
    }
    defaults.update(fields)
    return PairingSession(role=role, phase=phase, **defaults)


class TestProject:
    """Test phase to dialog mapping."""

    def test_no_session(self):
        """Idle with no session gives the closed snapshot."""
        assert project(None, PairingPhase.IDLE) == ViewModel()

    def test_cancelled_is_closed(self):
        """A cancelled session shows nothing."""
        session = _session(PairingPhase.CANCELLED)

        assert project(session, PairingPhase.CANCELLED) == ViewModel()

    @pytest.mark.parametrize(
        "phase,kind",
        [
            (PairingPhase.REQUEST_SENT, DialogKind.CONNECTING),
            (PairingPhase.REQUEST_RECEIVED, DialogKind.REQUEST),
            (PairingPhase.PIN_DISPLAY, DialogKind.PIN),
            (PairingPhase.PIN_VERIFYING, DialogKind.PIN),
            (PairingPhase.COMPLETE, DialogKind.SUCCESS),
            (PairingPhase.FAILED, DialogKind.FAILED),
        ],
    )
    def test_dialog_kind(self, phase, kind):
        """Each visible phase opens the matching dialog."""
        view_model = project(_session(phase), phase)

        assert view_model.dialog_open is True
        assert view_model.dialog_kind is kind

    def test_pin_display(self):
        """The PIN dialog shows code and fingerprints."""
        view_model = project(_session(PairingPhase.PIN_DISPLAY), PairingPhase.PIN_DISPLAY)

        assert view_model.pin_code == "482913"
        assert view_model.local_fingerprint == "aa:bb"
        assert view_model.peer_fingerprint == "cc:dd"
        assert view_model.busy is False
        assert view_model.is_initiator is True

    def test_pin_hidden_before_pin_phase(self):
        """No PIN leaks into the request dialog."""
        session = _session(PairingPhase.REQUEST_RECEIVED, role=Role.RESPONDER)

        view_model = project(session, PairingPhase.REQUEST_RECEIVED)

        assert view_model.pin_code is None
        assert view_model.peer_fingerprint is None
        assert view_model.is_initiator is False

    @pytest.mark.parametrize(
        "phase,accepted,busy",
        [
            (PairingPhase.REQUEST_SENT, False, True),
            (PairingPhase.REQUEST_RECEIVED, False, False),
            (PairingPhase.REQUEST_RECEIVED, True, True),
            (PairingPhase.PIN_DISPLAY, False, False),
            (PairingPhase.PIN_VERIFYING, False, True),
            (PairingPhase.COMPLETE, False, False),
            (PairingPhase.FAILED, False, False),
        ],
    )
    def test_busy(self, phase, accepted, busy):
        """Busy is set while waiting on the service."""
        session = _session(phase, accepted=accepted)

        assert project(session, phase).busy is busy

    def test_peer_name_prefers_device_name(self):
        """Device name wins over the raw peer id."""
        named = _session(PairingPhase.REQUEST_SENT, peer_device_name="Pixel")
        unnamed = _session(PairingPhase.REQUEST_SENT)

        assert project(named, PairingPhase.REQUEST_SENT).peer_name == "Pixel"
        assert project(unnamed, PairingPhase.REQUEST_SENT).peer_name == "peer-9"

    def test_error_only_when_failed(self):
        """Error message is shown only in the failed dialog."""
        session = _session(
            PairingPhase.COMPLETE, error_code=PairingErrorCode.PAIRING_FAILED
        )

        assert project(session, PairingPhase.COMPLETE).error_message is None

    def test_failed_shows_remote_error(self):
        """Remote error text is surfaced verbatim."""
        session = _session(
            PairingPhase.FAILED,
            error="Peer closed the connection",
            error_code=PairingErrorCode.PAIRING_FAILED,
        )

        assert (
            project(session, PairingPhase.FAILED).error_message
            == "Peer closed the connection"
        )

    def test_deterministic(self):
        """Equal inputs give equal snapshots."""
        session = _session(PairingPhase.PIN_DISPLAY)

        assert project(session, PairingPhase.PIN_DISPLAY) == project(
            session, PairingPhase.PIN_DISPLAY
        )


class TestErrorMessage:
    """Test error message selection."""

    def test_default_message_per_code(self):
        """Without remote text the code's default message is used."""
        for code, message in DEFAULT_ERROR_MESSAGES.items():
            session = _session(PairingPhase.FAILED, error_code=code)
            assert error_message(session) == message

    def test_every_code_has_a_default(self):
        """The table covers the whole taxonomy."""
        assert set(DEFAULT_ERROR_MESSAGES) == set(PairingErrorCode)

    def test_no_error(self):
        """No error means no message."""
        assert error_message(_session(PairingPhase.FAILED)) is None
