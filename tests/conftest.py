"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Optional

import pytest
import pytest_asyncio

from devpair.pairing.types import InitiateResponse, VerificationEvent


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Reset logging state before each test."""
    from devpair.logging import reset_logging

    reset_logging()
    yield
    reset_logging()


@pytest_asyncio.fixture(autouse=True, loop_scope="function")
async def cleanup_aiohttp_sessions():
    """Give aiohttp sessions time to clean up their connectors."""
    yield
    await asyncio.sleep(0)


class FakeGateway:
    """In-memory CommandGateway that records every call.

    Attributes:
        calls: (command, *args) tuples in the order the commands ran.
        initiate_response: Returned by ``initiate``.
        failures: Command name -> exception raised by that command.
        initiate_gate: When set, ``initiate`` waits on it before returning.
    """

    def __init__(self):
        self.calls: list[tuple] = []
        self.initiate_response = InitiateResponse(session_id="s1")
        self.failures: dict[str, BaseException] = {}
        self.initiate_gate: Optional[asyncio.Event] = None

    async def initiate(self, peer_id: str) -> InitiateResponse:
        self.calls.append(("initiate", peer_id))
        if self.initiate_gate is not None:
            await self.initiate_gate.wait()
        self._maybe_fail("initiate")
        return self.initiate_response

    async def accept(self, session_id: str) -> None:
        self.calls.append(("accept", session_id))
        self._maybe_fail("accept")

    async def reject(self, session_id: str, peer_id: Optional[str]) -> None:
        self.calls.append(("reject", session_id, peer_id))
        self._maybe_fail("reject")

    async def verify_pin(self, session_id: str, matches: bool) -> None:
        self.calls.append(("verify_pin", session_id, matches))
        self._maybe_fail("verify_pin")

    async def cancel(self, session_id: str) -> None:
        self.calls.append(("cancel", session_id))
        self._maybe_fail("cancel")

    def commands(self) -> list[str]:
        """Names of the commands called so far."""
        return [call[0] for call in self.calls]

    def _maybe_fail(self, command: str) -> None:
        error = self.failures.get(command)
        if error is not None:
            raise error


@pytest.fixture
def gateway():
    """Recording command gateway."""
    return FakeGateway()


@pytest.fixture
def make_event():
    """Factory for verification events from their wire form."""

    def _make(kind: str, session_id: str = "s1", **fields) -> VerificationEvent:
        return VerificationEvent.from_dict({"kind": kind, "sessionId": session_id, **fields})

    return _make
