"""Subscriber for the peer-networking service's pairing event stream.

Listens to ``{base_url}/pairing/events`` via SSE (Server-Sent Events),
parses each ``data:`` line into a VerificationEvent and hands it to a
callback (normally ``PairingCoordinator.handle_event``).

Usage:
    stream = PairingEventStream(coordinator.handle_event, base_url=url)
    await stream.start()
    ...
    await stream.close()
"""

import asyncio
import json
import logging
from typing import Callable, Optional

import aiohttp

from devpair.config import DEFAULT_SERVICE_URL
from devpair.errors import EventParseError
from devpair.pairing.types import VerificationEvent

logger = logging.getLogger(__name__)

EventCallback = Callable[[VerificationEvent], None]


class PairingEventStream:
    """SSE client that feeds verification events to a callback.

    Reconnects after a fixed delay when the connection drops. Malformed
    payloads are logged and skipped.
    """

    RECONNECT_DELAY = 5.0  # seconds

    def __init__(
        self,
        on_event: EventCallback,
        base_url: str = DEFAULT_SERVICE_URL,
        reconnect_delay: float = RECONNECT_DELAY,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize event stream.

        Args:
            on_event: Receives each parsed event.
            base_url: Service URL.
            reconnect_delay: Seconds to wait before reconnecting.
            http_session: Optional aiohttp session (for testing).
        """
        self._on_event = on_event
        self._base_url = base_url.rstrip("/")
        self._reconnect_delay = reconnect_delay
        self._session = http_session
        self._owns_session = http_session is None
        self._subscribed = False
        self._connected = False
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._reconnect_count = 0

    @property
    def url(self) -> str:
        """SSE endpoint URL."""
        return f"{self._base_url}/pairing/events"

    def is_subscribed(self) -> bool:
        """Check if the stream is running."""
        return self._subscribed

    def is_connected(self) -> bool:
        """Check if the SSE connection is currently open."""
        return self._connected

    async def start(self) -> None:
        """Start listening in the background. Idempotent."""
        if self._subscribed:
            return

        if self._session is None:
            self._session = aiohttp.ClientSession()

        self._stop_event.clear()
        self._subscribed = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Listening for pairing events at {self.url}")

    async def stop(self) -> None:
        """Stop listening."""
        if not self._subscribed:
            return

        self._subscribed = False
        self._stop_event.set()

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self._connected = False
        logger.info("Stopped listening for pairing events")

    async def close(self) -> None:
        """Stop listening and close the HTTP session if owned."""
        await self.stop()

        if self._owns_session and self._session:
            await self._session.close()
            # Allow event loop to clean up connector
            await asyncio.sleep(0)
            self._session = None

    async def _run(self) -> None:
        """Subscription loop with reconnect."""
        while self._subscribed and not self._stop_event.is_set():
            try:
                await self._listen()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"Pairing event stream error: {e}")

            self._connected = False
            if not self._subscribed:
                break
            self._reconnect_count += 1
            logger.info(
                f"Reconnecting in {self._reconnect_delay}s... "
                f"(reconnect #{self._reconnect_count})"
            )
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self._reconnect_delay
                )
            except asyncio.TimeoutError:
                pass

    async def _listen(self) -> None:
        """Read one SSE connection until it closes."""
        if not self._session:
            return

        async with self._session.get(
            self.url,
            headers={"Accept": "text/event-stream"},
            timeout=aiohttp.ClientTimeout(total=None),  # No timeout for SSE
        ) as response:
            if response.status != 200:
                logger.warning(f"Pairing event stream returned {response.status}")
                return

            self._connected = True
            logger.debug("Pairing event stream connected")

            async for line in response.content:
                if self._stop_event.is_set():
                    break
                self.handle_line(line.decode("utf-8"))

    def handle_line(self, line: str) -> bool:
        """Process one SSE line.

        Args:
            line: Raw line including any trailing newline.

        Returns:
            True if an event was delivered to the callback.
        """
        line = line.strip()
        if not line.startswith("data:"):
            # Comments, keepalives, event:/id: fields
            return False

        payload = line[5:].strip()
        if not payload:
            return False

        event = self.parse_event(payload)
        if event is None:
            return False

        try:
            self._on_event(event)
        except Exception as e:
            logger.error(f"Pairing event callback error: {e}")
        return True

    @staticmethod
    def parse_event(payload: str) -> Optional[VerificationEvent]:
        """Parse an SSE data payload.

        Args:
            payload: JSON text of one event.

        Returns:
            Parsed event, or None if the payload is malformed.
        """
        try:
            return VerificationEvent.from_dict(json.loads(payload))
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid pairing event JSON: {e}")
        except EventParseError as e:
            logger.warning(f"Invalid pairing event: {e}")
        return None
