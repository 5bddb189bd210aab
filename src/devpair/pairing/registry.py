"""Registry holding the single active pairing session slot."""

import logging
from typing import Optional

from devpair.errors import SessionConflictError
from devpair.pairing.types import DedupKey, Role

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Owns the identity of the active pairing session and seen completions.

    At most one session is active at a time. Events for any other session id
    are fenced off by the router. This is a plain state container, owned by
    one coordinator and only touched from its dispatch path.
    """

    def __init__(self):
        """Initialize with no active session."""
        self._active_session_id: Optional[str] = None
        self._active_role: Optional[Role] = None
        self._seen: set[DedupKey] = set()

    @property
    def active_session_id(self) -> Optional[str]:
        """Id of the active session, or None when idle."""
        return self._active_session_id

    @property
    def active_role(self) -> Optional[Role]:
        """Role of the active session, or None when idle."""
        return self._active_role

    def has_active(self) -> bool:
        """Check if any session is active."""
        return self._active_session_id is not None

    def set_active(self, session_id: str, role: Role) -> None:
        """Make a session the active one.

        Args:
            session_id: Service-issued session id.
            role: Local role in this session.

        Raises:
            SessionConflictError: If a different session is already active.
        """
        if self._active_session_id == session_id:
            return
        if self._active_session_id is not None:
            raise SessionConflictError(
                f"Session {self._active_session_id[:8]}... is already active"
            )

        self._active_session_id = session_id
        self._active_role = role
        self._seen.clear()
        logger.debug(f"Active pairing session set: {session_id[:8]}... ({role.value})")

    def is_active(self, session_id: Optional[str]) -> bool:
        """Check if the given session id is the active one."""
        return session_id is not None and session_id == self._active_session_id

    def clear(self) -> None:
        """Drop the active session and forget seen completions. Idempotent."""
        if self._active_session_id is not None:
            logger.debug(
                f"Active pairing session cleared: {self._active_session_id[:8]}..."
            )
        self._active_session_id = None
        self._active_role = None
        self._seen.clear()

    def mark_seen(self, key: DedupKey) -> bool:
        """Record a completion key.

        Args:
            key: Dedup key of a complete/failed event.

        Returns:
            True if the key was not seen before, False for a redelivery.
        """
        if key in self._seen:
            return False
        self._seen.add(key)
        return True

    def __contains__(self, session_id: str) -> bool:
        """Check if session is the active one using 'in'."""
        return self.is_active(session_id)
