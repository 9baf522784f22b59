"""
Facebook Ads Gateway - Session Registry
Maps opaque session ids to the caller they were registered for.
"""

import time
import logging
import threading
from collections import OrderedDict
from typing import Callable, List, Optional

from adgateway.models import Session

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    In-memory session -> caller mapping.

    Entries are written by the out-of-band registration route and read by
    credential resolution. They expire ``ttl_seconds`` after registration and
    at most ``max_entries`` are kept, oldest registration evicted first.
    """

    def __init__(self, ttl_seconds: float = 86400.0, max_entries: int = 10000,
                 clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._sessions: "OrderedDict[str, Session]" = OrderedDict()
        self._lock = threading.RLock()

    def register(self, session_id: str, user_id: str) -> Session:
        """Record (or replace) the caller for a session id"""
        if not session_id:
            raise ValueError("session_id is required")

        with self._lock:
            session = Session(session_id=session_id, caller_user_id=user_id, created_at=self._clock())
            self._sessions.pop(session_id, None)
            self._sessions[session_id] = session

            while len(self._sessions) > self.max_entries:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info(f"Evicted session {evicted} (registry full)")

        logger.info(f"Session {session_id} associated with user {user_id}")
        return session

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        if not session_id:
            return None

        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if self._is_expired(session):
                del self._sessions[session_id]
                logger.info(f"Session {session_id} expired")
                return None
            return session

    def lookup_user(self, session_id: Optional[str]) -> Optional[str]:
        session = self.get(session_id)
        return session.caller_user_id if session else None

    def list_sessions(self) -> List[Session]:
        """All live mappings, for diagnostics"""
        with self._lock:
            self._purge_expired()
            return list(self._sessions.values())

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._sessions)

    def _is_expired(self, session: Session) -> bool:
        return self._clock() - session.created_at >= self.ttl_seconds

    def _purge_expired(self):
        expired = [sid for sid, s in self._sessions.items() if self._is_expired(s)]
        for sid in expired:
            del self._sessions[sid]
