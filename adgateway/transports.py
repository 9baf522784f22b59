"""
Facebook Ads Gateway - Live Connections

A connection is anything the gateway can push a server-initiated message on:
an SSE stream or the stdio pipe. The ConnectionManager tracks which session
ids currently have one, which is what decides whether the user can be asked
for their organization id.
"""

import asyncio
import json
import logging
import sys
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional

logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 15.0


def new_session_id() -> str:
    return uuid.uuid4().hex


class Connection:
    """Base class for a live client connection"""

    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id or new_session_id()
        self.closed = False

    async def send(self, message: Dict[str, Any]):
        raise NotImplementedError

    def close(self):
        self.closed = True


class SSEConnection(Connection):
    """
    Server-sent-events stream.

    Outbound messages are queued and drained by ``events()``, which the HTTP
    layer wraps in a StreamingResponse. The first event tells the client where
    to POST its messages.
    """

    def __init__(self, session_id: Optional[str] = None, endpoint: str = "/mcp",
                 keepalive: float = KEEPALIVE_SECONDS):
        super().__init__(session_id)
        self.endpoint = endpoint
        self.keepalive = keepalive
        self._queue: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue()

    @property
    def message_url(self) -> str:
        return f"{self.endpoint}?session_id={self.session_id}"

    async def send(self, message: Dict[str, Any]):
        if self.closed:
            logger.warning(f"Dropping message for closed stream {self.session_id}")
            return
        await self._queue.put(message)

    def close(self):
        super().close()
        self._queue.put_nowait(None)

    async def events(self) -> AsyncIterator[str]:
        yield f"event: endpoint\ndata: {self.message_url}\n\n"

        while not self.closed:
            try:
                message = await asyncio.wait_for(self._queue.get(), self.keepalive)
            except asyncio.TimeoutError:
                yield ": ping\n\n"
                continue

            if message is None:
                break
            yield f"event: message\ndata: {json.dumps(message, default=str)}\n\n"


class StdioConnection(Connection):
    """The single implicit connection of the stdio transport"""

    def __init__(self, session_id: Optional[str] = None, stream=None):
        super().__init__(session_id)
        self.stream = stream or sys.stdout

    async def send(self, message: Dict[str, Any]):
        self.stream.write(json.dumps(message, default=str) + "\n")
        self.stream.flush()


class ConnectionManager:
    """Registry of live connections keyed by session id"""

    def __init__(self, metrics=None):
        self._connections: Dict[str, Connection] = {}
        self.metrics = metrics

    def open(self, connection: Connection) -> Connection:
        if connection.session_id in self._connections:
            raise ValueError(f"Connection already open for session {connection.session_id}")

        self._connections[connection.session_id] = connection
        logger.info(f"Connection opened: {connection.session_id} ({type(connection).__name__})")
        self._update_gauge()
        return connection

    def close(self, session_id: str) -> bool:
        connection = self._connections.pop(session_id, None)
        if connection is None:
            return False

        connection.close()
        logger.info(f"Connection closed: {session_id}")
        self._update_gauge()
        return True

    def get(self, session_id: Optional[str]) -> Optional[Connection]:
        if not session_id:
            return None
        return self._connections.get(session_id)

    def is_live(self, session_id: Optional[str]) -> bool:
        return self.get(session_id) is not None

    def session_ids(self) -> List[str]:
        return list(self._connections)

    def __len__(self) -> int:
        return len(self._connections)

    def _update_gauge(self):
        if self.metrics is not None:
            self.metrics.active_streams.set(len(self._connections))
