"""
Facebook Ads Gateway - Interactive Prompts

Asks the user on the other end of a live connection for a value and waits for
the reply. A waiter is a future keyed by session id, resolved from the
message-receive path and raced against a timeout.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from adgateway.models import MissingOrganizationId, UserResponseTimeout

logger = logging.getLogger(__name__)

USER_MESSAGE = "notifications/user_message"


@dataclass
class PendingPrompt:
    request_id: str
    future: "asyncio.Future"


def extract_reply_text(message: Dict[str, Any]) -> Optional[str]:
    """Pull the user's answer out of a prompt reply"""
    if "method" in message:
        params = message.get("params") or {}
        content = params.get("content")
        text = params.get("text") or (content.get("text") if isinstance(content, dict) else None)
        return text.strip() if isinstance(text, str) else None

    result = message.get("result")
    if not isinstance(result, dict) or result.get("action", "accept") != "accept":
        return None

    content = result.get("content")
    candidates = [result.get("text")]
    if isinstance(content, dict):
        candidates = [content.get("organization_id"), content.get("text")] + candidates

    for value in candidates:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class PromptBroker:
    """One pending prompt per session; replies are matched by request id"""

    def __init__(self, build_prompt: Callable[[str], Dict[str, Any]], timeout: float = 60.0):
        self.build_prompt = build_prompt
        self.timeout = timeout
        self._pending: Dict[str, PendingPrompt] = {}

    def pending(self, session_id: str) -> Optional[PendingPrompt]:
        return self._pending.get(session_id)

    async def ask(self, connection, timeout: Optional[float] = None) -> Optional[str]:
        """Send a prompt over ``connection`` and wait for the user's answer"""
        timeout = self.timeout if timeout is None else timeout
        session_id = connection.session_id

        if session_id in self._pending:
            raise MissingOrganizationId(
                "A prompt is already pending on this session", {"session_id": session_id}
            )

        request_id = f"prompt-{uuid.uuid4().hex}"
        pending = PendingPrompt(request_id, asyncio.get_running_loop().create_future())
        self._pending[session_id] = pending

        try:
            await connection.send(self.build_prompt(request_id))
            logger.info(f"Prompted user on session {session_id}, waiting up to {timeout}s")
            reply = await asyncio.wait_for(pending.future, timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Prompt {request_id} on session {session_id} timed out")
            raise UserResponseTimeout(
                f"User response timed out after {timeout}s", {"session_id": session_id}
            )
        finally:
            if self._pending.get(session_id) is pending:
                del self._pending[session_id]
            if not pending.future.done():
                pending.future.cancel()

        return extract_reply_text(reply)

    def deliver(self, session_id: str, message: Dict[str, Any]) -> bool:
        """
        Hand a client message to the waiter of its session.

        Returns False when nothing was waiting or the message is not a reply
        to the pending prompt; the message is then left to the caller.
        """
        pending = self._pending.get(session_id)
        if pending is None or pending.future.done():
            return False

        if message.get("method") == USER_MESSAGE:
            matched = True
        else:
            matched = "method" not in message and message.get("id") == pending.request_id
        if not matched:
            return False

        del self._pending[session_id]
        pending.future.set_result(message)
        logger.info(f"Prompt {pending.request_id} answered on session {session_id}")
        return True
