"""Shared fixtures: a gateway wired to fakes instead of the network."""

from typing import Any, Dict, List, Optional

import pytest

from adgateway.auth.service import CredentialServiceError
from adgateway.config import Settings
from adgateway.gateway import build_gateway
from adgateway.transports import Connection

TEST_TOKEN = "EAAB-test-token-0123456789"


class FakeCredentialService:
    """Records every call; responses and failures are set per test"""

    def __init__(self):
        self.calls: List[tuple] = []
        self.token_response: Dict[str, Any] = {"success": True, "facebook_access_token": TEST_TOKEN}
        self.session_response: Dict[str, Any] = {"success": True, "user_id": "user-1", "session_id": "remote-1"}
        self.save_response: Dict[str, Any] = {"success": True}
        self.fail_with: Optional[CredentialServiceError] = None

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def get_token_by_user(self, user_id):
        self.calls.append(("token", user_id))
        self._maybe_fail()
        return self.token_response

    async def get_latest_session_by_org(self, organization_id):
        self.calls.append(("session", organization_id))
        self._maybe_fail()
        return self.session_response

    async def save_user_session(self, user_id, session_id, organization_id=None):
        self.calls.append(("save", user_id, session_id, organization_id))
        self._maybe_fail()
        return self.save_response


class FakeConnection(Connection):
    """Live connection that keeps what the server sent"""

    def __init__(self, session_id=None):
        super().__init__(session_id)
        self.sent: List[Dict[str, Any]] = []

    async def send(self, message):
        self.sent.append(message)


class RecordingHandler:
    """Stands in for a Graph API handler"""

    def __init__(self, name, result=None):
        self.name = name
        self.result = result if result is not None else {"data": [{"id": "act_1"}]}
        self.calls: List[tuple] = []

    async def handle(self, args, token):
        self.calls.append((args, token))
        return self.result


@pytest.fixture
def service():
    return FakeCredentialService()


@pytest.fixture
def settings():
    return Settings(prompt_timeout=1.0, tool_timeout=1.0)


@pytest.fixture
def gateway(settings, service):
    gw = build_gateway(settings, service=service)
    for name in list(gw.dispatcher.handlers):
        gw.dispatcher.handlers[name] = RecordingHandler(name)
    return gw
