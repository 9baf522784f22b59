"""
Facebook Ads Gateway - Credential Service Client
aiohttp client for the external service that owns users, sessions and tokens.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

logger = logging.getLogger(__name__)


class CredentialServiceError(Exception):
    """Transport failure or non-2xx response from the credential service"""
    def __init__(self, message: str, status: Optional[int] = None):
        self.message = message
        self.status = status
        super().__init__(message)


class CredentialServiceClient:
    """
    Client for the three credential-service endpoints:

    - GET  /mcp-api/facebook_token_by_user?userId=...
    - GET  /mcp-api/get_latest_session_by_org_id?organization_id=...
    - POST /mcp-api/save_user_session
    """

    def __init__(self, base_url: str, timeout: float = 15.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def get_token_by_user(self, user_id: str) -> Dict[str, Any]:
        return await self._request("GET", "/mcp-api/facebook_token_by_user", params={"userId": user_id})

    async def get_latest_session_by_org(self, organization_id: str) -> Dict[str, Any]:
        return await self._request("GET", "/mcp-api/get_latest_session_by_org_id",
                                   params={"organization_id": organization_id})

    async def save_user_session(self, user_id: str, session_id: str,
                                organization_id: Optional[str] = None) -> Dict[str, Any]:
        return await self._request("POST", "/mcp-api/save_user_session", json={
            "user_id": user_id,
            "session_id": session_id,
            "organization_id": organization_id
        })

    async def _request(self, method: str, path: str, params: Optional[Dict[str, str]] = None,
                       json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        logger.debug(f"Credential service {method} {url}")

        try:
            async with aiohttp.ClientSession() as session:
                async with session.request(method, url, params=params, json=json,
                                           timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
                    if response.status >= 400:
                        raise CredentialServiceError(
                            f"HTTP error from credential service: {response.status} {response.reason}",
                            status=response.status
                        )
                    data = await response.json(content_type=None)
        except asyncio.TimeoutError:
            raise CredentialServiceError(f"Credential service timed out after {self.timeout}s")
        except aiohttp.ClientError as e:
            raise CredentialServiceError(f"Credential service request failed: {e}")
        except ValueError:
            raise CredentialServiceError("Credential service returned a non-JSON response")

        if not isinstance(data, dict):
            raise CredentialServiceError("Credential service returned an unexpected payload")
        return data
