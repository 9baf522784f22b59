"""
Facebook Ads Gateway - Graph API client
Thin aiohttp wrapper used by the tool handlers for their single outbound request.
"""

import json
import asyncio
import logging
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import aiohttp

logger = logging.getLogger(__name__)

GRAPH_HOST = "graph.facebook.com"


class GraphAPIError(Exception):
    """Error returned by the Graph API or raised while calling it"""
    def __init__(self, message: str, status: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.status = status
        self.details = details or {}
        super().__init__(message)


class GraphAPIClient:
    """Minimal Graph API client bound to one API version"""

    def __init__(self, version: str = "v23.0", timeout: float = 30.0):
        self.version = version
        self.base_url = f"https://{GRAPH_HOST}/{version}"
        self.timeout = timeout

    @staticmethod
    def encode_params(params: Dict[str, Any]) -> Dict[str, str]:
        """Graph API expects comma-joined lists and JSON-encoded objects"""
        encoded = {}
        for key, value in params.items():
            if value is None:
                continue
            if isinstance(value, (list, tuple)):
                encoded[key] = ",".join(str(v) for v in value)
            elif isinstance(value, dict):
                encoded[key] = json.dumps(value)
            elif isinstance(value, bool):
                encoded[key] = "true" if value else "false"
            else:
                encoded[key] = str(value)
        return encoded

    async def get(self, path: str, token: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET a Graph API path such as ``me/adaccounts`` or ``act_123/insights``"""
        url = f"{self.base_url}/{path.lstrip('/')}"
        query = self.encode_params(params or {})
        query["access_token"] = token
        return await self._request(url, query)

    async def get_url(self, url: str, token: Optional[str] = None) -> Dict[str, Any]:
        """GET a complete Graph API URL, e.g. a ``paging.next`` link"""
        parsed = urlparse(url)
        if parsed.scheme != "https" or parsed.hostname != GRAPH_HOST:
            raise GraphAPIError(f"Not a Graph API URL: {url}")

        query = {}
        if token and "access_token=" not in parsed.query:
            query["access_token"] = token
        return await self._request(url, query)

    async def exchange_code(self, app_id: str, app_secret: str, redirect_uri: str, code: str) -> Dict[str, Any]:
        """Trade an OAuth authorization code for a user access token"""
        return await self._request(f"{self.base_url}/oauth/access_token", {
            "client_id": app_id,
            "client_secret": app_secret,
            "redirect_uri": redirect_uri,
            "code": code
        })

    async def get_bytes(self, url: str) -> bytes:
        """Download binary content such as a creative image"""
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(url, timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
                    if response.status >= 400:
                        raise GraphAPIError(f"Download failed with HTTP {response.status}", status=response.status)
                    return await response.read()
        except asyncio.TimeoutError:
            raise GraphAPIError(f"Download timed out after {self.timeout}s")
        except aiohttp.ClientError as e:
            raise GraphAPIError(f"Download failed: {e}")

    async def _request(self, url: str, query: Dict[str, str]) -> Dict[str, Any]:
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(url, params=query,
                                       timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
                    data = await response.json(content_type=None)
        except asyncio.TimeoutError:
            raise GraphAPIError(f"Graph API request timed out after {self.timeout}s")
        except aiohttp.ClientError as e:
            raise GraphAPIError(f"Graph API request failed: {e}")
        except ValueError:
            raise GraphAPIError("Graph API returned a non-JSON response")

        if isinstance(data, dict) and "error" in data:
            error = data["error"]
            raise GraphAPIError(
                error.get("message", "Unknown Graph API error"),
                status=response.status,
                details={
                    "type": error.get("type"),
                    "code": error.get("code"),
                    "fbtrace_id": error.get("fbtrace_id")
                }
            )
        if response.status >= 400:
            raise GraphAPIError(f"Graph API responded with HTTP {response.status}", status=response.status)

        return data
