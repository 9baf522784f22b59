"""
Facebook Ads Gateway - Credential Resolution

Turns a canonical call into a usable Facebook access token. Tiers, in order:

1. operator override (FACEBOOK_ACCESS_TOKEN) - always wins
2. process-local cache of the last successful resolution
3. organization_id from the call, or asked interactively over the caller's
   live connection
4. caller identity from the session registry, else the credential service's
   latest session for the organization
5. token for that caller from the credential service

Tiers 3 to 5 never retry; each failure is surfaced to the caller as is.
"""

import time
import logging
import threading
from dataclasses import replace
from typing import Callable, Optional

from adgateway.auth.prompts import PromptBroker
from adgateway.auth.service import CredentialServiceClient, CredentialServiceError
from adgateway.auth.sessions import SessionRegistry
from adgateway.models import (
    CanonicalCall, CredentialRecord, CredentialTier,
    MissingOrganizationId, NoSessionFound, TokenFetchFailed
)

logger = logging.getLogger(__name__)

# Fetched tokens are shared by every later call until this runs out
DEFAULT_TOKEN_TTL = 3600.0


class CredentialCache:
    """Holds at most one credential for the whole process"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._record: Optional[CredentialRecord] = None
        self._lock = threading.RLock()

    def get(self) -> Optional[CredentialRecord]:
        with self._lock:
            if self._record is not None and self._record.expired(self._clock()):
                logger.info("Cached Facebook access token expired")
                self._record = None
            return self._record

    def store(self, record: CredentialRecord):
        with self._lock:
            self._record = record


class CredentialResolver:
    """Runs the tiered lookup once per canonical call"""

    def __init__(self, service: CredentialServiceClient, registry: SessionRegistry,
                 connections, prompts: PromptBroker, cache: Optional[CredentialCache] = None,
                 override_token: Optional[str] = None, prompt_timeout: Optional[float] = None,
                 metrics=None, token_ttl: Optional[float] = DEFAULT_TOKEN_TTL,
                 clock: Callable[[], float] = time.time):
        self.service = service
        self.registry = registry
        self.connections = connections
        self.prompts = prompts
        self.cache = cache or CredentialCache()
        self.override_token = override_token
        self.prompt_timeout = prompt_timeout
        self.metrics = metrics
        self.token_ttl = token_ttl
        self._clock = clock

    async def resolve(self, call: CanonicalCall) -> CredentialRecord:
        # Tier 1
        if self.override_token:
            logger.info("Using environment Facebook access token")
            self._record(CredentialTier.OVERRIDE, True)
            return CredentialRecord(self.override_token, CredentialTier.OVERRIDE)

        # Tier 2
        cached = self.cache.get()
        if cached is not None:
            logger.info("Using locally cached Facebook access token")
            self._record(CredentialTier.LOCAL_CACHE, True)
            return replace(cached, source_tier=CredentialTier.LOCAL_CACHE)

        try:
            organization_id = await self._organization_id(call)
            user_id = await self._resolve_user(call.caller_session_id, organization_id)
            record = await self._fetch_token(user_id)
        except Exception:
            self._record(CredentialTier.TOKEN_SERVICE, False)
            raise

        self.cache.store(record)
        self._record(CredentialTier.TOKEN_SERVICE, True)
        return record

    async def _organization_id(self, call: CanonicalCall) -> str:
        organization_id = call.args.get("organization_id")
        if isinstance(organization_id, str) and organization_id.strip():
            return organization_id.strip()

        connection = self.connections.get(call.caller_session_id) if call.caller_session_id else None
        if connection is None:
            raise MissingOrganizationId(
                "organization_id is required and there is no live connection to ask the user on",
                {"field": "organization_id"}
            )

        answer = await self.prompts.ask(connection, self.prompt_timeout)
        if not answer:
            raise MissingOrganizationId("No organization ID provided by the user",
                                        {"field": "organization_id"})

        logger.info(f"User provided organization ID: {answer}")
        return answer

    async def _resolve_user(self, session_id: Optional[str], organization_id: str) -> str:
        user_id = self.registry.lookup_user(session_id)
        if user_id:
            logger.info(f"Found user_id from session: {user_id}")
            return user_id

        logger.warning(f"No user_id found in session, using organization {organization_id} fallback")
        try:
            data = await self.service.get_latest_session_by_org(organization_id)
        except CredentialServiceError as e:
            raise TokenFetchFailed(e.message, {"organization_id": organization_id, "status": e.status})

        if not data.get("success") or not data.get("user_id"):
            raise NoSessionFound("No valid session found for organization ID",
                                 {"organization_id": organization_id})

        logger.info(f"Fallback resolved user {data['user_id']} (session {data.get('session_id')})")
        return str(data["user_id"])

    async def _fetch_token(self, user_id: str) -> CredentialRecord:
        try:
            data = await self.service.get_token_by_user(user_id)
        except CredentialServiceError as e:
            logger.error(f"Error fetching Facebook token: {e.message}")
            raise TokenFetchFailed(f"Failed to fetch Facebook token: {e.message}",
                                   {"user_id": user_id, "status": e.status})

        token = data.get("facebook_access_token")
        if not data.get("success") or not isinstance(token, str) or not token:
            raise TokenFetchFailed("Token not present in response", {"user_id": user_id})

        expiry = self._clock() + self.token_ttl if self.token_ttl else None
        record = CredentialRecord(token, CredentialTier.TOKEN_SERVICE, expiry)
        logger.info(f"Facebook access token fetched: {record.redacted}")
        return record

    def _record(self, tier: CredentialTier, success: bool):
        if self.metrics is not None:
            self.metrics.record_resolution(tier.value, success)
