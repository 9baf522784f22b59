"""Credential resolution tiers."""

import asyncio

import pytest

from adgateway.adapters.mcp import MCPAdapter
from adgateway.auth import CredentialCache, CredentialResolver, PromptBroker, SessionRegistry
from adgateway.auth.service import CredentialServiceError
from adgateway.models import (
    CanonicalCall, CredentialRecord, CredentialTier, MissingOrganizationId,
    NoSessionFound, TokenFetchFailed, UserResponseTimeout
)
from adgateway.transports import ConnectionManager

from conftest import TEST_TOKEN, FakeConnection


def make_resolver(service, override_token=None, prompt_timeout=1.0):
    prompts = PromptBroker(MCPAdapter({}).prompt_request, timeout=prompt_timeout)
    return CredentialResolver(
        service=service,
        registry=SessionRegistry(),
        connections=ConnectionManager(),
        prompts=prompts,
        cache=CredentialCache(),
        override_token=override_token,
        prompt_timeout=prompt_timeout
    )


def resolve(resolver, call):
    return asyncio.run(resolver.resolve(call))


def test_override_wins_over_everything(service):
    resolver = make_resolver(service, override_token="EAAB-override")
    resolver.registry.register("s1", "user-9")
    resolver.cache.store(CredentialRecord("EAAB-cached", CredentialTier.TOKEN_SERVICE))

    record = resolve(resolver, CanonicalCall("facebook_list_ad_accounts", {"organization_id": "org"}, caller_session_id="s1"))
    assert record.token == "EAAB-override"
    assert record.source_tier == CredentialTier.OVERRIDE
    assert service.calls == []


def test_fetch_then_cache(service):
    resolver = make_resolver(service)

    first = resolve(resolver, CanonicalCall("facebook_list_ad_accounts", {"organization_id": "org-1"}))
    assert first.token == TEST_TOKEN
    assert first.source_tier == CredentialTier.TOKEN_SERVICE
    assert service.calls == [("session", "org-1"), ("token", "user-1")]

    second = resolve(resolver, CanonicalCall("facebook_list_ad_accounts"))
    assert second.token == TEST_TOKEN
    assert second.source_tier == CredentialTier.LOCAL_CACHE
    assert len(service.calls) == 2


def test_expired_cache_entry_is_dropped():
    now = [100.0]
    cache = CredentialCache(clock=lambda: now[0])
    cache.store(CredentialRecord("EAAB", CredentialTier.LOCAL_CACHE, expiry=150.0))
    assert cache.get() is not None
    now[0] = 200.0
    assert cache.get() is None


def test_fetched_token_expires_from_cache(service):
    now = [1000.0]
    resolver = make_resolver(service)
    resolver.cache = CredentialCache(clock=lambda: now[0])
    resolver.token_ttl = 60.0
    resolver._clock = lambda: now[0]

    first = resolve(resolver, CanonicalCall("facebook_list_ad_accounts", {"organization_id": "org-1"}))
    assert first.expiry == 1060.0

    now[0] = 1059.0
    assert resolve(resolver, CanonicalCall("facebook_list_ad_accounts")).source_tier == CredentialTier.LOCAL_CACHE

    now[0] = 1061.0
    service.session_response = {"success": True, "user_id": "user-2"}
    third = resolve(resolver, CanonicalCall("facebook_list_ad_accounts", {"organization_id": "org-2"}))
    assert third.source_tier == CredentialTier.TOKEN_SERVICE
    assert service.calls[-2:] == [("session", "org-2"), ("token", "user-2")]


def test_missing_org_without_connection_makes_no_network_call(service):
    resolver = make_resolver(service)
    with pytest.raises(MissingOrganizationId):
        resolve(resolver, CanonicalCall("facebook_list_ad_accounts", caller_session_id="gone"))
    assert service.calls == []


def test_registered_session_skips_fallback(service):
    resolver = make_resolver(service)
    resolver.registry.register("s1", "user-42")

    resolve(resolver, CanonicalCall("facebook_list_ad_accounts", {"organization_id": "org"}, caller_session_id="s1"))
    assert service.calls == [("token", "user-42")]


def test_fallback_without_success_is_no_session(service):
    service.session_response = {"success": False, "message": "not found"}
    resolver = make_resolver(service)
    with pytest.raises(NoSessionFound):
        resolve(resolver, CanonicalCall("facebook_list_ad_accounts", {"organization_id": "org"}))


def test_fallback_transport_error_is_token_fetch_failure(service):
    service.fail_with = CredentialServiceError("connection refused")
    resolver = make_resolver(service)
    with pytest.raises(TokenFetchFailed):
        resolve(resolver, CanonicalCall("facebook_list_ad_accounts", {"organization_id": "org"}))


def test_token_missing_from_response_is_not_cached(service):
    service.token_response = {"success": True}
    resolver = make_resolver(service)
    with pytest.raises(TokenFetchFailed):
        resolve(resolver, CanonicalCall("facebook_list_ad_accounts", {"organization_id": "org"}))
    assert resolver.cache.get() is None


def test_prompts_for_org_on_live_connection(service):
    resolver = make_resolver(service)
    connection = resolver.connections.open(FakeConnection())
    call = CanonicalCall("facebook_list_ad_accounts", caller_session_id=connection.session_id)

    async def scenario():
        task = asyncio.create_task(resolver.resolve(call))
        while not connection.sent:
            await asyncio.sleep(0)
        prompt = connection.sent[0]
        assert prompt["method"] == "elicitation/create"
        assert resolver.prompts.deliver(connection.session_id, {
            "jsonrpc": "2.0",
            "id": prompt["id"],
            "result": {"action": "accept", "content": {"organization_id": "org-77"}}
        })
        return await task

    record = asyncio.run(scenario())
    assert record.token == TEST_TOKEN
    assert service.calls == [("session", "org-77"), ("token", "user-1")]


def test_prompt_timeout(service):
    resolver = make_resolver(service, prompt_timeout=0.05)
    connection = resolver.connections.open(FakeConnection())
    with pytest.raises(UserResponseTimeout):
        resolve(resolver, CanonicalCall("facebook_list_ad_accounts", caller_session_id=connection.session_id))
    assert resolver.prompts.pending(connection.session_id) is None
    assert service.calls == []
