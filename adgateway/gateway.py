"""
Facebook Ads Gateway - Core

Every transport funnels into Gateway.execute: one canonical call in, one
canonical result out. Adapters translate at the edges; this module never
looks at a wire envelope beyond handing it to the right adapter.
"""

import asyncio
import logging
import time
from contextlib import nullcontext
from typing import Any, Dict, List, Optional, Set, Tuple

from adgateway.adapters import ProtocolAdapter, build_adapters
from adgateway.adapters.mcp import MCPAdapter
from adgateway.auth import (
    CredentialCache, CredentialResolver, CredentialServiceClient, PromptBroker, SessionRegistry
)
from adgateway.auth.prompts import USER_MESSAGE
from adgateway.config import Settings
from adgateway.models import (
    CanonicalCall, CanonicalResult, CredentialRecord, CredentialTier, ErrorCode,
    GatewayError, MalformedRequest, Session, ToolDefinition
)
from adgateway.observability import GatewayMetrics, trace_scope
from adgateway.tools import ToolDispatcher, load_catalog, load_handlers
from adgateway.tools.graph import GraphAPIClient
from adgateway.transports import Connection, ConnectionManager

logger = logging.getLogger(__name__)


def _raw_call_id(raw: Any) -> Optional[Any]:
    """Best-effort call id of an envelope that failed to parse"""
    if not isinstance(raw, dict):
        return None
    value = raw.get("tool_call_id", raw.get("id"))
    return value if isinstance(value, (str, int)) else None


class Gateway:
    """Composition root shared by all transports"""

    def __init__(self, settings: Settings, catalogue: Dict[str, ToolDefinition],
                 dispatcher: ToolDispatcher, resolver: CredentialResolver,
                 registry: SessionRegistry, connections: ConnectionManager,
                 prompts: PromptBroker, service: CredentialServiceClient,
                 adapters: Dict[str, ProtocolAdapter], metrics: Optional[GatewayMetrics] = None):
        self.settings = settings
        self.catalogue = catalogue
        self.dispatcher = dispatcher
        self.resolver = resolver
        self.registry = registry
        self.connections = connections
        self.prompts = prompts
        self.service = service
        self.adapters = adapters
        self.metrics = metrics
        self.graph = GraphAPIClient(version=settings.graph_api_version)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def mcp(self) -> MCPAdapter:
        return self.adapters[MCPAdapter.name]

    @property
    def version(self) -> str:
        return self.settings.server_version

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, call: CanonicalCall, protocol: str = "mcp") -> CanonicalResult:
        """Run one canonical call through validation, credentials and dispatch"""
        measure = self.metrics.measure_call(protocol, call.tool_name) if self.metrics else nullcontext({})

        with trace_scope() as trace_id, measure as outcome:
            logger.info(f"{protocol} call {call.tool_name} (call_id={call.call_id}, session={call.caller_session_id})")
            try:
                if self.dispatcher.is_reflective(call.tool_name):
                    return CanonicalResult.success(self.dispatcher.list_tools(), call.tool_name)

                self.dispatcher.definition(call.tool_name)
                self.dispatcher.validate(call)
                credential = await self.resolver.resolve(call)
                logger.info(f"Credential for {call.tool_name} from tier {credential.source_tier.value}")
                payload = await self.dispatcher.dispatch(call, credential)
                return CanonicalResult.success(payload, call.tool_name)

            except GatewayError as e:
                logger.warning(f"{call.tool_name} failed: {e.code.value}: {e.message}")
                outcome["error_code"] = e.code.value
                return CanonicalResult.failure(e, call.tool_name)

            except Exception as e:
                logger.exception(f"Unexpected error executing {call.tool_name} (trace {trace_id})")
                outcome["error_code"] = ErrorCode.INTERNAL_ERROR.value
                return CanonicalResult.failure(
                    GatewayError(f"Internal error: {e}", {"trace_id": trace_id}), call.tool_name
                )

    async def handle(self, protocol: str, raw: Any,
                     session_id: Optional[str] = None) -> Tuple[int, Dict[str, Any]]:
        """Parse a wire request, execute it and format the reply for the same convention"""
        adapter = self.adapters[protocol]
        try:
            call = adapter.parse_request(raw, session_id)
        except GatewayError as e:
            logger.warning(f"Rejected {protocol} request: {e.message}")
            if self.metrics:
                self.metrics.record_error(protocol, e.code.value)
            result = CanonicalResult.failure(e)
            return adapter.status_code(result), adapter.format_error(e, _raw_call_id(raw))

        result = await self.execute(call, protocol)
        return adapter.status_code(result), adapter.format_response(result, call.call_id)

    # ------------------------------------------------------------------
    # MCP session protocol
    # ------------------------------------------------------------------

    async def handle_rpc(self, message: Any, session_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Route one JSON-RPC message.

        Returns the response to send back, or None for notifications and for
        client replies to server-initiated prompts.
        """
        mcp = self.mcp

        if not isinstance(message, dict):
            return mcp.format_error(MalformedRequest("JSON-RPC message must be an object"))

        if mcp.is_response(message) or message.get("method") == USER_MESSAGE:
            if not self.prompts.deliver(session_id, message):
                logger.warning(f"Unsolicited client message on session {session_id} ignored")
            return None

        try:
            rpc = mcp.parse_message(message)
        except MalformedRequest as e:
            return mcp.format_error(e, _raw_call_id(message))

        if "id" not in message:
            if rpc.method == "notifications/initialized":
                logger.info(f"Client initialized (session {session_id})")
            else:
                logger.debug(f"Ignoring notification {rpc.method}")
            return None

        if rpc.method == "initialize":
            client = rpc.params.get("clientInfo", {})
            logger.info(f"Initialize from {client.get('name', 'unknown client')} (session {session_id})")
            return mcp.initialize_result(rpc.id)
        if rpc.method == "ping":
            return mcp.empty_result(rpc.id)
        if rpc.method == "tools/list":
            return mcp.tool_list_result(rpc.id)
        if rpc.method == "tools/call":
            _, body = await self.handle(mcp.name, message, session_id)
            return body

        logger.warning(f"Method not found: {rpc.method}")
        return mcp.method_not_found(rpc.method, rpc.id)

    async def deliver(self, session_id: str, message: Any) -> bool:
        """
        Companion-request path of an open stream.

        Replies to prompts are resolved before returning. Requests run as
        independent tasks and answer on the stream, so a tool call blocked on
        a prompt never holds up the reply that unblocks it.
        """
        connection = self.connections.get(session_id)
        if connection is None:
            return False

        if isinstance(message, dict) and (self.mcp.is_response(message) or message.get("method") == USER_MESSAGE):
            await self.handle_rpc(message, session_id)
            return True

        task = asyncio.create_task(self._respond(connection, message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _respond(self, connection: Connection, message: Any):
        try:
            body = await self.handle_rpc(message, connection.session_id)
        except Exception as e:
            logger.exception(f"Error handling message on session {connection.session_id}")
            body = self.mcp.format_error(GatewayError(f"Internal error: {e}"), _raw_call_id(message))

        if body is not None:
            await connection.send(body)

    async def drain(self):
        """Wait for in-flight stream requests to finish"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Catalogue
    # ------------------------------------------------------------------

    def list_definitions(self, protocol: str) -> List[Dict[str, Any]]:
        adapter = self.adapters.get(protocol)
        if adapter is None:
            raise ValueError(f"Unknown protocol: {protocol}")
        return adapter.get_tool_definitions()

    def list_tools(self) -> List[Dict[str, str]]:
        return [
            {"name": name, "description": self.mcp.get_tool_description(name)}
            for name in self.dispatcher.tool_names()
        ]

    # ------------------------------------------------------------------
    # Sessions and tokens
    # ------------------------------------------------------------------

    async def register_session(self, session_id: str, user_id: str,
                               organization_id: Optional[str] = None,
                               connection_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Associate a session with a caller and forward the association to the
        credential service. The local mapping is kept even when forwarding
        fails; CredentialServiceError propagates to the route.

        The caller is also bound to an MCP connection, so calls arriving on it
        resolve at the session tier: ``connection_id`` when given, otherwise
        the only live connection if there is exactly one.
        """
        session = self.registry.register(session_id, user_id)

        if connection_id is None:
            live = self.connections.session_ids()
            if len(live) == 1:
                connection_id = live[0]
        if connection_id and connection_id != session_id:
            self.registry.register(connection_id, user_id)
            logger.info(f"Bound connection {connection_id} to user {user_id}")

        if self.metrics:
            self.metrics.registered_sessions.set(len(self.registry))

        logger.info(f"Forwarding session {session.session_id} (organization {organization_id})")
        return await self.service.save_user_session(user_id, session_id, organization_id)

    def lookup_session(self, session_id: str) -> Optional[Session]:
        return self.registry.get(session_id)

    def list_sessions(self) -> List[Session]:
        return self.registry.list_sessions()

    def cached_credential_tier(self) -> Optional[CredentialTier]:
        """Tier a call would resolve at without asking anyone, if any"""
        if self.resolver.override_token:
            return CredentialTier.OVERRIDE
        if self.resolver.cache.get() is not None:
            return CredentialTier.LOCAL_CACHE
        return None

    def store_oauth_token(self, token: str, expires_in: Optional[float] = None) -> CredentialRecord:
        """Keep a token obtained through the OAuth login flow in the local cache"""
        expiry = time.time() + float(expires_in) if expires_in else None
        record = CredentialRecord(token, CredentialTier.LOCAL_CACHE, expiry)
        self.resolver.cache.store(record)
        logger.info(f"Stored OAuth access token {record.redacted}")
        return record


def build_gateway(settings: Optional[Settings] = None,
                  service: Optional[CredentialServiceClient] = None,
                  metrics: Optional[GatewayMetrics] = None) -> Gateway:
    """Wire up a Gateway from settings"""
    settings = settings or Settings.from_env()

    catalogue = load_catalog(settings.catalog_path)
    handlers = load_handlers(catalogue, {"graph_api_version": settings.graph_api_version})
    dispatcher = ToolDispatcher(catalogue, handlers, timeout=settings.tool_timeout)

    adapters = build_adapters(catalogue, settings.server_name, settings.server_version)
    mcp: MCPAdapter = adapters[MCPAdapter.name]

    service = service or CredentialServiceClient(settings.deployed_url, timeout=settings.service_timeout)
    registry = SessionRegistry(settings.session_ttl, settings.session_max_entries)
    connections = ConnectionManager(metrics)
    prompts = PromptBroker(mcp.prompt_request, timeout=settings.prompt_timeout)

    resolver = CredentialResolver(
        service=service,
        registry=registry,
        connections=connections,
        prompts=prompts,
        cache=CredentialCache(),
        override_token=settings.override_token,
        prompt_timeout=settings.prompt_timeout,
        metrics=metrics,
        token_ttl=settings.token_cache_ttl
    )

    if settings.override_token:
        logger.info("FACEBOOK_ACCESS_TOKEN is set; all calls use the override token")

    return Gateway(settings, catalogue, dispatcher, resolver, registry, connections,
                   prompts, service, adapters, metrics)
