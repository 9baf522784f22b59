"""
Facebook Ads Gateway - Server

HTTP (FastAPI) and stdio transports plus the process entry point.

Usage:
    adgateway --transport http --port 3003
    adgateway --transport stdio
    SERVER_MODE=both adgateway
"""

import argparse
import asyncio
import copy
import json
import logging
import os
import sys
import uuid
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlencode

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse, Response, StreamingResponse

from adgateway.adapters.mcp import PARSE_ERROR
from adgateway.auth.service import CredentialServiceError
from adgateway.config import Settings
from adgateway.gateway import Gateway, build_gateway
from adgateway.models import CanonicalCall, ErrorCode, MalformedRequest
from adgateway.observability import GatewayMetrics, configure_logging
from adgateway.tools.graph import GraphAPIError
from adgateway.transports import SSEConnection, StdioConnection

logger = logging.getLogger(__name__)

# SERVER_MODE values mapped to --transport choices
MODE_TRANSPORTS = {"mcp": "stdio", "api": "http", "both": "both"}

OAUTH_DIALOG_URL = "https://www.facebook.com/{version}/dialog/oauth"
OAUTH_SCOPE = "ads_read,ads_management,business_management"

# POST /tools/{name} failures; anything else is a 500
REST_ERROR_STATUS = {
    ErrorCode.UNKNOWN_TOOL: 404,
    ErrorCode.INVALID_ARGUMENTS: 400,
    ErrorCode.MISSING_ORGANIZATION_ID: 400,
}


def _caller_session_id(request: Request) -> Optional[str]:
    return (request.headers.get("mcp-session-id")
            or request.headers.get("session-id")
            or request.cookies.get("session_id"))


def _rpc_status(body: Dict[str, Any]) -> int:
    code = (body.get("error") or {}).get("code")
    return 400 if code in (PARSE_ERROR, -32600) else 200


async def _read_json(request: Request) -> Any:
    raw = await request.body()
    return json.loads(raw)


async def _read_fields(request: Request) -> Dict[str, Any]:
    """Form or JSON body as a flat dict"""
    raw = await request.body()
    if "application/x-www-form-urlencoded" in request.headers.get("content-type", ""):
        return {k: v[0] for k, v in parse_qs(raw.decode()).items()}
    try:
        data = json.loads(raw or b"{}")
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


# ============================================================================
# FastAPI HTTP Transport
# ============================================================================

def create_http_app(gateway: Gateway) -> FastAPI:
    """Create FastAPI application for HTTP transport"""
    app = FastAPI(title="Facebook Ads Universal Server", version=gateway.version)
    settings = gateway.settings

    @app.get("/")
    async def root():
        return {
            "name": "Facebook Ads Universal Server",
            "version": gateway.version,
            "status": "running",
            "endpoints": ["/health", "/mcp", "/tools", "/openai/functions", "/gemini/functions"]
        }

    @app.get("/health")
    async def health():
        """Simple health check"""
        return {
            "status": "ok",
            "version": gateway.version,
            "protocols": list(gateway.adapters.keys()),
            "active_streams": len(gateway.connections)
        }

    @app.get("/tools")
    async def tools():
        return {"tools": gateway.list_tools()}

    @app.post("/tools/{tool_name}")
    async def call_tool(tool_name: str, request: Request):
        """Plain REST invocation; the body is the argument object"""
        raw = await request.body()
        try:
            args = json.loads(raw) if raw.strip() else {}
        except ValueError as e:
            return JSONResponse({"error": f"Request body is not valid JSON: {e}",
                                 "code": ErrorCode.MALFORMED_REQUEST.value}, status_code=400)
        if not isinstance(args, dict):
            return JSONResponse({"error": "Request body must be a JSON object",
                                 "code": ErrorCode.MALFORMED_REQUEST.value}, status_code=400)

        call = CanonicalCall(tool_name, args, caller_session_id=_caller_session_id(request))
        result = await gateway.execute(call, "rest")
        if not result.ok:
            return JSONResponse({"error": result.error.message, "code": result.error.code.value},
                                status_code=REST_ERROR_STATUS.get(result.error.code, 500))

        text = json.dumps(result.payload, indent=2, default=str)
        return {"content": [{"type": "text", "text": text}]}

    # ------------------------------------------------------------------
    # MCP
    # ------------------------------------------------------------------

    @app.get("/mcp")
    @app.get("/mcp/sse")
    async def mcp_stream():
        """Open a long-lived SSE stream; the first event names the message URL"""
        connection = gateway.connections.open(SSEConnection())

        async def events():
            try:
                async for event in connection.events():
                    yield event
            finally:
                gateway.connections.close(connection.session_id)

        return StreamingResponse(events(), media_type="text/event-stream",
                                 headers={"Cache-Control": "no-cache", "Connection": "keep-alive"})

    @app.post("/mcp")
    async def mcp_message(request: Request, session_id: Optional[str] = None):
        """Stateless JSON-RPC, or message delivery for an open stream when session_id is given"""
        try:
            message = await _read_json(request)
        except ValueError as e:
            return JSONResponse(gateway.mcp.parse_error(f"Parse error: {e}"), status_code=400)

        if session_id:
            if not await gateway.deliver(session_id, message):
                return JSONResponse({"error": f"No open stream for session {session_id}"}, status_code=404)
            return Response("Accepted", status_code=202)

        body = await gateway.handle_rpc(message, _caller_session_id(request))
        if body is None:
            return Response(status_code=202)
        return JSONResponse(body, status_code=_rpc_status(body))

    # ------------------------------------------------------------------
    # OpenAI and Gemini function calling
    # ------------------------------------------------------------------

    async def function_call(protocol: str, request: Request) -> JSONResponse:
        adapter = gateway.adapters[protocol]
        try:
            raw = await _read_json(request)
        except ValueError as e:
            error = MalformedRequest(f"Request body is not valid JSON: {e}")
            return JSONResponse(adapter.format_error(error), status_code=400)

        status, body = await gateway.handle(protocol, raw, _caller_session_id(request))
        return JSONResponse(body, status_code=status)

    @app.post("/openai/functions")
    async def openai_functions(request: Request):
        return await function_call("openai", request)

    @app.get("/openai/functions/definitions")
    async def openai_definitions():
        return {"functions": gateway.list_definitions("openai")}

    @app.post("/gemini/functions")
    async def gemini_functions(request: Request):
        return await function_call("gemini", request)

    @app.get("/gemini/functions/definitions")
    async def gemini_definitions():
        return {"functions": gateway.list_definitions("gemini")}

    # ------------------------------------------------------------------
    # Session registration
    # ------------------------------------------------------------------

    @app.post("/trigger-token-fetch")
    async def trigger_token_fetch(request: Request):
        fields = await _read_fields(request)
        user_id = fields.get("user_id")
        if not fields.get("access_token") or not user_id:
            return HTMLResponse("<h2>Missing access_token or user_id.</h2>", status_code=400)

        session_id = request.headers.get("session-id") or request.cookies.get("session_id")
        if not session_id:
            return HTMLResponse("<h2>Session ID not found.</h2>", status_code=400)

        # The MCP connection to bind: named explicitly, else the sole live one
        connection_id = fields.get("mcp_session_id") or request.query_params.get("mcp_session_id")
        if connection_id and not gateway.connections.is_live(connection_id):
            return HTMLResponse(f"<h2>No open MCP connection {connection_id}.</h2>", status_code=404)

        try:
            result = await gateway.register_session(session_id, str(user_id), fields.get("organization_id"),
                                                    connection_id=connection_id)
        except CredentialServiceError as e:
            logger.error(f"Error saving session {session_id}: {e.message}")
            return HTMLResponse(f"<h2>Error: {e.message}</h2>", status_code=500)

        if result.get("success"):
            return HTMLResponse("<h2>Session saved! You may now return to the app.</h2>")
        return HTMLResponse(f"<h2>Credential service error: {result.get('message', 'Unknown error')}</h2>",
                            status_code=500)

    @app.get("/save-trigger-token-fetch")
    async def saved_sessions(session_id: Optional[str] = None):
        if session_id:
            session = gateway.lookup_session(session_id)
            if session is None:
                return JSONResponse({"success": False, "message": "No user found for given session_id"},
                                    status_code=404)
            return {"success": True, **session.to_dict()}

        return {"success": True, "sessionUserMap": [s.to_dict() for s in gateway.list_sessions()]}

    # ------------------------------------------------------------------
    # Facebook OAuth login
    # ------------------------------------------------------------------

    @app.get("/mcp/start-auth/")
    async def start_auth():
        return {"auth_url": f"{settings.deployed_url}/auth/facebook", "type": "oauth2"}

    @app.get("/mcp/auth-status/")
    async def auth_status():
        tier = gateway.cached_credential_tier()
        if tier is None:
            return {"authenticated": False,
                    "message": "No Facebook token yet; sign in at /login or register a session"}
        return {"authenticated": True, "source": tier.value}

    @app.get("/auth/facebook")
    async def auth_facebook():
        return RedirectResponse("/login")

    @app.get("/login")
    async def login():
        if not settings.facebook_app_id:
            return JSONResponse({"error": "FACEBOOK_APP_ID is not configured"}, status_code=500)

        params = {
            "client_id": settings.facebook_app_id,
            "redirect_uri": settings.oauth_redirect_uri,
            "scope": OAUTH_SCOPE,
            "response_type": "code",
            "state": uuid.uuid4().hex[:8]
        }
        dialog = OAUTH_DIALOG_URL.format(version=settings.graph_api_version)
        return RedirectResponse(f"{dialog}?{urlencode(params)}")

    @app.get("/auth/callback")
    async def auth_callback(code: Optional[str] = None, error: Optional[str] = None):
        if error:
            return PlainTextResponse(f"Auth error: {error}", status_code=400)
        if not code:
            return PlainTextResponse("Missing code parameter", status_code=400)

        try:
            data = await gateway.graph.exchange_code(settings.facebook_app_id, settings.facebook_app_secret,
                                                     settings.oauth_redirect_uri, code)
        except GraphAPIError as e:
            logger.error(f"Token exchange failed: {e.message}")
            return JSONResponse({"error": "Token exchange failed", "details": {"message": e.message, **e.details}},
                                status_code=400)

        if not data.get("access_token"):
            logger.error(f"Token exchange returned no access token: {list(data.keys())}")
            return JSONResponse({"error": "Token exchange failed", "details": data}, status_code=400)

        gateway.store_oauth_token(data["access_token"], data.get("expires_in"))
        return HTMLResponse(
            "<h2>Successfully Connected!</h2>"
            "<p>Your Facebook account has been linked. You can close this window.</p>"
        )

    return app


def create_app(gateway: Optional[Gateway] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    settings = settings or (gateway.settings if gateway else Settings.from_env())
    if gateway is None:
        metrics = GatewayMetrics(version=settings.server_version) if settings.enable_metrics else None
        gateway = build_gateway(settings, metrics=metrics)

    app = create_http_app(gateway)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Store gateway instance for access in routes
    app.state.gateway = gateway

    if gateway.metrics is not None:
        logger.info("Enabling metrics endpoint")
        metrics = gateway.metrics

        @app.get("/metrics")
        async def prometheus_metrics():
            """Prometheus metrics endpoint"""
            return Response(
                content=metrics.get_prometheus_metrics(),
                media_type=metrics.get_content_type()
            )

    return app


# ============================================================================
# STDIO Transport
# ============================================================================

async def stdio_server(gateway: Gateway, stdin=None, stdout=None):
    """Run MCP over line-delimited JSON-RPC on stdin/stdout"""
    stdin = stdin or sys.stdin
    connection = gateway.connections.open(StdioConnection(stream=stdout))
    logger.info(f"Starting MCP server on stdio (session {connection.session_id})")

    async def read_stdin():
        loop = asyncio.get_running_loop()
        while True:
            line = await loop.run_in_executor(None, stdin.readline)
            if not line:
                break
            yield line.strip()

    try:
        async for line in read_stdin():
            if not line:
                continue

            try:
                message = json.loads(line)
            except ValueError as e:
                await connection.send(gateway.mcp.parse_error(f"Parse error: {e}"))
                continue

            await gateway.deliver(connection.session_id, message)

        await gateway.drain()
    finally:
        gateway.connections.close(connection.session_id)
        logger.info("stdin closed, stdio transport stopped")


# ============================================================================
# Main Entry Point
# ============================================================================

def _fatal_exception_handler(loop, context):
    exception = context.get("exception")
    logger.critical(f"Unhandled exception: {context.get('message')}", exc_info=exception)
    logging.shutdown()
    os._exit(1)


def _excepthook(exc_type, exc, tb):
    logger.critical("Uncaught exception", exc_info=(exc_type, exc, tb))


def uvicorn_log_config() -> Dict[str, Any]:
    """uvicorn's logging config with every handler on stderr; stdout belongs to stdio"""
    from uvicorn.config import LOGGING_CONFIG

    config = copy.deepcopy(LOGGING_CONFIG)
    for handler in config["handlers"].values():
        if "stream" in handler:
            handler["stream"] = "ext://sys.stderr"
    return config


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Facebook Ads Universal Server")
    parser.add_argument("--transport", choices=["stdio", "http", "both"],
                        default=MODE_TRANSPORTS.get(os.getenv("SERVER_MODE", "mcp"), "stdio"),
                        help="Transport protocol")
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"),
                        help="HTTP bind address")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "3003")),
                        help="HTTP port")
    parser.add_argument("--catalog", default=os.getenv("TOOL_CATALOG"),
                        help="Path to the tool catalogue YAML")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"),
                        help="Logging level")
    return parser.parse_args(argv)


async def main(args: argparse.Namespace):
    """Main entry point"""
    asyncio.get_running_loop().set_exception_handler(_fatal_exception_handler)

    settings = Settings.from_env()
    settings.host = args.host
    settings.port = args.port
    settings.catalog_path = args.catalog
    settings.log_level = args.log_level.upper()

    metrics = GatewayMetrics(version=settings.server_version) if settings.enable_metrics else None
    gateway = build_gateway(settings, metrics=metrics)

    if args.transport == "stdio":
        await stdio_server(gateway)
        return

    import uvicorn
    app = create_app(gateway)
    config = uvicorn.Config(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower(),
                            log_config=uvicorn_log_config())
    server = uvicorn.Server(config)
    logger.info(f"Starting HTTP server on {settings.host}:{settings.port}")

    if args.transport == "both":
        await asyncio.gather(server.serve(), stdio_server(gateway))
    else:
        await server.serve()


def run():
    args = parse_args()
    configure_logging(args.log_level)
    sys.excepthook = _excepthook
    asyncio.run(main(args))


if __name__ == "__main__":
    run()
