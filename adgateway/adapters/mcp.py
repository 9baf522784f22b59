"""
Facebook Ads Gateway - MCP Adapter
JSON-RPC 2.0 envelopes for the Model Context Protocol, session-oriented.
"""

import json
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field

from adgateway.adapters.base import ProtocolAdapter, parse_envelope
from adgateway.config import PROTOCOL_VERSION
from adgateway.models import (
    CallId, CanonicalCall, CanonicalResult, ErrorCode, GatewayError,
    MalformedRequest, MethodNotFound, ToolDefinition
)

PARSE_ERROR = -32700

# JSON-RPC error codes per semantic error
ERROR_CODES = {
    ErrorCode.MALFORMED_REQUEST: -32600,
    ErrorCode.METHOD_NOT_FOUND: -32601,
    ErrorCode.UNKNOWN_TOOL: -32602,
    ErrorCode.INVALID_ARGUMENTS: -32602,
    ErrorCode.INTERNAL_ERROR: -32603,
    ErrorCode.TOOL_EXECUTION_FAILED: -32000,
    ErrorCode.MISSING_ORGANIZATION_ID: -32001,
    ErrorCode.NO_SESSION_FOUND: -32002,
    ErrorCode.TOKEN_FETCH_FAILED: -32003,
    ErrorCode.USER_RESPONSE_TIMEOUT: -32004,
}

PROMPT_TEXT = "Please enter your Organization ID to continue:"


class JSONRPCMessage(BaseModel):
    """JSON-RPC request or notification"""
    jsonrpc: str = "2.0"
    id: Optional[Union[int, str]] = None
    method: str
    params: Dict[str, Any] = Field(default_factory=dict)


class MCPToolCall(BaseModel):
    """params of a tools/call request"""
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class MCPAdapter(ProtocolAdapter):
    """Adapter for MCP clients (stdio, streamable HTTP and SSE)"""

    name = "mcp"

    def __init__(self, catalogue: Dict[str, ToolDefinition],
                 server_name: str = "facebook-ads-universal", server_version: str = "2.0.0"):
        super().__init__(catalogue)
        self.server_name = server_name
        self.server_version = server_version

    # ------------------------------------------------------------------
    # Envelope helpers
    # ------------------------------------------------------------------

    @staticmethod
    def is_response(message: Any) -> bool:
        """A client reply to a server-initiated request"""
        return (isinstance(message, dict) and "method" not in message
                and "id" in message and ("result" in message or "error" in message))

    @staticmethod
    def is_notification(message: Any) -> bool:
        return isinstance(message, dict) and "method" in message and "id" not in message

    def parse_message(self, raw: Any) -> JSONRPCMessage:
        if not isinstance(raw, dict):
            raise MalformedRequest("JSON-RPC message must be an object")
        return parse_envelope(JSONRPCMessage, raw, "JSON-RPC")

    def parse_request(self, raw: Any, session_id: Optional[str] = None) -> CanonicalCall:
        message = self.parse_message(raw)
        if message.method != "tools/call":
            raise MethodNotFound(message.method)
        if "params" not in raw:
            raise MalformedRequest("tools/call requires params", {"field": "params"})

        params = parse_envelope(MCPToolCall, message.params, "tools/call")
        return CanonicalCall(
            tool_name=params.name,
            args=params.arguments,
            call_id=message.id,
            caller_session_id=session_id
        )

    def build_request(self, call: CanonicalCall) -> Dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": call.call_id,
            "method": "tools/call",
            "params": {"name": call.tool_name, "arguments": call.args}
        }

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def definition_for(self, tool: ToolDefinition) -> Dict[str, Any]:
        return {
            "name": tool.name,
            "description": tool.description,
            "inputSchema": tool.parameter_schema
        }

    def _envelope(self, call_id: Optional[CallId], result: Dict[str, Any]) -> Dict[str, Any]:
        return {"jsonrpc": "2.0", "id": call_id, "result": result}

    def format_response(self, result: CanonicalResult, call_id: Optional[CallId] = None) -> Dict[str, Any]:
        if not result.ok:
            return self.format_error(result.error, call_id, result.tool_name)

        text = json.dumps(result.payload, indent=2, default=str)
        return self._envelope(call_id, {"content": [{"type": "text", "text": text}]})

    def format_error(self, error: GatewayError, call_id: Optional[CallId] = None,
                     tool_name: Optional[str] = None) -> Dict[str, Any]:
        data = {"code": error.code.value}
        data.update(error.details)
        return {
            "jsonrpc": "2.0",
            "id": call_id,
            "error": {
                "code": ERROR_CODES.get(error.code, -32603),
                "message": error.message,
                "data": data
            }
        }

    def method_not_found(self, method: Optional[str], call_id: Optional[CallId] = None) -> Dict[str, Any]:
        return self.format_error(MethodNotFound(method), call_id)

    def parse_error(self, message: str) -> Dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": PARSE_ERROR, "message": message, "data": {"code": ErrorCode.MALFORMED_REQUEST.value}}
        }

    def status_code(self, result: CanonicalResult) -> int:
        # JSON-RPC errors travel in a 200 body; only unreadable envelopes are rejected
        if not result.ok and result.error.code == ErrorCode.MALFORMED_REQUEST:
            return 400
        return 200

    # ------------------------------------------------------------------
    # Session handshake and server-initiated messages
    # ------------------------------------------------------------------

    def initialize_result(self, call_id: Optional[CallId]) -> Dict[str, Any]:
        return self._envelope(call_id, {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": self.server_name, "version": self.server_version}
        })

    def tool_list_result(self, call_id: Optional[CallId]) -> Dict[str, Any]:
        return self._envelope(call_id, {"tools": self.get_tool_definitions()})

    def empty_result(self, call_id: Optional[CallId]) -> Dict[str, Any]:
        return self._envelope(call_id, {})

    def prompt_request(self, request_id: str, text: str = PROMPT_TEXT) -> Dict[str, Any]:
        """Server-to-client request asking the user for their organization id"""
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": "elicitation/create",
            "params": {
                "message": text,
                "requestedSchema": {
                    "type": "object",
                    "properties": {
                        "organization_id": {"type": "string", "description": "Organization ID"}
                    },
                    "required": ["organization_id"]
                }
            }
        }
