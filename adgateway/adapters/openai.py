"""
Facebook Ads Gateway - OpenAI Function Calling Adapter
Stateless request/response correlated by the caller's tool_call_id.
"""

import json
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field

from adgateway.adapters.base import ProtocolAdapter, parse_envelope
from adgateway.models import (
    CallId, CanonicalCall, CanonicalResult, ErrorCode, GatewayError,
    MalformedRequest, ToolDefinition
)

# (error type, error code) per semantic error
ERROR_TYPES = {
    ErrorCode.MALFORMED_REQUEST: ("invalid_request_error", "malformed_request"),
    ErrorCode.UNKNOWN_TOOL: ("invalid_request_error", "unknown_tool"),
    ErrorCode.INVALID_ARGUMENTS: ("invalid_request_error", "invalid_arguments"),
    ErrorCode.METHOD_NOT_FOUND: ("invalid_request_error", "method_not_found"),
    ErrorCode.MISSING_ORGANIZATION_ID: ("invalid_request_error", "missing_organization_id"),
    ErrorCode.NO_SESSION_FOUND: ("authentication_error", "no_session_found"),
    ErrorCode.TOKEN_FETCH_FAILED: ("authentication_error", "token_fetch_failed"),
    ErrorCode.USER_RESPONSE_TIMEOUT: ("timeout_error", "user_response_timeout"),
    ErrorCode.TOOL_EXECUTION_FAILED: ("tool_error", "tool_execution_failed"),
    ErrorCode.INTERNAL_ERROR: ("server_error", "internal_error"),
}


class OpenAIFunction(BaseModel):
    name: str
    arguments: Union[Dict[str, Any], str] = Field(default_factory=dict)


class OpenAIToolCall(BaseModel):
    """Nested tool call as emitted in an assistant message"""
    id: Optional[str] = None
    type: str = "function"
    function: OpenAIFunction


class OpenAIFlatCall(BaseModel):
    """Flat {name, arguments} envelope"""
    tool_call_id: Optional[str] = None
    id: Optional[str] = None
    name: str
    arguments: Union[Dict[str, Any], str] = Field(default_factory=dict)


def _decode_arguments(arguments: Union[Dict[str, Any], str]) -> Dict[str, Any]:
    if isinstance(arguments, dict):
        return arguments
    if not arguments.strip():
        return {}
    try:
        decoded = json.loads(arguments)
    except json.JSONDecodeError as e:
        raise MalformedRequest(f"arguments is not valid JSON: {e}", {"field": "arguments"})
    if not isinstance(decoded, dict):
        raise MalformedRequest("arguments must encode a JSON object", {"field": "arguments"})
    return decoded


class OpenAIAdapter(ProtocolAdapter):
    """Adapter for OpenAI-style function calling"""

    name = "openai"

    def parse_request(self, raw: Any, session_id: Optional[str] = None) -> CanonicalCall:
        if isinstance(raw, dict) and isinstance(raw.get("tool_call"), dict):
            raw = raw["tool_call"]

        if isinstance(raw, dict) and "function" in raw:
            nested = parse_envelope(OpenAIToolCall, raw, "OpenAI")
            call_id = nested.id
            name, arguments = nested.function.name, nested.function.arguments
        else:
            flat = parse_envelope(OpenAIFlatCall, raw, "OpenAI")
            call_id = flat.tool_call_id or flat.id
            name, arguments = flat.name, flat.arguments

        if not call_id:
            raise MalformedRequest("tool_call_id is required", {"field": "tool_call_id"})

        return CanonicalCall(
            tool_name=name,
            args=_decode_arguments(arguments),
            call_id=call_id,
            caller_session_id=session_id
        )

    def build_request(self, call: CanonicalCall) -> Dict[str, Any]:
        return {
            "id": call.call_id,
            "type": "function",
            "function": {"name": call.tool_name, "arguments": json.dumps(call.args)}
        }

    def definition_for(self, tool: ToolDefinition) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameter_schema
            }
        }

    def format_response(self, result: CanonicalResult, call_id: Optional[CallId] = None) -> Dict[str, Any]:
        if not result.ok:
            return self.format_error(result.error, call_id, result.tool_name)

        return {
            "tool_call_id": call_id,
            "role": "tool",
            "name": result.tool_name,
            "content": result.payload
        }

    def format_error(self, error: GatewayError, call_id: Optional[CallId] = None,
                     tool_name: Optional[str] = None) -> Dict[str, Any]:
        error_type, code = ERROR_TYPES.get(error.code, ("server_error", "internal_error"))
        return {
            "tool_call_id": call_id,
            "error": {
                "message": error.message,
                "type": error_type,
                "code": code,
                "param": error.details.get("field")
            }
        }
