"""
Facebook Ads Gateway - Gemini Function Calling Adapter
Stateless request/response without call-id correlation.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel

from adgateway.adapters.base import ProtocolAdapter, parse_envelope
from adgateway.models import (
    CallId, CanonicalCall, CanonicalResult, ErrorCode, GatewayError,
    MalformedRequest, ToolDefinition
)

# (http code, google.rpc status) per semantic error
ERROR_STATUS = {
    ErrorCode.MALFORMED_REQUEST: (400, "INVALID_ARGUMENT"),
    ErrorCode.INVALID_ARGUMENTS: (400, "INVALID_ARGUMENT"),
    ErrorCode.MISSING_ORGANIZATION_ID: (400, "FAILED_PRECONDITION"),
    ErrorCode.UNKNOWN_TOOL: (404, "NOT_FOUND"),
    ErrorCode.METHOD_NOT_FOUND: (404, "NOT_FOUND"),
    ErrorCode.NO_SESSION_FOUND: (401, "UNAUTHENTICATED"),
    ErrorCode.TOKEN_FETCH_FAILED: (503, "UNAVAILABLE"),
    ErrorCode.USER_RESPONSE_TIMEOUT: (504, "DEADLINE_EXCEEDED"),
    ErrorCode.TOOL_EXECUTION_FAILED: (500, "UNKNOWN"),
    ErrorCode.INTERNAL_ERROR: (500, "INTERNAL"),
}

# Schema keywords the Gemini OpenAPI subset understands
SUPPORTED_KEYWORDS = {"description", "enum", "format", "minItems", "maxItems", "nullable"}


class GeminiFunctionCall(BaseModel):
    name: str
    args: Optional[Dict[str, Any]] = None
    arguments: Optional[Dict[str, Any]] = None


def to_gemini_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a JSON schema into Gemini's OpenAPI subset"""
    converted: Dict[str, Any] = {}

    schema_type = schema.get("type")
    alternatives = []
    if isinstance(schema_type, list):
        non_null = [t for t in schema_type if t != "null"]
        if "null" in schema_type:
            converted["nullable"] = True
        schema_type = non_null[0] if non_null else "string"
        alternatives = non_null[1:]
    if schema_type:
        converted["type"] = schema_type.upper()

    for key, value in schema.items():
        if key in SUPPORTED_KEYWORDS:
            converted[key] = value

    # No union types in the subset; name the other accepted types instead
    if alternatives:
        note = f"Also accepts {' or '.join(alternatives)} values."
        converted["description"] = f"{converted['description']} {note}" if converted.get("description") else note

    if "properties" in schema:
        converted["properties"] = {
            name: to_gemini_schema(prop) for name, prop in schema["properties"].items()
        }
    if "required" in schema:
        converted["required"] = list(schema["required"])
    if "items" in schema:
        converted["items"] = to_gemini_schema(schema["items"])

    return converted


class GeminiAdapter(ProtocolAdapter):
    """Adapter for Gemini-style function calling"""

    name = "gemini"

    def parse_request(self, raw: Any, session_id: Optional[str] = None) -> CanonicalCall:
        if isinstance(raw, dict) and "functionCall" in raw:
            raw = raw["functionCall"]

        call = parse_envelope(GeminiFunctionCall, raw, "Gemini")
        if call.args is not None and call.arguments is not None:
            raise MalformedRequest("Use either args or arguments, not both", {"field": "args"})

        args = call.args if call.args is not None else call.arguments
        return CanonicalCall(
            tool_name=call.name,
            args=args or {},
            caller_session_id=session_id
        )

    def build_request(self, call: CanonicalCall) -> Dict[str, Any]:
        return {"functionCall": {"name": call.tool_name, "args": call.args}}

    def definition_for(self, tool: ToolDefinition) -> Dict[str, Any]:
        return {
            "name": tool.name,
            "description": tool.description,
            "parameters": to_gemini_schema(tool.parameter_schema)
        }

    def format_response(self, result: CanonicalResult, call_id: Optional[CallId] = None) -> Dict[str, Any]:
        if not result.ok:
            return self.format_error(result.error, call_id, result.tool_name)

        payload = result.payload
        response = payload if isinstance(payload, dict) else {"result": payload}
        return {"functionResponse": {"name": result.tool_name, "response": response}}

    def format_error(self, error: GatewayError, call_id: Optional[CallId] = None,
                     tool_name: Optional[str] = None) -> Dict[str, Any]:
        code, status = ERROR_STATUS.get(error.code, (500, "INTERNAL"))
        detail = {"reason": error.code.value}
        if "field" in error.details:
            detail["field"] = error.details["field"]
        if tool_name:
            detail["function"] = tool_name

        return {
            "error": {
                "code": code,
                "message": error.message,
                "status": status,
                "details": [detail]
            }
        }

    def status_code(self, result: CanonicalResult) -> int:
        if result.ok:
            return 200
        return ERROR_STATUS.get(result.error.code, (500, "INTERNAL"))[0]
