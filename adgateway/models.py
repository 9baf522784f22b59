"""
Facebook Ads Gateway - Canonical Call Model
Protocol-neutral representation of tool invocations, results and failures.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

CallId = Union[str, int]


# ============================================================================
# Tool Catalogue
# ============================================================================

@dataclass(frozen=True)
class ToolDefinition:
    """One entry of the static tool catalogue"""
    name: str
    description: str
    parameter_schema: Dict[str, Any]

    @property
    def properties(self) -> Dict[str, Any]:
        return self.parameter_schema.get("properties", {})

    @property
    def required(self) -> List[str]:
        return list(self.parameter_schema.get("required", []))


# ============================================================================
# Calls and Results
# ============================================================================

@dataclass
class CanonicalCall:
    """A single tool invocation, independent of the wire convention"""
    tool_name: str
    args: Dict[str, Any] = field(default_factory=dict)
    call_id: Optional[CallId] = None
    caller_session_id: Optional[str] = None


@dataclass
class CanonicalResult:
    """Outcome of a canonical call. Exactly one of payload/error is meaningful."""
    payload: Any = None
    error: Optional["GatewayError"] = None
    tool_name: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, payload: Any, tool_name: Optional[str] = None) -> "CanonicalResult":
        return cls(payload=payload, tool_name=tool_name)

    @classmethod
    def failure(cls, error: "GatewayError", tool_name: Optional[str] = None) -> "CanonicalResult":
        return cls(error=error, tool_name=tool_name)


# ============================================================================
# Sessions and Credentials
# ============================================================================

@dataclass
class Session:
    """Association of a connection/session id with a caller"""
    session_id: str
    caller_user_id: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {"sessionId": self.session_id, "userId": self.caller_user_id}


class CredentialTier(str, Enum):
    OVERRIDE = "override"
    LOCAL_CACHE = "local_cache"
    TOKEN_SERVICE = "token_service"


@dataclass
class CredentialRecord:
    """An upstream access token and where it came from"""
    token: str
    source_tier: CredentialTier
    expiry: Optional[float] = None

    def expired(self, now: Optional[float] = None) -> bool:
        if self.expiry is None:
            return False
        return (now if now is not None else time.time()) >= self.expiry

    @property
    def redacted(self) -> str:
        return f"{self.token[:10]}..."


# ============================================================================
# Errors
# ============================================================================

class ErrorCode(str, Enum):
    MALFORMED_REQUEST = "MALFORMED_REQUEST"
    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    INVALID_ARGUMENTS = "INVALID_ARGUMENTS"
    MISSING_ORGANIZATION_ID = "MISSING_ORGANIZATION_ID"
    NO_SESSION_FOUND = "NO_SESSION_FOUND"
    TOKEN_FETCH_FAILED = "TOKEN_FETCH_FAILED"
    TOOL_EXECUTION_FAILED = "TOOL_EXECUTION_FAILED"
    USER_RESPONSE_TIMEOUT = "USER_RESPONSE_TIMEOUT"
    METHOD_NOT_FOUND = "METHOD_NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class GatewayError(Exception):
    """Base exception for gateway failures"""
    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 code: Optional[ErrorCode] = None):
        if code is not None:
            self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details
        }


class MalformedRequest(GatewayError):
    code = ErrorCode.MALFORMED_REQUEST


class UnknownTool(GatewayError):
    code = ErrorCode.UNKNOWN_TOOL

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}", {"tool": tool_name})
        self.tool_name = tool_name


class InvalidArguments(GatewayError):
    code = ErrorCode.INVALID_ARGUMENTS

    def __init__(self, field_name: str, message: str):
        super().__init__(message, {"field": field_name})
        self.field = field_name


class MissingOrganizationId(GatewayError):
    code = ErrorCode.MISSING_ORGANIZATION_ID


class NoSessionFound(GatewayError):
    code = ErrorCode.NO_SESSION_FOUND


class TokenFetchFailed(GatewayError):
    code = ErrorCode.TOKEN_FETCH_FAILED


class ToolExecutionFailed(GatewayError):
    code = ErrorCode.TOOL_EXECUTION_FAILED


class UserResponseTimeout(GatewayError):
    code = ErrorCode.USER_RESPONSE_TIMEOUT


class MethodNotFound(GatewayError):
    code = ErrorCode.METHOD_NOT_FOUND

    def __init__(self, method: Optional[str]):
        super().__init__(f"Method not found: {method}", {"method": method})
