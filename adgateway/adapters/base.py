"""
Facebook Ads Gateway - Protocol Adapter Interface

Every calling convention is served by one ProtocolAdapter that translates its
wire envelope to and from the canonical call model. Each adapter owns its own
error vocabulary; the gateway only ever hands it a GatewayError.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from adgateway.models import (
    CallId, CanonicalCall, CanonicalResult, ErrorCode, GatewayError,
    MalformedRequest, ToolDefinition, UnknownTool
)

logger = logging.getLogger(__name__)


def parse_envelope(model: Type[BaseModel], raw: Any, protocol: str) -> BaseModel:
    """Validate a raw body against an envelope model or raise MalformedRequest"""
    if not isinstance(raw, dict):
        raise MalformedRequest(f"{protocol} request body must be a JSON object")
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(p) for p in first["loc"]) or "body"
        raise MalformedRequest(
            f"Malformed {protocol} request: {location}: {first['msg']}",
            {"field": location}
        )


class ProtocolAdapter(ABC):
    """Base class for calling-convention adapters"""

    name: str = None

    def __init__(self, catalogue: Dict[str, ToolDefinition]):
        self.catalogue = catalogue

    @abstractmethod
    def parse_request(self, raw: Any, session_id: Optional[str] = None) -> CanonicalCall:
        """Validate the wire envelope and build a canonical call"""
        raise NotImplementedError

    @abstractmethod
    def build_request(self, call: CanonicalCall) -> Dict[str, Any]:
        """Build the wire request a client of this convention would send"""
        raise NotImplementedError

    @abstractmethod
    def definition_for(self, tool: ToolDefinition) -> Dict[str, Any]:
        """Project one catalogue entry into this convention's schema dialect"""
        raise NotImplementedError

    @abstractmethod
    def format_response(self, result: CanonicalResult, call_id: Optional[CallId] = None) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def format_error(self, error: GatewayError, call_id: Optional[CallId] = None,
                     tool_name: Optional[str] = None) -> Dict[str, Any]:
        raise NotImplementedError

    def get_tool_definitions(self, catalogue: Optional[Dict[str, ToolDefinition]] = None) -> List[Dict[str, Any]]:
        catalogue = catalogue if catalogue is not None else self.catalogue
        return [self.definition_for(tool) for tool in catalogue.values()]

    def get_tool_description(self, name: str) -> str:
        tool = self.catalogue.get(name)
        if tool is None:
            raise UnknownTool(name)
        return tool.description

    def status_code(self, result: CanonicalResult) -> int:
        """HTTP status a transport should use for this result"""
        if result.ok:
            return 200
        return HTTP_STATUS.get(result.error.code, 500)


HTTP_STATUS = {
    ErrorCode.MALFORMED_REQUEST: 400,
    ErrorCode.UNKNOWN_TOOL: 404,
    ErrorCode.INVALID_ARGUMENTS: 400,
    ErrorCode.MISSING_ORGANIZATION_ID: 400,
    ErrorCode.NO_SESSION_FOUND: 401,
    ErrorCode.TOKEN_FETCH_FAILED: 502,
    ErrorCode.TOOL_EXECUTION_FAILED: 502,
    ErrorCode.USER_RESPONSE_TIMEOUT: 504,
    ErrorCode.METHOD_NOT_FOUND: 404,
    ErrorCode.INTERNAL_ERROR: 500,
}
