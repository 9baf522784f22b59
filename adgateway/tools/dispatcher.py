"""
Facebook Ads Gateway - Tool Dispatcher
Routes a canonical call to its handler after validating the arguments
against the catalogue schema.
"""

import asyncio
import logging
from typing import Any, Dict, List

from jsonschema import Draft7Validator
from jsonschema.exceptions import ValidationError

from adgateway.models import (
    CanonicalCall, CredentialRecord, ToolDefinition,
    InvalidArguments, ToolExecutionFailed, UnknownTool
)
from adgateway.tools.base import ToolHandler

logger = logging.getLogger(__name__)

LIST_TOOLS = "_list_tools"


def _offending_field(error: ValidationError) -> str:
    """Name the argument a schema error is about"""
    path = ".".join(str(p) for p in error.absolute_path)

    if error.validator == "required":
        missing = next((name for name in error.validator_value
                        if isinstance(error.instance, dict) and name not in error.instance), None)
        if missing:
            return f"{path}.{missing}" if path else missing

    if error.validator == "additionalProperties" and isinstance(error.instance, dict):
        allowed = set(error.schema.get("properties", {}))
        extra = sorted(k for k in error.instance if k not in allowed)
        if extra:
            return f"{path}.{extra[0]}" if path else extra[0]

    return path or "arguments"


class ToolDispatcher:
    """Validates calls and invokes the matching handler"""

    def __init__(self, catalogue: Dict[str, ToolDefinition],
                 handlers: Dict[str, ToolHandler], timeout: float = 60.0):
        self.catalogue = catalogue
        self.handlers = handlers
        self.timeout = timeout
        self._validators = {
            name: Draft7Validator(definition.parameter_schema)
            for name, definition in catalogue.items()
        }

    def tool_names(self) -> List[str]:
        return list(self.catalogue.keys())

    @staticmethod
    def is_reflective(tool_name: str) -> bool:
        return tool_name == LIST_TOOLS

    def definition(self, tool_name: str) -> ToolDefinition:
        definition = self.catalogue.get(tool_name)
        if definition is None:
            raise UnknownTool(tool_name)
        return definition

    def validate(self, call: CanonicalCall):
        """Raise InvalidArguments for the first schema violation"""
        self.definition(call.tool_name)
        validator = self._validators[call.tool_name]

        errors = sorted(validator.iter_errors(call.args), key=lambda e: [str(p) for p in e.absolute_path])
        if errors:
            error = errors[0]
            field_name = _offending_field(error)
            raise InvalidArguments(field_name, f"Invalid argument '{field_name}': {error.message}")

    def list_tools(self) -> List[str]:
        return self.tool_names()

    async def dispatch(self, call: CanonicalCall, credential: CredentialRecord) -> Any:
        """Validate and run the handler; handler failures surface verbatim"""
        if self.is_reflective(call.tool_name):
            return self.list_tools()

        self.validate(call)
        handler = self.handlers.get(call.tool_name)
        if handler is None:
            raise UnknownTool(call.tool_name)

        logger.info(f"Executing tool: {call.tool_name}")
        try:
            return await asyncio.wait_for(handler.handle(call.args, credential.token), self.timeout)
        except asyncio.TimeoutError:
            raise ToolExecutionFailed(f"Tool {call.tool_name} timed out after {self.timeout}s",
                                      {"tool": call.tool_name})
        except Exception as e:
            logger.error(f"Tool {call.tool_name} failed: {e}")
            raise ToolExecutionFailed(str(e), {"tool": call.tool_name, "type": type(e).__name__})
