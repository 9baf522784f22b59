"""
Facebook Ads Gateway - Tool Base

Handler registry and catalogue loading. The catalogue (catalog.yaml) is the
single source of truth for tool names and parameter schemas; each catalogue
entry is served by exactly one ToolHandler subclass in tools/plugins/.
"""

import importlib
import logging
import pkgutil
from pathlib import Path
from typing import Any, Dict, Optional, Type

import yaml

from adgateway.models import ToolDefinition

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).with_name("catalog.yaml")
PLUGINS_PACKAGE = "adgateway.tools.plugins"


class ToolHandler:
    """
    Base class for tool handlers.

    To add a handler:
    1. Subclass ToolHandler and set TOOL_NAME to a catalogue entry
    2. Implement ``handle(args, token)``
    3. Decorate the class with ``@ToolHandler.register``

    Handlers signal failure by raising with a human-readable message; the
    dispatcher passes that message through unchanged.
    """

    _registry: Dict[str, Type['ToolHandler']] = {}

    TOOL_NAME: str = None

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}

    @classmethod
    def register(cls, handler_class: Type['ToolHandler']) -> Type['ToolHandler']:
        """Register a handler class under its TOOL_NAME"""
        if not handler_class.TOOL_NAME:
            raise ValueError(f"Handler class {handler_class.__name__} has no TOOL_NAME")

        existing = cls._registry.get(handler_class.TOOL_NAME)
        if existing is not None and existing is not handler_class:
            raise ValueError(f"Duplicate handler for tool: {handler_class.TOOL_NAME}")

        cls._registry[handler_class.TOOL_NAME] = handler_class
        logger.debug(f"Registered handler: {handler_class.TOOL_NAME}")
        return handler_class

    @classmethod
    def get_handler_class(cls, tool_name: str) -> Optional[Type['ToolHandler']]:
        return cls._registry.get(tool_name)

    async def handle(self, args: Dict[str, Any], token: str) -> Any:
        raise NotImplementedError


def load_catalog(path: Optional[str] = None) -> Dict[str, ToolDefinition]:
    """Load the static tool catalogue from YAML, keyed by tool name"""
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH

    with open(catalog_path, 'r') as f:
        config = yaml.safe_load(f)

    catalogue: Dict[str, ToolDefinition] = {}
    for tool_config in config.get("tools", []):
        name = tool_config["name"]
        if name in catalogue:
            raise ValueError(f"Duplicate tool in catalogue: {name}")

        catalogue[name] = ToolDefinition(
            name=name,
            description=tool_config.get("description", ""),
            parameter_schema=tool_config.get("parameters", {"type": "object", "properties": {}})
        )

    logger.info(f"Loaded {len(catalogue)} tools from {catalog_path}")
    return catalogue


def load_handlers(catalogue: Dict[str, ToolDefinition],
                  config: Optional[Dict[str, Any]] = None) -> Dict[str, ToolHandler]:
    """
    Import every plugin module and instantiate one handler per catalogue entry.

    Raises if a catalogue entry has no handler, so a broken catalogue fails at
    startup instead of on the first call.
    """
    package = importlib.import_module(PLUGINS_PACKAGE)
    for module_info in pkgutil.iter_modules(package.__path__):
        if module_info.name.startswith("_"):
            continue
        importlib.import_module(f"{PLUGINS_PACKAGE}.{module_info.name}")

    handlers: Dict[str, ToolHandler] = {}
    for name in catalogue:
        handler_class = ToolHandler.get_handler_class(name)
        if handler_class is None:
            raise ValueError(f"No handler registered for catalogue tool: {name}")
        handlers[name] = handler_class(config)

    logger.info(f"Loaded {len(handlers)} tool handlers")
    return handlers
