"""
Facebook Ads Gateway - Tool catalogue, handlers and dispatch.
"""

from adgateway.tools.base import ToolHandler, load_catalog, load_handlers
from adgateway.tools.dispatcher import ToolDispatcher, LIST_TOOLS

__all__ = [
    'ToolHandler',
    'load_catalog',
    'load_handlers',
    'ToolDispatcher',
    'LIST_TOOLS',
]
