"""
Facebook Ads Gateway - Protocol Adapters
One adapter per calling convention, keyed by transport identifier.
"""

from typing import Dict

from adgateway.adapters.base import ProtocolAdapter
from adgateway.adapters.gemini import GeminiAdapter
from adgateway.adapters.mcp import MCPAdapter
from adgateway.adapters.openai import OpenAIAdapter
from adgateway.models import ToolDefinition


def build_adapters(catalogue: Dict[str, ToolDefinition], server_name: str = "facebook-ads-universal",
                   server_version: str = "2.0.0") -> Dict[str, ProtocolAdapter]:
    """Create the adapter registry used by the gateway"""
    return {
        MCPAdapter.name: MCPAdapter(catalogue, server_name, server_version),
        OpenAIAdapter.name: OpenAIAdapter(catalogue),
        GeminiAdapter.name: GeminiAdapter(catalogue),
    }


__all__ = [
    'ProtocolAdapter',
    'MCPAdapter',
    'OpenAIAdapter',
    'GeminiAdapter',
    'build_adapters',
]
