"""Shared pieces for the Graph API handlers"""

from typing import Any, Dict, Iterable

from adgateway.tools.base import ToolHandler
from adgateway.tools.graph import GraphAPIClient


class GraphTool(ToolHandler):
    """ToolHandler with a Graph API client built from the handler config"""

    def __init__(self, config=None):
        super().__init__(config)
        self.graph = GraphAPIClient(
            version=self.config.get("graph_api_version", "v23.0"),
            timeout=self.config.get("graph_timeout", 30.0)
        )


def pick(args: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    """Copy the given keys from args, skipping absent and None values"""
    return {k: args[k] for k in keys if args.get(k) is not None}


def require_act_id(act_id: str) -> str:
    if not act_id.startswith("act_"):
        raise ValueError(f"act_id must be prefixed with act_: {act_id}")
    return act_id
