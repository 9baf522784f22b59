"""
Reporting tools - account insights and activity history.
"""

from typing import Any, Dict

from adgateway.tools.base import ToolHandler
from adgateway.tools.plugins._common import GraphTool, pick, require_act_id

INSIGHTS_PARAMS = [
    "fields", "date_preset", "level", "action_attribution_windows",
    "action_breakdowns", "breakdowns", "time_range", "limit", "sort",
    "after", "before", "time_increment"
]

ACTIVITY_PARAMS = ["fields", "since", "until", "time_range", "limit", "after", "before"]


@ToolHandler.register
class GetAdAccountInsights(GraphTool):
    TOOL_NAME = "facebook_get_adaccount_insights"

    async def handle(self, args: Dict[str, Any], token: str) -> Any:
        act_id = require_act_id(args["act_id"])
        params = pick(args, INSIGHTS_PARAMS)
        # time_range and date_preset are mutually exclusive upstream
        if "time_range" in params:
            params.pop("date_preset", None)
        return await self.graph.get(f"{act_id}/insights", token, params)


@ToolHandler.register
class GetAdAccountActivities(GraphTool):
    TOOL_NAME = "facebook_get_activities_by_adaccount"

    async def handle(self, args: Dict[str, Any], token: str) -> Any:
        act_id = require_act_id(args["act_id"])
        params = pick(args, ACTIVITY_PARAMS)
        return await self.graph.get(f"{act_id}/activities", token, params)
