"""
Ad account tools - listing, details and pagination.
"""

from typing import Any, Dict

from adgateway.tools.base import ToolHandler
from adgateway.tools.plugins._common import GraphTool, require_act_id

ACCOUNT_LIST_FIELDS = ["id", "account_id", "name", "account_status", "currency", "timezone_name"]

ACCOUNT_DETAIL_FIELDS = [
    "id", "name", "account_status", "currency", "timezone_name",
    "amount_spent", "balance", "spend_cap", "business", "created_time"
]


@ToolHandler.register
class ListAdAccounts(GraphTool):
    """List ad accounts visible to the token owner"""

    TOOL_NAME = "facebook_list_ad_accounts"

    async def handle(self, args: Dict[str, Any], token: str) -> Any:
        return await self.graph.get("me/adaccounts", token, {"fields": ACCOUNT_LIST_FIELDS})


@ToolHandler.register
class FetchPaginationUrl(GraphTool):
    """Follow a paging.next / paging.previous link"""

    TOOL_NAME = "facebook_fetch_pagination_url"

    async def handle(self, args: Dict[str, Any], token: str) -> Any:
        return await self.graph.get_url(args["url"], token)


@ToolHandler.register
class GetAdAccountDetails(GraphTool):
    """Details of a single ad account"""

    TOOL_NAME = "facebook_get_details_of_ad_account"

    async def handle(self, args: Dict[str, Any], token: str) -> Any:
        act_id = require_act_id(args["act_id"])
        fields = args.get("fields") or ACCOUNT_DETAIL_FIELDS
        return await self.graph.get(act_id, token, {"fields": fields})
