"""
Creative tools - ad copy, call to action and optionally embedded images.
"""

import base64
import logging
from typing import Any, Dict, List

from adgateway.tools.base import ToolHandler
from adgateway.tools.graph import GraphAPIError
from adgateway.tools.plugins._common import GraphTool

logger = logging.getLogger(__name__)

CREATIVE_FIELDS = "id,name,creative{id,title,body,image_url,thumbnail_url,call_to_action_type,object_story_spec}"


@ToolHandler.register
class GetAdCreatives(GraphTool):
    """Fetch the creative of each ad; images are embedded as base64 when asked"""

    TOOL_NAME = "facebook_get_ad_creatives"

    async def handle(self, args: Dict[str, Any], token: str) -> Any:
        include_images = args.get("include_images", True)
        creatives: List[Dict[str, Any]] = []

        for ad_id in args["ad_ids"]:
            ad = await self.graph.get(ad_id, token, {"fields": CREATIVE_FIELDS})
            creative = ad.get("creative", {})
            entry = {
                "ad_id": ad.get("id", ad_id),
                "ad_name": ad.get("name"),
                "creative": creative
            }

            image_url = creative.get("image_url") or creative.get("thumbnail_url")
            if include_images and image_url:
                try:
                    image = await self.graph.get_bytes(image_url)
                    entry["image_base64"] = base64.b64encode(image).decode("ascii")
                except GraphAPIError as e:
                    # image failures are reported per ad
                    logger.warning(f"Image download failed for ad {ad_id}: {e}")
                    entry["image_error"] = str(e)

            creatives.append(entry)

        return {"creatives": creatives, "count": len(creatives)}
