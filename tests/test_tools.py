"""Catalogue loading, handler registry and the Graph API handlers."""

import asyncio

import pytest

from adgateway.tools import ToolHandler, load_catalog, load_handlers
from adgateway.tools.graph import GraphAPIClient, GraphAPIError


class FakeGraph:
    """Replaces GraphAPIClient on a handler instance"""

    def __init__(self, responses=None, image=b"\x89PNG", image_error=None):
        self.responses = responses or {}
        self.image = image
        self.image_error = image_error
        self.requests = []

    async def get(self, path, token, params=None):
        self.requests.append((path, token, params))
        return self.responses.get(path, {"data": []})

    async def get_url(self, url, token=None):
        self.requests.append((url, token, None))
        return {"data": [], "paging": {}}

    async def get_bytes(self, url):
        if self.image_error:
            raise self.image_error
        return self.image


@pytest.fixture(scope="module")
def handlers():
    return load_handlers(load_catalog())


def _run(handler, args, graph):
    handler.graph = graph
    return asyncio.run(handler.handle(args, "EAAB-token"))


def test_every_catalogue_tool_has_a_handler(handlers):
    assert set(handlers) == set(load_catalog())


def test_catalogue_without_handler_fails(tmp_path):
    catalog = tmp_path / "catalog.yaml"
    catalog.write_text("tools:\n  - name: facebook_not_implemented\n    description: x\n")
    with pytest.raises(ValueError):
        load_handlers(load_catalog(str(catalog)))


def test_duplicate_registration_rejected(handlers):
    class Dup(ToolHandler):
        TOOL_NAME = "facebook_list_ad_accounts"

    with pytest.raises(ValueError):
        ToolHandler.register(Dup)


def test_insights_prefers_time_range(handlers):
    graph = FakeGraph()
    _run(handlers["facebook_get_adaccount_insights"], {
        "act_id": "act_1",
        "fields": ["spend"],
        "date_preset": "last_7d",
        "time_range": {"since": "2024-01-01", "until": "2024-01-31"},
        "organization_id": "org"
    }, graph)
    path, token, params = graph.requests[0]
    assert path == "act_1/insights"
    assert token == "EAAB-token"
    assert "date_preset" not in params
    assert "organization_id" not in params


def test_act_id_prefix_required(handlers):
    with pytest.raises(ValueError):
        _run(handlers["facebook_get_details_of_ad_account"], {"act_id": "123"}, FakeGraph())


def test_creatives_embed_images(handlers):
    graph = FakeGraph(responses={
        "1": {"id": "1", "name": "Ad one", "creative": {"image_url": "https://img/1.png"}},
        "2": {"id": "2", "name": "Ad two", "creative": {}},
    })
    result = _run(handlers["facebook_get_ad_creatives"], {"ad_ids": ["1", "2"]}, graph)
    assert result["count"] == 2
    assert result["creatives"][0]["image_base64"] == "iVBORw=="
    assert "image_base64" not in result["creatives"][1]


def test_creatives_report_image_failure_per_ad(handlers):
    graph = FakeGraph(
        responses={"1": {"id": "1", "creative": {"thumbnail_url": "https://img/1.png"}}},
        image_error=GraphAPIError("Download failed with HTTP 403", status=403)
    )
    result = _run(handlers["facebook_get_ad_creatives"], {"ad_ids": ["1"]}, graph)
    assert result["creatives"][0]["image_error"] == "Download failed with HTTP 403"


def test_graph_param_encoding():
    encoded = GraphAPIClient.encode_params({
        "fields": ["id", "name"],
        "time_range": {"since": "2024-01-01"},
        "include": True,
        "limit": 10,
        "after": None
    })
    assert encoded == {
        "fields": "id,name",
        "time_range": '{"since": "2024-01-01"}',
        "include": "true",
        "limit": "10"
    }


def test_pagination_url_must_be_graph():
    client = GraphAPIClient()
    with pytest.raises(GraphAPIError):
        asyncio.run(client.get_url("https://example.com/v23.0/act_1/insights?after=x", "t"))
