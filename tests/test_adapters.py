"""Protocol adapters: definitions, envelope parsing and error shapes."""

import json

import pytest

from adgateway.adapters import build_adapters
from adgateway.adapters.gemini import to_gemini_schema
from adgateway.models import (
    CanonicalCall, CanonicalResult, InvalidArguments, MalformedRequest,
    MethodNotFound, MissingOrganizationId, UnknownTool
)
from adgateway.tools import load_catalog


@pytest.fixture(scope="module")
def catalogue():
    return load_catalog()


@pytest.fixture(scope="module")
def adapters(catalogue):
    return build_adapters(catalogue)


def _required(protocol, definition):
    if protocol == "mcp":
        return definition["name"], set(definition["inputSchema"].get("required", []))
    if protocol == "openai":
        function = definition["function"]
        return function["name"], set(function["parameters"].get("required", []))
    return definition["name"], set(definition["parameters"].get("required", []))


def _properties(protocol, definition):
    if protocol == "mcp":
        return set(definition["inputSchema"]["properties"])
    if protocol == "openai":
        return set(definition["function"]["parameters"]["properties"])
    return set(definition["parameters"]["properties"])


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------

class TestDefinitions:
    def test_catalogue_has_six_tools(self, catalogue):
        assert len(catalogue) == 6
        assert "facebook_get_ad_creatives" in catalogue

    def test_all_conventions_expose_same_names(self, adapters, catalogue):
        for protocol, adapter in adapters.items():
            names = {_required(protocol, d)[0] for d in adapter.get_tool_definitions()}
            assert names == set(catalogue), protocol

    def test_required_flags_agree(self, adapters, catalogue):
        for protocol, adapter in adapters.items():
            for definition in adapter.get_tool_definitions():
                name, required = _required(protocol, definition)
                assert required == set(catalogue[name].required), (protocol, name)
                assert _properties(protocol, definition) == set(catalogue[name].properties)

    def test_openai_definition_shape(self, adapters):
        definition = adapters["openai"].get_tool_definitions()[0]
        assert definition["type"] == "function"
        assert set(definition["function"]) == {"name", "description", "parameters"}

    def test_gemini_schema_dialect(self, adapters):
        definitions = {d["name"]: d for d in adapters["gemini"].get_tool_definitions()}
        params = definitions["facebook_get_adaccount_insights"]["parameters"]
        assert params["type"] == "OBJECT"
        assert params["properties"]["fields"]["items"]["type"] == "STRING"
        assert params["properties"]["time_increment"]["type"] == "STRING"
        assert "additionalProperties" not in params

    def test_gemini_nullable_union(self):
        converted = to_gemini_schema({"type": ["null", "integer"]})
        assert converted == {"type": "INTEGER", "nullable": True}

    def test_gemini_union_names_the_other_types(self, adapters):
        converted = to_gemini_schema({"type": ["string", "number"], "description": "Aggregation period."})
        assert converted == {"type": "STRING", "description": "Aggregation period. Also accepts number values."}

        definitions = {d["name"]: d for d in adapters["gemini"].get_tool_definitions()}
        increment = definitions["facebook_get_adaccount_insights"]["parameters"]["properties"]["time_increment"]
        assert increment["description"].endswith("Also accepts number values.")

    def test_description_lookup(self, adapters, catalogue):
        for adapter in adapters.values():
            assert adapter.get_tool_description("facebook_list_ad_accounts") == \
                catalogue["facebook_list_ad_accounts"].description
            with pytest.raises(UnknownTool):
                adapter.get_tool_description("facebook_delete_everything")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

class TestParsing:
    @pytest.mark.parametrize("args", [{}, {"act_id": "act_123", "fields": ["name"]}])
    @pytest.mark.parametrize("protocol,call_id", [("mcp", 7), ("mcp", "req-1"), ("openai", "call_abc"), ("gemini", None)])
    def test_build_then_parse_returns_same_call(self, adapters, protocol, call_id, args):
        call = CanonicalCall(
            tool_name="facebook_get_details_of_ad_account",
            args=args,
            call_id=call_id
        )
        adapter = adapters[protocol]
        assert adapter.parse_request(adapter.build_request(call)) == call

    def test_session_id_is_attached(self, adapters):
        raw = {"name": "facebook_list_ad_accounts", "args": {}}
        call = adapters["gemini"].parse_request(raw, session_id="abc")
        assert call.caller_session_id == "abc"

    def test_openai_flat_envelope_with_string_arguments(self, adapters):
        call = adapters["openai"].parse_request({
            "tool_call_id": "call_1",
            "name": "facebook_get_details_of_ad_account",
            "arguments": '{"act_id": "act_9"}'
        })
        assert call.args == {"act_id": "act_9"}
        assert call.call_id == "call_1"

    def test_openai_requires_call_id(self, adapters):
        with pytest.raises(MalformedRequest) as exc:
            adapters["openai"].parse_request({"name": "facebook_list_ad_accounts", "arguments": {}})
        assert exc.value.details["field"] == "tool_call_id"

    def test_openai_rejects_bad_json_arguments(self, adapters):
        with pytest.raises(MalformedRequest):
            adapters["openai"].parse_request({"id": "c", "name": "x", "arguments": "{not json"})

    def test_mcp_other_method(self, adapters):
        with pytest.raises(MethodNotFound):
            adapters["mcp"].parse_request({"jsonrpc": "2.0", "id": 1, "method": "resources/list"})

    def test_mcp_missing_params(self, adapters):
        with pytest.raises(MalformedRequest):
            adapters["mcp"].parse_request({"jsonrpc": "2.0", "id": 1, "method": "tools/call"})

    def test_gemini_args_and_arguments_conflict(self, adapters):
        with pytest.raises(MalformedRequest):
            adapters["gemini"].parse_request({"name": "x", "args": {}, "arguments": {}})

    @pytest.mark.parametrize("protocol", ["mcp", "openai", "gemini"])
    def test_non_object_body_is_malformed(self, adapters, protocol):
        with pytest.raises(MalformedRequest):
            adapters[protocol].parse_request(["not", "an", "object"])


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

class TestFormatting:
    def test_mcp_success_is_text_content(self, adapters):
        result = CanonicalResult.success({"data": [1, 2]}, "facebook_list_ad_accounts")
        body = adapters["mcp"].format_response(result, 3)
        assert body["id"] == 3
        content = body["result"]["content"][0]
        assert content["type"] == "text"
        assert json.loads(content["text"]) == {"data": [1, 2]}

    def test_openai_success_echoes_call_id(self, adapters):
        result = CanonicalResult.success({"ok": True}, "facebook_list_ad_accounts")
        body = adapters["openai"].format_response(result, "call_7")
        assert body == {
            "tool_call_id": "call_7",
            "role": "tool",
            "name": "facebook_list_ad_accounts",
            "content": {"ok": True}
        }

    def test_gemini_wraps_non_object_payload(self, adapters):
        result = CanonicalResult.success(["a", "b"], "_list_tools")
        body = adapters["gemini"].format_response(result)
        assert body["functionResponse"]["response"] == {"result": ["a", "b"]}

    def test_unknown_tool_in_each_convention(self, adapters):
        result = CanonicalResult.failure(UnknownTool("nope"), "nope")

        mcp = adapters["mcp"].format_response(result, 1)
        assert mcp["error"]["code"] == -32602
        assert mcp["error"]["data"]["code"] == "UNKNOWN_TOOL"
        assert adapters["mcp"].status_code(result) == 200

        openai = adapters["openai"].format_response(result, "call_1")
        assert openai["tool_call_id"] == "call_1"
        assert openai["error"]["code"] == "unknown_tool"
        assert openai["error"]["type"] == "invalid_request_error"
        assert adapters["openai"].status_code(result) == 404

        gemini = adapters["gemini"].format_response(result)
        assert gemini["error"]["status"] == "NOT_FOUND"
        assert gemini["error"]["code"] == 404
        assert gemini["error"]["details"][0] == {"reason": "UNKNOWN_TOOL", "function": "nope"}

    def test_invalid_arguments_name_the_field(self, adapters):
        error = InvalidArguments("act_id", "act_id is required")
        assert adapters["openai"].format_error(error, "c")["error"]["param"] == "act_id"
        assert adapters["mcp"].format_error(error, 1)["error"]["data"]["field"] == "act_id"
        assert adapters["gemini"].format_error(error)["error"]["details"][0]["field"] == "act_id"

    def test_missing_organization_codes(self, adapters):
        error = MissingOrganizationId("organization_id is required")
        assert adapters["mcp"].format_error(error, 1)["error"]["code"] == -32001
        assert adapters["openai"].format_error(error, "c")["error"]["code"] == "missing_organization_id"
        assert adapters["gemini"].format_error(error)["error"]["status"] == "FAILED_PRECONDITION"

    def test_mcp_malformed_is_http_400(self, adapters):
        result = CanonicalResult.failure(MalformedRequest("bad"))
        assert adapters["mcp"].status_code(result) == 400

    def test_mcp_handshake(self, adapters):
        body = adapters["mcp"].initialize_result(0)
        assert body["result"]["protocolVersion"] == "2025-06-18"
        assert body["result"]["serverInfo"]["name"] == "facebook-ads-universal"
        assert adapters["mcp"].method_not_found("foo/bar", 2)["error"]["code"] == -32601
