"""
Tests for the built-in node plugins, executed directly with a hand-built
ExecutionContext. HTTP uses httpx.MockTransport; the LLM is a fake provider.
"""

import json

import httpx
import pytest

from flowengine.errors import BranchingError, ExpressionError, WaitTimeoutError
from flowengine.llm.provider import LLMProvider, LLMResponse
from flowengine.nodes.builtin import (
    ConditionNode,
    DataTransformNode,
    DelayNode,
    EndNode,
    HttpRequestNode,
    LLMAgentNode,
    LoopNode,
    MathNode,
    StringNode,
    SwitchNode,
    TriggerNode,
)
from flowengine.runtime.event_bus import Topic


# ---- Fake LLM provider (no network) ----
class FakeLLM(LLMProvider):
    def __init__(self, reply: str = "ok", error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.calls: list[dict] = []

    def complete(
        self,
        messages,
        system="",
        max_tokens=1024,
        temperature=None,
        model=None,
        json_mode=False,
    ):
        self.calls.append(
            {"messages": messages, "system": system, "model": model, "max_tokens": max_tokens}
        )
        if self.error:
            raise self.error
        return LLMResponse(content=self.reply, model="fake-model", input_tokens=3, output_tokens=2)


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestTrigger:
    @pytest.mark.asyncio
    async def test_stamps_metadata_on_payload(self, make_context):
        context = make_context({"order_id": 42})
        output = await TriggerNode().execute(
            {"order_id": 42}, {"trigger_type": "webhook"}, context
        )

        assert output["order_id"] == 42
        assert output["trigger_type"] == "webhook"
        assert output["trigger_info"] == "Triggered by webhook"
        assert output["workflow_id"] == "flow-1"
        assert output["execution_id"] == "exec-1"

    @pytest.mark.asyncio
    async def test_none_input_becomes_empty_payload(self, make_context):
        output = await TriggerNode().execute(None, {}, make_context())
        assert output["trigger_type"] == "manual"
        assert "input" not in output

    def test_validate_data(self):
        assert TriggerNode().validate_data({"trigger_type": "carrier-pigeon"}) == [
            "Invalid trigger type: carrier-pigeon"
        ]


class TestCondition:
    @pytest.mark.asyncio
    async def test_true_branch(self, make_context):
        payload = {"status": 200}
        output = await ConditionNode().execute(
            payload, {"expression": "status == 200"}, make_context(payload)
        )
        assert output["condition_result"] is True
        assert output["branch_path"] == "true"
        assert output["status"] == 200

    @pytest.mark.asyncio
    async def test_false_branch_with_template(self, make_context):
        payload = {"score": 0.3}
        output = await ConditionNode().execute(
            payload, {"expression": "{input.score} > 0.5"}, make_context(payload)
        )
        assert output["condition_result"] is False
        assert output["condition_expression"] == "0.3 > 0.5"

    @pytest.mark.asyncio
    async def test_bad_expression_propagates(self, make_context):
        with pytest.raises(ExpressionError):
            await ConditionNode().execute({}, {"expression": "undefined_name > 1"}, make_context({}))

    @pytest.mark.asyncio
    async def test_empty_expression_raises(self, make_context):
        with pytest.raises(ValueError):
            await ConditionNode().execute({}, {"expression": " "}, make_context({}))


class TestSwitch:
    CASES = [{"value": "gold", "label": "Gold"}, {"value": "silver", "label": "Silver"}]

    @pytest.mark.asyncio
    async def test_matching_case(self, make_context):
        payload = {"tier": "silver"}
        output = await SwitchNode().execute(
            payload, {"expression": "tier", "cases": self.CASES}, make_context(payload)
        )
        assert output["output_path"] == "silver"
        assert output["matched_case_index"] == 1
        assert output["is_default_case"] is False

    @pytest.mark.asyncio
    async def test_default_case(self, make_context):
        payload = {"tier": "bronze"}
        output = await SwitchNode().execute(
            payload,
            {"expression": "tier", "cases": self.CASES, "default_case": True},
            make_context(payload),
        )
        assert output["output_path"] == "default"
        assert output["is_default_case"] is True

    @pytest.mark.asyncio
    async def test_no_match_without_default_raises(self, make_context):
        payload = {"tier": "bronze"}
        with pytest.raises(BranchingError, match='No matching case found for value "bronze"'):
            await SwitchNode().execute(
                payload, {"expression": "tier", "cases": self.CASES}, make_context(payload)
            )

    @pytest.mark.asyncio
    async def test_numeric_value_compared_as_text(self, make_context):
        payload = {"code": 2}
        output = await SwitchNode().execute(
            payload,
            {"expression": "code", "cases": [{"value": "1"}, {"value": "2"}]},
            make_context(payload),
        )
        assert output["output_path"] == "2"

    def test_duplicate_case_values_rejected(self):
        errors = SwitchNode().validate_data(
            {"expression": "x", "cases": [{"value": "a"}, {"value": "a"}]}
        )
        assert errors == ["Duplicate case value: a"]


class TestLoop:
    @pytest.mark.asyncio
    async def test_iterations_and_events(self, make_context):
        payload = {"items": ["a", "b", "c"]}
        context = make_context(payload)
        output = await LoopNode().execute(
            payload, {"iterate_over": "items", "item_variable": "letter"}, context
        )

        assert output["loop_iterations"] == 3
        assert output["loop_continue"] is True
        assert [r["item"] for r in output["loop_results"]] == ["a", "b", "c"]
        first = output["loop_results"][0]
        assert first["iteration_input"]["letter"] == "a"
        assert first["iteration_input"]["loop_total"] == 3
        assert first["is_first"] is True
        assert output["last_iteration"]["is_last"] is True
        assert output["loop_results"][-1]["progress"] == 100.0

        started = context.event_bus.get_history(Topic.LOOP_ITERATION_STARTED)
        assert len(started) == 3
        assert started[0].data["node_id"] == "node-1"

    @pytest.mark.asyncio
    async def test_truncated_to_max_iterations(self, make_context):
        payload = {"items": list(range(8))}
        output = await LoopNode().execute(
            payload, {"iterate_over": "items", "max_iterations": 3}, make_context(payload)
        )
        assert output["loop_iterations"] == 3
        assert output["loop_stats"]["truncated"] is True
        assert len(output["original_array"]) == 8

    @pytest.mark.asyncio
    async def test_ceiling_caps_configured_maximum(self, make_context):
        payload = {"items": list(range(50))}
        output = await LoopNode().execute(
            payload, {"iterate_over": "items", "max_iterations": 40}, make_context(payload)
        )
        # fast_config ceiling is 10
        assert output["loop_iterations"] == 10

    @pytest.mark.asyncio
    async def test_empty_array(self, make_context):
        payload = {"items": []}
        output = await LoopNode().execute(payload, {"iterate_over": "items"}, make_context(payload))
        assert output["loop_iterations"] == 0
        assert output["loop_continue"] is False
        assert output["first_iteration"] is None

    @pytest.mark.asyncio
    async def test_non_array_raises(self, make_context):
        payload = {"items": "abc"}
        with pytest.raises(TypeError, match="is not an array"):
            await LoopNode().execute(payload, {"iterate_over": "items"}, make_context(payload))


class TestDelay:
    @pytest.mark.asyncio
    async def test_fixed(self, make_context):
        output = await DelayNode().execute(
            {"k": 1}, {"delay_type": "fixed", "duration_ms": 20}, make_context({"k": 1})
        )
        assert output["delay_completed"] is True
        assert output["expected_delay"] == 20
        assert output["actual_wait_time"] >= 15
        assert output["k"] == 1

    @pytest.mark.asyncio
    async def test_fixed_above_maximum_rejected(self, make_context):
        with pytest.raises(ValueError, match="between 0 and 200ms"):
            await DelayNode().execute({}, {"delay_type": "fixed", "duration_ms": 500}, make_context({}))

    @pytest.mark.asyncio
    async def test_dynamic(self, make_context):
        payload = {"wait": 5}
        output = await DelayNode().execute(
            payload,
            {"delay_type": "dynamic", "duration_expression": "wait * 2"},
            make_context(payload),
        )
        assert output["expected_delay"] == 10

    @pytest.mark.asyncio
    async def test_dynamic_capped(self, make_context):
        output = await DelayNode().execute(
            {}, {"delay_type": "dynamic", "duration_expression": "5000"}, make_context({})
        )
        assert output["expected_delay"] == 200

    @pytest.mark.asyncio
    async def test_dynamic_negative_rejected(self, make_context):
        with pytest.raises(ValueError, match="Invalid dynamic delay value"):
            await DelayNode().execute(
                {}, {"delay_type": "dynamic", "duration_expression": "-1"}, make_context({})
            )

    @pytest.mark.asyncio
    async def test_until_condition_met(self, make_context):
        context = make_context({})
        output = await DelayNode().execute(
            {}, {"delay_type": "until", "until_condition": "elapsed_ms >= 30"}, context
        )
        assert output["expected_delay"] >= 30
        assert context.event_bus.get_history(Topic.DELAY_WAITING)

    @pytest.mark.asyncio
    async def test_until_times_out(self, make_context):
        with pytest.raises(WaitTimeoutError, match="timed out after 50ms"):
            await DelayNode().execute(
                {},
                {"delay_type": "until", "until_condition": "false", "timeout_ms": 50},
                make_context({}),
            )


class TestDataTransform:
    @pytest.mark.asyncio
    async def test_extract(self, make_context):
        payload = {"user": {"name": "Ann"}}
        output = await DataTransformNode().execute(
            payload,
            {"transform_type": "extract", "expression": "data.user.name"},
            make_context(payload),
        )
        assert output["transformed_data"] == "Ann"
        assert output["original_data"] == payload
        assert output["transform_success"] is True

    @pytest.mark.asyncio
    async def test_filter_list_with_source(self, make_context):
        payload = {"items": [{"price": 5}, {"price": 15}, {"price": 25}]}
        output = await DataTransformNode().execute(
            payload,
            {"transform_type": "filter", "source": "items", "expression": "item.price > 10"},
            make_context(payload),
        )
        assert output["transformed_data"] == [{"price": 15}, {"price": 25}]

    @pytest.mark.asyncio
    async def test_filter_mapping(self, make_context):
        payload = {"a": 1, "b": 2, "c": 3}
        output = await DataTransformNode().execute(
            payload, {"transform_type": "filter", "expression": "value > 1"}, make_context(payload)
        )
        assert output["transformed_data"] == {"b": 2, "c": 3}

    @pytest.mark.asyncio
    async def test_parse_json_string(self, make_context):
        payload = {"raw": '{"a": [1, 2]}'}
        output = await DataTransformNode().execute(
            payload, {"transform_type": "parse", "source": "raw"}, make_context(payload)
        )
        assert output["transformed_data"] == {"a": [1, 2]}

    @pytest.mark.asyncio
    async def test_csv_output(self, make_context):
        payload = {"rows": [{"name": "Ann", "age": 30}, {"name": "Bob", "age": None}]}
        output = await DataTransformNode().execute(
            payload,
            {"transform_type": "extract", "source": "rows", "expression": "data", "output_format": "csv"},
            make_context(payload),
        )
        assert output["transformed_data"] == "name,age\nAnn,30\nBob,"

    @pytest.mark.asyncio
    async def test_text_output(self, make_context):
        payload = {"a": 1}
        output = await DataTransformNode().execute(
            payload,
            {"transform_type": "custom", "expression": "data", "output_format": "text"},
            make_context(payload),
        )
        assert json.loads(output["transformed_data"]) == {"a": 1}

    @pytest.mark.asyncio
    async def test_missing_source_raises(self, make_context):
        with pytest.raises(KeyError):
            await DataTransformNode().execute(
                {}, {"transform_type": "extract", "source": "nope", "expression": "data"},
                make_context({}),
            )


class TestHttpRequest:
    @pytest.mark.asyncio
    async def test_get_with_templated_url(self, make_context):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"id": 7, "name": "Ann"})

        payload = {"user_id": 7, "token": "abc"}
        async with mock_client(handler) as client:
            context = make_context(payload, http_client=client)
            output = await HttpRequestNode().execute(
                payload,
                {
                    "method": "GET",
                    "url": "https://api.test/users/{input.user_id}",
                    "headers": {"Authorization": "Bearer {input.token}"},
                },
                context,
            )

        assert seen == {"method": "GET", "url": "https://api.test/users/7", "auth": "Bearer abc"}
        assert output["response_status"] == 200
        assert output["response_data"] == {"id": 7, "name": "Ann"}
        assert output["http_response"]["success"] is True
        assert output["http_response"]["status_text"] == "OK"
        assert output["user_id"] == 7

    @pytest.mark.asyncio
    async def test_post_json_body(self, make_context):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            seen["content_type"] = request.headers.get("content-type")
            return httpx.Response(201, json={"created": True})

        payload = {"name": "Ann"}
        async with mock_client(handler) as client:
            output = await HttpRequestNode().execute(
                payload,
                {"method": "POST", "url": "https://api.test/users", "body": '{"name": "{input.name}"}'},
                make_context(payload, http_client=client),
            )

        assert seen == {"body": {"name": "Ann"}, "content_type": "application/json"}
        assert output["response_status"] == 201

    @pytest.mark.asyncio
    async def test_non_2xx_is_not_success(self, make_context):
        async with mock_client(lambda request: httpx.Response(404, text="missing")) as client:
            output = await HttpRequestNode().execute(
                {}, {"url": "https://api.test/x"}, make_context({}, http_client=client)
            )
        assert output["response_status"] == 404
        assert output["response_data"] == "missing"
        assert output["http_response"]["success"] is False

    @pytest.mark.asyncio
    async def test_transport_error_returns_error_shape(self, make_context):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with mock_client(handler) as client:
            output = await HttpRequestNode().execute(
                {}, {"url": "https://api.test/x"}, make_context({}, http_client=client)
            )
        assert output["response_status"] == 0
        assert output["http_response"]["error"] is True
        assert "connection refused" in output["http_response"]["error_message"]

    @pytest.mark.asyncio
    async def test_invalid_json_body_returns_error_shape(self, make_context):
        async with mock_client(lambda request: httpx.Response(200)) as client:
            output = await HttpRequestNode().execute(
                {},
                {"method": "POST", "url": "https://api.test/x", "body": '{"broken": }'},
                make_context({}, http_client=client),
            )
        assert output["response_status"] == 0
        assert "Invalid JSON" in output["http_response"]["error_message"]

    @pytest.mark.asyncio
    async def test_missing_url_raises(self, make_context):
        with pytest.raises(ValueError, match="URL is required"):
            await HttpRequestNode().execute({}, {"url": ""}, make_context({}))

    def test_timeout_validation(self):
        errors = HttpRequestNode().validate_data({"url": "https://x", "timeout_ms": 120000})
        assert errors == ["Timeout must be between 1000 and 60000 milliseconds"]


class TestLLMAgent:
    @pytest.mark.asyncio
    async def test_prompt_substitution_and_plain_reply(self, make_context):
        llm = FakeLLM(reply="Short summary")
        payload = {"text": "long article"}
        output = await LLMAgentNode().execute(
            payload,
            {"prompt": "Summarize: {input.text}", "system_prompt": "Be brief"},
            make_context(payload, llm=llm),
        )

        assert llm.calls[0]["messages"] == [{"role": "user", "content": "Summarize: long article"}]
        assert llm.calls[0]["system"] == "Be brief"
        assert llm.calls[0]["model"] == "test-model"
        assert output["llm_text"] == "Short summary"
        assert output["llm_response"] == {"text": "Short summary", "raw": "Short summary"}
        assert output["llm_metadata"]["model"] == "fake-model"
        assert output["llm_metadata"]["output_tokens"] == 2

    @pytest.mark.asyncio
    async def test_json_reply_parsed(self, make_context):
        llm = FakeLLM(reply='{"sentiment": "positive"}')
        output = await LLMAgentNode().execute(
            {}, {"prompt": "Classify"}, make_context({}, llm=llm)
        )
        assert output["llm_response"] == {"sentiment": "positive"}

    @pytest.mark.asyncio
    async def test_provider_failure_returns_error_shape(self, make_context):
        llm = FakeLLM(error=RuntimeError("rate limited"))
        output = await LLMAgentNode().execute({}, {"prompt": "Hi"}, make_context({}, llm=llm))

        assert output["llm_response"]["error"] is True
        assert output["llm_response"]["error_message"] == "rate limited"
        assert output["llm_text"] == ""

    @pytest.mark.asyncio
    async def test_missing_provider_raises(self, make_context):
        with pytest.raises(RuntimeError, match="No LLM provider configured"):
            await LLMAgentNode().execute({}, {"prompt": "Hi"}, make_context({}))


class TestMathAndString:
    @pytest.mark.asyncio
    async def test_division_of_templated_operand(self, make_context):
        payload = {"x": 6}
        output = await MathNode().execute(
            payload,
            {"operation": "/", "operand_a": "{input.x}", "operand_b": 3},
            make_context(payload),
        )
        assert output["result"] == 2
        assert output["expression"] == "6 / 3 = 2"

    @pytest.mark.asyncio
    async def test_operand_from_variable_path(self, make_context):
        payload = {"stats": {"count": 4}}
        output = await MathNode().execute(
            payload,
            {
                "operation": "*",
                "use_variables": True,
                "operand_a_variable": "stats.count",
                "operand_b": 2.5,
            },
            make_context(payload),
        )
        assert output["result"] == 10.0

    @pytest.mark.asyncio
    async def test_division_by_zero(self, make_context):
        with pytest.raises(ZeroDivisionError):
            await MathNode().execute(
                {}, {"operation": "/", "operand_a": 1, "operand_b": 0}, make_context({})
            )

    @pytest.mark.asyncio
    async def test_non_numeric_operand(self, make_context):
        with pytest.raises(TypeError, match="Operand A is not a number"):
            await MathNode().execute(
                {}, {"operation": "+", "operand_a": "abc", "operand_b": 1}, make_context({})
            )

    @pytest.mark.asyncio
    async def test_string_operations(self, make_context):
        payload = {"name": "Ann"}
        node = StringNode()

        prefixed = await node.execute(
            payload,
            {"operation": "prefix", "value": "Hello, ", "text": "{input.name}"},
            make_context(payload),
        )
        upper = await node.execute(
            payload, {"operation": "upper", "text": "{input.name}"}, make_context(payload)
        )

        assert prefixed["processed_string"] == "Hello, Ann"
        assert upper["processed_string"] == "ANN"
        assert upper["string_length"] == 3


class TestEnd:
    @pytest.mark.asyncio
    async def test_final_message(self, make_context):
        payload = {"total": 3}
        output = await EndNode().execute(
            payload, {"message": "Processed {input.total} orders"}, make_context(payload)
        )
        assert output["end_message"] == "Processed 3 orders"
        assert output["workflow_complete"] is True
        assert output["final_status"] == "completed"
        assert output["workflow_result"] == payload
