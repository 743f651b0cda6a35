"""HTTP request node: call an external API with templated URL, headers and body."""

import json
import time
from collections.abc import Mapping
from typing import Any

import httpx

from flowengine.graph.context import ExecutionContext
from flowengine.nodes.base import PluginCategory, PluginMetadata
from flowengine.nodes.builtin.common import coerce_int, passthrough
from flowengine.variables.models import OutputField, VariableType

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")
BODY_METHODS = ("POST", "PUT", "PATCH")


class HttpRequestNode:
    """
    Issues one request with ``httpx.AsyncClient``.

    Transport failures, timeouts and malformed JSON bodies come back as an
    error-shaped ``http_response`` (``success`` false, ``response_status`` 0)
    and the flow continues. Non-2xx responses are returned normally with
    ``success`` false. A missing URL or unsupported method raises.
    """

    metadata = PluginMetadata(
        type="http_request",
        name="HTTP Request",
        description="Calls an HTTP endpoint",
        category=PluginCategory.ACTION,
        tags=["http", "api", "request", "webhook"],
    )

    def create_default_data(self) -> dict[str, Any]:
        return {
            "label": "HTTP Request",
            "method": "GET",
            "url": "https://api.example.com/items",
            "headers": {},
            "body": "",
            "timeout_ms": 10000,
        }

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors = []
        if not str(data.get("url", "")).strip():
            errors.append("URL is required")
        method = str(data.get("method", "GET")).upper()
        if method not in HTTP_METHODS:
            errors.append(f"Unsupported HTTP method: {method}")
        timeout = data.get("timeout_ms", 10000)
        if not isinstance(timeout, int) or not 1000 <= timeout <= 60000:
            errors.append("Timeout must be between 1000 and 60000 milliseconds")
        if data.get("headers") and not isinstance(data["headers"], Mapping):
            errors.append("Headers must be an object")
        return errors

    def get_output_schema(self) -> list[OutputField]:
        return [
            OutputField(
                name="http_response",
                type=VariableType.OBJECT,
                description="status, status_text, headers, data, response_time, success",
                example={"status": 200, "success": True, "data": {"id": 1}},
            ),
            OutputField(
                name="response_data",
                type=VariableType.ANY,
                description="Decoded response body",
                example={"id": 1},
            ),
            OutputField(
                name="response_status",
                type=VariableType.NUMBER,
                description="HTTP status code, 0 when the request failed",
                example=200,
            ),
        ]

    async def execute(self, input: Any, data: dict[str, Any], context: ExecutionContext) -> Any:
        method = str(data.get("method", "GET")).upper()
        if method not in HTTP_METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")
        url = context.replace_variables(str(data.get("url", ""))).strip()
        if not url:
            raise ValueError("URL is required")

        config = context.config
        timeout_ms = coerce_int(data.get("timeout_ms"), config.http_timeout_ms)
        timeout_ms = max(config.http_min_timeout_ms, min(timeout_ms, config.http_max_timeout_ms))

        headers = {
            str(k): str(context.replace_variables(str(v)))
            for k, v in (data.get("headers") or {}).items()
        }

        started = time.perf_counter()
        try:
            body = self._build_body(method, data.get("body"), context)
            if body is not None and "content-type" not in {k.lower() for k in headers}:
                headers["Content-Type"] = "application/json"

            context.logger.info(f"HTTP {method} {url}")
            response = await self._send(context, method, url, headers, body, timeout_ms / 1000)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            context.logger.error(f"HTTP request failed: {e}")
            return passthrough(
                input,
                http_response={
                    "error": True,
                    "error_message": str(e) or type(e).__name__,
                    "success": False,
                },
                response_data=None,
                response_status=0,
            )

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        payload = _decode(response)
        success = 200 <= response.status_code < 300
        context.logger.info(
            f"HTTP request completed: {response.status_code} {response.reason_phrase} ({elapsed_ms}ms)"
        )
        return passthrough(
            input,
            http_response={
                "status": response.status_code,
                "status_text": response.reason_phrase,
                "headers": dict(response.headers),
                "data": payload,
                "response_time": elapsed_ms,
                "success": success,
            },
            response_data=payload,
            response_status=response.status_code,
        )

    @staticmethod
    def _build_body(method: str, raw: Any, context: ExecutionContext) -> str | None:
        if method not in BODY_METHODS or raw in (None, ""):
            return None
        if not isinstance(raw, str):
            raw = json.dumps(raw)
        body = context.replace_variables(raw)
        if body.lstrip().startswith(("{", "[")):
            try:
                json.loads(body)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON in request body: {e.msg}") from e
        return body

    @staticmethod
    async def _send(
        context: ExecutionContext,
        method: str,
        url: str,
        headers: dict[str, str],
        body: str | None,
        timeout: float,
    ) -> httpx.Response:
        if context.http_client is not None:
            return await context.http_client.request(
                method, url, headers=headers, content=body, timeout=timeout
            )
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.request(method, url, headers=headers, content=body)


def _decode(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except json.JSONDecodeError:
            return response.text
    return response.text
