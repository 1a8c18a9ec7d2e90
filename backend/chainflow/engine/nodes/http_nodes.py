"""
Outbound HTTP nodes: generic request and webhook delivery.

Both nodes bound every call with a timeout. The webhook node retries failed
deliveries with exponential backoff before reporting a soft failure.
"""

import time
from typing import Any, Dict
from urllib.parse import urlparse

import requests

from chainflow.engine.context import ExecutionContext
from chainflow.engine.errors import ConfigurationError
from chainflow.engine.nodes.base import NodeHandler, require
from chainflow.utils.time_utils import utc_now

WEBHOOK_METHODS = ("POST", "PUT", "PATCH")


def _response_body(response: requests.Response) -> Any:
    if "application/json" in response.headers.get("content-type", ""):
        try:
            return response.json()
        except ValueError:
            return response.text
    return response.text


def _has_content_type(headers: Dict[str, str]) -> bool:
    return any(key.lower() == "content-type" for key in headers)


class HttpRequestNodeHandler(NodeHandler):
    """
    Perform an HTTP request.

    Config: ``{url, method=GET, headers, body, timeout}`` (timeout in ms).
    Soft-fail: transport errors return ``{status: 'error', error}``.
    """

    type = "http_request"

    def execute(self, node_data: Dict[str, Any], input_data: Any, context: ExecutionContext) -> Any:
        url = str(require(node_data, "url"))
        method = str(node_data.get("method") or "GET").upper()
        headers = dict(node_data.get("headers") or {})
        body = node_data.get("body")
        timeout = float(node_data.get("timeout") or context.http_timeout * 1000) / 1000

        context.logger.info(f"http_request: starting {method} {url}")
        kwargs: Dict[str, Any] = {"headers": headers, "timeout": timeout}
        if body is not None:
            if isinstance(body, str):
                kwargs["data"] = body
            else:
                kwargs["json"] = body
                if not _has_content_type(headers):
                    headers["content-type"] = "application/json"

        try:
            response = requests.request(method, url, **kwargs)
        except requests.RequestException as e:
            context.logger.warning(f"http_request: error {e}")
            return {"status": "error", "error": str(e)}

        context.logger.info(f"http_request: finished {method} {url} -> {response.status_code}")
        return {
            "status": response.status_code,
            "data": _response_body(response),
            "headers": dict(response.headers),
        }


class WebhookNodeHandler(NodeHandler):
    """
    Deliver a JSON payload to an external webhook.

    Config: ``{url, method=POST, headers, payload, includeInput=true,
    timeout=5000, retries=0}``. Invalid configuration raises; delivery
    failures after all retries return ``{success: False, error, sentPayload}``.
    Backoff between attempts is 1s, 2s, 4s and so on.
    """

    type = "webhook"

    def execute(self, node_data: Dict[str, Any], input_data: Any, context: ExecutionContext) -> Any:
        url = str(require(node_data, "url"))
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError("Invalid URL format")

        method = str(node_data.get("method") or "POST").upper()
        if method not in WEBHOOK_METHODS:
            raise ConfigurationError("method must be POST, PUT, or PATCH")

        headers = {"Content-Type": "application/json", **(node_data.get("headers") or {})}
        timeout_ms = int(node_data.get("timeout", 5000))
        retries = max(int(node_data.get("retries", 0)), 0)

        payload: Dict[str, Any] = dict(node_data.get("payload") or {})
        if node_data.get("includeInput", True) and input_data:
            payload["input"] = input_data
        payload["metadata"] = {
            "runId": context.run_id,
            "userId": context.user_id,
            "nodeType": self.type,
            "timestamp": utc_now().isoformat(),
        }

        context.logger.info(f"webhook: sending {method} request to {url}")
        last_error = None
        for attempt in range(1, retries + 2):
            context.logger.info(f"webhook: attempt {attempt}/{retries + 1}")
            try:
                response = requests.request(
                    method, url, json=payload, headers=headers, timeout=timeout_ms / 1000
                )
                if not response.ok:
                    raise requests.HTTPError(
                        f"Webhook request failed: {response.status_code} {response.reason}",
                        response=response,
                    )
                context.logger.info(f"webhook: request successful ({response.status_code})")
                return {
                    "success": True,
                    "statusCode": response.status_code,
                    "statusText": response.reason,
                    "webhookResponse": _response_body(response),
                    "sentPayload": payload,
                    "attempts": attempt,
                    "timestamp": utc_now().isoformat(),
                }
            except requests.Timeout:
                last_error = f"Webhook request timed out after {timeout_ms}ms"
            except requests.RequestException as e:
                last_error = str(e)

            if attempt <= retries:
                wait_seconds = 2 ** (attempt - 1)
                context.logger.warning(
                    f"webhook: attempt {attempt} failed ({last_error}), retrying in {wait_seconds}s"
                )
                time.sleep(wait_seconds)

        context.logger.error(f"webhook: giving up: {last_error}")
        return {
            "success": False,
            "error": last_error,
            "sentPayload": payload,
            "timestamp": utc_now().isoformat(),
        }
