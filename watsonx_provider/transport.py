"""httpx transports that sit between an OpenAI-style client and watsonx.

``WatsonxChatTransport`` rewrites ``/chat/completions`` calls into watsonx
``/ml/v1/text/chat`` calls and attaches a fresh IAM bearer token.
``ConfigurationErrorTransport`` never touches the network and answers every
request with a 400 describing the missing tenant configuration.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from .models import WatsonxCredentials

_log = logging.getLogger(__name__)

API_VERSION = "2024-05-31"
CHAT_PATH = "/ml/v1/text/chat"

_OPENAI_CHAT_PATH = "/chat/completions"
_DROPPED_HEADERS = {"host", "content-length", "authorization"}

MISSING_SCOPE_MESSAGE = (
    "IBM watsonx requires at least one of: project_id, space_id, or "
    "wml_instance_crn. Please configure these in your environment variables "
    "or API settings."
)


def _wrap_content(message: dict[str, Any]) -> dict[str, Any]:
    content = message.get("content")
    if isinstance(content, str):
        return {**message, "content": [{"type": "text", "text": content}]}
    return message


def translate_chat_body(
    body: dict[str, Any],
    model: str,
    credentials: WatsonxCredentials,
) -> dict[str, Any]:
    """Convert an OpenAI chat-completions body into a watsonx chat body.

    String message content becomes a single text content part; scope
    identifiers are injected when set; sampling options move under
    ``parameters`` (``max_tokens`` is renamed ``max_new_tokens``).
    """
    watson_body: dict[str, Any] = {
        "model_id": model,
        "messages": [_wrap_content(msg) for msg in body["messages"]],
    }
    if "stream" in body:
        watson_body["stream"] = body["stream"]

    if credentials.project_id:
        watson_body["project_id"] = credentials.project_id
    if credentials.space_id:
        watson_body["space_id"] = credentials.space_id
    if credentials.instance_crn:
        watson_body["wml_instance_crn"] = credentials.instance_crn

    parameters: dict[str, Any] = {}
    for source, target in (
        ("temperature", "temperature"),
        ("max_tokens", "max_new_tokens"),
        ("top_p", "top_p"),
    ):
        if body.get(source) is not None:
            parameters[target] = body[source]
    if parameters:
        watson_body["parameters"] = parameters
    return watson_body


def chat_url(base_url: str) -> httpx.URL:
    return httpx.URL(base_url + CHAT_PATH, params={"version": API_VERSION})


class WatsonxChatTransport(httpx.AsyncBaseTransport):
    """Authenticate and reshape outbound chat requests for watsonx.

    Args:
        model: watsonx model id placed in every translated body.
        credentials: Resolved credentials; scope identifiers are injected.
        base_url: watsonx endpoint, e.g. ``https://us-south.ml.cloud.ibm.com``.
        get_token: Coroutine function returning a valid IAM token.
        transport: Transport that performs the real I/O.
    """

    def __init__(
        self,
        model: str,
        credentials: WatsonxCredentials,
        base_url: str,
        get_token: Callable[[], Awaitable[str]],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._model = model
        self._credentials = credentials
        self._base_url = base_url
        self._get_token = get_token
        self._owns_transport = transport is None
        self._transport = transport or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        token = await self._get_token()

        url = request.url
        if _OPENAI_CHAT_PATH in str(url):
            url = chat_url(self._base_url)

        headers = [
            (key, value)
            for key, value in request.headers.multi_items()
            if key.lower() not in _DROPPED_HEADERS
        ]
        headers.append(("Authorization", f"Bearer {token}"))

        content = await request.aread()
        if content:
            content = self._translate(content)

        outbound = httpx.Request(
            request.method,
            url,
            headers=headers,
            content=content,
            extensions=request.extensions,
        )
        response = await self._transport.handle_async_request(outbound)

        if not response.is_success:
            # Keep status, headers and body intact for the caller's error handling.
            await response.aread()
            _log.error(
                "watsonx API error response (%d): %s",
                response.status_code, response.text,
            )
        return response

    def _translate(self, content: bytes) -> bytes:
        try:
            body = json.loads(content)
            watson_body = translate_chat_body(body, self._model, self._credentials)
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            _log.error("Error parsing request body: %s", exc)
            return content
        _log.debug("watsonx request payload: %s", json.dumps(watson_body, indent=2))
        return json.dumps(watson_body).encode()

    async def aclose(self) -> None:
        if self._owns_transport:
            await self._transport.aclose()


class ConfigurationErrorTransport(httpx.AsyncBaseTransport):
    """Answer every request with a 400 ``invalid_configuration`` error."""

    def __init__(self, message: str = MISSING_SCOPE_MESSAGE) -> None:
        self._message = message

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={
                "error": {
                    "message": self._message,
                    "type": "invalid_request_error",
                    "code": "invalid_configuration",
                }
            },
            request=request,
        )
