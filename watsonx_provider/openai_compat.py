"""OpenAI-compatible chat handle bound to a custom httpx transport."""

from __future__ import annotations

from typing import Any

import httpx
from openai import APIConnectionError, AsyncOpenAI
from openai.types.chat import ChatCompletion

from .errors import ProviderError

# Requests are rewritten by the transport, so these never reach OpenAI.
OPENAI_BASE_URL = "https://api.openai.com/v1"
PLACEHOLDER_API_KEY = "dummy-key"

_DEFAULT_TIMEOUT_SECONDS = 120.0


class ChatModel:
    """A model handle the host application can talk to in OpenAI terms.

    Usage::

        async with provider.get_model_instance("ibm/granite-3-3-8b-instruct") as model:
            text = await model.generate("Summarise the last maintenance report.")

    Args:
        model_id: Model id sent in every request.
        transport: httpx transport that receives every outbound request.
    """

    def __init__(self, model_id: str, transport: httpx.AsyncBaseTransport) -> None:
        self.model_id = model_id
        self.transport = transport
        self._http_client = httpx.AsyncClient(
            transport=transport, timeout=_DEFAULT_TIMEOUT_SECONDS
        )
        self.client = AsyncOpenAI(
            base_url=OPENAI_BASE_URL,
            api_key=PLACEHOLDER_API_KEY,
            max_retries=0,
            http_client=self._http_client,
        )

    async def chat(self, messages: list[dict[str, Any]], **params: Any) -> ChatCompletion:
        """Send a chat-completions request and return the parsed completion.

        Non-success responses raise the usual ``openai.APIStatusError``
        subclasses. Provider failures raised inside the transport (e.g. IAM
        authentication) are re-raised as themselves.
        """
        try:
            return await self.client.chat.completions.create(
                model=self.model_id, messages=messages, **params
            )
        except APIConnectionError as exc:
            if isinstance(exc.__cause__, ProviderError):
                raise exc.__cause__ from None
            raise

    async def generate(self, prompt: str, temperature: float = 0.0) -> str:
        """Generate text for a single user prompt."""
        completion = await self.chat(
            [{"role": "user", "content": prompt}], temperature=temperature
        )
        return completion.choices[0].message.content or ""

    async def aclose(self) -> None:
        await self.client.close()

    async def __aenter__(self) -> "ChatModel":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
