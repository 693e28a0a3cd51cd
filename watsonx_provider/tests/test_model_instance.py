"""Tests for get_model_instance() and the OpenAI-compatible ChatModel."""

from __future__ import annotations

import json
import logging

import httpx
import openai
import pytest

from conftest import CHAT_PATH
from watsonx_provider.errors import MissingAPIKeyError, WatsonxAuthenticationError
from watsonx_provider.models import ProviderSetting
from watsonx_provider.openai_compat import ChatModel
from watsonx_provider.transport import ConfigurationErrorTransport, WatsonxChatTransport

_MODEL = "ibm/granite-3-3-8b-instruct"

_CHAT_RESPONSE = {
    "id": "chat-7f3a",
    "model_id": _MODEL,
    "model": _MODEL,
    "created": 1718000000,
    "choices": [
        {
            "index": 0,
            "message": {"role": "assistant", "content": "The chiller is running normally."},
            "finish_reason": "stop",
        }
    ],
    "usage": {"prompt_tokens": 12, "completion_tokens": 7, "total_tokens": 19},
}


def test_missing_api_key_raises(provider):
    with pytest.raises(MissingAPIKeyError, match="IBM watsonx"):
        provider.get_model_instance(_MODEL, server_env={"IBM_WATSONX_PROJECT_ID": "p"})


def test_scoped_instance_uses_chat_transport(provider, server_env):
    model = provider.get_model_instance(_MODEL, server_env=server_env)
    assert isinstance(model, ChatModel)
    assert model.model_id == _MODEL
    assert isinstance(model.transport, WatsonxChatTransport)


def test_unscoped_instance_uses_error_transport(provider, caplog):
    with caplog.at_level(logging.WARNING, logger="watsonx_provider.watsonx"):
        model = provider.get_model_instance(
            _MODEL, server_env={"IBM_WATSONX_API_KEY": "test-key"}
        )
    assert isinstance(model.transport, ConfigurationErrorTransport)
    assert "Model will return error messages" in caplog.text


@pytest.mark.anyio
async def test_unscoped_instance_returns_400_without_network(provider, fake_watsonx):
    model = provider.get_model_instance(_MODEL, server_env={"IBM_WATSONX_API_KEY": "test-key"})

    response = await model.transport.handle_async_request(
        httpx.Request("POST", "https://api.openai.com/v1/chat/completions", json={"messages": []})
    )

    assert response.status_code == 400
    assert json.loads(response.content)["error"]["code"] == "invalid_configuration"
    assert fake_watsonx.requests == []


@pytest.mark.anyio
async def test_unscoped_chat_raises_bad_request(provider, fake_watsonx):
    async with provider.get_model_instance(
        _MODEL, server_env={"IBM_WATSONX_API_KEY": "test-key"}
    ) as model:
        with pytest.raises(openai.BadRequestError) as exc_info:
            await model.chat([{"role": "user", "content": "Hi"}])

    assert exc_info.value.status_code == 400
    assert exc_info.value.response.json()["error"]["code"] == "invalid_configuration"
    assert fake_watsonx.calls_to(CHAT_PATH) == []
    assert fake_watsonx.token_calls == []


@pytest.mark.anyio
async def test_chat_round_trip(provider, fake_watsonx, server_env):
    fake_watsonx.route(CHAT_PATH, json=_CHAT_RESPONSE)

    async with provider.get_model_instance(_MODEL, server_env=server_env) as model:
        completion = await model.chat(
            [
                {"role": "system", "content": "You are a maintenance assistant."},
                {"role": "user", "content": "Status of chiller 6?"},
            ],
            temperature=0.3,
            max_tokens=128,
        )

    assert completion.choices[0].message.content == "The chiller is running normally."
    (request,) = fake_watsonx.calls_to(CHAT_PATH)
    assert request.url.params["version"] == "2024-05-31"
    assert request.headers["authorization"] == "Bearer tok-1"
    body = json.loads(request.content)
    assert body["model_id"] == _MODEL
    assert body["project_id"] == "proj-1"
    assert body["parameters"] == {"temperature": 0.3, "max_new_tokens": 128}
    assert body["messages"][1] == {
        "role": "user",
        "content": [{"type": "text", "text": "Status of chiller 6?"}],
    }


@pytest.mark.anyio
async def test_generate(provider, fake_watsonx, server_env):
    fake_watsonx.route(CHAT_PATH, json=_CHAT_RESPONSE)

    async with provider.get_model_instance(_MODEL, server_env=server_env) as model:
        text = await model.generate("Status of chiller 6?")

    assert text == "The chiller is running normally."
    body = json.loads(fake_watsonx.calls_to(CHAT_PATH)[0].content)
    assert body["parameters"] == {"temperature": 0.0}


@pytest.mark.anyio
async def test_space_and_instance_from_settings(provider, fake_watsonx):
    fake_watsonx.route(CHAT_PATH, json=_CHAT_RESPONSE)
    server_env = {
        "IBM_WATSONX_API_KEY": "test-key",
        "IBM_WATSONX_SPACE_ID": "space-1",
        "IBM_WATSONX_INSTANCE_CRN": "crn:v1:abc",
    }
    settings = {"IBM watsonx": ProviderSetting(base_url="https://eu-de.ml.cloud.ibm.com")}

    async with provider.get_model_instance(
        _MODEL, server_env=server_env, provider_settings=settings
    ) as model:
        await model.generate("Hi")

    (request,) = fake_watsonx.calls_to(CHAT_PATH)
    assert request.url.host == "eu-de.ml.cloud.ibm.com"
    body = json.loads(request.content)
    assert body["space_id"] == "space-1"
    assert body["wml_instance_crn"] == "crn:v1:abc"
    assert "project_id" not in body


@pytest.mark.anyio
async def test_upstream_error_surfaces_as_status_error(provider, fake_watsonx, server_env):
    fake_watsonx.route(
        CHAT_PATH,
        status=404,
        json={"errors": [{"code": "model_not_supported", "message": "unsupported"}]},
    )

    async with provider.get_model_instance(_MODEL, server_env=server_env) as model:
        with pytest.raises(openai.NotFoundError) as exc_info:
            await model.generate("Hi")

    assert exc_info.value.status_code == 404
    assert exc_info.value.response.json()["errors"][0]["code"] == "model_not_supported"


@pytest.mark.anyio
async def test_auth_failure_raised_from_chat(provider, fake_watsonx, server_env):
    fake_watsonx.token_status = 401
    fake_watsonx.route(CHAT_PATH, json=_CHAT_RESPONSE)

    async with provider.get_model_instance(_MODEL, server_env=server_env) as model:
        with pytest.raises(WatsonxAuthenticationError):
            await model.generate("Hi")

    assert fake_watsonx.calls_to(CHAT_PATH) == []


@pytest.mark.anyio
async def test_token_cached_across_requests(provider, fake_watsonx, server_env):
    fake_watsonx.route(CHAT_PATH, json=_CHAT_RESPONSE)

    async with provider.get_model_instance(_MODEL, server_env=server_env) as model:
        await model.generate("one")
        await model.generate("two")

    assert len(fake_watsonx.token_calls) == 1
    assert len(fake_watsonx.calls_to(CHAT_PATH)) == 2
