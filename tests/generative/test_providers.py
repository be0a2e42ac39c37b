"""
Provider Tests
==============

HTTP providers are exercised through httpx.MockTransport; nothing here
opens a socket.

INVARIANTS TESTED:
1. Every failure is an explicit ProviderResponse, never an exception
2. temperature and seed are forwarded on every call
3. Mock provider is deterministic for (prompt, seed)
"""

import json

import httpx
import pytest

from generative.providers import (
    ExternalModelProvider,
    InvocationParams,
    LocalModelProvider,
    MockProvider,
    ProviderErrorCode,
    ProviderResponse,
)


PARAMS = InvocationParams(seed=7, temperature=0.0, max_tokens=64, timeout_seconds=1.0)


def local_reply(text):
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


def recording_transport(status=200, body=None, captured=None):
    def handler(request):
        if captured is not None:
            captured.append(request)
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=body or "")
    return httpx.MockTransport(handler)


def raising_transport(exc):
    def handler(request):
        raise exc
    return httpx.MockTransport(handler)


class TestLocalModelProvider:

    def test_success(self):
        captured = []
        provider = LocalModelProvider(
            base_url="http://model.test/v1/",
            model="tiny",
            transport=recording_transport(body=local_reply("  Observed 12 reports.  "), captured=captured),
        )
        response = provider.invoke("prompt text", PARAMS, system="system text")

        assert response.success
        assert response.content == "Observed 12 reports."
        assert response.provider_version.provider_id == "local"
        assert response.provider_version.model_id == "tiny"

        request = captured[0]
        assert str(request.url) == "http://model.test/v1/chat/completions"
        body = json.loads(request.content)
        assert body["temperature"] == 0.0
        assert body["seed"] == 7
        assert body["max_tokens"] == 64
        assert body["stream"] is False
        assert body["messages"] == [
            {"role": "system", "content": "system text"},
            {"role": "user", "content": "prompt text"},
        ]

    @pytest.mark.parametrize("status,code", [
        (429, ProviderErrorCode.RATE_LIMITED),
        (500, ProviderErrorCode.API_ERROR),
        (404, ProviderErrorCode.API_ERROR),
    ])
    def test_status_mapping(self, status, code):
        provider = LocalModelProvider(transport=recording_transport(status=status, body={"error": "x"}))
        response = provider.invoke("p", PARAMS)
        assert not response.success
        assert response.error_code is code

    def test_api_error_message_names_status(self):
        provider = LocalModelProvider(transport=recording_transport(status=503, body={}))
        assert provider.invoke("p", PARAMS).error_message == "HTTP 503"

    def test_timeout(self):
        provider = LocalModelProvider(transport=raising_transport(httpx.ReadTimeout("slow")))
        response = provider.invoke("p", PARAMS)
        assert response.error_code is ProviderErrorCode.TIMEOUT

    def test_network_error(self):
        provider = LocalModelProvider(transport=raising_transport(httpx.ConnectError("refused")))
        response = provider.invoke("p", PARAMS)
        assert response.error_code is ProviderErrorCode.NETWORK_ERROR

    @pytest.mark.parametrize("body", ["not json", {"choices": []}, local_reply(""), [1, 2]])
    def test_invalid_response(self, body):
        provider = LocalModelProvider(transport=recording_transport(body=body))
        assert provider.invoke("p", PARAMS).error_code is ProviderErrorCode.INVALID_RESPONSE


class TestExternalModelProvider:

    def test_headers_and_body(self):
        captured = []
        reply = {"content": [{"type": "text", "text": "Part one."}, {"type": "text", "text": " Part two."}]}
        provider = ExternalModelProvider(
            api_key="test-key",
            model="small-model",
            transport=recording_transport(body=reply, captured=captured),
        )
        response = provider.invoke("prompt text", PARAMS, system="system text")

        assert response.success
        assert response.content == "Part one. Part two."

        request = captured[0]
        assert request.headers["x-api-key"] == "test-key"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = json.loads(request.content)
        assert body["model"] == "small-model"
        assert body["system"] == "system text"
        assert body["messages"] == [{"role": "user", "content": "prompt text"}]

    def test_missing_key_never_calls(self):
        captured = []
        provider = ExternalModelProvider(api_key=None, transport=recording_transport(captured=captured))
        response = provider.invoke("p", PARAMS)
        assert response.error_code is ProviderErrorCode.NOT_CONFIGURED
        assert captured == []

    def test_rate_limited(self):
        provider = ExternalModelProvider(api_key="k", transport=recording_transport(status=429, body={}))
        assert provider.invoke("p", PARAMS).error_code is ProviderErrorCode.RATE_LIMITED


class TestMockProvider:

    def test_deterministic(self):
        provider = MockProvider()
        contents = {provider.invoke("same prompt", PARAMS).content for _ in range(5)}
        assert len(contents) == 1

    def test_seed_changes_reply(self):
        provider = MockProvider()
        a = provider.invoke("p", InvocationParams(seed=1)).content
        b = provider.invoke("p", InvocationParams(seed=2)).content
        assert a != b

    def test_scripted_replies(self):
        provider = MockProvider(replies=["first", "second"])
        assert [provider.invoke("p", PARAMS).content for _ in range(3)] == ["first", "second", "second"]
        assert provider.calls == ["p", "p", "p"]

    def test_failure_mode(self):
        response = MockProvider(failure_mode=ProviderErrorCode.TIMEOUT).invoke("p", PARAMS)
        assert not response.success
        assert response.error_code is ProviderErrorCode.TIMEOUT


class TestResponseInvariants:

    def test_success_requires_content(self):
        with pytest.raises(ValueError):
            ProviderResponse(success=True)

    def test_failure_requires_code(self):
        with pytest.raises(ValueError):
            ProviderResponse(success=False)
