"""Tests for drifter.llm: HttpLLM, EchoLLM and build_llm."""

import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock, patch

from drifter.llm import EchoLLM, HttpLLM, LLMError, build_llm


# ---------------------------------------------------------------------------
# EchoLLM
# ---------------------------------------------------------------------------

class TestEchoLLM:
    async def test_returns_prompt_unchanged(self) -> None:
        llm = EchoLLM()
        result = await llm("day", "hello world", system="be terse", schema={"type": "object"})
        assert result == "hello world"


def _mock_response(body: dict, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


def _gemini_body(text: str, finish: str = "STOP") -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": finish}]}


# ---------------------------------------------------------------------------
# HttpLLM: Gemini format
# ---------------------------------------------------------------------------

class TestHttpLLMGemini:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(
            provider_url="https://generativelanguage.googleapis.com/",
            api_key="secret",
            model="gemini-test",
        )

    async def test_happy_path(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_gemini_body('{"day": 1}')))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await llm("day", "Simulate.")
        assert result == '{"day": 1}'

    async def test_posts_to_model_url(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_gemini_body("{}")))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("day", "prompt")
        url = mock_post.call_args[0][0]
        assert url == (
            "https://generativelanguage.googleapis.com/v1beta/models/gemini-test:generateContent"
        )

    async def test_api_key_header(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_gemini_body("{}")))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("day", "prompt")
        headers = mock_post.call_args.kwargs["headers"]
        assert headers["x-goog-api-key"] == "secret"
        assert "Authorization" not in headers

    async def test_body_carries_system_schema_and_limit(self, llm: HttpLLM) -> None:
        schema = {
            "type": "object",
            "properties": {"tags": {"type": "array", "items": {"type": "string"}}},
            "required": ["tags"],
        }
        mock_post = AsyncMock(return_value=_mock_response(_gemini_body("{}")))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("day", "prompt", system="Be terse.", max_tokens=4096, schema=schema)
        body = mock_post.call_args.kwargs["json"]
        assert body["contents"][0]["parts"][0]["text"] == "prompt"
        assert body["systemInstruction"] == {"parts": [{"text": "Be terse."}]}
        config = body["generationConfig"]
        assert config["responseMimeType"] == "application/json"
        assert config["maxOutputTokens"] == 4096
        assert config["responseSchema"]["type"] == "OBJECT"
        assert config["responseSchema"]["properties"]["tags"]["items"]["type"] == "STRING"
        assert config["responseSchema"]["required"] == ["tags"]

    async def test_multiple_parts_joined(self, llm: HttpLLM) -> None:
        body = {"candidates": [{"content": {"parts": [{"text": '{"a":'}, {"text": " 1}"}]}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            assert await llm("day", "prompt") == '{"a": 1}'

    async def test_blocked_prompt_raises(self, llm: HttpLLM) -> None:
        body = {"promptFeedback": {"blockReason": "SAFETY"}}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="blocked"):
                await llm("day", "prompt")

    async def test_truncated_response_still_returned(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_gemini_body('{"day": 1', "MAX_TOKENS")))
        with patch("httpx.AsyncClient.post", mock_post):
            assert await llm("day", "prompt") == '{"day": 1'

    async def test_malformed_response_raises(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"candidates": [{}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="Unexpected response format"):
                await llm("day", "prompt")

    async def test_quota_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=429))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="quota"):
                await llm("day", "prompt")

    async def test_connect_error_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="Cannot connect"):
                await llm("day", "prompt")

    async def test_timeout_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(side_effect=httpx.TimeoutException("timeout"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="timed out"):
                await llm("day", "prompt")

    async def test_http_error_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=503))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="HTTP 503"):
                await llm("day", "prompt")

    async def test_non_json_body_raises_llm_error(self, llm: HttpLLM) -> None:
        resp = _mock_response({})
        resp.json.side_effect = ValueError("not json")
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=resp)):
            with pytest.raises(LLMError, match="non-JSON"):
                await llm("day", "prompt")


# ---------------------------------------------------------------------------
# HttpLLM: OpenAI format
# ---------------------------------------------------------------------------

class TestHttpLLMOpenAI:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(
            provider_url="http://localhost:8080",
            api_key="secret",
            provider_format="openai",
            model="mistral-7b",
        )

    async def test_posts_to_chat_completions(self, llm: HttpLLM) -> None:
        body = {"choices": [{"message": {"content": "{}"}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("ending", "prompt")
        assert mock_post.call_args[0][0] == "http://localhost:8080/v1/chat/completions"

    async def test_body_shape(self, llm: HttpLLM) -> None:
        body = {"choices": [{"message": {"content": "{}"}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        schema = {"type": "object"}
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("ending", "prompt", system="sys", max_tokens=2048, schema=schema)
        sent = mock_post.call_args.kwargs["json"]
        assert sent["model"] == "mistral-7b"
        assert sent["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "prompt"},
        ]
        assert sent["max_tokens"] == 2048
        assert sent["response_format"]["json_schema"]["schema"] == schema

    async def test_bearer_token(self, llm: HttpLLM) -> None:
        body = {"choices": [{"message": {"content": "{}"}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("ending", "prompt")
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer secret"

    async def test_happy_path(self, llm: HttpLLM) -> None:
        body = {"choices": [{"message": {"content": '{"title": "Home"}'}}]}
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=_mock_response(body))):
            assert await llm("ending", "prompt") == '{"title": "Home"}'

    async def test_malformed_response_raises_llm_error(self, llm: HttpLLM) -> None:
        body = {"results": [{"text": "kobold format accidentally"}]}
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=_mock_response(body))):
            with pytest.raises(LLMError, match="Unexpected response format"):
                await llm("ending", "prompt")


# ---------------------------------------------------------------------------
# HttpLLM: KoboldCpp format
# ---------------------------------------------------------------------------

class TestHttpLLMKoboldCpp:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(provider_url="http://localhost:5001", provider_format="koboldcpp")

    async def test_system_prepended_to_prompt(self, llm: HttpLLM) -> None:
        body = {"results": [{"text": "{}"}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("day", "prompt", system="sys", max_tokens=100)
        assert mock_post.call_args[0][0] == "http://localhost:5001/api/v1/generate"
        assert mock_post.call_args.kwargs["json"] == {"prompt": "sys\n\nprompt", "max_length": 100}

    async def test_no_auth_header_when_no_api_key(self, llm: HttpLLM) -> None:
        body = {"results": [{"text": "ok"}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("day", "prompt")
        assert "Authorization" not in mock_post.call_args.kwargs["headers"]


# ---------------------------------------------------------------------------
# build_llm
# ---------------------------------------------------------------------------

class TestBuildLLM:
    def test_echo(self) -> None:
        assert isinstance(build_llm({"provider_format": "echo"}), EchoLLM)

    def test_http(self) -> None:
        llm = build_llm({
            "provider_url": "http://localhost:8080",
            "provider_format": "openai",
            "model": "m",
            "api_key": "",
            "timeout": "30",
        })
        assert isinstance(llm, HttpLLM)
