"""LLM client — HTTP connection to a structured-output generation backend.

The orchestrator injects an LLM callable matching the protocol:

    async def __call__(self, stage: str, prompt: str, *, system: str = "",
                       max_tokens: int | None = None,
                       schema: dict | None = None) -> str: ...

`stage` identifies the caller ("day" or "ending") and is used for logging.
`schema` is a JSON-schema description of the expected response; backends
that support constrained output enforce it, the rest ignore it. Either way
the caller still sanitises and validates whatever text comes back.

Two implementations are provided:

    HttpLLM   — real HTTP client, supports Gemini, OpenAI-compatible and
                 KoboldCpp backends. Selected by provider_format.
    EchoLLM   — returns the prompt back unchanged. Useful for smoke-testing
                 the wiring without a running model (every day falls back).

Production code builds an HttpLLM from config via build_llm().
Tests use StubLLM (defined in the test helpers) instead.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Protocol

import httpx

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol: every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(
        self,
        stage: str,
        prompt: str,
        *,
        system: str = "",
        max_tokens: int | None = None,
        schema: dict[str, Any] | None = None,
    ) -> str: ...


# ---------------------------------------------------------------------------
# HttpLLM: connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["gemini", "openai", "koboldcpp"]


def _gemini_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Gemini spells schema types in upper case (OBJECT, STRING, ...)."""
    out: dict[str, Any] = {}
    for key, value in schema.items():
        if key == "type" and isinstance(value, str):
            out[key] = value.upper()
        elif key == "properties":
            out[key] = {name: _gemini_schema(sub) for name, sub in value.items()}
        elif key == "items":
            out[key] = _gemini_schema(value)
        else:
            out[key] = value
    return out


class HttpLLM:
    """Async HTTP client for generation backends.

    Supported formats:
      "gemini"     — POST /v1beta/models/{model}:generateContent
                     Response: {"candidates": [{"content": {"parts": [{"text": ...}]}}]}
      "openai"     — POST /v1/chat/completions  {"model": ..., "messages": [...]}
                     Response: {"choices": [{"message": {"content": "..."}}]}
      "koboldcpp"  — POST /api/v1/generate  {"prompt": ...}
                     Response: {"results": [{"text": "..."}]}

    Args:
        provider_url:    Base URL of the backend, e.g.
                         "https://generativelanguage.googleapis.com".
        api_key:         API key, or empty string if not required.
        provider_format: Wire format to use. Defaults to "gemini".
        model:           Model identifier (gemini and openai formats).
        timeout:         HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "gemini",
        model: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            if self._format == "gemini":
                headers["x-goog-api-key"] = self._api_key
            else:
                headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(
        self,
        prompt: str,
        system: str,
        max_tokens: int | None,
        schema: dict[str, Any] | None,
    ) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "gemini":
            url = f"{self._base_url}/v1beta/models/{self._model}:generateContent"
            config: dict[str, Any] = {"responseMimeType": "application/json"}
            if max_tokens:
                config["maxOutputTokens"] = max_tokens
            if schema:
                config["responseSchema"] = _gemini_schema(schema)
            body: dict[str, Any] = {
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": config,
            }
            if system:
                body["systemInstruction"] = {"parts": [{"text": system}]}
            return url, body

        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            messages = []
            if system:
                messages.append({"role": "system", "content": system})
            messages.append({"role": "user", "content": prompt})
            body = {"messages": messages}
            if self._model:
                body["model"] = self._model
            if max_tokens:
                body["max_tokens"] = max_tokens
            if schema:
                body["response_format"] = {
                    "type": "json_schema",
                    "json_schema": {"name": "response", "schema": schema},
                }
            return url, body

        # koboldcpp has no system role, so the instruction leads the prompt
        url = f"{self._base_url}/api/v1/generate"
        body = {"prompt": f"{system}\n\n{prompt}" if system else prompt}
        if max_tokens:
            body["max_length"] = max_tokens
        return url, body

    def _parse_response(self, data: dict) -> str:
        """Extract the completion text from the response body."""
        if self._format == "gemini":
            candidates = data.get("candidates")
            if not candidates:
                reason = (data.get("promptFeedback") or {}).get("blockReason")
                if reason:
                    raise LLMError(f"Gemini backend blocked the prompt: {reason}")
                raise LLMError("Unexpected response format from Gemini backend")
            candidate = candidates[0]
            parts = (candidate.get("content") or {}).get("parts")
            if not parts or not any("text" in p for p in parts):
                raise LLMError("Unexpected response format from Gemini backend")
            if candidate.get("finishReason") == "MAX_TOKENS":
                logger.warning("Gemini response hit the output token limit, likely truncated")
            return "".join(p.get("text", "") for p in parts)

        if self._format == "openai":
            choices = data.get("choices")
            if not choices or "content" not in (choices[0].get("message") or {}):
                raise LLMError("Unexpected response format from OpenAI-compatible backend")
            return choices[0]["message"]["content"] or ""

        # koboldcpp
        results = data.get("results")
        if not results or "text" not in results[0]:
            raise LLMError("Unexpected response format from KoboldCpp backend")
        return results[0]["text"]

    async def __call__(
        self,
        stage: str,
        prompt: str,
        *,
        system: str = "",
        max_tokens: int | None = None,
        schema: dict[str, Any] | None = None,
    ) -> str:
        url, body = self._build_request(prompt, system, max_tokens, schema)
        logger.debug("llm call stage=%s url=%s prompt_len=%d", stage, url, len(prompt))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 429:
                raise LLMError("LLM backend quota exhausted (HTTP 429)") from e
            raise LLMError(f"LLM backend returned HTTP {status}") from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("LLM backend returned a non-JSON body") from e

        text = self._parse_response(data)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


# ---------------------------------------------------------------------------
# EchoLLM: returns the prompt unchanged; useful for wiring smoke tests
# ---------------------------------------------------------------------------

class EchoLLM:
    """Returns the prompt text as-is. No network calls.

    Lets you verify that the wiring (prompt building, retry, fallback,
    reduction, storage writes) works end-to-end without a running model.
    The output is never valid day-log JSON, so every day degrades to the
    fallback log. Use StubLLM in tests when you need controlled responses.
    """

    async def __call__(
        self,
        stage: str,
        prompt: str,
        *,
        system: str = "",
        max_tokens: int | None = None,
        schema: dict[str, Any] | None = None,
    ) -> str:
        logger.debug("EchoLLM stage=%s prompt_len=%d", stage, len(prompt))
        return prompt


def build_llm(llm_config: dict[str, Any]) -> LLM:
    """Construct the client described by the ``llm`` config section."""
    if llm_config.get("provider_format") == "echo":
        return EchoLLM()
    return HttpLLM(
        provider_url=llm_config["provider_url"],
        api_key=llm_config.get("api_key", ""),
        provider_format=llm_config.get("provider_format", "gemini"),
        model=llm_config.get("model", ""),
        timeout=float(llm_config.get("timeout", 120.0)),
    )


# ---------------------------------------------------------------------------
# LLMError: raised by HttpLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""
