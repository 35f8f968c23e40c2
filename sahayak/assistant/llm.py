"""LLM provider abstractions."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import GenerationConfig, LLMConfig
from .errors import APIError, CredentialsError, NetworkError, ResponseFormatError

LOGGER = logging.getLogger(__name__)


class LLMProvider:
    """One completion request per call; raises CompletionError subclasses on failure."""

    name = "base"

    async def generate(self, prompt: str) -> str:
        raise NotImplementedError

    async def close(self) -> None:
        return None


def _error_message(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    elif isinstance(error, str) and error.strip():
        return error.strip()
    return None


class _HttpProvider(LLMProvider):
    def __init__(
        self,
        config: LLMConfig,
        *,
        timeout: float | None,
        client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self._logger = logger or LOGGER
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, url: str, payload: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
        self._logger.debug("[llm] Sending %s request to %s", self.name, url)
        try:
            response = await self._client.post(url, json=payload, **kwargs)
        except httpx.RequestError as exc:
            raise NetworkError(f"{self.name} request failed: {exc}") from exc
        self._logger.debug("[llm] %s response status: %s", self.name, response.status_code)
        if not response.is_success:
            message = _error_message(response)
            self._logger.warning("[llm] %s API error %s: %s", self.name, response.status_code, message)
            raise APIError(response.status_code, message)
        try:
            parsed = response.json()
        except ValueError as exc:
            raise ResponseFormatError("Invalid response format from API") from exc
        if not isinstance(parsed, dict):
            raise ResponseFormatError("Invalid response format from API")
        return parsed


class GeminiProvider(_HttpProvider):
    """Call Google Gemini (Generative Language) models."""

    name = "gemini"

    def __init__(
        self,
        config: LLMConfig,
        *,
        client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(config, timeout=config.gemini_timeout, client=client, logger=logger)

    @property
    def endpoint(self) -> str:
        base_url = self.config.gemini_base_url.rstrip("/")
        return f"{base_url}/models/{self.config.gemini_model}:generateContent"

    async def generate(self, prompt: str) -> str:
        if not self.config.gemini_api_key:
            raise CredentialsError("GEMINI_API_KEY is not set")
        payload = build_gemini_payload(prompt, self.config.generation)
        parsed = await self._post(self.endpoint, payload, params={"key": self.config.gemini_api_key})
        return extract_gemini_text(parsed)


class OpenAIProvider(_HttpProvider):
    """Call OpenAI-compatible chat completion endpoints."""

    name = "openai"

    def __init__(
        self,
        config: LLMConfig,
        *,
        client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(config, timeout=config.openai_timeout, client=client, logger=logger)

    async def generate(self, prompt: str) -> str:
        if not self.config.openai_api_key:
            raise CredentialsError("OPENAI_API_KEY is not set")
        generation = self.config.generation
        payload = {
            "model": self.config.openai_model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": generation.temperature,
            "top_p": generation.top_p,
            "max_tokens": generation.max_output_tokens,
        }
        url = f"{self.config.openai_base_url.rstrip('/')}/chat/completions"
        parsed = await self._post(
            url,
            payload,
            headers={"Authorization": f"Bearer {self.config.openai_api_key}"},
        )
        choices = parsed.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            raise ResponseFormatError("LLM response missing choices")
        message = choices[0].get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content:
            raise ResponseFormatError("LLM response missing content")
        return content


def build_gemini_payload(prompt: str, generation: GenerationConfig) -> dict[str, Any]:
    return {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": {
            "temperature": generation.temperature,
            "topK": generation.top_k,
            "topP": generation.top_p,
            "maxOutputTokens": generation.max_output_tokens,
        },
    }


def extract_gemini_text(parsed: dict[str, Any]) -> str:
    """Return ``candidates[0].content.parts[0].text`` or raise ResponseFormatError."""
    candidates = parsed.get("candidates")
    if isinstance(candidates, list) and candidates:
        content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        if isinstance(parts, list) and parts and isinstance(parts[0], dict):
            text = parts[0].get("text")
            if isinstance(text, str) and text:
                return text
    prompt_feedback = parsed.get("promptFeedback")
    if isinstance(prompt_feedback, dict) and prompt_feedback.get("blockReason"):
        raise ResponseFormatError(f"Gemini blocked prompt: {prompt_feedback['blockReason']}")
    raise ResponseFormatError("Invalid response format from API")


def build_llm_provider(
    config: LLMConfig,
    logger: logging.Logger | None = None,
    client: httpx.AsyncClient | None = None,
) -> LLMProvider:
    provider = (config.provider or "").strip().lower()
    if provider == "openai":
        return OpenAIProvider(config, client=client, logger=logger)
    return GeminiProvider(config, client=client, logger=logger)
