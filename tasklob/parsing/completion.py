"""Provider-agnostic completion clients for structured (JSON) output."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib import error as urllib_error
from urllib import parse as urllib_parse
from urllib import request as urllib_request

from tasklob.config import Settings, get_settings
from tasklob.errors import ProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CompletionOptions:
    """Sampling settings for one completion call."""

    temperature: float = 0.2
    max_tokens: int = 4000
    json_mode: bool = True


class CompletionService(Protocol):
    """Black-box completion collaborator: prompt + text -> raw (hopefully JSON) string."""

    def complete_json(self, system_prompt: str, user_text: str, *, options: CompletionOptions) -> str:
        """Return the raw completion text. Raise ``ProviderError`` on provider failure."""


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    base_url: str
    default_model: str
    kind: str = "openai-compatible"


PROVIDER_CONFIGS: dict[str, ProviderConfig] = {
    "mistral": ProviderConfig("https://api.mistral.ai/v1", "mistral-small-latest"),
    "deepinfra": ProviderConfig("https://api.deepinfra.com/v1/openai", "meta-llama/Llama-3.3-70B-Instruct"),
    "openrouter": ProviderConfig("https://openrouter.ai/api/v1", "deepseek/deepseek-r1"),
    "together": ProviderConfig("https://api.together.xyz/v1", "deepseek-ai/DeepSeek-R1"),
    "groq": ProviderConfig("https://api.groq.com/openai/v1", "llama-3.3-70b-versatile"),
    "openai": ProviderConfig("https://api.openai.com/v1", "gpt-4o"),
    "fireworks": ProviderConfig("https://api.fireworks.ai/inference/v1", "accounts/fireworks/models/deepseek-r1"),
    "deepseek": ProviderConfig("https://api.deepseek.com/v1", "deepseek-chat"),
    "anthropic": ProviderConfig("https://api.anthropic.com/v1", "claude-sonnet-4-20250514", kind="anthropic"),
    "gemini": ProviderConfig("https://generativelanguage.googleapis.com/v1beta", "gemini-1.5-pro", kind="gemini"),
}


def ensure_json_instruction(system_prompt: str) -> str:
    """Append a JSON instruction when the prompt never mentions JSON."""

    if "json" in system_prompt.lower():
        return system_prompt
    return f"{system_prompt}\n\nRespond with valid JSON."


def _post_json(
    url: str,
    payload: dict[str, Any],
    *,
    headers: dict[str, str],
    timeout_seconds: int,
    provider: str,
) -> dict[str, Any]:
    req = urllib_request.Request(
        url=url,
        data=json.dumps(payload).encode("utf-8"),
        method="POST",
        headers={"Content-Type": "application/json", **headers},
    )
    try:
        with urllib_request.urlopen(req, timeout=timeout_seconds) as resp:
            raw = resp.read().decode("utf-8")
    except urllib_error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")
        raise ProviderError(f"{provider} HTTP {exc.code}: {detail}") from exc
    except urllib_error.URLError as exc:
        raise ProviderError(f"{provider} request failed: {exc.reason}") from exc
    except TimeoutError as exc:
        raise ProviderError(f"{provider} request timed out after {timeout_seconds}s") from exc
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProviderError(f"{provider} returned a non-JSON envelope") from exc
    if not isinstance(decoded, dict):
        raise ProviderError(f"{provider} returned an unexpected envelope")
    return decoded


def _require_content(content: Any, provider: str) -> str:
    if not isinstance(content, str) or not content.strip():
        raise ProviderError(f"{provider} returned empty completion content")
    return content


@dataclass(slots=True)
class OpenAICompatibleCompletionService:
    """Chat Completions client for OpenAI and the many providers that mimic its API."""

    api_key: str | None
    model: str
    base_url: str = "https://api.openai.com/v1"
    timeout_seconds: int = 60
    provider: str = "openai"
    extra_headers: dict[str, str] = field(default_factory=dict)

    def complete_json(self, system_prompt: str, user_text: str, *, options: CompletionOptions) -> str:
        payload: dict[str, Any] = {
            "model": self.model,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
            "messages": [
                {"role": "system", "content": ensure_json_instruction(system_prompt)},
                {"role": "user", "content": user_text},
            ],
        }
        if options.json_mode:
            payload["response_format"] = {"type": "json_object"}
        headers = dict(self.extra_headers)
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        decoded = _post_json(
            f"{self.base_url.rstrip('/')}/chat/completions",
            payload,
            headers=headers,
            timeout_seconds=self.timeout_seconds,
            provider=self.provider,
        )
        try:
            message = decoded["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError(f"{self.provider} returned an unexpected chat response") from exc
        refusal = message.get("refusal") if isinstance(message, dict) else None
        if isinstance(refusal, str) and refusal.strip():
            raise ProviderError(f"{self.provider} refused the request: {refusal.strip()}")
        return _require_content(message.get("content") if isinstance(message, dict) else None, self.provider)


@dataclass(slots=True)
class AnthropicCompletionService:
    """Anthropic Messages API client."""

    api_key: str
    model: str
    base_url: str = "https://api.anthropic.com/v1"
    timeout_seconds: int = 60
    api_version: str = "2023-06-01"

    def complete_json(self, system_prompt: str, user_text: str, *, options: CompletionOptions) -> str:
        payload = {
            "model": self.model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "system": ensure_json_instruction(system_prompt),
            "messages": [{"role": "user", "content": user_text}],
        }
        decoded = _post_json(
            f"{self.base_url.rstrip('/')}/messages",
            payload,
            headers={"x-api-key": self.api_key, "anthropic-version": self.api_version},
            timeout_seconds=self.timeout_seconds,
            provider="anthropic",
        )
        try:
            blocks = decoded["content"]
            text = "".join(block.get("text", "") for block in blocks if block.get("type") == "text")
        except (KeyError, TypeError, AttributeError) as exc:
            raise ProviderError("anthropic returned an unexpected messages response") from exc
        return _require_content(text, "anthropic")


@dataclass(slots=True)
class GeminiCompletionService:
    """Google Gemini generateContent client."""

    api_key: str
    model: str
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout_seconds: int = 60

    def complete_json(self, system_prompt: str, user_text: str, *, options: CompletionOptions) -> str:
        generation_config: dict[str, Any] = {
            "temperature": options.temperature,
            "maxOutputTokens": options.max_tokens,
        }
        if options.json_mode:
            generation_config["responseMimeType"] = "application/json"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": user_text}]}],
            "systemInstruction": {"parts": [{"text": ensure_json_instruction(system_prompt)}]},
            "generationConfig": generation_config,
        }
        query = urllib_parse.urlencode({"key": self.api_key})
        decoded = _post_json(
            f"{self.base_url.rstrip('/')}/models/{self.model}:generateContent?{query}",
            payload,
            headers={},
            timeout_seconds=self.timeout_seconds,
            provider="gemini",
        )
        try:
            text = decoded["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError("gemini returned an unexpected generateContent response") from exc
        return _require_content(text, "gemini")


def build_completion_service(settings: Settings | None = None) -> CompletionService:
    """Build the configured completion client. Used only at the application edge."""

    active = settings or get_settings()
    provider = active.ai_provider.strip().lower()
    config = PROVIDER_CONFIGS.get(provider)
    if config is None:
        raise ProviderError(
            f"Unknown AI provider: {provider}. Supported: {', '.join(sorted(PROVIDER_CONFIGS))}"
        )
    if not active.ai_api_key:
        raise ProviderError(f"AI_API_KEY is not configured for provider {provider}. Set it in .env.")
    if provider == "deepseek":
        logger.warning("completion.provider_warning provider=deepseek data_residency=outside_us")

    model = active.ai_model or config.default_model
    base_url = active.ai_base_url or config.base_url
    if config.kind == "anthropic":
        return AnthropicCompletionService(
            api_key=active.ai_api_key,
            model=model,
            base_url=base_url,
            timeout_seconds=active.ai_timeout_seconds,
        )
    if config.kind == "gemini":
        return GeminiCompletionService(
            api_key=active.ai_api_key,
            model=model,
            base_url=base_url,
            timeout_seconds=active.ai_timeout_seconds,
        )
    extra_headers = {"X-Title": active.app_name} if provider == "openrouter" else {}
    return OpenAICompatibleCompletionService(
        api_key=active.ai_api_key,
        model=model,
        base_url=base_url,
        timeout_seconds=active.ai_timeout_seconds,
        provider=provider,
        extra_headers=extra_headers,
    )
