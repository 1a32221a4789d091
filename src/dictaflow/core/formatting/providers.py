import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, Optional

import litellm
import requests
from litellm import completion

from ...utils.logger import get_logger
from ..errors import FormattingMalformedOutput, FormattingTransportFailure
from ..settings.config import DEFAULT_FORMATTING_TAG, DEFAULT_FORMATTING_TIMEOUT_S
from .extractor import (
    FallbackReason,
    FormatResult,
    extract_formatted_text,
    resolve_extraction,
)
from .prompt import build_formatting_prompt

if TYPE_CHECKING:
    from ..settings.settings import FormattingSettings

logger = get_logger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"
MAX_OUTPUT_TOKENS = 2000
# Low temperature for consistent formatting
TEMPERATURE = 0.1


class FormattingProviderKind(str, Enum):
    LITELLM = "litellm"
    OLLAMA = "ollama"


@dataclass
class FormatRequest:
    text: str
    context_hints: Dict[str, object] = field(default_factory=dict)


class FormattingProvider(ABC):
    """
    Rewrites a raw transcript through a text-generation backend.

    Fail-open: transport errors, error statuses and malformed responses
    all yield the original text. Nothing raises past format_text().
    """

    name: str = "base"

    def __init__(
        self,
        model: str,
        timeout_s: float = DEFAULT_FORMATTING_TIMEOUT_S,
        tag: str = DEFAULT_FORMATTING_TAG,
    ):
        self.model = model
        self.timeout_s = timeout_s
        self._prompt = build_formatting_prompt(tag)

    @property
    def tag(self) -> str:
        return self._prompt.tag

    def format(self, text: str, context: Optional[Dict[str, object]] = None) -> str:
        return self.format_text(FormatRequest(text, context or {})).formatted_text

    def format_text(self, request: FormatRequest) -> FormatResult:
        text = request.text
        if not text or not text.strip():
            return FormatResult(formatted_text=text)

        user_prompt = self._prompt.user_prompt(text)
        logger.debug(f"Formatting request via {self.name} ({self.model}): {user_prompt}")

        try:
            raw_response = self._complete(self._prompt.system_prompt, user_prompt)
        except FormattingTransportFailure as e:
            logger.warning(f"Formatting transport failed ({self.name}): {e}")
            return self._fallback(text, FallbackReason.TRANSPORT_FAILURE)
        except FormattingMalformedOutput as e:
            logger.warning(f"Formatting response malformed ({self.name}): {e}")
            return self._fallback(text, FallbackReason.MALFORMED_RESPONSE)
        except Exception as e:
            logger.error(f"Formatting failed ({self.name}): {e}", exc_info=True)
            return self._fallback(text, FallbackReason.TRANSPORT_FAILURE)

        logger.debug(f"Formatting raw response: {raw_response}")

        result = resolve_extraction(
            extract_formatted_text(raw_response, self.tag), text
        )
        if result.used_fallback:
            logger.warning(
                f"Formatting extraction failed ({result.fallback_reason.value}), "
                f"returning original text. Response preview: {raw_response[:200]!r}"
            )
        else:
            logger.info(
                f"Formatting complete: {len(text)} -> {len(result.formatted_text)} chars"
            )
        return result

    @staticmethod
    def _fallback(text: str, reason: FallbackReason) -> FormatResult:
        return FormatResult(formatted_text=text, used_fallback=True, fallback_reason=reason)

    @abstractmethod
    def _complete(self, system_prompt: str, user_prompt: str) -> str:
        """
        Send one request to the backend and return the generated text.

        Raises:
            FormattingTransportFailure: Network error, timeout or error status.
            FormattingMalformedOutput: Response did not contain generated text.
        """

    def is_configured(self) -> bool:
        return bool(self.model)


class LiteLLMFormatter(FormattingProvider):
    name = "litellm"

    @staticmethod
    def format_model_name(model: str, provider: str) -> str:
        known_prefixes = (
            "openrouter/",
            "ollama/",
            "gemini/",
            "openai/",
            "anthropic/",
            "azure/",
            "huggingface/",
        )

        if model.startswith(known_prefixes):
            return model

        prefix_map = {
            "openrouter": "openrouter/",
            "ollama": "ollama/",
            "gemini": "gemini/",
        }

        prefix = prefix_map.get(provider)
        if prefix:
            return f"{prefix}{model}"

        return model

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout_s: float = DEFAULT_FORMATTING_TIMEOUT_S,
        tag: str = DEFAULT_FORMATTING_TAG,
    ):
        super().__init__(model=model, timeout_s=timeout_s, tag=tag)
        self.api_key = api_key
        self.api_base = api_base

        model_info = litellm.model_cost.get(model, {})
        self._supports_system_messages = model_info.get(
            "supports_system_messages", True
        )
        if not self._supports_system_messages:
            logger.info(
                f"Model {model} does not support system messages (per model_cost)"
            )

        logger.info(
            f"LiteLLMFormatter initialized with model: {model}, api_base: {api_base}"
        )

    def _complete(self, system_prompt: str, user_prompt: str) -> str:
        if self._supports_system_messages:
            messages = [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ]
        else:
            messages = [{"role": "user", "content": f"{system_prompt}\n\n{user_prompt}"}]

        kwargs = {
            "model": self.model,
            "messages": messages,
            "temperature": TEMPERATURE,
            "max_tokens": MAX_OUTPUT_TOKENS,
            "timeout": self.timeout_s,
            "num_retries": 0,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        try:
            response = completion(**kwargs)
        except Exception as e:
            raise FormattingTransportFailure(str(e)) from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise FormattingMalformedOutput(f"Unexpected response shape: {e}") from e

        if not isinstance(content, str):
            raise FormattingMalformedOutput("Response carried no text content")
        return content

    def is_configured(self) -> bool:
        if not self.model:
            return False

        if self.api_key:
            return True

        if self.model.startswith("ollama/") or self.api_base:
            return True

        env_vars = [
            "OPENAI_API_KEY",
            "ANTHROPIC_API_KEY",
            "AZURE_API_KEY",
            "GEMINI_API_KEY",
            "OPENROUTER_API_KEY",
        ]
        return any(os.environ.get(var) for var in env_vars)


class OllamaFormatter(FormattingProvider):
    name = "ollama"

    def __init__(
        self,
        model: str,
        url: str = DEFAULT_OLLAMA_URL,
        timeout_s: float = DEFAULT_FORMATTING_TIMEOUT_S,
        tag: str = DEFAULT_FORMATTING_TAG,
    ):
        super().__init__(model=model, timeout_s=timeout_s, tag=tag)
        self.url = url.rstrip("/")

    def _complete(self, system_prompt: str, user_prompt: str) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "stream": False,
            "options": {
                "temperature": TEMPERATURE,
                "num_predict": MAX_OUTPUT_TOKENS,
            },
        }

        try:
            response = requests.post(
                f"{self.url}/api/chat", json=payload, timeout=self.timeout_s
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise FormattingTransportFailure(str(e)) from e

        try:
            data = response.json()
        except ValueError as e:
            raise FormattingMalformedOutput(f"Response is not JSON: {e}") from e

        message = data.get("message") if isinstance(data, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise FormattingMalformedOutput("Response has no message.content")
        return content


def create_formatting_provider(
    settings: "FormattingSettings",
) -> Optional[FormattingProvider]:
    """Build the configured provider, or None when formatting is off."""
    if not settings.enabled or not settings.model:
        return None

    kind = FormattingProviderKind(settings.provider)
    if kind == FormattingProviderKind.OLLAMA:
        return OllamaFormatter(
            model=settings.model,
            url=settings.api_base or DEFAULT_OLLAMA_URL,
            timeout_s=settings.timeout_s,
            tag=settings.tag,
        )
    return LiteLLMFormatter(
        model=LiteLLMFormatter.format_model_name(settings.model, settings.llm_vendor),
        api_key=settings.api_key,
        api_base=settings.api_base,
        timeout_s=settings.timeout_s,
        tag=settings.tag,
    )
