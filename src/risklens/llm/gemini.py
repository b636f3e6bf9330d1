from __future__ import annotations
import logging
import os
from typing import Any, Dict

import google.generativeai as genai

from risklens.utils.config import AppConfig
from risklens.utils.errors import ConfigurationError
from risklens.utils.types import FinishReason, RawModelResponse, TokenUsage

logger = logging.getLogger(__name__)

FINISH_REASONS = {
    "STOP": FinishReason.STOP,
    "MAX_TOKENS": FinishReason.LENGTH,
    "SAFETY": FinishReason.SAFETY,
    "RECITATION": FinishReason.RECITATION,
}
API_KEY_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY")


def _api_key() -> str:
    for var in API_KEY_VARS:
        value = os.getenv(var)
        if value:
            return value
    return ""


def map_finish_reason(reason: Any) -> FinishReason:
    """Normalise a provider finish reason (enum member, name or int) to FinishReason."""
    if reason is None:
        return FinishReason.STOP
    name = getattr(reason, "name", None) or str(reason)
    return FINISH_REASONS.get(name.upper().rsplit(".", 1)[-1], FinishReason.STOP)


def map_usage(metadata: Any) -> TokenUsage:
    if metadata is None:
        return TokenUsage()
    prompt = int(getattr(metadata, "prompt_token_count", 0) or 0)
    completion = int(getattr(metadata, "candidates_token_count", 0) or 0)
    total = int(getattr(metadata, "total_token_count", 0) or 0) or prompt + completion
    return TokenUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


def _response_text(rsp: Any) -> str:
    # rsp.text raises ValueError when the candidate was blocked and has no parts
    try:
        return rsp.text or ""
    except ValueError:
        return ""


class GeminiClient:
    def __init__(self, config: AppConfig):
        api_key = _api_key()
        if not api_key:
            raise ConfigurationError("GEMINI_API_KEY (or GOOGLE_API_KEY) not set")
        genai.configure(api_key=api_key)
        self.config = config
        self.model = genai.GenerativeModel(config.model_name)

    @property
    def generation_config(self) -> Dict[str, Any]:
        return {
            "temperature": self.config.temperature,
            "max_output_tokens": self.config.max_tokens,
            "top_p": self.config.top_p,
            "top_k": self.config.top_k,
        }

    def generate(self, prompt: str) -> RawModelResponse:
        """One remote call; provider exceptions propagate to the invoker for classification."""
        rsp = self.model.generate_content(prompt, generation_config=self.generation_config)
        candidates = getattr(rsp, "candidates", None) or []
        reason = getattr(candidates[0], "finish_reason", None) if candidates else None
        return RawModelResponse(
            text=_response_text(rsp),
            usage=map_usage(getattr(rsp, "usage_metadata", None)),
            finish_reason=map_finish_reason(reason),
        )

    def validate_config(self) -> bool:
        if not _api_key():
            raise ConfigurationError("Configuration validation failed: Missing API key")
        if not 0 <= self.config.temperature <= 2:
            raise ConfigurationError("Configuration validation failed: Temperature must be between 0 and 2")
        if not 1 <= self.config.max_tokens <= 8192:
            raise ConfigurationError("Configuration validation failed: Max tokens must be between 1 and 8192")
        return True

    def test_connection(self) -> bool:
        try:
            rsp = self.generate('Test connection. Respond with "OK".')
        except Exception as e:  # pragma: no cover - external API
            logger.warning("Gemini connection test failed: %s", e)
            return False
        return "ok" in rsp.text.lower()

    def usage_stats(self) -> Dict[str, Any]:
        return {"model": self.config.model_name, "config": self.generation_config}
