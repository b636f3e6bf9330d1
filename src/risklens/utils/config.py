from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from dotenv import load_dotenv


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AppConfig:
    use_gemini: bool = True
    model_name: str = "gemini-1.5-flash"
    temperature: float = 0.2
    max_tokens: int = 4096
    top_p: float = 0.8
    top_k: int = 40
    max_retries: int = 3
    timeout_ms: int = 60000
    max_prompt_chars: int = 200000
    max_content_length: int = 1000000
    strict_validation: bool = False
    default_template_id: str = "mobile_gaming_basic"
    enable_pattern_matching: bool = True
    enable_ai_analysis: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AppConfig":
        load_dotenv()
        return cls(
            use_gemini=_flag("USE_GEMINI", "true"),
            model_name=os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
            temperature=float(os.getenv("TEMPERATURE", "0.2")),
            max_tokens=int(os.getenv("MAX_TOKENS", "4096")),
            top_p=float(os.getenv("TOP_P", "0.8")),
            top_k=int(os.getenv("TOP_K", "40")),
            max_retries=int(os.getenv("MAX_RETRIES", "3")),
            timeout_ms=int(os.getenv("TIMEOUT_MS", "60000")),
            max_prompt_chars=int(os.getenv("MAX_PROMPT_CHARS", "200000")),
            max_content_length=int(os.getenv("MAX_CONTENT_LENGTH", "1000000")),
            strict_validation=_flag("STRICT_VALIDATION", "false"),
            default_template_id=os.getenv("DEFAULT_TEMPLATE_ID", "mobile_gaming_basic"),
            enable_pattern_matching=_flag("ENABLE_PATTERN_MATCHING", "true"),
            enable_ai_analysis=_flag("ENABLE_AI_ANALYSIS", "true"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
