from risklens.utils.config import AppConfig


def test_from_env_reads_overrides(monkeypatch):
    monkeypatch.setenv("MAX_RETRIES", "5")
    monkeypatch.setenv("STRICT_VALIDATION", "yes")
    monkeypatch.setenv("ENABLE_AI_ANALYSIS", "false")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    cfg = AppConfig.from_env()
    assert cfg.max_retries == 5
    assert cfg.strict_validation is True
    assert cfg.enable_ai_analysis is False
    assert cfg.log_level == "DEBUG"


def test_defaults(monkeypatch):
    for var in ("GEMINI_MODEL", "TIMEOUT_MS", "MAX_CONTENT_LENGTH", "DEFAULT_TEMPLATE_ID"):
        monkeypatch.delenv(var, raising=False)
    cfg = AppConfig.from_env()
    assert cfg.model_name == "gemini-1.5-flash"
    assert cfg.timeout_ms == 60000
    assert cfg.max_content_length == 1000000
    assert cfg.default_template_id == "mobile_gaming_basic"
