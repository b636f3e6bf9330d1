"""Lightweight health check utilities for RiskLens.

No network calls: the provider SDK is only imported, never configured. The
pipeline check runs pattern matching and prompt building on a sample clause.
"""
from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Dict, Any, List


@dataclass
class HealthStatus:
    component: str
    ok: bool
    detail: str

    def as_dict(self) -> Dict[str, Any]:
        return {"component": self.component, "ok": self.ok, "detail": self.detail}


def _check_import(module: str) -> HealthStatus:
    try:
        importlib.import_module(module)
        return HealthStatus(module, True, "import ok")
    except ImportError as e:  # pragma: no cover - diagnostic path
        return HealthStatus(module, False, f"import failed: {e}")


CORE_IMPORTS = [
    "google.generativeai",
    "google.api_core.exceptions",
    "dotenv",
]

SAMPLE_CLAUSE = "We reserve the right to terminate your account at any time without notice."


def _check_pipeline() -> HealthStatus:
    from risklens.analysis.patterns import PatternMatcher
    from risklens.prompts.builder import PromptBuilder

    matches = PatternMatcher().scan(SAMPLE_CLAUSE)
    if not matches:
        return HealthStatus("pattern-matcher", False, "sample clause produced no matches")
    prompt = PromptBuilder().build(SAMPLE_CLAUSE, matches)
    return HealthStatus("pattern-matcher", True, f"{len(matches)} match(es), prompt {len(prompt.as_text())} chars")


def run_health_check(light: bool = True) -> Dict[str, Any]:
    """Run a series of lightweight checks.

    light=True skips the live provider round trip.
    """
    results: List[HealthStatus] = []
    for mod in CORE_IMPORTS:
        results.append(_check_import(mod))
    results.append(_check_pipeline())

    if not light:  # pragma: no cover - external API
        from risklens.llm.gemini import GeminiClient
        from risklens.utils.config import AppConfig
        from risklens.utils.errors import ConfigurationError

        try:
            ok = GeminiClient(AppConfig.from_env()).test_connection()
            results.append(HealthStatus("gemini", ok, "connection ok" if ok else "connection test failed"))
        except ConfigurationError as e:
            results.append(HealthStatus("gemini", False, str(e)))

    aggregate = all(r.ok for r in results)
    return {
        "ok": aggregate,
        "components": [r.as_dict() for r in results],
    }


if __name__ == "__main__":  # Manual invocation helper
    import json, sys
    report = run_health_check(light="--live" not in sys.argv)
    print(json.dumps(report, indent=2))
    sys.exit(0 if report["ok"] else 1)
