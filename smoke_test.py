"""Quick smoke test for the analysis pipeline (no network, no API key).

Run with:  python smoke_test.py
"""
from __future__ import annotations
import hashlib
import json

from risklens.llm.invoker import ModelInvoker
from risklens.pipeline.orchestrator import AnalysisPipeline
from risklens.utils.config import AppConfig
from risklens.utils.types import AnalysisInput, RawModelResponse, TokenUsage

SAMPLE = (
    "Welcome to the game. We reserve the right to terminate your account at any time without notice. "
    "All purchases of virtual currency are final and non-refundable."
)


class StubClient:
    def generate(self, prompt: str) -> RawModelResponse:  # noqa: D401
        reply = {
            "overallRiskScore": 72,
            "riskLevel": "high",
            "confidenceScore": 80,
            "riskAssessments": [{
                "category": "Refund Restrictions",
                "riskLevel": "high",
                "riskScore": 70,
                "confidenceScore": 75,
                "summary": "Purchases cannot be refunded",
                "rationale": "Virtual currency purchases are final.",
                "startPosition": SAMPLE.index("All purchases"),
                "endPosition": len(SAMPLE),
            }],
        }
        return RawModelResponse(text="```json\n" + json.dumps(reply) + "\n```", usage=TokenUsage(10, 20, 30))


def main():
    pipeline = AnalysisPipeline(AppConfig(), invoker=ModelInvoker(StubClient(), sleep=lambda s: None))
    result = pipeline.analyze(AnalysisInput(
        sanitized_text=SAMPLE,
        content_hash=hashlib.sha256(SAMPLE.encode("utf-8")).hexdigest(),
        content_length=len(SAMPLE),
    ))
    print("Score:", result.overall_risk_score, result.risk_level.value)
    print("Risks:", [(a.category, a.source.value) for a in result.risk_assessments])
    print("Steps:", [(s.step_name, s.success) for s in result.steps])
    assert all(s.success for s in result.steps), "a pipeline step failed"
    assert any(a.category == "account-termination" for a in result.risk_assessments)
    print("Smoke test passed.")


if __name__ == "__main__":
    main()
