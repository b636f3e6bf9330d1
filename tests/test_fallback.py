from risklens.llm.fallback import FALLBACK_CONFIDENCE, fallback_result
from risklens.utils.types import RiskLevel


def test_high_risk_keywords():
    out = fallback_result("Accounts may be terminated without notice.", 120)
    a = out.risk_assessments[0]
    assert out.overall_risk_score == 75
    assert a.category == "general"
    assert a.risk_level is RiskLevel.HIGH
    assert a.confidence_score == FALLBACK_CONFIDENCE
    assert (a.start_position, a.end_position) == (0, 120)
    assert "fallback" in a.validation_flags


def test_medium_and_baseline():
    assert fallback_result("We share usage statistics.", 10).overall_risk_score == 50
    baseline = fallback_result("Hello there.", 10)
    assert baseline.overall_risk_score == 25
    assert baseline.risk_level is RiskLevel.LOW
    assert len(baseline.risk_assessments) == 1
