"""Degraded result used when the model reply cannot be obtained or parsed."""
from __future__ import annotations
import logging

from risklens.utils.types import ParsedAnalysis, Provenance, RiskAssessment, level_for_score

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 25
HIGH_RISK_SCORE = 75
MEDIUM_RISK_SCORE = 50
BASELINE_RISK_SCORE = 25

HIGH_RISK_KEYWORDS = (
    "terminate", "termination", "suspend", "forfeit", "non-refundable", "no refund",
    "without notice", "sole discretion", "binding arbitration", "class action", "waive",
)
MEDIUM_RISK_KEYWORDS = (
    "third part", "share", "collect", "automatically renew", "auto-renew", "subscription",
    "liability", "modify these terms", "change these terms", "virtual currency", "license",
)


def fallback_result(raw_text: str, text_length: int) -> ParsedAnalysis:
    """Keyword screen of ``raw_text`` collapsed into one low-confidence ``general`` assessment."""
    lower = (raw_text or "").lower()
    high = [k for k in HIGH_RISK_KEYWORDS if k in lower]
    medium = [k for k in MEDIUM_RISK_KEYWORDS if k in lower]
    if high:
        score = HIGH_RISK_SCORE
    elif medium:
        score = MEDIUM_RISK_SCORE
    else:
        score = BASELINE_RISK_SCORE
    level = level_for_score(score)
    found = high + medium
    logger.warning("Using fallback result (score=%d, %d keyword hits)", score, len(found))

    rationale = "Structured analysis was unavailable; this estimate comes from a keyword screen only."
    if found:
        rationale += " Indicators found: " + ", ".join(found) + "."
    assessment = RiskAssessment(
        category="general",
        risk_level=level,
        risk_score=score,
        confidence_score=FALLBACK_CONFIDENCE,
        summary="Automated analysis incomplete; keyword screening applied",
        rationale=rationale,
        suggested_action="Manual review recommended due to analysis limitations.",
        start_position=0,
        end_position=max(0, int(text_length)),
        source=Provenance.AI_ANALYSIS,
        validation_flags=["fallback"],
    )
    return ParsedAnalysis(
        overall_risk_score=score,
        risk_level=level,
        confidence_score=FALLBACK_CONFIDENCE,
        risk_assessments=[assessment],
    )
