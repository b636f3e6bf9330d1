from __future__ import annotations
import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from risklens.analysis.extraction import Extractor
from risklens.analysis.validation import Issue, RuleRegistry, ValidationContext, as_number, clamped_or
from risklens.utils.errors import ExtractionFailed, ParsingError, ValidationError
from risklens.utils.types import (
    LEVEL_SCORES,
    FinishReason,
    ParsedAnalysis,
    Provenance,
    RawModelResponse,
    RiskAssessment,
    RiskLevel,
    kebab_case,
    level_for_score,
)

logger = logging.getLogger(__name__)

MAX_SUMMARY_CHARS = 200
MAX_RATIONALE_CHARS = 1000
MAX_ACTION_CHARS = 500
MAX_CONFIDENCE_PENALTY = 30
PENALTY_PER_ISSUE = 5
CONFIDENCE_FLOOR = 20
DEFAULT_ASSESSMENT_CONFIDENCE = 50

DEFAULT_ACTIONS = {
    "account-termination": "Look for services with clear termination policies that provide notice and appeal processes.",
    "virtual-currency": "Be aware that virtual currency may have no real-world value and can be lost.",
    "data-collection": "Review privacy settings and consider whether the data collection is necessary for the service.",
    "liability-limitation": "Understand that your legal recourse may be limited in case of service issues.",
    "content-ownership": "Consider the implications of granting broad rights to your content.",
    "dispute-resolution": "Be aware that you may be required to use arbitration instead of courts.",
    "automatic-renewal": "Set calendar reminders to review subscriptions before renewal dates.",
    "price-changes": "Monitor for price change notifications and review alternatives if prices increase.",
}
GENERIC_ACTION = "Review this clause carefully and consider seeking legal advice if concerned."


@dataclass
class ParsedResult:
    success: bool
    result: Optional[ParsedAnalysis] = None
    error: Optional[ParsingError] = None
    warnings: List[str] = field(default_factory=list)
    issues: List[Issue] = field(default_factory=list)
    strategy: Optional[str] = None
    raw: Optional[str] = None


def adjust_confidence(confidence: int, issue_count: int) -> int:
    """Lower confidence by 5 per issue (at most 30) without pushing it under 20 or raising it."""
    if issue_count <= 0:
        return confidence
    penalty = min(MAX_CONFIDENCE_PENALTY, PENALTY_PER_ISSUE * issue_count)
    return max(min(confidence, CONFIDENCE_FLOOR), confidence - penalty)


def truncate(value: Any, limit: int) -> str:
    if not isinstance(value, str):
        return ""
    text = value.strip()
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def _position(value: Any, upper: int) -> int:
    number = as_number(value)
    if number is None:
        return 0
    return int(round(max(0, min(upper, number))))


def _apply_fix(data: Dict, issue: Issue) -> None:
    target: Any = data
    for part in issue.path[:-1]:
        try:
            target = target[part]
        except (KeyError, IndexError, TypeError):
            return
    if isinstance(target, dict) and issue.path:
        target[issue.path[-1]] = copy.deepcopy(issue.suggested_fix)


class ResponseParser:
    def __init__(self, rules: Optional[RuleRegistry] = None, extractor: Optional[Extractor] = None):
        self.rules = rules or RuleRegistry()
        self.extractor = extractor or Extractor()

    def parse(
        self,
        raw: Union[str, RawModelResponse],
        ctx: ValidationContext,
        strict_mode: bool = False,
        preserve_raw: bool = False,
    ) -> ParsedResult:
        text = raw.text if isinstance(raw, RawModelResponse) else (raw or "")
        warnings: List[str] = []
        if isinstance(raw, RawModelResponse) and raw.finish_reason is not FinishReason.STOP:
            warnings.append(f"Model finished with reason '{raw.finish_reason.value}'; reply may be incomplete")
        kept = text if preserve_raw else None
        strict = strict_mode or ctx.strict_mode

        outcome = self.extractor.extract(text)
        if outcome is None:
            logger.warning("No extraction strategy matched the model reply (%d chars)", len(text))
            return ParsedResult(success=False, error=ExtractionFailed(), warnings=warnings, raw=kept)
        if outcome.reduced_confidence:
            warnings.append("Structured JSON not found; values recovered from unstructured text")

        issues = self.rules.validate(outcome.data, ctx)
        errors = [i for i in issues if i.severity == "error"]
        if strict and errors:
            message = f"Response failed validation with {len(errors)} error(s): " + "; ".join(
                f"{i.field}: {i.message}" for i in errors
            )
            return ParsedResult(
                success=False,
                error=ValidationError(message, issues),
                warnings=warnings,
                issues=issues,
                strategy=outcome.strategy,
                raw=kept,
            )

        data = copy.deepcopy(outcome.data)
        # assessment-level fixes first so list replacements cannot shift their indices
        for issue in sorted(issues, key=lambda i: -len(i.path)):
            if issue.suggested_fix is not None:
                _apply_fix(data, issue)
        warnings.extend(f"{i.severity}: {i.field}: {i.message}" for i in issues)
        if issues:
            logger.warning("Model reply needed %d correction(s) (%d error(s))", len(issues), len(errors))

        result = self._sanitize(data, ctx, issues)
        return ParsedResult(
            success=True, result=result, warnings=warnings, issues=issues, strategy=outcome.strategy, raw=kept,
        )

    def _sanitize(self, data: Dict, ctx: ValidationContext, issues: List[Issue]) -> ParsedAnalysis:
        score = clamped_or(data.get("overallRiskScore"), 0)
        level = RiskLevel.parse(data.get("riskLevel", data.get("overallRiskLevel")))
        if level is None:
            level = level_for_score(score)
        confidence = adjust_confidence(clamped_or(data.get("confidenceScore"), 0), len(issues))

        per_item: Dict[int, List[Issue]] = {}
        for issue in issues:
            if issue.assessment_index is not None:
                per_item.setdefault(issue.assessment_index, []).append(issue)

        items = data.get("riskAssessments")
        assessments = []
        for idx, item in enumerate(items if isinstance(items, list) else []):
            if isinstance(item, dict):
                assessments.append(self._assessment(item, ctx, per_item.get(idx, [])))
        return ParsedAnalysis(
            overall_risk_score=score,
            risk_level=level,
            confidence_score=confidence,
            risk_assessments=assessments,
        )

    def _assessment(self, item: Dict, ctx: ValidationContext, issues: List[Issue]) -> RiskAssessment:
        category = kebab_case(item.get("category")) or "general"
        stated = RiskLevel.parse(item.get("riskLevel")) or RiskLevel.LOW
        score = clamped_or(item.get("riskScore"), LEVEL_SCORES[stated])
        flags = sorted({i.rule_id for i in issues})
        level = level_for_score(score)
        if level is not stated:
            flags.append("level_adjusted")

        upper = max(0, int(ctx.original_text_length))
        start = _position(item.get("startPosition"), upper)
        end = _position(item.get("endPosition"), upper)
        if start > end:
            start, end = end, start

        return RiskAssessment(
            category=category,
            risk_level=level,
            risk_score=score,
            confidence_score=adjust_confidence(
                clamped_or(item.get("confidenceScore"), DEFAULT_ASSESSMENT_CONFIDENCE), len(issues)
            ),
            summary=truncate(item.get("summary"), MAX_SUMMARY_CHARS) or f"Potential {category} risk identified",
            rationale=truncate(item.get("rationale"), MAX_RATIONALE_CHARS) or "No rationale provided.",
            suggested_action=truncate(item.get("suggestedAction"), MAX_ACTION_CHARS)
            or DEFAULT_ACTIONS.get(category, GENERIC_ACTION),
            start_position=start,
            end_position=end,
            source=Provenance.AI_ANALYSIS,
            validation_flags=flags,
        )
