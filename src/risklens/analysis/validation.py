from __future__ import annotations
import dataclasses
import math
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from risklens.utils.types import RiskLevel, ValidationRule, clamp_score, level_for_score

SEVERITIES = ("error", "warning", "info")
LEVEL_KEYS = ("riskLevel", "overallRiskLevel")
# enum fix for a top-level level that is present but not one of the four values
FALLBACK_LEVEL = RiskLevel.MEDIUM


@dataclass
class ValidationContext:
    original_text_length: int
    strict_mode: bool = False


@dataclass
class Issue:
    rule_id: str
    severity: str
    message: str
    path: Tuple = ()
    suggested_fix: Any = None

    @property
    def field(self) -> str:
        out = ""
        for part in self.path:
            out += f"[{part}]" if isinstance(part, int) else (f".{part}" if out else part)
        return out

    @property
    def assessment_index(self) -> Optional[int]:
        if len(self.path) >= 2 and self.path[0] == "riskAssessments" and isinstance(self.path[1], int):
            return self.path[1]
        return None


def as_number(value: Any) -> Optional[float]:
    """Numeric value as a float; bools, NaN and everything else are None.

    Integers too large for a float become +/-inf so callers clamp them to a bound.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        try:
            return float(value)
        except OverflowError:
            return math.inf if value > 0 else -math.inf
    if isinstance(value, float):
        return None if math.isnan(value) else value
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return None if math.isnan(number) else number
    return None


def in_range(value: Any) -> bool:
    number = as_number(value)
    return number is not None and not isinstance(value, str) and 0 <= number <= 100


def clamped_or(value: Any, default: int) -> int:
    number = as_number(value)
    return default if number is None else clamp_score(number)


def _level_value(obj: Dict) -> Any:
    for key in LEVEL_KEYS:
        if key in obj:
            return obj[key]
    return None


def _non_empty(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _level_consistent(obj: Dict, score_key: str) -> bool:
    level = RiskLevel.parse(_level_value(obj))
    score = as_number(obj.get(score_key))
    if level is None or score is None:
        return True
    return level is level_for_score(clamp_score(score))


def _positions_ok(item: Dict, ctx: ValidationContext) -> bool:
    start, end = item.get("startPosition"), item.get("endPosition")
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in (start, end)):
        return False
    return 0 <= start <= end <= ctx.original_text_length


def _top_level_fix(obj: Dict, ctx: ValidationContext) -> str:
    if _level_value(obj) is None:
        return level_for_score(clamped_or(obj.get("overallRiskScore"), 0)).value
    return FALLBACK_LEVEL.value


def _derived_level(score_key: str):
    def fix(obj: Dict, ctx: ValidationContext) -> str:
        return level_for_score(clamped_or(obj.get(score_key), 0)).value
    return fix


DEFAULT_RULES = (
    ValidationRule(
        id="overall_score_range", category="range", severity="error", field="overallRiskScore",
        message="overallRiskScore must be a number between 0 and 100",
        check=lambda obj, ctx: in_range(obj.get("overallRiskScore")),
        suggested_fix=lambda obj, ctx: clamped_or(obj.get("overallRiskScore"), 0),
    ),
    ValidationRule(
        id="overall_confidence_range", category="range", severity="error", field="confidenceScore",
        message="confidenceScore must be a number between 0 and 100",
        check=lambda obj, ctx: in_range(obj.get("confidenceScore")),
        suggested_fix=lambda obj, ctx: clamped_or(obj.get("confidenceScore"), 0),
    ),
    ValidationRule(
        id="overall_level_enum", category="enum", severity="error", field="riskLevel",
        message="riskLevel must be one of: low, medium, high, critical",
        check=lambda obj, ctx: RiskLevel.parse(_level_value(obj)) is not None,
        suggested_fix=_top_level_fix,
    ),
    ValidationRule(
        id="overall_level_consistency", category="consistency", severity="warning", field="riskLevel",
        message="riskLevel does not match overallRiskScore",
        check=lambda obj, ctx: _level_consistent(obj, "overallRiskScore"),
        suggested_fix=_derived_level("overallRiskScore"),
    ),
    ValidationRule(
        id="assessments_array", category="shape", severity="error", field="riskAssessments",
        message="riskAssessments must be an array",
        check=lambda obj, ctx: isinstance(obj.get("riskAssessments"), list),
        suggested_fix=lambda obj, ctx: [],
    ),
    ValidationRule(
        id="assessment_objects", category="shape", severity="error", field="riskAssessments",
        message="every riskAssessments entry must be an object",
        check=lambda obj, ctx: all(isinstance(a, dict) for a in obj.get("riskAssessments") or []),
    ),
    ValidationRule(
        id="assessment_category", category="required", severity="error", field="category", scope="assessment",
        message="category must be a non-empty string",
        check=lambda a, ctx: _non_empty(a.get("category")),
        suggested_fix="general",
    ),
    ValidationRule(
        id="assessment_level_enum", category="enum", severity="error", field="riskLevel", scope="assessment",
        message="riskLevel must be one of: low, medium, high, critical",
        check=lambda a, ctx: RiskLevel.parse(a.get("riskLevel")) is not None,
        suggested_fix=_derived_level("riskScore"),
    ),
    ValidationRule(
        id="assessment_score_range", category="range", severity="error", field="riskScore", scope="assessment",
        message="riskScore must be a number between 0 and 100",
        check=lambda a, ctx: in_range(a.get("riskScore")),
    ),
    ValidationRule(
        id="assessment_confidence_range", category="range", severity="error", field="confidenceScore",
        scope="assessment", message="confidenceScore must be a number between 0 and 100",
        check=lambda a, ctx: in_range(a.get("confidenceScore")),
    ),
    ValidationRule(
        id="assessment_summary", category="required", severity="warning", field="summary", scope="assessment",
        message="summary must be a non-empty string",
        check=lambda a, ctx: _non_empty(a.get("summary")),
    ),
    ValidationRule(
        id="assessment_rationale", category="required", severity="warning", field="rationale", scope="assessment",
        message="rationale must be a non-empty string",
        check=lambda a, ctx: _non_empty(a.get("rationale")),
    ),
    ValidationRule(
        id="assessment_positions", category="range", severity="warning", field="startPosition", scope="assessment",
        message="positions must satisfy 0 <= startPosition <= endPosition <= text length",
        check=_positions_ok,
    ),
    ValidationRule(
        id="assessment_level_consistency", category="consistency", severity="warning", field="riskLevel",
        scope="assessment", message="riskLevel does not match riskScore",
        check=lambda a, ctx: _level_consistent(a, "riskScore"),
        suggested_fix=_derived_level("riskScore"),
    ),
)


class RuleRegistry:
    def __init__(self, rules: Iterable[ValidationRule] = DEFAULT_RULES):
        self._lock = threading.Lock()
        self._rules: Dict[str, ValidationRule] = {}
        for rule in rules:
            self.add_rule(rule)

    def add_rule(self, rule: ValidationRule) -> None:
        if rule.severity not in SEVERITIES:
            raise ValueError(f"Unknown severity: {rule.severity}")
        if rule.scope not in ("response", "assessment"):
            raise ValueError(f"Unknown scope: {rule.scope}")
        with self._lock:
            self._rules[rule.id] = rule

    def update_rule(self, rule_id: str, **changes) -> bool:
        with self._lock:
            existing = self._rules.get(rule_id)
            if existing is None:
                return False
            self._rules[rule_id] = dataclasses.replace(existing, **changes)
            return True

    def remove_rule(self, rule_id: str) -> bool:
        with self._lock:
            return self._rules.pop(rule_id, None) is not None

    def get_rule(self, rule_id: str) -> Optional[ValidationRule]:
        with self._lock:
            return self._rules.get(rule_id)

    def list_rules(self) -> List[ValidationRule]:
        with self._lock:
            return list(self._rules.values())

    def validate(self, candidate: Dict, ctx: ValidationContext) -> List[Issue]:
        rules = self.list_rules()
        issues: List[Issue] = []
        for rule in rules:
            if rule.scope == "response":
                issues.extend(self._run(rule, candidate, ctx, ()))
        items = candidate.get("riskAssessments")
        if isinstance(items, list):
            for idx, item in enumerate(items):
                if not isinstance(item, dict):
                    continue
                for rule in rules:
                    if rule.scope == "assessment":
                        issues.extend(self._run(rule, item, ctx, ("riskAssessments", idx)))
        return issues

    @staticmethod
    def _run(rule: ValidationRule, obj: Dict, ctx: ValidationContext, prefix: Tuple) -> List[Issue]:
        try:
            ok = bool(rule.check(obj, ctx))
        except (TypeError, ValueError, KeyError, AttributeError, OverflowError):
            ok = False
        if ok:
            return []
        fix = rule.suggested_fix(obj, ctx) if callable(rule.suggested_fix) else rule.suggested_fix
        path = prefix + ((rule.field,) if rule.field else ())
        return [Issue(rule_id=rule.id, severity=rule.severity, message=rule.message, path=path, suggested_fix=fix)]
