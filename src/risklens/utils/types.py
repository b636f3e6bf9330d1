from __future__ import annotations
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def parse(cls, value: Any) -> Optional["RiskLevel"]:
        if isinstance(value, RiskLevel):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class Provenance(str, Enum):
    PATTERN_MATCHING = "pattern_matching"
    AI_ANALYSIS = "ai_analysis"
    HYBRID = "hybrid"


class FinishReason(str, Enum):
    STOP = "stop"
    LENGTH = "length"
    SAFETY = "safety"
    RECITATION = "recitation"


RISK_LEVEL_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]

# score assumed for a finding that only carries a level
LEVEL_SCORES = {RiskLevel.CRITICAL: 90, RiskLevel.HIGH: 70, RiskLevel.MEDIUM: 50, RiskLevel.LOW: 30}


def level_for_score(score: float) -> RiskLevel:
    if score >= 80:
        return RiskLevel.CRITICAL
    if score >= 60:
        return RiskLevel.HIGH
    if score >= 40:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def clamp_score(value: float) -> int:
    return int(round(max(0, min(100, value))))


_NON_SLUG_RE = re.compile(r"[^a-z0-9\s-]")
_DASHES_RE = re.compile(r"[\s-]+")


def kebab_case(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    slug = _NON_SLUG_RE.sub("", value.strip().lower().replace("_", " "))
    return _DASHES_RE.sub("-", slug).strip("-")


@dataclass(frozen=True)
class ClausePattern:
    id: str
    category: str
    name: str
    risk_level: RiskLevel
    triggers: tuple
    keywords: tuple = ()
    weight: float = 0.5
    description: str = ""
    enabled: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "name": self.name,
            "description": self.description,
            "riskLevel": self.risk_level.value,
            "triggers": list(self.triggers),
            "keywords": list(self.keywords),
            "weight": self.weight,
            "enabled": self.enabled,
        }


@dataclass
class PatternMatch:
    pattern_id: str
    category: str
    risk_level: RiskLevel
    confidence: int
    start_position: int
    end_position: int
    matched_text: str
    matched_keywords: List[str] = field(default_factory=list)
    context: str = ""


@dataclass
class PromptMetadata:
    template_id: str
    template_name: str
    generated_at: str
    context_hash: str


@dataclass
class AnalysisPrompt:
    system_prompt: str
    user_prompt: str
    context: Optional[str] = None
    patterns: List[ClausePattern] = field(default_factory=list)
    metadata: Optional[PromptMetadata] = None

    def as_text(self) -> str:
        parts = [self.system_prompt]
        if self.context:
            parts.append(f"CONTEXT: {self.context}")
        parts.append(self.user_prompt)
        return "\n\n".join(p.strip() for p in parts if p and p.strip())


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass
class RawModelResponse:
    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: FinishReason = FinishReason.STOP


@dataclass
class RiskAssessment:
    category: str
    risk_level: RiskLevel
    risk_score: int
    confidence_score: int
    summary: str
    rationale: str
    start_position: int
    end_position: int
    source: Provenance = Provenance.AI_ANALYSIS
    suggested_action: Optional[str] = None
    validation_flags: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        out = {
            "category": self.category,
            "riskLevel": self.risk_level.value,
            "riskScore": self.risk_score,
            "confidenceScore": self.confidence_score,
            "summary": self.summary,
            "rationale": self.rationale,
            "startPosition": self.start_position,
            "endPosition": self.end_position,
            "source": self.source.value,
        }
        if self.suggested_action:
            out["suggestedAction"] = self.suggested_action
        if self.validation_flags:
            out["validationFlags"] = list(self.validation_flags)
        return out


@dataclass
class ParsedAnalysis:
    """Sanitised model verdict: aggregate fields plus per-clause assessments."""
    overall_risk_score: int
    risk_level: RiskLevel
    confidence_score: int
    risk_assessments: List[RiskAssessment] = field(default_factory=list)


@dataclass
class CategoryStat:
    category: str
    count: int
    average_risk: int
    source: str


@dataclass
class AnalysisSummary:
    total_risks: int = 0
    risk_breakdown: Dict[str, int] = field(default_factory=lambda: {lvl.value: 0 for lvl in reversed(RISK_LEVEL_ORDER)})
    top_categories: List[CategoryStat] = field(default_factory=list)
    analysis_limitations: List[str] = field(default_factory=list)
    recommended_actions: List[str] = field(default_factory=list)
    quality_metrics: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "totalRisks": self.total_risks,
            "riskBreakdown": dict(self.risk_breakdown),
            "topCategories": [
                {"category": c.category, "count": c.count, "averageRisk": c.average_risk, "source": c.source}
                for c in self.top_categories
            ],
            "analysisLimitations": list(self.analysis_limitations),
            "recommendedActions": list(self.recommended_actions),
            "qualityMetrics": dict(self.quality_metrics),
        }


@dataclass
class StepResult:
    step_name: str
    success: bool
    duration_ms: int
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "stepName": self.step_name,
            "success": self.success,
            "duration": self.duration_ms,
            "error": self.error,
            "warnings": list(self.warnings),
        }


@dataclass
class AnalysisResult:
    overall_risk_score: int
    risk_level: RiskLevel
    confidence_score: int
    risk_assessments: List[RiskAssessment] = field(default_factory=list)
    summary: AnalysisSummary = field(default_factory=AnalysisSummary)
    steps: List[StepResult] = field(default_factory=list)
    processing_time_ms: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "overallRiskScore": self.overall_risk_score,
            "riskLevel": self.risk_level.value,
            "confidenceScore": self.confidence_score,
            "riskAssessments": [r.as_dict() for r in self.risk_assessments],
            "summary": self.summary.as_dict(),
            "steps": [s.as_dict() for s in self.steps],
            "processingTimeMs": self.processing_time_ms,
            "metadata": dict(self.metadata),
        }


@dataclass
class AnalysisOptions:
    enable_pattern_matching: Optional[bool] = None
    enable_ai_analysis: Optional[bool] = None
    strict_validation: Optional[bool] = None
    include_raw_response: bool = False
    max_retries: Optional[int] = None
    timeout_ms: Optional[int] = None
    template_id: Optional[str] = None
    document_type: Optional[str] = None
    industry: Optional[str] = None
    analysis_depth: Optional[str] = None
    custom_patterns: List[ClausePattern] = field(default_factory=list)


@dataclass
class AnalysisInput:
    sanitized_text: str
    content_hash: str
    content_length: int
    options: AnalysisOptions = field(default_factory=AnalysisOptions)


Severity = str  # "error" | "warning" | "info"


@dataclass(frozen=True)
class ValidationRule:
    id: str
    category: str
    severity: Severity
    message: str
    check: Callable[[Dict[str, Any], Any], bool]
    field: Optional[str] = None
    scope: str = "response"  # "response" | "assessment"
    suggested_fix: Any = None
