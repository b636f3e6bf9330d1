"""Runs one document through pattern matching, prompting, model analysis and merging.

Every step after input validation may fail on its own; failures are folded into
step diagnostics, limitations and a lower confidence instead of being raised.
"""
from __future__ import annotations
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from risklens.analysis.parser import DEFAULT_ACTIONS, GENERIC_ACTION, ResponseParser, truncate, MAX_SUMMARY_CHARS
from risklens.analysis.patterns import PatternMatcher
from risklens.analysis.validation import ValidationContext
from risklens.llm.fallback import fallback_result
from risklens.llm.invoker import CancellationToken, ModelInvoker
from risklens.prompts.builder import STANDARD_TEMPLATE_ID, PromptBuilder
from risklens.utils.config import AppConfig
from risklens.utils.errors import InputValidationError, ModelInvocationError
from risklens.utils.types import (
    LEVEL_SCORES,
    RISK_LEVEL_ORDER,
    AnalysisInput,
    AnalysisPrompt,
    AnalysisResult,
    AnalysisSummary,
    CategoryStat,
    ParsedAnalysis,
    PatternMatch,
    Provenance,
    RiskAssessment,
    RiskLevel,
    StepResult,
    TokenUsage,
    level_for_score,
)

logger = logging.getLogger(__name__)

MODULE_VERSION = "1.0.0"
CONTENT_HASH_RE = re.compile(r"^[0-9a-fA-F]{64}$")
TOP_CATEGORY_COUNT = 5

STEP_VALIDATE = "validate_input"
STEP_PATTERNS = "pattern_matching"
STEP_PROMPT = "build_prompt"
STEP_MODEL = "ai_analysis"
STEP_MERGE = "merge_results"

ACTION_CRITICAL = "Review critical risk clauses immediately with legal counsel"
ACTION_HIGH = "Consider negotiating high-risk terms before acceptance"
ACTION_MANUAL = "Manual review recommended due to analysis limitations"


def _pick(option: Optional[Any], default: Any) -> Any:
    return default if option is None else option


def _overlaps(a: RiskAssessment, m: PatternMatch) -> bool:
    return a.start_position < m.end_position and m.start_position < a.end_position


def position_bound(inp: AnalysisInput) -> int:
    """Upper bound for positions: the shorter of the real text and the declared content length."""
    actual = len(inp.sanitized_text) if isinstance(inp.sanitized_text, str) else 0
    declared = inp.content_length
    if isinstance(declared, int) and not isinstance(declared, bool):
        return max(0, min(actual, declared))
    return actual


class AnalysisPipeline:
    def __init__(
        self,
        config: AppConfig,
        matcher: Optional[PatternMatcher] = None,
        builder: Optional[PromptBuilder] = None,
        invoker: Optional[ModelInvoker] = None,
        parser: Optional[ResponseParser] = None,
    ):
        self.config = config
        self.matcher = matcher or PatternMatcher()
        self.builder = builder or PromptBuilder(max_prompt_chars=config.max_prompt_chars)
        self.invoker = invoker
        self.parser = parser or ResponseParser()

    def _get_invoker(self) -> ModelInvoker:
        if self.invoker is None:
            if not self.config.use_gemini:
                raise ModelInvocationError("error", "Model provider disabled (USE_GEMINI=false)")
            from risklens.llm.gemini import GeminiClient

            self.invoker = ModelInvoker(GeminiClient(self.config))
        return self.invoker

    def _run_step(self, name: str, steps: List[StepResult], fn: Callable[[List[str]], Any]) -> Tuple[bool, Any]:
        warnings: List[str] = []
        t0 = time.perf_counter()
        try:
            value = fn(warnings)
            ok, error = True, None
        except Exception as e:
            value, ok, error = None, False, str(e) or type(e).__name__
            logger.warning("Step %s failed: %s", name, error)
        duration = int((time.perf_counter() - t0) * 1000)
        steps.append(StepResult(step_name=name, success=ok, duration_ms=duration, error=error, warnings=warnings))
        logger.debug("Step %s finished in %dms (success=%s)", name, duration, ok)
        return ok, value

    def analyze(self, inp: AnalysisInput, cancel: Optional[CancellationToken] = None) -> AnalysisResult:
        started = time.perf_counter()
        steps: List[StepResult] = []
        opts = inp.options
        text = inp.sanitized_text if isinstance(inp.sanitized_text, str) else ""

        ok, _ = self._run_step(STEP_VALIDATE, steps, lambda w: self._validate(inp, w))
        if not ok:
            return self._rejected(inp, steps, started)
        bound = position_bound(inp)

        use_patterns = _pick(opts.enable_pattern_matching, self.config.enable_pattern_matching)
        use_model = _pick(opts.enable_ai_analysis, self.config.enable_ai_analysis)
        matches: List[PatternMatch] = []
        if use_patterns:
            ok, found = self._run_step(STEP_PATTERNS, steps, lambda w: self._scan(text, opts.custom_patterns))
            matches = found or []

        model_state: Dict[str, Any] = {"fallback": False, "raw": None, "usage": TokenUsage(), "attempts": 0}
        parsed: Optional[ParsedAnalysis] = None
        if use_model:
            ok, prompt = self._run_step(STEP_PROMPT, steps, lambda w: self._build_prompt(inp, matches))
            if ok:
                ok, parsed = self._run_step(
                    STEP_MODEL, steps, lambda w: self._model_analysis(prompt, inp, cancel, model_state, w)
                )
            if not ok:
                source = model_state["raw"] or text
                parsed = fallback_result(source, bound)
                model_state["fallback"] = True

        ok, assessments = self._run_step(
            STEP_MERGE, steps, lambda w: self._merge(matches, parsed.risk_assessments if parsed else [], bound)
        )
        assessments = assessments or []
        return self._finish(inp, assessments, parsed, matches, steps, model_state, use_model, started)

    # steps
    def _validate(self, inp: AnalysisInput, warnings: List[str]) -> None:
        text = inp.sanitized_text
        if not isinstance(text, str) or not text.strip():
            raise InputValidationError("Content is required for analysis")
        if not isinstance(inp.content_hash, str) or not CONTENT_HASH_RE.match(inp.content_hash):
            raise InputValidationError("Valid content hash is required (64 hexadecimal characters)")
        if len(text) > self.config.max_content_length:
            raise InputValidationError(
                f"Content exceeds maximum length of {self.config.max_content_length} characters"
            )
        if inp.content_length != len(text):
            logger.warning("Declared content length %d differs from actual %d", inp.content_length, len(text))
            warnings.append(f"Declared content length {inp.content_length} differs from actual {len(text)}")

    def _scan(self, text: str, custom) -> List[PatternMatch]:
        if custom:
            return PatternMatcher(self.matcher.list_rules() + list(custom)).scan(text)
        return self.matcher.scan(text)

    def _build_prompt(self, inp: AnalysisInput, matches: List[PatternMatch]) -> AnalysisPrompt:
        opts = inp.options
        context = {
            "document_type": opts.document_type,
            "industry": opts.industry,
            "analysis_depth": opts.analysis_depth,
        }
        context = {k: v for k, v in context.items() if v}
        template_id = opts.template_id or self.config.default_template_id
        if template_id == STANDARD_TEMPLATE_ID:
            return self.builder.build(inp.sanitized_text, matches, opts.document_type, context)
        return self.builder.build_from_template(template_id, inp.sanitized_text, matches, context)

    def _model_analysis(
        self,
        prompt: AnalysisPrompt,
        inp: AnalysisInput,
        cancel: Optional[CancellationToken],
        state: Dict[str, Any],
        warnings: List[str],
    ) -> ParsedAnalysis:
        opts = inp.options
        envelope = self._get_invoker().invoke(
            prompt,
            max_retries=_pick(opts.max_retries, self.config.max_retries),
            timeout_ms=_pick(opts.timeout_ms, self.config.timeout_ms),
            cancel=cancel,
        )
        state["attempts"] = envelope.attempts
        if not envelope.success:
            err = envelope.error
            raise ModelInvocationError(err.code, err.message, err.attempts)
        state["raw"] = envelope.result.text
        state["usage"] = envelope.usage

        strict = _pick(opts.strict_validation, self.config.strict_validation)
        ctx = ValidationContext(original_text_length=position_bound(inp), strict_mode=strict)
        parsed = self.parser.parse(envelope.result, ctx, strict_mode=strict, preserve_raw=opts.include_raw_response)
        warnings.extend(parsed.warnings)
        state["strategy"] = parsed.strategy
        state["issues"] = len(parsed.issues)
        if not parsed.success:
            raise parsed.error
        return parsed.result

    def _merge(
        self, matches: List[PatternMatch], model_items: List[RiskAssessment], bound: int
    ) -> List[RiskAssessment]:
        merged = [self._from_match(m, bound) for m in matches]
        for item in model_items:
            # keyword-screen fallback entries are never corroborated by a pattern
            if "fallback" in item.validation_flags:
                merged.append(item)
                continue
            if item.source is Provenance.AI_ANALYSIS and any(_overlaps(item, m) for m in matches):
                item.source = Provenance.HYBRID
            merged.append(item)
        return merged

    def _from_match(self, m: PatternMatch, bound: int) -> RiskAssessment:
        rule = self.matcher.get_rule(m.pattern_id)
        name = rule.name if rule else m.category.replace("-", " ")
        score = LEVEL_SCORES[m.risk_level]
        keywords = ", ".join(m.matched_keywords) or "none"
        return RiskAssessment(
            category=m.category,
            risk_level=level_for_score(score),
            risk_score=score,
            confidence_score=m.confidence,
            summary=truncate(f"{name} detected", MAX_SUMMARY_CHARS),
            rationale=f'Pattern {m.pattern_id} matched "{m.matched_text}". Matched keywords: {keywords}',
            suggested_action=DEFAULT_ACTIONS.get(m.category, GENERIC_ACTION),
            start_position=min(m.start_position, bound),
            end_position=min(m.end_position, bound),
            source=Provenance.PATTERN_MATCHING,
        )

    # result assembly
    def _finish(
        self,
        inp: AnalysisInput,
        assessments: List[RiskAssessment],
        parsed: Optional[ParsedAnalysis],
        matches: List[PatternMatch],
        steps: List[StepResult],
        state: Dict[str, Any],
        use_model: bool,
        started: float,
    ) -> AnalysisResult:
        succeeded = sum(1 for s in steps if s.success)
        step_ratio = succeeded / len(steps) if steps else 0.0
        if assessments:
            score = round(sum(a.risk_score for a in assessments) / len(assessments))
            base_confidence = sum(a.confidence_score for a in assessments) / len(assessments)
        else:
            score = 0
            base_confidence = parsed.confidence_score if parsed is not None else 0
        confidence = round(base_confidence * step_ratio)

        limitations = [f"{s.step_name} failed: {s.error}" for s in steps if not s.success]
        if state["fallback"]:
            limitations.append("AI analysis unavailable; fallback keyword screening used")
        if not use_model:
            limitations.append("AI analysis disabled; results are based on pattern matching only")

        summary = AnalysisSummary(
            total_risks=len(assessments),
            risk_breakdown=self._breakdown(assessments),
            top_categories=self._top_categories(assessments),
            analysis_limitations=limitations,
            recommended_actions=self._actions(assessments, limitations),
            quality_metrics={
                "patternMatches": len(matches),
                "modelAssessments": len(parsed.risk_assessments) if parsed else 0,
                "successfulSteps": succeeded,
                "totalSteps": len(steps),
                "fallbackUsed": state["fallback"],
                "modelAttempts": state["attempts"],
                "extractionStrategy": state.get("strategy"),
                "validationIssues": state.get("issues", 0),
                "tokenUsage": state["usage"].as_dict(),
            },
        )
        metadata = self._metadata(inp)
        if inp.options.include_raw_response and state["raw"] is not None:
            metadata["rawResponse"] = state["raw"]
        result = AnalysisResult(
            overall_risk_score=score,
            risk_level=level_for_score(score),
            confidence_score=max(0, min(100, confidence)),
            risk_assessments=assessments,
            summary=summary,
            steps=steps,
            processing_time_ms=int((time.perf_counter() - started) * 1000),
            metadata=metadata,
        )
        logger.info(
            "Analysis finished: score=%d level=%s risks=%d steps=%d/%d",
            result.overall_risk_score, result.risk_level.value, len(assessments), succeeded, len(steps),
        )
        return result

    def _rejected(self, inp: AnalysisInput, steps: List[StepResult], started: float) -> AnalysisResult:
        message = steps[-1].error or "Input validation failed"
        return AnalysisResult(
            overall_risk_score=0,
            risk_level=RiskLevel.LOW,
            confidence_score=0,
            risk_assessments=[],
            summary=AnalysisSummary(analysis_limitations=[message], recommended_actions=[ACTION_MANUAL]),
            steps=steps,
            processing_time_ms=int((time.perf_counter() - started) * 1000),
            metadata=self._metadata(inp),
        )

    def _metadata(self, inp: AnalysisInput) -> Dict[str, Any]:
        return {
            "contentHash": inp.content_hash,
            "contentLength": inp.content_length,
            "analyzedAt": datetime.now(timezone.utc).isoformat(),
            "moduleVersion": MODULE_VERSION,
            "model": self.config.model_name,
        }

    @staticmethod
    def _breakdown(assessments: List[RiskAssessment]) -> Dict[str, int]:
        counts = {lvl.value: 0 for lvl in reversed(RISK_LEVEL_ORDER)}
        for a in assessments:
            counts[a.risk_level.value] += 1
        return counts

    @staticmethod
    def _top_categories(assessments: List[RiskAssessment]) -> List[CategoryStat]:
        groups: Dict[str, List[RiskAssessment]] = {}
        for a in assessments:
            groups.setdefault(a.category, []).append(a)
        stats = []
        for category, items in groups.items():
            sources = {a.source.value for a in items}
            stats.append(CategoryStat(
                category=category,
                count=len(items),
                average_risk=round(sum(a.risk_score for a in items) / len(items)),
                source=sources.pop() if len(sources) == 1 else "mixed",
            ))
        stats.sort(key=lambda s: (-s.count, -s.average_risk, s.category))
        return stats[:TOP_CATEGORY_COUNT]

    @staticmethod
    def _actions(assessments: List[RiskAssessment], limitations: List[str]) -> List[str]:
        actions = []
        levels = {a.risk_level for a in assessments}
        if RiskLevel.CRITICAL in levels:
            actions.append(ACTION_CRITICAL)
        if RiskLevel.HIGH in levels:
            actions.append(ACTION_HIGH)
        if limitations:
            actions.append(ACTION_MANUAL)
        return actions
