import hashlib
import json

from risklens.llm.invoker import ModelInvoker
from risklens.pipeline.orchestrator import AnalysisPipeline
from risklens.utils.config import AppConfig
from risklens.utils.types import AnalysisInput, AnalysisOptions, Provenance, RawModelResponse, RiskLevel, level_for_score

TEXT = (
    "Welcome. We reserve the right to terminate your account at any time without notice. "
    "You agree that all disputes will be settled by binding arbitration."
)


class StubClient:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = 0

    def generate(self, prompt: str) -> RawModelResponse:
        self.calls += 1
        if self.error:
            raise self.error
        return RawModelResponse(text=self.text)


def model_reply(**item):
    entry = {
        "category": "dispute-resolution", "riskLevel": "high", "riskScore": 65, "confidenceScore": 70,
        "summary": "Mandatory arbitration", "rationale": "Users give up court access.",
        "startPosition": TEXT.index("You agree"), "endPosition": len(TEXT),
    }
    entry.update(item)
    return json.dumps({"overallRiskScore": 65, "riskLevel": "high", "confidenceScore": 70, "riskAssessments": [entry]})


def make_input(text=TEXT, **options):
    return AnalysisInput(
        sanitized_text=text,
        content_hash=hashlib.sha256(text.encode("utf-8")).hexdigest(),
        content_length=len(text),
        options=AnalysisOptions(**options),
    )


def pipeline(client=None, **config):
    invoker = ModelInvoker(client, sleep=lambda s: None) if client else None
    return AnalysisPipeline(AppConfig(**config), invoker=invoker)


def check_invariants(result, length):
    assert isinstance(result.risk_assessments, list)
    assert 0 <= result.overall_risk_score <= 100
    assert 0 <= result.confidence_score <= 100
    assert result.risk_level is level_for_score(result.overall_risk_score)
    for a in result.risk_assessments:
        assert 0 <= a.risk_score <= 100 and 0 <= a.confidence_score <= 100
        assert a.risk_level is level_for_score(a.risk_score)
        assert 0 <= a.start_position <= a.end_position <= length
        assert a.category == a.category.lower() and " " not in a.category


def test_empty_input_returns_zero_risk_result():
    result = pipeline(StubClient(model_reply())).analyze(make_input(""))
    assert result.overall_risk_score == 0
    assert result.risk_level is RiskLevel.LOW
    assert result.confidence_score == 0
    assert result.risk_assessments == []
    assert any("Content is required" in s for s in result.summary.analysis_limitations)
    assert [s.step_name for s in result.steps] == ["validate_input"]


def test_bad_hash_and_oversize_rejected():
    bad_hash = make_input()
    bad_hash.content_hash = "abc"
    result = pipeline(StubClient(model_reply())).analyze(bad_hash)
    assert "content hash" in result.summary.analysis_limitations[0]

    too_long = pipeline(StubClient(model_reply()), max_content_length=10).analyze(make_input())
    assert "maximum length" in too_long.summary.analysis_limitations[0]


def test_full_run_merges_pattern_and_model_results():
    client = StubClient(model_reply())
    result = pipeline(client).analyze(make_input())
    check_invariants(result, len(TEXT))
    assert client.calls == 1
    assert [s.step_name for s in result.steps] == [
        "validate_input", "pattern_matching", "build_prompt", "ai_analysis", "merge_results",
    ]
    assert all(s.success for s in result.steps)
    sources = {a.source for a in result.risk_assessments}
    assert Provenance.PATTERN_MATCHING in sources
    assert Provenance.HYBRID in sources
    scores = [a.risk_score for a in result.risk_assessments]
    assert result.overall_risk_score == round(sum(scores) / len(scores))
    assert "Consider negotiating high-risk terms before acceptance" in result.summary.recommended_actions
    assert result.metadata["contentLength"] == len(TEXT)


def test_pattern_scores_come_from_level_table():
    result = pipeline(enable_ai_analysis=False).analyze(make_input())
    termination = [a for a in result.risk_assessments if a.category == "account-termination"]
    assert termination and termination[0].risk_score == 70
    assert all(a.source is Provenance.PATTERN_MATCHING for a in result.risk_assessments)


def test_model_failure_degrades_to_fallback():
    client = StubClient(error=RuntimeError("service down"))
    result = pipeline(client).analyze(make_input(max_retries=2))
    check_invariants(result, len(TEXT))
    assert client.calls == 2
    failed = [s for s in result.steps if not s.success]
    assert [s.step_name for s in failed] == ["ai_analysis"]
    limitations = result.summary.analysis_limitations
    assert any(l.startswith("ai_analysis failed:") for l in limitations)
    assert any("fallback" in a.validation_flags for a in result.risk_assessments)
    assert "Manual review recommended due to analysis limitations" in result.summary.recommended_actions
    fallback = [a for a in result.risk_assessments if "fallback" in a.validation_flags]
    assert [a.source for a in fallback] == [Provenance.AI_ANALYSIS]
    assert result.summary.quality_metrics["fallbackUsed"] is True


def test_confidence_weighted_by_step_success():
    ok = pipeline(StubClient(model_reply())).analyze(make_input())
    broken = pipeline(StubClient("no json here at all")).analyze(make_input())
    mean = sum(a.confidence_score for a in broken.risk_assessments) / len(broken.risk_assessments)
    assert broken.confidence_score == round(mean * (4 / 5))
    assert ok.confidence_score > 0


def test_unknown_template_fails_step_not_run():
    result = pipeline(StubClient(model_reply())).analyze(make_input(template_id="missing"))
    check_invariants(result, len(TEXT))
    step = next(s for s in result.steps if s.step_name == "build_prompt")
    assert not step.success
    assert "missing" in step.error
    assert result.summary.quality_metrics["fallbackUsed"] is True


def test_top_categories_limited_and_ordered():
    result = pipeline(StubClient(model_reply())).analyze(make_input())
    top = result.summary.top_categories
    assert len(top) <= 5
    assert [(-c.count, -c.average_risk) for c in top] == sorted((-c.count, -c.average_risk) for c in top)
    breakdown = result.summary.risk_breakdown
    assert sum(breakdown.values()) == result.summary.total_risks == len(result.risk_assessments)


def test_raw_response_kept_on_request():
    result = pipeline(StubClient(model_reply())).analyze(make_input(include_raw_response=True))
    assert result.metadata["rawResponse"].startswith("{")


def test_result_serializes_with_wire_names():
    out = pipeline(StubClient(model_reply())).analyze(make_input()).as_dict()
    assert {"overallRiskScore", "riskLevel", "confidenceScore", "riskAssessments", "summary", "steps"} <= set(out)
    assert out["riskAssessments"][0]["source"] in {"pattern_matching", "ai_analysis", "hybrid"}


def test_positions_bounded_by_shorter_declared_length():
    declared = TEXT.index("You agree")
    inp = make_input()
    inp.content_length = declared
    result = pipeline(StubClient(model_reply())).analyze(inp)
    check_invariants(result, declared)
    validate = next(s for s in result.steps if s.step_name == "validate_input")
    assert any("differs" in w for w in validate.warnings)
    model = [a for a in result.risk_assessments if a.source is not Provenance.PATTERN_MATCHING]
    assert [(a.start_position, a.end_position) for a in model] == [(declared, declared)]
