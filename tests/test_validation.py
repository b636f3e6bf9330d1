from risklens.analysis.validation import RuleRegistry, ValidationContext
from risklens.utils.types import ValidationRule


def good_payload():
    return {
        "overallRiskScore": 65,
        "riskLevel": "high",
        "confidenceScore": 80,
        "riskAssessments": [{
            "category": "data-sharing",
            "riskLevel": "medium",
            "riskScore": 45,
            "confidenceScore": 70,
            "summary": "Shares data",
            "rationale": "Data goes to partners.",
            "startPosition": 0,
            "endPosition": 10,
        }],
    }


CTX = ValidationContext(original_text_length=100)


def test_clean_payload_has_no_issues():
    assert RuleRegistry().validate(good_payload(), CTX) == []


def test_out_of_range_and_bad_enum():
    payload = {"overallRiskScore": 150, "riskLevel": "extreme", "confidenceScore": -5, "riskAssessments": []}
    issues = {i.rule_id: i for i in RuleRegistry().validate(payload, CTX)}
    assert set(issues) == {"overall_score_range", "overall_confidence_range", "overall_level_enum"}
    assert issues["overall_score_range"].suggested_fix == 100
    assert issues["overall_confidence_range"].suggested_fix == 0
    assert issues["overall_level_enum"].suggested_fix == "medium"
    assert all(i.severity == "error" for i in issues.values())


def test_level_score_mismatch_is_a_warning():
    payload = good_payload()
    payload["riskLevel"] = "low"
    issues = RuleRegistry().validate(payload, CTX)
    assert [(i.rule_id, i.severity, i.suggested_fix) for i in issues] == [
        ("overall_level_consistency", "warning", "high")
    ]


def test_boundary_scores_map_to_levels():
    registry = RuleRegistry()
    for score, level in ((39, "low"), (40, "medium"), (59, "medium"), (60, "high"), (79, "high"), (80, "critical")):
        payload = good_payload()
        payload.update(overallRiskScore=score, riskLevel=level)
        assert registry.validate(payload, CTX) == [], (score, level)


def test_assessment_issues_carry_paths():
    payload = good_payload()
    item = payload["riskAssessments"][0]
    item.update(riskScore="lots", endPosition=500, summary="")
    fields = {i.field for i in RuleRegistry().validate(payload, CTX)}
    assert "riskAssessments[0].riskScore" in fields
    assert "riskAssessments[0].startPosition" in fields
    assert "riskAssessments[0].summary" in fields


def test_non_array_assessments():
    payload = good_payload()
    payload["riskAssessments"] = "none"
    issues = RuleRegistry().validate(payload, CTX)
    assert any(i.rule_id == "assessments_array" and i.suggested_fix == [] for i in issues)


def test_custom_rule_and_removal():
    registry = RuleRegistry()
    registry.add_rule(ValidationRule(
        id="needs_three", category="custom", severity="info", message="want three risks",
        check=lambda obj, ctx: len(obj.get("riskAssessments", [])) >= 3,
    ))
    assert [i.rule_id for i in registry.validate(good_payload(), CTX)] == ["needs_three"]
    assert registry.remove_rule("needs_three")
    assert registry.validate(good_payload(), CTX) == []


def test_predicate_errors_count_as_failures():
    registry = RuleRegistry([ValidationRule(
        id="explodes", category="custom", severity="warning", message="bad", check=lambda obj, ctx: obj["missing"],
    )])
    assert [i.rule_id for i in registry.validate({}, CTX)] == ["explodes"]
