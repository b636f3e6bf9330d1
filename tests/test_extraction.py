from risklens.analysis.extraction import (
    KEY_VALUE_CONFIDENCE,
    ExtractionStrategy,
    Extractor,
    extract,
    loads_lenient,
)


def test_plain_json_uses_first_strategy():
    out = extract('Here you go: {"overallRiskScore": 40, "riskAssessments": []} thanks')
    assert out.strategy == "balanced_braces"
    assert out.data["overallRiskScore"] == 40


def test_braces_inside_strings_are_ignored():
    out = extract('{"summary": "uses } and { freely", "overallRiskScore": 1}')
    assert out.data["summary"] == "uses } and { freely"


def test_fenced_only_json_falls_through_to_second_strategy():
    raw = 'Analysis below.\n```json\n{"overallRiskScore": 55, "riskAssessments": []}\n```\nDone.'
    out = extract(raw)
    assert out.strategy == "fenced_block"
    assert out.data["overallRiskScore"] == 55


def test_untagged_fence():
    out = extract('```\n{"confidenceScore": 70}\n```')
    assert out.strategy == "fenced_block"
    assert out.data == {"confidenceScore": 70}


def test_fence_with_other_tag_is_still_parsed():
    raw = '```javascript\n{"overallRiskScore": 72, "riskAssessments": [{"category": "data"}]}\n```'
    out = extract(raw)
    assert out.strategy == "fenced_block"
    assert not out.reduced_confidence
    assert out.data["riskAssessments"] == [{"category": "data"}]


def test_json_fence_preferred_over_other_tags():
    raw = '```js\n{"overallRiskScore": 10}\n```\n```JSON\n{"overallRiskScore": 80}\n```'
    assert extract(raw).data == {"overallRiskScore": 80}


def test_keyword_prose_synthesizes_low_confidence_entry():
    out = extract("The refund terms look unfair and the account may be closed.")
    assert out.strategy == "key_value"
    assert out.reduced_confidence
    entries = out.data["riskAssessments"]
    assert {e["category"] for e in entries} >= {"payment", "account", "general"}
    assert all(e["confidenceScore"] == KEY_VALUE_CONFIDENCE for e in entries)


def test_labelled_values_are_scraped():
    out = extract("overallRiskScore: 72, riskLevel: HIGH, confidenceScore = 64")
    assert out.data["overallRiskScore"] == 72.0
    assert out.data["riskLevel"] == "HIGH"
    assert out.data["confidenceScore"] == 64.0


def test_nothing_usable():
    assert extract("Sorry, I cannot help with that.") is None
    assert extract("   ") is None


def test_lenient_json():
    assert loads_lenient('{“a”: 1, "b": [1, 2,],}') == {"a": 1, "b": [1, 2]}
    assert loads_lenient("[1, 2]") is None


def test_strategy_registry():
    extractor = Extractor()
    assert extractor.remove_strategy("balanced_braces")
    assert extractor.strategies() == ["fenced_block", "key_value"]
    extractor.add_strategy(ExtractionStrategy("always", lambda text: {"x": 1}), index=0)
    assert extractor.extract("anything").strategy == "always"
