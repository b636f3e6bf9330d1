import json

import pytest

from risklens.analysis.patterns import PatternMatcher
from risklens.analysis.seed_patterns import (
    SEED_CATEGORIES,
    default_patterns,
    export_patterns,
    import_patterns,
    seed_registry,
    validate_pattern,
)
from risklens.utils.types import ClausePattern, RiskLevel


def test_seed_catalogue_is_valid():
    for p in default_patterns():
        assert validate_pattern(p) == [], p.id
        assert p.category == p.category.lower()


def test_validate_pattern_reports_problems():
    bad = ClausePattern(id="", category="x", name="x", risk_level=RiskLevel.LOW, triggers=("(",), weight=2)
    errors = validate_pattern(bad)
    assert "Pattern ID is required" in errors
    assert any("Invalid trigger" in e for e in errors)
    assert "Pattern weight must be between 0 and 1" in errors


def test_seed_into_empty_registry_then_skip_duplicates():
    matcher = PatternMatcher([])
    first = seed_registry(matcher)
    assert first.success
    assert first.total_patterns == len(default_patterns())
    second = seed_registry(matcher)
    assert second.total_patterns == 0
    assert second.duplicates_skipped == len(default_patterns())


def test_seed_subset_of_categories():
    matcher = PatternMatcher([])
    cat = SEED_CATEGORIES[0]
    result = seed_registry(matcher, categories=[cat.id])
    assert result.categories_seeded == [cat.name]
    assert len(matcher.list_rules()) == len(cat.patterns)


def test_export_import_round_trip():
    source = PatternMatcher()
    target = PatternMatcher([])
    count = import_patterns(target, export_patterns(source))
    assert count == len(source.list_rules())
    assert json.loads(export_patterns(target)) == json.loads(export_patterns(source))


def test_import_rejects_bad_json():
    with pytest.raises(ValueError):
        import_patterns(PatternMatcher([]), "{not json")
