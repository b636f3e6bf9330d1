from __future__ import annotations
import dataclasses
import re
import threading
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Tuple

from risklens.analysis.seed_patterns import default_patterns
from risklens.utils.types import ClausePattern, PatternMatch, clamp_score

KEYWORD_IN_HIT_BONUS = 5
KEYWORD_IN_CONTEXT_BONUS = 3
SHORT_HIT_PENALTY = 10
SHORT_HIT_CHARS = 20
CONTEXT_RADIUS = 50
EXCERPT_CHARS = 200


@lru_cache(maxsize=512)
def _compile(expression: str) -> re.Pattern:
    return re.compile(expression, re.I)


def _overlaps(span: Tuple[int, int], spans: Iterable[Tuple[int, int]]) -> bool:
    s, e = span
    return any(not (e <= os_ or oe <= s) for os_, oe in spans)


def _excerpt(text: str, start: int, end: int, max_len: int = EXCERPT_CHARS) -> str:
    room = max(0, max_len - (end - start))
    lo = max(0, start - room // 2)
    hi = min(len(text), end + room - room // 2)
    snippet = text[lo:hi]
    if lo > 0:
        snippet = "..." + snippet
    if hi < len(text):
        snippet = snippet + "..."
    return snippet


class PatternMatcher:
    """Deterministic clause scanner over a mutable, id-keyed rule registry."""

    def __init__(self, patterns: Optional[Iterable[ClausePattern]] = None):
        self._lock = threading.Lock()
        self._rules: Dict[str, ClausePattern] = {}
        for p in (default_patterns() if patterns is None else patterns):
            self._rules[p.id] = p

    # registry
    def add_rule(self, pattern: ClausePattern) -> None:
        for trig in pattern.triggers:
            _compile(trig)  # fail fast on bad expressions
        with self._lock:
            self._rules[pattern.id] = pattern

    def update_rule(self, pattern_id: str, **changes) -> bool:
        with self._lock:
            existing = self._rules.get(pattern_id)
            if existing is None:
                return False
            self._rules[pattern_id] = dataclasses.replace(existing, **changes)
            return True

    def remove_rule(self, category: str) -> int:
        with self._lock:
            doomed = [pid for pid, p in self._rules.items() if p.category == category]
            for pid in doomed:
                del self._rules[pid]
        return len(doomed)

    def remove_pattern(self, pattern_id: str) -> bool:
        with self._lock:
            return self._rules.pop(pattern_id, None) is not None

    def get_rule(self, pattern_id: str) -> Optional[ClausePattern]:
        with self._lock:
            return self._rules.get(pattern_id)

    def list_rules(self) -> List[ClausePattern]:
        with self._lock:
            return list(self._rules.values())

    def list_categories(self) -> List[str]:
        seen: List[str] = []
        for p in self.list_rules():
            if p.category not in seen:
                seen.append(p.category)
        return seen

    # scanning
    def scan(self, text: str) -> List[PatternMatch]:
        if not text:
            return []
        matches: List[PatternMatch] = []
        for rule in self.list_rules():
            if not rule.enabled:
                continue
            taken: List[Tuple[int, int]] = []
            for trig in rule.triggers:
                for m in _compile(trig).finditer(text):
                    span = m.span()
                    if span[0] == span[1] or _overlaps(span, taken):
                        continue
                    taken.append(span)
                    matches.append(self._to_match(rule, text, *span))
        matches.sort(key=lambda m: (-m.confidence, m.start_position, m.pattern_id))
        return matches

    def _to_match(self, rule: ClausePattern, text: str, start: int, end: int) -> PatternMatch:
        hit = text[start:end].lower()
        window = text[max(0, start - CONTEXT_RADIUS): min(len(text), end + CONTEXT_RADIUS)].lower()
        in_hit = [k for k in rule.keywords if k.lower() in hit]
        # context bonus only counts keywords not already credited inside the hit
        in_window = [k for k in rule.keywords if k not in in_hit and k.lower() in window]
        score = rule.weight * 100
        score += KEYWORD_IN_HIT_BONUS * len(in_hit) + KEYWORD_IN_CONTEXT_BONUS * len(in_window)
        if end - start < SHORT_HIT_CHARS:
            score -= SHORT_HIT_PENALTY
        return PatternMatch(
            pattern_id=rule.id,
            category=rule.category,
            risk_level=rule.risk_level,
            confidence=clamp_score(score),
            start_position=start,
            end_position=end,
            matched_text=text[start:end],
            matched_keywords=in_hit or in_window,
            context=_excerpt(text, start, end),
        )

    def stats(self, text: str) -> Dict[str, object]:
        matches = self.scan(text)
        counts: Dict[str, int] = {}
        for m in matches:
            counts[m.category] = counts.get(m.category, 0) + 1
        avg = round(sum(m.confidence for m in matches) / len(matches)) if matches else 0
        return {"total_matches": len(matches), "category_counts": counts, "average_confidence": avg}
