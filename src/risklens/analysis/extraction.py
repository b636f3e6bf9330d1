"""Pull a JSON-like object out of free-form model text.

Strategies run in order until one yields a dict:
  1. first balanced ``{...}`` span outside fenced code blocks
  2. a fenced block, preferring ``json`` or untagged fences over other tags
  3. labelled key/value scraping plus keyword-family entries
"""
from __future__ import annotations
import json
import logging
import re
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

KEY_VALUE_CONFIDENCE = 40
KEY_VALUE_RISK_SCORE = 50

FENCE_RE = re.compile(r"```([A-Za-z0-9_-]*)[ \t]*\r?\n?(.*?)```", re.S)
TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
SMART_QUOTES = str.maketrans({"“": '"', "”": '"', "‘": "'", "’": "'"})
PREFERRED_FENCE_TAGS = ("", "json")

NUMBER = r"(-?\d+(?:\.\d+)?)"
SCORE_RE = re.compile(r'"?overall[ _]?risk[ _]?score"?\s*[:=]\s*"?' + NUMBER, re.I)
LEVEL_RE = re.compile(r'"?(?:overall[ _]?)?risk[ _]?level"?\s*[:=]\s*"?([A-Za-z]+)', re.I)
CONFIDENCE_RE = re.compile(r'"?confidence[ _]?score"?\s*[:=]\s*"?' + NUMBER, re.I)

KEYWORD_FAMILIES: Dict[str, tuple] = {
    "general": ("unfair", "one-sided", "problematic", "concerning", "risky"),
    "payment": ("payment", "refund", "subscription", "billing", "purchase", "charge"),
    "data": ("personal data", "privacy", "tracking", "third part", "data sharing", "data collection"),
    "account": ("account", "terminat", "suspend", "suspension", "ban "),
}


@dataclass
class ExtractionOutcome:
    data: Dict
    strategy: str
    reduced_confidence: bool = False


@dataclass(frozen=True)
class ExtractionStrategy:
    name: str
    run: Callable[[str], Optional[Dict]]
    reduced_confidence: bool = False


def loads_lenient(blob: str) -> Optional[Dict]:
    """json.loads that tolerates smart quotes and trailing commas; only dicts count."""
    for candidate in (blob, TRAILING_COMMA_RE.sub(r"\1", blob.translate(SMART_QUOTES))):
        try:
            value = json.loads(candidate)
        except ValueError:
            continue
        return value if isinstance(value, dict) else None
    return None


def balanced_spans(text: str) -> Iterator[str]:
    """Yield top-level ``{...}`` spans, skipping braces inside double-quoted strings."""
    depth = 0
    start = 0
    in_str = False
    escaped = False
    for i, ch in enumerate(text):
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"' and depth:
            in_str = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth:
            depth -= 1
            if depth == 0:
                yield text[start:i + 1]


def from_balanced_braces(text: str) -> Optional[Dict]:
    unfenced = FENCE_RE.sub(" ", text)
    for span in balanced_spans(unfenced):
        data = loads_lenient(span)
        if data is not None:
            return data
    return None


def from_fenced_block(text: str) -> Optional[Dict]:
    blocks = [(m.group(1).lower(), m.group(2).strip()) for m in FENCE_RE.finditer(text)]
    blocks.sort(key=lambda b: b[0] not in PREFERRED_FENCE_TAGS)
    for _, body in blocks:
        data = loads_lenient(body)
        if data is None:
            data = next(filter(None, (loads_lenient(s) for s in balanced_spans(body))), None)
        if data is not None:
            return data
    return None


def from_key_values(text: str) -> Optional[Dict]:
    score = SCORE_RE.search(text)
    level = LEVEL_RE.search(text)
    confidence = CONFIDENCE_RE.search(text)
    lower = text.lower()

    entries = []
    for family, words in KEYWORD_FAMILIES.items():
        hits = [w.strip() for w in words if w in lower]
        if not hits:
            continue
        entries.append({
            "category": family,
            "riskLevel": "medium",
            "riskScore": KEY_VALUE_RISK_SCORE,
            "confidenceScore": KEY_VALUE_CONFIDENCE,
            "summary": f"Possible {family} concerns mentioned in an unstructured reply",
            "rationale": "Recovered from unstructured model output. Keywords: " + ", ".join(hits),
            "startPosition": 0,
            "endPosition": 0,
        })

    if not (score or level or confidence or entries):
        return None
    data: Dict = {
        "overallRiskScore": float(score.group(1)) if score else (KEY_VALUE_RISK_SCORE if entries else 0),
        "confidenceScore": float(confidence.group(1)) if confidence else KEY_VALUE_CONFIDENCE,
        "riskAssessments": entries,
    }
    if level:
        data["riskLevel"] = level.group(1)
    return data


DEFAULT_STRATEGIES = (
    ExtractionStrategy("balanced_braces", from_balanced_braces),
    ExtractionStrategy("fenced_block", from_fenced_block),
    ExtractionStrategy("key_value", from_key_values, reduced_confidence=True),
)


class Extractor:
    def __init__(self, strategies=DEFAULT_STRATEGIES):
        self._lock = threading.Lock()
        self._strategies: List[ExtractionStrategy] = list(strategies)

    def add_strategy(self, strategy: ExtractionStrategy, index: Optional[int] = None) -> None:
        with self._lock:
            if index is None:
                self._strategies.append(strategy)
            else:
                self._strategies.insert(index, strategy)

    def remove_strategy(self, name: str) -> bool:
        with self._lock:
            before = len(self._strategies)
            self._strategies = [s for s in self._strategies if s.name != name]
            return len(self._strategies) != before

    def strategies(self) -> List[str]:
        with self._lock:
            return [s.name for s in self._strategies]

    def extract(self, text: str) -> Optional[ExtractionOutcome]:
        if not text or not text.strip():
            return None
        with self._lock:
            chain = list(self._strategies)
        for strategy in chain:
            data = strategy.run(text)
            if data is not None:
                logger.debug("Extraction succeeded with strategy %s", strategy.name)
                return ExtractionOutcome(data=data, strategy=strategy.name, reduced_confidence=strategy.reduced_confidence)
        return None


_default = Extractor()


def extract(text: str) -> Optional[ExtractionOutcome]:
    return _default.extract(text)
