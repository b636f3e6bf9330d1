"""Seed catalogue of clause patterns for consumer terms (mobile gaming focus).

Rules are grouped into seed categories so callers can seed a subset, e.g. only
the data-privacy rules for a privacy policy.
"""
from __future__ import annotations
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from risklens.utils.types import ClausePattern, RiskLevel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeedCategory:
    id: str
    name: str
    description: str
    patterns: tuple


@dataclass
class SeedingResult:
    success: bool = False
    total_patterns: int = 0
    categories_seeded: List[str] = field(default_factory=list)
    duplicates_skipped: int = 0
    errors: List[str] = field(default_factory=list)
    seeded_at: str = ""


SEED_CATEGORIES = (
    SeedCategory(
        id="account_termination",
        name="Account & Service Termination",
        description="Account suspension, termination and loss of access",
        patterns=(
            ClausePattern(
                id="acct_001",
                category="account-termination",
                name="Arbitrary Account Termination",
                description="Arbitrary account termination without notice or cause",
                risk_level=RiskLevel.HIGH,
                triggers=(
                    r"we\s+(?:reserve\s+the\s+right\s+to\s+)?(?:terminate|suspend|cancel|deactivate|delete)\s+(?:your\s+)?account\s*(?:at\s+any\s+time)?(?:\s+without\s+(?:notice|warning|cause|reason))?",
                    r"(?:termination|suspension|cancellation)\s+(?:of\s+)?(?:your\s+)?account\s*(?:without\s+(?:notice|warning|cause|reason))",
                    r"account\s+(?:may\s+be\s+)?(?:terminated|suspended|cancelled)\s*(?:at\s+any\s+time)?(?:\s+without\s+(?:notice|warning|cause|reason))?",
                ),
                keywords=("terminate", "suspend", "cancel", "account", "without notice", "at any time", "discretion"),
                weight=0.8,
            ),
            ClausePattern(
                id="acct_002",
                category="loss-of-purchases",
                name="Loss of Purchased Content",
                description="Purchased content or items forfeited when access ends",
                risk_level=RiskLevel.HIGH,
                triggers=(
                    r"(?:lose|forfeit|forfeiture\s+of)\s+(?:all\s+)?(?:access\s+to\s+)?(?:any\s+)?(?:purchased\s+content|virtual\s+items|purchases|content\s+you\s+(?:have\s+)?purchased)",
                ),
                keywords=("purchased content", "virtual items", "no refund", "forfeit", "lose access"),
                weight=0.75,
            ),
        ),
    ),
    SeedCategory(
        id="payment_monetization",
        name="Payment & Monetization",
        description="Virtual currency, refunds and subscription renewals",
        patterns=(
            ClausePattern(
                id="pay_001",
                category="virtual-currency",
                name="Virtual Currency Without Value",
                description="Virtual currency with no real-world value or risk of forfeiture",
                risk_level=RiskLevel.HIGH,
                triggers=(
                    r"virtual\s+(?:currency|money|coins?|gems?|points?)\s+(?:has\s+no\s+|have\s+no\s+)?(?:real[\s-]?world\s+)?value",
                    r"(?:virtual\s+)?(?:currency|money|coins?|gems?|points?)\s+(?:may\s+be\s+)?(?:forfeited|lost|removed|deleted|confiscated)",
                    r"no\s+(?:real[\s-]?world\s+)?(?:monetary\s+)?value\s+(?:for\s+)?(?:virtual\s+)?(?:currency|items?|coins?)",
                ),
                keywords=("virtual currency", "no value", "forfeited", "real-world value", "confiscated"),
                weight=0.75,
            ),
            ClausePattern(
                id="pay_002",
                category="automatic-renewal",
                name="Subscription Auto-Renewal",
                description="Subscriptions that renew automatically unless cancelled",
                risk_level=RiskLevel.HIGH,
                triggers=(
                    r"(?:automatically|auto[\s-]?)\s*renew(?:s|ed|al)?",
                    r"subscription\s+(?:will\s+)?continues?\s+(?:until|unless)\s+(?:you\s+)?cancel(?:led|ed)?",
                    r"recurring\s+(?:billing|charges?|payments?)",
                ),
                keywords=("auto-renew", "automatically", "renewal", "recurring", "unless cancelled", "subscription"),
                weight=0.7,
            ),
            ClausePattern(
                id="pay_003",
                category="refund-restrictions",
                name="No Refunds",
                description="Purchases declared final and non-refundable",
                risk_level=RiskLevel.CRITICAL,
                triggers=(
                    r"(?:all\s+)?(?:purchases|sales|payments|fees)\s+(?:are\s+)?(?:final|non[\s-]?refundable)",
                    r"no\s+refunds?\s+(?:will\s+be\s+)?(?:given|issued|provided|offered)?",
                ),
                keywords=("no refund", "non-refundable", "final sale", "in-app purchase", "virtual currency"),
                weight=0.85,
            ),
        ),
    ),
    SeedCategory(
        id="data_privacy",
        name="Data Privacy & Tracking",
        description="Collection, profiling and third-party sharing of user data",
        patterns=(
            ClausePattern(
                id="data_001",
                category="data-sharing",
                name="Third-Party Data Sharing",
                description="Sharing user data with advertisers or unnamed third parties",
                risk_level=RiskLevel.CRITICAL,
                triggers=(
                    r"(?:share|sell|disclose|transfer)\s+(?:your\s+)?(?:personal\s+)?(?:data|information)\s+with\s+(?:our\s+)?(?:third[\s-]?part(?:y|ies)|partners|advertisers|affiliates)",
                ),
                keywords=("third-party", "third parties", "advertising partners", "affiliates", "sell", "share"),
                weight=0.9,
            ),
            ClausePattern(
                id="data_002",
                category="data-collection",
                name="Broad Data Collection",
                description="Collection of personal data beyond what the service needs",
                risk_level=RiskLevel.HIGH,
                triggers=(
                    r"(?:we\s+)?(?:collect|gather|record)\s+(?:your\s+)?(?:personal\s+(?:data|information)|location\s+data|device\s+information|contacts|behavioral\s+data|usage\s+information)",
                ),
                keywords=("personal information", "location data", "device information", "contacts", "behavioral data", "track"),
                weight=0.7,
            ),
        ),
    ),
    SeedCategory(
        id="liability_disputes",
        name="Liability & Dispute Resolution",
        description="Liability exclusions and mandatory arbitration",
        patterns=(
            ClausePattern(
                id="lia_001",
                category="dispute-resolution",
                name="Mandatory Arbitration",
                description="Binding arbitration and class action waivers",
                risk_level=RiskLevel.HIGH,
                triggers=(
                    r"binding\s+(?:individual\s+)?arbitration",
                    r"waive\s+(?:your\s+|any\s+)?right\s+to\s+(?:a\s+)?(?:jury\s+trial|participate\s+in\s+a\s+class\s+action)",
                    r"class\s+action\s+waiver",
                ),
                keywords=("arbitration", "jury", "class action", "waive", "dispute"),
                weight=0.8,
            ),
            ClausePattern(
                id="lia_002",
                category="liability-limitation",
                name="Broad Liability Exclusion",
                description="Exclusion of liability for damages or service failures",
                risk_level=RiskLevel.MEDIUM,
                triggers=(
                    r"(?:we\s+(?:are|shall\s+be|will\s+be)\s+)?not\s+(?:be\s+)?(?:liable|responsible)\s+for\s+any",
                    r"(?:provided|offered)\s+(?:on\s+an\s+)?[\"']?as[\s-]is[\"']?",
                ),
                keywords=("liable", "liability", "damages", "as is", "not responsible", "warranty"),
                weight=0.7,
            ),
        ),
    ),
    SeedCategory(
        id="content_terms",
        name="Content & Terms Changes",
        description="Licences over user content and unilateral changes to the terms",
        patterns=(
            ClausePattern(
                id="cnt_001",
                category="content-ownership",
                name="Broad Content Licence",
                description="Perpetual or irrevocable licence over user-generated content",
                risk_level=RiskLevel.MEDIUM,
                triggers=(
                    r"(?:perpetual|irrevocable|worldwide|royalty[\s-]free)[,\s]+(?:(?:perpetual|irrevocable|worldwide|royalty[\s-]free|non[\s-]exclusive|transferable|sub-?licensable)[,\s]+)*licen[cs]e",
                ),
                keywords=("user content", "licence", "license", "perpetual", "irrevocable", "royalty-free", "sublicense"),
                weight=0.6,
            ),
            ClausePattern(
                id="cnt_002",
                category="terms-changes",
                name="Unilateral Terms Changes",
                description="Terms that can change without consent or notice",
                risk_level=RiskLevel.MEDIUM,
                triggers=(
                    r"(?:modify|change|amend|update|revise)\s+(?:these\s+|this\s+|the\s+)?(?:terms|agreement|policy)[^.]{0,80}?(?:at\s+any\s+time|without\s+(?:prior\s+)?notice)",
                ),
                keywords=("modify", "change", "update", "without notice", "at any time", "sole discretion"),
                weight=0.6,
            ),
        ),
    ),
)


def default_patterns() -> List[ClausePattern]:
    return [p for cat in SEED_CATEGORIES for p in cat.patterns]


def validate_pattern(pattern: ClausePattern) -> List[str]:
    errors: List[str] = []
    if not pattern.id or not pattern.id.strip():
        errors.append("Pattern ID is required")
    if not pattern.category or not pattern.category.strip():
        errors.append("Pattern category is required")
    if not pattern.name or not pattern.name.strip():
        errors.append("Pattern name is required")
    if not pattern.triggers:
        errors.append("Pattern must have at least one trigger expression")
    for trig in pattern.triggers:
        try:
            re.compile(trig)
        except re.error as e:
            errors.append(f"Invalid trigger expression {trig!r}: {e}")
    if not isinstance(pattern.risk_level, RiskLevel):
        errors.append("Pattern must have valid risk level")
    if not 0 <= pattern.weight <= 1:
        errors.append("Pattern weight must be between 0 and 1")
    return errors


def seed_registry(
    matcher,
    overwrite: bool = False,
    categories: Optional[Iterable[str]] = None,
    custom: Optional[Iterable[ClausePattern]] = None,
    validate: bool = True,
) -> SeedingResult:
    """Load the seed catalogue (optionally a subset) into ``matcher``.

    Existing rule ids are skipped unless ``overwrite`` is set. When ``validate``
    is on, an invalid catalogue aborts seeding before anything is registered.
    """
    result = SeedingResult(seeded_at=datetime.now(timezone.utc).isoformat())
    wanted = set(categories) if categories else None
    selected = [c for c in SEED_CATEGORIES if wanted is None or c.id in wanted or c.name in wanted]

    if validate:
        for cat in selected:
            for p in cat.patterns:
                errs = validate_pattern(p)
                if errs:
                    result.errors.append(f"Category {cat.name}, Pattern {p.id}: {', '.join(errs)}")
        if result.errors:
            return result

    def _add(p: ClausePattern) -> None:
        if matcher.get_rule(p.id) is not None and not overwrite:
            result.duplicates_skipped += 1
            return
        matcher.add_rule(p)
        result.total_patterns += 1

    for cat in selected:
        for p in cat.patterns:
            _add(p)
        result.categories_seeded.append(cat.name)

    for p in custom or []:
        errs = validate_pattern(p) if validate else []
        if errs:
            result.errors.append(f"Custom pattern {p.id}: {', '.join(errs)}")
            continue
        _add(p)

    result.success = not result.errors
    logger.info("Seeded %d patterns (%d duplicates skipped)", result.total_patterns, result.duplicates_skipped)
    return result


def export_patterns(matcher) -> str:
    return json.dumps([p.as_dict() for p in matcher.list_rules()], indent=2)


def import_patterns(matcher, patterns_json: str) -> int:
    try:
        raw = json.loads(patterns_json)
    except json.JSONDecodeError as e:
        raise ValueError(f"Failed to import patterns: {e}") from e
    imported = 0
    for item in raw:
        if not (item.get("id") and item.get("category") and item.get("name")):
            continue
        level = RiskLevel.parse(item.get("riskLevel")) or RiskLevel.MEDIUM
        pattern = ClausePattern(
            id=item["id"],
            category=item["category"],
            name=item["name"],
            description=item.get("description", ""),
            risk_level=level,
            triggers=tuple(item.get("triggers", ())),
            keywords=tuple(item.get("keywords", ())),
            weight=float(item.get("weight", 0.5)),
            enabled=bool(item.get("enabled", True)),
        )
        if validate_pattern(pattern):
            continue
        matcher.add_rule(pattern)
        imported += 1
    return imported
