from __future__ import annotations
import dataclasses
import hashlib
import json
import re
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from risklens.prompts.templates import (
    BASE_INSTRUCTIONS,
    DEFAULT_DEPTH,
    DEFAULT_DOCUMENT_TYPE,
    DEFAULT_INDUSTRY,
    DEFAULT_TEMPLATES,
    DEPTH_INSTRUCTIONS,
    DOCUMENT_TYPE_ALIASES,
    DOCUMENT_TYPE_CONTEXTS,
    INDUSTRY_ALIASES,
    INDUSTRY_CONTEXTS,
    OUTPUT_FORMAT,
    SYSTEM_PREAMBLE,
    VALIDATION_REMINDERS,
    PromptTemplate,
)
from risklens.utils.errors import PromptTooLong, TemplateDisabled, TemplateNotFound
from risklens.utils.types import AnalysisPrompt, ClausePattern, PatternMatch, PromptMetadata

MAX_FINDINGS = 5
STANDARD_TEMPLATE_ID = "standard_analysis"
PLACEHOLDER_RE = re.compile(r"\{\{\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*\}\}")


def _slug(value: Optional[str]) -> str:
    return re.sub(r"[\s_]+", "-", (value or "").strip().lower())


def resolve_document_type(document_type: Optional[str]) -> str:
    key = _slug(document_type)
    key = DOCUMENT_TYPE_ALIASES.get(key, key)
    return key if key in DOCUMENT_TYPE_CONTEXTS else DEFAULT_DOCUMENT_TYPE


def resolve_industry(industry: Optional[str]) -> str:
    key = _slug(industry)
    key = INDUSTRY_ALIASES.get(key, key)
    return key if key in INDUSTRY_CONTEXTS else DEFAULT_INDUSTRY


def _join(*sections: str) -> str:
    return "\n\n".join(s.strip() for s in sections if s and s.strip()).strip()


def document_section(document_type: Optional[str]) -> str:
    key = resolve_document_type(document_type)
    return f"DOCUMENT TYPE: {key.upper()}\n{DOCUMENT_TYPE_CONTEXTS[key]}"


def industry_section(industry: Optional[str]) -> str:
    key = resolve_industry(industry)
    return f"INDUSTRY CONTEXT - {key.upper()}:\n{INDUSTRY_CONTEXTS[key]}"


def findings_section(matches: List[PatternMatch]) -> str:
    if not matches:
        return "PRELIMINARY ANALYSIS: No obvious problematic patterns detected through initial screening."
    top = sorted(matches, key=lambda m: (-m.confidence, m.start_position))[:MAX_FINDINGS]
    lines = "\n".join(f'- {m.category}: "{m.matched_text}" (confidence: {m.confidence}%)' for m in top)
    return (
        "PRELIMINARY PATTERN ANALYSIS:\n"
        "The following potentially problematic patterns were detected:\n\n"
        f"{lines}\n\n"
        "Please provide detailed analysis of these and any additional risks you identify."
    )


def depth_section(depth: Optional[str]) -> str:
    key = (depth or DEFAULT_DEPTH).strip().lower()
    return _join(BASE_INSTRUCTIONS, DEPTH_INSTRUCTIONS.get(key, DEPTH_INSTRUCTIONS[DEFAULT_DEPTH]))


def content_section(text: str) -> str:
    return f"CONTENT TO ANALYZE:\n```\n{text}\n```"


def hints_from_matches(matches: Iterable[PatternMatch]) -> List[ClausePattern]:
    hints: Dict[str, ClausePattern] = {}
    for m in matches:
        if m.pattern_id in hints:
            continue
        hints[m.pattern_id] = ClausePattern(
            id=m.pattern_id,
            category=m.category,
            name=f"Pattern {m.pattern_id}",
            description=f"Matched pattern in {m.category}",
            risk_level=m.risk_level,
            triggers=(),
            keywords=tuple(m.matched_keywords),
        )
    return list(hints.values())


def context_fingerprint(text: str, context: Dict[str, Any], pattern_ids: Iterable[str], template_id: str) -> str:
    payload = {
        "text": hashlib.sha256(text.encode("utf-8")).hexdigest(),
        "context": context,
        "patterns": sorted(pattern_ids),
        "template": template_id,
    }
    return hashlib.sha256(json.dumps(payload, sort_keys=True, default=str).encode("utf-8")).hexdigest()


def render(template_text: str, variables: Dict[str, Any]) -> str:
    """Substitute ``{{name}}`` placeholders; unknown names are left in place."""

    def _sub(m: re.Match) -> str:
        value = variables.get(m.group(1))
        return m.group(0) if value is None else str(value)

    return PLACEHOLDER_RE.sub(_sub, template_text)


class PromptBuilder:
    def __init__(self, templates: Optional[Iterable[PromptTemplate]] = None, max_prompt_chars: int = 200000):
        self.max_prompt_chars = max_prompt_chars
        self._lock = threading.Lock()
        self._templates: Dict[str, PromptTemplate] = {t.id: t for t in (DEFAULT_TEMPLATES if templates is None else templates)}

    # template registry
    def add_template(self, template: PromptTemplate) -> None:
        with self._lock:
            self._templates[template.id] = template

    def update_template(self, template_id: str, **changes) -> bool:
        with self._lock:
            existing = self._templates.get(template_id)
            if existing is None:
                return False
            self._templates[template_id] = dataclasses.replace(existing, **changes)
            return True

    def remove_template(self, template_id: str) -> bool:
        with self._lock:
            return self._templates.pop(template_id, None) is not None

    def get_template(self, template_id: str) -> Optional[PromptTemplate]:
        with self._lock:
            return self._templates.get(template_id)

    def list_templates(self) -> List[PromptTemplate]:
        with self._lock:
            return list(self._templates.values())

    # building
    def build(
        self,
        text: str,
        matches: List[PatternMatch],
        document_type: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> AnalysisPrompt:
        ctx = dict(context or {})
        doc_type = resolve_document_type(document_type or ctx.get("document_type"))
        industry = resolve_industry(ctx.get("industry"))
        system_prompt = _join(SYSTEM_PREAMBLE, document_section(doc_type), industry_section(industry))
        user_prompt = _join(
            content_section(text),
            findings_section(matches),
            depth_section(ctx.get("analysis_depth")),
            self._extra_instructions(ctx),
            OUTPUT_FORMAT,
            VALIDATION_REMINDERS,
        )
        return self._finish(
            system_prompt, user_prompt, text, matches, {**ctx, "document_type": doc_type, "industry": industry},
            STANDARD_TEMPLATE_ID, "Standard Analysis",
        )

    def build_from_template(
        self,
        template_id: str,
        text: str,
        matches: List[PatternMatch],
        context: Optional[Dict[str, Any]] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> AnalysisPrompt:
        template = self.get_template(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        if not template.enabled:
            raise TemplateDisabled(template_id)

        ctx = dict(context or {})
        values: Dict[str, Any] = dict(template.defaults)
        values.update({k: v for k, v in ctx.items() if v is not None})
        values.update(variables or {})

        system_parts = [render(template.system_prompt, values)]
        if template.constraints:
            system_parts.append("ANALYSIS CONSTRAINTS:\n" + "\n".join(f"- {c}" for c in template.constraints))
        user_prompt = _join(
            render(template.user_prompt, values),
            content_section(text),
            findings_section(matches),
            depth_section(ctx.get("analysis_depth")),
            self._extra_instructions(ctx),
            OUTPUT_FORMAT,
            VALIDATION_REMINDERS,
        )
        return self._finish(_join(*system_parts), user_prompt, text, matches, ctx, template.id, template.name)

    def _extra_instructions(self, ctx: Dict[str, Any]) -> str:
        lines = []
        if ctx.get("jurisdiction"):
            lines.append(f"JURISDICTIONAL CONTEXT: Consider {ctx['jurisdiction']} legal context where applicable.")
        if ctx.get("focus_areas"):
            lines.append("FOCUS AREAS: Pay special attention to: " + ", ".join(ctx["focus_areas"]))
        if ctx.get("custom_instructions"):
            lines.append(f"ADDITIONAL INSTRUCTIONS: {ctx['custom_instructions']}")
        return "\n".join(lines)

    def _finish(
        self,
        system_prompt: str,
        user_prompt: str,
        text: str,
        matches: List[PatternMatch],
        ctx: Dict[str, Any],
        template_id: str,
        template_name: str,
    ) -> AnalysisPrompt:
        hints = hints_from_matches(matches)
        described = [f"{k}: {v}" for k, v in sorted(ctx.items()) if isinstance(v, (str, int, float)) and v != ""]
        prompt = AnalysisPrompt(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            context=", ".join(described) or None,
            patterns=hints,
            metadata=PromptMetadata(
                template_id=template_id,
                template_name=template_name,
                generated_at=datetime.now(timezone.utc).isoformat(),
                context_hash=context_fingerprint(text, ctx, [h.id for h in hints], template_id),
            ),
        )
        total = len(prompt.as_text())
        if total > self.max_prompt_chars:
            raise PromptTooLong(total, self.max_prompt_chars)
        return prompt
