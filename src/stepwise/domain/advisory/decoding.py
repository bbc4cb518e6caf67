"""Tolerant decoding of model output and stored advisory blobs.

Model output is expected, but not guaranteed, to be a JSON object. Decoding
never raises: text that cannot be read as the expected shape is wrapped in
the matching ``Unparsed*`` variant.
"""

from __future__ import annotations

import json
import logging
import re

from typing import cast

from stepwise.domain.advisory.value_objects import (
    CodebaseContext,
    ContextItem,
    Guidance,
    InlineExplanation,
    PullRequestSummary,
    RepositoryContext,
    Risk,
    SessionSummary,
    StepGuidance,
    UnparsedCodebaseContext,
    UnparsedGuidance,
    UnparsedSummary,
)

logger = logging.getLogger(__name__)

_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")

# =============================================================================
# MODEL OUTPUT
# =============================================================================


def decode_summary(text: str) -> SessionSummary:
    """Decode a PR summary, falling back to the raw text as the overview."""
    data = _extract_object(text)
    if data is None or not isinstance(data.get("overview"), str):
        logger.debug("Summary output was not JSON, keeping raw text")
        return UnparsedSummary(raw_text=text.strip())
    return _summary_from_fields(data)


def decode_guidance(text: str) -> Guidance:
    """Decode step guidance, falling back to the raw text as the summary."""
    data = _extract_object(text)
    if data is None or not isinstance(data.get("summary"), str):
        logger.debug("Guidance output was not JSON, keeping raw text")
        return UnparsedGuidance(raw_text=text.strip())
    return _guidance_from_fields(data)


def decode_context_items(text: str) -> list[ContextItem]:
    """Decode a list of context items.

    Accepts a bare JSON array or an object with an ``items`` array. Anything
    else becomes a single ``note`` item holding the raw text.
    """
    raw_items = _extract_item_list(text)
    if raw_items is None:
        stripped = text.strip()
        if not stripped:
            return []
        return [ContextItem(type="note", path="", snippet=stripped)]
    return _items_from_list(raw_items)


def decode_codebase_context(text: str) -> RepositoryContext:
    """Decode a repository summary, falling back to the raw text."""
    data = _extract_object(text)
    if data is None or not isinstance(data.get("description"), str):
        return UnparsedCodebaseContext(raw_text=text.strip())
    return _codebase_context_from_fields(data)


# =============================================================================
# STORED BLOBS
# =============================================================================


def summary_from_dict(data: dict[str, object] | None) -> SessionSummary | None:
    if data is None:
        return None
    if data.get("kind") == "unparsed_summary":
        return UnparsedSummary(raw_text=str(data.get("overview", "")))
    return _summary_from_fields(data)


def guidance_from_dict(data: dict[str, object] | None) -> Guidance | None:
    if data is None:
        return None
    if data.get("kind") == "unparsed_guidance":
        return UnparsedGuidance(raw_text=str(data.get("summary", "")))
    return _guidance_from_fields(data)


def codebase_context_from_dict(
    data: dict[str, object] | None,
) -> RepositoryContext | None:
    if data is None:
        return None
    if data.get("kind") == "unparsed_codebase_context":
        return UnparsedCodebaseContext(raw_text=str(data.get("description", "")))
    return _codebase_context_from_fields(data)


def context_items_from_list(data: list[object] | None) -> list[ContextItem]:
    if data is None:
        return []
    return _items_from_list(data)


def inline_explanations_from_list(
    data: list[object] | None,
) -> list[InlineExplanation] | None:
    if data is None:
        return None
    explanations: list[InlineExplanation] = []
    for e_raw in data:
        if not isinstance(e_raw, dict):
            continue
        e = cast(dict[str, object], e_raw)
        raw_line = e.get("line")
        explanations.append(
            InlineExplanation(
                path=str(e.get("path", "")),
                line=raw_line if isinstance(raw_line, int) else None,
                explanation=str(e.get("explanation", "")),
            )
        )
    return explanations


# =============================================================================
# FIELD READERS
# =============================================================================


def _summary_from_fields(data: dict[str, object]) -> PullRequestSummary:
    return PullRequestSummary(
        overview=str(data.get("overview", "")),
        key_changes=_str_list(data.get("key_changes", data.get("keyChanges"))),
    )


def _guidance_from_fields(data: dict[str, object]) -> StepGuidance:
    risks: list[Risk] = []
    raw_risks = data.get("risks")
    if isinstance(raw_risks, list):
        for r_raw in cast(list[object], raw_risks):
            if isinstance(r_raw, dict):
                r = cast(dict[str, object], r_raw)
                risks.append(
                    Risk(
                        description=str(r.get("description", "")),
                        severity=str(r.get("severity", "medium")),
                    )
                )
            elif isinstance(r_raw, str):
                risks.append(Risk(description=r_raw))
    return StepGuidance(
        summary=str(data.get("summary", "")),
        risks=risks,
        review_questions=_str_list(
            data.get("review_questions", data.get("reviewQuestions"))
        ),
    )


def _codebase_context_from_fields(data: dict[str, object]) -> CodebaseContext:
    return CodebaseContext(
        description=str(data.get("description", "")),
        tech_stack=_str_list(data.get("tech_stack", data.get("techStack"))),
        architecture=str(data.get("architecture", "")),
        conventions=str(data.get("conventions", "")),
        testing_approach=str(
            data.get("testing_approach", data.get("testingApproach", ""))
        ),
    )


def _items_from_list(raw_items: list[object]) -> list[ContextItem]:
    items: list[ContextItem] = []
    for i_raw in raw_items:
        if not isinstance(i_raw, dict):
            continue
        i = cast(dict[str, object], i_raw)
        items.append(
            ContextItem(
                type=str(i.get("type", "note")),
                path=str(i.get("path", "")),
                snippet=str(i.get("snippet", "")),
            )
        )
    return items


def _str_list(raw: object) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [str(x) for x in cast(list[object], raw)]


# =============================================================================
# JSON EXTRACTION
# =============================================================================


def _extract_object(text: str) -> dict[str, object] | None:
    """Read a JSON object from text, tolerating prose or fences around it."""
    parsed = _loads(text)
    if isinstance(parsed, dict):
        return cast(dict[str, object], parsed)
    match = _OBJECT_RE.search(text)
    if match:
        parsed = _loads(match.group(0))
        if isinstance(parsed, dict):
            return cast(dict[str, object], parsed)
    return None


def _extract_item_list(text: str) -> list[object] | None:
    parsed = _loads(text)
    if parsed is None:
        for pattern in (_ARRAY_RE, _OBJECT_RE):
            match = pattern.search(text)
            if match:
                parsed = _loads(match.group(0))
                if parsed is not None:
                    break
    if isinstance(parsed, list):
        return cast(list[object], parsed)
    if isinstance(parsed, dict):
        items = cast(dict[str, object], parsed).get("items")
        if isinstance(items, list):
            return cast(list[object], items)
    return None


def _loads(text: str) -> object | None:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
