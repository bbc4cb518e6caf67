"""Value objects for AI-generated advisory content.

Every advisory blob comes in two shapes: a parsed variant carrying the
structured fields, and an ``Unparsed*`` variant that keeps the raw model
output when it could not be decoded. Both serialize to a tagged dict and
both expose the same minimal fields, so readers never need to branch.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# =============================================================================
# PULL REQUEST SUMMARY
# =============================================================================


@dataclass(frozen=True)
class PullRequestSummary:
    """Overview of the whole change set."""

    overview: str
    key_changes: list[str] = field(default_factory=list[str])

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": "summary",
            "overview": self.overview,
            "key_changes": list(self.key_changes),
        }


@dataclass(frozen=True)
class UnparsedSummary:
    """Model output that was not valid summary JSON."""

    raw_text: str

    @property
    def overview(self) -> str:
        return self.raw_text

    @property
    def key_changes(self) -> list[str]:
        return []

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": "unparsed_summary",
            "overview": self.raw_text,
            "key_changes": [],
        }


SessionSummary = PullRequestSummary | UnparsedSummary


# =============================================================================
# STEP GUIDANCE
# =============================================================================


@dataclass(frozen=True)
class Risk:
    description: str
    severity: str = "medium"


@dataclass(frozen=True)
class StepGuidance:
    """What a reviewer should look for in one step."""

    summary: str
    risks: list[Risk] = field(default_factory=list[Risk])
    review_questions: list[str] = field(default_factory=list[str])

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": "guidance",
            "summary": self.summary,
            "risks": [
                {"description": r.description, "severity": r.severity}
                for r in self.risks
            ],
            "review_questions": list(self.review_questions),
        }


@dataclass(frozen=True)
class UnparsedGuidance:
    """Model output that was not valid guidance JSON."""

    raw_text: str

    @property
    def summary(self) -> str:
        return self.raw_text

    @property
    def risks(self) -> list[Risk]:
        return []

    @property
    def review_questions(self) -> list[str]:
        return []

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": "unparsed_guidance",
            "summary": self.raw_text,
            "risks": [],
            "review_questions": [],
        }


Guidance = StepGuidance | UnparsedGuidance


# =============================================================================
# CONTEXT ITEMS
# =============================================================================


@dataclass(frozen=True)
class ContextItem:
    """One piece of supporting context shown next to a step."""

    type: str
    path: str
    snippet: str

    def to_dict(self) -> dict[str, object]:
        return {"type": self.type, "path": self.path, "snippet": self.snippet}


# =============================================================================
# CODEBASE CONTEXT
# =============================================================================


@dataclass(frozen=True)
class CodebaseContext:
    """Repository-wide summary injected into guidance prompts."""

    description: str
    tech_stack: list[str] = field(default_factory=list[str])
    architecture: str = ""
    conventions: str = ""
    testing_approach: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": "codebase_context",
            "description": self.description,
            "tech_stack": list(self.tech_stack),
            "architecture": self.architecture,
            "conventions": self.conventions,
            "testing_approach": self.testing_approach,
        }

    def render(self) -> str:
        lines = [self.description]
        if self.tech_stack:
            lines.append(f"Tech stack: {', '.join(self.tech_stack)}")
        if self.architecture:
            lines.append(f"Architecture: {self.architecture}")
        if self.conventions:
            lines.append(f"Conventions: {self.conventions}")
        return "\n".join(lines)


@dataclass(frozen=True)
class UnparsedCodebaseContext:
    raw_text: str

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": "unparsed_codebase_context",
            "description": self.raw_text,
            "tech_stack": [],
            "architecture": "",
            "conventions": "",
            "testing_approach": "",
        }

    def render(self) -> str:
        return self.raw_text


RepositoryContext = CodebaseContext | UnparsedCodebaseContext


# =============================================================================
# INLINE EXPLANATIONS
# =============================================================================


@dataclass(frozen=True)
class InlineExplanation:
    """A short note attached to one location inside a step's diff."""

    path: str
    line: int | None
    explanation: str

    def to_dict(self) -> dict[str, object]:
        return {"path": self.path, "line": self.line, "explanation": self.explanation}
