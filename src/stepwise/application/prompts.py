"""Prompt text for the AI-assisted parts of a review."""

from __future__ import annotations

from stepwise.domain.advisory.value_objects import Guidance, RepositoryContext
from stepwise.domain.review.entities import (
    ContextPack,
    PullRequestSnapshot,
    ReviewStep,
)
from stepwise.domain.review.value_objects import TreeEntry

# =============================================================================
# SYSTEM PROMPTS
# =============================================================================

SUMMARY_SYSTEM_PROMPT = """\
You are an expert code reviewer that ALWAYS responds in valid JSON.

The JSON must have this exact structure:
{
  "overview": "A brief 2-3 sentence overview of the PR goals.",
  "key_changes": ["list", "of", "important", "changes"]
}
"""

GUIDANCE_SYSTEM_PROMPT = """\
You are an expert code reviewer that ALWAYS responds in valid JSON.

The JSON must have this exact structure:
{
  "summary": "A concise summary of what this step involves.",
  "risks": [
    {"description": "Specific risk or concern", "severity": "low|medium|high"}
  ],
  "review_questions": ["questions", "the", "reviewer", "should", "answer"]
}
"""

CONTEXT_PACK_SYSTEM_PROMPT = """\
You help a reviewer understand one part of a pull request. Point out the \
code outside the diff that the reviewer should keep in mind: callers, \
related types, configuration, tests. ALWAYS respond in valid JSON:
{
  "items": [
    {"type": "caller|definition|test|config|note", "path": "file path", \
"snippet": "short excerpt or explanation"}
  ]
}
Return an empty list when nothing outside the diff matters.
"""

CODEBASE_SYSTEM_PROMPT = """\
You are an expert software engineer analyzing a codebase. You ALWAYS respond \
in valid JSON.

The JSON must have this exact structure:
{
  "description": "A 2-3 sentence description of what this project does.",
  "tech_stack": ["key", "technologies", "frameworks", "and", "languages"],
  "architecture": "How the codebase is organized.",
  "conventions": "Coding conventions, linting and formatting rules.",
  "testing_approach": "How testing is done. Say 'No testing information \
available.' if none found."
}

Be specific and concrete. Reference actual file names, packages, and \
patterns you see. Do not make up information the files do not support.
"""

CHAT_SYSTEM_PROMPT = """\
You are an expert code reviewer helping a developer understand the code \
changes in one step of a pull request: {title} ({category}).

You have the step's diff, any guidance generated for it, context from \
related files and the previous conversation. Answer clearly and concisely. \
Focus on what the code does, potential issues and best practices.
"""

# =============================================================================
# USER PROMPTS
# =============================================================================


def summary_prompt(
    pull_request: PullRequestSnapshot,
    steps: list[ReviewStep],
    codebase: RepositoryContext | None,
) -> str:
    step_list = "\n".join(f"- {s.title} ({s.category})" for s in steps)
    parts = [f"PR Title: {pull_request.title}", f"Files changed:\n{step_list}"]
    if codebase is not None:
        parts.append(f"## Codebase Context\n{codebase.render()}")
    return "\n".join(parts)


def guidance_prompt(step: ReviewStep, codebase: RepositoryContext | None) -> str:
    parts = [
        f"Step: {step.title}",
        f"Category: {step.category}",
        f"Diff:\n{step.diff_text}",
    ]
    if codebase is not None:
        parts.append(f"## Codebase Context\n{codebase.render()}")
    return "\n".join(parts)


def context_pack_prompt(step: ReviewStep) -> str:
    return f"Step: {step.title}\nCategory: {step.category}\nDiff:\n{step.diff_text}"


def codebase_prompt(
    full_name: str,
    default_branch: str,
    tree: list[TreeEntry],
    files: dict[str, str],
) -> str:
    tree_text = "\n".join(
        f"{'dir ' if e.is_directory else 'file'} {e.path}" for e in tree
    )
    files_text = "\n\n".join(
        f"### {path}\n```\n{content}\n```" for path, content in files.items()
    )
    return (
        "Analyze this codebase and provide a structured summary.\n\n"
        f"Repository: {full_name}\n"
        f"Default Branch: {default_branch}\n\n"
        f"## Directory Structure\n{tree_text or 'Not available'}\n\n"
        f"## Key Files\n{files_text or 'No key files found'}"
    )


def chat_system_prompt(step: ReviewStep) -> str:
    return CHAT_SYSTEM_PROMPT.format(title=step.title, category=step.category)


def chat_prompt(
    step: ReviewStep,
    guidance: Guidance | None,
    pack: ContextPack | None,
    question: str,
) -> str:
    parts = [
        f"Step: {step.title}",
        f"Category: {step.category}",
        f"Complexity: {step.complexity}",
        f"\nCode Diff:\n```\n{step.diff_text}\n```",
    ]
    if guidance is not None and guidance.summary:
        parts.append(f"\nAI Guidance Summary:\n{guidance.summary}")
    if guidance is not None and guidance.risks:
        risks = "\n".join(f"- {r.description}" for r in guidance.risks)
        parts.append(f"\nPotential Risks:\n{risks}")
    if pack is not None and pack.items:
        parts.append(f"\nRelated Context:\n```\n{pack.render()}\n```")
    parts.append(f"\nUser's question: {question}")
    return "\n".join(parts)
