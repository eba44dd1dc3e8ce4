"""
Prompt templates for code analysis, batch review, test generation and
idle-time improvements.

Every template asks for JSON only; gemini.parsing still recovers when the
model wraps it in fences or prose.
"""

import json
from typing import Optional

from models.context import GeminiContext

MAX_CONTEXT_CHARS = 120_000   # ~30k tokens, well under the model window
MAX_FILE_CHARS = 20_000       # Truncate any single file beyond this


# ── System prompts ───────────────────────────────────────────────────────────

ANALYSIS_SYSTEM_PROMPT = """
You are a senior engineer reviewing code inside a developer's editor. You see the
file under review plus recent activity: commits, diff, errors, edit frequency, the
project's dependencies and summaries of related past work sessions.

Report concrete problems only. Each issue needs a 1-based line number, a severity
("error", "warning" or "info") and a one-sentence message. Suggestions are short
imperative sentences. risk_level is "low", "medium" or "high" and reflects how likely
the current code is to break behavior.

Return ONLY valid JSON:
{
  "issues": [{"line": <int>, "severity": "<error|warning|info>", "message": "<string>"}],
  "suggestions": ["<string>"],
  "risk_level": "<low|medium|high>",
  "summary": "<one or two sentences>",
  "context_analysis": "<how recent activity relates to this code>"
}
""".strip()

BATCH_SYSTEM_PROMPT = """
You are a senior engineer reviewing several files from one workspace at once. Use
the shared activity context (commits, diff, past sessions) to relate the files to
each other. For every file produce the same analysis you would for a single file,
plus a small pytest-style test module when the file has testable functions.

Return ONLY valid JSON:
{
  "files": [
    {
      "file": "<path exactly as given>",
      "analysis": {
        "issues": [{"line": <int>, "severity": "<error|warning|info>", "message": "<string>"}],
        "suggestions": ["<string>"],
        "risk_level": "<low|medium|high>",
        "summary": "<string>"
      },
      "generated_tests": "<test source or empty string>"
    }
  ],
  "global_summary": "<two or three sentences about the change set as a whole>"
}
""".strip()

TESTS_SYSTEM_PROMPT = """
You write focused unit tests. Given source code, return a single test module that
exercises the public behavior, including edge cases. Use pytest for Python and the
project's usual framework otherwise. Return only the code, no explanation.
""".strip()

IDLE_SYSTEM_PROMPT = """
The developer has paused. Using the active file, its key symbols, recent git activity
and related past sessions, summarize what they were working on, propose tests worth
writing next and list concrete recommendations.

Return ONLY valid JSON:
{
  "summary": "<two sentences>",
  "tests": ["<test description or code>"],
  "recommendations": ["<string>"]
}
""".strip()


# ── Helpers ──────────────────────────────────────────────────────────────────

def truncate(content: str, limit: int) -> str:
    """Truncate content with a visible marker so the model knows it's partial."""
    if len(content) <= limit:
        return content
    return content[:limit] + f"\n... [truncated, {len(content)} chars total]"


def build_codebase_block(active_file: Optional[str], file_contents: dict[str, str]) -> str:
    """
    Render file contents for the prompt.

    The active file goes first at full size; the rest fill the remaining
    budget in sorted order and get a "[skipped]" marker once it runs out.
    """
    if not file_contents:
        return ""

    parts = []
    budget = MAX_CONTEXT_CHARS

    if active_file and active_file in file_contents:
        block = f"--- ACTIVE FILE: {active_file} ---\n" + truncate(file_contents[active_file], MAX_FILE_CHARS)
        parts.append(block)
        budget -= len(block)

    for path in sorted(file_contents):
        if path == active_file:
            continue
        header = f"\n--- {path} ---"
        if budget <= len(header) + 100:
            parts.append(f"{header} [skipped, context limit reached]")
            continue
        block = f"{header}\n" + truncate(file_contents[path], min(MAX_FILE_CHARS, budget - len(header)))
        parts.append(block)
        budget -= len(block)

    return "=== CODEBASE ===\n" + "\n".join(parts) + "\n=== END CODEBASE ===\n"


def format_context(context: GeminiContext) -> str:
    lines = [f"Active file: {context.active_file or 'none'}"]
    if context.user_intent:
        lines.append(f"Developer intent: {context.user_intent}")
    if context.recent_commits:
        lines.append("Recent commits:\n" + "\n".join(f"  {c}" for c in context.recent_commits))
    if context.recent_errors:
        lines.append("Recent errors:\n" + "\n".join(f"  {e}" for e in context.recent_errors))
    lines.append(f"Edits this session: {context.edit_count}")
    if context.related_files:
        lines.append("Related open files: " + ", ".join(context.related_files))
    if context.project_structure:
        lines.append(f"Project: {context.project_structure}")
    if context.dependencies:
        lines.append("Dependencies: " + ", ".join(context.dependencies))
    if context.relevant_past_sessions:
        lines.append("Related past sessions:\n" + "\n".join(
            f"  - {s.summary}" for s in context.relevant_past_sessions
        ))
    if context.git_diff_summary:
        lines.append("Current diff:\n" + context.git_diff_summary)
    return "\n".join(lines)


# ── Templates ────────────────────────────────────────────────────────────────

def code_analysis(code: str, context: GeminiContext) -> str:
    return (
        "=== ACTIVITY CONTEXT ===\n"
        f"{format_context(context)}\n"
        "=== END ACTIVITY CONTEXT ===\n\n"
        f"{build_codebase_block(context.active_file, context.open_file_contents)}\n"
        f"Code under review:\n```\n{truncate(code, MAX_FILE_CHARS)}\n```"
    )


def batch_analysis(file_map: dict[str, str], context: GeminiContext) -> str:
    return (
        "=== ACTIVITY CONTEXT ===\n"
        f"{format_context(context)}\n"
        "=== END ACTIVITY CONTEXT ===\n\n"
        f"Files under review: {json.dumps(sorted(file_map))}\n\n"
        f"{build_codebase_block(context.active_file, file_map)}"
    )


def tests_for(code: str) -> str:
    return f"Write tests for this code:\n```\n{truncate(code, MAX_FILE_CHARS)}\n```"


def idle_improvements(context: GeminiContext) -> str:
    return f"Here is what the developer was doing before going idle:\n\n{format_context(context)}"
