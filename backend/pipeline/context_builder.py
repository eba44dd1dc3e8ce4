"""
Bounded LLM context assembly with retrieval of related past sessions.

build() has no side effects beyond one optional similarity read against
storage. relevant_past_sessions is always a list, empty when storage is
absent, when there is nothing to query with, or when the query fails.
"""

import logging
from typing import Optional

from models.context import GeminiContext, PastSession, RawLogInput
from storage.base import VectorStorage

logger = logging.getLogger(__name__)

MAX_COMMITS = 10
MAX_ERRORS = 5
MAX_DIFF_CHARS = 8000
TRUNCATION_MARKER = "\n... [diff truncated]"
PAST_SESSIONS_K = 3
DIFF_QUERY_CHARS = 100


def truncate_diff(diff: str, limit: int = MAX_DIFF_CHARS) -> str:
    if len(diff) <= limit:
        return diff
    return diff[:limit] + TRUNCATION_MARKER


def similarity_query(raw: RawLogInput) -> Optional[str]:
    if raw.active_file:
        return f"Working on {raw.active_file}"
    if raw.git_diff:
        return raw.git_diff[:DIFF_QUERY_CHARS]
    return None


class ContextBuilder:
    @staticmethod
    async def build(raw: RawLogInput, storage: Optional[VectorStorage] = None) -> GeminiContext:
        past_sessions: list[PastSession] = []
        query = similarity_query(raw)
        if storage is not None and query:
            try:
                similar = await storage.get_similar_sessions(query, PAST_SESSIONS_K)
                past_sessions = [PastSession(summary=s.summary, timestamp=s.timestamp) for s in similar]
            except Exception as exc:
                logger.warning("Past session lookup failed: %s", exc)
                past_sessions = []

        return GeminiContext(
            active_file=raw.active_file,
            recent_commits=raw.git_logs[:MAX_COMMITS],
            recent_errors=raw.errors[:MAX_ERRORS],
            git_diff_summary=truncate_diff(raw.git_diff),
            edit_count=len(raw.edit_history),
            related_files=[f for f in raw.open_files if f != raw.active_file],
            open_file_contents=dict(raw.file_contents),
            project_structure=raw.project_structure,
            dependencies=list(raw.dependencies),
            relevant_past_sessions=past_sessions,
        )
