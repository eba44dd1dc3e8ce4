"""
Turns host notifications into ingestion tasks.

Open, close and focus become events straight away. Edits are debounced per
file: the changes of a burst accumulate and, once the file has been quiet
for the debounce delay, one file_edit event is queued plus one action when
the edit lands inside a known function. Commits become a git_commit event
on "root" and a searchable action.
"""

import logging
import time
from pathlib import Path, PurePath
from typing import Callable, Optional

from bus import EventBus
from ingestion.debounce import Debouncer
from ingestion.queue import IngestionQueue
from ingestion.symbols import document_symbols, find_function_at_line
from models.context import GitCommit
from models.editor import Document, Symbol, TextChange
from models.records import ActionDraft, EventDraft
from models.tasks import ActionTask, EventTask
from sessions.detector import SessionBoundaryDetector

logger = logging.getLogger(__name__)

IGNORED_DIRS = frozenset({
    ".git", "node_modules", ".next", "dist", "out", "build", "coverage",
    "__pycache__", ".venv", "venv", ".mypy_cache", ".pytest_cache",
})

PREVIEW_CHARS = 200
CONTEXT_LINES = 3
SNIPPET_MAX = 100

SymbolProvider = Callable[[Document], list[Symbol]]


def should_ignore(file_path: str) -> bool:
    return any(part in IGNORED_DIRS for part in PurePath(file_path.replace("\\", "/")).parts)


def summarize_change(document: Document, change: TextChange) -> dict:
    """Editor change -> stored diff entry, with 1-based positions and nearby lines."""
    lines = document.lines()
    start, end = change.start_line, change.end_line
    before = "\n".join(lines[max(0, start - CONTEXT_LINES):start]) if start > 0 else ""
    after = "\n".join(lines[end + 1:end + 1 + CONTEXT_LINES]) if end < len(lines) - 1 else ""
    return {
        "range": {
            "start": {"line": start + 1, "char": change.start_character + 1},
            "end": {"line": end + 1, "char": change.end_character + 1},
        },
        "text_length": len(change.text),
        "range_length": change.range_length,
        "text_preview": change.text[:PREVIEW_CHARS].replace("\n", "\\n"),
        "context_before": before[:PREVIEW_CHARS],
        "context_after": after[:PREVIEW_CHARS],
    }


def describe_edit(relative_path: str, functions: list[str], changes: list[TextChange]) -> str:
    description = f"Modified function: {', '.join(functions)} in {relative_path}"

    added = sum(len(c.text) for c in changes)
    removed = sum(c.range_length for c in changes)
    if added and not removed:
        description += f". Added {added} characters"
    elif removed and not added:
        description += f". Removed {removed} characters"
    elif added and removed:
        description += f". Modified code (added {added}, removed {removed} chars)"

    if changes and 0 < len(changes[-1].text) < SNIPPET_MAX:
        snippet = changes[-1].text.replace("\n", " ").strip()
        if snippet:
            description += f'. Change: "{snippet}"'
    return description


class ContextIngestionService:
    def __init__(
        self,
        queue: IngestionQueue,
        detector: Optional[SessionBoundaryDetector] = None,
        workspace_root: Optional[str] = None,
        bus: Optional[EventBus] = None,
        debouncer: Optional[Debouncer] = None,
        symbol_provider: SymbolProvider = document_symbols,
        clock: Callable[[], float] = time.time,
    ):
        self._queue = queue
        self._detector = detector
        self._root = Path(workspace_root).resolve() if workspace_root else None
        self._bus = bus or EventBus()
        self._debouncer = debouncer or Debouncer()
        self._symbols = symbol_provider
        self._clock = clock
        # Per-file state for the burst currently being debounced
        self._pending: dict[str, tuple[Document, list[TextChange]]] = {}

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    def relative_path(self, file_path: str) -> str:
        if self._root is None:
            return file_path
        path = Path(file_path)
        if not path.is_absolute():
            return path.as_posix()
        try:
            return path.resolve().relative_to(self._root).as_posix()
        except ValueError:
            return path.as_posix()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def _note_activity(self, relative_path: Optional[str]) -> Optional[str]:
        if self._detector is None:
            return None
        try:
            return await self._detector.record_activity(relative_path)
        except Exception as exc:
            logger.warning("Session detector failed on %s: %s", relative_path, exc)
            return self._detector.session_id

    # ── Handlers ─────────────────────────────────────────────────────────────

    async def handle_file_open(self, document: Document) -> bool:
        return await self._simple_event("file_open", document, {
            "language_id": document.language_id,
            "line_count": document.total_lines(),
        })

    async def handle_file_focus(self, document: Document) -> bool:
        return await self._simple_event("file_focus", document, {
            "language_id": document.language_id,
            "line_count": document.total_lines(),
        })

    async def handle_file_close(self, document: Document) -> bool:
        return await self._simple_event("file_close", document, {"language_id": document.language_id})

    async def _simple_event(self, event_type: str, document: Document, metadata: dict) -> bool:
        if should_ignore(document.file_path):
            return False
        relative = self.relative_path(document.file_path)
        self._queue.enqueue(EventTask(data=EventDraft(
            timestamp=self._now_ms(),
            event_type=event_type,
            file_path=relative,
            metadata=metadata,
        )))
        logger.debug("[%s] %s", event_type.upper(), relative)
        await self._note_activity(relative)
        return True

    def handle_file_edit(self, document: Document, changes: list[TextChange]) -> bool:
        """Schedule (or reschedule) the debounced write for this file."""
        if should_ignore(document.file_path) or not changes:
            return False
        key = document.file_path
        _, accumulated = self._pending.get(key, (document, []))
        self._pending[key] = (document, accumulated + list(changes))
        self._debouncer.schedule(key, lambda: self._process_file_edit(key))
        return True

    async def _process_file_edit(self, key: str) -> None:
        pending = self._pending.pop(key, None)
        if pending is None:
            return
        document, changes = pending
        relative = self.relative_path(document.file_path)

        functions: list[str] = []
        try:
            symbols = self._symbols(document)
            for change in changes:
                name = find_function_at_line(symbols, change.start_line)
                if name and name not in functions:
                    functions.append(name)
        except Exception as exc:
            logger.warning("Symbol lookup failed for %s: %s", relative, exc)

        summary = [summarize_change(document, c) for c in changes]
        timestamp = self._now_ms()
        self._queue.enqueue(EventTask(data=EventDraft(
            timestamp=timestamp,
            event_type="file_edit",
            file_path=relative,
            metadata={
                "language_id": document.language_id,
                "change_count": len(changes),
                "changes": summary,
                "affected_functions": functions,
            },
        )))

        session_id = await self._note_activity(relative)
        if functions:
            if session_id is None:
                logger.warning("No active session, dropping action for %s", relative)
            else:
                self._queue.enqueue(ActionTask(data=ActionDraft(
                    session_id=session_id,
                    timestamp=timestamp,
                    description=describe_edit(relative, functions, changes),
                    diff=summary,
                    files=[relative],
                )))

        logger.info("[FILE_EDIT] %s (%d changes)%s", relative, len(changes),
                    f" in {', '.join(functions)}" if functions else "")
        self._bus.emit("file_edited", relative, timestamp)

    async def handle_git_commit(self, commit: GitCommit) -> None:
        timestamp = self._now_ms()
        self._queue.enqueue(EventTask(data=EventDraft(
            timestamp=timestamp,
            event_type="git_commit",
            file_path="root",
            metadata={
                "hash": commit.hash,
                "message": commit.message,
                "author": commit.author,
                "files": commit.files,
            },
        )))
        session_id = await self._note_activity(None)
        if session_id is None:
            logger.warning("No active session, dropping action for commit %s", commit.hash[:7])
        else:
            self._queue.enqueue(ActionTask(data=ActionDraft(
                session_id=session_id,
                timestamp=timestamp,
                description=f"User committed changes: {commit.message}",
                diff=[],
                files=list(commit.files),
            )))
        logger.info("[GIT_COMMIT] %s - %s", commit.hash[:7], commit.message)
        self._bus.emit("commit_observed", commit)

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def dispose(self) -> None:
        """Drop every pending debounced edit."""
        self._debouncer.cancel_all()
        self._pending.clear()
