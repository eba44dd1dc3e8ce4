"""
Session boundary detection.

Exactly one session is current at a time. A new one starts when the git
branch changes, when the developer drifts into a different area of the
tree, or after a long idle gap. Rolling a session overwrites the old
record's summary and embedding in place, then creates the new record, and
only then publishes the new id. If any step fails the old id stays current
and the next boundary retries.
"""

import asyncio
import logging
import posixpath
import time
from collections import deque
from datetime import datetime
from pathlib import PurePosixPath
from typing import Callable, Optional

from bus import EventBus
from storage.base import VectorStorage
from vcs.git import GitService

logger = logging.getLogger(__name__)

IDLE_THRESHOLD = 30 * 60          # seconds
IDLE_CHECK_INTERVAL = 5 * 60      # seconds
MIN_SESSION_AGE = 5 * 60          # seconds before pattern drift may roll a session
RECENT_FILES_WINDOW = 5
MIN_RECENT_FILES = 3              # drift needs more than this many recent files

IGNORED_EXTENSIONS = (".log", ".txt", ".md", ".json", ".yaml", ".yml")
MANUAL_END = "manual_end"


def file_pattern(file_path: str) -> str:
    """First two path segments, e.g. "src/auth/login.py" -> "src/auth"."""
    parts = [p for p in PurePosixPath(file_path.replace("\\", "/")).parts if p not in ("/", ".")]
    return "/".join(parts[:2])


def is_ignored_for_drift(file_path: str) -> bool:
    return file_path.lower().endswith(IGNORED_EXTENSIONS)


def same_area(a: str, b: str) -> bool:
    """Equal areas, or one nested inside the other ("" is the base itself)."""
    if a == b or not a or not b:
        return True
    return a.startswith(b + "/") or b.startswith(a + "/")


def area_below(base: str, file_path: str) -> str:
    """First two directory segments of `file_path` beneath `base`."""
    parts = PurePosixPath(file_path).parent.relative_to(base).parts
    return "/".join(parts[:2])


def _to_posix(file_path: str) -> str:
    return file_path.replace("\\", "/")


class SessionBoundaryDetector:
    def __init__(
        self,
        storage: VectorStorage,
        project: str,
        git: Optional[GitService] = None,
        bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
        idle_threshold: float = IDLE_THRESHOLD,
        idle_check_interval: float = IDLE_CHECK_INTERVAL,
        min_session_age: float = MIN_SESSION_AGE,
        workspace_root: Optional[str] = None,
    ):
        self._storage = storage
        self._project = project
        self._git = git
        self._root = PurePosixPath(_to_posix(workspace_root)) if workspace_root else None
        self._bus = bus or EventBus()
        self._clock = clock
        self.idle_threshold = idle_threshold
        self.idle_check_interval = idle_check_interval
        self.min_session_age = min_session_age

        self._lock = asyncio.Lock()
        self._session_id: Optional[str] = None
        self._session_started_at = clock()
        self._last_activity = clock()
        self._last_branch: Optional[str] = None
        self._recent_files: deque = deque(maxlen=RECENT_FILES_WINDOW)
        self._idle_task: Optional[asyncio.Task] = None
        self._ended = False

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def last_activity(self) -> float:
        return self._last_activity

    @property
    def recent_files(self) -> list[str]:
        return list(self._recent_files)

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def start(self) -> Optional[str]:
        """Create the first session and begin idle checks. Returns the session id, if any."""
        async with self._lock:
            self._ended = False
            self._last_activity = self._clock()
            if self._git is not None:
                branch = await self._git.get_current_branch()
                self._last_branch = None if branch == "unknown" else branch
            if self._session_id is None:
                await self._open_session()
        if self._idle_task is None:
            self._idle_task = asyncio.create_task(self._idle_loop())
        return self._session_id

    async def stop(self) -> None:
        """Stop idle checks. The current session is left as is."""
        if self._idle_task is None:
            return
        self._idle_task.cancel()
        try:
            await self._idle_task
        except asyncio.CancelledError:
            pass
        self._idle_task = None

    async def end_session(self) -> bool:
        """Finalize the current session with no successor."""
        await self.stop()
        async with self._lock:
            self._ended = True
            if self._session_id is None:
                return False
            return await self._finalize(MANUAL_END, open_next=False)

    # ── Activity ─────────────────────────────────────────────────────────────

    async def record_activity(self, file_path: Optional[str] = None) -> Optional[str]:
        """
        Note activity on `file_path` and roll the session if a boundary was
        crossed. Returns the id that this activity should be attributed to.
        """
        async with self._lock:
            now = self._clock()
            if self._session_id is None and not self._ended:
                await self._open_session()

            if self._session_id is not None:
                rolled = await self._check_branch()
                if not rolled and file_path:
                    await self._check_pattern_drift(file_path, now)

            if file_path and not is_ignored_for_drift(file_path):
                self._recent_files.append(file_path)
            self._last_activity = now
            return self._session_id

    async def check_idle(self) -> bool:
        async with self._lock:
            if self._session_id is None:
                return False
            now = self._clock()
            idle_for = now - self._last_activity
            if idle_for <= self.idle_threshold:
                return False
            minutes = int(idle_for // 60)
            rolled = await self._finalize(f"Idle for {minutes} minutes")
            if rolled:
                self._last_activity = now
            return rolled

    async def _idle_loop(self) -> None:
        while True:
            await asyncio.sleep(self.idle_check_interval)
            try:
                await self.check_idle()
            except Exception:
                logger.exception("Idle check failed")

    # ── Heuristics ───────────────────────────────────────────────────────────

    async def _check_branch(self) -> bool:
        if self._git is None:
            return False
        branch = await self._git.get_current_branch()
        if branch == "unknown":
            return False
        previous = self._last_branch
        if previous is None:
            self._last_branch = branch
            return False
        if branch == previous:
            return False
        rolled = await self._finalize(f"Switched from {previous} to {branch}")
        if rolled:
            self._last_branch = branch
        return rolled

    async def _check_pattern_drift(self, file_path: str, now: float) -> bool:
        if is_ignored_for_drift(file_path):
            return False
        if now - self._session_started_at <= self.min_session_age:
            return False
        if len(self._recent_files) <= MIN_RECENT_FILES:
            return False

        current, recent_patterns, base = self._areas(file_path)
        if any(same_area(current, p) for p in recent_patterns):
            return False

        # Most common recent pattern names the area being left
        previous = max(set(recent_patterns), key=recent_patterns.count)
        if base is not None:
            current = current or PurePosixPath(base).name
            previous = previous or PurePosixPath(base).name
        rolled = await self._finalize(f"Switched from {previous} to {current}")
        if rolled:
            self._recent_files.clear()
        return rolled

    def _relative(self, file_path: str) -> str:
        path = PurePosixPath(_to_posix(file_path))
        if self._root is not None and path.is_absolute():
            try:
                return path.relative_to(self._root).as_posix()
            except ValueError:
                pass
        return path.as_posix()

    def _areas(self, file_path: str) -> tuple[str, list[str], Optional[str]]:
        """
        Area of `file_path` and of each recent file, plus the base they were
        measured from when it had to be inferred.

        Workspace-relative paths use `file_pattern`. Absolute paths outside
        any known root are measured below the deepest directory they share,
        so a host that sends absolute paths still gets drift detection.
        """
        paths = [self._relative(p) for p in (*self._recent_files, file_path)]
        if not all(PurePosixPath(p).is_absolute() for p in paths):
            patterns = [file_pattern(p) for p in paths]
            return patterns[-1], patterns[:-1], None

        base = posixpath.commonpath([posixpath.dirname(p) for p in paths])
        patterns = [area_below(base, p) for p in paths]
        return patterns[-1], patterns[:-1], base

    # ── Session records ──────────────────────────────────────────────────────

    async def _open_session(self) -> bool:
        started = self._clock()
        summary = f"Session started at {datetime.fromtimestamp(started).strftime('%Y-%m-%d %H:%M:%S')}"
        try:
            record = await self._storage.create_session(summary, self._project, timestamp=int(started * 1000))
        except Exception as exc:
            logger.warning("Could not create session: %s", exc)
            return False
        self._session_id = record.id
        self._session_started_at = started
        logger.info("Session %s started", record.id)
        self._bus.emit("session_started", record)
        return True

    async def _finalize(self, reason: str, open_next: bool = True) -> bool:
        old_id = self._session_id
        try:
            embedding = await self._storage.embed(reason)
            await self._storage.update_session_summary(old_id, reason, embedding)
        except Exception as exc:
            logger.warning("Could not finalize session %s (%s): %s", old_id, reason, exc)
            return False

        logger.info("Session %s finalized: %s", old_id, reason)
        self._bus.emit("session_finalized", old_id, reason)

        if not open_next:
            self._session_id = None
            return True
        if not await self._open_session():
            # Keep the finalized id until a new record exists
            return False
        return True
