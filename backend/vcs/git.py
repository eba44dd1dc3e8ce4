"""
Thin async wrapper around the git CLI.

Read operations are bounded by a timeout and never raise: they fall back to
"unknown", [] or "" so a missing git binary or a non-repo workspace only
degrades context. create_branch and commit raise GitError and leave
recovery to the caller.
"""

import asyncio
import logging
import subprocess
from datetime import datetime
from typing import Optional

from models.context import GitCommit

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 2.0             # seconds, single-target reads
GIT_DIFF_MULTI_TIMEOUT = 3.0  # seconds, diffs over several paths
GIT_WRITE_TIMEOUT = 10.0

_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"


class GitError(RuntimeError):
    pass


class GitService:
    def __init__(self, repo_path: str, timeout: float = GIT_TIMEOUT):
        self.repo_path = repo_path
        self._timeout = timeout

    def _run_sync(self, args: list[str], timeout: float) -> str:
        """Synchronous git invocation, called via asyncio.to_thread."""
        result = subprocess.run(
            ["git", *args],
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=self.repo_path,
        )
        if result.returncode != 0:
            raise GitError(result.stderr.strip() or f"git {args[0]} exited with {result.returncode}")
        return result.stdout

    async def _read(self, args: list[str], timeout: Optional[float] = None) -> Optional[str]:
        try:
            return await asyncio.to_thread(self._run_sync, args, timeout or self._timeout)
        except subprocess.TimeoutExpired:
            logger.warning("git %s timed out", args[0])
        except (GitError, OSError) as exc:
            logger.debug("git %s failed: %s", args[0], exc)
        return None

    # ── Reads ────────────────────────────────────────────────────────────────

    async def get_current_branch(self) -> str:
        out = await self._read(["rev-parse", "--abbrev-ref", "HEAD"])
        branch = out.strip() if out else ""
        return branch or "unknown"

    async def get_head(self) -> Optional[str]:
        out = await self._read(["rev-parse", "HEAD"])
        return out.strip() if out and out.strip() else None

    async def get_recent_commits(self, limit: int = 10) -> list[GitCommit]:
        fmt = _FIELD_SEP.join(["%H", "%an", "%aI", "%s"])
        out = await self._read([
            "log", f"-n{limit}", f"--pretty=format:{_RECORD_SEP}{fmt}", "--name-only",
        ])
        if not out:
            return []
        return [c for c in (_parse_commit(chunk) for chunk in out.split(_RECORD_SEP)) if c]

    async def get_uncommitted_changes(self) -> list[str]:
        out = await self._read(["status", "--porcelain"])
        if not out:
            return []
        files = []
        for line in out.splitlines():
            if len(line) > 3:
                path = line[3:]
                # Renames are reported as "old -> new"
                files.append(path.split(" -> ")[-1])
        return files

    async def get_diff(self, paths: Optional[list[str]] = None) -> str:
        """Diff against HEAD, falling back to the working-tree diff (e.g. no commits yet)."""
        paths = paths or []
        timeout = GIT_DIFF_MULTI_TIMEOUT if len(paths) > 1 else self._timeout
        out = await self._read(["diff", "HEAD", "--", *paths], timeout)
        if out is None:
            out = await self._read(["diff", "--", *paths], timeout)
        return out or ""

    # ── Writes ───────────────────────────────────────────────────────────────

    async def create_branch(self, name: str) -> None:
        await asyncio.to_thread(self._run_sync, ["checkout", "-b", name], GIT_WRITE_TIMEOUT)

    async def commit(self, message: str, files: Optional[list[str]] = None) -> None:
        await asyncio.to_thread(self._run_sync, ["add", "--", *(files or ["."])], GIT_WRITE_TIMEOUT)
        await asyncio.to_thread(self._run_sync, ["commit", "-m", message], GIT_WRITE_TIMEOUT)


def _parse_commit(chunk: str) -> Optional[GitCommit]:
    lines = [line for line in chunk.strip("\n").splitlines()]
    if not lines or _FIELD_SEP not in lines[0]:
        return None
    fields = lines[0].split(_FIELD_SEP)
    if len(fields) < 4:
        return None
    commit_hash, author, date_str, message = fields[:4]
    try:
        date = datetime.fromisoformat(date_str)
    except ValueError:
        date = None
    return GitCommit(
        hash=commit_hash,
        message=message,
        author=author or "Unknown",
        date=date,
        files=[f for f in lines[1:] if f.strip()],
    )
