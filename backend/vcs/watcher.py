"""Polls HEAD and reports each new commit once."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from models.context import GitCommit
from vcs.git import GitService

logger = logging.getLogger(__name__)

POLL_INTERVAL = 5.0   # seconds

CommitCallback = Callable[[GitCommit], Awaitable[None]]


class GitWatcher:
    def __init__(self, git: GitService, on_commit: CommitCallback, interval: float = POLL_INTERVAL):
        self._git = git
        self._on_commit = on_commit
        self._interval = interval
        self._last_head: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._last_head = await self._git.get_head()
        self._task = asyncio.create_task(self._loop())
        logger.info("Watching git HEAD in %s", self._git.repo_path)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.check()
            except Exception:
                logger.exception("Git watcher tick failed")

    async def check(self) -> bool:
        """Compare HEAD with the last seen value. Returns True if a commit was reported."""
        head = await self._git.get_head()
        if head is None or head == self._last_head:
            return False
        self._last_head = head
        commits = await self._git.get_recent_commits(1)
        if not commits:
            return False
        await self._on_commit(commits[0])
        return True
