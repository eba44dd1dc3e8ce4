"""
Ingestion service: debounced edits, function attribution and commit capture.
"""

import asyncio
from datetime import datetime

import pytest

from bus import EventBus
from ingestion.debounce import Debouncer
from ingestion.queue import IngestionQueue
from ingestion.service import ContextIngestionService, describe_edit, should_ignore, summarize_change
from models.context import GitCommit
from models.editor import Document, Symbol, TextChange
from models.tasks import ActionTask, EventTask
from sessions.detector import SessionBoundaryDetector
from storage.memory import InMemoryStorage


AUTH_SOURCE = """import os


def login(user):
    token = os.environ["TOKEN"]
    return user.check(token)


def logout(user):
    user.clear()
"""


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _doc(path: str = "/ws/src/auth/login.py", content: str = AUTH_SOURCE) -> Document:
    return Document(file_path=path, language_id="python", content=content)


def _change(line: int, text: str = "x", range_length: int = 0) -> TextChange:
    return TextChange(start_line=line, end_line=line, text=text, range_length=range_length)


async def _settle(service: ContextIngestionService, delay: float) -> None:
    await asyncio.sleep(delay * 3)
    await service.debouncer.wait_idle()


# ── Pure helpers ─────────────────────────────────────────────────────────────


class TestHelpers:

    def test_ignored_directories(self):
        assert should_ignore("/ws/node_modules/react/index.js")
        assert should_ignore("project/.git/HEAD")
        assert should_ignore("C:\\ws\\dist\\bundle.js")
        assert not should_ignore("/ws/src/distance.py")

    def test_change_summary_is_one_based(self):
        summary = summarize_change(_doc(), _change(4, text="a\nb"))
        assert summary["range"]["start"] == {"line": 5, "char": 1}
        assert summary["text_preview"] == "a\\nb"
        assert summary["text_length"] == 3
        assert "def login" in summary["context_before"]

    def test_preview_is_capped(self):
        summary = summarize_change(_doc(), _change(0, text="y" * 500))
        assert len(summary["text_preview"]) == 200

    def test_describe_added_text(self):
        text = describe_edit("src/auth/login.py", ["login"], [_change(4, text="abc")])
        assert text.startswith("Modified function: login in src/auth/login.py")
        assert "Added 3 characters" in text
        assert 'Change: "abc"' in text

    def test_describe_mixed_change(self):
        text = describe_edit("a.py", ["f", "g"], [_change(1, text="ab", range_length=4)])
        assert "Modified function: f, g in a.py" in text
        assert "added 2, removed 4" in text


# ── File events ──────────────────────────────────────────────────────────────


class TestFileEvents:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.queue = IngestionQueue(self.storage)
        self.clock = FakeClock()
        self.service = ContextIngestionService(
            self.queue,
            workspace_root="/ws",
            debouncer=Debouncer(delay=0.02),
            clock=self.clock,
        )

    @pytest.mark.asyncio
    async def test_open_becomes_event_with_relative_path(self):
        assert await self.service.handle_file_open(_doc())
        task = self.queue._buffer[0]
        assert isinstance(task, EventTask)
        assert task.data.event_type == "file_open"
        assert task.data.file_path == "src/auth/login.py"
        assert task.data.timestamp == int(self.clock.now * 1000)
        assert task.data.metadata["language_id"] == "python"

    @pytest.mark.asyncio
    async def test_ignored_paths_are_dropped(self):
        assert not await self.service.handle_file_open(_doc("/ws/node_modules/x/index.js"))
        assert not self.service.handle_file_edit(_doc("/ws/.git/config"), [_change(0)])
        assert len(self.queue) == 0

    @pytest.mark.asyncio
    async def test_focus_and_close(self):
        await self.service.handle_file_focus(_doc())
        await self.service.handle_file_close(_doc())
        assert [t.data.event_type for t in self.queue._buffer] == ["file_focus", "file_close"]

    @pytest.mark.asyncio
    async def test_edit_without_changes_is_ignored(self):
        assert not self.service.handle_file_edit(_doc(), [])


# ── Debounced edits ──────────────────────────────────────────────────────────


class TestDebouncedEdits:

    def setup_method(self):
        self.delay = 0.02
        self.storage = InMemoryStorage()
        self.queue = IngestionQueue(self.storage, batch_size=100)
        self.clock = FakeClock()
        self.bus = EventBus()
        self.detector = SessionBoundaryDetector(self.storage, "demo", clock=self.clock)
        self.service = ContextIngestionService(
            self.queue,
            detector=self.detector,
            workspace_root="/ws",
            bus=self.bus,
            debouncer=Debouncer(delay=self.delay),
            clock=self.clock,
        )

    @pytest.mark.asyncio
    async def test_burst_collapses_to_one_event(self):
        for i in range(5):
            self.clock.now += 0.1
            self.service.handle_file_edit(_doc(), [_change(4, text=str(i))])
        self.clock.now += 2
        fired_at = int(self.clock.now * 1000)
        await _settle(self.service, self.delay)

        events = [t for t in self.queue._buffer if isinstance(t, EventTask)]
        assert len(events) == 1, f"expected one debounced event, got {len(events)}"
        assert events[0].data.event_type == "file_edit"
        assert events[0].data.timestamp == fired_at
        assert events[0].data.metadata["change_count"] == 5

    @pytest.mark.asyncio
    async def test_edit_inside_function_adds_action(self):
        self.service.handle_file_edit(_doc(), [_change(4, text="abc")])
        await _settle(self.service, self.delay)

        actions = [t for t in self.queue._buffer if isinstance(t, ActionTask)]
        assert len(actions) == 1
        action = actions[0].data
        assert action.session_id == self.detector.session_id
        assert action.files == ["src/auth/login.py"]
        assert "Modified function: login" in action.description
        event = next(t for t in self.queue._buffer if isinstance(t, EventTask))
        assert event.data.metadata["affected_functions"] == ["login"]

    @pytest.mark.asyncio
    async def test_edit_outside_functions_has_no_action(self):
        self.service.handle_file_edit(_doc(), [_change(0, text="import sys\n")])
        await _settle(self.service, self.delay)

        assert [type(t) for t in self.queue._buffer] == [EventTask]

    @pytest.mark.asyncio
    async def test_symbol_provider_failure_still_logs_event(self):
        def broken(document):
            raise RuntimeError("language server down")

        service = ContextIngestionService(
            self.queue, detector=self.detector, debouncer=Debouncer(delay=self.delay), symbol_provider=broken,
        )
        service.handle_file_edit(_doc(), [_change(4)])
        await _settle(service, self.delay)
        assert [type(t) for t in self.queue._buffer] == [EventTask]

    @pytest.mark.asyncio
    async def test_custom_symbol_provider(self):
        symbols = [Symbol(name="render", kind="function", start_line=0, end_line=100)]
        service = ContextIngestionService(
            self.queue, detector=self.detector, debouncer=Debouncer(delay=self.delay),
            symbol_provider=lambda document: symbols,
        )
        service.handle_file_edit(_doc("/ws/ui/App.tsx", "const x = 1"), [_change(0)])
        await _settle(service, self.delay)
        actions = [t for t in self.queue._buffer if isinstance(t, ActionTask)]
        assert "render" in actions[0].data.description

    @pytest.mark.asyncio
    async def test_emits_file_edited(self):
        seen = []
        self.bus.on("file_edited", lambda path, ts: seen.append((path, ts)))
        self.service.handle_file_edit(_doc(), [_change(4)])
        await _settle(self.service, self.delay)
        assert seen == [("src/auth/login.py", int(self.clock.now * 1000))]

    @pytest.mark.asyncio
    async def test_separate_files_debounce_independently(self):
        self.service.handle_file_edit(_doc("/ws/a.py"), [_change(0)])
        self.service.handle_file_edit(_doc("/ws/b.py"), [_change(0)])
        await _settle(self.service, self.delay)
        paths = sorted(t.data.file_path for t in self.queue._buffer if isinstance(t, EventTask))
        assert paths == ["a.py", "b.py"]

    @pytest.mark.asyncio
    async def test_dispose_drops_pending_edits(self):
        self.service.handle_file_edit(_doc(), [_change(4)])
        self.service.dispose()
        await _settle(self.service, self.delay)
        assert len(self.queue) == 0

    @pytest.mark.asyncio
    async def test_written_through_queue(self):
        self.service.handle_file_edit(_doc(), [_change(4)])
        await _settle(self.service, self.delay)
        await self.queue.flush()
        assert await self.storage.get_last_active_file() == "src/auth/login.py"
        assert self.storage.count_actions() == 1


# ── Commits ──────────────────────────────────────────────────────────────────


class TestCommits:

    @pytest.mark.asyncio
    async def test_commit_event_and_action(self):
        storage = InMemoryStorage()
        queue = IngestionQueue(storage)
        detector = SessionBoundaryDetector(storage, "demo")
        bus = EventBus()
        observed = []
        bus.on("commit_observed", observed.append)
        service = ContextIngestionService(queue, detector=detector, bus=bus)

        commit = GitCommit(
            hash="abc1234def", message="Fix login", author="dev", date=datetime(2024, 1, 1), files=["auth.py"],
        )
        await service.handle_git_commit(commit)

        event, action = list(queue._buffer)
        assert event.data.event_type == "git_commit"
        assert event.data.file_path == "root"
        assert event.data.metadata["hash"] == "abc1234def"
        assert action.data.description == "User committed changes: Fix login"
        assert action.data.files == ["auth.py"]
        assert observed == [commit]

    @pytest.mark.asyncio
    async def test_commit_without_detector_logs_event_only(self):
        queue = IngestionQueue(InMemoryStorage())
        service = ContextIngestionService(queue)
        await service.handle_git_commit(GitCommit(hash="abc", message="m"))
        assert [t.type for t in queue._buffer] == ["event"]


# ── Debouncer ────────────────────────────────────────────────────────────────


class TestDebouncer:

    @pytest.mark.asyncio
    async def test_only_last_callback_runs(self):
        debouncer = Debouncer(delay=0.02)
        calls = []

        def make(n):
            async def callback():
                calls.append(n)
            return callback

        for n in range(3):
            debouncer.schedule("k", make(n))
        assert "k" in debouncer
        await asyncio.sleep(0.08)
        await debouncer.wait_idle()
        assert calls == [2]
        assert len(debouncer) == 0

    @pytest.mark.asyncio
    async def test_cancel(self):
        debouncer = Debouncer(delay=0.02)
        calls = []

        async def callback():
            calls.append(1)

        debouncer.schedule("k", callback)
        assert debouncer.cancel("k")
        assert not debouncer.cancel("k")
        await asyncio.sleep(0.05)
        assert calls == []

    @pytest.mark.asyncio
    async def test_failing_callback_is_contained(self):
        debouncer = Debouncer(delay=0.01)

        async def callback():
            raise RuntimeError("boom")

        debouncer.schedule("k", callback)
        await asyncio.sleep(0.04)
        await debouncer.wait_idle()
