"""In-process storage engine. Used by tests and by CONTEXTKEEPER_STORAGE=memory."""

import itertools
from typing import Optional

from models.records import ActionRecord, EventRecord, SessionRecord
from storage.base import LAST_ACTIVE_EVENT_TYPES, Embedder, VectorStorage


class InMemoryStorage(VectorStorage):
    def __init__(self, embedder: Optional[Embedder] = None):
        super().__init__(embedder)
        self._seq = itertools.count()
        self._events: list[tuple[int, EventRecord]] = []
        self._actions: list[tuple[int, ActionRecord]] = []
        self._sessions: dict[str, SessionRecord] = {}

    async def _insert_event(self, record: EventRecord) -> None:
        self._events.append((next(self._seq), record))

    async def _insert_action(self, record: ActionRecord) -> None:
        self._actions.append((next(self._seq), record))
        session = self._sessions.get(record.session_id)
        if session is not None:
            session.event_count += 1

    async def _insert_session(self, record: SessionRecord) -> None:
        self._sessions[record.id] = record.model_copy()

    async def update_session_summary(self, session_id: str, summary: str, embedding: list[float]) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(session_id)
        session.summary = summary
        session.embedding = list(embedding)

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        session = self._sessions.get(session_id)
        return session.model_copy() if session else None

    async def get_recent_events(self, limit: int = 50) -> list[EventRecord]:
        ordered = sorted(self._events, key=lambda item: (item[1].timestamp, item[0]), reverse=True)
        return [record for _, record in ordered[:limit]]

    async def get_recent_actions(self, limit: int = 10) -> list[ActionRecord]:
        ordered = sorted(self._actions, key=lambda item: (item[1].timestamp, item[0]), reverse=True)
        return [record for _, record in ordered[:limit]]

    async def get_last_active_file(self) -> Optional[str]:
        for event in await self.get_recent_events(len(self._events)):
            if event.event_type in LAST_ACTIVE_EVENT_TYPES:
                return event.file_path
        return None

    async def _all_sessions(self) -> list[SessionRecord]:
        return list(self._sessions.values())

    async def _all_actions(self) -> list[ActionRecord]:
        return [record for _, record in self._actions]

    def count_events(self) -> int:
        return len(self._events)

    def count_actions(self) -> int:
        return len(self._actions)

    def count_sessions(self) -> int:
        return len(self._sessions)
