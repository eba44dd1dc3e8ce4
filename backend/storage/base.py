"""
Storage contract shared by every engine.

The base class owns id assignment, embedding generation and similarity
ranking; engines only persist and scan rows. Embeddings always have
EMBEDDING_DIMENSIONS floats; a zero vector stands in whenever the
embedder is missing or fails.
"""

import logging
import math
import time
import uuid
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from models.records import ActionDraft, ActionRecord, EventDraft, EventRecord, SessionRecord

logger = logging.getLogger(__name__)

EMBEDDING_DIMENSIONS = 768
LAST_ACTIVE_EVENT_TYPES = ("file_edit", "file_open")

Embedder = Callable[[str], Awaitable[list[float]]]


def zero_vector() -> list[float]:
    return [0.0] * EMBEDDING_DIMENSIONS


def cosine_similarity(vec_a: list[float], vec_b: list[float]) -> float:
    if len(vec_a) != len(vec_b):
        return 0.0

    dot_product = sum(a * b for a, b in zip(vec_a, vec_b))
    norm_a = math.sqrt(sum(a * a for a in vec_a))
    norm_b = math.sqrt(sum(b * b for b in vec_b))

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return dot_product / (norm_a * norm_b)


def new_id() -> str:
    return str(uuid.uuid4())


class VectorStorage(ABC):
    def __init__(self, embedder: Optional[Embedder] = None):
        self._embedder = embedder

    def set_embedder(self, embedder: Optional[Embedder]) -> None:
        self._embedder = embedder

    async def embed(self, text: str) -> list[float]:
        if self._embedder is None:
            return zero_vector()
        try:
            embedding = await self._embedder(text)
        except Exception as exc:
            logger.warning("Embedding failed, using zero vector: %s", exc)
            return zero_vector()
        if len(embedding) != EMBEDDING_DIMENSIONS:
            logger.warning(
                "Embedding has %d dimensions, expected %d, using zero vector",
                len(embedding), EMBEDDING_DIMENSIONS,
            )
            return zero_vector()
        return [float(v) for v in embedding]

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the underlying engine. Idempotent."""

    async def close(self) -> None:
        """Release the underlying engine. Idempotent."""

    # ── Writes ───────────────────────────────────────────────────────────────

    async def log_event(self, event: EventDraft) -> EventRecord:
        record = EventRecord(id=new_id(), **event.model_dump())
        await self._insert_event(record)
        return record

    async def add_action(self, action: ActionDraft) -> ActionRecord:
        embedding = await self.embed(action.description)
        record = ActionRecord(id=new_id(), embedding=embedding, **action.model_dump())
        await self._insert_action(record)
        return record

    async def create_session(self, summary: str, project: str, timestamp: Optional[int] = None) -> SessionRecord:
        embedding = await self.embed(summary)
        record = SessionRecord(
            id=new_id(),
            timestamp=timestamp if timestamp is not None else _now_ms(),
            summary=summary,
            embedding=embedding,
            project=project,
            event_count=0,
        )
        await self._insert_session(record)
        return record

    @abstractmethod
    async def update_session_summary(self, session_id: str, summary: str, embedding: list[float]) -> None:
        """Overwrite summary and embedding in place. KeyError if the id is unknown."""

    # ── Reads ────────────────────────────────────────────────────────────────

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        ...

    @abstractmethod
    async def get_recent_events(self, limit: int = 50) -> list[EventRecord]:
        """Newest first; equal timestamps keep reverse insertion order."""

    @abstractmethod
    async def get_recent_actions(self, limit: int = 10) -> list[ActionRecord]:
        ...

    @abstractmethod
    async def get_last_active_file(self) -> Optional[str]:
        ...

    async def get_similar_sessions(self, query_text: str, k: int = 5) -> list[SessionRecord]:
        query = await self.embed(query_text)
        ranked = [
            s.model_copy(update={"score": cosine_similarity(query, s.embedding)})
            for s in await self._all_sessions()
        ]
        ranked.sort(key=lambda s: (s.score, s.timestamp), reverse=True)
        return ranked[:k]

    async def get_similar_actions(self, query_text: str, k: int = 5) -> list[ActionRecord]:
        query = await self.embed(query_text)
        ranked = [
            a.model_copy(update={"score": cosine_similarity(query, a.embedding)})
            for a in await self._all_actions()
        ]
        ranked.sort(key=lambda a: (a.score, a.timestamp), reverse=True)
        return ranked[:k]

    # ── Engine hooks ─────────────────────────────────────────────────────────

    @abstractmethod
    async def _insert_event(self, record: EventRecord) -> None:
        ...

    @abstractmethod
    async def _insert_action(self, record: ActionRecord) -> None:
        ...

    @abstractmethod
    async def _insert_session(self, record: SessionRecord) -> None:
        ...

    @abstractmethod
    async def _all_sessions(self) -> list[SessionRecord]:
        ...

    @abstractmethod
    async def _all_actions(self) -> list[ActionRecord]:
        ...


def _now_ms() -> int:
    return int(time.time() * 1000)
