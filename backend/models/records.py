from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

EventType = Literal[
    "file_open",
    "file_edit",
    "file_close",
    "file_focus",
    "git_commit",
    "function_edit",
]


class EventDraft(BaseModel):
    timestamp: int              # Unix timestamp in milliseconds, assigned at enqueue time
    event_type: EventType
    file_path: str              # workspace-relative, or "root" for repository-wide events
    metadata: dict[str, Any] = Field(default_factory=dict)


class EventRecord(EventDraft):
    id: str


class ActionDraft(BaseModel):
    session_id: str
    timestamp: int
    description: str            # natural-language summary, the text that gets embedded
    diff: list[dict[str, Any]] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)


class ActionRecord(ActionDraft):
    id: str
    embedding: list[float]
    score: Optional[float] = None   # similarity, only set on search results


class SessionRecord(BaseModel):
    id: str
    timestamp: int
    summary: str
    embedding: list[float]
    project: str
    event_count: int = 0
    score: Optional[float] = None
