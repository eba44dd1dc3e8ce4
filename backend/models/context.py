from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from models.analysis import FileAnalysisResult, PipelineSummary
from models.editor import Cursor


class GitCommit(BaseModel):
    hash: str
    message: str
    author: str = "Unknown"
    date: Optional[datetime] = None
    files: list[str] = Field(default_factory=list)


class FileData(BaseModel):
    file_path: str
    content: str


class EditEntry(BaseModel):
    file: str
    timestamp: int              # ms


# ── Live state collected at the start of every pipeline run ──────────────────

class GitState(BaseModel):
    commits: list[GitCommit] = Field(default_factory=list)
    current_branch: Optional[str] = None
    uncommitted_changes: list[str] = Field(default_factory=list)


class FilesState(BaseModel):
    all_files: list[FileData] = Field(default_factory=list)
    active_file: Optional[str] = None
    active_file_content: Optional[str] = None
    open_files: list[str] = Field(default_factory=list)
    recently_edited: list[EditEntry] = Field(default_factory=list)


class WorkspaceState(BaseModel):
    root_path: Optional[str] = None
    cursor: Optional[Cursor] = None


class SessionState(BaseModel):
    start_time: datetime
    total_edits: int = 0


class CollectedContext(BaseModel):
    git: GitState = Field(default_factory=GitState)
    files: FilesState = Field(default_factory=FilesState)
    workspace: WorkspaceState = Field(default_factory=WorkspaceState)
    session: SessionState


# ── RAG input / output ───────────────────────────────────────────────────────

class RawLogInput(BaseModel):
    git_logs: list[str] = Field(default_factory=list)
    git_diff: str = ""
    open_files: list[str] = Field(default_factory=list)
    active_file: Optional[str] = None
    errors: list[str] = Field(default_factory=list)
    edit_history: list[EditEntry] = Field(default_factory=list)
    file_contents: dict[str, str] = Field(default_factory=dict)
    workspace_root: Optional[str] = None
    project_structure: Optional[str] = None
    dependencies: list[str] = Field(default_factory=list)


class PastSession(BaseModel):
    summary: str
    timestamp: int


class GeminiContext(BaseModel):
    active_file: Optional[str] = None
    recent_commits: list[str] = Field(default_factory=list)
    recent_errors: list[str] = Field(default_factory=list)
    git_diff_summary: str = ""
    edit_count: int = 0
    related_files: list[str] = Field(default_factory=list)
    open_file_contents: dict[str, str] = Field(default_factory=dict)
    project_structure: Optional[str] = None
    dependencies: list[str] = Field(default_factory=list)
    user_intent: Optional[str] = None
    relevant_past_sessions: list[PastSession] = Field(default_factory=list)


class PipelineResult(BaseModel):
    context: CollectedContext
    file_analyses: list[FileAnalysisResult] = Field(default_factory=list)
    summary: PipelineSummary = Field(default_factory=PipelineSummary)
