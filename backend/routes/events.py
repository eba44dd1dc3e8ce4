from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from container import Container, get_services
from models.context import GitCommit
from models.editor import Document, TextChange
from models.records import EventRecord
from workspace.host import EditorSnapshot

router = APIRouter(tags=["events"])


# ---------- Request / Response schemas ----------

class DocumentEvent(BaseModel):
    file_path: str
    language_id: str = ""
    content: Optional[str] = None
    line_count: Optional[int] = None

    def to_document(self) -> Document:
        return Document(
            file_path=self.file_path,
            language_id=self.language_id,
            content=self.content or "",
            line_count=self.line_count,
        )


class EditEvent(BaseModel):
    file_path: str
    language_id: str = ""
    content: str                    # full document text after the change
    changes: list[TextChange]


class EditorStateRequest(BaseModel):
    active_file: Optional[str] = None
    active_content: Optional[str] = None
    cursor_line: Optional[int] = None
    cursor_column: Optional[int] = None
    open_files: Optional[list[str]] = None


class AcceptedResponse(BaseModel):
    accepted: bool


class LastActiveFileResponse(BaseModel):
    file_path: Optional[str] = None


# ---------- Endpoints ----------

@router.post("/events/open", response_model=AcceptedResponse)
async def file_opened(body: DocumentEvent, services: Container = Depends(get_services)):
    services.editor.note_opened(body.file_path)
    return AcceptedResponse(accepted=await services.ingestion.handle_file_open(body.to_document()))


@router.post("/events/close", response_model=AcceptedResponse)
async def file_closed(body: DocumentEvent, services: Container = Depends(get_services)):
    services.editor.note_closed(body.file_path)
    return AcceptedResponse(accepted=await services.ingestion.handle_file_close(body.to_document()))


@router.post("/events/focus", response_model=AcceptedResponse)
async def file_focused(body: DocumentEvent, services: Container = Depends(get_services)):
    """Active editor changed."""
    services.editor.focus(body.file_path, body.content)
    return AcceptedResponse(accepted=await services.ingestion.handle_file_focus(body.to_document()))


@router.post("/events/edit", response_model=AcceptedResponse)
async def file_edited(body: EditEvent, services: Container = Depends(get_services)):
    """
    Raw change notification. Bursts for the same file are debounced, so
    nothing is stored until the file has been quiet for a moment.
    """
    if services.editor.snapshot().active_file == body.file_path:
        services.editor.update(active_content=body.content)
    document = Document(file_path=body.file_path, language_id=body.language_id, content=body.content)
    return AcceptedResponse(accepted=services.ingestion.handle_file_edit(document, body.changes))


@router.post("/events/commit", status_code=200)
async def commit_observed(body: GitCommit, services: Container = Depends(get_services)):
    await services.ingestion.handle_git_commit(body)
    return {}


@router.post("/editor/state", response_model=EditorSnapshot)
async def update_editor_state(body: EditorStateRequest, services: Container = Depends(get_services)):
    return services.editor.update(**body.model_dump())


@router.get("/events/recent", response_model=list[EventRecord])
async def recent_events(
    limit: int = Query(default=50, ge=1, le=500),
    services: Container = Depends(get_services),
):
    return await services.storage.get_recent_events(limit)


@router.get("/events/last-active-file", response_model=LastActiveFileResponse)
async def last_active_file(services: Container = Depends(get_services)):
    return LastActiveFileResponse(file_path=await services.storage.get_last_active_file())
