from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from container import Container, get_services
from models.records import ActionRecord, SessionRecord

router = APIRouter(tags=["sessions"])


# ---------- Request / Response schemas ----------

class EndSessionResponse(BaseModel):
    ended: bool
    session_id: str


# ---------- Endpoints ----------

@router.get("/sessions/current", response_model=SessionRecord)
async def current_session(services: Container = Depends(get_services)):
    session_id = services.detector.session_id
    if session_id is None:
        raise HTTPException(status_code=404, detail="No active session")
    session = await services.storage.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@router.post("/sessions/end", response_model=EndSessionResponse)
async def end_session(services: Container = Depends(get_services)):
    """Finalize the current session without starting another one."""
    session_id = services.detector.session_id
    if session_id is None:
        raise HTTPException(status_code=404, detail="No active session")
    ended = await services.detector.end_session()
    return EndSessionResponse(ended=ended, session_id=session_id)


@router.get("/sessions/similar", response_model=list[SessionRecord])
async def similar_sessions(
    q: str = Query(min_length=1),
    k: int = Query(default=5, ge=1, le=50),
    services: Container = Depends(get_services),
):
    return await services.storage.get_similar_sessions(q, k)


@router.get("/actions/similar", response_model=list[ActionRecord])
async def similar_actions(
    q: str = Query(min_length=1),
    k: int = Query(default=5, ge=1, le=50),
    services: Container = Depends(get_services),
):
    return await services.storage.get_similar_actions(q, k)
