from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel

from container import Container, get_services
from gemini.client import ClientNotReadyError, ConfigurationError
from models.analysis import IdleImprovementsResult
from models.context import PipelineResult

router = APIRouter(tags=["pipeline"])


# ---------- Request / Response schemas ----------

class RunPipelineRequest(BaseModel):
    analyze_all_files: Optional[bool] = None


# ---------- Endpoints ----------

@router.post("/pipeline/run", response_model=PipelineResult)
async def run_pipeline(
    body: Optional[RunPipelineRequest] = Body(default=None),
    services: Container = Depends(get_services),
):
    """
    Lint and analyze the active file (or the whole workspace) and decide,
    per file, whether the lint fix is applied, proposed or withheld.
    """
    analyze_all = body.analyze_all_files if body else None
    try:
        return await services.orchestrator.run_pipeline(analyze_all)
    except (ClientNotReadyError, ConfigurationError) as exc:
        raise HTTPException(status_code=503, detail=str(exc))


@router.post("/pipeline/idle", response_model=Optional[IdleImprovementsResult])
async def idle_improvements(services: Container = Depends(get_services)):
    return await services.orchestrator.analyze_for_idle_improvements()
