"""
Explicit service wiring.

build_container() constructs every component once and hands each its
collaborators; main.py keeps the result on app.state for the routes.
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import Request

import config
from bus import EventBus
from gemini.client import GeminiClient
from ingestion.queue import IngestionQueue
from ingestion.service import ContextIngestionService
from lint.client import LintClient
from pipeline.orchestrator import Orchestrator, OrchestratorConfig
from sessions.detector import SessionBoundaryDetector
from storage.base import VectorStorage
from storage.memory import InMemoryStorage
from storage.sqlite import SQLiteStorage
from vcs.git import GitService
from vcs.watcher import GitWatcher
from workspace.host import EditorState

logger = logging.getLogger(__name__)


class Container:
    def __init__(
        self,
        bus: EventBus,
        storage: VectorStorage,
        gemini: GeminiClient,
        editor: EditorState,
        queue: IngestionQueue,
        detector: SessionBoundaryDetector,
        ingestion: ContextIngestionService,
        orchestrator: Orchestrator,
        watcher: Optional[GitWatcher] = None,
    ):
        self.bus = bus
        self.storage = storage
        self.gemini = gemini
        self.editor = editor
        self.queue = queue
        self.detector = detector
        self.ingestion = ingestion
        self.orchestrator = orchestrator
        self.watcher = watcher

    async def start(self) -> None:
        await self.orchestrator.initialize()
        self.storage.set_embedder(self.gemini.get_embedding)
        self.queue.start()
        await self.detector.start()
        if self.watcher is not None:
            await self.watcher.start()
        logger.info("Services started (session %s)", self.detector.session_id)

    async def shutdown(self) -> None:
        self.ingestion.dispose()
        if self.watcher is not None:
            await self.watcher.stop()
        try:
            await self.detector.end_session()
        except Exception as exc:
            logger.warning("Could not end session on shutdown: %s", exc)
        await self.queue.stop()
        written = await self.queue.flush()
        if written:
            logger.info("Flushed %d buffered task(s) on shutdown", written)
        self.orchestrator.dispose()
        await self.storage.close()


def build_storage(backend: str, db_path: Path) -> VectorStorage:
    if backend == "memory":
        return InMemoryStorage()
    if backend == "sqlite":
        return SQLiteStorage(db_path)
    raise ValueError(f"Unknown storage backend {backend!r}")


def build_container(
    storage_backend: str = config.STORAGE_BACKEND,
    db_path: Path = config.DB_PATH,
    workspace_root: Optional[str] = config.WORKSPACE_ROOT,
    project_name: str = config.PROJECT_NAME,
    gemini_api_key: Optional[str] = config.GEMINI_API_KEY,
    lint_service_url: str = config.LINT_SERVICE_URL,
    watch_git: bool = True,
) -> Container:
    bus = EventBus()
    storage = build_storage(storage_backend, db_path)
    gemini = GeminiClient(embedding_model=config.GEMINI_EMBEDDING_MODEL)
    editor = EditorState()
    git = GitService(workspace_root) if workspace_root else None

    queue = IngestionQueue(storage)
    detector = SessionBoundaryDetector(storage, project_name, git=git, bus=bus, workspace_root=workspace_root)
    ingestion = ContextIngestionService(queue, detector, workspace_root=workspace_root, bus=bus)
    orchestrator = Orchestrator(
        OrchestratorConfig(
            lint_service_url=lint_service_url,
            gemini_api_key=gemini_api_key,
            gemini_model=config.GEMINI_MODEL,
            analyze_all_files=config.ANALYZE_ALL_FILES,
            max_files_to_analyze=config.MAX_FILES_TO_ANALYZE,
            workspace_root=workspace_root,
        ),
        gemini=gemini,
        lint=LintClient(lint_service_url),
        storage=storage,
        editor=editor,
        git=git,
        bus=bus,
    )
    watcher = GitWatcher(git, ingestion.handle_git_commit) if git is not None and watch_git else None

    return Container(
        bus=bus,
        storage=storage,
        gemini=gemini,
        editor=editor,
        queue=queue,
        detector=detector,
        ingestion=ingestion,
        orchestrator=orchestrator,
        watcher=watcher,
    )


def get_services(request: Request) -> Container:
    """FastAPI dependency: the container built in the app lifespan."""
    return request.app.state.services
