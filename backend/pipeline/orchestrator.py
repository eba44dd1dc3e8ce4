"""
Analysis pipeline.

    collect context -> select files -> lint + LLM (batch or sequential) -> summarize

Partial results beat failure: a file whose lint or LLM call fails still
gets a result with its errors recorded, and a failed batch call falls back
to per-file analysis. Each context sub-fetch degrades to an empty default
on its own. Only a failure in the collection step itself aborts the run,
after a pipeline_error signal.
"""

import asyncio
import logging
import time
from collections import deque
from datetime import datetime
from pathlib import PurePosixPath
from typing import Callable, Optional

from pydantic import BaseModel

from bus import EventBus
from gemini.client import GeminiClient
from ingestion.symbols import document_symbols, symbol_names
from lint.client import LintClient
from models.analysis import FileAnalysisResult, IdleImprovementsResult, LintResult
from models.context import (
    CollectedContext,
    EditEntry,
    FileData,
    FilesState,
    GeminiContext,
    GitState,
    PastSession,
    PipelineResult,
    RawLogInput,
    SessionState,
    WorkspaceState,
)
from models.editor import Document, Symbol
from pipeline.context_builder import ContextBuilder
from pipeline.decisions import apply_llm_override, decide_fix_action, summarize
from storage.base import VectorStorage
from vcs.git import GitService
from workspace.host import EditorState
from workspace.project import describe_project
from workspace.scanner import scan_workspace

logger = logging.getLogger(__name__)

RECENT_COMMITS = 10
EDIT_HISTORY_WINDOW = 20
BATCH_MAX_ERRORS = 10
IDLE_SYMBOLS = 5
IDLE_SIMILAR_K = 3
IDLE_HISTORY_WINDOW_MS = 60 * 60 * 1000
IDLE_DIFF_LINES = 50


class OrchestratorConfig(BaseModel):
    lint_service_url: str = "http://localhost:8787"
    gemini_api_key: Optional[str] = None
    gemini_model: Optional[str] = None
    analyze_all_files: bool = False
    max_files_to_analyze: int = 50
    workspace_root: Optional[str] = None


class Orchestrator:
    def __init__(
        self,
        config: OrchestratorConfig,
        gemini: GeminiClient,
        lint: LintClient,
        storage: Optional[VectorStorage] = None,
        editor: Optional[EditorState] = None,
        git: Optional[GitService] = None,
        bus: Optional[EventBus] = None,
        symbol_provider: Callable[[Document], list[Symbol]] = document_symbols,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.gemini = gemini
        self.lint = lint
        self.storage = storage
        self.editor = editor or EditorState()
        self.git = git or (GitService(config.workspace_root) if config.workspace_root else None)
        self.bus = bus or EventBus()
        self._symbols = symbol_provider
        self._clock = clock

        self._session_start = datetime.fromtimestamp(clock())
        self._edit_history: deque = deque(maxlen=EDIT_HISTORY_WINDOW)
        self._total_edits = 0
        self._ai_edits = 0
        self._unsubscribe = self.bus.on("file_edited", self.record_edit)

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Set up the LLM client (mock mode without an API key) and connect storage."""
        if self.config.gemini_api_key:
            self.gemini.initialize(self.config.gemini_api_key, self.config.gemini_model)
        else:
            logger.warning("No Gemini API key configured, using mock mode")
            self.gemini.enable_mock_mode()

        if self.storage is not None:
            try:
                await self.storage.connect()
            except Exception as exc:
                logger.warning("Failed to connect storage: %s", exc)

        self.bus.emit("initialized")

    def dispose(self) -> None:
        self._unsubscribe()

    # ── Edit accounting ──────────────────────────────────────────────────────

    def record_edit(self, file_path: str, timestamp: int) -> None:
        self._edit_history.append(EditEntry(file=file_path, timestamp=timestamp))
        self._total_edits += 1

    def increment_ai_edits(self, count: int = 1) -> int:
        self._ai_edits += count
        logger.info("AI edits count: %d", self._ai_edits)
        return self._ai_edits

    @property
    def ai_edits_count(self) -> int:
        return self._ai_edits

    @property
    def edit_history(self) -> list[EditEntry]:
        return list(self._edit_history)

    # ── Context collection ───────────────────────────────────────────────────

    async def collect_context(self, analyze_all_files: Optional[bool] = None) -> CollectedContext:
        self.bus.emit("context_collection_started")
        analyze_all = self.config.analyze_all_files if analyze_all_files is None else analyze_all_files
        snapshot = self.editor.snapshot()
        root = self.config.workspace_root

        git_state = GitState()
        if self.git is not None:
            try:
                git_state.commits = await self.git.get_recent_commits(RECENT_COMMITS)
            except Exception as exc:
                logger.warning("Failed to load commits: %s", exc)
            try:
                branch = await self.git.get_current_branch()
                git_state.current_branch = branch if branch != "unknown" else None
            except Exception as exc:
                logger.warning("Failed to get branch: %s", exc)
            try:
                git_state.uncommitted_changes = await self.git.get_uncommitted_changes()
            except Exception as exc:
                logger.warning("Failed to get uncommitted changes: %s", exc)

        all_files: list[FileData] = []
        if analyze_all and root:
            try:
                all_files = await scan_workspace(root)
            except Exception as exc:
                logger.warning("Workspace scan failed: %s", exc)
        elif snapshot.active_file and snapshot.active_content is not None:
            all_files = [FileData(file_path=snapshot.active_file, content=snapshot.active_content)]

        context = CollectedContext(
            git=git_state,
            files=FilesState(
                all_files=all_files,
                active_file=snapshot.active_file,
                active_file_content=snapshot.active_content,
                open_files=[f for f in snapshot.open_files if f != snapshot.active_file],
                recently_edited=self.edit_history,
            ),
            workspace=WorkspaceState(root_path=root, cursor=snapshot.cursor),
            session=SessionState(start_time=self._session_start, total_edits=self._total_edits),
        )
        self._validate_context(context)
        return context

    def _validate_context(self, context: CollectedContext) -> list[str]:
        warnings = []
        if not context.git.commits:
            warnings.append("No git commits found")
        if not context.git.current_branch:
            warnings.append("Current git branch not available")
        if not context.files.all_files:
            warnings.append("No workspace files found")
        if not context.workspace.root_path:
            warnings.append("No workspace root path")

        if warnings:
            logger.warning("Context collection warnings: %s", ", ".join(warnings))
            self.bus.emit("context_collection_warning", warnings)
        return warnings

    # ── Pipeline ─────────────────────────────────────────────────────────────

    async def run_pipeline(self, analyze_all_files: Optional[bool] = None) -> PipelineResult:
        self.bus.emit("pipeline_started")
        try:
            context = await self.collect_context(analyze_all_files)
        except Exception as exc:
            logger.exception("Context collection failed")
            self.bus.emit("pipeline_error", exc)
            raise

        analyze_all = self.config.analyze_all_files if analyze_all_files is None else analyze_all_files
        files = self.get_files_to_analyze(context, analyze_all)
        if not files:
            result = PipelineResult(context=context)
            self.bus.emit("pipeline_complete", result)
            return result

        if len(files) > 1 and self.gemini.is_ready():
            analyses = await self._analyze_batch(files, context)
        else:
            analyses = await self._analyze_sequential(files, context)

        result = PipelineResult(context=context, file_analyses=analyses, summary=summarize(analyses))
        logger.info(
            "Pipeline complete: %d file(s), %d issue(s), risk %s",
            result.summary.total_files, result.summary.total_issues, result.summary.overall_risk_level,
        )
        self.bus.emit("pipeline_complete", result)
        return result

    def get_files_to_analyze(self, context: CollectedContext, analyze_all: bool) -> list[FileData]:
        if analyze_all:
            return [f.model_copy() for f in context.files.all_files[:self.config.max_files_to_analyze]]

        active = context.files.active_file
        if not active:
            return []
        for f in context.files.all_files:
            if f.file_path == active or f.file_path.endswith(active):
                return [f.model_copy()]
        if context.files.active_file_content:
            return [FileData(file_path=active, content=context.files.active_file_content)]
        return []

    async def _lint(self, code: str, errors: Optional[list[str]] = None) -> Optional[LintResult]:
        try:
            return await self.lint.lint(code)
        except Exception as exc:
            logger.warning("Lint call failed: %s", exc)
            if errors is not None:
                errors.append("Lint service timeout/failure")
            return None

    async def _analyze_sequential(self, files: list[FileData], context: CollectedContext) -> list[FileAnalysisResult]:
        results = []
        for i, file in enumerate(files, start=1):
            self.bus.emit("pipeline_progress", f"Analyzing {file.file_path} ({i}/{len(files)})...")
            results.append(await self._analyze_file(file, context))
        return results

    async def _analyze_file(self, file: FileData, context: CollectedContext) -> FileAnalysisResult:
        errors: list[str] = []
        lint_result = await self._lint(file.content, errors)

        fix = decide_fix_action(lint_result, file.content)
        # A safe fix is applied before the LLM sees the code
        code = fix.fixed_code if fix is not None and fix.type == "auto" else file.content

        raw = await self._raw_log_input(file, context, lint_result)
        gem_context = await ContextBuilder.build(raw, self.storage)

        analysis = None
        if not self.gemini.is_ready():
            errors.append("LLM client not initialized")
        else:
            try:
                analysis = await self.gemini.analyze_code(code, gem_context)
                fix = apply_llm_override(fix, analysis)
            except Exception as exc:
                logger.warning("LLM analysis failed for %s: %s", file.file_path, exc)
                errors.append(f"LLM analysis failed: {exc}")

        return FileAnalysisResult(
            file_path=file.file_path,
            lint_result=lint_result,
            llm_analysis=analysis,
            errors=errors,
            fix_action=fix,
        )

    async def _analyze_batch(self, files: list[FileData], context: CollectedContext) -> list[FileAnalysisResult]:
        self.bus.emit("pipeline_progress", f"Using batch processing for {len(files)} files...")

        lint_results: dict[str, Optional[LintResult]] = {}
        for file in files:
            lint_results[file.file_path] = await self._lint(file.content)

        gem_context = await self._context_for_files(files, context, lint_results)

        fixes = {f.file_path: decide_fix_action(lint_results[f.file_path], f.content) for f in files}
        file_map = {
            f.file_path: fixes[f.file_path].fixed_code
            if fixes[f.file_path] is not None and fixes[f.file_path].type == "auto" else f.content
            for f in files
        }

        try:
            batch = await self.gemini.run_batch(file_map, gem_context)
        except Exception as exc:
            logger.warning("Batch analysis failed, falling back to sequential: %s", exc)
            return await self._analyze_sequential(files, context)

        results = []
        for file in files:
            per_file = batch.for_file(file.file_path)
            analysis = per_file.analysis if per_file else None
            results.append(FileAnalysisResult(
                file_path=file.file_path,
                lint_result=lint_results[file.file_path],
                llm_analysis=analysis,
                errors=[],
                fix_action=apply_llm_override(fixes[file.file_path], analysis),
            ))
        return results

    # ── LLM context ──────────────────────────────────────────────────────────

    async def _project_description(self, root: Optional[str]) -> tuple[Optional[str], list[str]]:
        try:
            return await asyncio.to_thread(describe_project, root)
        except Exception as exc:
            logger.warning("Project description failed: %s", exc)
            return None, []

    async def _diff(self, paths: list[str]) -> str:
        if self.git is None:
            return ""
        try:
            return await self.git.get_diff(paths)
        except Exception as exc:
            logger.warning("git diff failed: %s", exc)
            return ""

    @staticmethod
    def _commit_lines(context: CollectedContext) -> list[str]:
        return [f"{c.hash[:7]} - {c.message}" for c in context.git.commits[:RECENT_COMMITS]]

    async def _raw_log_input(
        self, file: FileData, context: CollectedContext, lint_result: Optional[LintResult]
    ) -> RawLogInput:
        structure, dependencies = await self._project_description(context.workspace.root_path)
        return RawLogInput(
            git_logs=self._commit_lines(context),
            git_diff=await self._diff([file.file_path]),
            open_files=context.files.open_files,
            active_file=file.file_path,
            errors=[w.message for w in lint_result.warnings] if lint_result else [],
            edit_history=context.files.recently_edited,
            file_contents={file.file_path: file.content},
            workspace_root=context.workspace.root_path,
            project_structure=structure,
            dependencies=dependencies,
        )

    async def _context_for_files(
        self,
        files: list[FileData],
        context: CollectedContext,
        lint_results: dict[str, Optional[LintResult]],
    ) -> GeminiContext:
        errors = [w.message for r in lint_results.values() if r for w in r.warnings]
        structure, dependencies = await self._project_description(context.workspace.root_path)
        raw = RawLogInput(
            git_logs=self._commit_lines(context),
            git_diff=await self._diff([f.file_path for f in files]),
            open_files=context.files.open_files,
            active_file=files[0].file_path if files else None,
            errors=errors[:BATCH_MAX_ERRORS],
            edit_history=context.files.recently_edited,
            workspace_root=context.workspace.root_path,
            project_structure=structure,
            dependencies=dependencies,
        )
        return await ContextBuilder.build(raw, self.storage)

    # ── Idle improvements ────────────────────────────────────────────────────

    async def analyze_for_idle_improvements(self) -> Optional[IdleImprovementsResult]:
        """
        Summary, test ideas and recommendations for the file the developer
        paused on, informed by related work from the last hour. Returns None
        when there is nothing specific to look up or the LLM is unavailable.
        """
        self.bus.emit("idle_analysis_started")
        try:
            context = await self.collect_context(analyze_all_files=False)
            history: list[PastSession] = []

            active = context.files.active_file
            if active and context.files.active_file_content:
                names = symbol_names(
                    self._symbols(Document(file_path=active, content=context.files.active_file_content)),
                    IDLE_SYMBOLS,
                )
                if not names:
                    logger.info("No symbols in %s, skipping idle analysis", active)
                    return None
                history = await self._recent_related_work(f"{PurePosixPath(active).name} {' '.join(names)}")

            unified = await self._unified_idle_context(context, history)
            if not self.gemini.is_ready():
                logger.warning("LLM client not ready, skipping idle improvements")
                return None

            result = await self.gemini.generate_idle_improvements(unified)
            self.bus.emit("idle_analysis_complete", result)
            return result
        except Exception as exc:
            logger.exception("Idle improvements analysis failed")
            self.bus.emit("idle_analysis_error", exc)
            return None

    async def _recent_related_work(self, query: str) -> list[PastSession]:
        if self.storage is None:
            return []
        try:
            sessions = await self.storage.get_similar_sessions(query, IDLE_SIMILAR_K)
            actions = await self.storage.get_similar_actions(query, IDLE_SIMILAR_K)
        except Exception as exc:
            logger.warning("Failed to query historical context: %s", exc)
            return []

        cutoff = int(self._clock() * 1000) - IDLE_HISTORY_WINDOW_MS
        related = [PastSession(summary=s.summary, timestamp=s.timestamp) for s in sessions if s.timestamp >= cutoff]
        related.extend(
            PastSession(summary=a.description, timestamp=a.timestamp) for a in actions if a.timestamp >= cutoff
        )
        logger.info("Idle lookup %r: %d related item(s) from the last hour", query, len(related))
        return related

    async def _unified_idle_context(self, context: CollectedContext, history: list[PastSession]) -> GeminiContext:
        active = context.files.active_file
        diff_summary = ""
        if active:
            diff = await self._diff([active])
            if diff.strip():
                diff_summary = "Active file diff:\n" + "\n".join(diff.strip().splitlines()[:IDLE_DIFF_LINES])
        if not diff_summary and context.git.uncommitted_changes:
            diff_summary = "Uncommitted files: " + ", ".join(context.git.uncommitted_changes[:5])
        if not diff_summary and context.git.commits:
            diff_summary = f"Last commit: {context.git.commits[0].message}"
        if not diff_summary:
            diff_summary = "No recent git activity"

        return GeminiContext(
            active_file=active,
            recent_commits=[c.message for c in context.git.commits[:3]],
            git_diff_summary=diff_summary,
            edit_count=context.session.total_edits,
            related_files=[f for f in context.files.open_files if f != active][:5],
            relevant_past_sessions=history,
            user_intent=f"Analyzing current work in {active or 'workspace'}",
        )
