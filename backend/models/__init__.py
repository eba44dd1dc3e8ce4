from models.analysis import (
    Analysis,
    AnalysisIssue,
    BatchAnalysisResult,
    BatchFileResult,
    FileAnalysisResult,
    FixAction,
    IdleImprovementsResult,
    LintResult,
    LintWarning,
    PipelineSummary,
)
from models.context import (
    CollectedContext,
    FileData,
    GeminiContext,
    GitCommit,
    PastSession,
    PipelineResult,
    RawLogInput,
)
from models.editor import Cursor, Document, Symbol, TextChange
from models.records import ActionDraft, ActionRecord, EventDraft, EventRecord, SessionRecord
from models.tasks import ActionTask, EventTask, IngestionTask

__all__ = [
    "ActionDraft", "ActionRecord", "EventDraft", "EventRecord", "SessionRecord",
    "ActionTask", "EventTask", "IngestionTask",
    "Cursor", "Document", "Symbol", "TextChange",
    "Analysis", "AnalysisIssue", "BatchAnalysisResult", "BatchFileResult",
    "FileAnalysisResult", "FixAction", "IdleImprovementsResult", "LintResult",
    "LintWarning", "PipelineSummary",
    "CollectedContext", "FileData", "GeminiContext", "GitCommit", "PastSession",
    "PipelineResult", "RawLogInput",
]
