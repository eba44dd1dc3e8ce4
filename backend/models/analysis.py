from typing import Literal, Optional

from pydantic import BaseModel, Field

Severity = Literal["none", "low", "medium", "high"]
RiskLevel = Literal["low", "medium", "high"]
IssueSeverity = Literal["error", "warning", "info"]
FixType = Literal["auto", "prompt", "none"]

SEVERITY_RANK: dict[str, int] = {"none": 0, "low": 1, "medium": 2, "high": 3}


# ── Lint service ─────────────────────────────────────────────────────────────

class LintWarning(BaseModel):
    message: str
    severity: str = "low"


class LintResult(BaseModel):
    fixed: str = ""
    language: str = "unknown"   # "js" | "ts" | "python" | "go" | "json" | "unknown"
    linted: bool = False
    severity: Severity = "none"
    warnings: list[LintWarning] = Field(default_factory=list)


# ── LLM analysis ─────────────────────────────────────────────────────────────

class AnalysisIssue(BaseModel):
    line: int = 0
    severity: IssueSeverity = "warning"
    message: str = ""


class Analysis(BaseModel):
    issues: list[AnalysisIssue] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    risk_level: RiskLevel = "low"
    summary: Optional[str] = None
    context_analysis: Optional[str] = None


class BatchFileResult(BaseModel):
    file: str
    analysis: Analysis
    generated_tests: Optional[str] = None


class BatchAnalysisResult(BaseModel):
    files: list[BatchFileResult] = Field(default_factory=list)
    global_summary: str = ""

    def for_file(self, file_path: str) -> Optional[BatchFileResult]:
        for result in self.files:
            if result.file == file_path:
                return result
        return None


class IdleImprovementsResult(BaseModel):
    summary: str = ""
    tests: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


# ── Pipeline output ──────────────────────────────────────────────────────────

class FixAction(BaseModel):
    type: FixType
    fixed_code: str
    original_code: str
    reason: str


class FileAnalysisResult(BaseModel):
    file_path: str
    lint_result: Optional[LintResult] = None
    llm_analysis: Optional[Analysis] = None
    errors: list[str] = Field(default_factory=list)
    fix_action: Optional[FixAction] = None


class PipelineSummary(BaseModel):
    total_files: int = 0
    files_with_issues: int = 0
    total_issues: int = 0
    overall_risk_level: Severity = "none"
