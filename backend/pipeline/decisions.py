"""
Fix decisions and run summaries.

A lint fix is applied automatically only when it is small and the lint
severity is low or medium; high severity is never applied; everything else
asks the developer. A follow-up LLM analysis can upgrade "prompt" to
"auto", never the other way.
"""

from typing import Iterable, Optional

from models.analysis import (
    SEVERITY_RANK,
    Analysis,
    FileAnalysisResult,
    FixAction,
    LintResult,
    PipelineSummary,
)

AUTO_FIX_MAX_DIFF = 20   # characters, exclusive

REASON_HIGH_RISK = "High-risk or security-sensitive change"
REASON_SAFE = "Minor safe formatting or style fix"
REASON_BEHAVIOR = "Potential code-behavior change"
REASON_CONFIRMED = "Confirmed by deep analysis (low risk, minor issues)"


def decide_fix_action(lint: Optional[LintResult], original: str) -> Optional[FixAction]:
    """None when the lint service produced no fix to decide about."""
    if lint is None or not lint.linted or not lint.fixed:
        return None

    diff = abs(len(lint.fixed) - len(original))
    if lint.severity == "high":
        fix_type, reason = "none", REASON_HIGH_RISK
    elif diff < AUTO_FIX_MAX_DIFF and lint.severity in ("low", "medium"):
        fix_type, reason = "auto", REASON_SAFE
    else:
        fix_type, reason = "prompt", REASON_BEHAVIOR
    return FixAction(type=fix_type, fixed_code=lint.fixed, original_code=original, reason=reason)


def confirms_low_risk(analysis: Analysis) -> bool:
    return (
        analysis.risk_level == "low"
        and len(analysis.issues) <= 2
        and all(issue.severity in ("warning", "info") for issue in analysis.issues)
    )


def apply_llm_override(fix: Optional[FixAction], analysis: Optional[Analysis]) -> Optional[FixAction]:
    if fix is None or analysis is None or fix.type != "prompt":
        return fix
    if confirms_low_risk(analysis):
        return fix.model_copy(update={"type": "auto", "reason": REASON_CONFIRMED})
    return fix


def worst_severity(levels: Iterable[Optional[str]]) -> str:
    worst = "none"
    for level in levels:
        if level and SEVERITY_RANK.get(level, 0) > SEVERITY_RANK[worst]:
            worst = level
    return worst


def summarize(results: list[FileAnalysisResult]) -> PipelineSummary:
    total_issues = 0
    files_with_issues = 0
    overall = "none"
    for result in results:
        lint_issues = len(result.lint_result.warnings) if result.lint_result else 0
        llm_issues = len(result.llm_analysis.issues) if result.llm_analysis else 0
        if lint_issues + llm_issues > 0:
            files_with_issues += 1
        total_issues += lint_issues + llm_issues
        overall = worst_severity([
            overall,
            result.lint_result.severity if result.lint_result else None,
            result.llm_analysis.risk_level if result.llm_analysis else None,
        ])
    return PipelineSummary(
        total_files=len(results),
        files_with_issues=files_with_issues,
        total_issues=total_issues,
        overall_risk_level=overall,
    )
