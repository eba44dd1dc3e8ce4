"""
Deterministic, network-free responses for GeminiClient mock mode.

Every fixture validates against the same models the live client returns.
"""

import hashlib
import math

from models.analysis import (
    Analysis,
    AnalysisIssue,
    BatchAnalysisResult,
    BatchFileResult,
    IdleImprovementsResult,
)
from storage.base import EMBEDDING_DIMENSIONS

MOCK_TESTS = '''
import pytest

from app import calculate_total


def test_calculate_total_sums_values():
    assert calculate_total([1, 2, 3]) == 6


def test_calculate_total_handles_empty_list():
    assert calculate_total([]) == 0
'''.strip()


def mock_analysis() -> Analysis:
    return Analysis(
        issues=[
            AnalysisIssue(line=10, severity="error", message='Undefined variable "user"'),
            AnalysisIssue(line=15, severity="warning", message="Missing null check"),
        ],
        suggestions=["Add input validation", "Handle the empty-input case explicitly"],
        risk_level="medium",
        summary="Mock analysis: one undefined name and one missing guard.",
    )


def mock_batch(file_map: dict[str, str]) -> BatchAnalysisResult:
    return BatchAnalysisResult(
        files=[
            BatchFileResult(file=path, analysis=mock_analysis(), generated_tests=MOCK_TESTS)
            for path in file_map
        ],
        global_summary=f"Mock batch analysis of {len(file_map)} file(s).",
    )


def mock_idle_improvements() -> IdleImprovementsResult:
    return IdleImprovementsResult(
        summary="Mock summary: the developer was refining request handling.",
        tests=["test that empty input returns an empty result"],
        recommendations=["Extract the validation block into its own function"],
    )


def mock_embedding(text: str) -> list[float]:
    """Unit-length vector derived from the text's hash; same text, same vector."""
    seed = hashlib.sha256(text.encode("utf-8")).digest()
    values = []
    counter = 0
    while len(values) < EMBEDDING_DIMENSIONS:
        block = hashlib.sha256(seed + counter.to_bytes(4, "big")).digest()
        values.extend((b - 127.5) / 127.5 for b in block)
        counter += 1
    values = values[:EMBEDDING_DIMENSIONS]
    norm = math.sqrt(sum(v * v for v in values)) or 1.0
    return [v / norm for v in values]
