"""
Gemini client used by the analysis pipeline and the storage embedder.

Edge cases handled:
  - Missing API key (ConfigurationError on initialize)
  - Calls before initialize (ClientNotReadyError)
  - Rate limiting and quota exhaustion (model fallback chain)
  - Malformed or fenced JSON (best-effort parse, then a "could not parse" stub)
  - Out-of-vocabulary severities and risk levels from the model
  - Empty / safety-blocked responses
"""

import logging
from typing import Any, Optional

from google import genai
from google.genai import types

from gemini import mock, prompts
from gemini.config import build_model_chain
from gemini.fallback import generate_with_fallback
from gemini.parsing import parse_json_from_text, strip_code_fences
from models.analysis import (
    Analysis,
    AnalysisIssue,
    BatchAnalysisResult,
    BatchFileResult,
    IdleImprovementsResult,
)
from models.context import GeminiContext
from storage.base import EMBEDDING_DIMENSIONS

logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 4096
PARSE_FAILURE_SUMMARY = "Could not parse analysis response"

_ISSUE_SEVERITIES = ("error", "warning", "info")
_RISK_LEVELS = ("low", "medium", "high")


class ConfigurationError(RuntimeError):
    """The client cannot be set up with the configuration it was given."""


class ClientNotReadyError(RuntimeError):
    """A capability was used before the client was initialized."""


# ── Response coercion ────────────────────────────────────────────────────────

def _extract_text(response) -> str:
    """Pull text from a response; blocked or empty responses give ""."""
    if response is None:
        return ""
    try:
        text = response.text
        if text and text.strip():
            return text.strip()
    except (ValueError, AttributeError):
        pass
    try:
        for candidate in response.candidates or []:
            if candidate.content and candidate.content.parts:
                for part in candidate.content.parts:
                    if getattr(part, "text", None) and part.text.strip():
                        return part.text.strip()
    except (AttributeError, TypeError):
        pass
    return ""


def _coerce_analysis(data: Any) -> Analysis:
    if not isinstance(data, dict):
        return Analysis(summary=PARSE_FAILURE_SUMMARY)

    issues = []
    for raw in data.get("issues") or []:
        if not isinstance(raw, dict):
            continue
        severity = str(raw.get("severity", "warning")).lower()
        try:
            line = int(raw.get("line", 0) or 0)
        except (TypeError, ValueError):
            line = 0
        issues.append(AnalysisIssue(
            line=line,
            severity=severity if severity in _ISSUE_SEVERITIES else "warning",
            message=str(raw.get("message", "")).strip(),
        ))

    risk = str(data.get("risk_level", "low")).lower()
    return Analysis(
        issues=issues,
        suggestions=[str(s) for s in data.get("suggestions") or []],
        risk_level=risk if risk in _RISK_LEVELS else "medium",
        summary=data.get("summary"),
        context_analysis=data.get("context_analysis"),
    )


def _coerce_batch(data: Any, file_map: dict[str, str]) -> BatchAnalysisResult:
    if not isinstance(data, dict):
        return BatchAnalysisResult(global_summary=PARSE_FAILURE_SUMMARY)

    files = []
    for raw in data.get("files") or []:
        if not isinstance(raw, dict) or raw.get("file") not in file_map:
            continue
        files.append(BatchFileResult(
            file=raw["file"],
            analysis=_coerce_analysis(raw.get("analysis")),
            generated_tests=raw.get("generated_tests") or None,
        ))
    return BatchAnalysisResult(files=files, global_summary=str(data.get("global_summary", "")))


def _coerce_idle(data: Any) -> IdleImprovementsResult:
    if not isinstance(data, dict):
        return IdleImprovementsResult(summary=PARSE_FAILURE_SUMMARY)
    return IdleImprovementsResult(
        summary=str(data.get("summary", "")),
        tests=[str(t) for t in data.get("tests") or []],
        recommendations=[str(r) for r in data.get("recommendations") or []],
    )


# ── Client ───────────────────────────────────────────────────────────────────

class GeminiClient:
    def __init__(self, embedding_model: str = "text-embedding-004"):
        self._client: Optional[genai.Client] = None
        self._models: list[str] = build_model_chain()
        self._embedding_model = embedding_model
        self._mock = False

    def initialize(self, api_key: Optional[str], model: Optional[str] = None) -> None:
        if not api_key:
            raise ConfigurationError("GEMINI_API_KEY is not set")
        self._client = genai.Client(api_key=api_key)
        self._models = build_model_chain(model)
        self._mock = False
        logger.info("Gemini client ready (models: %s)", ", ".join(self._models))

    def enable_mock_mode(self) -> None:
        self._mock = True
        logger.info("Gemini client running in mock mode")

    @property
    def is_mock(self) -> bool:
        return self._mock

    def is_ready(self) -> bool:
        return self._mock or self._client is not None

    def _require_ready(self) -> None:
        if not self.is_ready():
            raise ClientNotReadyError("Gemini client not initialized")

    async def _generate(self, prompt: str, system_prompt: str, json_output: bool = True) -> str:
        response = await generate_with_fallback(
            self._client,
            contents=[{"role": "user", "parts": [{"text": prompt}]}],
            config=types.GenerateContentConfig(
                system_instruction=system_prompt,
                max_output_tokens=MAX_OUTPUT_TOKENS,
                temperature=0.2,
                response_mime_type="application/json" if json_output else None,
            ),
            models=self._models,
        )
        return _extract_text(response)

    # ── Capabilities ─────────────────────────────────────────────────────────

    async def analyze_code(self, code: str, context: GeminiContext) -> Analysis:
        self._require_ready()
        if self._mock:
            return mock.mock_analysis()
        text = await self._generate(prompts.code_analysis(code, context), prompts.ANALYSIS_SYSTEM_PROMPT)
        return _coerce_analysis(parse_json_from_text(text, None))

    async def run_batch(self, file_map: dict[str, str], context: GeminiContext) -> BatchAnalysisResult:
        """One call covering every file. Files the model skips are absent from the result."""
        self._require_ready()
        if self._mock:
            return mock.mock_batch(file_map)
        text = await self._generate(prompts.batch_analysis(file_map, context), prompts.BATCH_SYSTEM_PROMPT)
        return _coerce_batch(parse_json_from_text(text, None), file_map)

    async def generate_tests(self, code: str) -> str:
        self._require_ready()
        if self._mock:
            return mock.MOCK_TESTS
        text = await self._generate(prompts.tests_for(code), prompts.TESTS_SYSTEM_PROMPT, json_output=False)
        return strip_code_fences(text)

    async def generate_idle_improvements(self, context: GeminiContext) -> IdleImprovementsResult:
        self._require_ready()
        if self._mock:
            return mock.mock_idle_improvements()
        text = await self._generate(prompts.idle_improvements(context), prompts.IDLE_SYSTEM_PROMPT)
        return _coerce_idle(parse_json_from_text(text, None))

    async def get_embedding(self, text: str) -> list[float]:
        self._require_ready()
        if self._mock:
            return mock.mock_embedding(text)
        result = await self._client.aio.models.embed_content(
            model=self._embedding_model,
            contents=text,
            config=types.EmbedContentConfig(output_dimensionality=EMBEDDING_DIMENSIONS),
        )
        return list(result.embeddings[0].values)
