"""
Gemini client: JSON recovery, response coercion, the model fallback chain
and mock mode. No network; the genai client is replaced with mocks.
"""

import math
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from gemini import prompts
from gemini.client import (
    PARSE_FAILURE_SUMMARY,
    ClientNotReadyError,
    ConfigurationError,
    GeminiClient,
    _coerce_analysis,
    _coerce_batch,
    _extract_text,
)
from gemini.config import DEFAULT_PRIMARY_MODEL, build_model_chain
from gemini.fallback import generate_with_fallback, is_quota_error
from gemini.mock import mock_embedding
from gemini.parsing import parse_json_from_text, strip_code_fences
from models.context import GeminiContext, PastSession


# ── JSON recovery ────────────────────────────────────────────────────────────


class TestParseJson:

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"risk_level": "low"}\n```\nThanks'
        assert parse_json_from_text(text, None) == {"risk_level": "low"}

    def test_second_fence_when_first_is_broken(self):
        text = '```\nnot json\n```\n```json\n{"a": 1}\n```'
        assert parse_json_from_text(text, None) == {"a": 1}

    def test_brace_scan(self):
        assert parse_json_from_text('Result: {"a": {"b": 2}} done', None) == {"a": {"b": 2}}

    def test_whole_text_array(self):
        assert parse_json_from_text("[1, 2]", None) == [1, 2]

    def test_garbage_returns_fallback(self):
        sentinel = {"fallback": True}
        assert parse_json_from_text("the model refused", sentinel) is sentinel
        assert parse_json_from_text("", sentinel) is sentinel
        assert parse_json_from_text("{ broken", sentinel) is sentinel

    def test_strip_code_fences(self):
        assert strip_code_fences("```python\ndef test_x():\n    pass\n```") == "def test_x():\n    pass"
        assert strip_code_fences("  plain  ") == "plain"


# ── Coercion ─────────────────────────────────────────────────────────────────


class TestCoercion:

    def test_unknown_vocabulary_is_normalized(self):
        analysis = _coerce_analysis({
            "issues": [{"line": "12", "severity": "CRITICAL", "message": " bad "}, "junk"],
            "risk_level": "extreme",
            "suggestions": ["a", 3],
        })
        assert len(analysis.issues) == 1
        assert analysis.issues[0].line == 12
        assert analysis.issues[0].severity == "warning"
        assert analysis.issues[0].message == "bad"
        assert analysis.risk_level == "medium"
        assert analysis.suggestions == ["a", "3"]

    def test_non_dict_is_parse_failure_stub(self):
        analysis = _coerce_analysis(None)
        assert analysis.summary == PARSE_FAILURE_SUMMARY
        assert analysis.issues == []

    def test_batch_drops_unknown_files(self):
        batch = _coerce_batch({
            "files": [
                {"file": "a.py", "analysis": {"risk_level": "high"}},
                {"file": "ghost.py", "analysis": {}},
            ],
            "global_summary": "ok",
        }, {"a.py": "x", "b.py": "y"})
        assert [f.file for f in batch.files] == ["a.py"]
        assert batch.for_file("a.py").analysis.risk_level == "high"
        assert batch.for_file("b.py") is None

    def test_extract_text_from_candidates(self):
        part = SimpleNamespace(text=' {"a": 1} ')
        response = SimpleNamespace(
            text=None,
            candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))],
        )
        assert _extract_text(response) == '{"a": 1}'
        assert _extract_text(None) == ""


# ── Model fallback chain ─────────────────────────────────────────────────────


class TestFallback:

    def test_chain_has_no_duplicates(self):
        assert build_model_chain() == [DEFAULT_PRIMARY_MODEL, "gemini-2.0-flash"]
        assert build_model_chain("gemini-2.5-pro")[0] == "gemini-2.5-pro"

    def test_quota_detection(self):
        assert is_quota_error(RuntimeError("429 Too Many Requests"))
        assert is_quota_error(RuntimeError("RESOURCE_EXHAUSTED"))
        assert not is_quota_error(RuntimeError("400 bad request"))

    @pytest.mark.asyncio
    async def test_moves_to_next_model_on_quota(self):
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(side_effect=[RuntimeError("429"), "ok"])
        result = await generate_with_fallback(client, contents=[], config=None, models=["m1", "m2"])
        assert result == "ok"
        models = [c.kwargs["model"] for c in client.aio.models.generate_content.call_args_list]
        assert models == ["m1", "m2"]

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(side_effect=ValueError("bad prompt"))
        with pytest.raises(ValueError):
            await generate_with_fallback(client, contents=[], config=None, models=["m1", "m2"])

    @pytest.mark.asyncio
    async def test_all_exhausted_returns_none(self):
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(side_effect=RuntimeError("RESOURCE_EXHAUSTED"))
        assert await generate_with_fallback(client, contents=[], config=None, models=["m1"]) is None


# ── Client ───────────────────────────────────────────────────────────────────


class TestGeminiClient:

    def test_initialize_requires_key(self):
        with pytest.raises(ConfigurationError):
            GeminiClient().initialize(None)

    @pytest.mark.asyncio
    async def test_calls_before_initialize_raise(self):
        client = GeminiClient()
        assert not client.is_ready()
        with pytest.raises(ClientNotReadyError):
            await client.analyze_code("x", GeminiContext())
        with pytest.raises(ClientNotReadyError):
            await client.get_embedding("x")

    @pytest.mark.asyncio
    async def test_mock_mode(self):
        client = GeminiClient()
        client.enable_mock_mode()
        analysis = await client.analyze_code("x", GeminiContext())
        assert analysis.risk_level == "medium"
        assert [i.severity for i in analysis.issues] == ["error", "warning"]

        batch = await client.run_batch({"a.py": "1", "b.py": "2"}, GeminiContext())
        assert [f.file for f in batch.files] == ["a.py", "b.py"]

        assert "def test_" in await client.generate_tests("x")
        assert (await client.generate_idle_improvements(GeminiContext())).recommendations

    @pytest.mark.asyncio
    async def test_live_analysis_parses_fenced_response(self):
        client = GeminiClient()
        client._client = MagicMock()
        response = SimpleNamespace(text='```json\n{"issues": [], "risk_level": "low", "summary": "fine"}\n```')
        client._client.aio.models.generate_content = AsyncMock(return_value=response)

        analysis = await client.analyze_code("x = 1", GeminiContext(active_file="a.py"))
        assert analysis.risk_level == "low"
        assert analysis.summary == "fine"

    @pytest.mark.asyncio
    async def test_live_analysis_unparseable_response(self):
        client = GeminiClient()
        client._client = MagicMock()
        client._client.aio.models.generate_content = AsyncMock(return_value=SimpleNamespace(text="I cannot help"))
        analysis = await client.analyze_code("x = 1", GeminiContext())
        assert analysis.summary == PARSE_FAILURE_SUMMARY

    @pytest.mark.asyncio
    async def test_live_embedding(self):
        client = GeminiClient()
        client._client = MagicMock()
        client._client.aio.models.embed_content = AsyncMock(
            return_value=SimpleNamespace(embeddings=[SimpleNamespace(values=[0.5] * 768)])
        )
        assert await client.get_embedding("hello") == [0.5] * 768


class TestMockEmbedding:

    def test_deterministic_unit_vector(self):
        vec = mock_embedding("auth refactor")
        assert len(vec) == 768
        assert vec == mock_embedding("auth refactor")
        assert vec != mock_embedding("billing")
        assert math.isclose(math.sqrt(sum(v * v for v in vec)), 1.0, rel_tol=1e-9)


# ── Prompts ──────────────────────────────────────────────────────────────────


class TestPrompts:

    def test_context_mentions_past_sessions(self):
        ctx = GeminiContext(
            active_file="a.py",
            relevant_past_sessions=[PastSession(summary="Switched from main to auth", timestamp=1)],
        )
        text = prompts.idle_improvements(ctx)
        assert "Switched from main to auth" in text
        assert "Active file: a.py" in text

    def test_codebase_block_puts_active_file_first(self):
        block = prompts.build_codebase_block("b.py", {"a.py": "A", "b.py": "B"})
        assert block.index("ACTIVE FILE: b.py") < block.index("--- a.py ---")

    def test_truncate_marks_partial_content(self):
        assert prompts.truncate("abcdef", 3).startswith("abc\n... [truncated, 6 chars total]")
        assert prompts.truncate("abc", 3) == "abc"
