"""
Workspace helpers: symbol lookup, editor state, workspace scanning and the
project description fed to the LLM.
"""

import json

from ingestion.symbols import document_symbols, find_function_at_line, symbol_names
from models.editor import Document
from workspace.host import EditorState
from workspace.project import describe_project
from workspace.scanner import scan_workspace_sync

SOURCE = """import os


class Session:
    def open(self):
        def helper():
            return 1
        return helper()

    async def close(self):
        pass


def main():
    return Session()
"""


# ── Symbols ──────────────────────────────────────────────────────────────────


class TestSymbols:

    def setup_method(self):
        self.symbols = document_symbols(Document(file_path="app/session.py", content=SOURCE))

    def test_kinds_and_lines(self):
        cls, fn = self.symbols
        assert (cls.name, cls.kind, cls.start_line) == ("Session", "class", 3)
        assert [(m.name, m.kind) for m in cls.children] == [("open", "method"), ("close", "method")]
        assert (fn.name, fn.kind) == ("main", "function")

    def test_method_lookup(self):
        assert find_function_at_line(self.symbols, 4) == "open"
        assert find_function_at_line(self.symbols, 10) == "close"
        assert find_function_at_line(self.symbols, 14) == "main"

    def test_nested_helper_is_attributed_to_enclosing_method(self):
        assert find_function_at_line(self.symbols, 6) == "open"

    def test_module_level_line_has_no_function(self):
        assert find_function_at_line(self.symbols, 0) is None
        assert find_function_at_line(self.symbols, 3) is None, "class line itself is not a function"

    def test_symbol_names_in_source_order(self):
        assert symbol_names(self.symbols) == ["Session", "open", "helper", "close", "main"]
        assert symbol_names(self.symbols, limit=2) == ["Session", "open"]

    def test_non_python_and_broken_sources(self):
        assert document_symbols(Document(file_path="a.ts", content="function f() {}")) == []
        assert document_symbols(Document(file_path="a.py", content="def broken(:")) == []
        assert document_symbols(Document(file_path="script", language_id="python", content="def f():\n    pass\n"))


# ── Editor state ─────────────────────────────────────────────────────────────


class TestEditorState:

    def setup_method(self):
        self.editor = EditorState()

    def test_focus_keeps_content_when_not_sent(self):
        self.editor.focus("a.py", "x = 1")
        self.editor.focus("a.py")
        assert self.editor.snapshot().active_content == "x = 1"

    def test_focus_other_file_drops_stale_content(self):
        self.editor.focus("a.py", "x = 1")
        self.editor.focus("b.py")
        snap = self.editor.snapshot()
        assert snap.active_file == "b.py"
        assert snap.active_content is None
        assert snap.open_files == ["a.py", "b.py"]

    def test_close_active_file(self):
        self.editor.focus("a.py", "x = 1")
        self.editor.note_closed("a.py")
        snap = self.editor.snapshot()
        assert snap.active_file is None
        assert snap.open_files == []

    def test_snapshot_is_a_copy(self):
        self.editor.note_opened("a.py")
        self.editor.snapshot().open_files.append("ghost.py")
        assert self.editor.snapshot().open_files == ["a.py"]

    def test_cursor_follows_active_file(self):
        self.editor.update(active_file="a.py", cursor_line=4, cursor_column=2)
        assert self.editor.snapshot().cursor.line == 4
        self.editor.update(active_file="b.py")
        assert self.editor.snapshot().cursor is None


# ── Scanner and project description ──────────────────────────────────────────


class TestScanner:

    def test_skips_ignored_dirs_large_and_binary_files(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "app.py").write_text("print('hi')\n")
        (tmp_path / "src" / "big.py").write_text("x" * 200)
        (tmp_path / "src" / "blob.py").write_bytes(b"\xff\xfe\x00")
        (tmp_path / ".venv").mkdir()
        (tmp_path / ".venv" / "site.py").write_text("")
        (tmp_path / "logo.svg").write_text("<svg/>")

        files = scan_workspace_sync(str(tmp_path), max_file_size=100)
        assert [f.file_path for f in files] == ["src/app.py"]


class TestProjectDescription:

    def test_no_root(self):
        assert describe_project(None) == (None, [])

    def test_empty_directory(self, tmp_path):
        assert describe_project(str(tmp_path)) == (None, [])

    def test_pyproject(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text(
            '[project]\nname = "demo"\nrequires-python = ">=3.11"\n'
            'dependencies = ["fastapi>=0.110", "httpx[http2]"]\n'
            '[project.optional-dependencies]\ntest = ["pytest"]\n'
        )
        structure, deps = describe_project(str(tmp_path))
        assert "Project: demo" in structure
        assert "Requires Python: >=3.11" in structure
        assert deps == ["fastapi", "httpx", "pytest"]

    def test_package_json_and_tsconfig(self, tmp_path):
        (tmp_path / "package.json").write_text(json.dumps({
            "name": "web",
            "scripts": {"build": "tsc"},
            "dependencies": {f"dep{i}": "1" for i in range(15)},
            "devDependencies": {f"dev{i}": "1" for i in range(15)},
        }))
        (tmp_path / "tsconfig.json").write_text("{}")
        structure, deps = describe_project(str(tmp_path))
        assert "Scripts: build" in structure
        assert "TypeScript: configured" in structure
        assert len(deps) == 20

    def test_unreadable_manifest_is_skipped(self, tmp_path):
        (tmp_path / "package.json").write_text("{not json")
        assert describe_project(str(tmp_path)) == (None, [])
