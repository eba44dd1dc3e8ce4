"""
Live editor state pushed by the host.

The host owns the real editor; it reports the active document, cursor and
open tabs here so a pipeline run can read a consistent snapshot.
"""

from typing import Optional

from pydantic import BaseModel, Field

from models.editor import Cursor


class EditorSnapshot(BaseModel):
    active_file: Optional[str] = None
    active_content: Optional[str] = None
    cursor: Optional[Cursor] = None
    open_files: list[str] = Field(default_factory=list)


class EditorState:
    def __init__(self):
        self._snapshot = EditorSnapshot()

    def snapshot(self) -> EditorSnapshot:
        return self._snapshot.model_copy(deep=True)

    def update(
        self,
        active_file: Optional[str] = None,
        active_content: Optional[str] = None,
        cursor_line: Optional[int] = None,
        cursor_column: Optional[int] = None,
        open_files: Optional[list[str]] = None,
    ) -> EditorSnapshot:
        snap = self._snapshot
        if active_file is not None:
            if active_file != snap.active_file:
                snap.cursor = None
            snap.active_file = active_file or None
        if active_content is not None:
            snap.active_content = active_content
        if snap.active_file and cursor_line is not None:
            snap.cursor = Cursor(file=snap.active_file, line=cursor_line, column=cursor_column or 0)
        if open_files is not None:
            snap.open_files = list(dict.fromkeys(open_files))
        return self.snapshot()

    def note_opened(self, file_path: str) -> None:
        if file_path not in self._snapshot.open_files:
            self._snapshot.open_files.append(file_path)

    def note_closed(self, file_path: str) -> None:
        if file_path in self._snapshot.open_files:
            self._snapshot.open_files.remove(file_path)
        if self._snapshot.active_file == file_path:
            self._snapshot.active_file = None
            self._snapshot.active_content = None
            self._snapshot.cursor = None

    def focus(self, file_path: str, content: Optional[str] = None) -> None:
        if file_path != self._snapshot.active_file:
            self._snapshot.active_content = None
        self.update(active_file=file_path, active_content=content)
        self.note_opened(file_path)
