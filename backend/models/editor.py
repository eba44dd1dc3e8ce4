from typing import Optional

from pydantic import BaseModel, Field


class Document(BaseModel):
    file_path: str
    language_id: str = ""
    content: str = ""
    line_count: Optional[int] = None

    def lines(self) -> list[str]:
        return self.content.split("\n")

    def total_lines(self) -> int:
        if self.line_count is not None:
            return self.line_count
        return len(self.lines())


class TextChange(BaseModel):
    # 0-based positions, the way editor hosts report them
    start_line: int
    start_character: int = 0
    end_line: int
    end_character: int = 0
    text: str = ""
    range_length: int = 0       # number of characters replaced


class Symbol(BaseModel):
    name: str
    kind: str                   # "function" | "method" | "class"
    start_line: int             # 0-based, inclusive
    end_line: int
    children: list["Symbol"] = Field(default_factory=list)


class Cursor(BaseModel):
    file: str
    line: int
    column: int
