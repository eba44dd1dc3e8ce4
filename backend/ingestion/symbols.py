"""
Symbol lookup for edit attribution.

Python sources are parsed with `ast`; other languages have no built-in
provider and yield no symbols unless the host supplies them.
"""

import ast
import logging
from typing import Optional

from models.editor import Document, Symbol

logger = logging.getLogger(__name__)

FUNCTION_KINDS = ("function", "method")


def document_symbols(document: Document) -> list[Symbol]:
    if not _is_python(document):
        return []
    try:
        tree = ast.parse(document.content)
    except (SyntaxError, ValueError) as exc:
        logger.debug("Could not parse %s for symbols: %s", document.file_path, exc)
        return []
    return _collect(tree.body, inside_class=False)


def _is_python(document: Document) -> bool:
    return document.language_id == "python" or document.file_path.endswith((".py", ".pyi"))


def _collect(nodes, inside_class: bool) -> list[Symbol]:
    symbols = []
    for node in nodes:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            symbols.append(Symbol(
                name=node.name,
                kind="method" if inside_class else "function",
                start_line=node.lineno - 1,
                end_line=(node.end_lineno or node.lineno) - 1,
                children=_collect(node.body, inside_class=False),
            ))
        elif isinstance(node, ast.ClassDef):
            symbols.append(Symbol(
                name=node.name,
                kind="class",
                start_line=node.lineno - 1,
                end_line=(node.end_lineno or node.lineno) - 1,
                children=_collect(node.body, inside_class=True),
            ))
    return symbols


def find_function_at_line(symbols: list[Symbol], line: int) -> Optional[str]:
    """
    Name of the function or method whose span contains `line` (0-based).

    Classes are descended into; the first function found on the way down
    wins, so an edit inside a nested helper is attributed to its enclosing
    function.
    """
    for symbol in symbols:
        if symbol.start_line <= line <= symbol.end_line:
            if symbol.kind in FUNCTION_KINDS:
                return symbol.name
            found = find_function_at_line(symbol.children, line)
            if found:
                return found
    return None


def symbol_names(symbols: list[Symbol], limit: int = 5) -> list[str]:
    """Function, method and class names in source order, nested ones after their parent."""
    names = []
    for symbol in symbols:
        names.append(symbol.name)
        names.extend(symbol_names(symbol.children, limit))
    return names[:limit]
