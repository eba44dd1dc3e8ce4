"""
Runtime configuration.

Everything comes from the environment (main.py loads .env first). Tuning
constants that only matter to one component live next to that component
and can be overridden through its constructor.
"""

import os
from pathlib import Path
from typing import Optional


def _flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


GEMINI_API_KEY: Optional[str] = os.environ.get("GEMINI_API_KEY") or None
GEMINI_MODEL: Optional[str] = os.environ.get("GEMINI_MODEL") or None
GEMINI_EMBEDDING_MODEL = os.environ.get("GEMINI_EMBEDDING_MODEL", "text-embedding-004")

LINT_SERVICE_URL = os.environ.get("LINT_SERVICE_URL", "http://localhost:8787")

STORAGE_BACKEND = os.environ.get("CONTEXTKEEPER_STORAGE", "sqlite")   # "sqlite" | "memory"
DB_PATH = Path(
    os.environ.get(
        "CONTEXTKEEPER_DB_PATH",
        str(Path.home() / ".cache" / "contextkeeper" / "context.db"),
    )
).expanduser()

WORKSPACE_ROOT: Optional[str] = os.environ.get("WORKSPACE_ROOT") or None
PROJECT_NAME = os.environ.get("PROJECT_NAME") or (
    Path(WORKSPACE_ROOT).name if WORKSPACE_ROOT else "Unknown Workspace"
)

ANALYZE_ALL_FILES = _flag("ANALYZE_ALL_FILES")
MAX_FILES_TO_ANALYZE = _int("MAX_FILES_TO_ANALYZE", 50)

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = [
    o.strip()
    for o in os.environ.get("CORS_ORIGINS", "http://localhost:5173").split(",")
    if o.strip()
]
