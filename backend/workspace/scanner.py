"""Reads source files from the workspace for whole-workspace analysis."""

import asyncio
import logging
import os
from pathlib import Path

from ingestion.service import IGNORED_DIRS
from models.context import FileData

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 100_000   # bytes
SOURCE_EXTENSIONS = frozenset({
    ".py", ".pyi", ".ts", ".tsx", ".js", ".jsx", ".go", ".rs", ".java", ".rb",
    ".json", ".md", ".toml",
})


def scan_workspace_sync(root: str, max_file_size: int = MAX_FILE_SIZE) -> list[FileData]:
    """Synchronous scan, called via asyncio.to_thread. Paths are root-relative, sorted."""
    root_path = Path(root)
    files: list[FileData] = []
    skipped = 0
    for dirpath, dirnames, filenames in os.walk(root_path):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if path.suffix not in SOURCE_EXTENSIONS:
                continue
            try:
                if path.stat().st_size > max_file_size:
                    skipped += 1
                    continue
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                logger.debug("Skipping %s: %s", path, exc)
                skipped += 1
                continue
            files.append(FileData(file_path=path.relative_to(root_path).as_posix(), content=content))
    logger.info("Read %d workspace files from %s, skipped %d", len(files), root, skipped)
    return files


async def scan_workspace(root: str, max_file_size: int = MAX_FILE_SIZE) -> list[FileData]:
    return await asyncio.to_thread(scan_workspace_sync, root, max_file_size)
