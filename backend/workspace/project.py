"""Short project description for the LLM context: name, scripts, dependencies."""

import json
import logging
import re
import tomllib
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

MAX_DEPENDENCIES = 20

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


def _requirement_name(requirement: str) -> Optional[str]:
    match = _REQUIREMENT_NAME.match(requirement)
    return match.group(1) if match else None


def _from_pyproject(path: Path) -> tuple[list[str], list[str]]:
    data = tomllib.loads(path.read_text(encoding="utf-8"))
    project = data.get("project", {})
    structure = [f"Project: {project.get('name', 'unknown')}", "Language: Python"]
    if project.get("requires-python"):
        structure.append(f"Requires Python: {project['requires-python']}")
    if project.get("scripts"):
        structure.append(f"Scripts: {', '.join(project['scripts'])}")

    deps = [_requirement_name(d) for d in project.get("dependencies", [])]
    for extra in project.get("optional-dependencies", {}).values():
        deps.extend(_requirement_name(d) for d in extra)
    return structure, [d for d in deps if d]


def _from_package_json(path: Path) -> tuple[list[str], list[str]]:
    data = json.loads(path.read_text(encoding="utf-8"))
    structure = [f"Project: {data.get('name', 'unknown')}", f"Type: {data.get('type', 'commonjs')}"]
    if data.get("scripts"):
        structure.append(f"Scripts: {', '.join(data['scripts'])}")
    deps = [*data.get("dependencies", {}), *data.get("devDependencies", {})]
    return structure, deps


def describe_project(root: Optional[str]) -> tuple[Optional[str], list[str]]:
    """(structure summary or None, up to MAX_DEPENDENCIES dependency names)."""
    if not root:
        return None, []

    root_path = Path(root)
    structure: list[str] = []
    deps: list[str] = []
    for name, reader in (("pyproject.toml", _from_pyproject), ("package.json", _from_package_json)):
        path = root_path / name
        if not path.is_file():
            continue
        try:
            more_structure, more_deps = reader(path)
        except (OSError, ValueError) as exc:
            logger.warning("Could not read %s: %s", path, exc)
            continue
        structure.extend(more_structure)
        deps.extend(more_deps)

    if (root_path / "tsconfig.json").is_file():
        structure.append("TypeScript: configured")

    deps = list(dict.fromkeys(deps))[:MAX_DEPENDENCIES]
    return ("\n".join(structure) if structure else None), deps
