from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, TypeVar

from pydantic import ValidationError as PydanticValidationError

from .catalog import MAX_LOGS, CatalogState
from .models import OperationLogEntry, Skill, WireModel, with_derived_classification

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 3
REMOVED_DEMO_SKILL_IDS = frozenset({"1", "2", "3"})
REMOVED_DEMO_SKILL_NAMES = frozenset({"Git Workflow Helper", "Rust Analyzer Pro", "Tailwind CSS IntelliSense"})

M = TypeVar("M", bound=WireModel)


def _parse_rows(raw: object, model: type[M], label: str) -> list[M]:
    if not isinstance(raw, list):
        return []
    rows: list[M] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            rows.append(model.model_validate(item))
        except PydanticValidationError as exc:
            logger.warning("Dropping malformed %s record: %s", label, exc)
    return rows


def _is_demo(skill: Skill) -> bool:
    return skill.id in REMOVED_DEMO_SKILL_IDS or skill.name in REMOVED_DEMO_SKILL_NAMES


def migrate(version: int | None, data: object) -> CatalogState:
    """Bring a persisted payload of any schema version to the current shape.

    Older payloads lose the demo seed records; every record gets a list of
    enabled agents and a derived classification. Anything that is not an
    object yields an empty state.
    """
    if not isinstance(data, dict):
        return CatalogState()
    skills = _parse_rows(data.get("skills"), Skill, "skill")
    recycle_bin = _parse_rows(data.get("recycleBin"), Skill, "recycle bin")
    if version != SCHEMA_VERSION:
        skills = [skill for skill in skills if not _is_demo(skill)]
        recycle_bin = [skill for skill in recycle_bin if not _is_demo(skill)]
    logs = _parse_rows(data.get("logs"), OperationLogEntry, "log")
    return CatalogState(
        skills=tuple(with_derived_classification(skill) for skill in skills),
        recycle_bin=tuple(with_derived_classification(skill) for skill in recycle_bin),
        logs=tuple(logs[:MAX_LOGS]),
    )


def dump_state(state: CatalogState) -> dict[str, Any]:
    return {
        "version": SCHEMA_VERSION,
        "state": {
            "skills": [skill.to_dict() for skill in state.skills],
            "recycleBin": [skill.to_dict() for skill in state.recycle_bin],
            "logs": [entry.to_dict() for entry in state.logs],
        },
    }


def load_state(path: Path) -> CatalogState:
    if not path.exists():
        return CatalogState()
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Ignoring unreadable catalog state %s: %s", path, exc)
        return CatalogState()
    if not isinstance(document, dict):
        return CatalogState()
    raw_version = document.get("version")
    version = raw_version if isinstance(raw_version, int) and not isinstance(raw_version, bool) else None
    return migrate(version, document.get("state"))


def save_state(path: Path, state: CatalogState) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(dump_state(state), ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    tmp.replace(path)
    return path
