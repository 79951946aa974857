from __future__ import annotations

import logging
from typing import Any, Iterable

from pydantic import ValidationError as PydanticValidationError

from .models import AgentPlatform
from .platforms import default_agents

logger = logging.getLogger(__name__)


def _normalize_path(value: Any, fallback: str) -> str:
    text = str(value).strip() if isinstance(value, str) else ""
    return text or fallback


def _normalize_optional_path(value: Any, fallback: str | None) -> str | None:
    text = str(value).strip() if isinstance(value, str) else ""
    if text:
        return text
    return (fallback or "").strip() or None


def _as_raw(agent: AgentPlatform | dict[str, Any]) -> dict[str, Any] | None:
    if isinstance(agent, AgentPlatform):
        return agent.to_dict()
    if isinstance(agent, dict):
        return agent
    return None


def _raw_id(raw: dict[str, Any]) -> str:
    return str(raw.get("id", "")).strip()


def _merge_one(fallback: AgentPlatform, raw: dict[str, Any] | None) -> AgentPlatform:
    if raw is None:
        return fallback
    enabled = raw.get("enabled")
    icon = raw.get("icon")
    name = raw.get("name")
    return fallback.model_copy(
        update={
            "name": name.strip() if isinstance(name, str) and name.strip() else fallback.name,
            "default_path": _normalize_path(raw.get("defaultPath", raw.get("default_path")), fallback.default_path),
            "current_path": _normalize_path(raw.get("currentPath", raw.get("current_path")), fallback.current_path),
            "enabled": enabled if isinstance(enabled, bool) else fallback.enabled,
            "icon": icon if isinstance(icon, str) and icon else fallback.icon,
            "project_path": _normalize_optional_path(
                raw.get("projectPath", raw.get("project_path")), fallback.project_path
            ),
            "global_path": _normalize_optional_path(raw.get("globalPath", raw.get("global_path")), fallback.global_path),
        }
    )


def effective_agents(stored: Iterable[AgentPlatform | dict[str, Any]] | None) -> list[AgentPlatform]:
    """Merge a stored (possibly partial) platform list over the registry defaults.

    Every registry platform is present in the result, in registry order, with
    the user's customizations (paths, enabled flag) kept where they are valid.
    Stored platforms unknown to the registry are appended in their stored order.
    """
    rows: list[dict[str, Any]] = []
    for agent in stored or []:
        raw = _as_raw(agent)
        if raw is None or not _raw_id(raw):
            continue
        rows.append(raw)

    by_id: dict[str, dict[str, Any]] = {}
    for raw in rows:
        by_id.setdefault(_raw_id(raw), raw)

    merged = [_merge_one(fallback, by_id.get(fallback.id)) for fallback in default_agents()]
    known = {agent.id for agent in merged}
    for raw in rows:
        agent_id = _raw_id(raw)
        if agent_id in known:
            continue
        try:
            custom = AgentPlatform.model_validate(raw)
        except PydanticValidationError as exc:
            logger.warning("Ignoring malformed platform entry %r: %s", agent_id, exc)
            continue
        known.add(agent_id)
        merged.append(custom)
    return merged


def enabled_agents(agents: Iterable[AgentPlatform]) -> list[AgentPlatform]:
    return [agent for agent in agents if agent.enabled]


def update_agent_path(agents: Iterable[AgentPlatform], agent_id: str, path: str) -> list[AgentPlatform]:
    return [
        agent.model_copy(update={"current_path": path.strip() or agent.default_path}) if agent.id == agent_id else agent
        for agent in agents
    ]


def toggle_agent_enabled(agents: Iterable[AgentPlatform], agent_id: str) -> list[AgentPlatform]:
    return [agent.model_copy(update={"enabled": not agent.enabled}) if agent.id == agent_id else agent for agent in agents]
