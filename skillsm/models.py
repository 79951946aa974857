from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

InstallSource = Literal["platform", "external"]
LogAction = Literal["install", "uninstall", "enable", "disable", "sync", "backup"]
LogStatus = Literal["success", "error"]
ProgressStatus = Literal["loading", "success", "error"]


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def parse_timestamp(raw: str | None) -> datetime | None:
    if not raw:
        return None
    text = str(raw).strip()
    if text[-1:] in {"Z", "z"}:
        text = text[:-1] + "+00:00"
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def skill_key(name: str) -> str:
    """Dedup key for matching skills across sources: trimmed and case-folded."""
    return str(name).strip().casefold()


def unique_ids(values: Iterable[str]) -> list[str]:
    rows: list[str] = []
    seen: set[str] = set()
    for raw in values:
        key = str(raw).strip()
        if not key or key in seen:
            continue
        seen.add(key)
        rows.append(key)
    return rows


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Skill(WireModel):
    id: str
    name: str
    source_url: str | None = Field(default=None, alias="sourceUrl")
    install_source: InstallSource | None = Field(default=None, alias="installSource")
    is_adopted: bool | None = Field(default=None, alias="isAdopted")
    enabled_agents: list[str] = Field(default_factory=list, alias="enabledAgents")
    last_sync: str | None = Field(default=None, alias="lastSync")
    last_update: str | None = Field(default=None, alias="lastUpdate")
    deleted_at: str | None = Field(default=None, alias="deletedAt")

    @field_validator("enabled_agents", mode="before")
    @classmethod
    def _dedupe_agents(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple, set)):
            return []
        return unique_ids(value)

    @property
    def key(self) -> str:
        return skill_key(self.name)


def derive_install_source(skill: Skill) -> InstallSource:
    if skill.install_source:
        return skill.install_source
    return "platform" if skill.source_url else "external"


def with_derived_classification(skill: Skill) -> Skill:
    source = derive_install_source(skill)
    adopted = skill.is_adopted if skill.is_adopted is not None else source == "platform"
    if source == skill.install_source and adopted == skill.is_adopted:
        return skill
    return skill.model_copy(update={"install_source": source, "is_adopted": adopted})


def is_platform_installed(skill: Skill) -> bool:
    return derive_install_source(skill) == "platform" and bool(skill.source_url)


class AgentPlatform(WireModel):
    id: str
    name: str
    default_path: str = Field(alias="defaultPath")
    current_path: str = Field(alias="currentPath")
    enabled: bool = False
    icon: str = ""
    project_path: str | None = Field(default=None, alias="projectPath")
    global_path: str | None = Field(default=None, alias="globalPath")


class OperationLogEntry(WireModel):
    id: str
    timestamp: str
    action: LogAction
    skill_id: str = Field(alias="skillId")
    agent_id: str | None = Field(default=None, alias="agentId")
    status: LogStatus
    message: str


class DetectedSkill(WireModel):
    name: str
    source_agent_ids: list[str] = Field(default_factory=list, alias="sourceAgentIds")
    source_agent_names: list[str] = Field(default_factory=list, alias="sourceAgentNames")

    @field_validator("source_agent_ids", "source_agent_names", mode="before")
    @classmethod
    def _dedupe(cls, value: Any) -> list[str]:
        if not value:
            return []
        return unique_ids(value)


class ProgressLog(WireModel):
    id: str
    label: str
    status: ProgressStatus
    progress: float = 0.0

    @field_validator("progress", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0
        return max(0.0, min(100.0, number))
