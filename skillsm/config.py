from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from .agents import effective_agents
from .lifecycle import DEFAULT_RETENTION_DAYS, normalize_retention_days

CONFIG_VERSION = 1
DEFAULT_STORAGE_PATH = "~/.skillsm"


@dataclass
class AppConfig:
    storage_path: str = DEFAULT_STORAGE_PATH
    recycle_bin_retention_days: int = DEFAULT_RETENTION_DAYS
    has_completed_onboarding: bool = False
    agents: list[dict[str, Any]] = field(default_factory=list)
    version: int = CONFIG_VERSION

    @property
    def retention_days(self) -> int:
        return normalize_retention_days(self.recycle_bin_retention_days)


def config_path() -> Path:
    override = os.environ.get("SKILLSM_CONFIG_PATH", "").strip()
    if override:
        return Path(override).expanduser()
    return Path("~/.config/skillsm/config.json").expanduser()


def state_path() -> Path:
    return config_path().with_name("catalog.json")


def default_config() -> AppConfig:
    return AppConfig(agents=[agent.to_dict() for agent in effective_agents(None)])


def _to_bool(raw: Any, default: bool = False) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return bool(raw)
    text = str(raw).strip().lower()
    if text in {"1", "true", "yes", "y", "on"}:
        return True
    if text in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _to_agents(raw: object) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        raw = []
    return [agent.to_dict() for agent in effective_agents([item for item in raw if isinstance(item, dict)])]


def load_config(path: Path | None = None) -> AppConfig:
    cfg_path = path or config_path()
    if not cfg_path.exists():
        return default_config()

    try:
        data = json.loads(cfg_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return default_config()
    if not isinstance(data, dict):
        return default_config()

    storage_path = str(data.get("storage_path", data.get("storagePath", "")) or "").strip()
    raw_days = data.get("recycle_bin_retention_days", data.get("recycleBinRetentionDays"))
    return AppConfig(
        storage_path=storage_path or DEFAULT_STORAGE_PATH,
        recycle_bin_retention_days=normalize_retention_days(raw_days),
        has_completed_onboarding=_to_bool(
            data.get("has_completed_onboarding", data.get("hasCompletedOnboarding")), default=False
        ),
        agents=_to_agents(data.get("agents")),
        version=CONFIG_VERSION,
    )


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg_path = path or config_path()
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    cfg_path.write_text(
        json.dumps(asdict(cfg), ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    return cfg_path


def reset_settings(cfg: AppConfig) -> AppConfig:
    fresh = default_config()
    cfg.storage_path = fresh.storage_path
    cfg.recycle_bin_retention_days = fresh.recycle_bin_retention_days
    cfg.has_completed_onboarding = fresh.has_completed_onboarding
    cfg.agents = fresh.agents
    cfg.version = fresh.version
    return cfg
