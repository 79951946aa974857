from __future__ import annotations

from typing import Awaitable, Protocol, TypeVar

from .errors import BackendError, SkillsmError
from .models import AgentPlatform, DetectedSkill, Skill
from .runguard import ProgressCallback

T = TypeVar("T")


class SkillBackend(Protocol):
    """Native executor for every file-system, clone and download operation.

    The core only decides what should exist where; implementations do the
    copying and removing. Every method is a suspension point.
    """

    async def bootstrap(self, skills: list[Skill], storage_path: str) -> list[Skill]:
        ...

    async def install_new(self, repo_url: str, skill_name: str, storage_path: str) -> Skill:
        ...

    async def reinstall(
        self,
        skill_id: str,
        skill_name: str,
        repo_url: str,
        enabled_agents: list[str],
        storage_path: str,
    ) -> Skill:
        ...

    async def uninstall(
        self,
        skill_id: str,
        skill_name: str,
        agents: list[AgentPlatform],
        storage_path: str,
    ) -> None:
        ...

    async def distribute_one(
        self,
        skill_id: str,
        skill_name: str,
        enabled_agents: list[str],
        agents: list[AgentPlatform],
        storage_path: str,
    ) -> None:
        ...

    async def distribute_all(
        self,
        skills: list[Skill],
        agents: list[AgentPlatform],
        storage_path: str,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        ...

    async def detect_untracked(self, agents: list[AgentPlatform], storage_path: str) -> list[DetectedSkill]:
        ...

    async def sync_selected(
        self,
        agents: list[AgentPlatform],
        skill_names: list[str],
        storage_path: str,
    ) -> list[Skill]:
        ...

    async def sync_all(
        self,
        agents: list[AgentPlatform],
        storage_path: str,
        on_progress: ProgressCallback | None = None,
    ) -> list[Skill]:
        ...

    async def reset_store(self, storage_path: str) -> None:
        ...

    async def migrate_store(self, from_storage_path: str, to_storage_path: str) -> None:
        ...


async def call_backend(operation: str, pending: Awaitable[T]) -> T:
    try:
        return await pending
    except SkillsmError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise BackendError(operation, str(exc) or exc.__class__.__name__) from exc


def normalize_install_url(raw: str) -> str:
    text = raw.strip().rstrip("/")
    if text.startswith("http://") or text.startswith("https://"):
        return text
    if text.startswith("github.com/"):
        return f"https://{text}"
    if text.count("/") == 1 and " " not in text:
        return f"https://github.com/{text}"
    return text
