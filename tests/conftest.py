from __future__ import annotations

import asyncio

import pytest

from skillsm.models import AgentPlatform, DetectedSkill, ProgressLog, Skill, iso_now
from skillsm.runguard import ProgressCallback


class FakeBackend:
    """In-memory backend that records every call it receives."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.fail_ops: set[str] = set()
        self.fail_skills: set[str] = set()
        self.fail_agents: set[str] = set()
        self.detected: dict[str, list[DetectedSkill]] = {}
        self.synced: list[Skill] = []
        self.bootstrap_result: list[Skill] | None = None
        self.gate: asyncio.Event | None = None

    def _check(self, op: str) -> None:
        if op in self.fail_ops:
            raise OSError(f"{op} exploded")

    async def _wait(self) -> None:
        if self.gate is not None:
            await self.gate.wait()

    def ops(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    async def bootstrap(self, skills: list[Skill], storage_path: str) -> list[Skill]:
        self.calls.append(("bootstrap", [s.id for s in skills], storage_path))
        self._check("bootstrap")
        return list(skills) if self.bootstrap_result is None else list(self.bootstrap_result)

    async def install_new(self, repo_url: str, skill_name: str, storage_path: str) -> Skill:
        self.calls.append(("install_new", repo_url, skill_name, storage_path))
        self._check("install_new")
        return Skill(id=f"id-{skill_name.lower().replace(' ', '-')}", name=skill_name, last_update=iso_now())

    async def reinstall(
        self,
        skill_id: str,
        skill_name: str,
        repo_url: str,
        enabled_agents: list[str],
        storage_path: str,
    ) -> Skill:
        self.calls.append(("reinstall", skill_id, repo_url, list(enabled_agents)))
        await self._wait()
        self._check("reinstall")
        if skill_id in self.fail_skills:
            raise RuntimeError(f"clone of {skill_name} failed")
        return Skill(id=skill_id, name=skill_name, source_url=repo_url, last_update="2026-10-01T00:00:00Z")

    async def uninstall(self, skill_id: str, skill_name: str, agents: list[AgentPlatform], storage_path: str) -> None:
        self.calls.append(("uninstall", skill_id))
        self._check("uninstall")

    async def distribute_one(
        self,
        skill_id: str,
        skill_name: str,
        enabled_agents: list[str],
        agents: list[AgentPlatform],
        storage_path: str,
    ) -> None:
        self.calls.append(("distribute_one", skill_id, list(enabled_agents)))
        await self._wait()
        self._check("distribute_one")
        if skill_id in self.fail_skills:
            raise PermissionError(f"cannot write {skill_name}")

    async def distribute_all(
        self,
        skills: list[Skill],
        agents: list[AgentPlatform],
        storage_path: str,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.calls.append(("distribute_all", [s.id for s in skills]))
        self._check("distribute_all")
        if on_progress is not None:
            on_progress(ProgressLog(id="distribute", label=f"Distributed {len(skills)} skill(s)", status="success", progress=100))

    async def detect_untracked(self, agents: list[AgentPlatform], storage_path: str) -> list[DetectedSkill]:
        ids = [agent.id for agent in agents]
        self.calls.append(("detect_untracked", ids))
        if any(agent_id in self.fail_agents for agent_id in ids):
            raise OSError("permission denied")
        rows: list[DetectedSkill] = []
        for agent_id in ids:
            rows.extend(self.detected.get(agent_id, []))
        return rows

    async def sync_selected(self, agents: list[AgentPlatform], skill_names: list[str], storage_path: str) -> list[Skill]:
        self.calls.append(("sync_selected", list(skill_names)))
        self._check("sync_selected")
        return [
            Skill(id=f"sync-{name.lower().replace(' ', '-')}", name=name, enabled_agents=["claude-code"])
            for name in skill_names
        ]

    async def sync_all(
        self,
        agents: list[AgentPlatform],
        storage_path: str,
        on_progress: ProgressCallback | None = None,
    ) -> list[Skill]:
        self.calls.append(("sync_all", [agent.id for agent in agents]))
        await self._wait()
        self._check("sync_all")
        return list(self.synced)

    async def reset_store(self, storage_path: str) -> None:
        self.calls.append(("reset_store", storage_path))
        self._check("reset_store")

    async def migrate_store(self, from_storage_path: str, to_storage_path: str) -> None:
        self.calls.append(("migrate_store", from_storage_path, to_storage_path))
        self._check("migrate_store")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    monkeypatch.setenv("SKILLSM_CONFIG_PATH", str(tmp_path / "config" / "config.json"))
