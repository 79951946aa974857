from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .agents import effective_agents, toggle_agent_enabled, update_agent_path
from .backend import SkillBackend, call_backend, normalize_install_url
from .catalog import CatalogState, CatalogStore
from .config import AppConfig, config_path, default_config, load_config, reset_settings, save_config, state_path
from .effects import DistributeAll, DistributionQueue, Effect, EffectReport, EffectRunner
from .errors import DuplicateSkillError, MigrationError, MissingSourceError, SkillsmError, ValidationError
from .lifecycle import normalize_retention_days
from .models import AgentPlatform, DetectedSkill, LogAction, ProgressLog, Skill, skill_key
from .runguard import ProgressBoard, ProgressCallback, RunGuard, RunToken
from .state import load_state, save_state
from .syncer import (
    BatchResult,
    detect_untracked_skills,
    sync_all_skills_distribution_with_progress,
    sync_all_to_catalog_with_progress,
    sync_selected_to_catalog,
    update_all_skills,
    update_targets,
)

logger = logging.getLogger(__name__)

SYNC_ALL = "sync_all"
DISTRIBUTE_ALL = "distribute_all"
UPDATE_ALL = "update_all"
RUN_KINDS = (SYNC_ALL, DISTRIBUTE_ALL, UPDATE_ALL)


@dataclass
class RunOutcome:
    run_id: int
    stale: bool = False
    entries: list[ProgressLog] = field(default_factory=list)
    items: list[Skill] = field(default_factory=list)
    error: SkillsmError | None = None

    @property
    def had_errors(self) -> bool:
        return self.error is not None or any(entry.status == "error" for entry in self.entries)


class SkillsManager:
    """Application facade tying the catalog, the backend and the settings together."""

    def __init__(
        self,
        backend: SkillBackend,
        config: AppConfig | None = None,
        store: CatalogStore | None = None,
        state_file: Path | None = None,
        config_file: Path | None = None,
    ):
        self.backend = backend
        self.config = config or default_config()
        self.store = store or CatalogStore()
        self.state_file = state_file
        self.config_file = config_file
        self.queue = DistributionQueue(backend)
        self.runner = EffectRunner(backend, self.store, lambda: self.agents, lambda: self.storage_path, self.queue)
        self.guards = {kind: RunGuard(kind) for kind in RUN_KINDS}

    @classmethod
    def from_files(cls, backend: SkillBackend) -> SkillsManager:
        cfg_file = config_path()
        return cls(backend, load_config(cfg_file), state_file=state_path(), config_file=cfg_file)

    @property
    def agents(self) -> list[AgentPlatform]:
        return effective_agents(self.config.agents)

    @property
    def storage_path(self) -> str:
        return self.config.storage_path

    def save(self) -> None:
        if self.state_file is not None:
            save_state(self.state_file, self.store.state)
        if self.config_file is not None:
            save_config(self.config, self.config_file)

    async def bootstrap(self) -> list[Skill]:
        if self.state_file is not None:
            self.store.load(load_state(self.state_file))
        await self.clean_expired_trash()
        try:
            skills = await call_backend(
                "bootstrap",
                self.backend.bootstrap(list(self.store.skills), self.storage_path),
            )
        except SkillsmError as exc:
            logger.error("Bootstrap failed: %s", exc)
            self.store.add_log("sync", "*", "error", f"Bootstrap failed: {exc}")
            raise
        self.store.set_skills(skills)
        return list(self.store.skills)

    # settings

    def set_agent_path(self, agent_id: str, path: str) -> list[AgentPlatform]:
        agents = update_agent_path(self.agents, agent_id, path)
        self.config.agents = [agent.to_dict() for agent in agents]
        return agents

    def toggle_platform(self, agent_id: str) -> list[AgentPlatform]:
        agents = toggle_agent_enabled(self.agents, agent_id)
        self.config.agents = [agent.to_dict() for agent in agents]
        return agents

    def set_retention_days(self, days: object) -> int:
        self.config.recycle_bin_retention_days = normalize_retention_days(days)
        return self.config.recycle_bin_retention_days

    def complete_onboarding(self) -> None:
        self.config.has_completed_onboarding = True

    # catalog

    async def _run(self, effects: Iterable[Effect], on_progress: ProgressCallback | None = None) -> EffectReport:
        return await self.runner.run(list(effects), on_progress)

    def add_skill(self, skill: Skill) -> Skill:
        return self.store.add_skill(skill)

    def merge_skills(self, skills: Iterable[Skill]) -> list[Skill]:
        return self.store.merge_skills(skills)

    def update_skill(self, skill_id: str, **fields: object) -> Skill | None:
        return self.store.update_skill(skill_id, **fields)

    def adopt_skill(
        self,
        skill_id: str,
        source_url: str | None,
        enabled_agents: Iterable[str],
        **extra: object,
    ) -> Skill | None:
        return self.store.adopt_skill(skill_id, source_url, enabled_agents, **extra)

    async def remove_skill(self, skill_id: str) -> EffectReport:
        return await self._run(self.store.remove_skill(skill_id))

    async def restore_skill(self, skill_id: str) -> EffectReport:
        return await self._run(self.store.restore_skill(skill_id))

    async def permanently_delete_skill(self, skill_id: str) -> EffectReport:
        return await self._run(self.store.permanently_delete_skill(skill_id))

    async def empty_recycle_bin(self) -> EffectReport:
        return await self._run(self.store.empty_recycle_bin())

    async def clean_expired_trash(self) -> EffectReport:
        return await self._run(self.store.clean_expired_trash(self.config.retention_days))

    async def toggle_agent(self, skill_id: str, agent_id: str) -> EffectReport:
        return await self._run(self.store.toggle_agent(skill_id, agent_id))

    async def set_skill_agents(self, skill_id: str, agent_ids: Iterable[str]) -> EffectReport:
        return await self._run(self.store.set_skill_agents(skill_id, agent_ids))

    # install / reinstall

    async def install_skill(self, repo_url: str, skill_name: str) -> Skill:
        name = skill_name.strip()
        url = repo_url.strip()
        if not url:
            raise MissingSourceError("Repository URL is empty.")
        if not name:
            raise ValidationError("Skill name is empty.")
        key = skill_key(name)
        if any(skill.key == key for skill in self.store.recycle_bin):
            raise DuplicateSkillError(f"{name!r} is in the recycle bin; restore or delete it first.")

        source_url = normalize_install_url(url)
        try:
            installed = await call_backend("install_new", self.backend.install_new(source_url, name, self.storage_path))
        except SkillsmError as exc:
            self.store.add_log("install", name, "error", f"Install failed: {exc}")
            raise
        installed = installed.model_copy(
            update={
                "source_url": installed.source_url or source_url,
                "install_source": "platform",
                "is_adopted": True,
            }
        )
        self.store.merge_skills([installed])
        stored = next((skill for skill in self.store.skills if skill.key == installed.key), installed)
        self.store.add_log("install", stored.id, "success", f"Installed {stored.name}")
        return stored

    async def _reinstall(self, skill_id: str, token: RunToken | None = None) -> Skill | None:
        skill = self.store.prepare_reinstall(skill_id)
        try:
            result = await call_backend(
                "reinstall",
                self.backend.reinstall(
                    skill.id,
                    skill.name,
                    skill.source_url or "",
                    list(skill.enabled_agents),
                    self.storage_path,
                ),
            )
        except SkillsmError as exc:
            self.store.add_log("install", skill_id, "error", f"Reinstall failed: {exc}")
            raise
        if token is not None and not token.is_current():
            return None
        report = await self._run(self.store.apply_reinstall(skill_id, result))
        if report.failures:
            raise report.failures[0].error
        return self.store.find_skill(skill_id)

    async def re_install_skill(self, skill_id: str) -> Skill | None:
        updated = await self._reinstall(skill_id)
        if updated is not None:
            self.store.add_log("install", updated.id, "success", f"Reinstalled {updated.name}")
        return updated

    # reconciliation

    async def detect_untracked(self) -> list[DetectedSkill]:
        try:
            return await detect_untracked_skills(self.backend, self.agents, self.store.state, self.storage_path)
        except SkillsmError as exc:
            self.store.add_log("sync", "*", "error", f"Detection failed: {exc}")
            raise

    async def import_detected(self, skill_names: Iterable[str]) -> list[Skill]:
        try:
            imported = await sync_selected_to_catalog(self.backend, self.agents, skill_names, self.storage_path)
        except SkillsmError as exc:
            self.store.add_log("sync", "*", "error", f"Import failed: {exc}")
            raise
        if not imported:
            return []
        skipped = {skill.key for skill in self.store.merge_skills(imported)}
        added = [skill for skill in imported if skill.key not in skipped]
        for skill in added:
            self.store.add_log("sync", skill.id, "success", f"Imported {skill.name}")
        return added

    def _stale(self, token: RunToken) -> RunOutcome:
        logger.info("Discarding results of superseded %s run %d", token.guard.name, token.run_id)
        return RunOutcome(token.run_id, stale=True)

    def _batch_outcome(
        self,
        token: RunToken,
        board: ProgressBoard,
        result: BatchResult,
        action: LogAction,
        items: list[Skill],
    ) -> RunOutcome:
        if result.abandoned or not token.is_current():
            return self._stale(token)
        error = result.failed[0].error if result.failed else None
        if result.failed:
            names = ", ".join(failure.name for failure in result.failed)
            self.store.add_log(action, "*", "error", f"{len(result.failed)} skill(s) failed: {names}")
        return RunOutcome(token.run_id, entries=board.entries, items=items, error=error)

    async def sync_all(self, on_progress: ProgressCallback | None = None) -> RunOutcome:
        token = self.guards[SYNC_ALL].start()
        board = ProgressBoard(token, on_progress)
        try:
            imported = await sync_all_to_catalog_with_progress(self.backend, self.agents, self.storage_path, board)
        except SkillsmError as exc:
            if not token.is_current():
                return self._stale(token)
            self.store.add_log("sync", "*", "error", f"Sync failed: {exc}")
            return RunOutcome(token.run_id, entries=board.entries, error=exc)
        if not token.is_current():
            return self._stale(token)
        skipped = {skill.key for skill in self.store.merge_skills(imported)}
        self.store.add_log("sync", "*", "success", f"Synced {len(imported)} skill(s) from platforms")
        return RunOutcome(
            token.run_id,
            entries=board.entries,
            items=[skill for skill in imported if skill.key not in skipped],
        )

    async def distribute_all(self, on_progress: ProgressCallback | None = None) -> RunOutcome:
        token = self.guards[DISTRIBUTE_ALL].start()
        board = ProgressBoard(token, on_progress)
        skills = list(self.store.skills)
        result = await sync_all_skills_distribution_with_progress(
            self.backend, skills, self.agents, self.storage_path, board, self.queue, self.store.find_skill
        )
        return self._batch_outcome(token, board, result, "sync", skills)

    async def enable_all_for_agent(self, agent_id: str, on_progress: ProgressCallback | None = None) -> RunOutcome:
        if agent_id not in {agent.id for agent in self.agents}:
            raise ValidationError(f"Unknown platform: {agent_id}")
        token = self.guards[DISTRIBUTE_ALL].start()
        board = ProgressBoard(token, on_progress)
        effects = self.store.enable_all_skills_for_agent(agent_id)
        if not effects:
            board.emit("noop", "All skills are already enabled for this platform", "success", 100)
            return RunOutcome(token.run_id, entries=board.entries)

        skills = [skill for effect in effects if isinstance(effect, DistributeAll) for skill in effect.skills]
        report = await self._run(effects, board.report)
        if not token.is_current():
            return self._stale(token)
        if report.failures:
            error = report.failures[0].error
            board.emit("error", f"Distribution failed: {error}", "error", board.progress)
            return RunOutcome(token.run_id, entries=board.entries, items=skills, error=error)
        board.emit("done", f"Enabled {len(skills)} skill(s)", "success", 100)
        self.store.add_log("enable", "*", "success", f"Enabled {len(skills)} skill(s)", agent_id=agent_id)
        return RunOutcome(token.run_id, entries=board.entries, items=skills)

    async def update_all(self, on_progress: ProgressCallback | None = None) -> RunOutcome:
        token = self.guards[UPDATE_ALL].start()
        board = ProgressBoard(token, on_progress)
        updated: list[Skill] = []

        async def _step(skill: Skill) -> None:
            if self.store.find_skill(skill.id) is None:
                return
            refreshed = await self._reinstall(skill.id, token)
            if refreshed is not None:
                updated.append(refreshed)

        result = await update_all_skills(update_targets(self.store.skills), _step, board)
        outcome = self._batch_outcome(token, board, result, "install", updated)
        if not outcome.stale and updated:
            self.store.add_log("install", "*", "success", f"Updated {len(updated)} skill(s)")
        return outcome

    def cancel(self, kind: str) -> None:
        guard = self.guards.get(kind)
        if guard is None:
            raise ValidationError(f"Unknown run kind: {kind}")
        guard.cancel()

    # storage

    async def migrate_storage(self, to_path: str) -> str:
        target = to_path.strip()
        if not target:
            raise ValidationError("Target storage path is empty.")
        source = self.storage_path
        if Path(target).expanduser() == Path(source).expanduser():
            return source
        try:
            await call_backend("migrate_store", self.backend.migrate_store(source, target))
        except SkillsmError as exc:
            logger.error("Storage migration %s -> %s failed: %s", source, target, exc)
            self.store.add_log("backup", "*", "error", f"Storage migration failed: {exc}")
            raise MigrationError(f"Could not move storage from {source} to {target}: {exc}") from exc
        self.config.storage_path = target
        if self.config_file is not None:
            save_config(self.config, self.config_file)
        self.store.add_log("backup", "*", "success", f"Moved storage to {target}")
        return target

    async def reset_store(self) -> None:
        try:
            await call_backend("reset_store", self.backend.reset_store(self.storage_path))
        except SkillsmError as exc:
            logger.error("Resetting storage at %s failed: %s", self.storage_path, exc)
        for guard in self.guards.values():
            guard.cancel()
        self.store.load(CatalogState())
        reset_settings(self.config)
        self.save()
