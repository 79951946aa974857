from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterable, Union

from .backend import SkillBackend, call_backend
from .errors import SkillsmError
from .models import AgentPlatform, LogAction, Skill
from .runguard import ProgressCallback

if TYPE_CHECKING:
    from .catalog import CatalogStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DistributeOne:
    skill: Skill

    action: LogAction = field(default="sync", init=False)

    @property
    def skill_id(self) -> str:
        return self.skill.id


@dataclass(frozen=True)
class DistributeAll:
    skills: tuple[Skill, ...]

    action: LogAction = field(default="sync", init=False)

    @property
    def skill_id(self) -> str:
        return "*"


@dataclass(frozen=True)
class Uninstall:
    skill: Skill

    action: LogAction = field(default="uninstall", init=False)

    @property
    def skill_id(self) -> str:
        return self.skill.id


Effect = Union[DistributeOne, DistributeAll, Uninstall]


@dataclass
class EffectFailure:
    effect: Effect
    error: SkillsmError


@dataclass
class EffectReport:
    applied: list[Effect] = field(default_factory=list)
    failures: list[EffectFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class DistributionQueue:
    """Serializes per-skill distribution; the newest request for a skill wins.

    Requests for different skills run independently. A request that is still
    waiting when a newer one for the same skill arrives is skipped.
    """

    def __init__(self, backend: SkillBackend):
        self.backend = backend
        self._locks: dict[str, asyncio.Lock] = {}
        self._latest: dict[str, int] = {}
        self._seq = 0

    async def push(self, skill: Skill, agents: Iterable[AgentPlatform], storage_path: str) -> bool:
        self._seq += 1
        ticket = self._seq
        self._latest[skill.id] = ticket
        lock = self._locks.setdefault(skill.id, asyncio.Lock())
        try:
            async with lock:
                if self._latest.get(skill.id) != ticket:
                    return False
                await call_backend(
                    "distribute_one",
                    self.backend.distribute_one(
                        skill.id,
                        skill.name,
                        list(skill.enabled_agents),
                        list(agents),
                        storage_path,
                    ),
                )
                return True
        finally:
            if self._latest.get(skill.id) == ticket:
                del self._latest[skill.id]
                self._locks.pop(skill.id, None)

    @property
    def idle(self) -> bool:
        return not self._latest


class EffectRunner:
    def __init__(
        self,
        backend: SkillBackend,
        store: CatalogStore,
        agents: Callable[[], list[AgentPlatform]],
        storage_path: Callable[[], str],
        queue: DistributionQueue | None = None,
    ):
        self.backend = backend
        self.store = store
        self.agents = agents
        self.storage_path = storage_path
        self.queue = queue or DistributionQueue(backend)

    async def _apply(self, effect: Effect, on_progress: ProgressCallback | None) -> None:
        agents = self.agents()
        storage_path = self.storage_path()
        if isinstance(effect, DistributeOne):
            await self.queue.push(effect.skill, agents, storage_path)
        elif isinstance(effect, DistributeAll):
            await call_backend(
                "distribute_all",
                self.backend.distribute_all(list(effect.skills), agents, storage_path, on_progress),
            )
        elif isinstance(effect, Uninstall):
            await call_backend(
                "uninstall",
                self.backend.uninstall(effect.skill.id, effect.skill.name, agents, storage_path),
            )
        else:
            raise TypeError(f"Unsupported effect: {effect!r}")

    async def run(self, effects: Iterable[Effect], on_progress: ProgressCallback | None = None) -> EffectReport:
        report = EffectReport()
        for effect in effects:
            try:
                await self._apply(effect, on_progress)
            except SkillsmError as exc:
                logger.warning("Effect %s for %s failed: %s", type(effect).__name__, effect.skill_id, exc)
                self.store.add_log(effect.action, effect.skill_id, "error", str(exc))
                report.failures.append(EffectFailure(effect, exc))
                continue
            report.applied.append(effect)
        return report
