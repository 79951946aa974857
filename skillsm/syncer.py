from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Sequence

from .agents import enabled_agents
from .backend import SkillBackend, call_backend
from .catalog import CatalogState
from .effects import DistributionQueue
from .errors import SkillsmError
from .models import (
    AgentPlatform,
    DetectedSkill,
    Skill,
    is_platform_installed,
    skill_key,
    unique_ids,
    with_derived_classification,
)
from .runguard import ProgressBoard

logger = logging.getLogger(__name__)

Step = Callable[[Skill], Awaitable[object]]


@dataclass
class BatchFailure:
    skill_id: str
    name: str
    error: SkillsmError


@dataclass
class BatchResult:
    succeeded: list[str] = field(default_factory=list)
    failed: list[BatchFailure] = field(default_factory=list)
    abandoned: bool = False

    @property
    def had_errors(self) -> bool:
        return bool(self.failed)


def _fold_candidate(prev: DetectedSkill | None, found: DetectedSkill, agent: AgentPlatform) -> DetectedSkill:
    ids = found.source_agent_ids or [agent.id]
    names = found.source_agent_names or [agent.name]
    if prev is None:
        return DetectedSkill(name=found.name.strip(), source_agent_ids=ids, source_agent_names=names)
    return prev.model_copy(
        update={
            "source_agent_ids": unique_ids([*prev.source_agent_ids, *ids]),
            "source_agent_names": unique_ids([*prev.source_agent_names, *names]),
        }
    )


async def detect_untracked_skills(
    backend: SkillBackend,
    agents: Iterable[AgentPlatform],
    state: CatalogState,
    storage_path: str,
) -> list[DetectedSkill]:
    """Find skills present on managed platforms that the catalog does not know.

    Each enabled platform is queried on its own, one after another. Names
    already tracked, or waiting in the recycle bin, are not reported. A skill
    found on several platforms comes back once with all its sources.
    """
    known = {skill.key for skill in (*state.skills, *state.recycle_bin)}
    folded: dict[str, DetectedSkill] = {}
    targets = enabled_agents(agents)
    failures: list[SkillsmError] = []
    for agent in targets:
        try:
            found = await call_backend("detect_untracked", backend.detect_untracked([agent], storage_path))
        except SkillsmError as exc:
            logger.warning("Skipping %s during detection: %s", agent.id, exc)
            failures.append(exc)
            continue
        for candidate in found:
            key = skill_key(candidate.name)
            if not key or key in known:
                continue
            folded[key] = _fold_candidate(folded.get(key), candidate, agent)
    if targets and len(failures) == len(targets):
        raise failures[-1]
    return list(folded.values())


async def sync_selected_to_catalog(
    backend: SkillBackend,
    agents: Iterable[AgentPlatform],
    skill_names: Iterable[str],
    storage_path: str,
) -> list[Skill]:
    names = unique_ids(skill_names)
    if not names:
        return []
    imported = await call_backend(
        "sync_selected",
        backend.sync_selected(enabled_agents(agents), names, storage_path),
    )
    return [with_derived_classification(skill) for skill in imported]


async def sync_all_to_catalog(
    backend: SkillBackend,
    agents: Iterable[AgentPlatform],
    storage_path: str,
) -> list[Skill]:
    imported = await call_backend("sync_all", backend.sync_all(enabled_agents(agents), storage_path))
    return [with_derived_classification(skill) for skill in imported]


async def sync_all_to_catalog_with_progress(
    backend: SkillBackend,
    agents: Iterable[AgentPlatform],
    storage_path: str,
    board: ProgressBoard,
) -> list[Skill]:
    try:
        imported = await call_backend(
            "sync_all",
            backend.sync_all(enabled_agents(agents), storage_path, board.report),
        )
    except SkillsmError as exc:
        board.emit("error", f"Sync failed: {exc}", "error", board.progress)
        raise
    return [with_derived_classification(skill) for skill in imported]


async def sync_skill_distribution(
    backend: SkillBackend,
    skill: Skill,
    agents: Iterable[AgentPlatform],
    storage_path: str,
    queue: DistributionQueue | None = None,
) -> bool:
    if queue is not None:
        return await queue.push(skill, agents, storage_path)
    await call_backend(
        "distribute_one",
        backend.distribute_one(skill.id, skill.name, list(skill.enabled_agents), list(agents), storage_path),
    )
    return True


async def run_batch(
    items: Sequence[Skill],
    step: Step,
    board: ProgressBoard,
    prefix: str,
    verb: str,
    empty_label: str,
) -> BatchResult:
    result = BatchResult()
    total = len(items)
    if not total:
        board.emit("init", empty_label, "success", 100)
        return result

    board.emit("init", f"{verb} {total} skill(s)", "success", 0)
    for idx, skill in enumerate(items):
        if not board.live:
            result.abandoned = True
            return result
        entry_id = f"{prefix}-{skill.id}"
        board.emit(entry_id, f"{verb} {skill.name}", "loading", idx * 100 / total)
        try:
            await step(skill)
        except SkillsmError as exc:
            logger.warning("%s %s failed: %s", verb, skill.name, exc)
            result.failed.append(BatchFailure(skill.id, skill.name, exc))
            board.emit(entry_id, f"{verb} {skill.name} failed: {exc}", "error", (idx + 1) * 100 / total)
            continue
        result.succeeded.append(skill.id)
        board.emit(entry_id, f"{verb} {skill.name}", "success", (idx + 1) * 100 / total)

    if not board.live:
        result.abandoned = True
        return result
    if result.failed:
        board.emit("done", f"Finished with {len(result.failed)} failure(s)", "error", 100)
    else:
        board.emit("done", f"Finished {len(result.succeeded)} skill(s)", "success", 100)
    return result


async def sync_all_skills_distribution_with_progress(
    backend: SkillBackend,
    skills: Sequence[Skill],
    agents: Iterable[AgentPlatform],
    storage_path: str,
    board: ProgressBoard,
    queue: DistributionQueue | None = None,
    refresh: Callable[[str], Skill | None] | None = None,
) -> BatchResult:
    platform_list = list(agents)

    async def _push(skill: Skill) -> bool:
        if refresh is not None:
            # push the record as it is now; skip ones removed since the run started
            current = refresh(skill.id)
            if current is None:
                return False
            skill = current
        return await sync_skill_distribution(backend, skill, platform_list, storage_path, queue)

    return await run_batch(skills, _push, board, "sync", "Distributing", "No skills to distribute")


async def sync_all_skills_distribution(
    backend: SkillBackend,
    skills: Sequence[Skill],
    agents: Iterable[AgentPlatform],
    storage_path: str,
    queue: DistributionQueue | None = None,
) -> BatchResult:
    return await sync_all_skills_distribution_with_progress(
        backend, skills, agents, storage_path, ProgressBoard(), queue
    )


def update_targets(skills: Iterable[Skill]) -> list[Skill]:
    return [skill for skill in skills if is_platform_installed(skill)]


async def update_all_skills(targets: Sequence[Skill], step: Step, board: ProgressBoard) -> BatchResult:
    return await run_batch(targets, step, board, "update", "Updating", "No installed skills to update")
