from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Iterable

from .effects import DistributeAll, DistributeOne, Effect, Uninstall
from .errors import DuplicateSkillError, MissingSourceError, SkillNotFoundError, ValidationError
from .lifecycle import partition_expired
from .models import (
    LogAction,
    LogStatus,
    OperationLogEntry,
    Skill,
    derive_install_source,
    iso_now,
    unique_ids,
    with_derived_classification,
)

logger = logging.getLogger(__name__)

MAX_LOGS = 50
_PROTECTED_FIELDS = {"id", "deleted_at"}


@dataclass(frozen=True)
class CatalogState:
    skills: tuple[Skill, ...] = ()
    recycle_bin: tuple[Skill, ...] = ()
    logs: tuple[OperationLogEntry, ...] = ()


Listener = Callable[[CatalogState], None]


def _merge_pair(existing: Skill, incoming: Skill) -> Skill:
    install_source = derive_install_source(existing)
    is_adopted = existing.is_adopted if existing.is_adopted is not None else install_source == "platform"
    return existing.model_copy(
        update={
            "enabled_agents": unique_ids([*existing.enabled_agents, *incoming.enabled_agents]),
            "last_sync": existing.last_sync or incoming.last_sync,
            "last_update": existing.last_update or incoming.last_update,
            "source_url": existing.source_url or incoming.source_url,
            "install_source": install_source,
            "is_adopted": is_adopted,
        }
    )


def merge_skill_lists(
    existing: Iterable[Skill],
    incoming: Iterable[Skill],
    blocked_keys: Iterable[str] = (),
    blocked_ids: Iterable[str] = (),
) -> tuple[list[Skill], list[Skill]]:
    """Fold ``incoming`` into ``existing`` by normalized name.

    Returns ``(merged, skipped)``. Matched records keep the existing identity
    and classification and gain the union of enabled agents. Unmatched
    records are appended unless their name is blocked (for example it sits in
    the recycle bin) or their id is already taken.
    """
    pending: dict[str, Skill] = {}
    for skill in incoming:
        key = skill.key
        if not key:
            continue
        prev = pending.get(key)
        pending[key] = skill if prev is None else _merge_pair(prev, skill)

    merged: list[Skill] = []
    for current in existing:
        nxt = pending.pop(current.key, None)
        merged.append(current if nxt is None else _merge_pair(current, nxt))

    blocked = set(blocked_keys)
    used_ids = {skill.id for skill in merged} | set(blocked_ids)
    skipped: list[Skill] = []
    for key, skill in pending.items():
        if key in blocked or skill.id in used_ids:
            skipped.append(skill)
            continue
        used_ids.add(skill.id)
        merged.append(with_derived_classification(skill.model_copy(update={"deleted_at": None})))
    return merged, skipped


class CatalogStore:
    """Authoritative catalog, recycle bin and operation log.

    Each mutator is one synchronous transition. Mutators that need I/O return
    the effects to run instead of performing it.
    """

    def __init__(self, state: CatalogState | None = None):
        self._state = state or CatalogState()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> CatalogState:
        return self._state

    @property
    def skills(self) -> tuple[Skill, ...]:
        return self._state.skills

    @property
    def recycle_bin(self) -> tuple[Skill, ...]:
        return self._state.recycle_bin

    @property
    def logs(self) -> tuple[OperationLogEntry, ...]:
        return self._state.logs

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, state: CatalogState) -> None:
        if state == self._state:
            return
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def find_skill(self, skill_id: str) -> Skill | None:
        for skill in self._state.skills:
            if skill.id == skill_id:
                return skill
        return None

    def find_trashed(self, skill_id: str) -> Skill | None:
        for skill in self._state.recycle_bin:
            if skill.id == skill_id:
                return skill
        return None

    def _replace_skill(self, skill_id: str, updated: Skill) -> tuple[Skill, ...]:
        return tuple(updated if s.id == skill_id else s for s in self._state.skills)

    def load(self, state: CatalogState) -> None:
        self._commit(
            CatalogState(
                skills=tuple(with_derived_classification(s) for s in state.skills),
                recycle_bin=tuple(with_derived_classification(s) for s in state.recycle_bin),
                logs=tuple(state.logs[:MAX_LOGS]),
            )
        )

    def set_skills(self, skills: Iterable[Skill]) -> None:
        self._commit(replace(self._state, skills=tuple(with_derived_classification(s) for s in skills)))

    def merge_skills(self, incoming: Iterable[Skill]) -> list[Skill]:
        merged, skipped = merge_skill_lists(
            self._state.skills,
            incoming,
            blocked_keys={s.key for s in self._state.recycle_bin},
            blocked_ids={s.id for s in self._state.recycle_bin},
        )
        for skill in skipped:
            logger.info("Skipped merging skill %r (id %r): already tracked or in recycle bin", skill.name, skill.id)
        self._commit(replace(self._state, skills=tuple(merged)))
        return skipped

    def add_skill(self, skill: Skill) -> Skill:
        if not skill.name.strip():
            raise ValidationError("Skill name is empty.")
        if not skill.id.strip():
            raise ValidationError("Skill id is empty.")
        if self.find_skill(skill.id) or self.find_trashed(skill.id):
            raise DuplicateSkillError(f"Skill id already in use: {skill.id}")
        stored = with_derived_classification(skill.model_copy(update={"deleted_at": None}))
        self._commit(replace(self._state, skills=(*self._state.skills, stored)))
        return stored

    def update_skill(self, skill_id: str, **fields: Any) -> Skill | None:
        rejected = (set(fields) - set(Skill.model_fields)) | (_PROTECTED_FIELDS & set(fields))
        if rejected:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(rejected))}")
        skill = self.find_skill(skill_id)
        if skill is None:
            return None
        if "enabled_agents" in fields:
            fields["enabled_agents"] = unique_ids(fields["enabled_agents"] or [])
        updated = skill.model_copy(update=fields)
        self._commit(replace(self._state, skills=self._replace_skill(skill_id, updated)))
        return updated

    def remove_skill(self, skill_id: str, now: str | None = None) -> list[Effect]:
        skill = self.find_skill(skill_id)
        if skill is None:
            return []
        trashed = skill.model_copy(update={"deleted_at": now or iso_now()})
        self._commit(
            replace(
                self._state,
                skills=tuple(s for s in self._state.skills if s.id != skill_id),
                recycle_bin=(*self._state.recycle_bin, trashed),
            )
        )
        return [DistributeOne(skill.model_copy(update={"enabled_agents": []}))]

    def restore_skill(self, skill_id: str) -> list[Effect]:
        skill = self.find_trashed(skill_id)
        if skill is None:
            return []
        restored = skill.model_copy(update={"deleted_at": None})
        self._commit(
            replace(
                self._state,
                skills=(*self._state.skills, restored),
                recycle_bin=tuple(s for s in self._state.recycle_bin if s.id != skill_id),
            )
        )
        return [DistributeOne(restored)]

    def permanently_delete_skill(self, skill_id: str) -> list[Effect]:
        skill = self.find_trashed(skill_id)
        if skill is None:
            return []
        self._commit(replace(self._state, recycle_bin=tuple(s for s in self._state.recycle_bin if s.id != skill_id)))
        return [Uninstall(skill)]

    def empty_recycle_bin(self) -> list[Effect]:
        trashed = self._state.recycle_bin
        self._commit(replace(self._state, recycle_bin=()))
        return [Uninstall(skill) for skill in trashed]

    def clean_expired_trash(self, retention_days: int, now: datetime | None = None) -> list[Effect]:
        kept, expired = partition_expired(self._state.recycle_bin, retention_days, now)
        if not expired:
            return []
        self._commit(replace(self._state, recycle_bin=tuple(kept)))
        return [Uninstall(skill) for skill in expired]

    def toggle_agent(self, skill_id: str, agent_id: str) -> list[Effect]:
        skill = self.find_skill(skill_id)
        if skill is None:
            return []
        if agent_id in skill.enabled_agents:
            agents = [a for a in skill.enabled_agents if a != agent_id]
        else:
            agents = [*skill.enabled_agents, agent_id]
        return self.set_skill_agents(skill_id, agents)

    def set_skill_agents(self, skill_id: str, agent_ids: Iterable[str]) -> list[Effect]:
        skill = self.find_skill(skill_id)
        if skill is None:
            return []
        updated = skill.model_copy(update={"enabled_agents": unique_ids(agent_ids)})
        self._commit(replace(self._state, skills=self._replace_skill(skill_id, updated)))
        return [DistributeOne(updated)]

    def adopt_skill(
        self,
        skill_id: str,
        source_url: str | None,
        enabled_agents: Iterable[str],
        **extra: Any,
    ) -> Skill | None:
        updated = self.update_skill(
            skill_id,
            **extra,
            source_url=source_url,
            enabled_agents=list(enabled_agents),
            install_source="platform",
            is_adopted=True,
        )
        return updated

    def prepare_reinstall(self, skill_id: str) -> Skill:
        skill = self.find_skill(skill_id)
        if skill is None:
            raise SkillNotFoundError(f"Skill not found: {skill_id}")
        if not (skill.source_url or "").strip():
            raise MissingSourceError(f"Skill {skill.name!r} has no linked source; cannot reinstall.")
        return skill

    def apply_reinstall(self, skill_id: str, result: Skill) -> list[Effect]:
        skill = self.find_skill(skill_id)
        if skill is None:
            return []
        updated = skill.model_copy(
            update={
                "last_sync": result.last_sync or skill.last_sync,
                "last_update": result.last_update or skill.last_update,
                "source_url": result.source_url or skill.source_url,
                "install_source": "platform",
                "is_adopted": True,
            }
        )
        self._commit(replace(self._state, skills=self._replace_skill(skill_id, updated)))
        return [DistributeOne(updated)]

    def enable_all_skills_for_agent(self, agent_id: str) -> list[Effect]:
        changed = False
        skills: list[Skill] = []
        for skill in self._state.skills:
            if agent_id in skill.enabled_agents:
                skills.append(skill)
                continue
            changed = True
            skills.append(skill.model_copy(update={"enabled_agents": [*skill.enabled_agents, agent_id]}))
        if not changed:
            return []
        self._commit(replace(self._state, skills=tuple(skills)))
        return [DistributeAll(tuple(skills))]

    def add_log(
        self,
        action: LogAction,
        skill_id: str,
        status: LogStatus,
        message: str,
        agent_id: str | None = None,
    ) -> OperationLogEntry:
        entry = OperationLogEntry(
            id=uuid.uuid4().hex[:8],
            timestamp=iso_now(),
            action=action,
            skill_id=skill_id,
            agent_id=agent_id,
            status=status,
            message=message,
        )
        self._commit(replace(self._state, logs=(entry, *self._state.logs[: MAX_LOGS - 1])))
        return entry
