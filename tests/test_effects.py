"""Tests for running catalog effects against the backend."""

import pytest

from skillsm.agents import effective_agents
from skillsm.catalog import CatalogStore
from skillsm.effects import DistributeAll, DistributeOne, EffectRunner, Uninstall
from skillsm.errors import BackendError
from skillsm.models import Skill


def _runner(backend, store):
    return EffectRunner(backend, store, lambda: effective_agents(None), lambda: "~/.skillsm")


@pytest.mark.asyncio
async def test_runner_dispatches_each_effect(backend):
    store = CatalogStore()
    alpha = Skill(id="a", name="Alpha", enabled_agents=["codex"])
    report = await _runner(backend, store).run(
        [DistributeOne(alpha), DistributeAll((alpha,)), Uninstall(Skill(id="t", name="Trash"))]
    )
    assert report.ok
    assert [call[0] for call in backend.calls] == ["distribute_one", "distribute_all", "uninstall"]
    assert store.logs == ()


@pytest.mark.asyncio
async def test_runner_records_failures_and_continues(backend):
    backend.fail_ops = {"uninstall"}
    store = CatalogStore()
    report = await _runner(backend, store).run(
        [Uninstall(Skill(id="t", name="Trash")), DistributeOne(Skill(id="a", name="Alpha"))]
    )
    assert not report.ok
    assert isinstance(report.failures[0].error, BackendError)
    assert len(report.applied) == 1
    assert store.logs[0].status == "error"
    assert store.logs[0].action == "uninstall"
    assert store.logs[0].skill_id == "t"
