"""Tests for the wire models and their helpers."""

from datetime import timezone

from skillsm.models import (
    ProgressLog,
    Skill,
    derive_install_source,
    is_platform_installed,
    parse_timestamp,
    skill_key,
    with_derived_classification,
)


def test_skill_reads_camel_case_and_dumps_aliases():
    skill = Skill.model_validate(
        {"id": "a", "name": "Alpha", "sourceUrl": "https://github.com/o/alpha", "enabledAgents": ["codex"]}
    )
    assert skill.source_url == "https://github.com/o/alpha"
    data = skill.to_dict()
    assert data["enabledAgents"] == ["codex"]
    assert "deletedAt" not in data
    assert "source_url" not in data


def test_enabled_agents_are_deduplicated_in_order():
    skill = Skill(id="a", name="Alpha", enabled_agents=["codex", "cursor", "codex", " ", "cursor"])
    assert skill.enabled_agents == ["codex", "cursor"]


def test_enabled_agents_tolerate_garbage():
    assert Skill.model_validate({"id": "a", "name": "A", "enabledAgents": None}).enabled_agents == []
    assert Skill.model_validate({"id": "a", "name": "A", "enabledAgents": 7}).enabled_agents == []


def test_install_source_is_derived_from_source_url():
    assert derive_install_source(Skill(id="a", name="A", source_url="https://x")) == "platform"
    assert derive_install_source(Skill(id="a", name="A")) == "external"
    explicit = Skill(id="a", name="A", source_url="https://x", install_source="external")
    assert derive_install_source(explicit) == "external"


def test_with_derived_classification_backfills_adoption():
    skill = with_derived_classification(Skill(id="a", name="A", source_url="https://x"))
    assert skill.install_source == "platform"
    assert skill.is_adopted is True

    kept = with_derived_classification(Skill(id="b", name="B", is_adopted=False, source_url="https://x"))
    assert kept.is_adopted is False


def test_is_platform_installed_requires_source_url():
    assert is_platform_installed(Skill(id="a", name="A", source_url="https://x"))
    assert not is_platform_installed(Skill(id="a", name="A", install_source="platform"))


def test_skill_key_trims_and_casefolds():
    assert skill_key("  New Skill ") == skill_key("new skill")


def test_parse_timestamp_variants():
    zulu = parse_timestamp("2026-01-02T03:04:05Z")
    assert zulu is not None and zulu.tzinfo == timezone.utc
    naive = parse_timestamp("2026-01-02T03:04:05")
    assert naive is not None and naive.tzinfo == timezone.utc
    assert parse_timestamp("yesterday") is None
    assert parse_timestamp(None) is None


def test_progress_is_clamped():
    assert ProgressLog(id="x", label="x", status="loading", progress=140).progress == 100
    assert ProgressLog(id="x", label="x", status="loading", progress=-3).progress == 0
