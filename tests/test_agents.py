"""Tests for the platform registry and effective-agent resolution."""

from skillsm.agents import effective_agents, enabled_agents, toggle_agent_enabled, update_agent_path
from skillsm.platforms import DEFAULT_ENABLED_IDS, REGISTRY, default_agents, known_platform_ids


def test_registry_defaults():
    agents = default_agents()
    assert len(agents) == len(REGISTRY) == 19
    assert set(DEFAULT_ENABLED_IDS) == {"claude-code", "codex"}
    claude = next(agent for agent in agents if agent.id == "claude-code")
    assert claude.current_path == claude.default_path == "~/.claude/skills/"
    assert claude.project_path == ".claude/skills/"


def test_effective_agents_without_stored_list_is_registry():
    assert effective_agents(None) == default_agents()
    assert [agent.id for agent in effective_agents([])] == known_platform_ids()


def test_partial_stored_list_is_completed_and_keeps_customizations():
    stored = [{"id": "cursor", "currentPath": "/opt/cursor/skills", "enabled": True}]
    agents = effective_agents(stored)
    assert [agent.id for agent in agents] == known_platform_ids()
    cursor = next(agent for agent in agents if agent.id == "cursor")
    assert cursor.current_path == "/opt/cursor/skills"
    assert cursor.default_path == "~/.cursor/skills/"
    assert cursor.enabled is True
    codex = next(agent for agent in agents if agent.id == "codex")
    assert codex.enabled is True


def test_blank_paths_and_non_bool_enabled_fall_back():
    agents = effective_agents([{"id": "codex", "currentPath": "   ", "enabled": "no", "projectPath": " "}])
    codex = next(agent for agent in agents if agent.id == "codex")
    assert codex.current_path == "~/.codex/skills/"
    assert codex.enabled is True
    assert codex.project_path == ".codex/skills/"


def test_unknown_platforms_are_appended_and_malformed_skipped():
    stored = [
        {"id": "my-agent", "name": "Mine", "defaultPath": "~/mine", "currentPath": "~/mine", "enabled": True},
        {"id": "broken"},
        {"name": "no id"},
        "junk",
    ]
    agents = effective_agents(stored)
    assert agents[-1].id == "my-agent"
    assert "broken" not in {agent.id for agent in agents}
    assert len(agents) == len(REGISTRY) + 1


def test_enabled_agents_filter():
    ids = [agent.id for agent in enabled_agents(effective_agents(None))]
    assert ids == ["claude-code", "codex"]


def test_path_update_and_toggle_return_new_lists():
    agents = effective_agents(None)
    moved = update_agent_path(agents, "codex", "/tmp/codex")
    assert next(a for a in moved if a.id == "codex").current_path == "/tmp/codex"
    assert next(a for a in agents if a.id == "codex").current_path == "~/.codex/skills/"

    reset = update_agent_path(moved, "codex", "  ")
    assert next(a for a in reset if a.id == "codex").current_path == "~/.codex/skills/"

    toggled = toggle_agent_enabled(agents, "cursor")
    assert next(a for a in toggled if a.id == "cursor").enabled is True
