from __future__ import annotations

from dataclasses import dataclass

from .models import AgentPlatform


@dataclass(frozen=True)
class PlatformDefinition:
    id: str
    name: str
    icon_key: str
    default_enabled: bool
    global_path: str
    project_path: str


REGISTRY: tuple[PlatformDefinition, ...] = (
    PlatformDefinition("amp", "Amp", "amp", False, "~/.config/agents/skills/", ".agents/skills/"),
    PlatformDefinition(
        "antigravity", "Antigravity", "antigravity", False, "~/.gemini/antigravity/skills/", ".agent/skills/"
    ),
    PlatformDefinition("claude-code", "Claude Code", "claudecode", True, "~/.claude/skills/", ".claude/skills/"),
    PlatformDefinition("clawdbot", "Clawdbot", "clawdbot", False, "~/.clawdbot/skills/", "skills/"),
    PlatformDefinition("cline", "Cline", "cline", False, "~/.cline/skills/", ".cline/skills/"),
    PlatformDefinition("codex", "Codex", "codex", True, "~/.codex/skills/", ".codex/skills/"),
    PlatformDefinition("copilot", "GitHub Copilot", "copilot", False, "~/.copilot/skills/", ".github/skills/"),
    PlatformDefinition("cursor", "Cursor", "cursor", False, "~/.cursor/skills/", ".cursor/skills/"),
    PlatformDefinition("droid", "Droid", "droid", False, "~/.factory/skills/", ".factory/skills/"),
    PlatformDefinition("gemini-cli", "Gemini CLI", "gemini", False, "~/.gemini/skills/", ".gemini/skills/"),
    PlatformDefinition("goose", "Goose", "goose", False, "~/.config/goose/skills/", ".goose/skills/"),
    PlatformDefinition("kilo-code", "Kilo Code", "kilocode", False, "~/.kilocode/skills/", ".kilocode/skills/"),
    PlatformDefinition("kiro-cli", "Kiro CLI", "kiro", False, "~/.kiro/skills/", ".kiro/skills/"),
    PlatformDefinition("opencode", "OpenCode", "opencode", False, "~/.config/opencode/skills/", ".opencode/skills/"),
    PlatformDefinition("qoder", "Qoder", "qoder", False, "~/.qoder/skills/", ".qoder/skills/"),
    PlatformDefinition("qwen-code", "Qwen Code", "qwen", False, "~/.qwen/skills/", ".qwen/skills/"),
    PlatformDefinition("roo-code", "Roo Code", "roo", False, "~/.roo/skills/", ".roo/skills/"),
    PlatformDefinition("trae", "Trae", "trae", False, "~/.trae/skills/", ".trae/skills/"),
    PlatformDefinition("windsurf", "Windsurf", "windsurf", False, "~/.codeium/windsurf/skills/", ".windsurf/skills/"),
)


PLATFORM_BY_ID = {item.id: item for item in REGISTRY}
DEFAULT_ENABLED_IDS = tuple(item.id for item in REGISTRY if item.default_enabled)


def known_platform_ids() -> list[str]:
    return [item.id for item in REGISTRY]


def to_agent(definition: PlatformDefinition) -> AgentPlatform:
    return AgentPlatform(
        id=definition.id,
        name=definition.name,
        default_path=definition.global_path,
        current_path=definition.global_path,
        enabled=definition.default_enabled,
        icon=definition.icon_key,
        project_path=definition.project_path,
        global_path=definition.global_path,
    )


def default_agents() -> list[AgentPlatform]:
    return [to_agent(item) for item in REGISTRY]
