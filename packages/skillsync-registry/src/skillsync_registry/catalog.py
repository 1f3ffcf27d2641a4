"""Agent catalog: where each agent keeps its skills and what else it reads."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from skillsync_core.errors import AgentNotFoundError, ConfigError

from skillsync_registry.types import AgentDescriptor

if TYPE_CHECKING:
    from collections.abc import Iterable

    from skillsync_core.config import SkillsyncConfig


@dataclass(frozen=True, slots=True)
class _AgentRule:
    agent_id: str
    display_name: str
    skills_dir: str
    config_dir: str | None
    detect_command: str
    reads: tuple[str, ...] = ()


# Paths are relative to the user's home directory.  ``reads`` names agents
# whose own skills directory this agent also loads.
_BUILTIN_AGENTS: tuple[_AgentRule, ...] = (
    _AgentRule("claude-code", "Claude Code", ".claude/skills", ".claude", "claude"),
    _AgentRule("codex", "Codex", ".agents/skills", None, "codex"),
    _AgentRule("gemini-cli", "Gemini CLI", ".gemini/skills", ".gemini", "gemini"),
    _AgentRule(
        "copilot-cli", "Copilot CLI", ".copilot/skills", ".copilot", "gh",
        reads=("claude-code",),
    ),
    _AgentRule(
        "opencode", "OpenCode", ".config/opencode/skills", ".config/opencode", "opencode",
        reads=("claude-code", "codex"),
    ),
    _AgentRule(
        "antigravity", "Antigravity", ".gemini/antigravity/skills",
        ".gemini/antigravity", "antigravity",
    ),
    _AgentRule(
        "cursor", "Cursor", ".cursor/skills", ".cursor", "cursor",
        reads=("claude-code",),
    ),
)

SHARED_SKILLS_SUBDIR = ".agents/skills"


def _under_home(home: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else home / path


class AgentCatalog:
    """Single source of truth for agent directories and cross-read rules.

    Everything else asks the catalog; no other module branches on a
    particular agent id.
    """

    def __init__(
        self,
        agents: Iterable[AgentDescriptor],
        shared_directory: Path,
    ) -> None:
        self._agents: dict[str, AgentDescriptor] = {}
        for agent in agents:
            if agent.agent_id in self._agents:
                msg = f"Duplicate agent id in catalog: {agent.agent_id!r}"
                raise ConfigError(msg)
            self._agents[agent.agent_id] = agent
        self._shared_directory = shared_directory

    # ── Construction ────────────────────────────────────────────────

    @classmethod
    def default(cls, home: Path | None = None) -> AgentCatalog:
        """Catalog of the built-in agents rooted at *home*."""
        home = home if home is not None else Path.home()
        return cls._build(
            {rule.agent_id: rule for rule in _BUILTIN_AGENTS},
            home,
            home / SHARED_SKILLS_SUBDIR,
        )

    @classmethod
    def from_config(cls, config: SkillsyncConfig) -> AgentCatalog:
        """Built-in agents merged with ``[agents.<id>]`` config tables.

        A table for a known agent overrides only the keys it sets; a table
        for an unknown id declares a new agent and must set ``skills_dir``.
        """
        rules = {rule.agent_id: rule for rule in _BUILTIN_AGENTS}
        for agent_id, override in config.agents.items():
            base = rules.get(agent_id)
            if base is None:
                if not override.skills_dir:
                    msg = f"[agents.{agent_id}] declares a new agent but has no skills_dir"
                    raise ConfigError(msg)
                base = _AgentRule(
                    agent_id=agent_id,
                    display_name=agent_id,
                    skills_dir=override.skills_dir,
                    config_dir=None,
                    detect_command=agent_id,
                )
            rules[agent_id] = _AgentRule(
                agent_id=agent_id,
                display_name=override.display_name or base.display_name,
                skills_dir=override.skills_dir or base.skills_dir,
                config_dir=(
                    override.config_dir
                    if override.config_dir is not None
                    else base.config_dir
                ),
                detect_command=override.detect_command or base.detect_command,
                reads=(
                    tuple(override.reads)
                    if override.reads is not None
                    else base.reads
                ),
            )
        return cls._build(rules, config.home_dir, config.shared_skills_path)

    @classmethod
    def _build(
        cls,
        rules: dict[str, _AgentRule],
        home: Path,
        shared_directory: Path,
    ) -> AgentCatalog:
        own_dirs = {
            agent_id: _under_home(home, rule.skills_dir)
            for agent_id, rule in rules.items()
        }
        descriptors: list[AgentDescriptor] = []
        for agent_id, rule in rules.items():
            readable: list[tuple[Path, str]] = []
            for source in rule.reads:
                if source not in own_dirs:
                    msg = f"Agent {agent_id!r} reads unknown agent {source!r}"
                    raise ConfigError(msg)
                if source == agent_id:
                    continue
                readable.append((own_dirs[source], source))
            descriptors.append(AgentDescriptor(
                agent_id=agent_id,
                display_name=rule.display_name,
                skills_dir=own_dirs[agent_id],
                config_dir=(
                    _under_home(home, rule.config_dir)
                    if rule.config_dir is not None
                    else None
                ),
                detect_command=rule.detect_command,
                additional_readable=tuple(readable),
            ))
        return cls(descriptors, shared_directory)

    # ── Lookup ──────────────────────────────────────────────────────

    @property
    def agents(self) -> list[AgentDescriptor]:
        return list(self._agents.values())

    @property
    def agent_ids(self) -> list[str]:
        return list(self._agents)

    @property
    def shared_directory(self) -> Path:
        return self._shared_directory

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def get(self, agent_id: str) -> AgentDescriptor:
        try:
            return self._agents[agent_id]
        except KeyError:
            msg = f"Unknown agent: {agent_id!r}"
            raise AgentNotFoundError(msg) from None

    def own_directory(self, agent_id: str) -> Path:
        return self.get(agent_id).skills_dir

    def additional_readable(self, agent_id: str) -> list[tuple[Path, str]]:
        return list(self.get(agent_id).additional_readable)

    def owner_of(self, path: Path) -> str | None:
        """Agent whose own directory contains *path*; the deepest match wins."""
        owner: str | None = None
        depth = -1
        for agent in self._agents.values():
            root = agent.skills_dir
            if path.is_relative_to(root) and len(root.parts) > depth:
                owner, depth = agent.agent_id, len(root.parts)
        return owner

    def watch_paths(self) -> list[Path]:
        """Every directory whose contents can change a scan result."""
        paths: list[Path] = [self._shared_directory]
        for agent in self._agents.values():
            paths.append(agent.skills_dir)
            paths.extend(directory for directory, _ in agent.additional_readable)
        return list(dict.fromkeys(paths))
