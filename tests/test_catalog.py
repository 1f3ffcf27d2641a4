"""Tests for the agent catalog and its cross-read rules."""
from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from skillsync_core.config import AgentOverride, PathsConfig, SkillsyncConfig
from skillsync_core.errors import AgentNotFoundError, ConfigError
from skillsync_registry.catalog import AgentCatalog
from skillsync_registry.types import AgentDescriptor

if TYPE_CHECKING:
    from pathlib import Path


class TestDefaultCatalog:
    def test_builtin_agents(self, home: Path) -> None:
        catalog = AgentCatalog.default(home)

        assert "claude-code" in catalog
        assert "codex" in catalog
        assert catalog.own_directory("claude-code") == home / ".claude" / "skills"
        assert catalog.shared_directory == home / ".agents" / "skills"

    def test_read_rules(self, home: Path) -> None:
        catalog = AgentCatalog.default(home)
        claude = home / ".claude" / "skills"

        assert catalog.additional_readable("copilot-cli") == [(claude, "claude-code")]
        assert catalog.additional_readable("opencode") == [
            (claude, "claude-code"),
            (home / ".agents" / "skills", "codex"),
        ]
        assert catalog.additional_readable("claude-code") == []

    def test_unknown_agent(self, home: Path) -> None:
        with pytest.raises(AgentNotFoundError):
            AgentCatalog.default(home).get("nope")

    def test_watch_paths_are_unique(self, home: Path) -> None:
        paths = AgentCatalog.default(home).watch_paths()

        assert paths[0] == home / ".agents" / "skills"
        assert len(paths) == len(set(paths))
        assert home / ".cursor" / "skills" in paths

    def test_owner_of(self, home: Path) -> None:
        catalog = AgentCatalog.default(home)

        assert catalog.owner_of(home / ".claude" / "skills" / "pdf") == "claude-code"
        assert catalog.owner_of(home / ".gemini" / "antigravity" / "skills" / "x") == "antigravity"
        assert catalog.owner_of(home / "projects" / "pdf") is None


class TestCatalogConstruction:
    def test_duplicate_ids_rejected(self, home: Path) -> None:
        agent = AgentDescriptor("a", "A", home / "a")
        with pytest.raises(ConfigError):
            AgentCatalog([agent, agent], home / "shared")

    def test_config_overrides_and_new_agents(self, home: Path) -> None:
        config = SkillsyncConfig(
            paths=PathsConfig(home=str(home)),
            agents={
                "cursor": AgentOverride(reads=[]),
                "my-agent": AgentOverride(
                    skills_dir=".my-agent/skills",
                    display_name="My Agent",
                    reads=["claude-code"],
                ),
            },
        )

        catalog = AgentCatalog.from_config(config)

        assert catalog.additional_readable("cursor") == []
        mine = catalog.get("my-agent")
        assert mine.display_name == "My Agent"
        assert mine.skills_dir == home / ".my-agent" / "skills"
        assert mine.additional_readable == ((home / ".claude" / "skills", "claude-code"),)

    def test_new_agent_needs_skills_dir(self, home: Path) -> None:
        config = SkillsyncConfig(
            paths=PathsConfig(home=str(home)),
            agents={"ghost": AgentOverride(display_name="Ghost")},
        )
        with pytest.raises(ConfigError):
            AgentCatalog.from_config(config)

    def test_read_of_unknown_agent_rejected(self, home: Path) -> None:
        config = SkillsyncConfig(
            paths=PathsConfig(home=str(home)),
            agents={"cursor": AgentOverride(reads=["nobody"])},
        )
        with pytest.raises(ConfigError):
            AgentCatalog.from_config(config)
