"""Detects which agents are present on this machine."""
from __future__ import annotations

import os
import shutil
from typing import TYPE_CHECKING

from skillsync_core.logging import get_logger

from skillsync_registry.types import AgentStatus

if TYPE_CHECKING:
    from pathlib import Path

    from skillsync_registry.catalog import AgentCatalog
    from skillsync_registry.types import AgentDescriptor

logger = get_logger("registry.detector")


class AgentDetector:
    """Looks for each agent's CLI on ``PATH`` and its directories on disk."""

    def __init__(
        self,
        catalog: AgentCatalog,
        *,
        definition_filename: str = "SKILL.md",
    ) -> None:
        self._catalog = catalog
        self._definition_filename = definition_filename

    def detect(self, agent_id: str) -> AgentStatus:
        agent = self._catalog.get(agent_id)
        return self._status(agent)

    def detect_all(self) -> list[AgentStatus]:
        return [self._status(agent) for agent in self._catalog.agents]

    def _status(self, agent: AgentDescriptor) -> AgentStatus:
        on_path = bool(agent.detect_command) and shutil.which(agent.detect_command) is not None
        config_exists = agent.config_dir is not None and agent.config_dir.is_dir()
        skills_exists = agent.skills_dir.is_dir()
        status = AgentStatus(
            agent=agent,
            is_installed=on_path or config_exists,
            config_dir_exists=config_exists,
            skills_dir_exists=skills_exists,
            skill_count=self._count_skills(agent.skills_dir) if skills_exists else 0,
        )
        logger.debug(
            "%s: installed=%s skills=%d", agent.agent_id, status.is_installed, status.skill_count
        )
        return status

    def _count_skills(self, directory: Path) -> int:
        try:
            names = os.listdir(directory)
        except OSError as exc:
            logger.warning("Cannot list %s: %s", directory, exc)
            return 0
        return sum(
            1
            for name in names
            if not name.startswith(".")
            and os.path.isfile(directory / name / self._definition_filename)
        )
