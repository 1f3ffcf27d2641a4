"""Value types shared by the scanner, installer, manifest store and facade."""
from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

# ── Agents ───────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class AgentDescriptor:
    """Static description of one consumer agent and what it can read.

    ``additional_readable`` lists directories owned by other agents that
    this agent also loads skills from, tagged with the owning agent id.
    """

    agent_id: str
    display_name: str
    skills_dir: Path
    config_dir: Path | None = None
    detect_command: str | None = None
    additional_readable: tuple[tuple[Path, str], ...] = ()


@dataclass(frozen=True, slots=True)
class AgentStatus:
    """What is present on this machine for one agent."""

    agent: AgentDescriptor
    is_installed: bool
    config_dir_exists: bool
    skills_dir_exists: bool
    skill_count: int

    @property
    def agent_id(self) -> str:
        return self.agent.agent_id


# ── Path resolution ──────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ResolvedPath:
    """A filesystem entry and the real location it ends up at."""

    path: Path
    real_path: Path
    is_symlink: bool
    is_dir: bool
    hops: int = 0


@dataclass(frozen=True, slots=True)
class BrokenLink:
    """A symlink chain whose final target does not exist."""

    path: Path
    missing_target: Path
    hops: int = 0


# ── Skill definitions ────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class SkillMetadata:
    """Frontmatter of a SKILL.md file.

    Keys the parser does not model are kept in ``extra`` so that a
    parse/serialize cycle does not drop them.
    """

    name: str
    description: str = ""
    license: str | None = None
    author: str | None = None
    version: str | None = None
    allowed_tools: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ParsedDefinition:
    metadata: SkillMetadata
    body: str


# ── Scope & installations ────────────────────────────────────────────


class ScopeKind(enum.Enum):
    SHARED_GLOBAL = "global"
    AGENT_LOCAL = "local"
    PROJECT = "project"


@dataclass(frozen=True, slots=True)
class SkillScope:
    """Where a skill's canonical files live."""

    kind: ScopeKind
    agent_id: str | None = None
    path: Path | None = None

    @classmethod
    def shared_global(cls) -> SkillScope:
        return cls(ScopeKind.SHARED_GLOBAL)

    @classmethod
    def agent_local(cls, agent_id: str) -> SkillScope:
        return cls(ScopeKind.AGENT_LOCAL, agent_id=agent_id)

    @classmethod
    def project(cls, path: Path) -> SkillScope:
        return cls(ScopeKind.PROJECT, path=path)

    @property
    def id(self) -> str:
        if self.kind is ScopeKind.AGENT_LOCAL:
            return f"local-{self.agent_id}"
        if self.kind is ScopeKind.PROJECT:
            return f"project-{self.path}"
        return "global"


@dataclass(frozen=True, slots=True)
class Installation:
    """One agent's visibility of a canonical skill."""

    agent_id: str
    path: Path
    is_symlink: bool
    is_inherited: bool = False
    inherited_from: str | None = None

    @property
    def id(self) -> str:
        return f"{self.agent_id}-{self.path}"


# ── Manifest ─────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ManifestEntry:
    """Provenance record for one skill in the lock file."""

    source: str
    source_type: str
    source_url: str
    skill_path: str = ""
    skill_folder_hash: str = ""
    installed_at: str = ""
    updated_at: str = ""
    remote_hash: str | None = None
    remote_commit_hash: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


MANIFEST_VERSION = 3


@dataclass(frozen=True, slots=True)
class Manifest:
    """The whole lock file document.

    ``extra`` holds every top-level key other than ``version`` and
    ``skills``; it is written back untouched.
    """

    version: int = MANIFEST_VERSION
    skills: dict[str, ManifestEntry] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    def with_entry(self, skill_id: str, entry: ManifestEntry) -> Manifest:
        return replace(self, skills={**self.skills, skill_id: entry})

    def without_entry(self, skill_id: str) -> Manifest:
        skills = {k: v for k, v in self.skills.items() if k != skill_id}
        return replace(self, skills=skills)


# ── Canonical skills & snapshots ─────────────────────────────────────


@dataclass(frozen=True, slots=True)
class CanonicalSkill:
    """One logical skill, identified by its real on-disk directory."""

    id: str
    canonical_path: Path
    definition_path: Path
    scope: SkillScope
    installations: tuple[Installation, ...] = ()
    metadata: SkillMetadata | None = None
    body: str = ""
    parse_error: str | None = None
    manifest_entry: ManifestEntry | None = None

    @property
    def display_name(self) -> str:
        if self.metadata is not None and self.metadata.name:
            return self.metadata.name
        return self.id

    @property
    def description(self) -> str:
        return self.metadata.description if self.metadata is not None else ""

    @property
    def installed_agents(self) -> list[str]:
        return [inst.agent_id for inst in self.installations]

    def installation_for(self, agent_id: str) -> Installation | None:
        for inst in self.installations:
            if inst.agent_id == agent_id:
                return inst
        return None


class DiagnosticKind(enum.Enum):
    TRANSIENT_IO = "transient_io"
    BROKEN_LINK = "broken_link"
    CYCLIC_LINK = "cyclic_link"
    PARSE_FAILURE = "parse_failure"
    MANIFEST_CORRUPT = "manifest_corrupt"
    DUPLICATE_ID = "duplicate_id"


@dataclass(frozen=True, slots=True)
class ScanDiagnostic:
    """A non-fatal problem found while scanning."""

    kind: DiagnosticKind
    path: Path
    message: str
    agent_id: str | None = None


@dataclass(frozen=True, slots=True)
class RegistrySnapshot:
    """Immutable result of one scan.

    Two snapshots of an unchanged filesystem compare equal; the scan
    timestamp is not part of equality.
    """

    skills: tuple[CanonicalSkill, ...] = ()
    diagnostics: tuple[ScanDiagnostic, ...] = ()
    scanned_at: float = field(default_factory=time.time, compare=False)

    def __len__(self) -> int:
        return len(self.skills)

    def __iter__(self):
        return iter(self.skills)

    def find(self, skill_id: str) -> list[CanonicalSkill]:
        """All skills with this id (distinct canonical paths may share one)."""
        return [s for s in self.skills if s.id == skill_id]

    def get(self, skill_id: str) -> CanonicalSkill | None:
        """The preferred skill for *skill_id*, shared-global copies first."""
        matches = self.find(skill_id)
        if not matches:
            return None
        for skill in matches:
            if skill.scope.kind is ScopeKind.SHARED_GLOBAL:
                return skill
        return matches[0]

    def for_agent(self, agent_id: str) -> list[CanonicalSkill]:
        return [s for s in self.skills if s.installation_for(agent_id) is not None]

    def search(self, query: str) -> list[CanonicalSkill]:
        """Case-insensitive match on name, description, source and author."""
        if not query:
            return list(self.skills)
        needle = query.lower()
        results: list[CanonicalSkill] = []
        for skill in self.skills:
            haystack = [skill.display_name, skill.description]
            if skill.manifest_entry is not None:
                haystack.append(skill.manifest_entry.source)
            if skill.metadata is not None and skill.metadata.author:
                haystack.append(skill.metadata.author)
            if any(needle in text.lower() for text in haystack):
                results.append(skill)
        return results
