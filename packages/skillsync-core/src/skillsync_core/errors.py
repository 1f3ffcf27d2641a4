from __future__ import annotations


class SkillsyncError(Exception):
    """Base exception for all skillsync errors."""


# ── Config Errors ────────────────────────────────────────────────────

class ConfigError(SkillsyncError):
    """Invalid or missing configuration."""


# ── Path Resolution Errors ───────────────────────────────────────────

class PathResolutionError(SkillsyncError):
    """Base for failures while canonicalizing a filesystem entry."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class TransientIOError(PathResolutionError):
    """Entry or directory is missing or unreadable (permission, I/O)."""


class CyclicLinkError(PathResolutionError):
    """Symlink chain is cyclic or exceeds the hop limit."""


# ── Agent Errors ─────────────────────────────────────────────────────

class AgentNotFoundError(SkillsyncError):
    """Agent id is not present in the catalog."""


# ── Skill Errors ─────────────────────────────────────────────────────

class SkillError(SkillsyncError):
    """Base for skill-related errors."""


class SkillNotFoundError(SkillError):
    """Skill is not present on disk or in the current snapshot."""


class DefinitionParseError(SkillError):
    """SKILL.md could not be decoded or its frontmatter is malformed."""


# ── Manifest Errors ──────────────────────────────────────────────────

class ManifestError(SkillsyncError):
    """Base for lock file errors."""


class ManifestCorruptError(ManifestError):
    """Lock file exists but is not a valid manifest document."""


class ManifestReadError(ManifestError):
    """Lock file exists but could not be read."""


class ManifestWriteError(ManifestError):
    """Lock file could not be written; the previous file is untouched."""


# ── Installation Errors ──────────────────────────────────────────────

class InstallationError(SkillsyncError):
    """Base for errors while linking or unlinking a skill."""


class InheritedInstallationImmutableError(InstallationError):
    """Installation is inherited and must be changed at its source agent."""


class CannotRemoveCanonicalOriginalError(InstallationError):
    """Target is the canonical original, not a derived symlink."""


class InstallationConflictError(InstallationError):
    """Target path is occupied by something other than the expected link."""


# ── Watcher Errors ───────────────────────────────────────────────────

class WatcherError(SkillsyncError):
    """Filesystem watcher could not be started."""
