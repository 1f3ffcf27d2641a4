"""Skillsync Core: shared config, errors, and logging."""
from __future__ import annotations

from skillsync_core._version import __version__
from skillsync_core.config import (
    AgentOverride,
    LoggingConfig,
    PathsConfig,
    ScannerConfig,
    SkillsyncConfig,
    WatcherConfig,
)
from skillsync_core.errors import (
    AgentNotFoundError,
    CannotRemoveCanonicalOriginalError,
    ConfigError,
    CyclicLinkError,
    DefinitionParseError,
    InheritedInstallationImmutableError,
    InstallationConflictError,
    InstallationError,
    ManifestCorruptError,
    ManifestError,
    ManifestReadError,
    ManifestWriteError,
    PathResolutionError,
    SkillError,
    SkillNotFoundError,
    SkillsyncError,
    TransientIOError,
    WatcherError,
)
from skillsync_core.logging import get_logger, setup_logging

__all__ = [
    # Config
    "AgentOverride",
    # Errors
    "AgentNotFoundError",
    "CannotRemoveCanonicalOriginalError",
    "ConfigError",
    "CyclicLinkError",
    "DefinitionParseError",
    "InheritedInstallationImmutableError",
    "InstallationConflictError",
    "InstallationError",
    "LoggingConfig",
    "ManifestCorruptError",
    "ManifestError",
    "ManifestReadError",
    "ManifestWriteError",
    "PathResolutionError",
    "PathsConfig",
    "ScannerConfig",
    "SkillError",
    "SkillNotFoundError",
    "SkillsyncConfig",
    "SkillsyncError",
    "TransientIOError",
    "WatcherConfig",
    "WatcherError",
    # Version
    "__version__",
    # Logging
    "get_logger",
    "setup_logging",
]
