from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from skillsync_core.errors import ConfigError


def _load_toml(path: Path) -> dict:
    """Load a TOML file, returning empty dict if missing."""
    if not path.exists():
        return {}
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except Exception:
        return {}


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base (1 level deep for TOML sections)."""
    merged = dict(base)
    for key, val in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(val, dict)
        ):
            merged[key] = {**merged[key], **val}
        else:
            merged[key] = val
    return merged


def _expand(value: str | None) -> Path | None:
    if value is None:
        return None
    return Path(value).expanduser()


@dataclass(frozen=True, slots=True)
class PathsConfig:
    home: str | None = None
    shared_skills_dir: str | None = None
    manifest_path: str | None = None


@dataclass(frozen=True, slots=True)
class ScannerConfig:
    max_symlink_hops: int = 32
    definition_filename: str = "SKILL.md"

    def __post_init__(self) -> None:
        if self.max_symlink_hops < 1:
            msg = f"scanner.max_symlink_hops must be >= 1, got {self.max_symlink_hops}"
            raise ConfigError(msg)
        if not self.definition_filename or "/" in self.definition_filename:
            msg = f"scanner.definition_filename is invalid: {self.definition_filename!r}"
            raise ConfigError(msg)


@dataclass(frozen=True, slots=True)
class WatcherConfig:
    debounce_ms: int = 500
    polling: bool = False
    poll_interval_ms: int = 1000

    def __post_init__(self) -> None:
        if self.debounce_ms <= 0:
            msg = f"watcher.debounce_ms must be positive, got {self.debounce_ms}"
            raise ConfigError(msg)
        if self.poll_interval_ms <= 0:
            msg = f"watcher.poll_interval_ms must be positive, got {self.poll_interval_ms}"
            raise ConfigError(msg)


_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Logging settings; ``levels`` maps component loggers to their own level.

    Component names are relative to the ``skillsync`` namespace, for example
    ``"registry.watcher" = "DEBUG"`` under ``[logging.levels]``.
    """
    level: str = "INFO"
    json: bool = False
    levels: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.levels, dict):
            msg = "logging.levels must be a table of component = level"
            raise ConfigError(msg)
        for name, level in {"level": self.level, **self.levels}.items():
            if not isinstance(level, str) or level.upper() not in _LOG_LEVELS:
                msg = f"logging level for {name!r} is invalid: {level!r}"
                raise ConfigError(msg)


@dataclass(frozen=True, slots=True)
class AgentOverride:
    """Per-agent override or new agent declared under ``[agents.<id>]``."""
    skills_dir: str | None = None
    config_dir: str | None = None
    display_name: str | None = None
    detect_command: str | None = None
    reads: list[str] | None = None


@dataclass(frozen=True, slots=True)
class SkillsyncConfig:
    """Top-level configuration, parsed from skillsync.toml."""
    paths: PathsConfig = field(default_factory=PathsConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    watcher: WatcherConfig = field(default_factory=WatcherConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    agents: dict[str, AgentOverride] = field(default_factory=dict)

    @property
    def home_dir(self) -> Path:
        return _expand(self.paths.home) or Path.home()

    @property
    def shared_skills_path(self) -> Path:
        return (
            _expand(self.paths.shared_skills_dir)
            or self.home_dir / ".agents" / "skills"
        )

    @property
    def manifest_file(self) -> Path:
        return (
            _expand(self.paths.manifest_path)
            or self.home_dir / ".agents" / ".skill-lock.json"
        )

    @classmethod
    def from_toml(
        cls, path: Path | str = "skillsync.toml"
    ) -> SkillsyncConfig:
        path = Path(path)
        raw = _load_toml(path)
        return cls._from_raw(raw)

    @classmethod
    def load(
        cls, project_dir: Path | str | None = None
    ) -> SkillsyncConfig:
        """Load config with global → project layering.

        Resolution order (later wins):
        1. Built-in defaults
        2. ~/.skillsync/config.toml (global)
        3. .skillsync/config.toml or skillsync.toml (project)
        """
        global_path = Path.home() / ".skillsync" / "config.toml"

        project_dir = (
            Path.cwd() if project_dir is None else Path(project_dir)
        )

        # Project config: .skillsync/config.toml takes priority
        project_path = project_dir / ".skillsync" / "config.toml"
        if not project_path.exists():
            project_path = project_dir / "skillsync.toml"

        global_raw = _load_toml(global_path)
        project_raw = _load_toml(project_path)
        merged = _deep_merge(global_raw, project_raw)

        return cls._from_raw(merged)

    @classmethod
    def _from_raw(cls, raw: dict) -> SkillsyncConfig:
        """Build SkillsyncConfig from a raw TOML dict."""
        paths_raw = raw.get("paths", {})
        scanner_raw = raw.get("scanner", {})
        watcher_raw = raw.get("watcher", {})
        logging_raw = raw.get("logging", {})
        agents_raw = raw.get("agents", {})

        def _pick(section: dict, dc: type) -> dict:
            fields = dc.__dataclass_fields__
            return {
                k: v for k, v in section.items() if k in fields
            }

        if not isinstance(agents_raw, dict):
            msg = "[agents] must be a table of agent tables"
            raise ConfigError(msg)

        agents: dict[str, AgentOverride] = {}
        for agent_id, section in agents_raw.items():
            if not isinstance(section, dict):
                msg = f"[agents.{agent_id}] must be a table"
                raise ConfigError(msg)
            reads = section.get("reads")
            if reads is not None and not isinstance(reads, list):
                msg = f"[agents.{agent_id}] reads must be a list of agent ids"
                raise ConfigError(msg)
            agents[agent_id] = AgentOverride(**_pick(section, AgentOverride))

        return cls(
            paths=PathsConfig(**_pick(paths_raw, PathsConfig)),
            scanner=ScannerConfig(**_pick(scanner_raw, ScannerConfig)),
            watcher=WatcherConfig(**_pick(watcher_raw, WatcherConfig)),
            logging=LoggingConfig(**_pick(logging_raw, LoggingConfig)),
            agents=agents,
        )
