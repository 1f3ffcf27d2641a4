"""Skillsync Registry: scanning, installation state, manifest and change watching."""
from __future__ import annotations

from skillsync_registry.catalog import AgentCatalog
from skillsync_registry.detector import AgentDetector
from skillsync_registry.installer import InstallationManager
from skillsync_registry.manifest import ManifestStore
from skillsync_registry.parser import DefinitionParser, FrontmatterParser
from skillsync_registry.paths import PathResolver, is_symlink
from skillsync_registry.registry import SkillRegistry
from skillsync_registry.scanner import RegistryScanner
from skillsync_registry.types import (
    AgentDescriptor,
    AgentStatus,
    BrokenLink,
    CanonicalSkill,
    DiagnosticKind,
    Installation,
    Manifest,
    ManifestEntry,
    ParsedDefinition,
    RegistrySnapshot,
    ResolvedPath,
    ScanDiagnostic,
    ScopeKind,
    SkillMetadata,
    SkillScope,
)
from skillsync_registry.watcher import ChangeWatcher

__all__ = [
    "AgentCatalog",
    "AgentDescriptor",
    "AgentDetector",
    "AgentStatus",
    "BrokenLink",
    "CanonicalSkill",
    "ChangeWatcher",
    "DefinitionParser",
    "DiagnosticKind",
    "FrontmatterParser",
    "Installation",
    "InstallationManager",
    "Manifest",
    "ManifestEntry",
    "ManifestStore",
    "ParsedDefinition",
    "PathResolver",
    "RegistryScanner",
    "RegistrySnapshot",
    "ResolvedPath",
    "ScanDiagnostic",
    "ScopeKind",
    "SkillMetadata",
    "SkillRegistry",
    "SkillScope",
    "is_symlink",
]
