"""Registry scanner: turns the agent directories into one immutable snapshot."""
from __future__ import annotations

import os
import threading
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from skillsync_core.errors import (
    CyclicLinkError,
    DefinitionParseError,
    ManifestCorruptError,
    ManifestError,
    PathResolutionError,
)
from skillsync_core.logging import get_logger

from skillsync_registry.parser import FrontmatterParser
from skillsync_registry.paths import PathResolver
from skillsync_registry.types import (
    BrokenLink,
    CanonicalSkill,
    DiagnosticKind,
    Installation,
    RegistrySnapshot,
    ResolvedPath,
    ScanDiagnostic,
    SkillScope,
)

if TYPE_CHECKING:
    from skillsync_registry.catalog import AgentCatalog
    from skillsync_registry.manifest import ManifestStore
    from skillsync_registry.parser import DefinitionParser
    from skillsync_registry.types import AgentDescriptor, Manifest

logger = get_logger("registry.scanner")

DEFAULT_DEFINITION_FILENAME = "SKILL.md"


@dataclass(frozen=True, slots=True)
class _Entry:
    path: Path
    resolved: ResolvedPath


@dataclass(slots=True)
class _ScanState:
    """Scratch space for a single scan; discarded once the snapshot is built."""

    listings: dict[Path, list[_Entry]] = field(default_factory=dict)
    installations: dict[Path, list[Installation]] = field(default_factory=dict)
    diagnostics: list[ScanDiagnostic] = field(default_factory=list)

    def warn(
        self,
        kind: DiagnosticKind,
        path: Path,
        message: str,
        agent_id: str | None = None,
    ) -> None:
        logger.warning("%s: %s", kind.value, message)
        self.diagnostics.append(ScanDiagnostic(kind, path, message, agent_id))


class RegistryScanner:
    """Scans every agent directory and groups sightings by canonical path.

    For each agent a direct pass over its own directory runs first and
    marks every canonical path it reaches as covered; the inherited pass
    over the directories the agent additionally reads then only adds what
    is not yet covered.  A direct installation therefore always suppresses
    an inherited one for the same agent.

    Nothing found on disk raises: unreadable directories, broken or cyclic
    links and malformed definitions become diagnostics on the snapshot.
    """

    def __init__(
        self,
        catalog: AgentCatalog,
        *,
        resolver: PathResolver | None = None,
        manifest_store: ManifestStore | None = None,
        parser: DefinitionParser | None = None,
        definition_filename: str = DEFAULT_DEFINITION_FILENAME,
    ) -> None:
        self._catalog = catalog
        self._resolver = resolver or PathResolver()
        self._manifest_store = manifest_store
        self._parser = parser or FrontmatterParser()
        self._definition_filename = definition_filename
        self._lock = threading.Lock()

    def scan(self) -> RegistrySnapshot:
        """Produce a complete snapshot of the skills currently on disk."""
        with self._lock:
            state = _ScanState()

            for agent in self._catalog.agents:
                self._scan_agent(agent, state)

            # Skills in the shared directory exist even if no agent links them.
            for entry in self._list(self._catalog.shared_directory, None, state):
                state.installations.setdefault(entry.resolved.real_path, [])

            manifest = self._load_manifest(state)
            skills = self._build_skills(state, manifest)
            self._flag_duplicate_ids(skills, state)
            skills.sort(key=lambda s: (s.display_name.lower(), str(s.canonical_path)))

            snapshot = RegistrySnapshot(
                skills=tuple(skills),
                diagnostics=tuple(state.diagnostics),
            )
            logger.info(
                "Scanned %d skill(s) across %d agent(s), %d diagnostic(s)",
                len(snapshot.skills),
                len(self._catalog.agents),
                len(snapshot.diagnostics),
            )
            return snapshot

    # ── Passes ──────────────────────────────────────────────────────

    def _scan_agent(self, agent: AgentDescriptor, state: _ScanState) -> None:
        covered: set[Path] = set()

        for entry in self._list(agent.skills_dir, agent.agent_id, state):
            canonical = entry.resolved.real_path
            if canonical in covered:
                logger.debug(
                    "%s: %s is a second name for %s, ignoring",
                    agent.agent_id, entry.path, canonical,
                )
                continue
            covered.add(canonical)
            state.installations.setdefault(canonical, []).append(Installation(
                agent_id=agent.agent_id,
                path=entry.path,
                is_symlink=entry.resolved.is_symlink,
            ))

        for directory, source_agent in agent.additional_readable:
            for entry in self._list(directory, source_agent, state):
                canonical = entry.resolved.real_path
                if canonical in covered:
                    continue
                covered.add(canonical)
                state.installations.setdefault(canonical, []).append(Installation(
                    agent_id=agent.agent_id,
                    path=entry.path,
                    is_symlink=entry.resolved.is_symlink,
                    is_inherited=True,
                    inherited_from=source_agent,
                ))

    def _list(
        self,
        directory: Path,
        owner: str | None,
        state: _ScanState,
    ) -> list[_Entry]:
        """Canonicalized skill entries of *directory*, cached per scan."""
        cached = state.listings.get(directory)
        if cached is not None:
            return cached

        entries: list[_Entry] = []
        state.listings[directory] = entries

        try:
            names = sorted(os.listdir(directory))
        except FileNotFoundError:
            logger.debug("Skipping non-existent path: %s", directory)
            return entries
        except OSError as exc:
            state.warn(
                DiagnosticKind.TRANSIENT_IO,
                directory,
                f"Cannot list {directory}: {exc.strerror or exc}",
                owner,
            )
            return entries

        for name in names:
            if name.startswith("."):
                continue
            entry_path = directory / name
            try:
                resolved = self._resolver.canonicalize(entry_path)
            except CyclicLinkError as exc:
                state.warn(DiagnosticKind.CYCLIC_LINK, entry_path, str(exc), owner)
                continue
            except PathResolutionError as exc:
                state.warn(DiagnosticKind.TRANSIENT_IO, entry_path, str(exc), owner)
                continue

            if isinstance(resolved, BrokenLink):
                state.warn(
                    DiagnosticKind.BROKEN_LINK,
                    entry_path,
                    f"{entry_path} points to missing {resolved.missing_target}",
                    owner,
                )
                continue

            if not resolved.is_dir:
                continue
            definition = resolved.real_path / self._definition_filename
            if not os.path.isfile(definition):
                logger.debug("No %s in %s, not a skill", self._definition_filename, entry_path)
                continue

            entries.append(_Entry(path=entry_path, resolved=resolved))

        return entries

    # ── Assembly ────────────────────────────────────────────────────

    def _load_manifest(self, state: _ScanState) -> Manifest | None:
        if self._manifest_store is None:
            return None
        try:
            return self._manifest_store.load()
        except ManifestCorruptError as exc:
            state.warn(DiagnosticKind.MANIFEST_CORRUPT, self._manifest_store.path, str(exc))
        except ManifestError as exc:
            state.warn(DiagnosticKind.TRANSIENT_IO, self._manifest_store.path, str(exc))
        return None

    def _build_skills(
        self,
        state: _ScanState,
        manifest: Manifest | None,
    ) -> list[CanonicalSkill]:
        shared_root = self._real_dir(self._catalog.shared_directory)
        agent_roots = [
            (self._real_dir(agent.skills_dir), agent.agent_id)
            for agent in self._catalog.agents
        ]

        skills: list[CanonicalSkill] = []
        for canonical, installations in state.installations.items():
            skill_id = canonical.name
            definition_path = canonical / self._definition_filename
            metadata = None
            body = ""
            parse_error: str | None = None

            try:
                raw = definition_path.read_bytes()
            except OSError as exc:
                parse_error = f"Cannot read {definition_path}: {exc.strerror or exc}"
                state.warn(DiagnosticKind.TRANSIENT_IO, definition_path, parse_error)
            else:
                try:
                    parsed = self._parser.parse(raw)
                except DefinitionParseError as exc:
                    parse_error = str(exc)
                    state.warn(
                        DiagnosticKind.PARSE_FAILURE,
                        definition_path,
                        f"{definition_path}: {exc}",
                    )
                except Exception as exc:
                    parse_error = f"{type(exc).__name__}: {exc}"
                    logger.warning("Parser failed on %s", definition_path, exc_info=True)
                    state.diagnostics.append(ScanDiagnostic(
                        DiagnosticKind.PARSE_FAILURE, definition_path, parse_error
                    ))
                else:
                    metadata = parsed.metadata
                    body = parsed.body

            skills.append(CanonicalSkill(
                id=skill_id,
                canonical_path=canonical,
                definition_path=definition_path,
                scope=self._classify(canonical, shared_root, agent_roots),
                installations=tuple(installations),
                metadata=metadata,
                body=body,
                parse_error=parse_error,
                manifest_entry=(
                    manifest.skills.get(skill_id) if manifest is not None else None
                ),
            ))
        return skills

    def _flag_duplicate_ids(self, skills: list[CanonicalSkill], state: _ScanState) -> None:
        counts = Counter(skill.id for skill in skills)
        for skill in skills:
            if counts[skill.id] > 1:
                state.warn(
                    DiagnosticKind.DUPLICATE_ID,
                    skill.canonical_path,
                    f"Skill id {skill.id!r} is used by {counts[skill.id]} different directories",
                )

    def _real_dir(self, directory: Path) -> Path:
        try:
            resolved = self._resolver.canonicalize(directory)
        except PathResolutionError:
            return Path(os.path.abspath(directory))
        if isinstance(resolved, BrokenLink):
            return Path(os.path.abspath(directory))
        return resolved.real_path

    @staticmethod
    def _classify(
        canonical: Path,
        shared_root: Path,
        agent_roots: list[tuple[Path, str]],
    ) -> SkillScope:
        """Shared directory first, then the deepest owning agent directory."""
        if canonical.is_relative_to(shared_root):
            return SkillScope.shared_global()

        owner: str | None = None
        depth = -1
        for root, agent_id in agent_roots:
            if canonical.is_relative_to(root) and len(root.parts) > depth:
                owner, depth = agent_id, len(root.parts)
        if owner is not None:
            return SkillScope.agent_local(owner)
        return SkillScope.project(canonical.parent)
