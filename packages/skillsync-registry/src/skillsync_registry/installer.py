"""Creates and removes agent installations (symlinks) and deletes skills."""
from __future__ import annotations

import contextlib
import os
import shutil
import threading
import uuid
from typing import TYPE_CHECKING

from skillsync_core.errors import (
    CannotRemoveCanonicalOriginalError,
    InheritedInstallationImmutableError,
    InstallationConflictError,
    InstallationError,
    PathResolutionError,
    SkillNotFoundError,
)
from skillsync_core.logging import get_logger

from skillsync_registry.paths import PathResolver, is_symlink
from skillsync_registry.types import BrokenLink, Installation

if TYPE_CHECKING:
    from pathlib import Path

    from skillsync_registry.catalog import AgentCatalog
    from skillsync_registry.manifest import ManifestStore
    from skillsync_registry.types import CanonicalSkill

logger = get_logger("registry.installer")


class InstallationManager:
    """Mutates agent directories on behalf of the registry.

    Only symlinks this class can prove point at the skill are ever removed;
    real directories are never touched by :meth:`remove_installation`.
    Mutations are serialized by one lock.
    """

    def __init__(
        self,
        catalog: AgentCatalog,
        *,
        resolver: PathResolver | None = None,
        manifest_store: ManifestStore | None = None,
    ) -> None:
        self._catalog = catalog
        self._resolver = resolver or PathResolver()
        self._manifest_store = manifest_store
        self._lock = threading.Lock()

    # ── Helpers ─────────────────────────────────────────────────────

    def _points_at(self, link: Path, canonical: Path) -> bool:
        try:
            resolved = self._resolver.canonicalize(link)
        except PathResolutionError:
            return False
        if isinstance(resolved, BrokenLink):
            return False
        return resolved.real_path == canonical

    def _is_dangling(self, link: Path) -> bool:
        try:
            return isinstance(self._resolver.canonicalize(link), BrokenLink)
        except PathResolutionError:
            return False

    # ── Add / remove ────────────────────────────────────────────────

    def add_installation(self, skill: CanonicalSkill, agent_id: str) -> Installation:
        """Make *skill* visible to *agent_id* by linking it into the agent's directory.

        Idempotent: an existing direct installation is returned as-is.

        Raises:
            AgentNotFoundError: *agent_id* is not in the catalog.
            InheritedInstallationImmutableError: The agent already sees the
                skill through another agent's directory.
            SkillNotFoundError: The canonical directory no longer exists.
            InstallationConflictError: Something else already occupies the
                target name.
        """
        own_dir = self._catalog.own_directory(agent_id)
        with self._lock:
            existing = skill.installation_for(agent_id)
            if existing is not None:
                if existing.is_inherited:
                    msg = (
                        f"{agent_id} already reads {skill.id!r} from "
                        f"{existing.inherited_from}; nothing to link"
                    )
                    raise InheritedInstallationImmutableError(msg)
                return existing

            if not skill.canonical_path.is_dir():
                msg = f"Skill directory {skill.canonical_path} no longer exists"
                raise SkillNotFoundError(msg)

            target = own_dir / skill.id
            if os.path.lexists(target):
                if self._points_at(target, skill.canonical_path):
                    logger.debug("%s already links to %s", target, skill.canonical_path)
                    return Installation(agent_id, target, is_symlink(target))
                msg = f"{target} already exists and is not {skill.canonical_path}"
                raise InstallationConflictError(msg)

            try:
                own_dir.mkdir(parents=True, exist_ok=True)
                os.symlink(skill.canonical_path, target, target_is_directory=True)
            except FileExistsError as exc:
                msg = f"{target} was created concurrently"
                raise InstallationConflictError(msg) from exc
            except OSError as exc:
                msg = f"Cannot link {target}: {exc.strerror or exc}"
                raise InstallationError(msg) from exc

            if not self._points_at(target, skill.canonical_path):
                with contextlib.suppress(OSError):
                    os.unlink(target)
                msg = f"Link {target} does not resolve to {skill.canonical_path}"
                raise InstallationConflictError(msg)

            logger.info("Linked %s into %s", skill.id, agent_id)
            return Installation(agent_id, target, is_symlink=True)

    def remove_installation(
        self,
        skill: CanonicalSkill,
        agent_id: str,
    ) -> Installation | None:
        """Unlink *skill* from *agent_id*'s directory.

        Returns the removed installation, or ``None`` when there was nothing
        the agent could remove (no installation, or only an inherited one).

        Raises:
            CannotRemoveCanonicalOriginalError: The installation is the real
                directory, not a link.
            InstallationConflictError: The link now points somewhere else.
        """
        self._catalog.get(agent_id)
        with self._lock:
            existing = skill.installation_for(agent_id)
            if existing is None:
                return None
            if existing.is_inherited:
                logger.debug(
                    "%s sees %s via %s; leaving it alone",
                    agent_id, skill.id, existing.inherited_from,
                )
                return None

            self._unlink_checked(existing.path, skill.canonical_path)
            logger.info("Unlinked %s from %s", skill.id, agent_id)
            return existing

    def _unlink_checked(self, link: Path, canonical: Path) -> None:
        if not os.path.lexists(link):
            return
        if not is_symlink(link):
            msg = f"{link} is the skill's real directory, not a link"
            raise CannotRemoveCanonicalOriginalError(msg)
        if not self._points_at(link, canonical) and not self._is_dangling(link):
            msg = f"{link} no longer points at {canonical}"
            raise InstallationConflictError(msg)
        try:
            os.unlink(link)
        except FileNotFoundError:
            pass
        except OSError as exc:
            msg = f"Cannot remove {link}: {exc.strerror or exc}"
            raise InstallationError(msg) from exc

    # ── Delete ──────────────────────────────────────────────────────

    def delete_skill(self, skill: CanonicalSkill) -> None:
        """Remove *skill* everywhere: links, canonical files and manifest entry.

        The canonical directory is first renamed to a hidden sibling so a
        concurrent scan never sees a half-deleted skill.  If unlinking the
        installations then fails, the rename and every removed link are
        rolled back before the error propagates.

        Raises:
            CannotRemoveCanonicalOriginalError: A recorded link was replaced
                by a real directory.
            InstallationConflictError: A recorded link now points at
                another skill.
            SkillNotFoundError: The canonical directory no longer exists.
            ManifestError: The lock file cannot be read; nothing was changed.
        """
        with self._lock:
            # Non-link direct installations are the canonical directory itself.
            links = [
                inst for inst in skill.installations
                if inst.is_symlink and not inst.is_inherited
            ]
            canonical = skill.canonical_path
            for inst in links:
                if not os.path.lexists(inst.path):
                    continue
                if not is_symlink(inst.path):
                    msg = f"{inst.path} was replaced by a real directory since the last scan"
                    raise CannotRemoveCanonicalOriginalError(msg)
                if not self._points_at(inst.path, canonical) and not self._is_dangling(inst.path):
                    msg = f"{inst.path} no longer points at {canonical}"
                    raise InstallationConflictError(msg)

            if not canonical.is_dir():
                msg = f"Skill directory {canonical} no longer exists"
                raise SkillNotFoundError(msg)

            # A lock file that cannot be read must stop the delete before anything moves.
            if self._manifest_store is not None:
                self._manifest_store.load()

            trash = canonical.with_name(f".{canonical.name}.deleting-{uuid.uuid4().hex[:8]}")
            try:
                os.rename(canonical, trash)
            except OSError as exc:
                msg = f"Cannot move {canonical} aside: {exc.strerror or exc}"
                raise InstallationError(msg) from exc

            removed: list[tuple[Path, str]] = []
            try:
                for inst in links:
                    if not os.path.lexists(inst.path):
                        continue
                    target = os.readlink(inst.path)
                    os.unlink(inst.path)
                    removed.append((inst.path, target))
            except OSError as exc:
                self._rollback(canonical, trash, removed)
                msg = f"Cannot remove links for {skill.id}: {exc.strerror or exc}"
                raise InstallationError(msg) from exc

            try:
                shutil.rmtree(trash)
            except OSError:
                logger.warning("Could not remove %s; delete it manually", trash, exc_info=True)

            if self._manifest_store is not None:
                self._manifest_store.remove_entry(skill.id)

            logger.info("Deleted skill %s (%d link(s) removed)", skill.id, len(removed))

    @staticmethod
    def _rollback(canonical: Path, trash: Path, removed: list[tuple[Path, str]]) -> None:
        try:
            os.rename(trash, canonical)
        except OSError:
            logger.error("Rollback failed: %s is still at %s", canonical, trash, exc_info=True)
        for link, target in removed:
            try:
                os.symlink(target, link, target_is_directory=True)
            except OSError:
                logger.error("Rollback failed: could not restore %s", link, exc_info=True)
