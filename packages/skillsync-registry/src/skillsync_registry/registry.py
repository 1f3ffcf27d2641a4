"""SkillRegistry: the async entry point that ties the registry components together.

Scans are coalesced.  At most one scan runs at a time and at most one more is
queued behind it; every caller that asks for a scan while one is running
shares that single follow-up.  Snapshots are immutable and published by
replacing one reference, so readers never need a lock.
"""
from __future__ import annotations

import asyncio
import contextlib
import os
import stat
import tempfile
from typing import TYPE_CHECKING, Any

from skillsync_core.errors import SkillError, SkillNotFoundError
from skillsync_core.logging import get_logger

from skillsync_registry.catalog import AgentCatalog
from skillsync_registry.detector import AgentDetector
from skillsync_registry.installer import InstallationManager
from skillsync_registry.manifest import ManifestStore
from skillsync_registry.parser import FrontmatterParser
from skillsync_registry.paths import PathResolver
from skillsync_registry.scanner import DEFAULT_DEFINITION_FILENAME, RegistryScanner
from skillsync_registry.types import RegistrySnapshot
from skillsync_registry.watcher import ChangeWatcher

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from skillsync_core.config import SkillsyncConfig

    from skillsync_registry.parser import DefinitionParser
    from skillsync_registry.types import (
        AgentStatus,
        CanonicalSkill,
        Installation,
        ManifestEntry,
        SkillMetadata,
    )

logger = get_logger("registry")


def _log_scan_failure(future: asyncio.Future[RegistrySnapshot]) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Background scan failed: %s", exc, exc_info=exc)


def _write_text_atomic(path: Path, text: str) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        try:
            mode = stat.S_IMODE(os.stat(path).st_mode)
        except FileNotFoundError:
            mode = 0o644
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise


class SkillRegistry:
    """Central registry of every skill visible to every configured agent.

    Usage::

        registry = SkillRegistry.from_config(SkillsyncConfig.load())
        snapshot = await registry.scan()
        for skill in snapshot:
            print(skill.id, skill.installed_agents)
    """

    def __init__(
        self,
        catalog: AgentCatalog,
        *,
        manifest_store: ManifestStore | None = None,
        resolver: PathResolver | None = None,
        parser: DefinitionParser | None = None,
        watcher: ChangeWatcher | None = None,
        definition_filename: str = DEFAULT_DEFINITION_FILENAME,
    ) -> None:
        resolver = resolver or PathResolver()
        self._catalog = catalog
        self._manifest_store = manifest_store
        self._parser = parser or FrontmatterParser()
        self._scanner = RegistryScanner(
            catalog,
            resolver=resolver,
            manifest_store=manifest_store,
            parser=self._parser,
            definition_filename=definition_filename,
        )
        self._installer = InstallationManager(
            catalog, resolver=resolver, manifest_store=manifest_store
        )
        self._detector = AgentDetector(catalog, definition_filename=definition_filename)
        self._watcher = watcher or ChangeWatcher()

        self._snapshot = RegistrySnapshot()
        self._subscribers: list[Callable[[RegistrySnapshot], None]] = []
        self._inflight: asyncio.Future[RegistrySnapshot] | None = None
        self._queued: asyncio.Future[RegistrySnapshot] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closed = False

    @classmethod
    def from_config(cls, config: SkillsyncConfig) -> SkillRegistry:
        """Wire every component from a loaded :class:`SkillsyncConfig`."""
        return cls(
            AgentCatalog.from_config(config),
            manifest_store=ManifestStore(config.manifest_file),
            resolver=PathResolver(config.scanner.max_symlink_hops),
            watcher=ChangeWatcher.from_config(config.watcher),
            definition_filename=config.scanner.definition_filename,
        )

    async def __aenter__(self) -> SkillRegistry:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ── Read side ───────────────────────────────────────────────────

    @property
    def current(self) -> RegistrySnapshot:
        """Latest published snapshot; empty until the first scan completes."""
        return self._snapshot

    @property
    def catalog(self) -> AgentCatalog:
        return self._catalog

    @property
    def manifest_store(self) -> ManifestStore | None:
        return self._manifest_store

    @property
    def is_watching(self) -> bool:
        return self._watcher.is_running

    def get_skill(self, skill_id: str) -> CanonicalSkill:
        """Look up *skill_id* in the current snapshot.

        Raises:
            SkillNotFoundError: No skill with that id was found by the last scan.
        """
        skill = self._snapshot.get(skill_id)
        if skill is None:
            msg = f"Skill not found: {skill_id!r}"
            raise SkillNotFoundError(msg)
        return skill

    def subscribe(
        self, callback: Callable[[RegistrySnapshot], None]
    ) -> Callable[[], None]:
        """Call *callback* with every newly published snapshot.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._subscribers.remove(callback)

        return _unsubscribe

    # ── Scanning ────────────────────────────────────────────────────

    def request_scan(self) -> asyncio.Future[RegistrySnapshot]:
        """Ask for a scan without waiting for it.

        Returns the future of the scan that will satisfy this request: the
        one being started now when idle, otherwise the single queued scan
        shared by everyone who asked while the current one runs.
        """
        if self._closed:
            msg = "SkillRegistry is closed"
            raise RuntimeError(msg)
        loop = asyncio.get_running_loop()
        if self._inflight is None:
            self._inflight = loop.create_future()
            self._worker = loop.create_task(self._drain())
            return self._inflight
        if self._queued is None or self._queued.done():
            self._queued = loop.create_future()
        return self._queued

    async def scan(self) -> RegistrySnapshot:
        """Scan now (or join a pending scan) and return the resulting snapshot."""
        return await asyncio.shield(self.request_scan())

    def cancel_pending(self) -> bool:
        """Drop the queued scan, if any.  A scan already running is unaffected."""
        queued = self._queued
        self._queued = None
        if queued is None or queued.done():
            return False
        queued.cancel()
        logger.debug("Cancelled queued scan")
        return True

    async def _drain(self) -> None:
        while self._inflight is not None:
            future = self._inflight
            try:
                snapshot = await asyncio.to_thread(self._scanner.scan)
            except Exception as exc:
                if not future.done():
                    future.set_exception(exc)
            else:
                self._publish(snapshot)
                if not future.done():
                    future.set_result(snapshot)

            queued, self._queued = self._queued, None
            self._inflight = queued if queued is not None and not queued.done() else None
        self._worker = None

    def _publish(self, snapshot: RegistrySnapshot) -> None:
        self._snapshot = snapshot
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Snapshot subscriber failed")

    # ── Mutations ───────────────────────────────────────────────────

    async def add_installation(self, skill: CanonicalSkill, agent_id: str) -> Installation:
        installation = await asyncio.to_thread(
            self._installer.add_installation, skill, agent_id
        )
        await self.scan()
        return installation

    async def remove_installation(
        self, skill: CanonicalSkill, agent_id: str
    ) -> Installation | None:
        removed = await asyncio.to_thread(
            self._installer.remove_installation, skill, agent_id
        )
        if removed is not None:
            await self.scan()
        return removed

    async def delete_skill(self, skill: CanonicalSkill) -> None:
        await asyncio.to_thread(self._installer.delete_skill, skill)
        await self.scan()

    def _require_manifest(self) -> ManifestStore:
        if self._manifest_store is None:
            msg = "SkillRegistry was created without a manifest store"
            raise RuntimeError(msg)
        return self._manifest_store

    async def record_manifest_entry(self, skill_id: str, entry: ManifestEntry) -> None:
        store = self._require_manifest()
        await asyncio.to_thread(store.record_entry, skill_id, entry)
        await self.scan()

    async def update_manifest_entry(
        self,
        skill_id: str,
        new_hash: str,
        *,
        updated_at: str | None = None,
        remote_hash: str | None = None,
        remote_commit_hash: str | None = None,
    ) -> None:
        """Record the result of an update pull performed by the caller."""
        store = self._require_manifest()
        await asyncio.to_thread(
            store.update_entry,
            skill_id,
            new_hash,
            updated_at=updated_at,
            remote_hash=remote_hash,
            remote_commit_hash=remote_commit_hash,
        )
        await self.scan()

    async def save_skill(
        self,
        skill: CanonicalSkill,
        metadata: SkillMetadata,
        body: str,
    ) -> CanonicalSkill:
        """Rewrite the skill's definition file and return the rescanned skill.

        Raises:
            SkillError: The definition file could not be written.
            SkillNotFoundError: The skill disappeared during the rescan.
        """
        text = self._parser.serialize(metadata, body)
        try:
            await asyncio.to_thread(_write_text_atomic, skill.definition_path, text)
        except OSError as exc:
            msg = f"Cannot write {skill.definition_path}: {exc.strerror or exc}"
            raise SkillError(msg) from exc
        logger.info("Saved %s", skill.definition_path)

        snapshot = await self.scan()
        for updated in snapshot.skills:
            if updated.canonical_path == skill.canonical_path:
                return updated
        msg = f"Skill {skill.id!r} vanished after saving"
        raise SkillNotFoundError(msg)

    async def detect_agents(self) -> list[AgentStatus]:
        return await asyncio.to_thread(self._detector.detect_all)

    # ── Watching ────────────────────────────────────────────────────

    async def start_watching(self) -> None:
        """Rescan automatically whenever a watched directory or the lock file changes."""
        self._loop = asyncio.get_running_loop()
        paths = self._catalog.watch_paths()
        if self._manifest_store is not None:
            paths.append(self._manifest_store.path)
        await asyncio.to_thread(self._watcher.start, paths, self._on_filesystem_change)

    async def stop_watching(self) -> None:
        await asyncio.to_thread(self._watcher.stop)

    def _on_filesystem_change(self) -> None:
        # Runs on the watcher's timer thread.
        loop = self._loop
        if loop is None:
            return
        try:
            loop.call_soon_threadsafe(self._request_from_watcher)
        except RuntimeError:
            logger.debug("Event loop closed; dropping change notification")

    def _request_from_watcher(self) -> None:
        if self._closed or not self._watcher.is_running:
            return
        self.request_scan().add_done_callback(_log_scan_failure)

    async def close(self) -> None:
        """Stop watching, drop queued work and wait for a running scan to finish."""
        if self._closed:
            return
        self._closed = True
        await self.stop_watching()
        self.cancel_pending()
        worker = self._worker
        if worker is not None:
            await worker
        logger.debug("SkillRegistry closed")
