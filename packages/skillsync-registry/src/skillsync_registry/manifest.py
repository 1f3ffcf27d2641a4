"""Lock file store: cached reads and atomic, serialized writes.

The lock file (``~/.agents/.skill-lock.json``) is shared with other tools,
so every write goes to a sibling temp file that is renamed over the
original only once it is complete.  Fields this module does not model are
carried through every rewrite.
"""
from __future__ import annotations

import contextlib
import json
import os
import stat
import tempfile
import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path  # noqa: TC003 - Path is used at runtime for path operations
from typing import TYPE_CHECKING, Any

from skillsync_core.errors import (
    ManifestCorruptError,
    ManifestReadError,
    ManifestWriteError,
    SkillNotFoundError,
)
from skillsync_core.logging import get_logger

from skillsync_registry.types import Manifest, ManifestEntry

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger("registry.manifest")

# snake_case attribute -> camelCase JSON key
_ENTRY_FIELDS: dict[str, str] = {
    "source": "source",
    "source_type": "sourceType",
    "source_url": "sourceUrl",
    "skill_path": "skillPath",
    "skill_folder_hash": "skillFolderHash",
    "installed_at": "installedAt",
    "updated_at": "updatedAt",
    "remote_hash": "remoteHash",
    "remote_commit_hash": "remoteCommitHash",
}
_REQUIRED_ENTRY_FIELDS = ("source", "source_type", "source_url")
_OPTIONAL_ENTRY_FIELDS = ("remote_hash", "remote_commit_hash")
_JSON_TO_FIELD = {v: k for k, v in _ENTRY_FIELDS.items()}


def utc_timestamp() -> str:
    """Current time as an ISO 8601 UTC string, second precision."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# ── JSON mapping ─────────────────────────────────────────────────────


def entry_from_json(skill_id: str, raw: Any) -> ManifestEntry:
    if not isinstance(raw, dict):
        msg = f"Manifest entry {skill_id!r} must be an object, got {type(raw).__name__}"
        raise ManifestCorruptError(msg)

    values: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, value in raw.items():
        field_name = _JSON_TO_FIELD.get(key)
        if field_name is None:
            extra[key] = value
            continue
        if value is not None and not isinstance(value, str):
            msg = f"Manifest entry {skill_id!r} field {key!r} must be a string"
            raise ManifestCorruptError(msg)
        values[field_name] = value

    for field_name in _REQUIRED_ENTRY_FIELDS:
        if values.get(field_name) is None:
            msg = (
                f"Manifest entry {skill_id!r} missing required field "
                f"{_ENTRY_FIELDS[field_name]!r}"
            )
            raise ManifestCorruptError(msg)

    for field_name in ("skill_path", "skill_folder_hash", "installed_at", "updated_at"):
        if values.get(field_name) is None:
            values[field_name] = ""

    return ManifestEntry(**values, extra=extra)


def entry_to_json(entry: ManifestEntry) -> dict[str, Any]:
    data: dict[str, Any] = dict(entry.extra)
    for field_name, key in _ENTRY_FIELDS.items():
        value = getattr(entry, field_name)
        if value is None and field_name in _OPTIONAL_ENTRY_FIELDS:
            continue
        data[key] = value
    return data


def manifest_from_json(raw: Any) -> Manifest:
    if not isinstance(raw, dict):
        msg = f"Manifest root must be an object, got {type(raw).__name__}"
        raise ManifestCorruptError(msg)

    version = raw.get("version")
    if isinstance(version, bool) or not isinstance(version, int):
        msg = f"Manifest 'version' must be an integer, got {version!r}"
        raise ManifestCorruptError(msg)

    skills_raw = raw.get("skills")
    if not isinstance(skills_raw, dict):
        msg = "Manifest 'skills' must be an object"
        raise ManifestCorruptError(msg)

    skills = {
        skill_id: entry_from_json(skill_id, entry)
        for skill_id, entry in skills_raw.items()
    }
    extra = {k: v for k, v in raw.items() if k not in ("version", "skills")}
    return Manifest(version=version, skills=skills, extra=extra)


def manifest_to_json(manifest: Manifest) -> dict[str, Any]:
    data: dict[str, Any] = dict(manifest.extra)
    data["version"] = manifest.version
    data["skills"] = {
        skill_id: entry_to_json(entry)
        for skill_id, entry in manifest.skills.items()
    }
    return data


# ── Store ────────────────────────────────────────────────────────────


class ManifestStore:
    """Owns the lock file.

    ``load()`` is cached and only re-reads the file when its
    ``(mtime_ns, size, inode)`` signature changes, so edits made by other
    processes are picked up cheaply.  ``mutate()`` calls are serialized by a
    single lock; concurrent callers queue behind it.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.RLock()
        self._cached: Manifest | None = None
        self._signature: tuple[int, int, int] | None = None

    @property
    def exists(self) -> bool:
        return self.path.exists()

    def _current_signature(self) -> tuple[int, int, int] | None:
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            return None
        except OSError as exc:
            msg = f"Cannot stat manifest {self.path}: {exc.strerror or exc}"
            raise ManifestReadError(msg) from exc
        return (st.st_mtime_ns, st.st_size, st.st_ino)

    def load(self) -> Manifest:
        """Return the current manifest, re-reading it if the file changed.

        A missing file yields an empty manifest.

        Raises:
            ManifestCorruptError: The file is not a valid manifest.
            ManifestReadError: The file exists but cannot be read.
        """
        with self._lock:
            signature = self._current_signature()
            if self._cached is not None and signature == self._signature:
                return self._cached

            if signature is None:
                manifest = Manifest()
            else:
                try:
                    raw_bytes = self.path.read_bytes()
                except FileNotFoundError:
                    manifest = Manifest()
                    signature = None
                except OSError as exc:
                    msg = f"Cannot read manifest {self.path}: {exc.strerror or exc}"
                    raise ManifestReadError(msg) from exc
                else:
                    manifest = self._decode(raw_bytes)
                    logger.debug(
                        "Loaded manifest %s (%d entries)", self.path, len(manifest.skills)
                    )

            self._cached = manifest
            self._signature = signature
            return manifest

    def _decode(self, raw_bytes: bytes) -> Manifest:
        try:
            raw = json.loads(raw_bytes.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            msg = f"Manifest {self.path} is not valid JSON: {exc}"
            raise ManifestCorruptError(msg) from exc
        try:
            return manifest_from_json(raw)
        except ManifestCorruptError as exc:
            msg = f"Manifest {self.path} is corrupt: {exc}"
            raise ManifestCorruptError(msg) from exc

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None
            self._signature = None

    def mutate(self, transform: Callable[[Manifest], Manifest]) -> Manifest:
        """Apply *transform* to the current manifest and persist the result.

        The write is atomic: the new document goes to a temp file in the
        same directory and is moved over the manifest with ``os.replace``.
        If anything fails before the rename, the original file is left as
        it was.

        Returns:
            The manifest that was written.

        Raises:
            ManifestCorruptError: The current file is corrupt; nothing is
                written, so user data is never silently replaced.
            ManifestWriteError: The new file could not be written.
        """
        with self._lock:
            current = self.load()
            updated = transform(current)
            if not isinstance(updated, Manifest):
                msg = f"Manifest transform returned {type(updated).__name__}, expected Manifest"
                raise TypeError(msg)
            self._write(updated)
            return updated

    def _write(self, manifest: Manifest) -> None:
        payload = json.dumps(
            manifest_to_json(manifest), indent=2, sort_keys=True, ensure_ascii=False
        ) + "\n"

        parent = self.path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=parent
            )
        except OSError as exc:
            msg = f"Cannot create temp file for {self.path}: {exc.strerror or exc}"
            raise ManifestWriteError(msg) from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            try:
                mode = stat.S_IMODE(os.stat(self.path).st_mode)
            except FileNotFoundError:
                mode = 0o644
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)
            msg = f"Failed to write manifest {self.path}: {exc.strerror or exc}"
            raise ManifestWriteError(msg) from exc

        self._cached = manifest
        self._signature = self._current_signature()
        logger.info("Wrote manifest %s (%d entries)", self.path, len(manifest.skills))

    # ── Entry helpers ───────────────────────────────────────────────

    def get_entry(self, skill_id: str) -> ManifestEntry | None:
        return self.load().skills.get(skill_id)

    def record_entry(self, skill_id: str, entry: ManifestEntry) -> Manifest:
        """Create or replace the entry for *skill_id*."""
        return self.mutate(lambda m: m.with_entry(skill_id, entry))

    def update_entry(
        self,
        skill_id: str,
        new_hash: str,
        *,
        updated_at: str | None = None,
        remote_hash: str | None = None,
        remote_commit_hash: str | None = None,
    ) -> Manifest:
        """Record a successful update pull for *skill_id*.

        Raises:
            SkillNotFoundError: No entry exists for *skill_id*.
        """
        timestamp = updated_at or utc_timestamp()

        def _apply(manifest: Manifest) -> Manifest:
            entry = manifest.skills.get(skill_id)
            if entry is None:
                msg = f"No manifest entry for skill {skill_id!r}"
                raise SkillNotFoundError(msg)
            return manifest.with_entry(skill_id, replace(
                entry,
                skill_folder_hash=new_hash,
                updated_at=timestamp,
                remote_hash=remote_hash,
                remote_commit_hash=remote_commit_hash,
            ))

        return self.mutate(_apply)

    def remove_entry(self, skill_id: str) -> bool:
        """Delete the entry for *skill_id*; False when there was none."""
        with self._lock:
            if skill_id not in self.load().skills:
                return False
            self.mutate(lambda m: m.without_entry(skill_id))
            return True

    def create_if_missing(self) -> None:
        """Write an empty version-3 manifest when no file exists yet."""
        with self._lock:
            if self.exists:
                return
            self._write(Manifest(extra={"dismissed": {}, "lastSelectedAgents": []}))
