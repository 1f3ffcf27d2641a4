"""Canonical path resolution with an explicit symlink hop limit."""
from __future__ import annotations

import os
import stat
from collections import deque
from pathlib import Path

from skillsync_core.errors import CyclicLinkError, TransientIOError

from skillsync_registry.types import BrokenLink, ResolvedPath

DEFAULT_MAX_HOPS = 32


def is_symlink(path: Path) -> bool:
    """True when *path* itself is a symlink (dangling or not)."""
    try:
        return stat.S_ISLNK(os.lstat(path).st_mode)
    except OSError:
        return False


class PathResolver:
    """Resolves filesystem entries to their real location.

    Resolution walks the path one component at a time and follows each
    symlink it meets, so a cycle or an over-long chain surfaces as a
    :class:`CyclicLinkError` after ``max_hops`` links instead of relying
    on platform-specific ``ELOOP`` behaviour.
    """

    def __init__(self, max_hops: int = DEFAULT_MAX_HOPS) -> None:
        self.max_hops = max_hops

    def canonicalize(self, path: Path) -> ResolvedPath | BrokenLink:
        """Resolve *path* to its canonical real path.

        Returns:
            A :class:`ResolvedPath`, or a :class:`BrokenLink` when a symlink
            was followed and its final target does not exist.

        Raises:
            TransientIOError: The entry is missing (without any link being
                involved) or a component could not be read.
            CyclicLinkError: More than ``max_hops`` symlinks were followed.
        """
        path = Path(os.path.abspath(path))

        try:
            entry_stat = os.lstat(path)
        except FileNotFoundError:
            msg = f"No such file or directory: {path}"
            raise TransientIOError(msg, str(path)) from None
        except OSError as exc:
            msg = f"Cannot stat {path}: {exc.strerror or exc}"
            raise TransientIOError(msg, str(path)) from exc

        entry_is_link = stat.S_ISLNK(entry_stat.st_mode)

        root = Path(path.anchor)
        resolved = root
        remaining: deque[str] = deque(path.parts[1:])
        hops = 0

        while remaining:
            part = remaining.popleft()
            if part in ("", "."):
                continue
            if part == "..":
                resolved = resolved.parent
                continue

            candidate = resolved / part
            try:
                st = os.lstat(candidate)
            except (FileNotFoundError, NotADirectoryError):
                missing = candidate.joinpath(*remaining)
                if hops > 0:
                    return BrokenLink(path=path, missing_target=missing, hops=hops)
                msg = f"No such file or directory: {missing}"
                raise TransientIOError(msg, str(path)) from None
            except OSError as exc:
                msg = f"Cannot stat {candidate}: {exc.strerror or exc}"
                raise TransientIOError(msg, str(path)) from exc

            if not stat.S_ISLNK(st.st_mode):
                resolved = candidate
                continue

            hops += 1
            if hops > self.max_hops:
                msg = (
                    f"Symlink chain for {path} is cyclic or deeper than "
                    f"{self.max_hops} hops"
                )
                raise CyclicLinkError(msg, str(path))

            try:
                target = os.readlink(candidate)
            except OSError as exc:
                msg = f"Cannot read link {candidate}: {exc.strerror or exc}"
                raise TransientIOError(msg, str(path)) from exc

            target_path = Path(target)
            if target_path.is_absolute():
                resolved = Path(target_path.anchor)
                remaining.extendleft(reversed(target_path.parts[1:]))
            else:
                remaining.extendleft(reversed(target_path.parts))

        try:
            is_dir = stat.S_ISDIR(os.stat(resolved).st_mode)
        except OSError as exc:
            msg = f"Cannot stat {resolved}: {exc.strerror or exc}"
            raise TransientIOError(msg, str(path)) from exc

        return ResolvedPath(
            path=path,
            real_path=resolved,
            is_symlink=entry_is_link,
            is_dir=is_dir,
            hops=hops,
        )
