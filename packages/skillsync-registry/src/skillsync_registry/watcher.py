"""File system watcher that turns bursts of events into one debounced callback.

Uses watchdog to follow the agent directories, the shared directory and the
lock file.  The callback runs on the debounce timer thread; callers that need
to get back onto an event loop must hop there themselves.
"""
from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from skillsync_core.errors import WatcherError
from skillsync_core.logging import get_logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from skillsync_core.config import WatcherConfig
    from watchdog.observers.api import BaseObserver, ObservedWatch

logger = get_logger("registry.watcher")

DEFAULT_DEBOUNCE = 0.5

# Access notifications do not change what a scan would see.
_IGNORED_EVENT_TYPES = frozenset({"opened", "closed", "closed_no_write"})


def observer_factory_for(config: WatcherConfig) -> Callable[[], BaseObserver]:
    """Native observer by default, a polling one when configured."""
    if config.polling:
        interval = config.poll_interval_ms / 1000
        return lambda: PollingObserver(timeout=interval)
    return Observer


def _nearest_existing_dir(path: Path) -> Path | None:
    for parent in path.parents:
        if parent.is_dir():
            return parent
    return None


class _ChangeHandler(FileSystemEventHandler):
    """Forwards relevant events to the owning watcher.

    With *only* set, the handler watches a directory on behalf of a single
    file inside it and drops events about its siblings.  With *toward* set,
    it watches an ancestor of a path that does not exist yet and only lets
    through events on the way to that path.
    """

    def __init__(
        self,
        watcher: ChangeWatcher,
        only: Path | None = None,
        toward: Path | None = None,
    ) -> None:
        self._watcher = watcher
        self._only = os.fspath(only) if only is not None else None
        self._toward = toward

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in _IGNORED_EVENT_TYPES:
            return
        src = os.fsdecode(event.src_path)
        dest = os.fsdecode(getattr(event, "dest_path", "") or "")
        if self._only is not None and self._only not in (src, dest):
            return
        if self._toward is not None and not any(
            self._toward.is_relative_to(p) for p in (src, dest) if p
        ):
            return
        self._watcher.signal(src)


class ChangeWatcher:
    """Debounced change notification over a set of paths.

    Every event restarts a quiet-period timer; ``on_change`` fires once the
    timer expires without further events, so a burst of writes yields one
    notification.  Once :meth:`stop` returns, ``on_change`` is not called
    again until the next :meth:`start`.

    A path that does not exist yet is followed through its nearest existing
    ancestor.  Once it appears, it gets a proper watch before ``on_change``
    fires for the event that created it.
    """

    def __init__(
        self,
        *,
        debounce: float = DEFAULT_DEBOUNCE,
        observer_factory: Callable[[], BaseObserver] | None = None,
    ) -> None:
        if debounce <= 0:
            msg = f"debounce must be positive, got {debounce}"
            raise ValueError(msg)
        self.debounce = debounce
        self._observer_factory = observer_factory or Observer
        self._lock = threading.RLock()
        self._adopt_lock = threading.Lock()
        self._observer: BaseObserver | None = None
        self._timer: threading.Timer | None = None
        self._generation = 0
        self._on_change: Callable[[], None] | None = None
        self._running = False
        self._watched: list[Path] = []
        self._pending: dict[Path, tuple[_ChangeHandler, ObservedWatch]] = {}

    @classmethod
    def from_config(cls, config: WatcherConfig) -> ChangeWatcher:
        return cls(
            debounce=config.debounce_ms / 1000,
            observer_factory=observer_factory_for(config),
        )

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def watched_paths(self) -> list[Path]:
        """Paths an observer is actually scheduled for."""
        return list(self._watched)

    @property
    def pending_paths(self) -> list[Path]:
        """Paths that did not exist yet and are followed through an ancestor."""
        return list(self._pending)

    def _schedule(self, observer: BaseObserver, path: Path) -> bool:
        if path.is_dir():
            observer.schedule(_ChangeHandler(self), os.fspath(path), recursive=True)
        elif path.exists():
            observer.schedule(
                _ChangeHandler(self, only=path),
                os.fspath(path.parent),
                recursive=False,
            )
        else:
            return False
        return True

    def _schedule_toward(
        self, observer: BaseObserver, path: Path
    ) -> tuple[_ChangeHandler, ObservedWatch] | None:
        anchor = _nearest_existing_dir(path)
        if anchor is None:
            return None
        handler = _ChangeHandler(self, toward=path)
        watch = observer.schedule(handler, os.fspath(anchor), recursive=False)
        return handler, watch

    def start(self, paths: Iterable[Path], on_change: Callable[[], None]) -> None:
        """Begin watching *paths*; restarts if already running.

        Directories are watched recursively.  A file is watched through its
        parent directory.  Paths that do not exist yet are followed through
        their nearest existing ancestor until they appear.

        Raises:
            WatcherError: The observer could not be scheduled or started.
        """
        if self._running:
            logger.info("Restarting watcher with new paths")
            self.stop()

        observer = self._observer_factory()
        watched: list[Path] = []
        pending: dict[Path, tuple[_ChangeHandler, ObservedWatch]] = {}
        for path in dict.fromkeys(Path(p) for p in paths):
            try:
                if self._schedule(observer, path):
                    watched.append(path)
                    continue
                anchor = self._schedule_toward(observer, path)
            except OSError as exc:
                msg = f"Cannot watch {path}: {exc}"
                raise WatcherError(msg) from exc
            if anchor is not None:
                logger.debug("Waiting for %s to appear", path)
                pending[path] = anchor

        try:
            observer.start()
        except OSError as exc:
            msg = f"Cannot start file observer: {exc}"
            raise WatcherError(msg) from exc

        with self._lock:
            self._observer = observer
            self._on_change = on_change
            self._watched = watched
            self._pending = pending
            self._running = True
        logger.info(
            "Watching %d path(s), %d pending, debounce %.0f ms",
            len(watched), len(pending), self.debounce * 1000,
        )

    def signal(self, source: str = "<synthetic>") -> None:
        """Record one change event and restart the quiet period."""
        with self._lock:
            if not self._running:
                return
            logger.debug("Change signalled by %s", source)
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = threading.Timer(self.debounce, self._fire, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _adopt(self, observer: BaseObserver) -> None:
        """Give pending paths that now exist their proper watch."""
        with self._adopt_lock:
            with self._lock:
                pending = dict(self._pending)
            for path, (handler, watch) in pending.items():
                try:
                    if self._schedule(observer, path):
                        replacement = None
                    elif _nearest_existing_dir(path) == Path(watch.path):
                        continue
                    else:
                        replacement = self._schedule_toward(observer, path)
                    observer.remove_handler_for_watch(handler, watch)
                except (OSError, KeyError):
                    logger.warning("Cannot watch %s yet", path, exc_info=True)
                    continue
                with self._lock:
                    if self._observer is not observer:
                        return
                    if replacement is None:
                        self._pending.pop(path, None)
                        self._watched.append(path)
                        logger.info("Now watching %s", path)
                    else:
                        self._pending[path] = replacement

    def _fire(self, generation: int) -> None:
        with self._lock:
            if not self._running or generation != self._generation:
                return
            observer = self._observer
            has_pending = bool(self._pending)

        # Scheduled outside the lock: the observer thread may be blocked in signal().
        if has_pending and observer is not None:
            self._adopt(observer)

        with self._lock:
            if not self._running or generation != self._generation:
                return
            self._timer = None
            callback = self._on_change
            if callback is None:
                return
            try:
                callback()
            except Exception:
                logger.exception("Change callback failed")

    def stop(self) -> None:
        """Cancel the pending notification, then stop and join the observer."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            observer = self._observer
            self._observer = None
            self._on_change = None
            self._watched = []
            self._pending = {}

        # Joined outside the lock: the observer thread may be blocked in signal().
        if observer is not None:
            observer.stop()
            observer.join()
        logger.info("Watcher stopped")
