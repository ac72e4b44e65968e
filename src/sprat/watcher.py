"""
Watching source files and re-running the tasks bound to them.

The watchdog observer runs on its own thread and only feeds changed paths
into a queue; matching, debouncing and task execution all happen on the
thread calling `WatchSession.poll()`.
"""
from __future__ import annotations

import os
import queue
import time
import typing as t
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .globs import GlobSet
from .pretty_utils import print_with_style

if t.TYPE_CHECKING:
    from .core import RunReport, TaskExecutor


class GlobBinding(t.NamedTuple):
    """
    Source glob patterns, relative to the source directory, and the task to
    run when a matching file changes.
    """
    patterns: tuple[str, ...]
    task: str

    @property
    def globs(self):
        return GlobSet(self.patterns)


class DebounceTracker:
    """
    Trailing-edge debouncing: a key becomes due once no event has touched it
    for the whole window, so a burst of writes yields a single run after the
    burst ends.
    """
    def __init__(self, debounce_ms: int = 200, clock: t.Callable[[], float] = time.monotonic):
        self.window = debounce_ms / 1000.0
        self.clock = clock
        self._pending: dict[str, float] = {}

    def __len__(self):
        return len(self._pending)

    def touch(self, key: str):
        """
        Record an event for @key, restarting its window.
        """
        self._pending[key] = self.clock()

    def time_until_due(self) -> float | None:
        """
        Seconds until the earliest pending key is due, or None if nothing is
        pending.
        """
        if not self._pending:
            return None
        earliest = min(self._pending.values())
        return max(0.0, earliest + self.window - self.clock())

    def pop_due(self) -> list[str]:
        """
        Remove and return every key whose window has passed, in the order the
        keys were first touched.
        """
        now = self.clock()
        due = [key for key, stamp in self._pending.items() if now - stamp >= self.window]
        for key in due:
            del self._pending[key]
        return due


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, changes: queue.Queue[str]):
        super().__init__()
        self.changes = changes

    def on_any_event(self, event: FileSystemEvent):
        if event.is_directory or event.event_type in ('opened', 'closed_no_write'):
            return
        self.changes.put(os.fsdecode(event.src_path))
        dest_path = getattr(event, 'dest_path', '')
        if dest_path:
            self.changes.put(os.fsdecode(dest_path))


class WatchSession:
    """
    A watch session over the source directory of @executor's context. Use as
    a context manager, or call `start()` and `stop()` explicitly; stopping
    releases every filesystem observation handle.
    """
    def __init__(self,
                 executor: TaskExecutor,
                 bindings: t.Iterable[GlobBinding],
                 debounce_ms: int | None = None,
                 on_success: t.Callable[[RunReport], None] | None = None,
                 ignore: t.Iterable[Path] = (),
                 clock: t.Callable[[], float] = time.monotonic):
        self.executor = executor
        self.settings = executor.context.settings
        self.bindings = list(bindings)
        self.on_success = on_success
        self.debounce = DebounceTracker(debounce_ms or self.settings.debounce_ms, clock)
        self.changes: queue.Queue[str] = queue.Queue()
        self.source_dir = self.settings.source_dir.resolve()
        self.ignore = [self.settings.site_root.resolve(), *(p.resolve() for p in ignore)]
        self.running = False
        self._observer: t.Any = None
        self._globs = [(b.globs, b.task) for b in self.bindings]

        for binding in self.bindings:
            # Fail before watching starts, not on the first change.
            executor.registry.resolve(binding.task)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc_info):
        self.stop()

    def start(self):
        if self._observer:
            return
        observer = Observer()
        observer.schedule(_ChangeHandler(self.changes), str(self.source_dir), recursive=True)
        observer.start()
        self._observer = observer
        self.running = True
        print_with_style(f'Watching {self.source_dir} for changes', style='cyan')

    def stop(self):
        self.running = False
        if observer := self._observer:
            self._observer = None
            observer.stop()
            observer.join()

    def tasks_for(self, path: str | Path) -> list[str]:
        """
        Names of the tasks bound to a changed @path, in binding order.
        """
        absolute = Path(os.path.abspath(path)).resolve()
        if any(absolute == d or absolute.is_relative_to(d) for d in self.ignore):
            return []
        if not absolute.is_relative_to(self.source_dir):
            return []
        relative = absolute.relative_to(self.source_dir).as_posix()
        names: list[str] = []
        for globs, task_name in self._globs:
            if task_name not in names and globs.matches(relative):
                names.append(task_name)
        return names

    def dispatch(self, path: str | Path) -> list[str]:
        """
        Note a change to @path, restarting the debounce window of each task
        bound to it.
        """
        names = self.tasks_for(path)
        for name in names:
            self.debounce.touch(name)
        return names

    def poll(self, timeout: float | None = None) -> list[RunReport]:
        """
        Wait up to @timeout seconds for changes (less if a debounced task is
        about to become due), then run every task whose window has passed.
        """
        wait = self.debounce.time_until_due()
        if wait is None:
            wait = timeout
        elif timeout is not None:
            wait = min(wait, timeout)

        try:
            changed = self.changes.get(timeout=wait)
        except queue.Empty:
            pass
        else:
            self.dispatch(changed)
            while True:
                try:
                    self.dispatch(self.changes.get_nowait())
                except queue.Empty:
                    break

        return [self.run_task(name) for name in self.debounce.pop_due()]

    def run_task(self, name: str) -> RunReport:
        report = self.executor.run(name)
        if report.ok:
            if self.on_success:
                self.on_success(report)
        else:
            failed = ', '.join(f.name for f in report.failures)
            print_with_style(f'{name} finished with failures in {failed}; still watching', file='stderr', style='red')
        return report

    def run_forever(self, interval: float = 0.5):
        """
        Loop until `stop()` is called or the process is interrupted.
        """
        self.start()
        while self.running:
            self.poll(interval)
