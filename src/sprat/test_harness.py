"""
Helpers for testing sprat pipelines: building throwaway projects on disk and
comparing generated trees.
"""
from __future__ import annotations

import pathlib
import typing as t

from .config import BuildSettings, resolve_settings
from .core import Context, TaskExecutor, TaskRegistry


def write_tree(base: pathlib.Path, files: dict[str, str | bytes]):
    """
    Create @files, a mapping of relative POSIX paths to contents, under @base.
    """
    for rel, content in files.items():
        path = base / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, 'utf-8', newline='\n')
    return base


def snapshot(base: pathlib.Path) -> dict[str, bytes]:
    """
    Map every file under @base to its contents, for byte-for-byte comparison
    of two builds.
    """
    if not base.exists():
        return {}
    return {
        p.relative_to(base).as_posix(): p.read_bytes()
        for p in sorted(base.rglob('*'))
        if p.is_file()
    }


def make_settings(tmp_path: pathlib.Path, **kw: t.Any) -> BuildSettings:
    """
    Settings for a project in `tmp_path / 'src'` building into
    `tmp_path / 'site'`, with every asset group disabled unless given.
    """
    source_dir = tmp_path / 'src'
    source_dir.mkdir(parents=True, exist_ok=True)
    options: dict[str, t.Any] = {
        'source_dir': source_dir,
        'site_root': tmp_path / 'site',
        'styles': None,
        'scripts': None,
        'vendor_scripts': None,
        'images': None,
        'fonts': None,
        'markup': None,
    }
    options.update(kw)
    return resolve_settings(options)  # type: ignore[arg-type]


def make_executor(settings: BuildSettings, registry: TaskRegistry, quiet: bool = True):
    return TaskExecutor(registry, Context(settings), quiet=quiet)


class CallRecorder:
    """
    Factory for task bodies which append their task name to a shared list,
    optionally failing instead.
    """
    def __init__(self):
        self.calls: list[str] = []

    def body(self, name: str, fail: bool = False, outputs: t.Sequence[pathlib.Path] = ()):
        def run(context: Context):
            self.calls.append(name)
            if fail:
                raise RuntimeError(f'{name} exploded')
            return list(outputs)
        return run
