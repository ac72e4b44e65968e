"""
Task bodies built from Steps: per-file asset processing, script bundling,
and cleaning the generated site.
"""
from __future__ import annotations

import shutil
import typing as t
from pathlib import Path, PurePosixPath

from .core import Context, ContextDir, PathCalc, Step
from .pretty_utils import track_progress

if t.TYPE_CHECKING:
    from collections.abc import Sequence


class Stage(t.NamedTuple):
    """
    One Step of an asset chain and the PathCalcs naming its outputs. The
    first output of a stage is the input of the next.
    """
    step: Step
    path_calcs: Sequence[PathCalc]


def _run_stages(context: Context,
                stages: Sequence[Stage],
                path: Path,
                relative: PurePosixPath) -> list[Path]:
    produced: list[Path] = []
    current = path
    for stage in stages:
        output_paths = [calc(context, current, relative) for calc in stage.path_calcs]
        if not output_paths:
            break
        stage.step(current, output_paths)
        produced.extend(p for p in output_paths if p not in produced)
        current = output_paths[0]
    return produced


class AssetTask:
    """
    Task body which finds the files matching @patterns under @base and pushes
    each through a chain of Stages.
    """
    def __init__(self,
                 patterns: Sequence[str],
                 stages: Sequence[Stage],
                 base: ContextDir = 'source_dir',
                 label: str = 'Processing'):
        self.patterns = list(patterns)
        self.stages = list(stages)
        self.base: ContextDir = base
        self.label = label

    def __repr__(self):
        return f'{self.__class__.__name__}({self.patterns!r}, base={self.base!r})'

    def __call__(self, context: Context) -> list[Path]:
        for stage in self.stages:
            context.bind(stage.step)

        inputs = context.match_inputs(self.patterns, self.base)
        if not inputs:
            context.note(f'No files match {", ".join(self.patterns)}')
            return []

        produced: list[Path] = []
        for path, relative in track_progress(inputs, f'{self.label}...'):
            produced.extend(_run_stages(context, self.stages, path, relative))
        return produced


class BundleTask:
    """
    Task body concatenating every file matching @patterns, in pattern order
    and without repeats, into `<site_root>/<dest>/<name>`, then running the
    bundle through any further Stages (typically minification).
    """
    separator = '\n'
    encoding = 'utf-8'

    def __init__(self,
                 patterns: Sequence[str],
                 dest: str,
                 name: str,
                 stages: Sequence[Stage] = ()):
        self.patterns = list(patterns)
        self.dest = dest
        self.name = name
        self.stages = list(stages)

    def __repr__(self):
        return f'{self.__class__.__name__}({self.patterns!r}, {self.dest!r}, {self.name!r})'

    def concatenate(self, paths: Sequence[Path]) -> str:
        chunks = [p.read_text(self.encoding) for p in paths]
        return self.separator.join(c if c.endswith('\n') else c + '\n' for c in chunks)

    def __call__(self, context: Context) -> list[Path]:
        for stage in self.stages:
            context.bind(stage.step)

        inputs = context.find_inputs(self.patterns)
        if not inputs:
            context.note(f'No files match {", ".join(self.patterns)}')
            return []
        context.note(f'Bundling {len(inputs)} files into {self.name}')

        bundle = context['site_root'] / self.dest / self.name
        bundle.parent.mkdir(parents=True, exist_ok=True)
        bundle.write_text(self.concatenate(inputs), self.encoding, newline='\n')

        return [bundle] + _run_stages(context, self.stages, bundle, PurePosixPath(self.name))


def _rm_children(path: Path):
    if not path.exists():
        return
    for child in path.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


def clean_site(context: Context):
    """
    Task body deleting everything inside the site root. Safe to run when the
    site root doesn't exist.
    """
    site_root = context['site_root']
    if site_root.exists():
        context.note(f'Removing the contents of {site_root}')
    _rm_children(site_root)
    return []
