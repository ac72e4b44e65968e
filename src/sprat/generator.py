"""
Running an external static-site generator, such as Jekyll or Hugo, as a task
body.
"""
from __future__ import annotations

import typing as t
from pathlib import Path

from .dependencies import WebExecDependency
from .pretty_utils import print_with_style
from .simple import run_command

if t.TYPE_CHECKING:
    from .core import Context


class SiteGeneratorTask:
    """
    Task body running @command in the source directory, echoing every line of
    its output prefixed with the generator's name. The command is killed and
    TaskTimeoutError raised once it exceeds the build's `task_timeout`.
    """
    def __init__(self, command: t.Sequence[str], label: str | None = None, timeout: float | None = None):
        self.command = list(command)
        self.label = label or Path(self.command[0]).name.capitalize()
        self.timeout = timeout

    def __repr__(self):
        return f'{self.__class__.__name__}({self.command!r})'

    @property
    def dependency(self):
        return WebExecDependency(self.command[0])

    def echo(self, line: str):
        if line.strip():
            print_with_style(f'{self.label}: {line}', style='dim')

    def __call__(self, context: Context):
        if not self.dependency.satisfied:
            raise FileNotFoundError(
                f'{self.command[0]} not found; {self.dependency.install_hint}'
            )
        run_command(
            self.command,
            self.timeout or context.settings.task_timeout,
            cwd=context['source_dir'],
            on_line=self.echo,
        )
        site_root: Path = context['site_root']
        return [site_root] if site_root.exists() else []
