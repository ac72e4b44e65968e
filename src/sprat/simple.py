"""
Simple Steps, base classes for Steps, and the helper every external command
goes through so that a stuck tool can never hang a build.
"""
from __future__ import annotations

import abc
import os
import shutil
import signal
import subprocess
import threading
import time
import typing as t
from pathlib import Path

from .core import Step, TaskTimeoutError

if t.TYPE_CHECKING:
    from _typeshed import StrOrBytesPath


def kill_group(proc: subprocess.Popen):
    """
    Kill @proc along with anything it started in its session.
    """
    if os.name == 'posix':
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
    else:
        proc.kill()


def run_command(command: t.Sequence[StrOrBytesPath],
                timeout: float | None,
                cwd: Path | None = None,
                on_line: t.Callable[[str], None] | None = None) -> str:
    """
    Run @command to completion, returning its combined stdout and stderr.
    Each output line is passed to @on_line as soon as it is read. If the
    command, or anything it left running with its output still open, outlives
    @timeout seconds, the whole process group is killed and TaskTimeoutError
    is raised; a non-zero exit raises CalledProcessError with the output.
    """
    lines: list[str] = []
    deadline = None if timeout is None else time.monotonic() + timeout

    with subprocess.Popen(
        command,
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        stdin=subprocess.DEVNULL,
        text=True,
        errors='replace',
        start_new_session=True,
    ) as proc:
        def pump():
            assert proc.stdout is not None
            for line in proc.stdout:
                line = line.rstrip('\r\n')
                lines.append(line)
                if on_line:
                    on_line(line)

        def timed_out():
            kill_group(proc)
            proc.wait()
            reader.join(timeout=1)
            return TaskTimeoutError(command, timeout or 0, '\n'.join(lines))

        reader = threading.Thread(target=pump, daemon=True)
        reader.start()
        try:
            returncode = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            raise timed_out() from None
        # Background children may still hold the pipe open.
        reader.join(timeout=None if deadline is None else max(deadline - time.monotonic(), 0))
        if reader.is_alive():
            raise timed_out()

    output = '\n'.join(lines)
    if returncode:
        raise subprocess.CalledProcessError(returncode, [str(c) for c in command], output=output)
    return output


class DirectCopyStep(Step):
    """
    Copy a file to each of its outputs unchanged.
    """
    def __call__(self, path: Path, output_paths: list[Path]):
        for target_path in output_paths:
            if target_path == path:
                continue
            target_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy(path, target_path)


class BaseStandardStep(Step):
    """
    Base for steps producing text: the result is written to the first output
    path and copied to the rest.
    """
    encoding = 'utf-8'
    newline = '\n'

    def write_text(self, output_paths: list[Path], data: str):
        first, *rest = output_paths
        for o_path in output_paths:
            o_path.parent.mkdir(parents=True, exist_ok=True)
        first.write_text(data, self.encoding, newline=self.newline)
        for o_path in rest:
            shutil.copy(first, o_path)


class BaseCommandStep(Step):
    """
    A base class for steps that run an external command to generate a file.
    Commands are bounded by @timeout, falling back to the build's
    `task_timeout` setting.
    """
    timeout: float | None = None

    @abc.abstractmethod
    def get_command(self, input_path: Path, output_path: Path) -> list[StrOrBytesPath]:
        """
        Abstract method that must return a commandline ready for subprocess.
        """

    @property
    def time_limit(self) -> float | None:
        if self.timeout:
            return self.timeout
        context = getattr(self, 'context', None)
        return context.settings.task_timeout if context else None

    def group_outputs(self, output_paths: list[Path]) -> list[list[Path]]:
        """
        Overridable method which determines which outputs must be generated
        separately. Default behavior groups outputs by extension.
        """
        groups: dict[str, list[Path]] = {}
        for path in output_paths:
            groups.setdefault(path.suffix, []).append(path)
        return list(groups.values())

    def __call__(self, path: Path, output_paths: list[Path]):
        for egroup in self.group_outputs(output_paths):
            first = None
            for opath in egroup:
                opath.parent.mkdir(parents=True, exist_ok=True)
                if first:
                    shutil.copy(first, opath)
                else:
                    run_command(self.get_command(path, opath), self.time_limit)
                    first = opath
