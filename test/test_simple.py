import subprocess
import sys
import time
from pathlib import Path

import pytest

from sprat.core import TaskRegistry, TaskTimeoutError
from sprat.generator import SiteGeneratorTask
from sprat.simple import BaseCommandStep, run_command
from sprat.test_harness import make_executor, make_settings


SLEEPER = [sys.executable, '-c', 'import time; time.sleep(30)']


class PythonCopyStep(BaseCommandStep):
    def get_command(self, input_path: Path, output_path: Path):
        script = 'import shutil, sys; shutil.copy(sys.argv[1], sys.argv[2])'
        return [sys.executable, '-c', script, input_path, output_path]


def test_run_command_output():
    lines = []
    output = run_command(
        [sys.executable, '-c', 'print("one"); print("two")'],
        timeout=30,
        on_line=lines.append,
    )
    assert output == 'one\ntwo'
    assert lines == ['one', 'two']


def test_run_command_failure():
    command = [sys.executable, '-c', 'import sys; print("broken"); sys.exit(3)']
    with pytest.raises(subprocess.CalledProcessError) as info:
        run_command(command, timeout=30)
    assert info.value.returncode == 3
    assert info.value.output == 'broken'


def test_run_command_timeout():
    start = time.monotonic()
    with pytest.raises(TaskTimeoutError) as info:
        run_command(SLEEPER, timeout=0.5)
    assert time.monotonic() - start < 10
    assert info.value.timeout == 0.5
    assert info.value.command[0] == sys.executable


@pytest.mark.skipif(sys.platform == 'win32', reason='process groups are POSIX only')
def test_run_command_timeout_covers_background_children(tmp_path: Path):
    marker = tmp_path / 'survived'
    script = (
        'import subprocess, sys\n'
        'subprocess.Popen([sys.executable, "-c", '
        f'"import pathlib, time; time.sleep(5); pathlib.Path({str(marker)!r}).touch()"])\n'
        'print("started", flush=True)\n'
    )
    start = time.monotonic()
    with pytest.raises(TaskTimeoutError) as info:
        run_command([sys.executable, '-c', script], timeout=2)
    assert time.monotonic() - start < 4.5
    assert info.value.timeout == 2

    # The orphan was killed with its group.
    time.sleep(max(6 - (time.monotonic() - start), 0))
    assert not marker.exists()


def test_timeout_fails_task_not_process(tmp_path):
    settings = make_settings(tmp_path, task_timeout=0.5)
    registry = TaskRegistry()
    registry.register('stuck', (), SiteGeneratorTask(SLEEPER))
    registry.register('after', ['stuck'], lambda context: None)
    registry.register('independent', (), lambda context: None)
    registry.register('all', ['stuck', 'after', 'independent'])

    report = make_executor(settings, registry).run('all')

    [failure] = report.failures
    assert failure.name == 'stuck'
    assert isinstance(failure.cause, TaskTimeoutError)
    assert 'after' in report.skipped
    assert 'independent' in report.ran


def test_site_generator_runs_in_source_dir(tmp_path):
    settings = make_settings(tmp_path)
    script = (
        'import pathlib; out = pathlib.Path("../site"); out.mkdir(); '
        '(out / "index.html").write_text("generated"); print("Done")'
    )
    registry = TaskRegistry()
    registry.register('site', (), SiteGeneratorTask([sys.executable, '-c', script], label='Gen'))

    report = make_executor(settings, registry).run('site')

    assert report.ok
    assert report.outputs == [settings.site_root]
    assert (settings.site_root / 'index.html').read_text() == 'generated'


def test_site_generator_failure_carries_output(tmp_path):
    settings = make_settings(tmp_path)
    script = 'import sys; print("Liquid syntax error"); sys.exit(1)'
    registry = TaskRegistry()
    registry.register('site', (), SiteGeneratorTask([sys.executable, '-c', script]))

    [result] = make_executor(settings, registry).run('site').results

    assert not result.ok
    assert isinstance(result.error.cause, subprocess.CalledProcessError)
    assert 'Liquid syntax error' in result.messages


def test_site_generator_missing_executable(tmp_path):
    settings = make_settings(tmp_path)
    registry = TaskRegistry()
    registry.register('site', (), SiteGeneratorTask(['sprat-no-such-generator', 'build']))

    [failure] = make_executor(settings, registry).run('site').failures
    assert isinstance(failure.cause, FileNotFoundError)


def test_command_step(tmp_path):
    settings = make_settings(tmp_path)
    source = settings.source_dir / 'in.txt'
    source.write_text('payload')
    outputs = [tmp_path / 'a' / 'out.txt', tmp_path / 'b' / 'out.txt', tmp_path / 'c' / 'out.dat']

    step = PythonCopyStep()
    step(source, outputs)

    assert all(p.read_text() == 'payload' for p in outputs)
    assert step.time_limit is None
