"""
The `sprat` command line: loading a project from a config file, then
running, watching, serving or cleaning it.
"""
from __future__ import annotations

import argparse
import importlib
import runpy
import sys
import typing as t
from pathlib import Path

from .config import BuildSettings, InputBuildSettings, resolve_settings
from .core import (
    ConfigurationError, Context, Step, StepUnavailableException, TaskExecutor, TaskRegistry,
    UnknownTaskError,
)
from .pipeline import BUILD, DEFAULT, standard_bindings, standard_registry
from .pretty_utils import print_with_style
from .server import DevServer, PortInUseError
from .tasks import AssetTask, BundleTask, clean_site
from .watcher import GlobBinding, WatchSession

if t.TYPE_CHECKING:
    from .core import RunReport


DEFAULT_CONFIG = Path('sprat_config.py')


class Project(t.NamedTuple):
    """
    Everything a config file declares, resolved and ready to run.
    """
    label: str
    settings: BuildSettings
    registry: TaskRegistry
    bindings: list[GlobBinding]

    def executor(self, quiet: bool = False):
        return TaskExecutor(self.registry, Context(self.settings), quiet=quiet)


def _config_namespace(config_file: Path | None, module: str | None) -> tuple[str, dict[str, t.Any]]:
    if module:
        mod = importlib.import_module(module)
        return f'-m {module}', vars(mod)
    path = config_file or DEFAULT_CONFIG
    if not path.exists():
        raise ConfigurationError(f'Config file {path} not found')
    return str(path), runpy.run_path(str(path))


def load_project(config_file: Path | None = None,
                 module: str | None = None,
                 **overrides: t.Any) -> Project:
    """
    Load a config file (or importable module) defining SETTINGS and,
    optionally, TASKS and BINDINGS. TASKS and BINDINGS may be given directly
    or as callables receiving the resolved settings (and, for BINDINGS, the
    registry); both default to the standard pipeline.
    """
    label, namespace = _config_namespace(config_file, module)

    raw_settings: InputBuildSettings | None = namespace.get('SETTINGS')
    if raw_settings is None:
        raise ConfigurationError(f'{label} must define SETTINGS')
    settings = resolve_settings(raw_settings, **overrides)

    tasks = namespace.get('TASKS')
    if tasks is None:
        registry = standard_registry(settings)
    elif isinstance(tasks, TaskRegistry):
        registry = tasks
    elif callable(tasks):
        registry = tasks(settings)
    else:
        raise ConfigurationError(f'{label}: TASKS must be a TaskRegistry or a callable returning one')
    registry.freeze()

    bindings = namespace.get('BINDINGS')
    if bindings is None:
        bindings = standard_bindings(settings, registry)
    elif callable(bindings):
        bindings = bindings(settings, registry)
    bindings = [b if isinstance(b, GlobBinding) else GlobBinding(tuple(b[0]), b[1]) for b in bindings]
    for binding in bindings:
        registry.resolve(binding.task)

    return Project(label, settings, registry, bindings)


def pprint_step(step: t.Type[Step], used: bool = False):
    """
    Show whether a Step class can run, naming whatever it is missing.
    """
    marker = ' (used)' if used else ''
    missing = [str(leaf) for d in step.get_dependencies() for leaf in d.missing()]
    if missing:
        print_with_style(f'✗ {step.__name__}{marker} (missing: {", ".join(missing)})', style='red')
    else:
        print_with_style(f'✓ {step.__name__}{marker}', style='green')


def pprint_missing_deps(step: Step):
    """
    Explain why a Step could not be bound, with an install hint for each
    missing requirement.
    """
    print_with_style(
        f'{type(step).__name__} is unavailable due to missing dependencies!',
        file='stderr',
        style='red'
    )
    for dep in step.get_dependencies():
        for leaf in dep.missing():
            print_with_style(f'✗ {leaf}: {leaf.install_hint}', file='stderr', style='red')


def used_steps(registry: TaskRegistry) -> set[t.Type[Step]]:
    steps: set[t.Type[Step]] = set()
    for task in registry:
        if isinstance(task.body, (AssetTask, BundleTask)):
            steps.update(type(stage.step) for stage in task.body.stages)
    return steps


def report_failures(report: RunReport):
    for failure in report.failures:
        if isinstance(failure.cause, StepUnavailableException):
            pprint_missing_deps(failure.cause.step)
    if report.skipped:
        print_with_style(f'Not run because of failures: {", ".join(report.skipped)}', file='stderr', style='yellow')


def command_run(project: Project, args: argparse.Namespace) -> int:
    executor = project.executor(quiet=args.quiet)
    status = 0
    for name in args.tasks or [DEFAULT]:
        report = executor.run(name)
        if not report.ok:
            report_failures(report)
            status = 1
    return status


def command_clean(project: Project, args: argparse.Namespace) -> int:
    context = Context(project.settings)
    clean_site(context)
    print_with_style(f'Cleaned {project.settings.site_root}', style='green')
    return 0


def command_serve(project: Project, args: argparse.Namespace) -> int:
    settings = project.settings
    server = DevServer(settings.site_root, settings.port, settings.host)
    with server:
        try:
            server.wait()
        except KeyboardInterrupt:
            print_with_style('Stopping server', style='yellow')
    return 0


def command_watch(project: Project, args: argparse.Namespace) -> int:
    settings = project.settings
    executor = project.executor(quiet=args.quiet)
    targets = args.tasks or [DEFAULT if DEFAULT in project.registry else BUILD]
    for name in targets:
        report = executor.run(name)
        if not report.ok:
            report_failures(report)

    server = DevServer(settings.site_root, settings.port, settings.host)
    with server:
        session = WatchSession(executor, project.bindings, on_success=server.notify_reload)
        with session:
            try:
                session.run_forever()
            except KeyboardInterrupt:
                print_with_style('Stopping watch session', style='yellow')
    return 0


def command_list(project: Project, args: argparse.Namespace) -> int:
    print(f'Tasks in {project.label} ({len(project.registry)})')
    for task in project.registry:
        deps = f' [after: {", ".join(task.dependencies)}]' if task.dependencies else ''
        description = f' - {task.description}' if task.description else ''
        print_with_style(f'{task.name}{deps}{description}')
    if project.bindings:
        print('Watch bindings')
        for binding in project.bindings:
            print_with_style(f'{", ".join(binding.patterns)} -> {binding.task}', style='dim')
    return 0


def command_audit(project: Project, args: argparse.Namespace) -> int:
    all_steps = set(Step.get_all_steps())
    available_steps = set(Step.get_available_steps())
    used = used_steps(project.registry)

    groups = {
        'Available steps': available_steps,
        'Unavailable steps': all_steps - available_steps,
    }
    for group_label, step_group in groups.items():
        print(f'{group_label} ({len(step_group)})')
        for step in sorted(step_group, key=lambda s: s.__name__):
            pprint_step(step, step in used)
    return 0 if used <= available_steps else 1


COMMANDS: dict[str, t.Callable[[Project, argparse.Namespace], int]] = {
    'run': command_run,
    'watch': command_watch,
    'serve': command_serve,
    'clean': command_clean,
    'list': command_list,
    'audit': command_audit,
}


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    group = common.add_mutually_exclusive_group()
    group.add_argument('-c', '--config',
                       help=f'file path to a config file (default: {DEFAULT_CONFIG})',
                       type=Path,
                       dest='config_file',
                       default=None)
    group.add_argument('-m',
                       help='import path of a config module',
                       dest='module',
                       default=None)
    common.add_argument('-p', '--port',
                        help='port for the development server',
                        type=int,
                        default=None)
    common.add_argument('-q', '--quiet',
                        help='only report failures',
                        action='store_true')

    parser = argparse.ArgumentParser(prog='sprat', description='Run static-site asset pipeline tasks.')
    commands = parser.add_subparsers(dest='command', required=True, metavar='COMMAND')
    run_parser = commands.add_parser('run', parents=[common], help='run tasks and their dependencies')
    run_parser.add_argument('tasks', nargs='*', help=f'tasks to run (default: {DEFAULT})')
    watch_parser = commands.add_parser('watch', parents=[common],
                                       help='build, serve, and rebuild on changes')
    watch_parser.add_argument('tasks', nargs='*', help=f'tasks for the initial build (default: {DEFAULT})')
    commands.add_parser('serve', parents=[common], help='serve the site root')
    commands.add_parser('clean', parents=[common], help='delete generated files')
    commands.add_parser('list', parents=[common], help='list tasks and watch bindings')
    commands.add_parser('audit', parents=[common], help='show available and missing steps')
    return parser


def main(arguments: list[str] | None = None):
    """
    sprat main function. Loads a project from a config file and executes the
    requested command, exiting non-zero on failure.
    """
    args = build_parser().parse_args(arguments)

    try:
        project = load_project(args.config_file, args.module, port=args.port)
        status = COMMANDS[args.command](project, args)
    except (ConfigurationError, UnknownTaskError, PortInUseError) as e:
        print_with_style(str(e), file='stderr', style='red')
        sys.exit(1)

    if status:
        sys.exit(status)
