"""
Core classes and types for the sprat task runner: the build `Context`, the
`Step` and `PathCalc` abstractions task bodies are made of, and the
`TaskRegistry` / `TaskExecutor` pair which orders and runs tasks.
"""
from __future__ import annotations

import abc
import contextlib
import inspect
import time
import typing as t
from pathlib import Path, PurePosixPath

from .dependencies import Dependency
from .globs import GlobSet
from .pretty_utils import print_with_style

if t.TYPE_CHECKING:
    from collections.abc import Iterable, Sequence, Set
    from .config import BuildSettings


ContextDir = t.Literal['source_dir', 'site_root']
TaskBody = t.Callable[['Context'], 't.Iterable[Path] | None']


class Context:
    """
    The state shared by every task body during a build: the settings, and
    helpers for binding steps and finding input files.
    """
    def __init__(self, settings: BuildSettings):
        self.settings = settings
        self._notes: list[str] | None = None

    def __getitem__(self, key: ContextDir) -> Path:
        return getattr(self.settings, key)

    def bind(self, step: Step | None):
        """
        Bind a Step to this Context, checking to ensure its availability.
        """
        if step:
            if not step.is_available():
                raise StepUnavailableException(step)
            step.bind(self)

    def find_inputs(self, patterns: Sequence[str], base: ContextDir = 'source_dir'):
        """
        Expand glob @patterns relative to the @base directory. Searches of the
        source directory never descend into the site root.
        """
        return [path for path, _rel in self.match_inputs(patterns, base)]

    def match_inputs(self, patterns: Sequence[str], base: ContextDir = 'source_dir'):
        """
        Like `find_inputs()`, but pair each path with its location relative to
        the glob which matched it, ready for a PathCalc.
        """
        prune = [self['site_root']] if base == 'source_dir' else []
        return GlobSet(patterns).expand_relative(self[base], prune)

    def note(self, message: str):
        """
        Attach a diagnostic message to the result of the running task.
        """
        if self._notes is None:
            print_with_style(message, style='dim')
        else:
            self._notes.append(message)

    @contextlib.contextmanager
    def collect_notes(self):
        previous = self._notes
        self._notes = notes = []
        try:
            yield notes
        finally:
            self._notes = previous


class PathCalc(abc.ABC):
    """
    Abstract base class for path calculators which determine output paths
    from input paths. @relative is the input path relative to the literal
    prefix of the glob which found it.
    """
    @abc.abstractmethod
    def __call__(self, context: Context, path: Path, relative: PurePosixPath) -> Path:
        ...


class Step(abc.ABC):
    """
    Abstract base class for Steps, single-file transformations which hand the
    real work to a library or an external tool.
    """
    context: Context
    _step_registry: list[t.Type[Step]] = []

    def __init_subclass__(cls, **kw):
        super().__init_subclass__(**kw)
        cls._step_registry.append(cls)

    @classmethod
    def get_all_steps(cls):
        """
        Return a list of all currently known concrete Steps.
        """
        return [s for s in cls._step_registry if not inspect.isabstract(s)]

    @classmethod
    def get_available_steps(cls):
        """
        Return a list of all currently known Steps whose requirements are met.
        """
        return [s for s in cls.get_all_steps() if s.is_available()]

    @classmethod
    def is_available(cls) -> bool:
        """
        Return whether this Step's requirements are installed, making it
        available for use.
        """
        return all(d.satisfied for d in cls.get_dependencies() if d.needed)

    @classmethod
    def get_dependencies(cls) -> Set[Dependency]:
        """
        Return the requirements for this Step.
        """
        return set()

    def bind(self, context: Context):
        """
        Bind this Step to a Context.
        """
        self.context = context

    @abc.abstractmethod
    def __call__(self, path: Path, output_paths: list[Path]) -> None:
        ...


class Task(t.NamedTuple):
    """
    A named unit of build work and the names of the tasks which must run
    before it.
    """
    name: str
    dependencies: tuple[str, ...]
    body: TaskBody | None
    description: str | None = None
    message: str | None = None


class TaskRegistry:
    """
    Stores tasks by name. By default each task's dependencies must already be
    registered, which rules out cycles; with @defer_validation, tasks may be
    declared in any order and `validate()` checks the whole graph before the
    first run.
    """
    def __init__(self, defer_validation: bool = False):
        self.defer_validation = defer_validation
        self.frozen = False
        self._tasks: dict[str, Task] = {}

    def __contains__(self, name: str):
        return name in self._tasks

    def __iter__(self):
        return iter(self._tasks.values())

    def __len__(self):
        return len(self._tasks)

    def names(self):
        return list(self._tasks)

    def register(self,
                 name: str,
                 dependencies: Iterable[str] = (),
                 body: TaskBody | None = None,
                 description: str | None = None,
                 message: str | None = None) -> Task:
        """
        Register a task. A task without a body only groups its dependencies.
        """
        if self.frozen:
            raise ConfigurationError(f'Cannot register {name!r}: the task registry is frozen')
        if name in self._tasks:
            raise DuplicateTaskError(name)
        dependencies = tuple(dependencies)
        if name in dependencies:
            raise DependencyCycleError([name, name])
        if not self.defer_validation:
            for dep in dependencies:
                if dep not in self._tasks:
                    raise UnknownDependencyError(name, dep)
        task = Task(name, dependencies, body, description, message)
        self._tasks[name] = task
        return task

    def task(self, name: str | None = None, dependencies: Iterable[str] = (), **kw: t.Any):
        """
        Decorator registering a function as a task body, named after the
        function unless @name is given.
        """
        def register(func: TaskBody):
            self.register(name or func.__name__, dependencies, func, **kw)
            return func
        return register

    def resolve(self, name: str) -> Task:
        try:
            return self._tasks[name]
        except KeyError:
            raise UnknownTaskError(name) from None

    def validate(self):
        """
        Check that every dependency exists and that the graph is acyclic.
        """
        for task in self._tasks.values():
            for dep in task.dependencies:
                if dep not in self._tasks:
                    raise UnknownDependencyError(task.name, dep)

        # 0: unvisited, 1: on the current path, 2: done
        state = dict.fromkeys(self._tasks, 0)
        path: list[str] = []

        def visit(name: str):
            state[name] = 1
            path.append(name)
            for dep in self._tasks[name].dependencies:
                if state[dep] == 1:
                    raise DependencyCycleError(path[path.index(dep):] + [dep])
                if state[dep] == 0:
                    visit(dep)
            path.pop()
            state[name] = 2

        for name in self._tasks:
            if state[name] == 0:
                visit(name)

    def freeze(self):
        """
        Validate the registry and make it read-only.
        """
        if not self.frozen:
            self.validate()
            self.frozen = True

    def plan(self, name: str) -> list[Task]:
        """
        Topological order of @name and its transitive dependencies. Dependencies
        are visited depth first in declaration order, and each task appears
        once.
        """
        order: list[Task] = []
        seen: set[str] = set()
        active: list[str] = []

        def visit(task_name: str):
            if task_name in seen:
                return
            if task_name in active:
                raise DependencyCycleError(active[active.index(task_name):] + [task_name])
            task = self.resolve(task_name)
            active.append(task_name)
            for dep in task.dependencies:
                visit(dep)
            active.pop()
            seen.add(task_name)
            order.append(task)

        visit(name)
        return order


class RunResult(t.NamedTuple):
    """
    The outcome of executing a single task body.
    """
    name: str
    ok: bool
    outputs: tuple[Path, ...] = ()
    messages: tuple[str, ...] = ()
    error: TaskFailed | None = None
    duration: float = 0.0


class RunReport:
    """
    Everything that happened during one `TaskExecutor.run()`.
    """
    def __init__(self, target: str):
        self.target = target
        self.results: list[RunResult] = []
        self.skipped: list[str] = []

    def __repr__(self):
        return f'{self.__class__.__name__}({self.target!r}, ok={self.ok}, ran={self.ran}, skipped={self.skipped})'

    @property
    def ok(self):
        return all(r.ok for r in self.results)

    @property
    def ran(self):
        return [r.name for r in self.results]

    @property
    def failures(self) -> list[TaskFailed]:
        return [r.error for r in self.results if r.error]

    @property
    def outputs(self) -> list[Path]:
        return [p for r in self.results for p in r.outputs]


class TaskExecutor:
    """
    Runs tasks from a registry in dependency order, one at a time. A failing
    task never aborts the process: its dependents are skipped, unrelated
    tasks still run, and the failure is reported in the returned `RunReport`.
    """
    def __init__(self, registry: TaskRegistry, context: Context, quiet: bool = False):
        self.registry = registry
        self.context = context
        self.quiet = quiet

    def _print(self, *args, **kw):
        if not self.quiet:
            print_with_style(*args, **kw)

    def run(self, name: str) -> RunReport:
        """
        Run @name after all of its transitive dependencies. Raises
        ConfigurationError subclasses and UnknownTaskError for a bad graph
        before any task runs.
        """
        self.registry.freeze()
        plan = self.registry.plan(name)

        report = RunReport(name)
        blocked: set[str] = set()
        for task in plan:
            if blocked.intersection(task.dependencies):
                blocked.add(task.name)
                report.skipped.append(task.name)
                self._print(f'Skipped {task.name} (upstream failure)', style='yellow')
                continue
            result = self.execute(task)
            report.results.append(result)
            if not result.ok:
                blocked.add(task.name)
        return report

    def execute(self, task: Task) -> RunResult:
        """
        Execute a single task body, converting any exception it raises into a
        failed RunResult.
        """
        if task.body is None:
            return RunResult(task.name, True)

        self._print(f'Starting {task.name}...', style='cyan')
        start = time.perf_counter()
        with self.context.collect_notes() as notes:
            try:
                produced = task.body(self.context)
                outputs = tuple(produced) if produced else ()
            except Exception as e:  # pylint: disable=broad-exception-caught
                error = TaskFailed(task.name, e)
                # Command failures carry the tool's own diagnostics.
                if output := getattr(e, 'output', None):
                    notes.append(output if isinstance(output, str) else output.decode(errors='replace'))
                duration = time.perf_counter() - start
                self._print(f'✗ {error}', file='stderr', style='red')
                for note in notes:
                    self._print(note, file='stderr', style='red')
                return RunResult(task.name, False, (), tuple(notes), error, duration)

        duration = time.perf_counter() - start
        for note in notes:
            self._print(note, style='dim')
        self._print(
            f'✓ {task.message or task.name} ({len(outputs)} outputs, {duration:.2f}s)',
            style='green'
        )
        return RunResult(task.name, True, outputs, tuple(notes), None, duration)


class SpratException(Exception):
    """
    Base class for every error sprat raises on purpose.
    """


class ConfigurationError(SpratException):
    """
    The settings or the task graph are unusable; reported before any task
    runs.
    """


class DuplicateTaskError(ConfigurationError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f'Task {name!r} is already registered')


class UnknownDependencyError(ConfigurationError):
    def __init__(self, name: str, dependency: str):
        self.name = name
        self.dependency = dependency
        super().__init__(f'Task {name!r} depends on unknown task {dependency!r}')


class DependencyCycleError(ConfigurationError):
    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__('Dependency cycle: ' + ' -> '.join(cycle))


class UnknownTaskError(SpratException):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f'Unknown task {name!r}')


class TaskFailed(SpratException):
    """
    A task body raised; carries the task name and the underlying cause.
    """
    def __init__(self, name: str, cause: BaseException):
        self.name = name
        self.cause = cause
        super().__init__(f'Task {name!r} failed: {cause}')


class TaskTimeoutError(SpratException):
    """
    An external process ran past its time limit and was killed.
    """
    def __init__(self, command: Sequence[t.Any], timeout: float, output: str = ''):
        self.command = [str(c) for c in command]
        self.timeout = timeout
        self.output = output
        super().__init__(f'{self.command[0]} timed out after {timeout:g}s')


class StepUnavailableException(SpratException):
    """
    Exception raised when a step to be used is unavailable due to missing
    dependencies.
    """
    def __init__(self, step: Step, *args: t.Any):
        self.step = step
        super().__init__(f'{step.__class__.__name__} is unavailable due to missing dependencies', *args)
