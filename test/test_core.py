from pathlib import Path

import pytest

from sprat.core import (
    ConfigurationError, DependencyCycleError, DuplicateTaskError, StepUnavailableException, Step,
    TaskFailed, TaskRegistry, UnknownDependencyError, UnknownTaskError,
)
from sprat.dependencies import PipDependency
from sprat.test_harness import CallRecorder, make_executor, make_settings


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def recorder():
    return CallRecorder()


@pytest.fixture
def missing_library_step(monkeypatch: pytest.MonkeyPatch):
    # Defining a Step registers it for good; keep this one out of other tests.
    monkeypatch.setattr(Step, '_step_registry', list(Step._step_registry))

    class MissingLibraryStep(Step):
        @classmethod
        def get_dependencies(cls):
            return {PipDependency('sprat-definitely-not-installed', check_name='sprat_definitely_not_installed')}

        def __call__(self, path: Path, output_paths: list[Path]):
            pass

    return MissingLibraryStep


def test_register_duplicate():
    registry = TaskRegistry()
    registry.register('a')
    with pytest.raises(DuplicateTaskError):
        registry.register('a')


def test_register_unknown_dependency():
    registry = TaskRegistry()
    with pytest.raises(UnknownDependencyError) as info:
        registry.register('b', ['a'])
    assert info.value.dependency == 'a'
    assert 'b' not in registry


def test_register_self_dependency():
    registry = TaskRegistry()
    with pytest.raises(DependencyCycleError):
        registry.register('a', ['a'])


def test_resolve_unknown():
    with pytest.raises(UnknownTaskError):
        TaskRegistry().resolve('nope')


def test_task_decorator(settings, recorder):
    registry = TaskRegistry()

    @registry.task()
    def first(context):
        recorder.calls.append('first')

    @registry.task('second', ['first'])
    def _second(context):
        recorder.calls.append('second')

    assert registry.names() == ['first', 'second']
    assert make_executor(settings, registry).run('second').ok
    assert recorder.calls == ['first', 'second']


def test_frozen_registry_rejects_registration(settings):
    registry = TaskRegistry()
    registry.register('a')
    make_executor(settings, registry).run('a')
    with pytest.raises(ConfigurationError):
        registry.register('b')


def test_deferred_cycle_detected_before_running(settings, recorder):
    registry = TaskRegistry(defer_validation=True)
    registry.register('a', ['c'], recorder.body('a'))
    registry.register('b', ['a'], recorder.body('b'))
    registry.register('c', ['b'], recorder.body('c'))
    registry.register('d', (), recorder.body('d'))

    with pytest.raises(DependencyCycleError) as info:
        make_executor(settings, registry).run('d')
    assert set(info.value.cycle) == {'a', 'b', 'c'}
    assert info.value.cycle[0] == info.value.cycle[-1]
    assert recorder.calls == []


def test_deferred_unknown_dependency(settings):
    registry = TaskRegistry(defer_validation=True)
    registry.register('a', ['ghost'])
    with pytest.raises(UnknownDependencyError):
        registry.validate()


def test_deferred_declaration_order(settings, recorder):
    registry = TaskRegistry(defer_validation=True)
    registry.register('b', ['a'], recorder.body('b'))
    registry.register('a', (), recorder.body('a'))
    assert make_executor(settings, registry).run('b').ok
    assert recorder.calls == ['a', 'b']


def test_run_dependency_before_dependent(settings, recorder):
    registry = TaskRegistry()
    registry.register('a', (), recorder.body('a'))
    registry.register('b', ['a'], recorder.body('b'))

    report = make_executor(settings, registry).run('b')

    assert report.ok
    assert recorder.calls == ['a', 'b']
    assert report.ran == ['a', 'b']


def test_run_diamond_runs_each_once(settings, recorder):
    registry = TaskRegistry()
    registry.register('base', (), recorder.body('base'))
    registry.register('left', ['base'], recorder.body('left'))
    registry.register('right', ['base'], recorder.body('right'))
    registry.register('top', ['left', 'right'], recorder.body('top'))

    report = make_executor(settings, registry).run('top')

    assert report.ok
    assert recorder.calls == ['base', 'left', 'right', 'top']


def test_run_only_transitive_dependencies(settings, recorder):
    registry = TaskRegistry()
    registry.register('a', (), recorder.body('a'))
    registry.register('unrelated', (), recorder.body('unrelated'))
    registry.register('b', ['a'], recorder.body('b'))

    make_executor(settings, registry).run('b')
    assert recorder.calls == ['a', 'b']


def test_run_unknown_task(settings):
    registry = TaskRegistry()
    with pytest.raises(UnknownTaskError):
        make_executor(settings, registry).run('missing')


def test_failure_skips_dependents(settings, recorder):
    registry = TaskRegistry()
    registry.register('a', (), recorder.body('a', fail=True))
    registry.register('b', ['a'], recorder.body('b'))

    report = make_executor(settings, registry).run('b')

    assert not report.ok
    assert recorder.calls == ['a']
    assert report.skipped == ['b']
    [failure] = report.failures
    assert isinstance(failure, TaskFailed)
    assert failure.name == 'a'
    assert isinstance(failure.cause, RuntimeError)
    assert 'a exploded' in str(failure)


def test_failure_leaves_independent_branches_running(settings, recorder):
    registry = TaskRegistry()
    registry.register('broken', (), recorder.body('broken', fail=True))
    registry.register('fine', (), recorder.body('fine'))
    registry.register('after_broken', ['broken'], recorder.body('after_broken'))
    registry.register('all', ['broken', 'fine', 'after_broken'])

    report = make_executor(settings, registry).run('all')

    assert recorder.calls == ['broken', 'fine']
    assert set(report.skipped) == {'after_broken', 'all'}
    assert [r.name for r in report.results if r.ok] == ['fine']


def test_run_result_outputs_and_notes(settings, tmp_path):
    registry = TaskRegistry()

    def body(context):
        context.note('half way there')
        return [tmp_path / 'out.txt']

    registry.register('noted', (), body)
    report = make_executor(settings, registry).run('noted')

    [result] = report.results
    assert result.ok
    assert result.outputs == (tmp_path / 'out.txt',)
    assert result.messages == ('half way there',)
    assert result.duration >= 0
    assert report.outputs == [tmp_path / 'out.txt']


def test_bodyless_task_groups_dependencies(settings, recorder):
    registry = TaskRegistry()
    registry.register('a', (), recorder.body('a'))
    registry.register('b', (), recorder.body('b'))
    registry.register('group', ['a', 'b'])

    report = make_executor(settings, registry).run('group')
    assert report.ok
    assert recorder.calls == ['a', 'b']


def test_unavailable_step_fails_task(settings, missing_library_step):
    registry = TaskRegistry()
    registry.register('needs_lib', (), lambda context: context.bind(missing_library_step()))

    report = make_executor(settings, registry).run('needs_lib')

    [failure] = report.failures
    assert isinstance(failure.cause, StepUnavailableException)
    assert missing_library_step not in Step.get_available_steps()
    assert missing_library_step in Step.get_all_steps()
