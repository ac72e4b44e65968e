import socket
import textwrap
import time
from pathlib import Path

import pytest

from sprat.cli import build_parser, load_project, main
from sprat.core import ConfigurationError, DependencyCycleError
from sprat.server import DevServer
from sprat.watcher import GlobBinding, WatchSession


CONFIG = textwrap.dedent('''
    from pathlib import Path

    from sprat import TaskRegistry

    HERE = Path(__file__).parent
    SETTINGS = {
        'source_dir': HERE / 'src',
        'site_root': HERE / 'site',
        'styles': None,
        'scripts': None,
        'vendor_scripts': None,
        'images': None,
        'fonts': None,
        'markup': None,
    }
    TASKS = TaskRegistry()


    @TASKS.task()
    def hello(context):
        out = context['site_root'] / 'hello.txt'
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text('hi')
        return [out]


    @TASKS.task()
    def broken(context):
        raise RuntimeError('nope')


    TASKS.register('default', ['hello'], description='Say hello')
    TASKS.register('after_broken', ['broken'])
    BINDINGS = [(['**/*.txt'], 'hello')]
''')

CYCLE_CONFIG = textwrap.dedent('''
    from pathlib import Path

    from sprat import TaskRegistry

    HERE = Path(__file__).parent
    SETTINGS = {'source_dir': HERE / 'src', 'site_root': HERE / 'site'}


    def TASKS(settings):
        registry = TaskRegistry(defer_validation=True)
        registry.register('a', ['b'])
        registry.register('b', ['a'])
        return registry
''')


def write_config(tmp_path: Path, text: str = CONFIG):
    (tmp_path / 'src').mkdir(exist_ok=True)
    config = tmp_path / 'sprat_config.py'
    config.write_text(text)
    return config


def test_load_project(tmp_path: Path):
    project = load_project(write_config(tmp_path), port=4321)
    assert project.settings.port == 4321
    assert project.registry.frozen
    assert project.registry.names() == ['hello', 'broken', 'default', 'after_broken']
    assert project.bindings == [GlobBinding(('**/*.txt',), 'hello')]


def test_load_project_standard_pipeline(tmp_path: Path):
    config = write_config(tmp_path, textwrap.dedent('''
        from pathlib import Path

        SETTINGS = {'source_dir': Path(__file__).parent / 'src', 'site_root': 'out'}
    '''))
    project = load_project(config)
    assert 'build' in project.registry
    assert {b.task for b in project.bindings} == {'styles', 'scripts', 'images', 'fonts', 'markup'}


def test_load_project_errors(tmp_path: Path):
    with pytest.raises(ConfigurationError):
        load_project(tmp_path / 'missing.py')
    with pytest.raises(ConfigurationError):
        load_project(write_config(tmp_path, 'TASKS = None\n'))
    with pytest.raises(DependencyCycleError):
        load_project(write_config(tmp_path, CYCLE_CONFIG))


def test_parser():
    args = build_parser().parse_args(['run', 'styles', 'scripts', '-c', 'site.py', '-q'])
    assert args.command == 'run'
    assert args.tasks == ['styles', 'scripts']
    assert args.config_file == Path('site.py')
    assert args.quiet
    with pytest.raises(SystemExit):
        build_parser().parse_args(['run', '-c', 'a.py', '-m', 'b'])


def test_run(tmp_path: Path):
    config = write_config(tmp_path)
    main(['run', '-c', str(config)])
    assert (tmp_path / 'site' / 'hello.txt').read_text() == 'hi'


def test_run_failure_exits_nonzero(tmp_path: Path):
    config = write_config(tmp_path)
    with pytest.raises(SystemExit) as info:
        main(['run', 'after_broken', 'hello', '-c', str(config)])
    assert info.value.code == 1
    # Later targets still run after an earlier one fails.
    assert (tmp_path / 'site' / 'hello.txt').exists()


def test_run_unknown_task(tmp_path: Path):
    config = write_config(tmp_path)
    with pytest.raises(SystemExit) as info:
        main(['run', 'nope', '-c', str(config)])
    assert info.value.code == 1


def test_cycle_exits_nonzero(tmp_path: Path):
    config = write_config(tmp_path, CYCLE_CONFIG)
    with pytest.raises(SystemExit) as info:
        main(['list', '-c', str(config)])
    assert info.value.code == 1


def test_clean(tmp_path: Path):
    config = write_config(tmp_path)
    main(['run', '-c', str(config)])
    main(['clean', '-c', str(config)])
    assert list((tmp_path / 'site').iterdir()) == []
    main(['clean', '-c', str(config)])


def test_list(tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    main(['list', '-c', str(write_config(tmp_path))])
    out = capsys.readouterr().out
    assert 'hello' in out
    assert 'after_broken [after: broken]' in out
    assert '**/*.txt -> hello' in out


def test_audit(tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    main(['audit', '-c', str(write_config(tmp_path))])
    out = capsys.readouterr().out
    assert 'DirectCopyStep' in out
    assert 'MissingLibraryStep' not in out


def test_serve_port_in_use(tmp_path: Path):
    config = write_config(tmp_path)
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(('localhost', 0))
        sock.listen()
        port = sock.getsockname()[1]
        with pytest.raises(SystemExit) as info:
            main(['serve', '-c', str(config), '-p', str(port)])
    assert info.value.code == 1


def test_watch_builds_serves_and_reloads(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    config = write_config(tmp_path)
    built_first = []
    reports = []
    reloads = []

    def notify_reload(server, report):
        reloads.append((server.port, report))
        return 0

    def change_once(session, interval=0.5):
        built_first.append((tmp_path / 'site' / 'hello.txt').exists())
        session.start()
        (session.source_dir / 'note.txt').write_text('changed')
        deadline = time.monotonic() + 10
        while not reports and time.monotonic() < deadline:
            reports.extend(session.poll(0.1))
        raise KeyboardInterrupt

    monkeypatch.setattr(DevServer, 'notify_reload', notify_reload)
    monkeypatch.setattr(WatchSession, 'run_forever', change_once)

    assert main(['watch', '-c', str(config), '-p', '0']) is None

    assert built_first == [True]
    [report] = reports
    assert report.ok
    assert report.ran == ['hello']
    [(port, reloaded)] = reloads
    assert port != 0
    assert reloaded is report
