"""
Settings for sprat projects: the loose, user-facing `InputBuildSettings`
declared in config files, and the validated, immutable `BuildSettings` every
component receives.
"""
from __future__ import annotations

import typing as t
from pathlib import Path, PurePosixPath

from .core import ConfigurationError


DEFAULT_PORT = 4000
DEFAULT_HOST = 'localhost'
DEFAULT_DEBOUNCE_MS = 200
DEFAULT_TASK_TIMEOUT = 300.0
DEFAULT_BROWSERS = ('last 5 versions',)

ASSET_GROUPS = ('styles', 'scripts', 'vendor_scripts', 'images', 'fonts', 'markup')


class AssetGroup(t.NamedTuple):
    """
    A category of assets: the glob patterns selecting its sources and the
    directory, relative to the site root, receiving its output.
    """
    patterns: tuple[str, ...]
    dest: str | None

    @classmethod
    def of(cls, patterns: str | t.Iterable[str], dest: str | None):
        if isinstance(patterns, str):
            patterns = (patterns,)
        return cls(tuple(patterns), dest)


DEFAULT_GROUPS: dict[str, AssetGroup] = {
    'styles': AssetGroup(('css/**/*.scss',), 'css'),
    'scripts': AssetGroup(('js/**/*.js',), 'js'),
    'vendor_scripts': AssetGroup(('js/vendors/*.js',), 'js'),
    'images': AssetGroup(('img/**/*',), 'img'),
    'fonts': AssetGroup(('fonts/**/*',), 'fonts'),
    # Relative to the site root: the generator's output is minified in place.
    'markup': AssetGroup(('**/*.html',), '.'),
}
DEFAULT_SITE_SOURCES = ('**/*.html', '**/*.yml', '**/*.json')


class InputBuildSettings(t.TypedDict, total=False):
    """
    TypedDict for defining build settings in a sprat config file. Asset groups
    may be given as `AssetGroup`s, `(patterns, dest)` pairs, or None to
    disable that part of the pipeline.
    """
    source_dir: Path
    site_root: Path
    styles: AssetGroup | tuple[t.Sequence[str], str] | None
    scripts: AssetGroup | tuple[t.Sequence[str], str] | None
    vendor_scripts: AssetGroup | tuple[t.Sequence[str], str] | None
    images: AssetGroup | tuple[t.Sequence[str], str] | None
    fonts: AssetGroup | tuple[t.Sequence[str], str] | None
    markup: AssetGroup | tuple[t.Sequence[str], str] | None
    site_command: t.Sequence[str] | None
    site_sources: t.Sequence[str]
    bundle_name: str
    browsers: t.Sequence[str]
    port: int
    host: str
    debounce_ms: int
    task_timeout: float


class BuildSettings(t.NamedTuple):
    """
    Validated settings, constructed once at startup and passed explicitly to
    every component.
    """
    source_dir: Path
    site_root: Path
    styles: AssetGroup | None = DEFAULT_GROUPS['styles']
    scripts: AssetGroup | None = DEFAULT_GROUPS['scripts']
    vendor_scripts: AssetGroup | None = DEFAULT_GROUPS['vendor_scripts']
    images: AssetGroup | None = DEFAULT_GROUPS['images']
    fonts: AssetGroup | None = DEFAULT_GROUPS['fonts']
    markup: AssetGroup | None = DEFAULT_GROUPS['markup']
    site_command: tuple[str, ...] | None = None
    site_sources: tuple[str, ...] = DEFAULT_SITE_SOURCES
    bundle_name: str = 'scripts'
    browsers: tuple[str, ...] = DEFAULT_BROWSERS
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    task_timeout: float = DEFAULT_TASK_TIMEOUT

    def group(self, name: str) -> AssetGroup | None:
        if name not in ASSET_GROUPS:
            raise KeyError(name)
        return getattr(self, name)

    def dest_path(self, group: AssetGroup) -> Path:
        """
        Absolute-ish output directory for an asset group.
        """
        assert group.dest is not None
        return self.site_root / group.dest


def check_pattern(pattern: t.Any, label: str):
    """
    Raise ConfigurationError if @pattern is not a usable relative glob.
    """
    if not isinstance(pattern, str) or not pattern.strip('!').strip():
        raise ConfigurationError(f'{label}: empty glob pattern {pattern!r}')
    body = pattern[1:] if pattern.startswith('!') else pattern
    posix = PurePosixPath(body)
    if posix.is_absolute() or Path(body).is_absolute():
        raise ConfigurationError(f'{label}: glob pattern must be relative, got {pattern!r}')
    for part in posix.parts:
        if '**' in part and part != '**':
            raise ConfigurationError(
                f"{label}: '**' must be an entire path component in {pattern!r}"
            )
        if part == '..':
            raise ConfigurationError(f'{label}: glob pattern may not leave its base directory: {pattern!r}')


def _coerce_group(name: str, value: t.Any) -> AssetGroup | None:
    if value is None:
        return None
    if isinstance(value, AssetGroup):
        group = value
    else:
        try:
            patterns, dest = value
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f'{name}: expected (patterns, dest), got {value!r}') from e
        group = AssetGroup.of(patterns, dest)

    if not group.patterns:
        raise ConfigurationError(f'{name}: no glob patterns given')
    for pattern in group.patterns:
        check_pattern(pattern, name)
    if group.dest is None or not str(group.dest).strip():
        raise ConfigurationError(f'{name}: missing destination directory')
    if Path(group.dest).is_absolute() or '..' in PurePosixPath(group.dest).parts:
        raise ConfigurationError(f'{name}: destination must stay inside the site root, got {group.dest!r}')
    return group


def resolve_settings(settings: InputBuildSettings | None = None, **overrides: t.Any) -> BuildSettings:
    """
    Validate user settings (plus keyword @overrides, typically from the
    command line) into an immutable `BuildSettings`. A relative `site_root` is
    taken relative to `source_dir`.
    """
    merged: dict[str, t.Any] = dict(settings or {})
    merged.update({k: v for k, v in overrides.items() if v is not None})

    unknown = set(merged) - set(BuildSettings._fields)
    if unknown:
        raise ConfigurationError(f'Unknown settings: {", ".join(sorted(unknown))}')

    if not merged.get('source_dir'):
        raise ConfigurationError('source_dir is required')
    source_dir = Path(merged['source_dir'])
    if not source_dir.is_dir():
        raise ConfigurationError(f'source_dir {source_dir} does not exist or is not a directory')

    if not merged.get('site_root'):
        raise ConfigurationError('site_root (the output directory) is required')
    site_root = Path(merged['site_root'])
    if not site_root.is_absolute():
        site_root = source_dir / site_root
    if site_root.resolve() == source_dir.resolve():
        raise ConfigurationError('site_root must differ from source_dir')
    if source_dir.resolve().is_relative_to(site_root.resolve()):
        raise ConfigurationError(f'source_dir {source_dir} may not live inside site_root {site_root}')

    values: dict[str, t.Any] = {'source_dir': source_dir, 'site_root': site_root}
    for name in ASSET_GROUPS:
        values[name] = _coerce_group(name, merged.get(name, DEFAULT_GROUPS[name]))

    site_command = merged.get('site_command')
    if site_command is not None:
        if isinstance(site_command, str) or not site_command:
            raise ConfigurationError('site_command must be a non-empty list of arguments')
        values['site_command'] = tuple(str(arg) for arg in site_command)

    site_sources = tuple(merged.get('site_sources', DEFAULT_SITE_SOURCES))
    for pattern in site_sources:
        check_pattern(pattern, 'site_sources')
    values['site_sources'] = site_sources

    bundle_name = merged.get('bundle_name', 'scripts')
    if not bundle_name or '/' in bundle_name:
        raise ConfigurationError(f'bundle_name must be a plain file stem, got {bundle_name!r}')
    values['bundle_name'] = bundle_name

    values['browsers'] = tuple(merged.get('browsers', DEFAULT_BROWSERS))

    port = merged.get('port', DEFAULT_PORT)
    if not isinstance(port, int) or not 0 <= port <= 65535:
        raise ConfigurationError(f'port must be an integer between 0 and 65535, got {port!r}')
    values['port'] = port
    values['host'] = merged.get('host', DEFAULT_HOST)

    debounce_ms = merged.get('debounce_ms', DEFAULT_DEBOUNCE_MS)
    if debounce_ms <= 0:
        raise ConfigurationError(f'debounce_ms must be positive, got {debounce_ms!r}')
    values['debounce_ms'] = debounce_ms

    task_timeout = merged.get('task_timeout', DEFAULT_TASK_TIMEOUT)
    if task_timeout <= 0:
        raise ConfigurationError(f'task_timeout must be positive, got {task_timeout!r}')
    values['task_timeout'] = float(task_timeout)

    return BuildSettings(**values)
