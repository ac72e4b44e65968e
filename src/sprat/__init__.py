"""
sprat is a small declarative task runner for static-site asset pipelines:
named tasks with explicit dependencies, a debounced file watcher, and a
live-reloading development server.
"""
from .config import AssetGroup, BuildSettings, InputBuildSettings, resolve_settings
from .core import (
    ConfigurationError, Context, DependencyCycleError, DuplicateTaskError, PathCalc, RunReport,
    RunResult, SpratException, Step, StepUnavailableException, Task, TaskExecutor, TaskFailed,
    TaskRegistry, TaskTimeoutError, UnknownDependencyError, UnknownTaskError,
)
from .dependencies import Dependency, PipDependency, WebExecDependency
from .fonts import FontMinifierStep
from .generator import SiteGeneratorTask
from .images import ImageOptimizeStep
from .minify import AssetMinifierStep, HTMLMinifierStep, JSMinifierStep
from .paths import DirPathCalc, FlatPathCalc, InPlacePathCalc
from .pipeline import standard_bindings, standard_registry
from .server import DevServer, PortInUseError
from .simple import DirectCopyStep
from .styles import CSSMinifierStep, SassStep
from .tasks import AssetTask, BundleTask, Stage, clean_site
from .watcher import DebounceTracker, GlobBinding, WatchSession
