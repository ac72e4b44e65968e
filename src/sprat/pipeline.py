"""
The standard static-site pipeline: which tasks exist for a given set of
`BuildSettings`, how they depend on each other, and which source changes
re-run them.
"""
from __future__ import annotations

from .config import BuildSettings
from .core import TaskRegistry
from .fonts import FontMinifierStep
from .generator import SiteGeneratorTask
from .images import ImageOptimizeStep
from .minify import HTMLMinifierStep, JSMinifierStep
from .paths import DirPathCalc, InPlacePathCalc
from .styles import CSSMinifierStep, SassStep
from .tasks import AssetTask, BundleTask, Stage, clean_site
from .watcher import GlobBinding


SITE = 'site'
STYLES = 'styles'
SCRIPTS = 'scripts'
IMAGES = 'images'
FONTS = 'fonts'
MARKUP = 'markup'
BUILD = 'build'
DEFAULT = 'default'
CLEAN = 'clean'

SASS_PARTIALS = '!**/_*.scss'


def standard_registry(settings: BuildSettings) -> TaskRegistry:
    """
    Register the standard tasks for @settings. Parts of the pipeline whose
    asset group is None are left out, as is the `site` task without a
    `site_command`.
    """
    registry = TaskRegistry()
    build_deps: list[str] = []

    if settings.site_command:
        registry.register(
            SITE, (),
            SiteGeneratorTask(settings.site_command),
            description=f'Generate the site with {settings.site_command[0]}',
            message='Site generated',
        )
        build_deps.append(SITE)

    if styles := settings.styles:
        registry.register(
            STYLES, (),
            AssetTask(
                [*styles.patterns, SASS_PARTIALS],
                [
                    Stage(SassStep(), [DirPathCalc(styles.dest, ext='.css')]),
                    Stage(CSSMinifierStep(minify=False), [InPlacePathCalc()]),
                    Stage(CSSMinifierStep(), [InPlacePathCalc(suffix='.min')]),
                ],
                label='Compiling styles',
            ),
            description='Compile, autoprefix and minify Sass',
            message='All Sass files are compiled into CSS & minified',
        )
        build_deps.append(STYLES)

    script_groups = [g for g in (settings.vendor_scripts, settings.scripts) if g]
    if script_groups:
        patterns = [p for g in script_groups for p in g.patterns]
        registry.register(
            SCRIPTS, (),
            BundleTask(
                patterns,
                str(script_groups[-1].dest),
                f'{settings.bundle_name}.js',
                [Stage(JSMinifierStep(), [InPlacePathCalc(suffix='.min')])],
            ),
            description='Concatenate vendor and site scripts, then minify',
            message='All JS files are saved & minified',
        )
        build_deps.append(SCRIPTS)

    if images := settings.images:
        registry.register(
            IMAGES, (),
            AssetTask(
                images.patterns,
                [Stage(ImageOptimizeStep(), [DirPathCalc(images.dest)])],
                label='Compressing images',
            ),
            description='Compress images',
            message='All images are saved & minified',
        )
        build_deps.append(IMAGES)

    if fonts := settings.fonts:
        registry.register(
            FONTS, (),
            AssetTask(
                fonts.patterns,
                [Stage(FontMinifierStep(), [DirPathCalc(fonts.dest)])],
                label='Minifying fonts',
            ),
            description='Minify fonts',
            message='All fonts are saved and minified',
        )
        build_deps.append(FONTS)

    if markup := settings.markup:
        if settings.site_command:
            body = AssetTask(
                markup.patterns,
                [Stage(HTMLMinifierStep(), [InPlacePathCalc()])],
                base='site_root',
                label='Minifying HTML',
            )
            deps: tuple[str, ...] = (SITE,)
        else:
            body = AssetTask(
                markup.patterns,
                [Stage(HTMLMinifierStep(), [DirPathCalc(markup.dest)])],
                label='Minifying HTML',
            )
            deps = ()
        registry.register(
            MARKUP, deps, body,
            description='Minify HTML',
            message='All HTML files are minified',
        )
        build_deps.append(MARKUP)

    registry.register(BUILD, build_deps, description='Build the whole site')
    registry.register(DEFAULT, (BUILD,), description='Alias for build')
    registry.register(CLEAN, (), clean_site, description='Delete all generated files')
    return registry


def standard_bindings(settings: BuildSettings, registry: TaskRegistry) -> list[GlobBinding]:
    """
    Glob bindings for the standard pipeline. With a site generator, a change
    to any site source rebuilds everything, since the generator replaces the
    whole site root.
    """
    bindings: list[GlobBinding] = []
    if settings.styles and STYLES in registry:
        bindings.append(GlobBinding(settings.styles.patterns, STYLES))
    script_patterns = tuple(
        p for g in (settings.vendor_scripts, settings.scripts) if g for p in g.patterns
    )
    if script_patterns and SCRIPTS in registry:
        bindings.append(GlobBinding(script_patterns, SCRIPTS))
    if settings.images and IMAGES in registry:
        bindings.append(GlobBinding(settings.images.patterns, IMAGES))
    if settings.fonts and FONTS in registry:
        bindings.append(GlobBinding(settings.fonts.patterns, FONTS))
    if settings.site_command and SITE in registry:
        bindings.append(GlobBinding(settings.site_sources, BUILD))
    elif settings.markup and MARKUP in registry:
        bindings.append(GlobBinding(settings.markup.patterns, MARKUP))
    return bindings
