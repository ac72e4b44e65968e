"""
Steps for turning Sass sources into browser-ready CSS.
"""
from __future__ import annotations

import typing as t
from pathlib import Path

from .dependencies import PipDependency, WebExecDependency
from .simple import BaseCommandStep, BaseStandardStep

if t.TYPE_CHECKING:
    from collections.abc import Sequence
    from _typeshed import StrOrBytesPath


class SassStep(BaseCommandStep):
    """
    Compile Sass/SCSS with the Dart Sass executable. Source maps are written
    next to the CSS unless @source_map is False.
    """
    def __init__(self,
                 style: t.Literal['expanded', 'compressed'] = 'expanded',
                 source_map: bool = True,
                 load_paths: t.Iterable[Path] = (),
                 options: t.Iterable[str] = ()):
        self.options = [f'--style={style}']
        self.options.append('--source-map' if source_map else '--no-source-map')
        self.options.extend(f'--load-path={p}' for p in load_paths)
        self.options.extend(options)

    @classmethod
    def get_dependencies(cls):
        return super().get_dependencies() | {
            WebExecDependency('sass', 'https://sass-lang.com/install'),
        }

    def get_command(self, input_path: Path, output_path: Path) -> list[StrOrBytesPath]:
        return ['sass', *self.options, input_path, output_path]


class CSSMinifierStep(BaseStandardStep):
    """
    CSS post-processing using lightningcss: vendor prefixes are added for the
    configured browser targets, and the result is optionally minified.
    """
    @classmethod
    def get_dependencies(cls):
        return {
            PipDependency('lightningcss')
        }

    def __init__(self,
                 minify: bool = True,
                 browsers_list: Sequence[str] | None = None,
                 error_recovery: bool = False,
                 parser_flags: dict[str, bool] | None = None):
        """
        @browsers_list defaults to the build's `browsers` setting.
        """
        self.minify = minify
        self.browsers_list = list(browsers_list) if browsers_list else None
        self.error_recovery = error_recovery
        self.parser_flags = parser_flags or {}

    def __call__(self, path: Path, output_paths: list[Path]):
        import lightningcss

        browsers = self.browsers_list or list(self.context.settings.browsers)
        data = lightningcss.process_stylesheet(
            path.read_text(self.encoding),
            filename=str(path),
            error_recovery=self.error_recovery,
            parser_flags=lightningcss.calc_parser_flags(**self.parser_flags),
            browsers_list=browsers,
            minify=self.minify
        )
        self.write_text(output_paths, data)
