"""
Minification of markup and scripts.
"""
from __future__ import annotations

import mimetypes
from pathlib import Path

from .dependencies import PipDependency
from .simple import BaseStandardStep


class HTMLMinifierStep(BaseStandardStep):
    """
    Collapse whitespace and drop comments from HTML with minify-html. Inline
    `<style>` and `<script>` blocks are left alone unless @minify_css or
    @minify_js say otherwise. Safe to run in place on generated pages.
    """
    def __init__(self, minify_css: bool = False, minify_js: bool = False, keep_comments: bool = False):
        self.minify_css = minify_css
        self.minify_js = minify_js
        self.keep_comments = keep_comments

    @classmethod
    def get_dependencies(cls):
        return {PipDependency('minify-html', check_name='minify_html')}

    def __call__(self, path: Path, output_paths: list[Path]):
        import minify_html

        html = path.read_text(self.encoding)
        self.write_text(output_paths, minify_html.minify(
            html,
            minify_css=self.minify_css,
            minify_js=self.minify_js,
            keep_comments=self.keep_comments,
        ))


class AssetMinifierStep(BaseStandardStep):
    """
    Minify CSS, HTML, JS, JSON, SVG or XML with tdewolff-minify, picking the
    minifier from @mimetype or, failing that, from the file name.

    NOTE: tdewolff-minify ships no macOS wheels.
    """
    def __init__(self, mimetype: str | None = None):
        self.mimetype = mimetype

    @classmethod
    def get_dependencies(cls):
        return {PipDependency('tdewolff-minify', check_name='minify')}

    def media_type(self, path: Path) -> str:
        if mime := self.mimetype or mimetypes.guess_type(path)[0]:
            return mime
        raise ValueError(f'Could not detect MIME type for {path}!')

    def __call__(self, path: Path, output_paths: list[Path]):
        import minify

        source = path.read_text(self.encoding)
        self.write_text(output_paths, minify.string(self.media_type(path), source))


class JSMinifierStep(AssetMinifierStep):
    """
    tdewolff-minify for script bundles, whatever their file names.
    """
    def __init__(self):
        super().__init__('application/javascript')
