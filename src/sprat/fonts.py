"""
Font minification: re-encoding TrueType/OpenType fonts into compressed web
font flavors.
"""
from __future__ import annotations

import shutil
from pathlib import Path

from .core import Step
from .dependencies import AllDependency, PipDependency

FONT_SUFFIXES = {'.ttf', '.otf', '.woff', '.woff2'}
FLAVORS = {'.woff': 'woff', '.woff2': 'woff2'}


class FontMinifierStep(Step):
    """
    Re-encode fonts with fontTools. The flavor of each output is chosen from
    its extension, so one input can produce `.ttf`, `.woff` and `.woff2`
    siblings. Files fontTools can't read (SVG or EOT fonts) are copied.
    """
    def __init__(self, drop_tables: tuple[str, ...] = ('DSIG',)):
        """
        @drop_tables lists tables stripped from every output; digital
        signatures are invalid once a font is re-encoded anyway.
        """
        self.drop_tables = drop_tables

    @classmethod
    def get_dependencies(cls):
        return {
            AllDependency(
                PipDependency('fonttools', 'fonttools[woff]', check_name='fontTools'),
                PipDependency('brotli', 'fonttools[woff]'),
            ),
        }

    def __call__(self, path: Path, output_paths: list[Path]):
        for o_path in output_paths:
            o_path.parent.mkdir(parents=True, exist_ok=True)

        if path.suffix.lower() not in FONT_SUFFIXES:
            for o_path in output_paths:
                if o_path != path:
                    shutil.copy(path, o_path)
            return

        from fontTools.ttLib import TTFont

        # Timestamps stay as they are so rebuilds are byte-identical.
        with TTFont(path, recalcTimestamp=False) as font:
            for tag in self.drop_tables:
                if tag in font:
                    del font[tag]
            for o_path in output_paths:
                font.flavor = FLAVORS.get(o_path.suffix.lower())
                font.save(o_path)
