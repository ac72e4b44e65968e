"""
Practical implementations of PathCalcs, mapping source files to the files
generated from them.
"""
from __future__ import annotations

import typing as t
from pathlib import Path, PurePosixPath

from .core import Context, PathCalc


def rename(path: Path, ext: str | None = None, suffix: str | None = None):
    """
    Replace the extension of @path with @ext and append @suffix to its stem,
    so `style.scss` becomes `style.min.css` for `ext='.css', suffix='.min'`.
    """
    if ext is not None:
        path = path.with_suffix(ext)
    if suffix:
        path = path.with_name(f'{path.stem}{suffix}{path.suffix}')
    return path


class DirPathCalc(PathCalc):
    """
    PathCalc which places its input paths under @dest, a directory relative to
    the site root, keeping their location relative to the glob which found
    them. @ext replaces the extension of input paths and @suffix is appended
    to their stems.
    """
    def __init__(self,
                 dest: str | Path = '.',
                 ext: str | None = None,
                 suffix: str | None = None,
                 transform: t.Callable[[PurePosixPath], PurePosixPath] | None = None):
        self.dest = Path(dest)
        self.ext = ext
        self.suffix = suffix
        self.transform = transform

    def __repr__(self):
        return f'{self.__class__.__name__}({str(self.dest)!r}, ext={self.ext!r}, suffix={self.suffix!r})'

    def __call__(self, context: Context, path: Path, relative: PurePosixPath) -> Path:
        if self.transform:
            relative = self.transform(relative)
        return rename(context['site_root'] / self.dest / relative, self.ext, self.suffix)


class FlatPathCalc(DirPathCalc):
    """
    DirPathCalc which drops the directory structure of its inputs, placing
    every output directly inside @dest.
    """
    def __init__(self,
                 dest: str | Path = '.',
                 ext: str | None = None,
                 suffix: str | None = None):
        super().__init__(dest, ext, suffix, transform=lambda rel: PurePosixPath(rel.name))


class InPlacePathCalc(PathCalc):
    """
    PathCalc for post-processing generated files where they are: the output
    path is the input path, optionally renamed.
    """
    def __init__(self, ext: str | None = None, suffix: str | None = None):
        self.ext = ext
        self.suffix = suffix

    def __call__(self, context: Context, path: Path, relative: PurePosixPath) -> Path:
        return rename(path, self.ext, self.suffix)
