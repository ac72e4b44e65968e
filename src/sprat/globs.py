"""
Glob patterns in the style build tools use: `*` and `?` stay inside a path
segment, `**` spans any number of directories, and a leading `!` excludes.
Dotfiles are only matched by patterns which spell the dot out.
"""
from __future__ import annotations

import functools
import re
import typing as t
from pathlib import Path, PurePosixPath


_SEGMENT = r'[^/.][^/]*'


def _translate_segment(segment: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(segment):
        char = segment[i]
        if char == '*':
            # Collapse runs of stars inside a segment.
            while i + 1 < len(segment) and segment[i + 1] == '*':
                i += 1
            out.append(r'(?!\.)[^/]*' if not out else r'[^/]*')
        elif char == '?':
            out.append(r'[^/.]' if not out else r'[^/]')
        elif char == '[':
            end = segment.find(']', i + 2)
            if end == -1:
                out.append(re.escape(char))
            else:
                body = segment[i + 1:end].replace('\\', r'\\')
                if body.startswith('!'):
                    body = '^' + body[1:]
                out.append(f'[{body}]')
                i = end
        else:
            out.append(re.escape(char))
        i += 1
    return ''.join(out)


def translate(pattern: str) -> str:
    """
    Translate a (positive) glob pattern into a regular expression matching
    relative POSIX paths.
    """
    parts = pattern.strip('/').split('/')
    out: list[str] = []
    for index, part in enumerate(parts):
        last = index == len(parts) - 1
        if part == '**':
            out.append(rf'(?:{_SEGMENT}/)*{_SEGMENT}' if last else rf'(?:{_SEGMENT}/)*')
        else:
            out.append(_translate_segment(part) + ('' if last else '/'))
    return r'\A' + ''.join(out) + r'\Z'


@functools.lru_cache(maxsize=256)
def compile_glob(pattern: str) -> re.Pattern[str]:
    return re.compile(translate(pattern))


def _as_posix(path: str | PurePosixPath | Path) -> str:
    return path if isinstance(path, str) else path.as_posix()


class GlobSet:
    """
    An ordered set of glob patterns, some of which may be `!`-prefixed
    exclusions. A path matches when it matches any inclusion and no
    exclusion.
    """
    def __init__(self, patterns: t.Iterable[str]):
        self.patterns = tuple(patterns)
        self.include = [p for p in self.patterns if not p.startswith('!')]
        self.exclude = [p[1:] for p in self.patterns if p.startswith('!')]

    def __repr__(self):
        return f'{self.__class__.__name__}({list(self.patterns)!r})'

    def excluded(self, relative: str | PurePosixPath | Path) -> bool:
        rel = _as_posix(relative)
        return any(compile_glob(p).match(rel) for p in self.exclude)

    def matches(self, relative: str | PurePosixPath | Path) -> bool:
        """
        Check a path relative to the base directory the patterns apply to.
        """
        rel = _as_posix(relative)
        if self.excluded(rel):
            return False
        return any(compile_glob(p).match(rel) for p in self.include)

    def expand(self, base: Path, prune: t.Iterable[Path] = ()) -> list[Path]:
        """
        Find the files under @base matching this set. Results are grouped by
        inclusion pattern in declaration order, sorted within each group, and
        never repeated, so `['vendor/*.js', '**/*.js']` lists vendor files
        first. Directories in @prune are not descended into.
        """
        return [path for path, _rel in self.expand_relative(base, prune)]

    def expand_relative(self, base: Path, prune: t.Iterable[Path] = ()) -> list[tuple[Path, PurePosixPath]]:
        """
        Like `expand()`, but pair each file with its path relative to the
        literal prefix of the pattern which found it: `css/**/*.scss` finds
        `css/a/b.scss` as `a/b.scss`.
        """
        relatives = sorted(p.relative_to(base).as_posix() for p in walk_files(base, prune))
        seen: set[str] = set()
        found: list[tuple[Path, PurePosixPath]] = []
        for pattern in self.include:
            regex = compile_glob(pattern)
            prefix = PurePosixPath(glob_base(pattern))
            for rel in relatives:
                if rel in seen or not regex.match(rel) or self.excluded(rel):
                    continue
                seen.add(rel)
                found.append((base / rel, PurePosixPath(rel).relative_to(prefix)))
        return found


def glob_base(pattern: str) -> str:
    """
    The leading directories of @pattern which contain no wildcards.
    """
    literal: list[str] = []
    for part in pattern.lstrip('!').strip('/').split('/')[:-1]:
        if any(c in part for c in '*?['):
            break
        literal.append(part)
    return '/'.join(literal) or '.'


def walk_files(path: Path, prune: t.Iterable[Path] = ()) -> t.Iterator[Path]:
    """
    Recursively yield the files under @path, skipping any directory listed in
    @prune.
    """
    pruned = {p.resolve() for p in prune}
    if not path.is_dir():
        return
    for candidate in sorted(path.iterdir()):
        if candidate.is_dir():
            if candidate.resolve() in pruned:
                continue
            yield from walk_files(candidate, pruned)
        else:
            yield candidate
