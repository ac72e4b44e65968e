"""
Internal utilities for progress bars and pretty printing.
"""
import typing as t

import rich.console
import rich.progress


_consoles = {
    'stdout': rich.console.Console(highlight=False),
    'stderr': rich.console.Console(stderr=True, highlight=False),
}


T = t.TypeVar('T')


def track_progress(iterable: t.Iterable[T], desc: str, *, total: float | None = None) -> t.Iterable[T]:
    """
    Progress tracker displaying a rich progress bar on stdout. Disappears once
    the iterable is exhausted so that watch sessions don't accumulate bars.
    """
    yield from rich.progress.track(
        iterable,
        desc,
        total=total,
        console=_consoles['stdout'],
        transient=True,
    )


def print_with_style(*args, sep=' ', end='\n', file: str = 'stdout', style=None):
    """
    Enhanced print() function which renders rich console styles. Markup in the
    arguments is not interpreted, since paths and tool output routinely
    contain square brackets.
    """
    _consoles[file].print(*args, sep=sep, end=end, style=style, markup=False)
