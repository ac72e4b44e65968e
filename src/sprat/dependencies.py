"""
Requirements of steps which hand their work to third-party libraries and
executables. Requirements compose with `|` (either will do) and `&` (all are
required), and report what is missing along with how to install it.
"""
from __future__ import annotations

import abc
import importlib.util
import shutil


class Dependency(abc.ABC):
    """
    Something a Step needs installed before it can run.
    """
    @property
    @abc.abstractmethod
    def satisfied(self) -> bool:
        ...

    @property
    def needed(self) -> bool:
        """
        False when the platform doesn't need this requirement at all.
        """
        return True

    @property
    @abc.abstractmethod
    def install_hint(self) -> str:
        ...

    def missing(self) -> list[Dependency]:
        """
        The unsatisfied requirements behind this one, for error reports.
        """
        return [self] if self.needed and not self.satisfied else []

    def __repr__(self):
        return f'{type(self).__name__}({self}, needed={self.needed}, satisfied={self.satisfied})'

    def __or__(self, other: Dependency):
        return AnyDependency(self, other)

    def __and__(self, other: Dependency):
        return AllDependency(self, other)


class _CompoundDependency(Dependency):
    symbol = '?'

    def __init__(self, *members: Dependency):
        self.members = members

    def __str__(self):
        return '(' + f' {self.symbol} '.join(str(m) for m in self.members) + ')'

    def __repr__(self):
        return '(' + f' {self.symbol} '.join(repr(m) for m in self.members) + ')'

    @property
    def needed(self):
        # One member may only apply to some platforms.
        return any(m.needed for m in self.members)

    @property
    def _needed_members(self):
        return [m for m in self.members if m.needed]


class AnyDependency(_CompoundDependency):
    """
    Satisfied as soon as any one of its members is.
    """
    symbol = '|'

    @property
    def satisfied(self):
        return any(m.satisfied for m in self._needed_members)

    @property
    def install_hint(self):
        needed = self._needed_members
        return needed[0].install_hint if needed else ''

    def missing(self):
        if self.satisfied:
            return []
        needed = self._needed_members
        return needed[0].missing() if needed else []


class AllDependency(_CompoundDependency):
    """
    Satisfied only when every needed member is.
    """
    symbol = '&'

    @property
    def satisfied(self):
        return all(m.satisfied for m in self._needed_members)

    @property
    def install_hint(self):
        return '; '.join(m.install_hint for m in self.missing())

    def missing(self):
        return [leaf for m in self._needed_members for leaf in m.missing()]


class PipDependency(Dependency):
    """
    A library installed with pip. @check_name is the importable module name
    when it differs from the distribution name, and @source what to pass to
    pip when it differs again (an extra, say).
    """
    def __init__(self,
                 name: str,
                 source: str | None = None,
                 check_name: str | None = None):
        self.name = name
        self.source = source or name
        self.check_name = check_name or name

    def __str__(self):
        return self.name

    @property
    def satisfied(self):
        # find_spec avoids paying for the import itself.
        try:
            return importlib.util.find_spec(self.check_name) is not None
        except (ImportError, ValueError):
            return False

    @property
    def install_hint(self):
        return f'pip install {self.source}'


class WebExecDependency(Dependency):
    """
    An executable from outside of pip, like the `sass` compiler or a
    static-site generator, looked up on PATH.
    """
    def __init__(self,
                 name: str,
                 source: str | None = None,
                 check_name: str | None = None):
        self.name = name
        self.source = source or name
        self.check_name = check_name or name

    def __str__(self):
        return self.name

    @property
    def executable(self) -> str | None:
        return shutil.which(self.check_name)

    @property
    def satisfied(self):
        return self.executable is not None

    @property
    def install_hint(self):
        return f'install {self.name} from {self.source}'
