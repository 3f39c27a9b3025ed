"""Validated inputs for the Sentinel.

The CLI layer is responsible for turning whatever the user typed into a
:class:`Configuration`.  Everything downstream of this module can assume the
values are well formed, so no coercion happens anywhere else.
"""
import os
import sys
import shlex
import signal

from typing import Iterable, List, Optional, Tuple, FrozenSet, Union  # noqa

from sentinelle.errors import ConfigurationError
from sentinelle.utils import OSUtils


DEFAULT_SHUTDOWN_SIGNAL = signal.SIGTERM
DEFAULT_GRACE_PERIOD = 5.0
DEFAULT_DEBOUNCE = 0.2
# Version control metadata plus Python's bytecode cache, which is rewritten
# every time the child imports a changed module.
DEFAULT_IGNORE = frozenset(['.git', '.hg', '.svn', '.bzr', '__pycache__'])

_RUNTIMES = {
    '.py': sys.executable or 'python3',
    '.js': 'node',
    '.mjs': 'node',
    '.cjs': 'node',
    '.ts': 'ts-node',
    '.sh': 'sh',
    '.rb': 'ruby',
    '.pl': 'perl',
}


def parse_signal(name):
    # type: (Union[str, int, signal.Signals]) -> signal.Signals
    """Resolve a signal given as ``SIGTERM``, ``TERM``, ``term`` or ``15``."""
    if isinstance(name, signal.Signals):
        return name
    value = str(name).strip()
    if value.isdigit():
        try:
            return signal.Signals(int(value))
        except ValueError:
            raise ConfigurationError('Unknown signal number: %s' % value)
    value = value.upper()
    if not value.startswith('SIG'):
        value = 'SIG' + value
    try:
        return signal.Signals[value]
    except KeyError:
        raise ConfigurationError('Unknown signal: %s' % name)


def split_entry(expression):
    # type: (str) -> Tuple[str, List[str]]
    """Split ``"app.py --port 8000"`` into the entry path and its args."""
    try:
        parts = shlex.split(expression)
    except ValueError as e:
        raise ConfigurationError(
            'Unable to parse entry "%s": %s' % (expression, e))
    if not parts:
        raise ConfigurationError('An entry file is required.')
    return parts[0], parts[1:]


def default_executable(entry_path):
    # type: (str) -> str
    extension = os.path.splitext(entry_path)[1].lower()
    try:
        return _RUNTIMES[extension]
    except KeyError:
        raise ConfigurationError(
            'Unable to determine how to run "%s"; use --bin to specify an '
            'executable.' % entry_path)


class Configuration(object):
    """Immutable settings consumed by the Sentinel."""

    __slots__ = ('_executable', '_bin_args', '_entry_path', '_entry_args',
                 '_extra_args', '_watch_paths', '_shutdown_signal',
                 '_grace_period', '_debounce', '_ignore', '_use_polling')

    def __init__(self, executable, entry_path, entry_args=(), extra_args=(),
                 watch_paths=None, shutdown_signal=DEFAULT_SHUTDOWN_SIGNAL,
                 grace_period=DEFAULT_GRACE_PERIOD, debounce=DEFAULT_DEBOUNCE,
                 ignore=DEFAULT_IGNORE, use_polling=False, bin_args=(),
                 osutils=None):
        # type: (str, str, Iterable[str], Iterable[str], Optional[Iterable[str]], Union[str, int, signal.Signals], float, float, Iterable[str], bool, Iterable[str], Optional[OSUtils]) -> None # noqa
        if osutils is None:
            osutils = OSUtils()
        if not executable:
            raise ConfigurationError('An executable is required.')
        if not entry_path:
            raise ConfigurationError('An entry file is required.')
        if grace_period <= 0:
            raise ConfigurationError(
                'Grace period must be positive, got %s' % grace_period)
        if debounce < 0:
            raise ConfigurationError(
                'Debounce window cannot be negative, got %s' % debounce)
        if watch_paths:
            paths = frozenset(osutils.abspath(p) for p in watch_paths)
        else:
            paths = frozenset(
                [osutils.dirname(osutils.abspath(entry_path))])
        set_ = object.__setattr__
        set_(self, '_executable', executable)
        set_(self, '_bin_args', tuple(bin_args))
        set_(self, '_entry_path', entry_path)
        set_(self, '_entry_args', tuple(entry_args))
        set_(self, '_extra_args', tuple(extra_args))
        set_(self, '_watch_paths', paths)
        set_(self, '_shutdown_signal', parse_signal(shutdown_signal))
        set_(self, '_grace_period', float(grace_period))
        set_(self, '_debounce', float(debounce))
        set_(self, '_ignore', frozenset(ignore))
        set_(self, '_use_polling', bool(use_polling))

    def __setattr__(self, name, value):
        # type: (str, object) -> None
        raise AttributeError('Configuration is immutable')

    @property
    def executable(self):
        # type: () -> str
        return self._executable

    @property
    def bin_args(self):
        # type: () -> Tuple[str, ...]
        return self._bin_args

    @property
    def entry_path(self):
        # type: () -> str
        return self._entry_path

    @property
    def entry_args(self):
        # type: () -> Tuple[str, ...]
        return self._entry_args

    @property
    def extra_args(self):
        # type: () -> Tuple[str, ...]
        return self._extra_args

    @property
    def watch_paths(self):
        # type: () -> FrozenSet[str]
        return self._watch_paths

    @property
    def shutdown_signal(self):
        # type: () -> signal.Signals
        return self._shutdown_signal

    @property
    def grace_period(self):
        # type: () -> float
        return self._grace_period

    @property
    def debounce(self):
        # type: () -> float
        return self._debounce

    @property
    def ignore(self):
        # type: () -> FrozenSet[str]
        return self._ignore

    @property
    def use_polling(self):
        # type: () -> bool
        return self._use_polling

    @property
    def command(self):
        # type: () -> List[str]
        return ([self._executable] + list(self._bin_args) +
                [self._entry_path] + list(self._entry_args) +
                list(self._extra_args))

    def __repr__(self):
        # type: () -> str
        return '<Configuration command=%r watch=%r signal=%s>' % (
            self.command, sorted(self._watch_paths),
            self._shutdown_signal.name)

    @classmethod
    def from_cli(cls, entry, bin=None, watch=None, kill=None,
                 extra_args=(), **kwargs):
        # type: (str, Optional[str], Optional[List[str]], Optional[str], Iterable[str], **object) -> Configuration # noqa
        """Build a configuration from raw command line values."""
        entry_path, entry_args = split_entry(entry)
        bin_args = []  # type: List[str]
        if bin:
            try:
                parts = shlex.split(bin)
            except ValueError as e:
                raise ConfigurationError(
                    'Unable to parse --bin "%s": %s' % (bin, e))
            if not parts:
                raise ConfigurationError('--bin cannot be empty.')
            executable, bin_args = parts[0], parts[1:]
        else:
            executable = default_executable(entry_path)
        if kill:
            kwargs['shutdown_signal'] = kill
        return cls(executable=executable, entry_path=entry_path,
                   entry_args=entry_args, extra_args=extra_args,
                   watch_paths=watch, bin_args=bin_args, **kwargs)
