import os
import logging
import threading

from typing import Callable, Iterable, List, Optional, FrozenSet, Any  # noqa

from sentinelle.config import DEFAULT_DEBOUNCE, DEFAULT_IGNORE
from sentinelle.errors import WatchSetupError
from sentinelle.utils import OSUtils


logger = logging.getLogger(__name__)


class Debouncer(object):
    """Collapse a burst of calls into a single trailing call.

    Every call to :meth:`trigger` restarts the window; ``callback`` runs on
    a timer thread once ``delay`` seconds pass with no further triggers.
    """
    def __init__(self, callback, delay, timer_factory=threading.Timer):
        # type: (Callable[[], None], float, Callable[..., threading.Timer]) -> None # noqa
        self._callback = callback
        self._delay = delay
        self._timer_factory = timer_factory
        self._timer = None  # type: Optional[threading.Timer]
        self._lock = threading.Lock()
        self._cancelled = False

    def trigger(self):
        # type: () -> None
        with self._lock:
            if self._cancelled:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self._timer_factory(self._delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self):
        # type: () -> None
        with self._lock:
            self._cancelled = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self):
        # type: () -> None
        with self._lock:
            if self._cancelled:
                return
            self._timer = None
        self._callback()


def is_ignored(path, ignore, root=None):
    # type: (str, FrozenSet[str], Optional[str]) -> bool
    """Check the components of ``path`` below ``root`` against ``ignore``.

    Directories above the watched root never count, so a project living
    under ``/tmp`` is still watched when ``tmp`` is ignored.
    """
    if not ignore:
        return False
    path = os.path.normpath(path)
    if root is not None:
        relative = os.path.relpath(path, os.path.normpath(root))
        if relative != os.pardir and \
                not relative.startswith(os.pardir + os.sep):
            path = relative
    parts = path.split(os.sep)
    return any(part in ignore for part in parts)


class WatchSession(object):
    """The active subscription returned by :meth:`Watcher.watch`."""
    def __init__(self, roots, debouncer):
        # type: (FrozenSet[str], Debouncer) -> None
        self.roots = roots
        self.debouncer = debouncer
        self.closed = False
        # Backend specific resources (observers, polling threads).
        self.resources = []  # type: List[Any]

    def notify(self, path):
        # type: (str) -> None
        if self.closed:
            return
        logger.debug('Change detected: %s', path)
        self.debouncer.trigger()


class Watcher(object):
    def __init__(self, ignore=DEFAULT_IGNORE, debounce=DEFAULT_DEBOUNCE,
                 osutils=None):
        # type: (Iterable[str], float, Optional[OSUtils]) -> None
        if osutils is None:
            osutils = OSUtils()
        self._ignore = frozenset(ignore)
        self._debounce = debounce
        self._osutils = osutils

    def watch(self, paths, on_change):
        # type: (Iterable[str], Callable[[], None]) -> WatchSession
        roots = frozenset(self._osutils.abspath(p) for p in paths)
        if not roots:
            raise WatchSetupError('', 'no paths given')
        for root in sorted(roots):
            if not self._osutils.path_exists(root):
                raise WatchSetupError(root)
        session = WatchSession(roots, Debouncer(on_change, self._debounce))
        try:
            for root in sorted(roots):
                self.start_watching(session, root)
        except Exception:
            self.unwatch(session)
            raise
        return session

    def unwatch(self, session):
        # type: (WatchSession) -> None
        if session.closed:
            return
        session.closed = True
        session.debouncer.cancel()
        self.stop_watching(session)

    def start_watching(self, session, path):
        # type: (WatchSession, str) -> None
        raise NotImplementedError('start_watching')

    def stop_watching(self, session):
        # type: (WatchSession) -> None
        raise NotImplementedError('stop_watching')
