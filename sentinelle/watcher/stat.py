import os
import threading

from typing import Dict, Set, Callable, FrozenSet, Optional  # noqa

from sentinelle.config import DEFAULT_DEBOUNCE, DEFAULT_IGNORE
from sentinelle.watcher.shared import Watcher, WatchSession, is_ignored
from sentinelle.utils import OSUtils


class StatFileObserver(object):
    def __init__(self, path, ignore=frozenset(), osutils=None):
        # type: (str, FrozenSet[str], Optional[OSUtils]) -> None
        if osutils is None:
            osutils = OSUtils()
        self._path = path
        self._ignore = ignore
        self._osutils = osutils
        self._mtimes = {}  # type: Dict[str, float]

    def check(self):
        # type: () -> Set[str]
        """Return every file created, modified or deleted since last check.

        The first call reports every file found, since nothing was known
        about them before.
        """
        updated = set([])  # type: Set[str]
        seen = set([])  # type: Set[str]
        for filepath in self._iter_files():
            seen.add(filepath)
            if self._check_file(filepath):
                updated.add(filepath)
        for filepath in set(self._mtimes) - seen:
            del self._mtimes[filepath]
            updated.add(filepath)
        return updated

    def _iter_files(self):
        if self._osutils.file_exists(self._path):
            yield self._path
            return
        for rootdir, dirnames, filenames in self._osutils.walk(self._path):
            # Pruning in place stops os.walk from descending into them.
            dirnames[:] = [d for d in dirnames if d not in self._ignore]
            for filename in filenames:
                filepath = os.path.join(rootdir, filename)
                if not is_ignored(filepath, self._ignore, self._path):
                    yield filepath

    def _check_file(self, path):
        # type: (str) -> bool
        try:
            new_mtime = self._osutils.mtime(path)
        except OSError:
            # Removed between listing and stat; the next check reports it.
            return False
        old_mtime = self._mtimes.get(path)
        if old_mtime is None or new_mtime > old_mtime:
            self._mtimes[path] = new_mtime
            return True
        return False


class StatFileWatcher(Watcher):
    """Polls file mtimes, for filesystems without native change events."""
    def __init__(self, ignore=DEFAULT_IGNORE, debounce=DEFAULT_DEBOUNCE,
                 osutils=None, interval=0.5):
        # type: (FrozenSet[str], float, Optional[OSUtils], float) -> None
        super(StatFileWatcher, self).__init__(ignore, debounce, osutils)
        self._interval = interval

    def start_watching(self, session, path):
        # type: (WatchSession, str) -> None
        observer = StatFileObserver(path, self._ignore, self._osutils)
        # Prime the observer so pre-existing files do not count as changes.
        observer.check()
        stop_event = threading.Event()
        t = threading.Thread(target=self._run,
                             args=(session, observer, stop_event))
        t.daemon = True
        session.resources.append((t, stop_event))
        t.start()

    def stop_watching(self, session):
        # type: (WatchSession) -> None
        for _, stop_event in session.resources:
            stop_event.set()
        for t, _ in session.resources:
            if t is not threading.current_thread():
                t.join()
        del session.resources[:]

    def _run(self, session, observer, stop_event):
        # type: (WatchSession, StatFileObserver, threading.Event) -> None
        while not stop_event.wait(self._interval):
            for path in sorted(observer.check()):
                session.notify(path)
