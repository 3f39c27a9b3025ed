from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler
from watchdog.events import FileSystemEvent  # noqa

from sentinelle.errors import WatchSetupError
from sentinelle.watcher.shared import Watcher, WatchSession, is_ignored

from typing import Callable, FrozenSet, Optional  # noqa


class WatchDogEventAdapter(FileSystemEventHandler):
    """Filters out watchdog directory and ignored path events."""
    def __init__(self, handler, ignore=frozenset(), root=None):
        # type: (Callable[[str], None], FrozenSet[str], Optional[str]) -> None # noqa
        self._handler = handler
        self._ignore = ignore
        self._root = root

    def on_any_event(self, event):
        # type: (FileSystemEvent) -> None
        if event.is_directory:
            return
        if event.event_type in ('opened', 'closed_no_write'):
            return
        paths = [event.src_path]
        dest_path = getattr(event, 'dest_path', '')
        if dest_path:
            paths.append(dest_path)
        for path in paths:
            if isinstance(path, bytes):
                path = path.decode('utf-8', 'replace')
            if not is_ignored(path, self._ignore, self._root):
                self._handler(path)
                return


class WatchdogFileWatcher(Watcher):
    """Uses watchdog to watch files for changes."""
    def start_watching(self, session, path):
        # type: (WatchSession, str) -> None
        observer = Observer()
        watchdog_adapter = WatchDogEventAdapter(session.notify, self._ignore,
                                                path)
        observer.schedule(watchdog_adapter, path, recursive=True)
        session.resources.append(observer)
        try:
            observer.start()
        except OSError as e:
            raise WatchSetupError(path, e.strerror or str(e))

    def stop_watching(self, session):
        # type: (WatchSession) -> None
        for observer in session.resources:
            observer.stop()
        for observer in session.resources:
            if observer.is_alive():
                observer.join()
        del session.resources[:]
