"""This module provides a watchdog and stat based file watching interface.

Both implementations share the :class:`~sentinelle.watcher.shared.Watcher`
interface: ``watch()`` validates the roots and returns a ``WatchSession``
whose change callback is debounced, and ``unwatch()`` releases everything
the session holds.

The watchdog implementation relies on native OS notifications. The stat
implementation polls mtimes and is meant for filesystems where native events
are not delivered, such as network and container bind mounts.
"""
from typing import Iterable  # noqa

from sentinelle.config import DEFAULT_DEBOUNCE, DEFAULT_IGNORE
from sentinelle.watcher.shared import Watcher, WatchSession  # noqa


def create_watcher(use_polling=False, ignore=DEFAULT_IGNORE,
                   debounce=DEFAULT_DEBOUNCE):
    # type: (bool, Iterable[str], float) -> Watcher
    if use_polling:
        from sentinelle.watcher.stat import StatFileWatcher
        return StatFileWatcher(ignore=frozenset(ignore), debounce=debounce)
    from sentinelle.watcher.eventbased import WatchdogFileWatcher
    return WatchdogFileWatcher(ignore=ignore, debounce=debounce)
