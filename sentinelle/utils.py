import os
import errno

from typing import Iterator, Tuple, List  # noqa


class OSUtils(object):
    """Thin wrapper around the OS calls sentinelle makes.

    Keeping these behind a single object lets tests substitute a fake
    instead of patching the ``os`` module.
    """

    def file_exists(self, path):
        # type: (str) -> bool
        return os.path.isfile(path)

    def path_exists(self, path):
        # type: (str) -> bool
        return os.path.exists(path)

    def abspath(self, path):
        # type: (str) -> str
        return os.path.abspath(os.path.expanduser(path))

    def dirname(self, path):
        # type: (str) -> str
        return os.path.dirname(path)

    def mtime(self, path):
        # type: (str) -> float
        return os.stat(path).st_mtime

    def walk(self, path):
        # type: (str) -> Iterator[Tuple[str, List[str], List[str]]]
        return os.walk(path)

    def killpg(self, pgid, sig):
        # type: (int, int) -> bool
        """Send ``sig`` to a process group.

        Returns False if the group no longer exists.
        """
        try:
            os.killpg(pgid, sig)
        except ProcessLookupError:
            return False
        except PermissionError:
            # On macOS a group whose leader is a zombie can report EPERM.
            return False
        return True

    def pid_exists(self, pid):
        # type: (int) -> bool
        try:
            os.kill(pid, 0)
        except OSError as e:
            return e.errno == errno.EPERM
        return True
