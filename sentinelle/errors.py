from typing import Any, List  # noqa


class SentinelleError(Exception):
    """Base class for all errors raised by sentinelle."""


class ConfigurationError(SentinelleError, ValueError):
    pass


class SpawnError(SentinelleError):
    def __init__(self, command, reason):
        # type: (List[str], str) -> None
        self.command = command
        self.reason = reason
        super(SpawnError, self).__init__(
            'Unable to launch "%s": %s' % (' '.join(command), reason))


class WatchSetupError(SentinelleError):
    def __init__(self, path, reason='path does not exist'):
        # type: (str, str) -> None
        self.path = path
        super(WatchSetupError, self).__init__(
            'Unable to watch "%s": %s' % (path, reason))


class InvalidStateError(SentinelleError):
    """Raised when a component is used out of order.

    This always indicates a bug in the caller, e.g. spawning a second child
    while the first one is still alive.
    """


class ChildCrash(SentinelleError):
    """An unrequested, abnormal exit of the child process.

    The supervisor never raises this; it is built so that the crash can be
    logged with a consistent message.
    """
    def __init__(self, pid, exit_info):
        # type: (int, Any) -> None
        self.pid = pid
        self.exit_info = exit_info
        super(ChildCrash, self).__init__(
            'Process %s crashed (%s)' % (pid, exit_info.describe()))


class ShutdownTimeout(SentinelleError):
    def __init__(self, pid, timeout):
        # type: (int, float) -> None
        self.pid = pid
        self.timeout = timeout
        super(ShutdownTimeout, self).__init__(
            'Process %s did not exit within %.1fs' % (pid, timeout))

