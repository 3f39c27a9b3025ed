import signal
import logging
import threading
import subprocess

from typing import Callable, List, Optional  # noqa

from sentinelle.config import Configuration  # noqa
from sentinelle.errors import SpawnError, InvalidStateError, ShutdownTimeout
from sentinelle.utils import OSUtils


logger = logging.getLogger(__name__)

RUNNING = 'running'
TERMINATING = 'terminating'
EXITED = 'exited'


class ExitInfo(object):
    def __init__(self, returncode):
        # type: (int) -> None
        self.returncode = returncode
        # Popen reports death by signal as a negative return code.
        self.signal = None  # type: Optional[signal.Signals]
        if returncode < 0:
            try:
                self.signal = signal.Signals(-returncode)
            except ValueError:
                pass

    @property
    def crashed(self):
        # type: () -> bool
        return self.returncode != 0

    def describe(self):
        # type: () -> str
        if self.signal is not None:
            return 'signal %s' % self.signal.name
        return 'code %s' % self.returncode

    def __repr__(self):
        # type: () -> str
        return '<ExitInfo %s>' % self.describe()


class ChildProcessHandle(object):
    """A single child process started by :class:`ProcessRunner`.

    Only the runner mutates a handle; everyone else treats it as a token
    to pass back into the runner.
    """
    def __init__(self, popen, args):
        # type: (subprocess.Popen, List[str]) -> None
        self._popen = popen
        self.args = list(args)
        self.state = RUNNING
        self.exit_info = None  # type: Optional[ExitInfo]
        self.termination_requested = False
        self._exited = threading.Event()

    @property
    def pid(self):
        # type: () -> int
        return self._popen.pid

    def wait(self, timeout=None):
        # type: (Optional[float]) -> bool
        return self._exited.wait(timeout)

    def __repr__(self):
        # type: () -> str
        return '<ChildProcessHandle pid=%s state=%s>' % (self.pid, self.state)


class ProcessRunner(object):
    """Spawns and terminates one child process at a time."""

    def __init__(self, osutils=None, popen=subprocess.Popen):
        # type: (Optional[OSUtils], Callable[..., subprocess.Popen]) -> None
        if osutils is None:
            osutils = OSUtils()
        self._osutils = osutils
        self._popen = popen
        self._current = None  # type: Optional[ChildProcessHandle]
        self._listeners = []  # type: List[Callable[[ChildProcessHandle, ExitInfo], None]] # noqa
        self._lock = threading.Lock()

    @property
    def current(self):
        # type: () -> Optional[ChildProcessHandle]
        return self._current

    def add_exit_listener(self, listener):
        # type: (Callable[[ChildProcessHandle, ExitInfo], None]) -> None
        self._listeners.append(listener)

    def spawn(self, config):
        # type: (Configuration) -> ChildProcessHandle
        command = config.command
        with self._lock:
            if self._current is not None and self.is_alive(self._current):
                raise InvalidStateError(
                    'Cannot spawn while process %s is still running'
                    % self._current.pid)
            try:
                # The child leads its own process group so that signals
                # reach anything it spawns as well.  Standard streams are
                # inherited.
                popen = self._popen(command, start_new_session=True)
            except OSError as e:
                raise SpawnError(command, e.strerror or str(e))
            handle = ChildProcessHandle(popen, command)
            self._current = handle
        logger.debug('Spawned %s: %s', handle.pid, ' '.join(command))
        t = threading.Thread(target=self._monitor, args=(handle,),
                             name='sentinelle-monitor-%s' % handle.pid)
        t.daemon = True
        t.start()
        return handle

    def is_alive(self, handle):
        # type: (ChildProcessHandle) -> bool
        return handle.state != EXITED

    def terminate(self, handle, sig, timeout=None):
        # type: (ChildProcessHandle, int, Optional[float]) -> ExitInfo
        """Signal the child's process group and wait for it to exit.

        Raises :class:`ShutdownTimeout` if the child is still alive after
        ``timeout`` seconds.  Deciding what to do next is up to the caller.
        """
        if not self.is_alive(handle):
            return handle.exit_info
        handle.termination_requested = True
        handle.state = TERMINATING
        logger.debug('Sending %s to process group %s',
                     signal.Signals(sig).name, handle.pid)
        if not self._osutils.killpg(handle.pid, sig):
            # The group leader may have exited on its own without being
            # reaped yet; fall back to the process itself.
            try:
                handle._popen.send_signal(sig)
            except ProcessLookupError:
                pass
        if not handle.wait(timeout):
            raise ShutdownTimeout(handle.pid, timeout)
        return handle.exit_info

    def kill(self, handle):
        # type: (ChildProcessHandle) -> ExitInfo
        return self.terminate(handle, signal.SIGKILL)

    def _monitor(self, handle):
        # type: (ChildProcessHandle) -> None
        returncode = handle._popen.wait()
        info = ExitInfo(returncode)
        handle.exit_info = info
        handle.state = EXITED
        handle._exited.set()
        logger.debug('Process %s exited with %s', handle.pid, info.describe())
        for listener in list(self._listeners):
            try:
                listener(handle, info)
            except Exception:
                logger.exception('Exit listener failed for process %s',
                                 handle.pid)
