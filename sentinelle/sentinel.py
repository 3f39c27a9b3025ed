"""The supervision engine.

A :class:`Sentinel` ties a :class:`~sentinelle.process.ProcessRunner` to a
:class:`~sentinelle.watcher.shared.Watcher`.  It owns the state machine::

    IDLE -> STARTING -> RUNNING <-> RESTARTING
                            \\          /
                             STOPPING -> STOPPED

All transitions happen under a single lock, so at most one of the restart
and stop protocols drives the child at a time.  Restarts are triggered from
watcher threads, stops from whoever calls :meth:`Sentinel.stop`.  A stop
always wins: once ``STOPPING`` is entered no further child is spawned.
"""
import enum
import signal
import logging
import threading

from typing import Optional  # noqa

from sentinelle.config import Configuration  # noqa
from sentinelle.errors import (
    ChildCrash, InvalidStateError, ShutdownTimeout, SpawnError)
from sentinelle.process import (  # noqa
    ChildProcessHandle, ExitInfo, ProcessRunner)
from sentinelle.watcher import create_watcher
from sentinelle.watcher.shared import Watcher, WatchSession  # noqa


logger = logging.getLogger(__name__)


class SentinelState(enum.Enum):
    IDLE = 'idle'
    STARTING = 'starting'
    RUNNING = 'running'
    RESTARTING = 'restarting'
    STOPPING = 'stopping'
    STOPPED = 'stopped'


class Sentinel(object):
    def __init__(self, config, runner=None, watcher=None):
        # type: (Configuration, Optional[ProcessRunner], Optional[Watcher]) -> None # noqa
        if runner is None:
            runner = ProcessRunner()
        if watcher is None:
            watcher = create_watcher(use_polling=config.use_polling,
                                     ignore=config.ignore,
                                     debounce=config.debounce)
        self._config = config
        self._runner = runner
        self._watcher = watcher
        self._runner.add_exit_listener(self._on_child_exit)
        self._state = SentinelState.IDLE
        self._lock = threading.Lock()
        self._session = None  # type: Optional[WatchSession]
        self._restart_pending = False
        self._restart_count = 0
        self._stopped = threading.Event()

    @property
    def state(self):
        # type: () -> SentinelState
        return self._state

    @property
    def restart_count(self):
        # type: () -> int
        return self._restart_count

    @property
    def child(self):
        # type: () -> Optional[ChildProcessHandle]
        return self._runner.current

    def start(self):
        # type: () -> None
        with self._lock:
            if self._state is not SentinelState.IDLE:
                raise InvalidStateError(
                    'Cannot start a sentinel that is %s' % self._state.value)
            self._state = SentinelState.STARTING
            try:
                handle = self._runner.spawn(self._config)
            except Exception:
                self._state = SentinelState.STOPPED
                self._stopped.set()
                raise
        logger.info('Started %s (pid %s)',
                    ' '.join(self._config.command), handle.pid)
        try:
            session = self._watcher.watch(self._config.watch_paths,
                                          self._on_change)
        except Exception:
            # Leave nothing behind if we cannot watch.
            self._runner.kill(handle)
            self._finish_stop()
            raise
        with self._lock:
            if self._state is not SentinelState.STARTING:
                # stop() ran while we were starting; it owns teardown of
                # the child but could not see the session yet.
                self._watcher.unwatch(session)
                return
            self._session = session
            self._state = SentinelState.RUNNING
        logger.info('Watching %s', ', '.join(sorted(session.roots)))

    def stop(self, sig=None):
        # type: (Optional[int]) -> None
        with self._lock:
            in_flight = self._state in (SentinelState.STOPPING,
                                        SentinelState.STOPPED)
            previous = self._state
            if not in_flight:
                self._state = SentinelState.STOPPING
                session, self._session = self._session, None
        if in_flight:
            self._stopped.wait()
            return
        if previous is SentinelState.IDLE:
            self._finish_stop()
            return
        logger.debug('Stopping (was %s)', previous.value)
        if session is not None:
            self._watcher.unwatch(session)
        if sig is None:
            sig = self._config.shutdown_signal
        try:
            handle = self._runner.current
            if handle is not None and self._runner.is_alive(handle):
                self._shutdown_child(handle, sig)
        finally:
            self._finish_stop()

    def force_kill(self):
        # type: () -> None
        """Kill the current child immediately, ignoring the grace period."""
        handle = self._runner.current
        if handle is not None and self._runner.is_alive(handle):
            logger.warning('Killing process %s', handle.pid)
            self._runner.kill(handle)

    def wait(self, timeout=None):
        # type: (Optional[float]) -> bool
        return self._stopped.wait(timeout)

    def _finish_stop(self):
        # type: () -> None
        with self._lock:
            self._state = SentinelState.STOPPED
        self._stopped.set()
        logger.debug('Stopped')

    def _shutdown_child(self, handle, sig):
        # type: (ChildProcessHandle, int) -> ExitInfo
        grace_period = self._config.grace_period
        try:
            return self._runner.terminate(handle, sig, grace_period)
        except ShutdownTimeout:
            logger.warning(
                'Process %s did not exit within %ss of %s; sending SIGKILL.',
                handle.pid, grace_period, signal.Signals(sig).name)
            return self._runner.kill(handle)

    def _on_change(self):
        # type: () -> None
        with self._lock:
            if self._state is SentinelState.RESTARTING:
                self._restart_pending = True
                return
            if self._state is not SentinelState.RUNNING:
                logger.debug('Ignoring change while %s', self._state.value)
                return
            self._state = SentinelState.RESTARTING
        logger.info('Change detected; restarting.')
        try:
            while self._restart():
                logger.info('More changes detected; restarting again.')
        except Exception:
            # Runs on a watcher thread; nobody above us can handle this.
            logger.exception('Restart failed; waiting for changes.')
        finally:
            with self._lock:
                if self._state is SentinelState.RESTARTING:
                    self._restart_pending = False
                    self._state = SentinelState.RUNNING

    def _restart(self):
        # type: () -> bool
        """Run one restart, returning True if another one is due."""
        handle = self._runner.current
        if handle is not None and self._runner.is_alive(handle):
            self._shutdown_child(handle, self._config.shutdown_signal)
        with self._lock:
            if self._state is not SentinelState.RESTARTING:
                logger.debug('Stop requested; not respawning.')
                return False
            try:
                handle = self._runner.spawn(self._config)
            except SpawnError as e:
                logger.error('%s; waiting for changes.', e)
            else:
                self._restart_count += 1
                logger.info('Restarted (pid %s)', handle.pid)
            if self._restart_pending:
                self._restart_pending = False
                return True
            self._state = SentinelState.RUNNING
            return False

    def _on_child_exit(self, handle, exit_info):
        # type: (ChildProcessHandle, ExitInfo) -> None
        if handle.termination_requested:
            logger.debug('Process %s stopped with %s',
                         handle.pid, exit_info.describe())
        elif exit_info.crashed:
            logger.error('%s; waiting for changes before restarting.',
                         ChildCrash(handle.pid, exit_info))
        else:
            logger.info('Process %s exited cleanly; waiting for changes.',
                        handle.pid)
