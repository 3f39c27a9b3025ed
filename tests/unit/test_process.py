import sys
import signal
import threading

import mock
import pytest

from sentinelle.config import Configuration
from sentinelle.errors import InvalidStateError, ShutdownTimeout, SpawnError
from sentinelle.process import ExitInfo, ProcessRunner
from sentinelle.utils import OSUtils
from tests.conftest import (
    CRASHER, IGNORES_SIGTERM, pid_exists, wait_for)


@pytest.fixture
def runner():
    r = ProcessRunner()
    yield r
    if r.current is not None and r.is_alive(r.current):
        r.kill(r.current)


class TestExitInfo(object):
    def test_clean_exit(self):
        info = ExitInfo(0)
        assert not info.crashed
        assert info.signal is None
        assert info.describe() == 'code 0'

    def test_exit_code(self):
        info = ExitInfo(3)
        assert info.crashed
        assert info.describe() == 'code 3'

    def test_killed_by_signal(self):
        info = ExitInfo(-signal.SIGKILL)
        assert info.crashed
        assert info.signal is signal.SIGKILL
        assert info.describe() == 'signal SIGKILL'


def test_spawn_runs_command(runner, make_config):
    cfg = make_config()
    handle = runner.spawn(cfg)
    assert runner.current is handle
    assert handle.args == cfg.command
    assert runner.is_alive(handle)
    assert pid_exists(handle.pid)


def test_terminate_sends_signal_and_waits(runner, make_config):
    handle = runner.spawn(make_config())
    info = runner.terminate(handle, signal.SIGTERM, timeout=5)
    assert info.signal is signal.SIGTERM
    assert not runner.is_alive(handle)
    assert handle.termination_requested
    assert not pid_exists(handle.pid)


def test_terminate_exited_handle_is_noop(runner, make_config):
    handle = runner.spawn(make_config(CRASHER))
    assert handle.wait(5)
    info = runner.terminate(handle, signal.SIGTERM, timeout=1)
    assert info.returncode == 1
    assert not handle.termination_requested


def test_spawn_while_alive_is_invalid(runner, make_config):
    cfg = make_config()
    runner.spawn(cfg)
    with pytest.raises(InvalidStateError):
        runner.spawn(cfg)


def test_can_respawn_after_exit(runner, make_config):
    cfg = make_config()
    first = runner.spawn(cfg)
    runner.terminate(first, signal.SIGTERM, timeout=5)
    second = runner.spawn(cfg)
    assert second.pid != first.pid
    assert runner.current is second


def test_spawn_error_for_missing_executable(runner, tmpdir):
    cfg = Configuration(executable=str(tmpdir.join('does-not-exist')),
                        entry_path='app.py')
    with pytest.raises(SpawnError) as e:
        runner.spawn(cfg)
    assert e.value.command == cfg.command
    assert runner.current is None


def test_terminate_times_out(runner, make_config, tmpdir):
    ready = tmpdir.join('ready')
    handle = runner.spawn(make_config(IGNORES_SIGTERM,
                                      entry_args=[str(ready)]))
    assert wait_for(ready.check)
    with pytest.raises(ShutdownTimeout):
        runner.terminate(handle, signal.SIGTERM, timeout=0.3)
    assert runner.is_alive(handle)
    info = runner.kill(handle)
    assert info.signal is signal.SIGKILL


def test_exit_listener_sees_spontaneous_exit(runner, make_config):
    exited = threading.Event()
    calls = []

    def listener(handle, info):
        calls.append((handle, info, handle.termination_requested))
        exited.set()

    runner.add_exit_listener(listener)
    handle = runner.spawn(make_config(CRASHER))
    assert exited.wait(5)
    assert len(calls) == 1
    assert calls[0][0] is handle
    assert calls[0][1].returncode == 1
    assert calls[0][2] is False


def test_exit_listener_sees_requested_stop(runner, make_config):
    exited = threading.Event()
    calls = []

    def listener(handle, info):
        calls.append(handle.termination_requested)
        exited.set()

    runner.add_exit_listener(listener)
    handle = runner.spawn(make_config())
    runner.terminate(handle, signal.SIGTERM, timeout=5)
    assert exited.wait(5)
    assert calls == [True]


def test_terminate_signals_process_group():
    osutils = mock.Mock(spec=OSUtils)
    release = threading.Event()
    osutils.killpg.side_effect = lambda pgid, sig: release.set() or True
    popen = mock.Mock()
    popen.pid = 4321
    popen.wait.side_effect = lambda: release.wait(5) and -signal.SIGINT
    runner = ProcessRunner(osutils=osutils, popen=mock.Mock(
        return_value=popen))
    cfg = Configuration(executable='python', entry_path='app.py')
    handle = runner.spawn(cfg)
    runner._popen.assert_called_with(cfg.command, start_new_session=True)

    info = runner.terminate(handle, signal.SIGINT, timeout=5)
    osutils.killpg.assert_called_with(4321, signal.SIGINT)
    assert info.signal is signal.SIGINT
