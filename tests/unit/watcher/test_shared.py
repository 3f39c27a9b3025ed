import os
import threading

import pytest

from sentinelle.errors import WatchSetupError
from sentinelle.watcher import create_watcher
from sentinelle.watcher.shared import Debouncer, Watcher, is_ignored


class FakeTimer(object):
    def __init__(self, delay, function):
        self.delay = delay
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True


class RecordingTimerFactory(object):
    def __init__(self):
        self.timers = []

    def __call__(self, delay, function):
        timer = FakeTimer(delay, function)
        self.timers.append(timer)
        return timer


class RecordingWatcher(Watcher):
    def __init__(self, *args, **kwargs):
        super(RecordingWatcher, self).__init__(*args, **kwargs)
        self.started = []
        self.stopped = 0

    def start_watching(self, session, path):
        self.started.append(path)

    def stop_watching(self, session):
        self.stopped += 1


class TestDebouncer(object):
    def test_burst_collapses_to_last_timer(self):
        calls = []
        timers = RecordingTimerFactory()
        debouncer = Debouncer(lambda: calls.append(1), 0.2,
                              timer_factory=timers)
        for _ in range(5):
            debouncer.trigger()

        assert len(timers.timers) == 5
        assert all(t.cancelled for t in timers.timers[:-1])
        assert not timers.timers[-1].cancelled
        assert timers.timers[-1].daemon
        timers.timers[-1].function()
        assert calls == [1]

    def test_cancel_prevents_callback(self):
        calls = []
        timers = RecordingTimerFactory()
        debouncer = Debouncer(lambda: calls.append(1), 0.2,
                              timer_factory=timers)
        debouncer.trigger()
        debouncer.cancel()
        timers.timers[-1].function()
        debouncer.trigger()

        assert timers.timers[0].cancelled
        assert len(timers.timers) == 1
        assert calls == []

    def test_fires_once_with_real_timers(self):
        fired = threading.Event()
        calls = []

        def callback():
            calls.append(1)
            fired.set()

        debouncer = Debouncer(callback, 0.1)
        for _ in range(20):
            debouncer.trigger()
        assert fired.wait(2)
        assert not threading.Event().wait(0.3)
        assert calls == [1]


@pytest.mark.parametrize('path,expected', [
    ('/repo/.git/HEAD', True),
    ('/repo/src/__pycache__/app.cpython-311.pyc', True),
    ('/repo/src/app.py', False),
    ('/repo/.gitignore', False),
])
def test_is_ignored(path, expected):
    assert is_ignored(path, frozenset(['.git', '__pycache__'])) is expected


def test_watch_rejects_missing_root(tmpdir):
    watcher = RecordingWatcher()
    missing = str(tmpdir.join('missing'))
    with pytest.raises(WatchSetupError) as e:
        watcher.watch([str(tmpdir), missing], lambda: None)
    assert e.value.path == missing
    assert watcher.started == []


def test_watch_starts_each_root(tmpdir):
    watcher = RecordingWatcher()
    a = tmpdir.mkdir('a')
    b = tmpdir.mkdir('b')
    session = watcher.watch([str(a), str(b)], lambda: None)
    assert watcher.started == [str(a), str(b)]
    assert session.roots == frozenset([str(a), str(b)])


def test_unwatch_is_idempotent(tmpdir):
    watcher = RecordingWatcher()
    session = watcher.watch([str(tmpdir)], lambda: None)
    watcher.unwatch(session)
    watcher.unwatch(session)
    assert session.closed
    assert watcher.stopped == 1


def test_notify_after_unwatch_is_dropped(tmpdir):
    calls = []
    watcher = RecordingWatcher(debounce=0)
    session = watcher.watch([str(tmpdir)], lambda: calls.append(1))
    watcher.unwatch(session)
    session.notify(os.path.join(str(tmpdir), 'app.py'))
    assert not threading.Event().wait(0.1)
    assert calls == []


def test_create_watcher_polling():
    from sentinelle.watcher.stat import StatFileWatcher
    assert isinstance(create_watcher(use_polling=True), StatFileWatcher)


@pytest.mark.parametrize('path,expected', [
    ('/tmp/project/app.py', False),
    ('/tmp/project/tmp/cache', True),
    ('/elsewhere/tmp/app.py', True),
])
def test_is_ignored_only_checks_below_root(path, expected):
    assert is_ignored(path, frozenset(['tmp']),
                      root='/tmp/project') is expected
