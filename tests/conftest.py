import sys
import time

import pytest

from sentinelle.config import Configuration
from sentinelle.utils import OSUtils


try:
    import watchdog  # noqa
    WATCHDOG_AVAILABLE = True
except ImportError:
    WATCHDOG_AVAILABLE = False


watchdog_only = pytest.mark.skipif(
    not WATCHDOG_AVAILABLE, reason='watchdog is not installed')


SLEEPER = """
import time
while True:
    time.sleep(0.1)
"""

# Writes its argv[1] once the SIGTERM handler is in place so the test knows
# it is safe to signal.
IGNORES_SIGTERM = """
import signal, sys, time
signal.signal(signal.SIGTERM, signal.SIG_IGN)
open(sys.argv[1], 'w').close()
while True:
    time.sleep(0.1)
"""

CRASHER = """
import sys
sys.exit(1)
"""


def wait_for(predicate, timeout=5.0, interval=0.02):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


pid_exists = OSUtils().pid_exists


@pytest.fixture
def scripts_dir(tmpdir):
    return tmpdir.mkdir('scripts')


@pytest.fixture
def watched_dir(tmpdir):
    return tmpdir.mkdir('watched')


@pytest.fixture
def make_config(scripts_dir, watched_dir):
    def factory(source=SLEEPER, entry_args=(), **kwargs):
        script = scripts_dir.join('child_%s.py' % len(scripts_dir.listdir()))
        script.write(source)
        kwargs.setdefault('watch_paths', [str(watched_dir)])
        kwargs.setdefault('grace_period', 2.0)
        kwargs.setdefault('debounce', 0.2)
        return Configuration(executable=sys.executable,
                             entry_path=str(script),
                             entry_args=entry_args, **kwargs)
    return factory
