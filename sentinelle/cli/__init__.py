"""Command line interface for sentinelle.

Parses options into a :class:`~sentinelle.config.Configuration`, configures
logging, installs the signal handlers and runs the :class:`Sentinel` until
it stops.
"""
import os
import signal
import logging
import threading
from pathlib import Path
from typing import Callable, List, Optional, Sequence  # noqa

import click
import typer
from typer.core import TyperCommand

from sentinelle import __version__
from sentinelle.config import (
    Configuration, DEFAULT_DEBOUNCE, DEFAULT_GRACE_PERIOD, DEFAULT_IGNORE)
from sentinelle.sentinel import Sentinel


logger = logging.getLogger('sentinelle')

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)
LOG_FORMAT = '%(asctime)s %(levelname)s %(message)s'

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    context_settings={'help_option_names': ['-h', '--help']},
)


class StrictCommand(TyperCommand):
    """Reject unknown options instead of passing them to the child.

    Usage errors exit with 1 like every other startup failure.  Arguments
    meant for the child go after "--".
    """
    def parse_args(self, ctx, args):
        # type: (click.Context, List[str]) -> List[str]
        try:
            return super(StrictCommand, self).parse_args(ctx, args)
        except click.UsageError as e:
            e.exit_code = 1
            raise


class ShutdownHandler(object):
    """Turns OS termination signals into calls on a :class:`Sentinel`.

    The first signal starts a graceful stop on a worker thread, so that the
    main thread stays free to receive more signals.  Receiving the same
    signal again while that stop is in flight kills the child outright and
    re-raises the signal against this process.
    """
    def __init__(self, sentinel, signals=SHUTDOWN_SIGNALS, kill=os.kill):
        # type: (Sentinel, Sequence[signal.Signals], Callable[[int, int], None]) -> None # noqa
        self._sentinel = sentinel
        self._signals = signals
        self._kill = kill
        self._received = None  # type: Optional[signal.Signals]
        self._stop_thread = None  # type: Optional[threading.Thread]

    def install(self):
        # type: () -> None
        for sig in self._signals:
            signal.signal(sig, self.handle)

    def handle(self, signum, frame=None):
        # type: (int, object) -> None
        sig = signal.Signals(signum)
        if self._received is None:
            self._received = sig
            logger.info('Got signal %s; shutting down.', sig.name)
            self._stop_thread = threading.Thread(target=self._sentinel.stop,
                                                 name='sentinelle-stop')
            self._stop_thread.daemon = True
            self._stop_thread.start()
            return
        if sig is not self._received:
            logger.debug('Ignoring %s; already shutting down.', sig.name)
            return
        logger.warning('Got signal %s again; forcing exit.', sig.name)
        self._sentinel.force_kill()
        signal.signal(sig, signal.SIG_DFL)
        self._kill(os.getpid(), sig)


def configure_logging(quiet=False, verbose=False):
    # type: (bool, bool) -> None
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logger.setLevel(level)


def _version_callback(value):
    # type: (bool) -> None
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.command(cls=StrictCommand,
             context_settings={'allow_extra_args': True})
def main(
    ctx: typer.Context,
    entry: str = typer.Argument(
        ...,
        help='Entry file to run, optionally with arguments, '
             'e.g. "app.py --port 8000".',
    ),
    bin: Optional[str] = typer.Option(
        None, '--bin',
        help='Executable (and any arguments to pass to it) used to run the '
             'entry file. Inferred from the file extension by default.',
    ),
    watch: Optional[List[Path]] = typer.Option(
        None, '--watch',
        help='Path to watch for changes; may be repeated. Defaults to the '
             'directory of the entry file.',
    ),
    kill: str = typer.Option(
        'SIGTERM', '--kill',
        help='POSIX signal sent to the process when it must shut down.',
    ),
    grace: float = typer.Option(
        DEFAULT_GRACE_PERIOD, '--grace',
        help='Seconds to wait after the shutdown signal before sending '
             'SIGKILL.',
    ),
    debounce: float = typer.Option(
        DEFAULT_DEBOUNCE, '--debounce',
        help='Seconds of quiet required before a burst of changes triggers '
             'a restart.',
    ),
    ignore: Optional[List[str]] = typer.Option(
        None, '--ignore',
        help='File or directory name whose changes are ignored, in addition '
             'to %s; may be repeated.' % ', '.join(sorted(DEFAULT_IGNORE)),
    ),
    poll: bool = typer.Option(
        False, '--poll/--no-poll',
        help='Poll file modification times instead of using native '
             'filesystem events.',
    ),
    quiet: bool = typer.Option(
        False, '--quiet',
        help='Suppress all logging except errors and warnings.',
    ),
    verbose: bool = typer.Option(
        False, '--verbose',
        help='Log debugging output, including stack traces on errors.',
    ),
    version: Optional[bool] = typer.Option(
        None, '--version', '-v', callback=_version_callback, is_eager=True,
        help='Show the version and exit.',
    ),
):
    """Run a process, watch for file changes, and re-start the process.

    Arguments after "--" are passed through to the process.

    \b
    Examples:
      sentinelle src/main.js
      sentinelle --watch /some/dir --bin python /my/script.py
    """
    configure_logging(quiet=quiet, verbose=verbose)
    logger.debug('version %s', __version__)
    try:
        config = Configuration.from_cli(
            entry, bin=bin, watch=[str(p) for p in watch or []], kill=kill,
            extra_args=ctx.args, grace_period=grace, debounce=debounce,
            ignore=DEFAULT_IGNORE | frozenset(ignore or []),
            use_polling=poll)
        sentinel = Sentinel(config)
        ShutdownHandler(sentinel).install()
        sentinel.start()
        while not sentinel.wait(1.0):
            pass
    except Exception as e:
        _report_fatal(e, verbose)
        raise typer.Exit(code=1)


def _report_fatal(error, verbose):
    # type: (Exception, bool) -> None
    if verbose:
        logger.exception('%s', error)
    else:
        logger.error('%s', error)
