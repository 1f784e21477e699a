"""Cleanup guard that keeps placeholder jobs from being orphaned."""

from __future__ import annotations

import signal
import threading
import time
from contextlib import contextmanager
from typing import Callable, Optional

from node_session.console import Reporter, reporter
from node_session.errors import SchedulerError, SessionInterrupted
from node_session.session.machine import SessionMachine

CANCEL_GRACE = 1.0

HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGHUP)


def _clean_exit(exc: BaseException | None) -> bool:
    if exc is None:
        return True
    return isinstance(exc, SystemExit) and exc.code in (0, None)


class CleanupGuard:
    """Cancel the session's job on every exit that is not clean.

    SIGTERM and SIGHUP are turned into ``SessionInterrupted`` while the guard
    is active, and SIGINT already arrives as ``KeyboardInterrupt``, so every
    way out of the ``with`` block passes through ``__exit__``.

    Usage:
        with CleanupGuard(machine) as guard:
            with guard.deferred():
                machine.submit(script)
            node = machine.wait_until_ready()
            handoff.connect(node, machine.job)

    Submission runs inside ``deferred()`` so that a signal cannot land
    between sbatch registering the job and the machine recording its id.

    A clean exit does nothing: a finished interactive job ends on its own.
    Cancellation errors are reported and swallowed; the exception that ended
    the block is always re-raised unchanged.
    """

    def __init__(
        self,
        machine: SessionMachine,
        console: Reporter = reporter,
        grace_seconds: float = CANCEL_GRACE,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.machine = machine
        self.console = console
        self.grace_seconds = grace_seconds
        self._sleep = sleep
        self._previous: dict[int, object] = {}
        self._deferring = False
        self._pending: Optional[int] = None
        self.fired = False

    def _interrupt(self, signum, frame):
        if self._deferring:
            self._pending = signum
            return
        raise SessionInterrupted(signum)

    def _install(self, handler, signals=HANDLED_SIGNALS) -> dict[int, object]:
        previous = {}
        if threading.current_thread() is not threading.main_thread():
            return previous
        for signum in signals:
            previous[signum] = signal.signal(signum, handler)
        return previous

    def _restore(self, handlers: dict[int, object]):
        for signum, handler in handlers.items():
            signal.signal(signum, handler)

    def __enter__(self):
        self._previous = self._install(self._interrupt)
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            if not _clean_exit(exc):
                interrupted = isinstance(exc, (KeyboardInterrupt, SessionInterrupted))
                # a second signal must not cut the cleanup short
                ignored = self._install(signal.SIG_IGN, (signal.SIGINT, *HANDLED_SIGNALS))
                try:
                    self.fire(interrupted)
                finally:
                    self._restore(ignored)
        finally:
            self._restore(self._previous)
            self._previous = {}
        return False

    def fire(self, interrupted: bool = False):
        """Cancel the job once; later calls are no-ops."""
        if self.fired:
            return
        self.fired = True

        machine = self.machine
        if machine.job is None or machine.cancelled:
            return
        if interrupted:
            machine.mark_cancelled()

        self._sleep(self.grace_seconds)
        try:
            machine.cancel()
        except SchedulerError as e:
            self.console.warn(f"Could not cancel job {machine.job.job_id}: {e}")

    @contextmanager
    def deferred(self):
        """Hold SIGINT, SIGTERM and SIGHUP until the block has finished.

        A signal received meanwhile is raised as ``SessionInterrupted`` once
        the block returns. If the block raises, its exception wins.
        """
        held = self._install(self._interrupt, (signal.SIGINT,))
        self._pending = None
        self._deferring = True
        try:
            yield
        finally:
            self._deferring = False
            self._restore(held)
        if self._pending is not None:
            signum, self._pending = self._pending, None
            raise SessionInterrupted(signum)
