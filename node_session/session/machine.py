"""Session acquisition state machine.

Drives a placeholder job from submission to a node that is both powered up and
running the job::

    SUBMITTING -> PENDING -> POWERING_UP -> READY
         \\            \\           \\
          FAILED     FAILED/TIMED_OUT/CANCELLED

States only ever move forward. Repeated ticks inside PENDING or POWERING_UP
are normal.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Optional

from node_session.cluster.base import JobHandle, JobStatus, SchedulerClient
from node_session.console import Reporter, reporter
from node_session.errors import (
    JobFailedError,
    SchedulerError,
    StartupTimeoutError,
    SubmissionError,
)
from node_session.session.request import AllocationRequest

POLL_INTERVAL = 1.0

POWER_UP_NOTICE = (
    "Node {node} is powering up. Booting a node can take several minutes; "
    "the session will start as soon as it is ready."
)


class SessionState(str, Enum):
    SUBMITTING = "SUBMITTING"
    PENDING = "PENDING"
    POWERING_UP = "POWERING_UP"
    READY = "READY"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"
    CANCELLED = "CANCELLED"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    SessionState.READY,
    SessionState.FAILED,
    SessionState.TIMED_OUT,
    SessionState.CANCELLED,
})


class SessionMachine:
    """Owns the placeholder job and every piece of state about it.

    Usage:
        machine = SessionMachine(client, request, startup_timeout=600)
        job = machine.submit(script)
        node = machine.wait_until_ready()
    """

    def __init__(
        self,
        client: SchedulerClient,
        request: AllocationRequest,
        startup_timeout: float,
        console: Reporter = reporter,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        poll_interval: float = POLL_INTERVAL,
    ):
        self.client = client
        self.request = request
        self.startup_timeout = startup_timeout
        self.console = console
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

        self.state = SessionState.SUBMITTING
        self.job: Optional[JobHandle] = None
        self.node: Optional[str] = None
        self.last_status = JobStatus.UNKNOWN
        self.power_notice_shown = False
        self.cancelled = False
        self._started: Optional[float] = None
        self._query_warned = False

    @property
    def elapsed(self) -> float:
        """Seconds spent waiting since the poll loop started."""
        if self._started is None:
            return 0.0
        return self._clock() - self._started

    def _advance(self, state: SessionState):
        if self.state.terminal:
            raise RuntimeError(f"cannot leave terminal state {self.state.value}")
        self.state = state

    def submit(self, script: str, environment: Optional[dict[str, str]] = None) -> JobHandle:
        """Submit the placeholder job and enter PENDING.

        ``environment`` is exported to the job along with the request.

        Raises:
            SubmissionError: If the scheduler refuses the request
        """
        try:
            self.job = self.client.submit(self.request, script, environment)
        except SubmissionError:
            self._advance(SessionState.FAILED)
            raise
        self._advance(SessionState.PENDING)
        self.console.info(f"Submitted job {self.job.job_id}")
        return self.job

    def _job_status(self) -> JobStatus:
        try:
            status = self.client.job_status(self.job)
        except SchedulerError as e:
            if not self._query_warned:
                self.console.warn(f"{e}; will keep polling")
                self._query_warned = True
            status = JobStatus.UNKNOWN
        self.last_status = status
        return status

    def _fail(self, status: JobStatus):
        self._advance(SessionState.FAILED)
        raise JobFailedError(self.job.job_id, status.value)

    def tick(self) -> SessionState:
        """Run one observation and return the resulting state.

        At most one job query and one node query happen per tick.

        Raises:
            JobFailedError: If the scheduler reports the job as failed
        """
        if self.state is SessionState.PENDING:
            status = self._job_status()
            if status is JobStatus.FAILED:
                self._fail(status)
            if status in (JobStatus.PENDING, JobStatus.UNKNOWN):
                return self.state

            node = self._resolve_node()
            if node is None:
                return self.state
            self._advance(SessionState.POWERING_UP)
            return self._check_node(status)

        if self.state is SessionState.POWERING_UP:
            return self._check_node(None)

        return self.state

    def _resolve_node(self) -> Optional[str]:
        if self.node is None:
            try:
                self.node = self.client.allocated_node(self.job)
            except SchedulerError as e:
                self.console.warn(str(e))
                return None
        return self.node

    def _check_node(self, status: Optional[JobStatus]) -> SessionState:
        """Job state first, then node readiness.

        ``status`` is the job state already fetched in this tick, if any.
        """
        if status is None:
            status = self._job_status()
        if status is JobStatus.FAILED:
            self._fail(status)

        try:
            observation = self.client.node_state(self.node)
        except SchedulerError as e:
            self.console.warn(str(e))
            return self.state

        if not observation.powered:
            if not self.power_notice_shown:
                self.console.notice(POWER_UP_NOTICE.format(node=self.node))
                self.power_notice_shown = True
            return self.state

        if status is JobStatus.RUNNING:
            self._advance(SessionState.READY)
        return self.state

    def wait_until_ready(self) -> str:
        """Poll until READY and return the node name.

        The first tick runs right away, so a job the scheduler rejects at once
        fails without any waiting.

        Raises:
            JobFailedError: If the job fails while waiting
            StartupTimeoutError: If the node is not ready in time
        """
        if self.job is None:
            raise RuntimeError("submit() must be called first")

        self._started = self._clock()
        with self.console.progress(self._progress_text()) as update:
            while True:
                self.tick()
                if self.state is SessionState.READY:
                    break
                if self.elapsed > self.startup_timeout:
                    self._time_out()
                update(self._progress_text())
                self._sleep(self.poll_interval)

        self.console.success(f"Job {self.job.job_id} is running on {self.node}")
        return self.node

    def _progress_text(self) -> str:
        where = f" on {self.node}" if self.node else ""
        return (
            f"Job {self.job.job_id}{where}: {self.state.value.lower().replace('_', ' ')} "
            f"({int(self.elapsed)}s / {int(self.startup_timeout)}s)"
        )

    def _time_out(self):
        last_status = self.last_status.value
        self._advance(SessionState.TIMED_OUT)
        try:
            self.cancel()
        except SchedulerError as e:
            self.console.warn(f"Could not cancel job {self.job.job_id}: {e}")
        raise StartupTimeoutError(self.job.job_id, self.startup_timeout, last_status)

    def mark_cancelled(self):
        """Record an external interrupt; terminal states are left alone."""
        if not self.state.terminal:
            self._advance(SessionState.CANCELLED)

    def cancel(self):
        """Cancel the job. Only the first call reaches the scheduler.

        Raises:
            SchedulerError: If the scheduler could not cancel the job
        """
        if self.job is None or self.cancelled:
            return
        self.cancelled = True
        self.console.info(f"Cancelling job {self.job.job_id}")
        self.client.cancel(self.job)
