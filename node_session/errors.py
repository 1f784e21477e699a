"""Error taxonomy for node-session.

Every failure the user can see is a ``SessionError`` subclass. The CLI prints
``category`` and the message, then exits with ``exit_code``.
"""

from __future__ import annotations

import signal
from typing import Optional


class SessionError(Exception):
    """Base class for all user-visible failures."""

    category = "Error"
    exit_code = 1
    hint: Optional[str] = None


class UserInputError(SessionError):
    """Malformed flag or configuration value. Raised before any submission."""

    category = "Invalid input"
    exit_code = 2


class ConfigError(UserInputError):
    """A configuration file could not be read or validated."""

    category = "Invalid configuration"


class SchedulerError(SessionError):
    """A scheduler query or cancel command failed."""

    category = "Scheduler error"


class SubmissionError(SessionError):
    """The scheduler refused the allocation request."""

    category = "Submission failed"

    def __init__(self, exit_code: int, output: str):
        self.exit_code = exit_code or 1
        self.output = output.strip()
        super().__init__(self.output or f"sbatch exited with code {exit_code}")


class HandoffError(SessionError):
    """The interactive connection to the node could not be started."""

    category = "Connection failed"
    hint = "Make sure an OpenSSH client is installed and 'ssh' is on your PATH."


class JobFailedError(SessionError):
    """The placeholder job failed before the node became ready."""

    category = "Job failed"
    hint = (
        "The scheduler rejected the job before it started. "
        "This usually points at a cluster problem; please contact your administrator."
    )

    def __init__(self, job_id: str, status: str):
        self.job_id = job_id
        self.status = status
        super().__init__(f"Job {job_id} entered state {status}")


class StartupTimeoutError(SessionError):
    """No ready node within the configured startup window."""

    category = "Timed out"

    def __init__(self, job_id: str, timeout: float, last_status: str):
        self.job_id = job_id
        self.timeout = timeout
        self.last_status = last_status
        self.hint = (
            "The cluster may simply be busy. Raise 'startup_timeout' in your "
            "config file or pass --startup-timeout to wait longer."
        )
        super().__init__(
            f"Job {job_id} was not ready after {int(timeout)}s "
            f"(last status: {last_status}); the job has been cancelled"
        )


class SessionInterrupted(SessionError):
    """The process was asked to stop while a job was outstanding."""

    category = "Interrupted"

    def __init__(self, signum: int):
        self.signum = signum
        self.exit_code = 128 + signum
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        super().__init__(f"Received {name}")
