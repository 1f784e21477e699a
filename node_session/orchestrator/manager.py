"""Session manager wiring the scheduler, state machine and SSH handoff."""

from __future__ import annotations

import shlex
import time
from pathlib import Path
from typing import Callable, Optional

from node_session.cluster import SchedulerClient, SlurmClient
from node_session.config import Config
from node_session.console import Reporter, reporter
from node_session.errors import ConfigError
from node_session.handoff import SSHHandoff
from node_session.session import (
    AllocationRequest,
    CleanupGuard,
    Overrides,
    SessionMachine,
    assemble_request,
)

BUNDLED_SCRIPT = Path(__file__).parent.parent / "scripts" / "placeholder.sh"

# Tells the placeholder script which login variable carries the session id
SESSION_VAR_ENV = "NODE_SESSION_VAR"


class SessionManager:
    """Orchestrator for one interactive node session.

    Handles:
    - Turning overrides and configured defaults into a request
    - Submitting the placeholder job and waiting for the node
    - Handing the terminal over to ssh
    - Cancelling the job when anything goes wrong
    """

    def __init__(
        self,
        config: Config,
        client: Optional[SchedulerClient] = None,
        handoff: Optional[SSHHandoff] = None,
        console: Reporter = reporter,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize session manager.

        Args:
            config: node-session configuration
            client: Scheduler client (default: SLURM)
            handoff: Connection handoff (default: ssh with configured options)
            console: Output sink
            clock: Monotonic clock for the startup timer
            sleep: Used between polls and before cancelling
        """
        self.config = config
        self.console = console
        self._clock = clock
        self._sleep = sleep
        self.client = client or SlurmClient()
        self.handoff = handoff or SSHHandoff(
            options=list(config.ssh.options),
            marker_env=config.ssh.marker_env,
            session_env=config.ssh.session_env,
            console=console,
        )
        self.machine: Optional[SessionMachine] = None

    def worker_script(self) -> str:
        """Path of the placeholder job script."""
        if self.config.worker_script is None:
            return str(BUNDLED_SCRIPT)
        path = Path(self.config.worker_script).expanduser()
        if not path.is_file():
            raise ConfigError(f"worker_script {path} does not exist")
        return str(path)

    def job_environment(self) -> dict[str, str]:
        return {SESSION_VAR_ENV: self.config.ssh.session_env}

    def build_request(self, overrides: Overrides) -> AllocationRequest:
        return assemble_request(overrides, self.config.defaults)

    def dry_run(self, request: AllocationRequest):
        """Print the submission command without running it."""
        cmd = self.client.submit_command(request, self.worker_script(), self.job_environment())
        self.console.command(" ".join(shlex.quote(c) for c in cmd))

    def start(self, request: AllocationRequest) -> int:
        """Acquire a node, run the interactive session and return 0.

        Failures surface as SessionError subclasses after the cleanup guard
        has cancelled the job.
        """
        script = self.worker_script()
        self.machine = SessionMachine(
            self.client,
            request,
            startup_timeout=self.config.startup_timeout,
            console=self.console,
            clock=self._clock,
            sleep=self._sleep,
        )

        with CleanupGuard(self.machine, console=self.console, sleep=self._sleep) as guard:
            with guard.deferred():
                job = self.machine.submit(script, self.job_environment())
            node = self.machine.wait_until_ready()
            status = self.handoff.connect(node, job)

        if status != 0:
            self.console.info(f"ssh exited with status {status}")
        self.console.info(f"Session {job.session_token} finished")
        return 0
