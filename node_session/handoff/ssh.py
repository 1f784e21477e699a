"""Interactive SSH login onto the allocated node."""

from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass, field

from node_session.cluster.base import JobHandle
from node_session.console import Reporter, reporter
from node_session.errors import HandoffError

SESSION_MARKER = "interactive"


@dataclass
class SSHHandoff:
    """Open an interactive shell on a compute node and wait for it to end.

    Two variables travel with the login through ``SetEnv`` so the node can
    check it is being entered for the right allocation::

        NODE_SESSION=interactive
        NODE_SESSION_ID=session<jobid>

    The node's sshd needs ``AcceptEnv NODE_SESSION NODE_SESSION_ID``.
    """

    options: list[str] = field(
        default_factory=lambda: [
            "-o", "ServerAliveInterval=30",
            "-o", "ServerAliveCountMax=3",
            "-o", "StrictHostKeyChecking=accept-new",
        ]
    )
    marker_env: str = "NODE_SESSION"
    session_env: str = "NODE_SESSION_ID"
    console: Reporter = field(default=reporter, repr=False)

    def build_command(self, node: str, job: JobHandle) -> list[str]:
        """Build the ssh argv for an interactive login."""
        set_env = f"SetEnv={self.marker_env}={SESSION_MARKER} {self.session_env}={job.session_token}"
        return [
            "ssh",
            "-t",
            *self.options,
            "-o", set_env,
            node,
        ]

    def connect(self, node: str, job: JobHandle) -> int:
        """Run ssh in the foreground; returns its exit status.

        Raises:
            HandoffError: If the ssh client cannot be started
        """
        cmd = self.build_command(node, job)
        self.console.info(f"Connecting to {node} ({job.session_token})")
        self.console.command(" ".join(shlex.quote(c) for c in cmd))
        try:
            return subprocess.run(cmd).returncode
        except FileNotFoundError:
            raise HandoffError(f"{cmd[0]} not found in PATH")
        except PermissionError as e:
            raise HandoffError(f"cannot execute {cmd[0]}: {e}")
