"""Connection handoff to the allocated node."""

from node_session.handoff.ssh import SSHHandoff

__all__ = [
    "SSHHandoff",
]
