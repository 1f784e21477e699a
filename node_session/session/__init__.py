"""Session acquisition: request assembly, state machine and cleanup."""

from node_session.session.request import (
    AllocationRequest,
    Overrides,
    ShareMode,
    assemble_request,
    parse_share_mode,
)
from node_session.session.machine import SessionMachine, SessionState
from node_session.session.guard import CleanupGuard

__all__ = [
    "AllocationRequest",
    "Overrides",
    "ShareMode",
    "assemble_request",
    "parse_share_mode",
    "SessionMachine",
    "SessionState",
    "CleanupGuard",
]
