"""Session orchestration."""

from node_session.orchestrator.manager import SessionManager

__all__ = [
    "SessionManager",
]
