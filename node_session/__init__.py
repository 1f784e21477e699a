"""
node-session - interactive shells on compute nodes provisioned on demand.

This package provides:
- Resource request assembly from flags and layered config files
- A SLURM client for submitting, polling and cancelling placeholder jobs
- The session state machine that waits for a powered-up, running node
- SSH handoff onto the node, with guaranteed job cleanup
"""

from node_session.config import load_config, Config
from node_session.orchestrator import SessionManager

__version__ = "0.1.0"

__all__ = [
    "load_config",
    "Config",
    "SessionManager",
    "__version__",
]
