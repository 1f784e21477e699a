"""Batch scheduler access."""

from node_session.cluster.base import (
    JobHandle,
    JobStatus,
    NodeObservation,
    SchedulerClient,
)
from node_session.cluster.slurm import SlurmClient

__all__ = [
    "JobHandle",
    "JobStatus",
    "NodeObservation",
    "SchedulerClient",
    "SlurmClient",
]
