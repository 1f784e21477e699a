"""Abstract scheduler client interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from node_session.session.request import AllocationRequest


class JobStatus(str, Enum):
    """Scheduler job states, reduced to what the session machine needs."""
    PENDING = "PENDING"
    CONFIGURING = "CONFIGURING"
    RUNNING = "RUNNING"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"


POWER_SAVING_TAGS = frozenset({"POWERED_DOWN", "POWER_SAVE"})
POWERING_UP_TAGS = frozenset({"POWERING_UP", "POWER_UP"})


@dataclass(frozen=True)
class JobHandle:
    """A submitted placeholder job."""
    job_id: str

    @property
    def session_token(self) -> str:
        """Identifier the remote side uses to recognise this session."""
        return f"session{self.job_id}"


@dataclass(frozen=True)
class NodeObservation:
    """One snapshot of a node's state flags."""
    node: str
    tags: frozenset[str] = frozenset()

    @property
    def power_saving(self) -> bool:
        return bool(self.tags & POWER_SAVING_TAGS)

    @property
    def powering_up(self) -> bool:
        return bool(self.tags & POWERING_UP_TAGS)

    @property
    def powered(self) -> bool:
        """True once neither power marker is set."""
        return not (self.power_saving or self.powering_up)


class SchedulerClient(ABC):
    """Abstract interface for the batch scheduler.

    Implementations own all parsing of scheduler output; callers only see the
    structured values defined in this module.
    """

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the scheduler commands are accessible."""
        pass

    @abstractmethod
    def submit(
        self,
        request: "AllocationRequest",
        script: str,
        environment: Optional[dict[str, str]] = None,
    ) -> JobHandle:
        """Submit the placeholder job.

        Args:
            request: Resources to allocate
            script: Path to the placeholder job script
            environment: Extra variables exported to the job

        Returns:
            Handle of the new job

        Raises:
            SubmissionError: If the scheduler refuses the request
        """
        pass

    @abstractmethod
    def job_status(self, job: JobHandle) -> JobStatus:
        """Current state of the job.

        Raises:
            SchedulerError: If the scheduler could not be queried
        """
        pass

    @abstractmethod
    def allocated_node(self, job: JobHandle) -> Optional[str]:
        """Node assigned to the job, or None if not assigned yet."""
        pass

    @abstractmethod
    def node_state(self, node: str) -> NodeObservation:
        """Current state flags of a node."""
        pass

    @abstractmethod
    def cancel(self, job: JobHandle) -> None:
        """Cancel a job.

        Cancelling a job that already finished or was already cancelled is
        not an error.

        Raises:
            SchedulerError: If the cancel request itself failed
        """
        pass

    def submit_command(
        self,
        request: "AllocationRequest",
        script: str,
        environment: Optional[dict[str, str]] = None,
    ) -> list[str]:
        """Command line that ``submit`` would run, for display."""
        return []

    def generic_resources(self) -> list[str]:
        """Generic resource names known to the scheduler (display only)."""
        return []

    def node_features(self) -> list[str]:
        """Node feature tags known to the scheduler (display only)."""
        return []
