"""SLURM scheduler client implementation."""

from __future__ import annotations

import re
import shutil
import subprocess
from typing import TYPE_CHECKING, Optional

from node_session.cluster.base import JobHandle, JobStatus, NodeObservation, SchedulerClient
from node_session.errors import SchedulerError, SubmissionError

if TYPE_CHECKING:
    from node_session.session.request import AllocationRequest

JOB_STATES = {
    "PENDING": JobStatus.PENDING,
    "CONFIGURING": JobStatus.CONFIGURING,
    "POWERING_UP": JobStatus.CONFIGURING,
    "RUNNING": JobStatus.RUNNING,
}

TERMINAL_STATES = {
    "BOOT_FAIL",
    "CANCELLED",
    "COMPLETED",
    "DEADLINE",
    "FAILED",
    "NODE_FAIL",
    "OUT_OF_MEMORY",
    "PREEMPTED",
    "TIMEOUT",
}

# scancel/squeue answers that mean the job is already gone
GONE_MARKERS = ("Invalid job id", "already completing or completed")


def command_available(cmd: str) -> bool:
    """Check if a command is available in PATH."""
    return shutil.which(cmd) is not None


def run(cmd: list[str]) -> str:
    """Run a scheduler query and return stdout.

    Raises:
        SchedulerError: If the command is missing or exits non-zero
    """
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    except FileNotFoundError as e:
        raise SchedulerError(f"{cmd[0]} not found in PATH") from e
    except subprocess.CalledProcessError as e:
        output = (e.stderr or e.stdout or "").strip()
        raise SchedulerError(f"{' '.join(cmd)} failed: {output}") from e
    return result.stdout


def classify_job_state(raw: str) -> JobStatus:
    """Map a squeue state string onto JobStatus."""
    state = raw.strip().upper()
    if state in JOB_STATES:
        return JOB_STATES[state]
    if state in TERMINAL_STATES:
        return JobStatus.FAILED
    return JobStatus.UNKNOWN


def parse_job_id(sbatch_output: str) -> Optional[str]:
    """Extract the job ID from "Submitted batch job XXXXX".

    The ID is the last whitespace-delimited field of the confirmation line.
    """
    lines = [line.strip() for line in sbatch_output.splitlines() if line.strip()]
    if not lines:
        return None
    confirmation = next((line for line in lines if line.startswith("Submitted")), lines[-1])
    return confirmation.split()[-1]


def extract_node(scontrol_text: str) -> Optional[str]:
    """Extract the NodeList=... field, ignoring ReqNodeList/ExcNodeList."""
    m = re.search(r"(?:^|\s)NodeList=(\S+)", scontrol_text)
    if not m or m.group(1).startswith("("):
        return None
    return m.group(1)


def extract_node_tags(scontrol_text: str) -> frozenset[str]:
    """Extract State=IDLE+CLOUD+POWERED_DOWN as a set of flags."""
    m = re.search(r"(?:^|\s)State=(\S+)", scontrol_text)
    if not m:
        return frozenset()
    return frozenset(tag for tag in m.group(1).upper().split("+") if tag)


def _parse_gres_names(text: str) -> list[str]:
    """Parse "gpu:a100:4(S:0-1),shard:8" into ["gpu:a100", "shard"]."""
    names = set()
    for line in text.splitlines():
        for item in re.split(r",(?![^(]*\))", line.strip()):
            item = item.split("(")[0].strip()
            if not item or item == "null":
                continue
            parts = item.split(":")
            if len(parts) > 1 and parts[-1].isdigit():
                parts = parts[:-1]
            names.add(":".join(parts))
    return sorted(names)


def _parse_features(text: str) -> list[str]:
    features = set()
    for line in text.splitlines():
        for item in line.strip().split(","):
            item = item.strip()
            if item and item != "(null)":
                features.add(item)
    return sorted(features)


def build_sbatch_cmd(
    request: "AllocationRequest",
    script: str,
    environment: Optional[dict[str, str]] = None,
) -> list[str]:
    """Build sbatch command from an allocation request.

    ``environment`` is exported to the job on top of the submitting
    environment (``--export=ALL,...``); values must not contain commas.
    """
    from node_session.session.request import ShareMode

    cmd = [
        "sbatch",
        "-J", request.job_name,
        "-c", str(request.cpus),
        "--mem", f"{request.memory_mb}M",
        "-t", request.time_limit,
        "-o", "/dev/null",
    ]
    if request.partition:
        cmd += ["-p", request.partition]
    if request.gres:
        cmd += ["--gres", request.gres]
    if request.features:
        cmd += ["--constraint", request.features]
    if request.reservation:
        cmd += ["--reservation", request.reservation]
    if request.nodelist:
        cmd += ["-w", request.nodelist]
    if environment:
        exports = ",".join(f"{name}={value}" for name, value in environment.items())
        cmd.append(f"--export=ALL,{exports}")
    cmd.append("--exclusive" if request.share is ShareMode.EXCLUSIVE else "--oversubscribe")
    cmd.append(script)
    return cmd


class SlurmClient(SchedulerClient):
    """SLURM scheduler client built on the standard command-line tools."""

    def is_available(self) -> bool:
        return command_available("sbatch") and command_available("squeue")

    def submit_command(
        self,
        request: "AllocationRequest",
        script: str,
        environment: Optional[dict[str, str]] = None,
    ) -> list[str]:
        return build_sbatch_cmd(request, script, environment)

    def submit(
        self,
        request: "AllocationRequest",
        script: str,
        environment: Optional[dict[str, str]] = None,
    ) -> JobHandle:
        cmd = build_sbatch_cmd(request, script, environment)
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError:
            raise SubmissionError(127, "sbatch not found in PATH")

        if result.returncode != 0:
            raise SubmissionError(result.returncode, result.stderr or result.stdout)

        job_id = parse_job_id(result.stdout)
        if not job_id:
            raise SubmissionError(1, f"Could not parse job ID from sbatch output: {result.stdout!r}")
        return JobHandle(job_id)

    def job_status(self, job: JobHandle) -> JobStatus:
        try:
            out = run(["squeue", "-h", "-j", job.job_id, "-o", "%T"])
        except SchedulerError as e:
            if any(marker in str(e) for marker in GONE_MARKERS):
                return JobStatus.UNKNOWN
            raise
        lines = out.split()
        return classify_job_state(lines[0]) if lines else JobStatus.UNKNOWN

    def allocated_node(self, job: JobHandle) -> Optional[str]:
        return extract_node(run(["scontrol", "show", "job", job.job_id]))

    def node_state(self, node: str) -> NodeObservation:
        return NodeObservation(node, extract_node_tags(run(["scontrol", "show", "node", node])))

    def cancel(self, job: JobHandle) -> None:
        try:
            result = subprocess.run(["scancel", job.job_id], capture_output=True, text=True)
        except FileNotFoundError as e:
            raise SchedulerError("scancel not found in PATH") from e

        output = (result.stderr or result.stdout or "").strip()
        if result.returncode != 0 and not any(marker in output for marker in GONE_MARKERS):
            raise SchedulerError(f"scancel {job.job_id} failed: {output}")

    def generic_resources(self) -> list[str]:
        if not command_available("sinfo"):
            return []
        try:
            return _parse_gres_names(run(["sinfo", "-h", "-o", "%G"]))
        except SchedulerError:
            return []

    def node_features(self) -> list[str]:
        if not command_available("sinfo"):
            return []
        try:
            return _parse_features(run(["sinfo", "-h", "-o", "%f"]))
        except SchedulerError:
            return []
