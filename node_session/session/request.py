"""Allocation request assembly.

Turns command-line overrides and configured defaults into a single immutable
``AllocationRequest``. Nothing here talks to the scheduler.
"""

from __future__ import annotations

import getpass
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from node_session.config.schema import Defaults
from node_session.errors import UserInputError


class ShareMode(str, Enum):
    EXCLUSIVE = "exclusive"
    SHARED = "shared"


SHARE_TOKENS = {
    "yes": ShareMode.SHARED,
    "y": ShareMode.SHARED,
    "1": ShareMode.SHARED,
    "no": ShareMode.EXCLUSIVE,
    "n": ShareMode.EXCLUSIVE,
    "0": ShareMode.EXCLUSIVE,
}

# M, M:S, H:M:S, D-H, D-H:M, D-H:M:S
_TIME_RE = re.compile(r"^(\d+-\d+(:\d+){0,2}|\d+(:\d+){0,2})$")
_UNLIMITED = {"UNLIMITED", "INFINITE"}


@dataclass(frozen=True)
class AllocationRequest:
    """Everything the scheduler needs to place the placeholder job."""
    cpus: int
    memory_mb: int
    job_name: str
    time_limit: str
    share: ShareMode = ShareMode.EXCLUSIVE
    partition: Optional[str] = None
    gres: Optional[str] = None
    features: Optional[str] = None
    reservation: Optional[str] = None
    nodelist: Optional[str] = None

    def __post_init__(self):
        if self.cpus <= 0 or self.memory_mb <= 0:
            raise ValueError("cpus and memory_mb must be positive")


@dataclass
class Overrides:
    """Raw values given on the command line; None means "use the default"."""
    cpus: Optional[str] = None
    memory: Optional[str] = None
    gres: Optional[str] = None
    features: Optional[str] = None
    partition: Optional[str] = None
    job_name: Optional[str] = None
    reservation: Optional[str] = None
    share: Optional[str] = None
    time: Optional[str] = None
    nodelist: Optional[str] = None


def parse_count(name: str, value: Union[int, str]) -> int:
    """Parse a positive integer count, raising UserInputError otherwise."""
    if isinstance(value, bool):
        raise UserInputError(f"{name} must be a positive integer, got {value!r}")
    text = str(value).strip()
    if not (text.isascii() and text.isdigit()):
        raise UserInputError(f"{name} must be a positive integer, got {text!r}")
    count = int(text)
    if count == 0:
        raise UserInputError(f"{name} must be greater than zero")
    return count


def parse_share_mode(token: Union[bool, int, str]) -> ShareMode:
    """Map a yes/no style token to a ShareMode.

    Accepted spellings: yes, no, 1, 0, y, n (case-insensitive). YAML turns
    unquoted yes/no into booleans, so those are accepted too.
    """
    if isinstance(token, bool):
        return ShareMode.SHARED if token else ShareMode.EXCLUSIVE
    mode = SHARE_TOKENS.get(str(token).strip().lower())
    if mode is None:
        raise UserInputError(f"share must be one of yes/no/y/n/1/0, got {token!r}")
    return mode


def parse_time_limit(value: str) -> str:
    """Validate a SLURM duration string and return it unchanged."""
    text = str(value).strip()
    if text.upper() in _UNLIMITED or _TIME_RE.match(text):
        return text
    raise UserInputError(
        f"time must look like MM, HH:MM:SS or D-HH:MM:SS, got {value!r}"
    )


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _pick(override: Optional[Any], default: Any) -> Any:
    return default if override is None else override


def assemble_request(
    overrides: Overrides,
    defaults: Defaults,
    user: Optional[str] = None,
) -> AllocationRequest:
    """Build the AllocationRequest from overrides layered on defaults.

    Raises:
        UserInputError: If a count, share token or time limit is malformed
    """
    user = user or getpass.getuser()
    template = _pick(overrides.job_name, defaults.job_name)
    try:
        job_name = template.format(user=user)
    except (KeyError, IndexError, ValueError) as e:
        raise UserInputError(f"invalid job name template {template!r}: {e}") from e

    return AllocationRequest(
        cpus=parse_count("cpus", _pick(overrides.cpus, defaults.cpus)),
        memory_mb=parse_count("memory", _pick(overrides.memory, defaults.memory)),
        job_name=job_name,
        time_limit=parse_time_limit(_pick(overrides.time, defaults.time)),
        share=parse_share_mode(_pick(overrides.share, defaults.share)),
        partition=_optional(_pick(overrides.partition, defaults.partition)),
        gres=_optional(overrides.gres),
        features=_optional(overrides.features),
        reservation=_optional(overrides.reservation),
        nodelist=_optional(overrides.nodelist),
    )
