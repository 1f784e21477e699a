"""Pydantic configuration schemas for node-session."""

from typing import Optional, Union

from pydantic import BaseModel, Field

ENV_NAME = r"^[A-Za-z_][A-Za-z0-9_]*$"


class Defaults(BaseModel):
    """Resource defaults used when a flag is not given on the command line.

    ``cpus``, ``memory`` and ``share`` are kept loose here and validated by the
    request assembler, so a bad value in a config file is reported exactly like
    a bad flag.
    """
    cpus: Union[int, str] = Field(default=1, description="CPUs per session")
    memory: Union[int, str] = Field(default=4000, description="Memory in MB")
    partition: Optional[str] = Field(default=None, description="Partition (None = scheduler default)")
    share: Union[bool, int, str] = Field(default="no", description="Share the node with other jobs (yes/no)")
    time: str = Field(default="8:00:00", description="Time limit in SLURM duration format")
    job_name: str = Field(default="interactive-{user}", description="Job name template, {user} is substituted")


class SSHConfig(BaseModel):
    """Remote login settings for the connection handoff."""
    options: list[str] = Field(
        default_factory=lambda: [
            "-o", "ServerAliveInterval=30",
            "-o", "ServerAliveCountMax=3",
            "-o", "StrictHostKeyChecking=accept-new",
        ],
        description="Extra ssh options",
    )
    marker_env: str = Field(
        default="NODE_SESSION", pattern=ENV_NAME, description="Variable marking an interactive-session login"
    )
    session_env: str = Field(
        default="NODE_SESSION_ID", pattern=ENV_NAME, description="Variable carrying the session identifier"
    )


class Config(BaseModel):
    """Root configuration for node-session."""
    defaults: Defaults = Field(default_factory=Defaults, description="Resource defaults")
    startup_timeout: int = Field(default=600, gt=0, description="Seconds to wait for a ready node")
    ssh: SSHConfig = Field(default_factory=SSHConfig, description="Remote login settings")
    worker_script: Optional[str] = Field(default=None, description="Placeholder job script (None = bundled script)")
