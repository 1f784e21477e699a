"""Command-line interface for node-session."""

from __future__ import annotations

import contextlib
import io
import sys
from dataclasses import dataclass
from typing import Annotated, Optional, Sequence

import tyro

from node_session.cluster import SchedulerClient, SlurmClient
from node_session.config import load_config
from node_session.console import Reporter, reporter
from node_session.errors import SessionError, UserInputError
from node_session.handoff import SSHHandoff
from node_session.orchestrator import SessionManager
from node_session.session import Overrides

DESCRIPTION = "Start an interactive shell on a compute node allocated on demand."


@dataclass
class SessionArgs:
    """Start an interactive shell on a compute node allocated on demand."""
    cpus: Annotated[Optional[str], tyro.conf.arg(aliases=("-c",))] = None
    """CPUs for the session (default from config)"""
    mem: Annotated[Optional[str], tyro.conf.arg(aliases=("-m",))] = None
    """Memory in MB (default from config)"""
    gres: Annotated[Optional[str], tyro.conf.arg(aliases=("-g",))] = None
    """Generic resources, e.g. 'gpu:1'"""
    features: Annotated[Optional[str], tyro.conf.arg(aliases=("-f",))] = None
    """Node feature constraint, e.g. 'avx512&ib'"""
    partition: Annotated[Optional[str], tyro.conf.arg(aliases=("-p",))] = None
    """Partition to run in"""
    job_name: Annotated[Optional[str], tyro.conf.arg(aliases=("-J",))] = None
    """Job name, '{user}' is substituted"""
    reservation: Annotated[Optional[str], tyro.conf.arg(aliases=("-r",))] = None
    """Reservation to run in"""
    share: Annotated[Optional[str], tyro.conf.arg(aliases=("-s",))] = None
    """Share the node with other jobs: yes/no/y/n/1/0"""
    time: Annotated[Optional[str], tyro.conf.arg(aliases=("-t",))] = None
    """Time limit, e.g. 2:00:00 or 1-00:00:00"""
    nodelist: Annotated[Optional[str], tyro.conf.arg(aliases=("-w",))] = None
    """Run on this specific node"""
    config: Optional[str] = None
    """User config file (default ~/.config/node-session/config.yaml)"""
    startup_timeout: Optional[int] = None
    """Seconds to wait for the node before giving up"""
    dry_run: bool = False
    """Print the sbatch command and exit"""

    def overrides(self) -> Overrides:
        return Overrides(
            cpus=self.cpus,
            memory=self.mem,
            gres=self.gres,
            features=self.features,
            partition=self.partition,
            job_name=self.job_name,
            reservation=self.reservation,
            share=self.share,
            time=self.time,
            nodelist=self.nodelist,
        )


def wants_help(argv: Sequence[str]) -> bool:
    return any(arg in ("-h", "--help") for arg in argv)


def build_description(client: Optional[SchedulerClient] = None) -> str:
    """Program description, listing the scheduler's vocabularies if asked.

    The lists are for display only; nothing is validated against them.
    """
    if client is None or not client.is_available():
        return DESCRIPTION

    gres = client.generic_resources()
    features = client.node_features()
    return "\n".join([
        DESCRIPTION,
        "",
        f"Available generic resources (--gres): {', '.join(gres) or 'none'}",
        f"Available node features (--features): {', '.join(features) or 'none'}",
    ])


def help_text(description: str = DESCRIPTION) -> str:
    """Render the --help screen as text."""
    buffer = io.StringIO()
    with contextlib.redirect_stdout(buffer):
        try:
            tyro.cli(SessionArgs, prog="node-session", description=description, args=["--help"])
        except SystemExit:
            # --help always exits after printing
            pass
    return buffer.getvalue()


def run(
    args: SessionArgs,
    client: Optional[SchedulerClient] = None,
    handoff: Optional[SSHHandoff] = None,
    console: Reporter = reporter,
    **manager_options,
) -> int:
    """Execute a session request and return the process exit code.

    ``manager_options`` are passed through to SessionManager (clock, sleep).
    """
    try:
        config = load_config(args.config, console=console)
        if args.startup_timeout is not None:
            if args.startup_timeout <= 0:
                raise UserInputError("startup timeout must be greater than zero")
            config = config.model_copy(update={"startup_timeout": args.startup_timeout})

        manager = SessionManager(
            config, client=client, handoff=handoff, console=console, **manager_options
        )
        request = manager.build_request(args.overrides())

        if args.dry_run:
            manager.dry_run(request)
            return 0
        return manager.start(request)

    except UserInputError as e:
        console.fail(e.category, str(e))
        console.usage(help_text())
        return e.exit_code
    except SessionError as e:
        console.fail(e.category, str(e), e.hint)
        return e.exit_code
    except KeyboardInterrupt:
        console.fail("Interrupted", "Cancelled by user")
        return 130


def main(argv: Optional[Sequence[str]] = None):
    """Main entry point for the node-session CLI."""
    argv = list(sys.argv[1:] if argv is None else argv)
    description = build_description(SlurmClient() if wants_help(argv) else None)
    args = tyro.cli(SessionArgs, prog="node-session", description=description, args=argv)
    sys.exit(run(args))


if __name__ == "__main__":
    main()
