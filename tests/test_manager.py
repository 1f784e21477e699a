"""End-to-end tests for SessionManager with a scripted scheduler."""

import os
import signal

import pytest

from fakes import FakeHandoff, FakeScheduler, output
from node_session.config import Config
from node_session.errors import (
    ConfigError,
    JobFailedError,
    SessionInterrupted,
    StartupTimeoutError,
    SubmissionError,
)
from node_session.orchestrator import SessionManager
from node_session.orchestrator.manager import BUNDLED_SCRIPT, SESSION_VAR_ENV
from node_session.session import Overrides, SessionState


def make_manager(scheduler, handoff, console, clock, **config):
    return SessionManager(
        Config(**config),
        client=scheduler,
        handoff=handoff,
        console=console,
        clock=clock,
        sleep=clock.sleep,
    )


def test_power_up_scenario(console, clock):
    scheduler = FakeScheduler(
        job_id="5740",
        statuses=["PENDING", "CONFIGURING", "RUNNING"],
        nodes=["node07"],
        node_tags=[{"POWERING_UP"}, set()],
    )
    handoff = FakeHandoff()
    manager = make_manager(scheduler, handoff, console, clock)
    request = manager.build_request(Overrides(cpus="4"))

    code = manager.start(request)

    assert code == 0
    assert manager.machine.state is SessionState.READY
    assert handoff.calls == [("node07", "session5740")]
    assert scheduler.cancelled == []
    assert output(console).count("is powering up") == 1
    assert scheduler.submitted[0][0].cpus == 4
    assert scheduler.submitted[0][1] == str(BUNDLED_SCRIPT)


def test_ssh_status_is_informational(console, clock):
    handoff = FakeHandoff(status=255)
    manager = make_manager(FakeScheduler(), handoff, console, clock)

    assert manager.start(manager.build_request(Overrides())) == 0
    assert "255" in output(console)


def test_submission_failure_has_nothing_to_clean(console, clock):
    scheduler = FakeScheduler(submit_error=SubmissionError(1, "sbatch: error: invalid partition"))
    handoff = FakeHandoff()
    manager = make_manager(scheduler, handoff, console, clock)

    with pytest.raises(SubmissionError):
        manager.start(manager.build_request(Overrides()))

    assert scheduler.cancelled == []
    assert handoff.calls == []


def test_failed_job_is_cleaned_up(console, clock):
    scheduler = FakeScheduler(statuses=["FAILED"])
    handoff = FakeHandoff()
    manager = make_manager(scheduler, handoff, console, clock)

    with pytest.raises(JobFailedError):
        manager.start(manager.build_request(Overrides()))

    assert scheduler.cancelled == ["5740"]
    assert handoff.calls == []


def test_timeout_cancels_exactly_once(console, clock):
    scheduler = FakeScheduler(statuses=["PENDING"])
    manager = make_manager(scheduler, FakeHandoff(), console, clock, startup_timeout=5)

    with pytest.raises(StartupTimeoutError):
        manager.start(manager.build_request(Overrides()))

    assert manager.machine.state is SessionState.TIMED_OUT
    assert scheduler.cancelled == ["5740"]


def test_interrupt_during_session_cancels(console, clock):
    class InterruptedHandoff(FakeHandoff):
        def connect(self, node, job):
            super().connect(node, job)
            raise SessionInterrupted(1)

    scheduler = FakeScheduler()
    manager = make_manager(scheduler, InterruptedHandoff(), console, clock)

    with pytest.raises(SessionInterrupted):
        manager.start(manager.build_request(Overrides()))

    assert scheduler.cancelled == ["5740"]


def test_custom_worker_script(console, clock, tmp_path):
    script = tmp_path / "hold.sh"
    script.write_text("#!/bin/bash\nsleep infinity\n")
    scheduler = FakeScheduler()
    manager = make_manager(scheduler, FakeHandoff(), console, clock, worker_script=str(script))

    manager.start(manager.build_request(Overrides()))

    assert scheduler.submitted[0][1] == str(script)


def test_missing_worker_script(console, clock, tmp_path):
    manager = make_manager(
        FakeScheduler(), FakeHandoff(), console, clock, worker_script=str(tmp_path / "missing.sh")
    )

    with pytest.raises(ConfigError):
        manager.start(manager.build_request(Overrides()))


def test_bundled_script_exists():
    assert BUNDLED_SCRIPT.is_file()


def test_dry_run_submits_nothing(console, clock):
    scheduler = FakeScheduler()
    manager = make_manager(scheduler, FakeHandoff(), console, clock)

    manager.dry_run(manager.build_request(Overrides(cpus="2")))

    assert scheduler.submitted == []
    assert "sbatch -c 2" in output(console)



def test_job_learns_session_variable_name(console, clock):
    scheduler = FakeScheduler()
    manager = make_manager(scheduler, FakeHandoff(), console, clock, ssh={"session_env": "SID"})

    manager.start(manager.build_request(Overrides()))

    assert scheduler.environments == [{SESSION_VAR_ENV: "SID"}]


def test_dry_run_shows_session_variable_name(console, clock):
    manager = make_manager(FakeScheduler(), FakeHandoff(), console, clock)

    manager.dry_run(manager.build_request(Overrides()))

    assert f"{SESSION_VAR_ENV}=NODE_SESSION_ID" in output(console)


def test_bundled_script_reads_session_variable_name():
    assert SESSION_VAR_ENV in BUNDLED_SCRIPT.read_text()


def test_signal_during_submission_still_cancels(console, clock):
    class SignalledScheduler(FakeScheduler):
        def submit(self, request, script, environment=None):
            os.kill(os.getpid(), signal.SIGTERM)
            for _ in range(1000):
                pass
            return super().submit(request, script, environment)

    scheduler = SignalledScheduler()
    handoff = FakeHandoff()
    manager = make_manager(scheduler, handoff, console, clock)

    with pytest.raises(SessionInterrupted) as excinfo:
        manager.start(manager.build_request(Overrides()))

    assert excinfo.value.signum == signal.SIGTERM
    assert manager.machine.job is not None
    assert scheduler.cancelled == ["5740"]
    assert handoff.calls == []


def test_default_handoff_uses_same_variable_name(console):
    manager = SessionManager(Config(ssh={"session_env": "SID"}), client=FakeScheduler(), console=console)

    assert manager.handoff.session_env == "SID"
    assert manager.job_environment() == {SESSION_VAR_ENV: "SID"}
