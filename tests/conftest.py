import io

import pytest
from rich.console import Console

from fakes import FakeClock
from node_session.config.schema import Defaults
from node_session.console import Reporter
from node_session.session.request import Overrides, assemble_request


@pytest.fixture
def console():
    """Reporter writing into memory; not a terminal, so no colors or spinner."""
    return Reporter(
        out=Console(file=io.StringIO(), width=200, highlight=False),
        err=Console(file=io.StringIO(), width=200, highlight=False),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def allocation():
    return assemble_request(Overrides(), Defaults(), user="alice")


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point both config layers at files that don't exist unless a test writes them."""
    site = tmp_path / "site.yaml"
    user = tmp_path / "user.yaml"
    monkeypatch.setenv("NODE_SESSION_SITE_CONFIG", str(site))
    monkeypatch.setenv("NODE_SESSION_CONFIG", str(user))
    return site, user
