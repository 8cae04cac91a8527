from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Callable

import pytest

os.environ.setdefault("JOBPORTAL_LOG_DIR", str(Path(tempfile.gettempdir()) / "jobportal-test-logs"))

from jobportal.cli import Portal  # noqa: E402
from jobportal.models import Identity, Job, Role  # noqa: E402
from jobportal.storage import MemoryCredentialStore  # noqa: E402
from tests.fakes import FakeBackend, Marketplace  # noqa: E402


@pytest.fixture
def market() -> Marketplace:
    return Marketplace()


@pytest.fixture
def seeker_identity(market: Marketplace) -> Identity:
    return market.add_user("sam@example.com", Role.JOB_SEEKER, first="Sam", last="Seeker")


@pytest.fixture
def provider_identity(market: Marketplace) -> Identity:
    return market.add_user("paula@example.com", Role.JOB_PROVIDER, first="Paula", last="Provider")


@pytest.fixture
def job(market: Marketplace, provider_identity: Identity) -> Job:
    return market.add_job(provider_identity, "Platform Engineer")


@pytest.fixture
def make_portal(market: Marketplace) -> Callable[..., Portal]:
    """Build a client; with ``identity`` it starts with a stored, valid token."""

    def _make(identity: Identity | None = None, resolve: bool = True) -> Portal:
        credentials = MemoryCredentialStore()
        if identity is not None:
            credentials.save(market.issue_token(identity), identity)
        portal = Portal.create(FakeBackend(market, credentials), credentials)
        if resolve:
            asyncio.run(portal.session.resolve())
        return portal

    return _make


@pytest.fixture
def seeker(make_portal, seeker_identity: Identity) -> Portal:
    return make_portal(seeker_identity)


@pytest.fixture
def provider(make_portal, provider_identity: Identity) -> Portal:
    return make_portal(provider_identity)
