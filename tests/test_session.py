"""Tests for session resolution, sign-in and the non-resurrection rules."""
from __future__ import annotations

import asyncio

import pytest

from jobportal.cli import Portal
from jobportal.errors import AuthenticationError, NetworkError, ValidationError
from jobportal.models import Identity, Registration, Role
from jobportal.storage import MemoryCredentialStore
from tests.fakes import FakeBackend, Marketplace, let_run


def test_starts_resolving_and_resolves_once(make_portal, seeker_identity: Identity) -> None:
    portal = make_portal(seeker_identity, resolve=False)
    assert portal.session.resolving
    assert portal.session.identity is None

    async def scenario():
        return await portal.session.resolve(), await portal.session.resolve()

    first, second = asyncio.run(scenario())

    assert first.identity == seeker_identity
    assert second.identity == seeker_identity
    assert not portal.session.resolving
    assert portal.session.is_job_seeker()
    assert portal.backend.count("current_identity") == 1


def test_no_stored_token_resolves_without_a_call(make_portal) -> None:
    portal = make_portal()
    assert portal.session.identity is None
    assert not portal.session.resolving
    assert portal.backend.calls == []


def test_rejected_token_is_cleared(market: Marketplace, seeker_identity: Identity) -> None:
    credentials = MemoryCredentialStore("expired-token", seeker_identity)
    portal = Portal.create(FakeBackend(market, credentials), credentials)

    session = asyncio.run(portal.session.resolve())

    assert session.identity is None
    assert not session.resolving
    assert credentials.token() is None
    assert credentials.identity() is None


def test_network_failure_keeps_the_token(make_portal, seeker_identity: Identity) -> None:
    portal = make_portal(seeker_identity, resolve=False)
    portal.backend.fail_next("current_identity", NetworkError("connection refused"))

    session = asyncio.run(portal.session.resolve())

    assert session.identity is None
    assert not session.resolving
    assert portal.credentials.token() is not None


def test_login_stores_credentials(make_portal, seeker_identity: Identity) -> None:
    portal = make_portal()

    identity = asyncio.run(portal.session.login("sam@example.com", "secret"))

    assert identity == seeker_identity
    assert portal.session.session.role is Role.JOB_SEEKER
    assert portal.credentials.token() is not None
    assert portal.credentials.identity() == seeker_identity


def test_failed_login_leaves_session_signed_out(make_portal, seeker_identity: Identity) -> None:
    portal = make_portal()

    with pytest.raises(AuthenticationError):
        asyncio.run(portal.session.login("sam@example.com", "wrong"))

    assert portal.session.identity is None
    assert not portal.session.resolving
    assert portal.credentials.token() is None


def test_failed_login_restores_resolving_flag(make_portal, seeker_identity: Identity) -> None:
    portal = make_portal(resolve=False)

    with pytest.raises(AuthenticationError):
        asyncio.run(portal.session.login("sam@example.com", "wrong"))

    assert portal.session.resolving


def test_register_signs_in_with_requested_role(make_portal) -> None:
    portal = make_portal()
    registration = Registration("new@example.com", "pw", "Nia", "Okafor", Role.JOB_PROVIDER)

    identity = asyncio.run(portal.session.register(registration))

    assert identity.role is Role.JOB_PROVIDER
    assert portal.session.is_job_provider()
    with pytest.raises(ValidationError):
        asyncio.run(make_portal().session.register(registration))


def test_logout_clears_everything(seeker: Portal, market: Marketplace) -> None:
    token = seeker.credentials.token()

    asyncio.run(seeker.session.logout())

    assert seeker.session.identity is None
    assert seeker.credentials.token() is None
    assert token not in market.tokens
    assert seeker.backend.count("sign_out") == 1


def test_failed_sign_out_still_logs_out(seeker: Portal) -> None:
    seeker.backend.fail_next("sign_out", NetworkError("offline"))

    asyncio.run(seeker.session.logout())

    assert seeker.session.identity is None
    assert seeker.credentials.token() is None


def test_logout_during_resolve_does_not_resurrect(make_portal, seeker_identity: Identity) -> None:
    portal = make_portal(seeker_identity, resolve=False)
    # The server keeps the token valid, so the late /me answer carries an identity.
    portal.backend.fail_next("sign_out", NetworkError("offline"))

    async def scenario() -> None:
        gate = portal.backend.hold("current_identity")
        pending = asyncio.create_task(portal.session.resolve())
        await let_run()
        assert portal.backend.count("current_identity") == 1
        await portal.session.logout()
        gate.set()
        await pending

    asyncio.run(scenario())

    assert portal.session.identity is None
    assert not portal.session.resolving
    assert portal.credentials.token() is None


def test_logout_during_login_does_not_resurrect(make_portal, seeker_identity: Identity) -> None:
    portal = make_portal()

    async def scenario() -> Identity:
        gate = portal.backend.hold("sign_in")
        pending = asyncio.create_task(portal.session.login("sam@example.com", "secret"))
        await asyncio.sleep(0)
        assert portal.session.resolving
        await portal.session.logout()
        gate.set()
        return await pending

    asyncio.run(scenario())

    assert portal.session.identity is None
    assert not portal.session.resolving
    assert portal.credentials.token() is None


def test_unauthorized_response_clears_session(seeker: Portal, market: Marketplace) -> None:
    market.tokens.clear()

    with pytest.raises(AuthenticationError):
        asyncio.run(seeker.backend.my_applications())

    assert seeker.session.identity is None
    assert seeker.credentials.token() is None


def test_concurrent_resolves_share_one_lookup(make_portal, seeker_identity: Identity) -> None:
    portal = make_portal(seeker_identity, resolve=False)

    async def scenario():
        gate = portal.backend.hold("current_identity")
        pending = asyncio.gather(portal.session.resolve(), portal.session.resolve())
        await let_run()
        gate.set()
        return await pending

    first, second = asyncio.run(scenario())

    assert first.identity == second.identity == seeker_identity
    assert portal.backend.count("current_identity") == 1


def test_login_during_resolve_wins(
    make_portal, seeker_identity: Identity, provider_identity: Identity
) -> None:
    portal = make_portal(seeker_identity, resolve=False)

    async def scenario() -> None:
        gate = portal.backend.hold("current_identity")
        pending = asyncio.create_task(portal.session.resolve())
        await let_run()
        await portal.session.login("paula@example.com", "secret")
        gate.set()
        await pending

    asyncio.run(scenario())

    assert portal.session.identity == provider_identity
    assert portal.credentials.identity() == provider_identity
    assert portal.session.is_job_provider()
    assert not portal.session.resolving


def test_stale_unauthorized_response_keeps_new_session(
    seeker: Portal, market: Marketplace, provider_identity: Identity
) -> None:
    async def scenario() -> None:
        gate = seeker.backend.hold("my_applications")
        stale = asyncio.create_task(seeker.backend.my_applications())
        await let_run()
        await seeker.session.logout()
        await seeker.session.login("paula@example.com", "secret")
        gate.set()
        with pytest.raises(AuthenticationError):
            await stale

    asyncio.run(scenario())

    assert seeker.session.identity == provider_identity
    assert market.tokens[seeker.credentials.token()] == provider_identity
