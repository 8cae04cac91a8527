"""Tests for in-flight markers, rollback and the status-group projections."""
from __future__ import annotations

import asyncio

import pytest

from jobportal.cli import Portal
from jobportal.errors import AuthenticationError, NetworkError, ValidationError
from jobportal.models import Application, ApplicationStatus, Identity, Job
from jobportal.reconciler import ListReconciler, count_by_group, filter_by_group
from tests.fakes import Marketplace

S = ApplicationStatus


def seeker_listing(portal: Portal) -> ListReconciler[Application]:
    listing: ListReconciler[Application] = ListReconciler(name="application")
    asyncio.run(listing.refresh(portal.backend.my_applications))
    return listing


@pytest.fixture
def application(market: Marketplace, job: Job, seeker_identity: Identity) -> Application:
    return market.add_application(job, seeker_identity)


def test_failure_rolls_back_to_last_known_good(seeker: Portal, application: Application) -> None:
    listing = seeker_listing(seeker)
    seeker.backend.fail_next("withdraw_application", NetworkError("Request timed out"))

    with pytest.raises(NetworkError):
        asyncio.run(seeker.lifecycle.transition_listed(listing, application.id, S.WITHDRAWN))

    assert listing.get(application.id).status is S.APPLIED
    assert not listing.is_in_flight(application.id)
    assert listing.last_error == "Request timed out"
    listing.dismiss_error()
    assert listing.last_error is None


def test_auth_failure_is_not_recorded_on_the_list(seeker: Portal, application: Application) -> None:
    listing = seeker_listing(seeker)
    seeker.backend.fail_next("withdraw_application", AuthenticationError("expired"))

    with pytest.raises(AuthenticationError):
        asyncio.run(seeker.lifecycle.transition_listed(listing, application.id, S.WITHDRAWN))

    assert listing.last_error is None
    assert seeker.session.identity is None


def test_double_withdraw_makes_one_call(seeker: Portal, application: Application) -> None:
    listing = seeker_listing(seeker)

    async def scenario():
        gate = seeker.backend.hold("withdraw_application")
        first = asyncio.create_task(
            seeker.lifecycle.transition_listed(listing, application.id, S.WITHDRAWN)
        )
        await asyncio.sleep(0)
        assert listing.is_in_flight(application.id)
        second = await seeker.lifecycle.transition_listed(listing, application.id, S.WITHDRAWN)
        gate.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert first.status is S.WITHDRAWN
    assert second is None
    assert seeker.backend.count("withdraw_application") == 1
    assert listing.get(application.id).status is S.WITHDRAWN
    assert not listing.is_in_flight(application.id)


def test_other_items_stay_interactive(
    seeker: Portal, market: Marketplace, job: Job, seeker_identity: Identity, application: Application
) -> None:
    other_job = market.add_job(market.users["paula@example.com"], "Data Engineer")
    other = market.add_application(other_job, seeker_identity)
    listing = seeker_listing(seeker)

    async def scenario():
        gate = seeker.backend.hold("withdraw_application")
        first = asyncio.create_task(
            seeker.lifecycle.transition_listed(listing, application.id, S.WITHDRAWN)
        )
        await asyncio.sleep(0)
        second = asyncio.create_task(
            seeker.lifecycle.transition_listed(listing, other.id, S.WITHDRAWN)
        )
        await asyncio.sleep(0)
        assert listing.is_in_flight(application.id)
        assert listing.is_in_flight(other.id)
        gate.set()
        return await asyncio.gather(first, second)

    results = asyncio.run(scenario())

    assert [r.status for r in results] == [S.WITHDRAWN, S.WITHDRAWN]
    assert seeker.backend.count("withdraw_application") == 2


def test_closed_list_ignores_late_completion(seeker: Portal, market: Marketplace, application: Application) -> None:
    listing = seeker_listing(seeker)

    async def scenario():
        gate = seeker.backend.hold("withdraw_application")
        pending = asyncio.create_task(
            seeker.lifecycle.transition_listed(listing, application.id, S.WITHDRAWN)
        )
        await asyncio.sleep(0)
        listing.close()
        gate.set()
        return await pending

    assert asyncio.run(scenario()) is None
    assert listing.closed
    assert listing.get(application.id).status is S.APPLIED
    assert market.applications[application.id].status is S.WITHDRAWN


def test_closed_list_swallows_late_failure(seeker: Portal, application: Application) -> None:
    listing = seeker_listing(seeker)
    seeker.backend.fail_next("withdraw_application", ValidationError("Access denied", 403))

    async def scenario():
        gate = seeker.backend.hold("withdraw_application")
        pending = asyncio.create_task(
            seeker.lifecycle.transition_listed(listing, application.id, S.WITHDRAWN)
        )
        await asyncio.sleep(0)
        listing.close()
        gate.set()
        return await pending

    assert asyncio.run(scenario()) is None
    assert listing.last_error is None
    assert not listing.is_in_flight(application.id)


def test_body_less_answer_triggers_refetch(
    seeker: Portal, market: Marketplace, application: Application
) -> None:
    market.return_bodies = False
    listing = seeker_listing(seeker)

    updated = asyncio.run(
        seeker.lifecycle.transition_listed(
            listing, application.id, S.WITHDRAWN, refetch=seeker.backend.my_applications
        )
    )

    assert updated.status is S.WITHDRAWN
    assert updated == market.applications[application.id]
    assert seeker.backend.count("my_applications") == 2


def test_unknown_key_raises_lookup_error(seeker: Portal) -> None:
    listing = seeker_listing(seeker)
    with pytest.raises(LookupError):
        asyncio.run(seeker.lifecycle.transition_listed(listing, "missing", S.WITHDRAWN))


def test_remove_drops_item_once_confirmed(provider: Portal, market: Marketplace, job: Job) -> None:
    second = market.add_job(market.users["paula@example.com"], "Data Engineer")
    listing: ListReconciler[Job] = ListReconciler(name="job")
    asyncio.run(listing.refresh(provider.jobs.mine))

    assert asyncio.run(provider.jobs.delete_listed(listing, job.id))

    assert [j.id for j in listing.items] == [second.id]
    assert job.id not in market.jobs


def test_failed_remove_keeps_item(provider: Portal, job: Job) -> None:
    listing: ListReconciler[Job] = ListReconciler(name="job")
    asyncio.run(listing.refresh(provider.jobs.mine))
    provider.backend.fail_next("delete_job", NetworkError("Server error (503). Please try again."))

    with pytest.raises(NetworkError):
        asyncio.run(provider.jobs.delete_listed(listing, job.id))

    assert listing.get(job.id) == job
    assert listing.last_error.startswith("Server error")


def test_failed_refresh_keeps_previous_items(seeker: Portal, application: Application) -> None:
    listing = seeker_listing(seeker)
    seeker.backend.fail_next("my_applications", NetworkError("offline"))

    with pytest.raises(NetworkError):
        asyncio.run(listing.refresh(seeker.backend.my_applications))

    assert len(listing) == 1
    assert listing.last_error == "offline"


def make_apps(*statuses: ApplicationStatus) -> list[Application]:
    return [
        Application(id=str(i), job_id="j1", applicant_id="u1", status=status)
        for i, status in enumerate(statuses)
    ]


def test_group_projections_do_not_mutate() -> None:
    apps = make_apps(S.APPLIED, S.PENDING, S.SHORTLISTED, S.OFFERED, S.ACCEPTED, S.REJECTED, S.WITHDRAWN)
    snapshot = list(apps)

    assert [a.status for a in filter_by_group(apps, "new")] == [S.APPLIED, S.PENDING]
    assert [a.status for a in filter_by_group(apps, "accepted")] == [S.OFFERED, S.ACCEPTED]
    assert count_by_group(apps) == {
        "all": 7,
        "new": 2,
        "reviewing": 1,
        "accepted": 2,
        "rejected": 1,
        "withdrawn": 1,
    }
    assert apps == snapshot


def test_unknown_group_is_rejected() -> None:
    with pytest.raises(ValueError):
        filter_by_group(make_apps(S.APPLIED), "archived")
