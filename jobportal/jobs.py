"""Job browsing for everyone, job management for providers."""
from __future__ import annotations

from typing import Any

from jobportal.backend.base import Backend
from jobportal.guard import Capability, require
from jobportal.log import get_logger
from jobportal.models import Application, Job, job_payload
from jobportal.reconciler import ListReconciler
from jobportal.session import SessionStore

log = get_logger(__name__)


class JobBoard:
    def __init__(self, session: SessionStore, backend: Backend) -> None:
        self.session = session
        self.backend = backend

    # Public listings need no identity.

    async def browse(self, **filters: Any) -> list[Job]:
        jobs = await self.backend.list_jobs(**filters)
        log.debug("Fetched %d jobs", len(jobs))
        return jobs

    async def featured(self) -> list[Job]:
        return await self.backend.featured_jobs()

    async def get(self, job_id: str) -> Job:
        return await self.backend.get_job(job_id)

    async def search(self, keyword: str, **filters: Any) -> list[Job]:
        keyword = keyword.strip()
        if not keyword:
            return await self.browse(**filters)
        jobs = await self.backend.search_jobs(keyword, **filters)
        log.debug("Search %r returned %d jobs", keyword, len(jobs))
        return jobs

    # Provider-only; the guard runs before any backend call.

    async def mine(self) -> list[Job]:
        require(self.session.session, Capability.JOB_PROVIDER)
        return await self.backend.my_jobs()

    async def post(self, data: dict[str, Any]) -> Job:
        require(self.session.session, Capability.JOB_PROVIDER)
        job = await self.backend.create_job(job_payload(data))
        log.info("Posted job %s (%s)", job.id, job.title)
        return job

    async def edit(self, job_id: str, data: dict[str, Any]) -> Job:
        require(self.session.session, Capability.JOB_PROVIDER)
        job = await self.backend.update_job(job_id, job_payload(data))
        log.info("Updated job %s", job.id)
        return job

    async def delete(self, job_id: str) -> None:
        require(self.session.session, Capability.JOB_PROVIDER)
        await self.backend.delete_job(job_id)
        log.info("Deleted job %s", job_id)

    async def delete_listed(self, items: ListReconciler[Job], job_id: str) -> bool:
        """Delete a listed job; ``False`` if a delete for it is already in flight."""
        require(self.session.session, Capability.JOB_PROVIDER)
        return await items.remove(job_id, lambda job: self.delete(job.id))

    async def applicants(self, job_id: str | None = None) -> list[Application]:
        """Applications to one of the provider's jobs, or to all of them."""
        require(self.session.session, Capability.JOB_PROVIDER)
        if job_id:
            return await self.backend.job_applications(job_id)
        return await self.backend.provider_applications()
