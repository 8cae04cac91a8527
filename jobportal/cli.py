"""Command line client for the job marketplace.

Each sub-command is a protected view: the session is resolved first and
the authorization guard decides whether the command may run.
"""
from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

import yaml

from jobportal.backend import Backend, get_backend
from jobportal.config import ClientConfig, ensure_dirs, load_config
from jobportal.errors import (
    AccessDenied,
    AuthenticationError,
    InvalidTransition,
    NetworkError,
    ValidationError,
)
from jobportal.guard import LOGIN_PATH, Capability, Decision, authorize
from jobportal.jobs import JobBoard
from jobportal.lifecycle import WITHDRAWABLE, ApplicationLifecycle
from jobportal.log import get_logger, set_level
from jobportal.models import Application, ApplicationStatus, Job, Registration, Role
from jobportal.reconciler import STATUS_GROUPS, ListReconciler, count_by_group, filter_by_group
from jobportal.session import SessionStore
from jobportal.storage import CredentialStore, FileCredentialStore

log = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_SIGN_IN = 2
EXIT_BLOCKED = 3


@dataclass
class Portal:
    """Everything one CLI invocation needs, wired around a single session."""

    backend: Backend
    credentials: CredentialStore
    session: SessionStore
    lifecycle: ApplicationLifecycle
    jobs: JobBoard

    @classmethod
    def create(cls, backend: Backend, credentials: CredentialStore) -> Portal:
        session = SessionStore(backend, credentials)
        return cls(
            backend=backend,
            credentials=credentials,
            session=session,
            lifecycle=ApplicationLifecycle(session, backend),
            jobs=JobBoard(session, backend),
        )

    @classmethod
    def from_config(cls, config: ClientConfig) -> Portal:
        ensure_dirs(config)
        credentials = FileCredentialStore(config.credentials_path)
        return cls.create(get_backend(config, credentials), credentials)


# ── formatting ────────────────────────────────────────────────────────


def _date(value) -> str:
    return value.strftime("%Y-%m-%d") if value else "N/A"


def _print_job(job: Job, detail: bool = False) -> None:
    where = job.location or "Location not specified"
    print(f"  [{job.id}] {job.title} - {job.company or 'Unknown company'} ({where})")
    if detail:
        for label, value in (
            ("Category", job.category),
            ("Type", job.type),
            ("Salary", job.salary),
            ("Experience", job.experience_level),
            ("Posted", _date(job.created_at)),
        ):
            if value:
                print(f"      {label}: {value}")
        for label, text in (
            ("Description", job.description),
            ("Requirements", job.requirements),
            ("Responsibilities", job.responsibilities),
        ):
            if text:
                print(f"      {label}:\n        {text.strip()}")


def _print_application(app: Application, actions: frozenset[ApplicationStatus] = frozenset()) -> None:
    title = app.job_title or f"job {app.job_id}"
    print(f"  [{app.id}] {title} - {app.status.label}")
    who = app.applicant_name or app.applicant_email
    if who:
        print(f"      Applicant: {who}")
    line = f"      Applied: {_date(app.applied_at)}"
    if app.updated_at and app.status is not ApplicationStatus.APPLIED:
        line += f"  Updated: {_date(app.updated_at)}"
    print(line)
    if actions:
        print(f"      Actions: {', '.join(sorted(s.value for s in actions))}")


# ── commands ──────────────────────────────────────────────────────────


def _password(args: argparse.Namespace) -> str:
    return args.password or getpass.getpass("Password: ")


async def cmd_login(portal: Portal, args: argparse.Namespace) -> int:
    identity = await portal.session.login(args.email, _password(args))
    print(f"Signed in as {identity.full_name or identity.email} ({identity.role.value})")
    return EXIT_OK


async def cmd_register(portal: Portal, args: argparse.Namespace) -> int:
    role = Role.JOB_PROVIDER if args.role == "provider" else Role.JOB_SEEKER
    registration = Registration(
        email=args.email,
        password=_password(args),
        first_name=args.first_name,
        last_name=args.last_name,
        role=role,
    )
    identity = await portal.session.register(registration)
    print(f"Welcome, {identity.first_name or identity.email}! Registered as {identity.role.value}")
    return EXIT_OK


async def cmd_logout(portal: Portal, args: argparse.Namespace) -> int:
    await portal.session.logout()
    print("Signed out.")
    return EXIT_OK


async def cmd_whoami(portal: Portal, args: argparse.Namespace) -> int:
    identity = portal.session.identity
    print(f"{identity.full_name} <{identity.email}> - {identity.role.value}")
    if portal.session.is_job_seeker():
        count = await portal.backend.my_applications_count()
        print(f"Applications submitted: {count}")
    return EXIT_OK


async def cmd_jobs(portal: Portal, args: argparse.Namespace) -> int:
    if args.featured:
        jobs = await portal.jobs.featured()
    elif args.search:
        jobs = await portal.jobs.search(args.search)
    else:
        jobs = await portal.jobs.browse()
    if not jobs:
        print("No jobs found.")
    for job in jobs:
        _print_job(job)
    return EXIT_OK


async def cmd_job(portal: Portal, args: argparse.Namespace) -> int:
    _print_job(await portal.jobs.get(args.job_id), detail=True)
    return EXIT_OK


def _read_job_file(path: Path) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping of job fields")
    return data


async def cmd_post_job(portal: Portal, args: argparse.Namespace) -> int:
    job = await portal.jobs.post(_read_job_file(args.file))
    print("Job posted:")
    _print_job(job)
    return EXIT_OK


async def cmd_edit_job(portal: Portal, args: argparse.Namespace) -> int:
    job = await portal.jobs.edit(args.job_id, _read_job_file(args.file))
    print("Job updated:")
    _print_job(job, detail=True)
    return EXIT_OK


async def cmd_my_jobs(portal: Portal, args: argparse.Namespace) -> int:
    jobs = await portal.jobs.mine()
    if not jobs:
        print("You have not posted any jobs yet.")
    for job in jobs:
        _print_job(job)
    return EXIT_OK


async def cmd_delete_job(portal: Portal, args: argparse.Namespace) -> int:
    listing: ListReconciler[Job] = ListReconciler(name="job")
    await listing.refresh(portal.jobs.mine)
    await portal.jobs.delete_listed(listing, args.job_id)
    print(f"Deleted job {args.job_id}. {len(listing)} job(s) remaining.")
    return EXIT_OK


async def cmd_apply(portal: Portal, args: argparse.Namespace) -> int:
    cover_letter = args.cover_letter
    if args.cover_letter_file:
        cover_letter = Path(args.cover_letter_file).read_text(encoding="utf-8")
    application = await portal.lifecycle.apply(
        args.job_id, cover_letter=cover_letter, resume_url=args.resume_url
    )
    print("Application submitted:")
    _print_application(application)
    return EXIT_OK


async def cmd_applications(portal: Portal, args: argparse.Namespace) -> int:
    applications = filter_by_group(await portal.backend.my_applications(), args.group)
    if not applications:
        print("You haven't applied to any jobs yet.")
    for app in applications:
        can_withdraw = app.status in WITHDRAWABLE
        _print_application(app, frozenset({ApplicationStatus.WITHDRAWN}) if can_withdraw else frozenset())
    return EXIT_OK


async def cmd_application(portal: Portal, args: argparse.Namespace) -> int:
    app = await portal.backend.get_application(args.application_id)
    _print_application(app, portal.lifecycle.allowed_targets(app))
    if app.cover_letter:
        print(f"      Cover letter:\n        {app.cover_letter.strip()}")
    return EXIT_OK


async def cmd_withdraw(portal: Portal, args: argparse.Namespace) -> int:
    listing: ListReconciler[Application] = ListReconciler(name="application")
    await listing.refresh(portal.backend.my_applications)
    updated = await portal.lifecycle.transition_listed(
        listing,
        args.application_id,
        ApplicationStatus.WITHDRAWN,
        refetch=portal.backend.my_applications,
    )
    print("Application withdrawn.")
    if updated is not None:
        _print_application(updated)
    return EXIT_OK


async def _provider_listing(portal: Portal, job_id: str | None) -> ListReconciler[Application]:
    listing: ListReconciler[Application] = ListReconciler(name="application")
    await listing.refresh(lambda: portal.jobs.applicants(job_id))
    return listing


async def cmd_review(portal: Portal, args: argparse.Namespace) -> int:
    listing = await _provider_listing(portal, args.job)
    counts = count_by_group(listing.items)
    print("  ".join(f"{group}: {counts[group]}" for group in STATUS_GROUPS))
    shown = filter_by_group(listing.items, args.group)
    if not shown:
        print("No applications in this group.")
    for app in shown:
        _print_application(app, portal.lifecycle.allowed_targets(app))
    return EXIT_OK


async def cmd_set_status(portal: Portal, args: argparse.Namespace) -> int:
    listing = await _provider_listing(portal, args.job)
    updated = await portal.lifecycle.transition_listed(
        listing, args.application_id, ApplicationStatus(args.status)
    )
    print(f"Application {args.application_id} is now {args.status}.")
    if updated is not None:
        _print_application(updated, portal.lifecycle.allowed_targets(updated))
    return EXIT_OK


Handler = Callable[[Portal, argparse.Namespace], Awaitable[int]]

# command → (capability required, handler); ``None`` means a public view.
COMMANDS: dict[str, tuple[Capability | None, Handler]] = {
    "login": (None, cmd_login),
    "register": (None, cmd_register),
    "logout": (None, cmd_logout),
    "whoami": (Capability.AUTHENTICATED, cmd_whoami),
    "jobs": (None, cmd_jobs),
    "job": (None, cmd_job),
    "post-job": (Capability.JOB_PROVIDER, cmd_post_job),
    "edit-job": (Capability.JOB_PROVIDER, cmd_edit_job),
    "my-jobs": (Capability.JOB_PROVIDER, cmd_my_jobs),
    "delete-job": (Capability.JOB_PROVIDER, cmd_delete_job),
    "apply": (Capability.JOB_SEEKER, cmd_apply),
    "applications": (Capability.JOB_SEEKER, cmd_applications),
    "application": (Capability.JOB_SEEKER, cmd_application),
    "withdraw": (Capability.JOB_SEEKER, cmd_withdraw),
    "review": (Capability.JOB_PROVIDER, cmd_review),
    "set-status": (Capability.JOB_PROVIDER, cmd_set_status),
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="jobportal", description="Job marketplace client.")
    parser.add_argument("--config", type=Path, default=None, help="Path to a YAML client config")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging output")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("login", help="Sign in")
    p.add_argument("email")
    p.add_argument("--password", help="Password (prompted when omitted)")

    p = sub.add_parser("register", help="Create an account")
    p.add_argument("email")
    p.add_argument("--first-name", required=True)
    p.add_argument("--last-name", required=True)
    p.add_argument("--role", choices=["seeker", "provider"], default="seeker")
    p.add_argument("--password", help="Password (prompted when omitted)")

    sub.add_parser("logout", help="Sign out and forget the stored credential")
    sub.add_parser("whoami", help="Show the signed-in identity")

    p = sub.add_parser("jobs", help="Browse public job listings")
    p.add_argument("--search", help="Keyword to search for")
    p.add_argument("--featured", action="store_true", help="Only featured jobs")

    p = sub.add_parser("job", help="Show one job")
    p.add_argument("job_id")

    p = sub.add_parser("post-job", help="Post a job from a YAML file")
    p.add_argument("file", type=Path)

    p = sub.add_parser("edit-job", help="Replace one of your jobs with fields from a YAML file")
    p.add_argument("job_id")
    p.add_argument("file", type=Path)

    sub.add_parser("my-jobs", help="List the jobs you posted")

    p = sub.add_parser("delete-job", help="Delete one of your jobs")
    p.add_argument("job_id")

    p = sub.add_parser("apply", help="Apply to a job")
    p.add_argument("job_id")
    p.add_argument("--cover-letter", help="Cover letter text")
    p.add_argument("--cover-letter-file", type=Path, help="Read the cover letter from a file")
    p.add_argument("--resume-url", help="Link to your resume")

    p = sub.add_parser("applications", help="List your applications")
    p.add_argument("--group", choices=list(STATUS_GROUPS), default="all")

    p = sub.add_parser("application", help="Show one of your applications")
    p.add_argument("application_id")

    p = sub.add_parser("withdraw", help="Withdraw one of your applications")
    p.add_argument("application_id")

    p = sub.add_parser("review", help="Review applications to your jobs")
    p.add_argument("--job", help="Only applications to this job")
    p.add_argument("--group", choices=list(STATUS_GROUPS), default="all")

    p = sub.add_parser("set-status", help="Move an application to a new status")
    p.add_argument("application_id")
    p.add_argument("status", choices=[s.value for s in ApplicationStatus if s is not ApplicationStatus.PENDING])
    p.add_argument("--job", help="Job the application belongs to")

    return parser.parse_args(argv)


async def dispatch(portal: Portal, args: argparse.Namespace) -> int:
    capability, handler = COMMANDS[args.command]
    log.debug("Running %s", args.command)
    await portal.session.resolve()

    if capability is not None:
        decision = authorize(portal.session.session, capability)
        if decision.decision is not Decision.ALLOW:
            cached = portal.credentials.identity()
            if cached is not None and portal.session.identity is None:
                print(f"Could not confirm the saved session for {cached.email}.")
            print(f"Please sign in with {capability.value} access ({decision.redirect_to}).")
            return EXIT_SIGN_IN

    try:
        return await handler(portal, args)
    except (InvalidTransition, AccessDenied) as exc:
        print(f"Blocked: {exc.message}")
        return EXIT_BLOCKED
    except AuthenticationError as exc:
        print(f"{exc.message} ({LOGIN_PATH})")
        return EXIT_SIGN_IN
    except (ValidationError, NetworkError) as exc:
        print(f"Error: {exc.message}")
        return EXIT_FAILED
    except (LookupError, ValueError) as exc:
        print(f"Error: {exc.args[0] if exc.args else exc}")
        return EXIT_FAILED


def main(argv: list[str] | None = None, portal: Portal | None = None) -> int:
    args = parse_args(argv)
    if args.verbose:
        set_level(logging.DEBUG)
    if portal is None:
        portal = Portal.from_config(load_config(args.config))
    return asyncio.run(dispatch(portal, args))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
