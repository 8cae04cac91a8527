"""Data models for identities, jobs and applications."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Role(str, Enum):
    JOB_SEEKER = "JOB_SEEKER"
    JOB_PROVIDER = "JOB_PROVIDER"


class ApplicationStatus(str, Enum):
    """Status of a job application as reported by the backend.

    ``PENDING`` is a legacy seeker-side status some backends still report;
    it behaves like ``APPLIED`` for withdrawal and has no provider edges.
    """

    APPLIED = "APPLIED"
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    SHORTLISTED = "SHORTLISTED"
    INTERVIEWED = "INTERVIEWED"
    OFFERED = "OFFERED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"

    @classmethod
    def _missing_(cls, value: object) -> ApplicationStatus | None:
        alias = _STATUS_ALIASES.get(str(value).upper())
        return cls(alias) if alias else None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


# Older backends report an accepted application as APPROVED.
_STATUS_ALIASES: dict[str, str] = {"APPROVED": "ACCEPTED"}

TERMINAL_STATUSES: frozenset[ApplicationStatus] = frozenset(
    {ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED, ApplicationStatus.WITHDRAWN}
)


def parse_timestamp(value: Any) -> datetime | None:
    """ISO-8601 string (``Z`` suffix allowed) → aware datetime; naive values are UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Identity:
    id: str
    email: str
    first_name: str
    last_name: str
    role: Role

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Identity:
        return cls(
            id=str(data["id"]),
            email=data.get("email", ""),
            first_name=data.get("firstName", ""),
            last_name=data.get("lastName", ""),
            role=Role(data["role"]),
        )

    def to_api(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "role": self.role.value,
        }


@dataclass(frozen=True)
class AuthResult:
    token: str
    identity: Identity

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> AuthResult:
        token = data.get("token")
        if not token:
            raise ValueError("authentication response carries no token")
        return cls(token=token, identity=Identity.from_api(data))


@dataclass(frozen=True)
class Registration:
    email: str
    password: str
    first_name: str
    last_name: str
    role: Role

    def to_api(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "password": self.password,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "role": self.role.value,
        }

    def __repr__(self) -> str:
        return f"Registration(email={self.email!r}, role={self.role.value})"


# Wire name → field name for Job; everything else on the payload is ignored.
_JOB_FIELDS: dict[str, str] = {
    "title": "title",
    "company": "company",
    "location": "location",
    "category": "category",
    "type": "type",
    "salary": "salary",
    "experienceLevel": "experience_level",
    "description": "description",
    "requirements": "requirements",
    "responsibilities": "responsibilities",
}


@dataclass(frozen=True)
class Job:
    id: str
    title: str
    company: str = ""
    location: str = ""
    category: str = ""
    type: str = ""
    salary: str | None = None
    experience_level: str = ""
    description: str = ""
    requirements: str = ""
    responsibilities: str = ""
    created_at: datetime | None = None
    owner_provider_id: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Job:
        kwargs: dict[str, Any] = {}
        for wire, attr in _JOB_FIELDS.items():
            if data.get(wire) is not None:
                kwargs[attr] = data[wire]
        if "salary" in kwargs:
            kwargs["salary"] = str(kwargs["salary"])
        owner = data.get("ownerProviderId") or data.get("providerId")
        return cls(
            id=str(data["id"]),
            created_at=parse_timestamp(data.get("createdAt")),
            owner_provider_id=str(owner) if owner is not None else None,
            **kwargs,
        )

    def to_api(self) -> dict[str, Any]:
        payload = {wire: getattr(self, attr) for wire, attr in _JOB_FIELDS.items()}
        payload["id"] = self.id
        return payload


def job_payload(data: dict[str, Any]) -> dict[str, Any]:
    """Normalise user-supplied job fields (snake or camel case) to the wire shape."""
    by_attr = {attr: wire for wire, attr in _JOB_FIELDS.items()}
    payload: dict[str, Any] = {}
    for key, value in data.items():
        wire = by_attr.get(key, key)
        if wire not in _JOB_FIELDS:
            raise ValueError(f"unknown job field: {key}")
        payload[wire] = value
    if not payload.get("title"):
        raise ValueError("a job needs a title")
    return payload


@dataclass(frozen=True)
class Application:
    """A seeker's application to one job. Only ``status``/``updated_at`` ever change."""

    id: str
    job_id: str
    applicant_id: str
    status: ApplicationStatus
    applicant_name: str = ""
    applicant_email: str = ""
    cover_letter: str | None = None
    resume_url: str | None = None
    applied_at: datetime | None = None
    updated_at: datetime | None = None
    job_title: str | None = None
    company: str | None = None
    location: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Application:
        return cls(
            id=str(data["id"]),
            job_id=str(data.get("jobId", "")),
            applicant_id=str(data.get("applicantId", "")),
            status=ApplicationStatus(data["status"]),
            applicant_name=data.get("applicantName") or "",
            applicant_email=data.get("applicantEmail") or "",
            cover_letter=data.get("coverLetter"),
            resume_url=data.get("resumeUrl"),
            applied_at=parse_timestamp(data.get("appliedAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
            job_title=data.get("jobTitle"),
            company=data.get("companyName") or data.get("company"),
            location=data.get("location"),
        )

    def to_api(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "jobId": self.job_id,
            "applicantId": self.applicant_id,
            "applicantName": self.applicant_name,
            "applicantEmail": self.applicant_email,
            "coverLetter": self.cover_letter,
            "resumeUrl": self.resume_url,
            "status": self.status.value,
            "appliedAt": _format_timestamp(self.applied_at),
            "updatedAt": _format_timestamp(self.updated_at),
            "jobTitle": self.job_title,
            "companyName": self.company,
            "location": self.location,
        }
