"""Unified data models for the scrubbing pipeline, registry, and job orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

RawRecord = Mapping[str, Any]

NATIONAL_SOURCE = "national"
LITIGATOR_SOURCE = "litigator"
STATE_SOURCE_PREFIX = "state:"


class InvalidTransitionError(RuntimeError):
    """Raised when a job or change list is moved to an illegal status."""


# --- Phone & Lead Models ---

@dataclass(frozen=True, slots=True)
class PhoneKey:
    """Canonical ten digit domestic phone number."""

    digits: str

    def __post_init__(self) -> None:
        if len(self.digits) != 10 or not self.digits.isdigit():
            raise ValueError(f"PhoneKey requires exactly 10 digits, got {self.digits!r}")

    @property
    def area_code(self) -> str:
        return self.digits[:3]

    @property
    def exchange(self) -> str:
        return self.digits[3:6]

    @property
    def subscriber(self) -> str:
        return self.digits[6:]

    def __str__(self) -> str:
        return self.digits


_COMPLETENESS_FIELDS = (
    "name",
    "first_name",
    "last_name",
    "email",
    "address",
    "city",
    "state",
    "zip_code",
)


@dataclass(frozen=True, slots=True)
class LeadRecord:
    """Normalized contact produced at the pipeline boundary.

    ``index`` is the position of the raw record in the submitted batch and is
    the only ordering used for deterministic tie-breaks.
    """

    index: int
    phone: PhoneKey
    raw_phone: str = ""
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    metadata: Mapping[str, str] = field(default_factory=dict)
    dropped_fields: Tuple[str, ...] = ()
    already_exists: bool = False
    merged_indices: Tuple[int, ...] = ()

    def display_name(self) -> str:
        """Return a readable name for logs and exports."""
        if self.name:
            return self.name
        return " ".join(filter(None, [self.first_name, self.last_name])).strip() or "(Unnamed Lead)"

    def completeness(self) -> int:
        """Number of populated optional fields, metadata values included."""
        filled = sum(1 for name in _COMPLETENESS_FIELDS if getattr(self, name))
        return filled + sum(1 for value in self.metadata.values() if value)


@dataclass(frozen=True, slots=True)
class InvalidRecord:
    """Raw record whose phone number could not be normalized."""

    index: int
    raw_phone: str
    reason: str


# --- Authorization ---

@dataclass(frozen=True)
class AuthorizedScope:
    """Area codes and registry sources a caller is entitled to use."""

    area_codes: FrozenSet[str] = frozenset()
    sources: FrozenSet[str] = frozenset({NATIONAL_SOURCE, LITIGATOR_SOURCE})
    max_records: Optional[int] = None

    def covers(self, area_code: str) -> bool:
        return area_code in self.area_codes

    def permits(self, area_code: str, source: str) -> bool:
        return self.covers(area_code) and source in self.sources


def state_source(state: str) -> str:
    return f"{STATE_SOURCE_PREFIX}{state.strip().upper()}"


def is_valid_source(source: str) -> bool:
    if source in {NATIONAL_SOURCE, LITIGATOR_SOURCE}:
        return True
    if source.startswith(STATE_SOURCE_PREFIX):
        code = source[len(STATE_SOURCE_PREFIX):]
        return len(code) == 2 and code.isalpha() and code.isupper()
    return False


# --- Registry Models ---

@dataclass(frozen=True, slots=True)
class RegistryEntry:
    """One listing of a number in one registry source."""

    entry_id: int
    phone: PhoneKey
    source: str
    area_code: str
    added_at: datetime
    removed_at: Optional[datetime] = None
    added_by: Optional[str] = None
    removed_by: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.removed_at is None


class ChangeType(str, Enum):
    ADDITIONS = "additions"
    DELETIONS = "deletions"


class ChangeListStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


_CHANGE_LIST_TRANSITIONS = {
    ChangeListStatus.PENDING: {ChangeListStatus.PROCESSING},
    ChangeListStatus.PROCESSING: {ChangeListStatus.COMPLETED, ChangeListStatus.FAILED},
}


@dataclass(slots=True)
class EntryFailure:
    """A change-list entry that could not be applied."""

    phone: str
    area_code: str
    reason: str


@dataclass
class ChangeList:
    """Incremental registry update received from an upstream authority file."""

    id: str
    change_type: ChangeType
    source: str
    file_date: date
    area_codes: FrozenSet[str]
    fingerprint: str
    status: ChangeListStatus = ChangeListStatus.PENDING
    submitted_by: Optional[str] = None
    retry_of: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_records: int = 0
    processed_records: int = 0
    skipped_records: int = 0
    failed_records: int = 0
    failures: List[EntryFailure] = field(default_factory=list)
    error_message: Optional[str] = None

    def transition(self, status: ChangeListStatus) -> None:
        if status not in _CHANGE_LIST_TRANSITIONS.get(self.status, set()):
            raise InvalidTransitionError(
                f"Change list {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status


# --- Risk Assessment ---

class Classification(str, Enum):
    CLEAN = "clean"
    CAUTION = "caution"
    BLOCKED = "blocked"


@dataclass(frozen=True, slots=True)
class RiskFactor:
    """Single scoring factor and the points it contributed."""

    label: str
    points: int
    description: str


@dataclass(frozen=True, slots=True)
class RiskAssessment:
    """Score, classification, and matched flags for one lead."""

    phone: PhoneKey
    score: int
    classification: Classification
    flags: Tuple[str, ...] = ()
    factors: Tuple[RiskFactor, ...] = ()
    explanation: str = ""
    recommendations: Tuple[str, ...] = ()
    assessed_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class ScoredLead:
    """A lead annotated with the assessment produced by its job."""

    lead: LeadRecord
    assessment: RiskAssessment

    def as_row(self) -> Dict[str, Any]:
        """Return the stable output contract consumed by CRM connectors."""
        lead = self.lead
        row: Dict[str, Any] = {
            "phone": str(lead.phone),
            "raw_phone": lead.raw_phone,
            "name": lead.display_name(),
            "email": lead.email or "",
            "address": lead.address or "",
            "city": lead.city or "",
            "state": lead.state or "",
            "zip_code": lead.zip_code or "",
            "risk_score": self.assessment.score,
            "classification": self.assessment.classification.value,
            "flags": ", ".join(self.assessment.flags),
            "already_exists": lead.already_exists,
        }
        row.update({f"metadata.{key}": value for key, value in lead.metadata.items()})
        return row


# --- Scrub Jobs ---

class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


_JOB_TRANSITIONS = {
    JobStatus.QUEUED: {JobStatus.PROCESSING},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
}


@dataclass
class ScrubJob:
    """One attempt at scrubbing a submitted batch."""

    id: str
    batch_id: str
    total_count: int
    attempt: int = 1
    previous_attempt_id: Optional[str] = None
    status: JobStatus = JobStatus.QUEUED
    processed_count: int = 0
    clean_count: int = 0
    caution_count: int = 0
    blocked_count: int = 0
    invalid_count: int = 0
    duplicates_removed: int = 0
    failure_reason: Optional[str] = None
    retryable: bool = False
    submitted_by: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def terminal(self) -> bool:
        return self.status in {JobStatus.COMPLETED, JobStatus.FAILED}

    def transition(self, status: JobStatus) -> None:
        if status not in _JOB_TRANSITIONS.get(self.status, set()):
            raise InvalidTransitionError(
                f"Job {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status

    def advance(self, count: int = 1) -> None:
        self.processed_count = min(self.total_count, self.processed_count + count)

    def as_status(self) -> Dict[str, Any]:
        return {
            "job_id": self.id,
            "status": self.status.value,
            "processed_count": self.processed_count,
            "total_count": self.total_count,
            "attempt": self.attempt,
            "failure_reason": self.failure_reason,
            "retryable": self.retryable,
        }
