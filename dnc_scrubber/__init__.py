"""Compliance scrubbing of contact lists against Do Not Call registries."""

from .dedupe import DuplicateResolution, resolve_duplicates
from .models import (
    AuthorizedScope,
    ChangeList,
    Classification,
    InvalidRecord,
    JobStatus,
    LeadRecord,
    PhoneKey,
    RegistryEntry,
    RiskAssessment,
    ScoredLead,
    ScrubJob,
)
from .normalizer import NormalizationResult, RejectionReason, normalize_phone
from .orchestrator import JobRejectedError, ScrubOrchestrator, ScrubResult, UnknownJobError
from .registry import ChangeListIngestor, RegistryStore
from .scoring import RiskScorer, ScoringSettings

__all__ = [
    "AuthorizedScope",
    "ChangeList",
    "ChangeListIngestor",
    "Classification",
    "DuplicateResolution",
    "InvalidRecord",
    "JobRejectedError",
    "JobStatus",
    "LeadRecord",
    "NormalizationResult",
    "PhoneKey",
    "RegistryEntry",
    "RegistryStore",
    "RejectionReason",
    "RiskAssessment",
    "RiskScorer",
    "ScoredLead",
    "ScoringSettings",
    "ScrubJob",
    "ScrubOrchestrator",
    "ScrubResult",
    "UnknownJobError",
    "normalize_phone",
    "resolve_duplicates",
    "ingestion",
    "orchestrator",
    "registry",
]
