"""Scrub job orchestration across normalization, deduplication, and scoring."""

from .service import JobRejectedError, ScrubOrchestrator, ScrubResult, UnknownJobError

__all__ = ["JobRejectedError", "ScrubOrchestrator", "ScrubResult", "UnknownJobError"]
