"""Summary statistics and compliance grading for a completed scrub batch."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Sequence

from .models import LITIGATOR_SOURCE, Classification, InvalidRecord, ScoredLead
from .scoring import RECENTLY_ADDED_FLAG


@dataclass(frozen=True)
class BatchSummary:
    total: int = 0
    clean: int = 0
    caution: int = 0
    blocked: int = 0
    invalid: int = 0
    duplicates_removed: int = 0
    litigators: int = 0
    recently_added: int = 0
    area_codes: List[str] = field(default_factory=list)
    average_score: float = 0.0
    highest_score: int = 0
    lowest_score: int = 0
    compliance_score: int = 0
    compliance_grade: str = "F"

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def compliance_grade(clean: int, scored: int, litigators: int, recently_added: int) -> tuple[str, int]:
    """Grade a batch from its clean share, penalising litigator and fresh listings."""

    if scored <= 0:
        return "F", 0
    score = clean / scored * 100
    if litigators:
        score -= min(15, litigators * 5)
    if recently_added:
        score -= min(5, recently_added / scored * 10)
    score = max(0, min(100, round(score)))

    if score >= 90:
        return "A", score
    if score >= 80:
        return "B", score
    if score >= 70:
        return "C", score
    if score >= 60:
        return "D", score
    return "F", score


def summarize(
    scored: Sequence[ScoredLead],
    invalid: Sequence[InvalidRecord],
    duplicates_removed: int,
) -> BatchSummary:
    counts = {classification: 0 for classification in Classification}
    for item in scored:
        counts[item.assessment.classification] += 1

    scores = [item.assessment.score for item in scored]
    litigators = sum(1 for item in scored if LITIGATOR_SOURCE in item.assessment.flags)
    recently_added = sum(1 for item in scored if RECENTLY_ADDED_FLAG in item.assessment.flags)
    grade, grade_score = compliance_grade(counts[Classification.CLEAN], len(scored), litigators, recently_added)

    return BatchSummary(
        total=len(scored) + len(invalid) + duplicates_removed,
        clean=counts[Classification.CLEAN],
        caution=counts[Classification.CAUTION],
        blocked=counts[Classification.BLOCKED],
        invalid=len(invalid),
        duplicates_removed=duplicates_removed,
        litigators=litigators,
        recently_added=recently_added,
        area_codes=sorted({item.lead.phone.area_code for item in scored}),
        average_score=round(sum(scores) / len(scores), 1) if scores else 0.0,
        highest_score=max(scores, default=0),
        lowest_score=min(scores, default=0),
        compliance_score=grade_score,
        compliance_grade=grade,
    )


__all__ = ["BatchSummary", "compliance_grade", "summarize"]
