"""Weighted risk scoring of leads against the registry."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Mapping, Optional

from .models import (
    LITIGATOR_SOURCE,
    NATIONAL_SOURCE,
    AuthorizedScope,
    Classification,
    LeadRecord,
    RegistryEntry,
    RiskAssessment,
    RiskFactor,
    state_source,
)
from .registry.store import RegistryReader

LOGGER = logging.getLogger(__name__)

UNKNOWN_COVERAGE_FLAG = "unknown_coverage"
RECENTLY_ADDED_FLAG = "recently_added"
MAX_SCORE = 100


@dataclass(frozen=True)
class ScoringSettings:
    """Weights, thresholds, and recency window used by :class:`RiskScorer`."""

    national_weight: int = 40
    state_weight: int = 25
    recency_weight: int = 10
    recency_window: timedelta = timedelta(days=30)
    caution_threshold: int = 30
    blocked_threshold: int = 80

    def __post_init__(self) -> None:
        if not 0 <= self.caution_threshold <= self.blocked_threshold <= MAX_SCORE:
            raise ValueError("Thresholds must satisfy 0 <= caution <= blocked <= 100")

    def classify(self, score: int) -> Classification:
        if score >= self.blocked_threshold:
            return Classification.BLOCKED
        if score >= self.caution_threshold:
            return Classification.CAUTION
        return Classification.CLEAN


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class RiskScorer:
    """Scores one lead at a time in a fixed precedence order.

    litigator > national > the lead's own state > coverage > recency. A
    litigator match forces the maximum score but every other factor is still
    evaluated so the assessment lists all matched flags.
    """

    def __init__(
        self,
        scope: AuthorizedScope,
        settings: Optional[ScoringSettings] = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._scope = scope
        self._settings = settings or ScoringSettings()
        self._clock = clock

    @property
    def settings(self) -> ScoringSettings:
        return self._settings

    def score(
        self,
        lead: LeadRecord,
        registry: RegistryReader,
        last_contact_date: Optional[datetime] = None,
    ) -> RiskAssessment:
        settings = self._settings
        area_code = lead.phone.area_code
        matches: Mapping[str, RegistryEntry] = registry.lookup(lead.phone, area_code, self._scope)

        factors: List[RiskFactor] = []
        counted: Dict[str, RegistryEntry] = {}

        litigator = matches.get(LITIGATOR_SOURCE)
        if litigator is not None:
            counted[LITIGATOR_SOURCE] = litigator
            factors.append(RiskFactor(LITIGATOR_SOURCE, MAX_SCORE, "Number matches a known litigator record"))

        national = matches.get(NATIONAL_SOURCE)
        if national is not None:
            counted[NATIONAL_SOURCE] = national
            factors.append(
                RiskFactor(NATIONAL_SOURCE, settings.national_weight, "Number is on the national Do Not Call registry")
            )

        if lead.state:
            own_state = state_source(lead.state)
            state_entry = matches.get(own_state)
            if state_entry is not None:
                counted[own_state] = state_entry
                factors.append(
                    RiskFactor(own_state, settings.state_weight, f"Number is on the {lead.state} state registry")
                )

        if not self._scope.covers(area_code):
            factors.append(
                RiskFactor(UNKNOWN_COVERAGE_FLAG, 0, f"Area code {area_code} is outside the authorized coverage")
            )

        reference = _as_aware(last_contact_date) if last_contact_date else self._clock()
        cutoff = reference - settings.recency_window
        if any(_as_aware(entry.added_at) >= cutoff for entry in counted.values()):
            factors.append(
                RiskFactor(
                    RECENTLY_ADDED_FLAG,
                    settings.recency_weight,
                    f"Listed within the last {settings.recency_window.days} days",
                )
            )

        if litigator is not None:
            score = MAX_SCORE
            classification = Classification.BLOCKED
        else:
            score = max(0, min(MAX_SCORE, sum(factor.points for factor in factors)))
            classification = settings.classify(score)

        return RiskAssessment(
            phone=lead.phone,
            score=score,
            classification=classification,
            flags=tuple(factor.label for factor in factors),
            factors=tuple(factors),
            explanation=explain(classification, factors),
            recommendations=tuple(recommend(classification, factors)),
            assessed_at=self._clock(),
        )


def explain(classification: Classification, factors: List[RiskFactor]) -> str:
    """Return a human readable explanation for an assessment."""

    labels = {factor.label for factor in factors}
    if not factors:
        return "This phone number has no known risk factors."
    if classification == Classification.BLOCKED:
        if LITIGATOR_SOURCE in labels:
            return "This phone number matches a known litigator record and must not be called."
        return "This phone number is listed on Do Not Call registries and must not be called."
    if classification == Classification.CAUTION:
        reasons = [factor.description.lower() for factor in factors if factor.points > 0]
        return f"Proceed with caution: {'; '.join(reasons)}."
    if UNKNOWN_COVERAGE_FLAG in labels:
        return "No registry matches within the authorized coverage; registry status outside coverage is unknown."
    return "This phone number has minor risk factors but no blocking registry matches."


def recommend(classification: Classification, factors: List[RiskFactor]) -> List[str]:
    labels = {factor.label for factor in factors}
    if classification == Classification.BLOCKED:
        return [
            "Do not call this number",
            "Remove from your calling list",
            "Document the scrub result for compliance records",
        ]
    recommendations: List[str] = []
    if classification == Classification.CAUTION:
        recommendations.extend(["Verify consent before calling", "Document all contact attempts"])
        if RECENTLY_ADDED_FLAG in labels:
            recommendations.append("Re-check registry status before each contact")
    else:
        recommendations.append("Proceed with standard calling protocols")
    if UNKNOWN_COVERAGE_FLAG in labels:
        recommendations.append("Subscribe to this area code to screen it against the registry")
    return recommendations


__all__ = ["RiskScorer", "ScoringSettings", "explain", "recommend"]
