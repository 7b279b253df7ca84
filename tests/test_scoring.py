from datetime import datetime, timedelta, timezone

import pytest

from dnc_scrubber.models import (
    LITIGATOR_SOURCE,
    NATIONAL_SOURCE,
    AuthorizedScope,
    Classification,
    LeadRecord,
    PhoneKey,
    state_source,
)
from dnc_scrubber.registry.store import RegistryStore
from dnc_scrubber.scoring import RECENTLY_ADDED_FLAG, UNKNOWN_COVERAGE_FLAG, RiskScorer, ScoringSettings

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
LONG_AGO = NOW - timedelta(days=400)
SCOPE = AuthorizedScope(
    area_codes=frozenset({"212", "305"}),
    sources=frozenset({NATIONAL_SOURCE, LITIGATOR_SOURCE, state_source("FL")}),
)


def _store(*listings):
    store = RegistryStore()
    for digits, source, added_at in listings:
        with store.update({digits[:3]}) as update:
            update.add(PhoneKey(digits), source, digits[:3], added_at)
    return store


def _lead(digits, state=None):
    return LeadRecord(index=0, phone=PhoneKey(digits), state=state)


@pytest.fixture()
def scorer():
    return RiskScorer(SCOPE, clock=lambda: NOW)


def test_unlisted_number_is_clean(scorer):
    assessment = scorer.score(_lead("2125550199"), _store())

    assert assessment.score == 0
    assert assessment.classification == Classification.CLEAN
    assert assessment.flags == ()
    assert assessment.recommendations == ("Proceed with standard calling protocols",)


def test_national_listing_is_caution(scorer):
    store = _store(("2125550199", NATIONAL_SOURCE, LONG_AGO))

    assessment = scorer.score(_lead("2125550199"), store)

    assert assessment.score == 40
    assert assessment.classification == Classification.CAUTION
    assert assessment.flags == (NATIONAL_SOURCE,)


def test_litigator_forces_blocked_and_keeps_other_flags(scorer):
    store = _store(
        ("2125550199", NATIONAL_SOURCE, LONG_AGO),
        ("2125550199", LITIGATOR_SOURCE, LONG_AGO),
    )

    assessment = scorer.score(_lead("2125550199"), store)

    assert assessment.score == 100
    assert assessment.classification == Classification.BLOCKED
    assert assessment.flags == (LITIGATOR_SOURCE, NATIONAL_SOURCE)
    assert "litigator" in assessment.explanation


def test_state_listing_only_counts_for_the_leads_state(scorer):
    store = _store(("3055550100", state_source("FL"), LONG_AGO), ("3055550100", NATIONAL_SOURCE, LONG_AGO))

    in_state = scorer.score(_lead("3055550100", state="FL"), store)
    out_of_state = scorer.score(_lead("3055550100", state="GA"), store)

    assert in_state.score == 65
    assert in_state.flags == (NATIONAL_SOURCE, state_source("FL"))
    assert out_of_state.score == 40


def test_recent_listing_adds_recency_points(scorer):
    store = _store(("2125550199", NATIONAL_SOURCE, NOW - timedelta(days=3)))

    assessment = scorer.score(_lead("2125550199"), store)

    assert assessment.score == 50
    assert assessment.flags == (NATIONAL_SOURCE, RECENTLY_ADDED_FLAG)
    assert "Re-check registry status before each contact" in assessment.recommendations


def test_recency_uses_last_contact_date(scorer):
    added = NOW - timedelta(days=90)
    store = _store(("2125550199", NATIONAL_SOURCE, added))

    assessment = scorer.score(_lead("2125550199"), store, last_contact_date=added + timedelta(days=10))

    assert RECENTLY_ADDED_FLAG in assessment.flags


def test_high_combined_score_is_blocked():
    settings = ScoringSettings(national_weight=60, state_weight=30)
    scorer = RiskScorer(SCOPE, settings, clock=lambda: NOW)
    store = _store(("3055550100", state_source("FL"), LONG_AGO), ("3055550100", NATIONAL_SOURCE, LONG_AGO))

    assessment = scorer.score(_lead("3055550100", state="FL"), store)

    assert assessment.score == 90
    assert assessment.classification == Classification.BLOCKED


def test_area_code_outside_scope_is_flagged_unknown(scorer):
    store = _store(("6465550123", NATIONAL_SOURCE, LONG_AGO))

    assessment = scorer.score(_lead("6465550123"), store)

    assert assessment.score == 0
    assert assessment.classification == Classification.CLEAN
    assert assessment.flags == (UNKNOWN_COVERAGE_FLAG,)
    assert "outside" in assessment.explanation


def test_litigator_outside_coverage_is_still_blocked(scorer):
    store = _store(("6465550123", LITIGATOR_SOURCE, LONG_AGO))

    assessment = scorer.score(_lead("6465550123"), store)

    assert assessment.score == 100
    assert assessment.classification == Classification.BLOCKED
    assert assessment.flags == (LITIGATOR_SOURCE, UNKNOWN_COVERAGE_FLAG)


def test_litigator_is_blocked_even_when_scope_omits_the_source():
    scope = AuthorizedScope(area_codes=frozenset({"212"}), sources=frozenset({NATIONAL_SOURCE}))
    scorer = RiskScorer(scope, clock=lambda: NOW)
    store = _store(("2125550123", LITIGATOR_SOURCE, LONG_AGO))

    assessment = scorer.score(_lead("2125550123"), store)

    assert assessment.score == 100
    assert assessment.classification == Classification.BLOCKED
    assert assessment.flags == (LITIGATOR_SOURCE,)


@pytest.mark.parametrize(
    "score, expected",
    [(0, Classification.CLEAN), (29, Classification.CLEAN), (30, Classification.CAUTION), (79, Classification.CAUTION), (80, Classification.BLOCKED), (100, Classification.BLOCKED)],
)
def test_threshold_boundaries_are_inclusive(score, expected):
    assert ScoringSettings().classify(score) == expected


def test_invalid_thresholds_are_refused():
    with pytest.raises(ValueError):
        ScoringSettings(caution_threshold=90, blocked_threshold=80)


def test_scoring_is_deterministic(scorer):
    store = _store(("2125550199", NATIONAL_SOURCE, NOW - timedelta(days=3)))

    assert scorer.score(_lead("2125550199"), store) == scorer.score(_lead("2125550199"), store)
