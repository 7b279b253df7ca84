from dnc_scrubber.models import Classification, InvalidRecord, LeadRecord, PhoneKey, RiskAssessment, ScoredLead
from dnc_scrubber.stats import compliance_grade, summarize


def _scored(digits, score, classification, flags=()):
    phone = PhoneKey(digits)
    return ScoredLead(
        LeadRecord(index=0, phone=phone),
        RiskAssessment(phone=phone, score=score, classification=classification, flags=tuple(flags)),
    )


def test_compliance_grade_bands():
    assert compliance_grade(10, 10, 0, 0) == ("A", 100)
    assert compliance_grade(8, 10, 0, 0) == ("B", 80)
    assert compliance_grade(9, 10, 1, 0) == ("B", 85)
    assert compliance_grade(5, 10, 0, 0) == ("F", 50)
    assert compliance_grade(0, 0, 0, 0) == ("F", 0)


def test_summarize_counts_and_scores():
    scored = [
        _scored("2125550199", 0, Classification.CLEAN),
        _scored("6465550123", 50, Classification.CAUTION, ["national", "recently_added"]),
        _scored("2125550123", 100, Classification.BLOCKED, ["litigator"]),
    ]
    invalid = [InvalidRecord(index=4, raw_phone="123", reason="too_short")]

    summary = summarize(scored, invalid, duplicates_removed=2)

    assert summary.total == 6
    assert (summary.clean, summary.caution, summary.blocked, summary.invalid) == (1, 1, 1, 1)
    assert summary.duplicates_removed == 2
    assert summary.litigators == 1
    assert summary.recently_added == 1
    assert summary.area_codes == ["212", "646"]
    assert summary.average_score == 50.0
    assert (summary.highest_score, summary.lowest_score) == (100, 0)
    assert summary.as_dict()["compliance_grade"] == summary.compliance_grade


def test_summarize_empty_batch():
    summary = summarize([], [], 0)

    assert summary.total == 0
    assert summary.compliance_grade == "F"
    assert summary.average_score == 0.0
