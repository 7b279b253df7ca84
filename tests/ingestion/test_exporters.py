from datetime import datetime, timezone

import pandas as pd

from dnc_scrubber.ingestion.exporters import export_scrub_result, result_to_dataframe
from dnc_scrubber.models import Classification, InvalidRecord, LeadRecord, PhoneKey, RiskAssessment, ScoredLead
from dnc_scrubber.orchestrator import ScrubResult
from dnc_scrubber.stats import summarize


def _scored(index, digits, score, classification, flags=(), **fields):
    phone = PhoneKey(digits)
    return ScoredLead(
        LeadRecord(index=index, phone=phone, raw_phone=digits, **fields),
        RiskAssessment(
            phone=phone,
            score=score,
            classification=classification,
            flags=tuple(flags),
            assessed_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
        ),
    )


def _build_sample_result() -> ScrubResult:
    clean = [_scored(0, "2125550199", 0, Classification.CLEAN, name="Ada Lovelace", metadata={"region": "NY"})]
    caution = [_scored(1, "6465550123", 40, Classification.CAUTION, ["national"], email="grace@example.com")]
    blocked = [_scored(2, "2125550123", 100, Classification.BLOCKED, ["litigator", "national"])]
    invalid = [InvalidRecord(index=3, raw_phone="555-0100", reason="too_short")]
    return ScrubResult(
        job_id="job-1",
        clean=clean,
        caution=caution,
        blocked=blocked,
        invalid=invalid,
        duplicates_removed=1,
        summary=summarize(clean + caution + blocked, invalid, 1),
    )


def test_result_to_dataframe_orders_buckets_and_keeps_metadata():
    dataframe = result_to_dataframe(_build_sample_result())

    assert list(dataframe["classification"]) == ["clean", "caution", "blocked"]
    assert "metadata.region" in dataframe.columns
    assert dataframe.loc[0, "name"] == "Ada Lovelace"
    assert dataframe.loc[2, "flags"] == "litigator, national"


def test_export_scrub_result_to_csv_and_excel(tmp_path):
    result = _build_sample_result()

    csv_path = tmp_path / "out" / "results.csv"
    excel_path = tmp_path / "results.xlsx"

    export_scrub_result(result, csv_path)
    export_scrub_result(result, excel_path)

    csv_frame = pd.read_csv(csv_path, dtype=str)
    assert list(csv_frame["classification"]) == ["clean", "caution", "blocked", "invalid"]
    assert csv_frame.loc[3, "flags"] == "too_short"

    sheets = pd.read_excel(excel_path, sheet_name=None, dtype=str)
    assert set(sheets) == {"clean", "caution", "blocked", "invalid", "summary"}
    assert sheets["caution"].loc[0, "email"] == "grace@example.com"
    assert sheets["invalid"].loc[0, "reason"] == "too_short"
    summary = dict(zip(sheets["summary"]["metric"], sheets["summary"]["value"]))
    assert summary["duplicates_removed"] == "1"
    assert summary["blocked"] == "1"
