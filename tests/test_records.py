import pytest

from dnc_scrubber.models import InvalidRecord, LeadRecord, PhoneKey
from dnc_scrubber.records import build_lead_record, normalize_state, split_record


def test_known_columns_are_resolved_through_synonyms():
    record = build_lead_record(
        3,
        {
            "Phone Number": "(212) 555-0199",
            "First Name": "Ada",
            "last_name": "Lovelace",
            "Email_Address": "ada@example.com",
            "ZIP": "10001",
            "state": "ny",
            "Campaign": "spring",
        },
    )

    assert isinstance(record, LeadRecord)
    assert record.index == 3
    assert record.phone == PhoneKey("2125550199")
    assert record.raw_phone == "(212) 555-0199"
    assert record.first_name == "Ada"
    assert record.last_name == "Lovelace"
    assert record.email == "ada@example.com"
    assert record.zip_code == "10001"
    assert record.state == "NY"
    assert record.metadata == {"Campaign": "spring"}
    assert record.display_name() == "Ada Lovelace"


def test_non_scalar_values_are_dropped():
    known, metadata, dropped = split_record(
        {"phone": "2125550199", "tags": ["a", "b"], "extra": {"nested": True}, "score": 7}
    )

    assert known["phone"] == "2125550199"
    assert metadata == {"score": "7"}
    assert dropped == ("tags", "extra")


def test_invalid_phone_yields_invalid_record():
    record = build_lead_record(0, {"phone": "555-0100", "name": "Short"})

    assert record == InvalidRecord(index=0, raw_phone="555-0100", reason="too_short")


def test_missing_phone_column_is_reported_as_missing():
    record = build_lead_record(5, {"name": "Nobody"})

    assert isinstance(record, InvalidRecord)
    assert record.reason == "missing"


def test_completeness_counts_fields_and_metadata():
    sparse = build_lead_record(0, {"phone": "2125550199"})
    rich = build_lead_record(1, {"phone": "2125550199", "name": "Ada", "email": "ada@example.com", "note": "vip"})

    assert sparse.completeness() == 0
    assert rich.completeness() == 3


@pytest.mark.parametrize(
    "raw, expected",
    [("Utah", "UT"), ("ut", "UT"), (" new  york ", "NY"), ("N.Y.", "NY"), ("District of Columbia", "DC"), ("Ontario", None), (None, None)],
)
def test_normalize_state(raw, expected):
    assert normalize_state(raw) == expected


def test_full_state_names_become_codes():
    record = build_lead_record(0, {"phone": "8015550100", "state": "Utah"})

    assert record.state == "UT"
    assert "state" not in record.metadata


def test_unrecognised_state_is_kept_in_metadata():
    record = build_lead_record(0, {"phone": "8015550100", "state": "Utahh"})

    assert record.state is None
    assert record.metadata == {"state": "Utahh"}
