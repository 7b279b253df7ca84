import pytest

from dnc_scrubber.models import PhoneKey
from dnc_scrubber.normalizer import RejectionReason, format_phone, is_toll_free, normalize_many, normalize_phone


@pytest.mark.parametrize(
    "raw",
    [
        "(801) 555-0100",
        "801.555.0100",
        "801-555-0100",
        "8015550100",
        "1-801-555-0100",
        "+1 801 555 0100",
        "011 1 801 555 0100",
        "801-555-0100 ext. 42",
        "801 555 0100 x7",
        "801/555/0100",
    ],
)
def test_equivalent_formats_share_one_key(raw):
    result = normalize_phone(raw)

    assert result.ok
    assert result.key == PhoneKey("8015550100")
    assert result.original == raw


def test_integer_input_is_accepted():
    assert normalize_phone(8015550100).key == PhoneKey("8015550100")


@pytest.mark.parametrize(
    "raw, reason",
    [
        (None, RejectionReason.MISSING),
        ("   ", RejectionReason.MISSING),
        ("555-0100", RejectionReason.TOO_SHORT),
        ("801-555-01000-12", RejectionReason.TOO_LONG),
        ("1-800-FLOWERS", RejectionReason.INVALID_CHARACTERS),
        ("801*555*0100", RejectionReason.INVALID_CHARACTERS),
        ("+44 20 7946 0958", RejectionReason.UNSUPPORTED_COUNTRY),
        ("011 44 20 7946 0958", RejectionReason.UNSUPPORTED_COUNTRY),
        ("28015550100", RejectionReason.UNSUPPORTED_COUNTRY),
        ("0125550100", RejectionReason.INVALID_PREFIX),
        ("8011550100", RejectionReason.INVALID_PREFIX),
    ],
)
def test_rejections_carry_a_reason(raw, reason):
    result = normalize_phone(raw)

    assert not result.ok
    assert result.key is None
    assert result.reason == reason


def test_normalize_is_deterministic():
    assert normalize_phone(" (212) 555-0199 ") == normalize_phone(" (212) 555-0199 ")


def test_normalize_many_preserves_order():
    results = normalize_many(["212-555-0199", "bad", "646 555 0123"])

    assert [result.ok for result in results] == [True, False, True]
    assert results[2].key.area_code == "646"


def test_format_phone_styles():
    key = PhoneKey("2125550199")

    assert format_phone(key) == "212-555-0199"
    assert format_phone(key, "parentheses") == "(212) 555-0199"
    assert format_phone(key, "dots") == "212.555.0199"
    with pytest.raises(ValueError):
        format_phone(key, "spaces")


def test_is_toll_free():
    assert is_toll_free(PhoneKey("8005550100"))
    assert not is_toll_free(PhoneKey("2125550199"))


def test_phone_key_rejects_malformed_digits():
    with pytest.raises(ValueError):
        PhoneKey("12345")
