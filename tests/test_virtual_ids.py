import pytest

from virtual_ids import VirtualId, decode, encode, is_virtual


def test_encode_pads_year_and_month():
    assert encode(42, 2025, 3) == "42::2025-03"
    assert encode(7, 999, 12) == "7::0999-12"


def test_decode_returns_components():
    parsed = decode("42::2025-03")
    assert parsed == VirtualId(root_id=42, year=2025, month=3)
    assert parsed.key == "2025-03"
    assert str(parsed) == "42::2025-03"


@pytest.mark.parametrize(
    "value",
    [
        "42",
        "",
        "abc",
        "42::2025-13",
        "42::2025-00",
        "42::25-03",
        "42::2025-3",
        "42:2025-03",
        "::2025-03",
        "42::2025-03\n",
        "42::2025-03::1",
        "٤٢::2025-03",
    ],
)
def test_decode_rejects_malformed_ids(value):
    assert decode(value) is None
    assert not is_virtual(value)


def test_decode_ignores_non_strings():
    assert decode(42) is None
    assert decode(None) is None
