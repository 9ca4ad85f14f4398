import pytest

from agt20.utils.amounts import parse_amount


@pytest.mark.parametrize(
    "value,expected",
    [
        ("0", 0),
        ("42", 42),
        ("007", 7),
        (42, 42),
        ("340282366920938463463374607431768211456", 2**128),
    ],
)
def test_parse_amount_accepts_integers(value, expected):
    assert parse_amount(value) == expected


@pytest.mark.parametrize("value", [None, "", " 1", "1.0", "-1", "+1", "1e3", "abc", -1, 1.0, True, False, [1]])
def test_parse_amount_rejects_everything_else(value):
    assert parse_amount(value) is None

