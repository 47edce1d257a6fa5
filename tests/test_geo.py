import pytest

from civic_locator.geo import format_coordinate_pair, is_valid_coordinate, parse_coordinate_pair, wrap_longitude


@pytest.mark.parametrize(
    "lng,expected",
    [(77.6065, 77.6065), (437.6065, 77.6065), (-282.3935, 77.6065), (180.0, -180.0), (-180.0, -180.0)],
)
def test_wrap_longitude(lng, expected):
    assert wrap_longitude(lng) == pytest.approx(expected)


def test_parse_coordinate_pair_accepts_typed_pair():
    assert parse_coordinate_pair(" 12.9352 , 77.6245 ") == (12.9352, 77.6245)
    assert parse_coordinate_pair("Koramangala") is None
    assert parse_coordinate_pair("95, 77.6") is None


def test_format_and_validity():
    assert format_coordinate_pair(12.97523, 77.60651) == "12.9752, 77.6065"
    assert is_valid_coordinate(12.97, 77.59)
    assert not is_valid_coordinate(12.97, 437.59)
