import pytest

from invigilation.exceptions import ParseError
from invigilation.timerange import TimeRange, overlaps, parse_time_range


@pytest.mark.parametrize(
    "text, expected",
    [
        ("09:00 - 12:00", TimeRange(540, 720)),
        ("9:00-12:30", TimeRange(540, 750)),
        ("  08:15 -   8:45 ", TimeRange(495, 525)),
        ("00:00 - 23:59", TimeRange(0, 1439)),
        ("14:00", TimeRange(840, 840)),
        ("14:00 - ", TimeRange(840, 840)),
    ],
)
def test_parse_time_range(text, expected):
    assert parse_time_range(text) == expected


@pytest.mark.parametrize(
    "text",
    ["", "   ", "noon - 13:00", "09:00 - 1pm", "24:00 - 25:00", "09:60 - 10:00", "9 - 10", "- 10:00"],
)
def test_parse_time_range_rejects_malformed(text):
    with pytest.raises(ParseError):
        parse_time_range(text)


def test_overlap_on_same_date():
    assert overlaps("2024-01-20", "09:00 - 12:00", "2024-01-20", "11:00 - 13:00")
    assert overlaps("2024-01-20", "10:00 - 11:00", "2024-01-20", "09:00 - 12:00")


def test_back_to_back_ranges_do_not_overlap():
    assert not overlaps(
        "2024-01-20", "09:00 - 12:00", "2024-01-20", "12:00 - 14:00"
    )
    assert not overlaps(
        "2024-01-20", "12:00 - 14:00", "2024-01-20", "09:00 - 12:00"
    )


def test_different_dates_never_overlap():
    assert not overlaps(
        "2024-01-20", "09:00 - 12:00", "2024-01-21", "09:00 - 12:00"
    )


def test_different_dates_do_not_parse_times():
    # only same-date bookings are compared
    assert not overlaps("2024-01-20", "garbage", "2024-01-21", "09:00 - 10:00")


@pytest.mark.parametrize(
    "a, b",
    [
        ("09:00 - 12:00", "11:00 - 13:00"),
        ("09:00 - 12:00", "12:00 - 13:00"),
        ("08:00 - 08:30", "09:00 - 10:00"),
        ("09:00 - 17:00", "10:00 - 11:00"),
    ],
)
def test_overlap_is_symmetric(a, b):
    assert overlaps("2024-01-20", a, "2024-01-20", b) == overlaps(
        "2024-01-20", b, "2024-01-20", a
    )


def test_overlap_propagates_parse_errors():
    with pytest.raises(ParseError):
        overlaps("2024-01-20", "09:00 - 12:00", "2024-01-20", "nine - ten")
