import pytest

from bookstore.schemas import Expiry


@pytest.mark.parametrize("text, month, year", [
    ("4/27", 4, 27),
    ("04/27", 4, 27),
    ("12/21", 12, 21),
    ("1/99", 1, 99),
])
def test_parse_accepts_month_and_two_digit_year(text, month, year):
    expiry = Expiry.parse(text)
    assert expiry == Expiry(month=month, year=year)


@pytest.mark.parametrize("text", [
    "",
    "4",
    "4/",
    "/27",
    "0/27",
    "13/27",
    "12/20",
    "4/27/1",
    "4/27 ",
    " 4/27",
    "ab/27",
    "-1/27",
    "+4/27",
    "4-27",
])
def test_parse_rejects_malformed_text(text):
    assert Expiry.parse(text) is None


def test_str_drops_zero_padding():
    assert str(Expiry.parse("04/27")) == "4/27"
