"""Tests for ISBN and ISSN check digit arithmetic."""

import pytest

from biblink_creator.normalize.checksums import (
    is_isbn_valid,
    is_issn_valid,
    isbn13_check_digit,
    to_isbn13,
)


@pytest.mark.parametrize("isbn", ["0306406152", "9780306406157", "080442957X", "080442957x"])
def test_valid_isbns(isbn: str) -> None:
    assert is_isbn_valid(isbn)


@pytest.mark.parametrize("isbn", ["0306406153", "9780306406158", "978030640615X", "030640615", "", "03064061a2"])
def test_invalid_isbns(isbn: str) -> None:
    assert not is_isbn_valid(isbn)


def test_isbn10_converted_with_recomputed_check_digit() -> None:
    assert isbn13_check_digit("978030640615") == "7"
    assert to_isbn13("0306406152") == "9780306406157"


def test_issn_check_digit() -> None:
    assert is_issn_valid("03178471")
    assert not is_issn_valid("03178472")
    assert is_issn_valid("2434561X")
    assert not is_issn_valid("0317847")
