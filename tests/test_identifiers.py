"""Tests for identifier normalization and validation."""

import pytest

from biblink_creator.core.identifiers import CATEGORY_A, CATEGORY_B, IdentifierKind
from biblink_creator.core.models import ReplacementMode, StringReplacementRule
from biblink_creator.normalize import (
    format_arxiv_id,
    format_doi,
    format_isbn,
    format_issn,
    format_lccn,
    format_oclc,
    format_pmid,
    format_title,
    format_year,
    normalize_identifier,
)


class TestIdentifierKind:
    def test_categories_partition_kinds(self) -> None:
        assert CATEGORY_A | CATEGORY_B == set(IdentifierKind)
        assert not CATEGORY_A & CATEGORY_B
        assert IdentifierKind.ISSN.requires_year
        assert not IdentifierKind.DOI.requires_year

    def test_variable_names(self) -> None:
        assert IdentifierKind.ARXIV_ID.variable_name == "arxivID"
        assert IdentifierKind.JOURNAL_TITLE.variable_name == "journalTitle"


class TestIsbn:
    def test_isbn10_upgraded_to_isbn13(self) -> None:
        result = format_isbn("0306406152")
        assert result.is_valid
        assert result.value == "9780306406157"

    def test_separators_removed(self) -> None:
        assert format_isbn("978-0-306-40615-7").value == "9780306406157"
        assert format_isbn("ISBN 0-306-40615-2").value == "9780306406157"

    def test_bad_check_digit(self) -> None:
        result = format_isbn("0306406153")
        assert not result.is_valid
        assert result.value == ""

    def test_empty(self) -> None:
        assert not format_isbn("").is_valid

    def test_isbn13_normalization_is_idempotent(self) -> None:
        first = format_isbn("978-0-306-40615-7")
        assert format_isbn(first.value) == first


class TestIssn:
    def test_valid(self) -> None:
        assert format_issn("0317-8471").value == "03178471"

    def test_invalid_check_digit(self) -> None:
        assert not format_issn("0317-8472").is_valid

    def test_lowercase_check_digit_upper_cased(self) -> None:
        result = format_issn("2434-561x")
        assert result.is_valid
        assert result.value == "2434561X"


class TestDoi:
    @pytest.mark.parametrize(
        "raw",
        [
            "10.1000/xyz123",
            "doi:10.1000/xyz123",
            "https://doi.org/10.1000/xyz123",
            "10.1000%2Fxyz123",
            "  10.1000/XYZ123  ",
        ],
    )
    def test_variants_share_canonical_form(self, raw: str) -> None:
        result = format_doi(raw)
        assert result.is_valid
        assert result.value == "10.1000/XYZ123"

    @pytest.mark.parametrize("raw", ["", "10.1000", "no doi here", "10.1000/%ZZ", "10.1000/%FF"])
    def test_invalid(self, raw: str) -> None:
        assert not format_doi(raw).is_valid

    def test_only_ascii_letters_folded(self) -> None:
        assert format_doi("10.1000/é").value == "10.1000/é"


class TestArxiv:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("arXiv:hep-th/9901001v1", "hep-th/9901001v1"),
            ("math.GT/0309136", "math/0309136"),
            ("quantph/9901001", "quant-ph/9901001"),
            ("0704.0001", "0704.0001"),
            ("arXiv:1501.00001v2", "1501.00001v2"),
        ],
    )
    def test_valid(self, raw: str, expected: str) -> None:
        result = format_arxiv_id(raw)
        assert result.is_valid
        assert result.value == expected

    @pytest.mark.parametrize(
        "raw",
        [
            "0703.0001",  # new scheme starts April 2007
            "0704.001",  # four digit serial before 2015
            "1501.0001",  # five digit serial from 2015
            "1413.00001",  # month 13
            "foo/9901001",  # unknown archive
            "hep-th/0704001",  # old scheme ends March 2007
            "hep-th/9901001v",  # empty version
            "hep-th/9901001v1v2",
            "a/b/c",
        ],
    )
    def test_invalid(self, raw: str) -> None:
        assert not format_arxiv_id(raw).is_valid


class TestLccn:
    def test_whitespace_removed_prefix_kept(self) -> None:
        assert format_lccn("n 78890351").value == "n78890351"

    def test_unknown_prefix(self) -> None:
        assert not format_lccn("zz78890351").is_valid

    def test_lc_prefix_dropped(self) -> None:
        assert format_lccn("lc85000002").value == "85000002"

    def test_hyphenated_serial_padded(self) -> None:
        assert format_lccn("85-2").value == "85000002"
        assert format_lccn("2001-1234/M").value == "2001001234"

    @pytest.mark.parametrize("raw", ["85-2-3", "85-", "-2", "/2001"])
    def test_invalid(self, raw: str) -> None:
        assert not format_lccn(raw).is_valid


class TestDigitIdentifiers:
    def test_oclc(self) -> None:
        assert format_oclc("(OCoLC)12345").value == "12345"
        assert not format_oclc("ocm").is_valid

    def test_pmid(self) -> None:
        assert format_pmid("PMID: 123456").value == "123456"
        assert not format_pmid("n/a").is_valid


class TestTitleAndYear:
    def test_title_lowercased_without_symbols(self) -> None:
        result = format_title("The Art of Computer Programming: Volume 1.")
        assert result.value == "the art of computer programming volume 1"

    def test_title_control_chars_become_spaces(self) -> None:
        assert format_title("Data\tMining").value == "data mining"

    def test_title_of_symbols_only_is_invalid(self) -> None:
        assert not format_title("[...]").is_valid

    @pytest.mark.parametrize(("raw", "expected"), [("1999", "1999"), ("1999-05-01", "1999"), ("c1999", "1999")])
    def test_year(self, raw: str, expected: str) -> None:
        assert format_year(raw).value == expected

    @pytest.mark.parametrize("raw", ["", "99", "n.d."])
    def test_invalid_year(self, raw: str) -> None:
        assert not format_year(raw).is_valid


class TestNormalizeIdentifier:
    def test_dispatch(self) -> None:
        assert normalize_identifier("0306406152", IdentifierKind.ISBN).value == "9780306406157"
        assert normalize_identifier("Nature.", IdentifierKind.JOURNAL_TITLE).value == "nature"

    def test_rules_applied_before_validation(self) -> None:
        rules = [StringReplacementRule(search=" vol. 2", replacement="", mode=ReplacementMode.BEFORE_END)]
        assert normalize_identifier("0306406152 vol. 2", IdentifierKind.ISBN, rules).value == "9780306406157"

    def test_never_raises(self) -> None:
        for kind in IdentifierKind:
            for raw in ["", " ", "\x00", "%", "////", "v", "-"]:
                result = normalize_identifier(raw, kind)
                assert result.is_valid or result.value == ""
