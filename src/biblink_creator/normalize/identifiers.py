"""Validation and canonical forms for bibliographic identifiers.

Every formatter is total: malformed input yields an invalid FormatResult
instead of an exception.
"""

import re
from collections.abc import Callable, Sequence
from urllib.parse import unquote

from ..core.identifiers import IdentifierKind
from ..core.models import INVALID, FormatResult, StringReplacementRule
from .checksums import DIGITS, is_isbn_valid, is_issn_valid, to_isbn13
from .strings import prepare, replace_symbols

Rules = Sequence[StringReplacementRule] | None

NON_ISBN_RE = re.compile(r"[^0-9xX]")
NON_DIGIT_RE = re.compile(r"[^0-9]")
WHITESPACE_RE = re.compile(r"\s+")
BAD_PERCENT_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")

# MARC LCCN prefixes, https://www.loc.gov/marc/lccn_structure.html
LCCN_PREFIXES = frozenset({
    "a", "ac", "af", "afl", "agr", "bi", "br", "bs", "c",
    "ca", "cad", "cd", "cf", "clc", "cs", "cx", "cy", "d", "do",
    "e", "es", "f", "fi", "fia", "fie", "g", "gm", "gs",
    "h", "ha", "he", "hew", "hex", "it", "int", "j", "ja",
    "jx", "k", "kx", "l", "llh", "ltf", "m", "ma", "map",
    "med", "mic", "mid", "mie", "mif", "mm", "mp", "mpa",
    "ms", "mus", "n", "nb", "ncn", "ne", "nex", "no", "nr", "ntc", "nuc",
    "or", "pa", "pho", "php", "phq", "po", "pp", "r", "ra",
    "rc", "re", "ru", "s", "sa", "sax", "sc", "sd", "sf",
    "sg", "sh", "sj", "sn", "sp", "ss", "su", "tb", "tmp", "um", "unk", "w",
    "war", "x", "xca", "z",
})

# Archives that issued identifiers in the archive/YYMMNNN scheme.
ARXIV_ARCHIVES = frozenset({
    "stat", "q-bio", "cs", "nlin", "math", "astro-ph", "cond-mat",
    "gr-qc", "hep-ex", "hep-lat", "hep-ph", "hep-th", "math-ph",
    "nucl-ex", "nucl-th", "physics", "quant-ph", "alg-geom",
    "q-alg", "chao-dyn", "adap-org", "patt-sol", "funct-an",
    "dg-da", "comp-gas", "solv-int",
})

ARXIV_LEGACY_SPELLINGS = {
    "quantph": "quant-ph",
    "astroph": "astro-ph",
    "hepth": "hep-th",
}


def _is_numeric(text: str) -> bool:
    return bool(text) and all(ch in DIGITS for ch in text)


def _valid(value: str) -> FormatResult:
    return FormatResult(is_valid=True, value=value)


def _split_version(text: str) -> tuple[str, str | None] | None:
    """Split ``NNNN[vV]``; None when the version part is malformed."""
    parts = text.split("v")
    if len(parts) > 2:
        return None
    if len(parts) == 2:
        if not _is_numeric(parts[1]):
            return None
        return parts[0], parts[1]
    return parts[0], None


def _format_old_arxiv_id(archive_part: str, number_part: str) -> FormatResult:
    # archive.subject/YYMMNNN[vV], used until March 2007
    split = _split_version(number_part)
    if split is None:
        return INVALID
    number, _ = split
    if len(number) != 7 or not _is_numeric(number):
        return INVALID

    archive = archive_part.split(".")[0]
    if archive not in ARXIV_ARCHIVES:
        return INVALID

    year, month = int(number[:2]), int(number[2:4])
    if month == 0 or month > 12:
        return INVALID
    if (year == 7 and month > 3) or 7 < year < 91:
        return INVALID

    return _valid(f"{archive}/{number_part}")


def _format_new_arxiv_id(arxiv_id: str) -> FormatResult:
    # YYMM.NNNN[vV] from April 2007, YYMM.NNNNN[vV] from January 2015
    parts = arxiv_id.split(".")
    if len(parts) != 2 or len(parts[0]) != 4 or not _is_numeric(parts[0]):
        return INVALID
    split = _split_version(parts[1])
    if split is None:
        return INVALID
    serial, _ = split

    year, month = int(parts[0][:2]), int(parts[0][2:])
    if year < 7 or month == 0 or month > 12 or (year == 7 and month <= 3):
        return INVALID
    expected_digits = 4 if year <= 14 else 5
    if len(serial) != expected_digits or not _is_numeric(serial):
        return INVALID

    return _valid(arxiv_id)


def format_arxiv_id(arxiv_id: str, rules: Rules = None) -> FormatResult:
    if not arxiv_id:
        return INVALID
    arxiv_id = prepare(arxiv_id, rules)
    arxiv_id = arxiv_id.replace("arXiv:", "")
    for legacy, current in ARXIV_LEGACY_SPELLINGS.items():
        arxiv_id = arxiv_id.replace(legacy, current)

    parts = arxiv_id.split("/")
    if len(parts) == 2:
        return _format_old_arxiv_id(parts[0], parts[1])
    if len(parts) == 1:
        return _format_new_arxiv_id(parts[0])
    return INVALID


def format_doi(doi: str, rules: Rules = None) -> FormatResult:
    """Canonical DOI: ASCII upper-cased, percent-decoded, starting at ``10.``."""
    if not doi:
        return INVALID
    doi = prepare(doi, rules)
    # DOIs are case-insensitive for ASCII letters only
    doi = "".join(chr(ord(ch) - 32) if "a" <= ch <= "z" else ch for ch in doi)

    if BAD_PERCENT_RE.search(doi):
        return INVALID
    try:
        doi = unquote(doi, encoding="utf-8", errors="strict")
    except UnicodeDecodeError:
        return INVALID

    directory_index = doi.find("10.")
    if directory_index < 0 or doi.find("/", directory_index) < 0:
        return INVALID
    return _valid(doi[directory_index:])


def format_isbn(isbn: str, rules: Rules = None) -> FormatResult:
    """Valid ISBNs are returned as ISBN-13."""
    if not isbn:
        return INVALID
    isbn = NON_ISBN_RE.sub("", prepare(isbn, rules))
    if not is_isbn_valid(isbn):
        return INVALID
    if len(isbn) == 10:
        isbn = to_isbn13(isbn)
    return _valid(isbn)


def format_issn(issn: str, rules: Rules = None) -> FormatResult:
    if not issn:
        return INVALID
    issn = NON_ISBN_RE.sub("", prepare(issn, rules))
    if not is_issn_valid(issn):
        return INVALID
    return _valid(issn.upper())


def format_lccn(lccn: str, rules: Rules = None) -> FormatResult:
    """Normalize a Library of Congress control number.

    Whitespace and any ``/`` suffix (revision date, supplement marker) are
    dropped. A leading alphabetic prefix must be a known MARC prefix, except
    ``lc`` which is discarded. ``YY-NNNN`` forms become ``YY`` plus the
    serial left-padded to six digits.
    """
    if not lccn:
        return INVALID
    lccn = WHITESPACE_RE.sub("", prepare(lccn, rules))
    control_number = lccn.split("/")[0]
    if not control_number:
        return INVALID

    # The last character is never part of the prefix.
    prefix_length = 0
    for ch in control_number[:-1]:
        if ch in DIGITS:
            break
        prefix_length += 1

    prefix = control_number[:prefix_length]
    if prefix == "lc":
        prefix = ""
    elif prefix and prefix not in LCCN_PREFIXES:
        return INVALID

    remainder = control_number[prefix_length:]
    if not remainder:
        return INVALID

    dash_parts = remainder.split("-")
    if len(dash_parts) > 2:
        return INVALID
    if len(dash_parts) == 2:
        year = NON_DIGIT_RE.sub("", dash_parts[0])
        serial = NON_DIGIT_RE.sub("", dash_parts[1])
        if not year or not serial:
            return INVALID
        remainder = year + serial.zfill(6)

    return _valid(prefix + remainder)


def format_oclc(oclc: str, rules: Rules = None) -> FormatResult:
    if not oclc:
        return INVALID
    oclc = NON_DIGIT_RE.sub("", prepare(oclc, rules))
    return _valid(oclc) if oclc else INVALID


def format_pmid(pmid: str, rules: Rules = None) -> FormatResult:
    if not pmid:
        return INVALID
    pmid = NON_DIGIT_RE.sub("", prepare(pmid, rules))
    return _valid(pmid) if pmid else INVALID


def format_title(title: str, rules: Rules = None) -> FormatResult:
    """Lower-cased title with punctuation and symbols replaced by spaces."""
    if not title:
        return INVALID
    title = replace_symbols(prepare(title, rules, control_replacement=" "))
    return _valid(title.lower()) if title else INVALID


def format_year(year: str, rules: Rules = None) -> FormatResult:
    """Four digit year taken from a year or an ISO-like date."""
    year = prepare(year, rules)
    year = NON_DIGIT_RE.sub("", year.split("-")[0])
    return _valid(year) if len(year) == 4 else INVALID


FORMATTERS: dict[IdentifierKind, Callable[[str, Rules], FormatResult]] = {
    IdentifierKind.ARXIV_ID: format_arxiv_id,
    IdentifierKind.DOI: format_doi,
    IdentifierKind.ISBN: format_isbn,
    IdentifierKind.ISSN: format_issn,
    IdentifierKind.JOURNAL_TITLE: format_title,
    IdentifierKind.LCCN: format_lccn,
    IdentifierKind.OCLC: format_oclc,
    IdentifierKind.PMID: format_pmid,
}


def normalize_identifier(raw: str, kind: IdentifierKind, rules: Rules = None) -> FormatResult:
    """Validate ``raw`` as an identifier of ``kind`` and return its canonical form."""
    return FORMATTERS[kind](raw, rules)
