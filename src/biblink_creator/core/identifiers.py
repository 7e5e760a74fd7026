"""Identifier kinds handled by the link creator.

Category A identifiers are precise (checksum or grammar validated) and can
link two records on their own. Category B identifiers (ISSN, journal title)
name a serial rather than an item, so matching on them needs the publication
year and title as context.
"""

from enum import Enum


class IdentifierKind(str, Enum):
    ARXIV_ID = "arxiv"
    DOI = "doi"
    ISBN = "isbn"
    ISSN = "issn"
    JOURNAL_TITLE = "journal_title"
    LCCN = "lccn"
    OCLC = "oclc"
    PMID = "pmid"

    @property
    def variable_name(self) -> str:
        """SPARQL variable reserved for this identifier in extraction queries."""
        return _VARIABLE_NAMES[self]

    @property
    def display_name(self) -> str:
        """Human readable name used in log events."""
        return _DISPLAY_NAMES[self]

    @property
    def requires_year(self) -> bool:
        """Category B queries must bind ?year alongside the identifier."""
        return self in CATEGORY_B


CATEGORY_A: frozenset[IdentifierKind] = frozenset(
    {
        IdentifierKind.ARXIV_ID,
        IdentifierKind.DOI,
        IdentifierKind.ISBN,
        IdentifierKind.LCCN,
        IdentifierKind.OCLC,
        IdentifierKind.PMID,
    }
)

CATEGORY_B: frozenset[IdentifierKind] = frozenset(
    {IdentifierKind.ISSN, IdentifierKind.JOURNAL_TITLE}
)

_VARIABLE_NAMES: dict[IdentifierKind, str] = {
    IdentifierKind.ARXIV_ID: "arxivID",
    IdentifierKind.DOI: "doi",
    IdentifierKind.ISBN: "isbn",
    IdentifierKind.ISSN: "issn",
    IdentifierKind.JOURNAL_TITLE: "journalTitle",
    IdentifierKind.LCCN: "lccn",
    IdentifierKind.OCLC: "oclc",
    IdentifierKind.PMID: "pmid",
}

_DISPLAY_NAMES: dict[IdentifierKind, str] = {
    IdentifierKind.ARXIV_ID: "arXiv ID",
    IdentifierKind.DOI: "DOI",
    IdentifierKind.ISBN: "ISBN",
    IdentifierKind.ISSN: "ISSN",
    IdentifierKind.JOURNAL_TITLE: "journal title",
    IdentifierKind.LCCN: "LCCN",
    IdentifierKind.OCLC: "OCLC",
    IdentifierKind.PMID: "PMID",
}
