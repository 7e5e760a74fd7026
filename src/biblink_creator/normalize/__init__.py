"""
Identifier normalization for bibliographic link creation.

This package turns raw identifier strings read from the source repositories
into canonical, validated values that can be compared across repositories:
- Check digit validation for ISBN-10/13 and ISSN, with ISBN-10 upgraded to ISBN-13
- Grammar validation for DOIs, arXiv IDs (both numbering schemes) and LCCNs
- Digit extraction for OCLC numbers and PMIDs
- Title and year clean-up used for the record metadata and journal titles

User supplied replacement rules run before the built-in normalization.
"""

from .identifiers import (
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

__all__ = [
    "format_arxiv_id",
    "format_doi",
    "format_isbn",
    "format_issn",
    "format_lccn",
    "format_oclc",
    "format_pmid",
    "format_title",
    "format_year",
    "normalize_identifier",
]
