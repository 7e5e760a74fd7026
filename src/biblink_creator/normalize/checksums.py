"""Check digit arithmetic for ISBN and ISSN."""

DIGITS = frozenset("0123456789")


def _is_digits(text: str) -> bool:
    return bool(text) and all(ch in DIGITS for ch in text)


def is_isbn_valid(isbn: str) -> bool:
    """Validate an ISBN-10 or ISBN-13 consisting of digits (and X for ISBN-10)."""
    if len(isbn) == 10:
        if not _is_digits(isbn[:9]):
            return False
        last = isbn[9]
        if last in "xX":
            check = 10
        elif last in DIGITS:
            check = int(last)
        else:
            return False
        total = sum((10 - i) * int(d) for i, d in enumerate(isbn[:9]))
        return (11 - total % 11) % 11 == check

    if len(isbn) == 13:
        if not _is_digits(isbn):
            return False
        return isbn13_check_digit(isbn[:12]) == isbn[12]

    return False


def isbn13_check_digit(first_twelve: str) -> str:
    total = sum((1 if i % 2 == 0 else 3) * int(d) for i, d in enumerate(first_twelve))
    return str((10 - total % 10) % 10)


def to_isbn13(isbn10: str) -> str:
    """Convert a valid ISBN-10 into the equivalent 978-prefixed ISBN-13."""
    body = "978" + isbn10[:9]
    return body + isbn13_check_digit(body)


def is_issn_valid(issn: str) -> bool:
    if len(issn) != 8 or not _is_digits(issn[:7]):
        return False
    last = issn[7]
    if last in "xX":
        check = 10
    elif last in DIGITS:
        check = int(last)
    else:
        return False
    total = sum((8 - i) * int(d) for i, d in enumerate(issn[:7]))
    return (11 - total % 11) % 11 == check
