"""String clean-up shared by every identifier formatter."""

import re
from collections.abc import Sequence

from ..core.models import ReplacementMode, StringReplacementRule

CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x80-\x9f]")
SPACES_RE = re.compile(r" +")

# Removed from titles before comparison.
SYMBOLS = (
    "’", "[", "]", "(", ")", "{", "}", "‒", "–", "—",
    "―", "‐", "-", "‹", "›", "«", "»", "`", "‘",
    "“", "”", "/", ",", ".", "~", "©", "℗", "®", "℠",
    "™", "_", ":", "|", ";", "¿", "?", "€", "$",
    "'", "\\", '"',
)


def replace_control_chars(text: str, replacement: str = "") -> str:
    """Replace C0 and C1 control characters."""
    return CONTROL_CHARS_RE.sub(replacement, text)


def collapse_spaces(text: str) -> str:
    return SPACES_RE.sub(" ", text).strip()


def apply_replacement_rules(text: str, rules: Sequence[StringReplacementRule]) -> str:
    """Apply user supplied search/replace rules in order.

    ``AFTER_INDEX`` and ``BEFORE_INDEX`` split the current string at the rule
    index, clamped to the string bounds, and only touch the selected half.
    A ``REGEX`` rule with an invalid pattern is skipped.
    """
    for rule in rules:
        index = min(max(rule.index, 0), len(text))

        if rule.mode is ReplacementMode.ANYWHERE:
            text = text.replace(rule.search, rule.replacement)
        elif rule.mode is ReplacementMode.BEFORE_END:
            if len(text) > len(rule.search) and text.endswith(rule.search):
                text = text[: len(text) - len(rule.search)] + rule.replacement
        elif rule.mode is ReplacementMode.AFTER_INDEX:
            if index < len(text):
                text = text[:index] + text[index:].replace(rule.search, rule.replacement)
        elif rule.mode is ReplacementMode.BEFORE_INDEX:
            if index > 0:
                text = text[:index].replace(rule.search, rule.replacement) + text[index:]
        elif rule.mode is ReplacementMode.REGEX:
            try:
                text = re.sub(rule.search, rule.replacement, text)
            except (re.error, IndexError):
                # bad pattern or bad group reference in the replacement
                continue

    return text


def prepare(
    text: str,
    rules: Sequence[StringReplacementRule] | None = None,
    control_replacement: str = "",
) -> str:
    """Common preamble: drop control chars, apply rules, collapse spaces."""
    text = replace_control_chars(text, control_replacement)
    if rules:
        text = apply_replacement_rules(text, rules)
    return collapse_spaces(text)


def replace_symbols(text: str) -> str:
    for symbol in SYMBOLS:
        text = text.replace(symbol, " ")
    return collapse_spaces(text)
