"""
Text normalization and noise classification for notification email bodies.

Both are pure functions shared by every extraction strategy.
"""

import re

_BREAK_TAG = re.compile(r"<br\s*/?>", re.IGNORECASE)
_PARAGRAPH_CLOSE = re.compile(r"</p>", re.IGNORECASE)
_BLOCK_CLOSE = re.compile(r"</(?:div|tr|li|h[1-6])>", re.IGNORECASE)
_ANY_TAG = re.compile(r"<[^>]+>")

# Only these four entities are decoded; anything else passes through literally
_ENTITIES = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
)

_CSS_DECLARATION = re.compile(
    r"font-family:|font-size:|color:\s*#[0-9a-f]{3,6}|background:|margin:|padding:",
    re.IGNORECASE,
)
_MARKUP_ARTIFACT = re.compile(r"<[a-z]+|&nbsp;|&amp;|style=|class=", re.IGNORECASE)
_NON_ALNUM = re.compile(r"[^a-z0-9]", re.IGNORECASE)

DEFAULT_MIN_ALNUM_RATIO = 0.3


def strip_html(html: str) -> str:
    """
    Convert markup to plain text, keeping line structure.

    ``<br>`` becomes a newline, ``</p>`` two newlines and other block-closing
    tags a newline; every remaining tag is dropped.

    Args:
        html: Markup (or plain text) to convert

    Returns:
        Trimmed plain text
    """
    if not html:
        return ""

    text = _BREAK_TAG.sub("\n", html)
    text = _PARAGRAPH_CLOSE.sub("\n\n", text)
    text = _BLOCK_CLOSE.sub("\n", text)
    text = _ANY_TAG.sub("", text)

    # &amp; last so "&amp;lt;" stays "&lt;"
    for entity, replacement in _ENTITIES:
        text = text.replace(entity, replacement)

    return text.strip()


def normalize_body(text: str = "", html: str = "") -> str:
    """Return the plain-text body, falling back to the stripped markup body."""
    if text:
        return text
    return strip_html(html or "")


def is_garbage(text: str, min_alnum_ratio: float = DEFAULT_MIN_ALNUM_RATIO) -> bool:
    """
    Decide whether a fragment is styling/markup leakage rather than authored text.

    Args:
        text: Candidate fragment
        min_alnum_ratio: Minimum share of ASCII alphanumerics for real text

    Returns:
        True if the fragment should be rejected
    """
    if not text:
        return True

    if _CSS_DECLARATION.search(text):
        return True

    if _MARKUP_ARTIFACT.search(text):
        return True

    alphanumeric = len(text) - len(_NON_ALNUM.findall(text))
    return alphanumeric < len(text) * min_alnum_ratio
