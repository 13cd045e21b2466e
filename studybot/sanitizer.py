"""Post-processing of model answers: HTML and Markdown link repair.

The model is asked for Markdown but sometimes emits HTML anchors, broken
attribute fragments or protocol-relative links. Each pass below is a pure
text-to-text regex transform; they run in a fixed order because later passes
assume anchors and links have already been normalised, and the composition
is idempotent.
"""

import re

from .config import config

logger = config.get_logger(__name__)

# Pass 1: HTML fragments
_ANCHOR_RE = re.compile(
    r"<a\s+[^>]*?href=[\"']([^\"']+)[\"'][^>]*>([^<]+)</a>",
    re.IGNORECASE,
)
_ORPHAN_FRAGMENT_RE = re.compile(
    r"[a-zA-Z0-9\-_.]+\.(?:aspx|html|php|htm)[\"'][^>\n]*>([^<\n]+)"
)
_STRAY_ANCHOR_TAG_RE = re.compile(r"</?a\b[^>]*>", re.IGNORECASE)
_ORPHAN_ATTRIBUTE_RE = re.compile(
    r"[ \t]*\b(?:target|rel|class)=[\"'][^\"']*[\"']",
    re.IGNORECASE,
)

# Pass 2: colon-introduced lists
_COLON_LIST_RE = re.compile(
    r":(?:[ \t]*\n[ \t]*|[ \t]+)(?=(?:\d{1,2}\.(?!\d)|[-*•][ \t]))"
)

# Pass 3: numbered items
_ITEM_SPACE_RE = re.compile(r"^([ \t]*\d{1,2}\.)(?=[^\s\d])", re.MULTILINE)
_NUMBERED_LINE_RE = re.compile(r"[ \t]*\d{1,2}\.(?!\d)")
_INLINE_ITEM_RE = re.compile(r"[ \t]+(?=\d{1,2}\.(?!\d)[ \t]*[^\s\d])(?![^\[\]\n]*\])")

# Pass 4: Markdown links missing parentheses
_BARE_LINK_TARGET_RE = re.compile(r"\[([^\]\n]+)\]((?:https?:)?//[^\s()\[\]<>]+)")

# Pass 5: e-mail addresses
_EMAIL_GAP_RE = re.compile(
    r"([\w.+-]+)[ \t]*@[ \t]*([\w-]+(?:\.[\w-]+)*\.[A-Za-z]{2,})\b"
)

# Pass 6: protocol-relative URLs
_RELATIVE_LINK_TARGET_RE = re.compile(r"\[([^\]\n]+)\]\((//[^)\s]+)\)")
# Scheme-qualified URLs match too and are kept unchanged.
_RELATIVE_URL_RE = re.compile(
    r"(?<![\w:/@])(https?:)?(//[a-zA-Z0-9][^\s()\[\]<>]*)"
)

# Pass 7: parentheses around bare URLs
_PARENTHESIZED_URL_RE = re.compile(r"(?<!\])\((https?://[^\s()]+)\)")

# Pass 8: whitespace
_HORIZONTAL_RUN_RE = re.compile(r"[ \t]{2,}")
_TRAILING_SPACE_RE = re.compile(r"[ \t]+\n")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def repair_html(text: str) -> str:
    """Convert anchors to Markdown and drop orphaned HTML fragments.

    Returns:
        Text without anchor tags or dangling link attributes.
    """
    text = _ANCHOR_RE.sub(lambda m: f"[{m.group(2).strip()}]({m.group(1)})", text)
    text = _ORPHAN_FRAGMENT_RE.sub(r"\1", text)
    text = _STRAY_ANCHOR_TAG_RE.sub("", text)
    return _ORPHAN_ATTRIBUTE_RE.sub("", text)


def normalize_colon_lists(text: str) -> str:
    """Put a blank line between a colon and the list it introduces.

    Returns:
        Text with ``:\\n\\n`` before colon-introduced list items.
    """
    return _COLON_LIST_RE.sub(":\n\n", text)


def normalize_numbered_items(text: str) -> str:
    """Give every numbered item its own line and a space after the period.

    Returns:
        Text with one numbered item per line.
    """
    text = _ITEM_SPACE_RE.sub(r"\1 ", text)
    lines = []
    for line in text.split("\n"):
        if _NUMBERED_LINE_RE.match(line):
            line = _INLINE_ITEM_RE.sub("\n", line)
        lines.append(line)
    return _ITEM_SPACE_RE.sub(r"\1 ", "\n".join(lines))


def fix_markdown_links(text: str) -> str:
    """Wrap link targets that lost their parentheses.

    Returns:
        Text where ``[label]url`` became ``[label](url)``.
    """
    return _BARE_LINK_TARGET_RE.sub(r"[\1](\2)", text)


def fix_emails(text: str) -> str:
    """Close up spaces around the ``@`` of e-mail addresses.

    Returns:
        Text with compact e-mail addresses.
    """
    return _EMAIL_GAP_RE.sub(r"\1@\2", text)


def fix_protocol_relative_urls(text: str) -> str:
    """Rewrite ``//host/path`` to ``https://host/path``.

    Returns:
        Text where every URL has an explicit scheme.
    """
    text = _RELATIVE_LINK_TARGET_RE.sub(r"[\1](https:\2)", text)
    return _RELATIVE_URL_RE.sub(
        lambda m: m.group(0) if m.group(1) else f"https:{m.group(2)}", text
    )


def strip_url_parentheses(text: str) -> str:
    """Remove parentheses wrapped around bare URLs.

    Returns:
        Text where ``(https://x)`` outside a Markdown link became ``https://x``.
    """
    while True:
        text, count = _PARENTHESIZED_URL_RE.subn(r"\1", text)
        if not count:
            return text


def collapse_whitespace(text: str) -> str:
    """Collapse runs of spaces and cap consecutive blank lines at one.

    Returns:
        Text with normalised spacing.
    """
    text = _HORIZONTAL_RUN_RE.sub(" ", text)
    text = _TRAILING_SPACE_RE.sub("\n", text)
    return _BLANK_LINES_RE.sub("\n\n", text)


_PASSES = (
    repair_html,
    normalize_colon_lists,
    normalize_numbered_items,
    fix_markdown_links,
    fix_emails,
    fix_protocol_relative_urls,
    strip_url_parentheses,
    collapse_whitespace,
    str.strip,
)


def sanitize_response(text: str) -> str:
    """Clean a raw model answer for display.

    Args:
        text: Raw completion text.

    Returns:
        The sanitized answer.
    """
    cleaned = text
    for step in _PASSES:
        cleaned = step(cleaned)
    if cleaned != text:
        logger.debug("Sanitized response (%d -> %d chars)", len(text), len(cleaned))
    return cleaned
