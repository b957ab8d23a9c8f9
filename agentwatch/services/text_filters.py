"""Text filters applied around blocker classification.

Code blocks and tables are stripped before matching; completion phrasing
and list-like text veto a classification afterwards.
"""

from __future__ import annotations

import re

_CODE_FENCE = re.compile(r"```.*?```", re.DOTALL)

COMPLETION_SIGNALS: tuple[re.Pattern, ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"✅.*ready",
        r"✓.*ready",
        r"all.*complete",
        r"finished",
        r"done!",
        r"successfully",
    )
)

_LIST_MARKER = re.compile(r"^[-*+]\s")
_NUMBERED_ITEM = re.compile(r"^\d+\.\s")
_LIST_HEADING = re.compile(
    r"^(Tasks?|Criteria|Signals?|Examples?|Quantitative|Qualitative).*:",
    re.IGNORECASE,
)


def strip_code_and_tables(text: str) -> str:
    """Remove fenced code blocks and markdown table rows."""
    cleaned = _CODE_FENCE.sub("", text)
    kept = [
        line
        for line in cleaned.split("\n")
        if not line.strip().startswith("|") and "|---" not in line
    ]
    return "\n".join(kept)


def has_completion_signal(text: str) -> bool:
    return any(pattern.search(text) for pattern in COMPLETION_SIGNALS)


def is_likely_list_item(text: str) -> bool:
    """True if any line is a bullet, numbered item or criteria heading.

    Summaries like "Tasks where funding was needed: none" trip the
    matcher without describing a real blocker.
    """
    for line in text.split("\n"):
        stripped = line.strip()
        if _LIST_MARKER.match(stripped) or _NUMBERED_ITEM.match(stripped):
            return True
        if _LIST_HEADING.match(stripped):
            return True
    return False
