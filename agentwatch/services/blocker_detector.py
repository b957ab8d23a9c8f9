"""Blocker detection (Level 1) over assistant messages.

``detect_blocker`` applies the strength policy to a single message;
``check_events_for_blocker`` is the end-of-session scan and
``check_realtime_candidate`` the strict pre-check used while a session
is still running.
"""

from __future__ import annotations

import logging
import re

from agentwatch.models.blocker import BlockerCategory, BlockerInfo
from agentwatch.models.event import SessionEvent
from agentwatch.services.blocker_patterns import (
    MIN_TEXT_LENGTH,
    classify,
    extract_fields,
    primary_category,
)
from agentwatch.services.text_filters import (
    has_completion_signal,
    is_likely_list_item,
    strip_code_and_tables,
)

logger = logging.getLogger(__name__)

DEFAULT_END_SCAN_MESSAGES = 2
REASON_MAX_LENGTH = 150

_MIN_SENTENCE_LENGTH = 10
_REASON_KEYWORDS = ("need", "wait", "please", "blocked", "failed")
# Terminal punctuation only splits when followed by whitespace, so "0.1 SOL" stays whole
_SENTENCE_SPLIT = re.compile(r"[.!?]+(?=\s|$)|\n+")

_FALLBACK_REASONS = {
    BlockerCategory.FUNDING_NEEDED: "Insufficient funds - need additional SOL",
    BlockerCategory.WAITING_FOR_USER: "Waiting for user action",
    BlockerCategory.EXTERNAL_ACTION: "Requires manual/browser action",
    BlockerCategory.RATE_LIMITED: "Rate limited - need to wait",
    BlockerCategory.PERMISSION_NEEDED: "Permission or access needed",
}
_DEFAULT_REASON = "Blocked - needs external intervention"


def extract_blocker_reason(text: str, category: BlockerCategory | None = None) -> str:
    """Pick the most relevant sentence, else a canned per-category reason."""
    sentences = [
        s.strip() for s in _SENTENCE_SPLIT.split(text) if len(s.strip()) > _MIN_SENTENCE_LENGTH
    ]
    for sentence in sentences:
        lower = sentence.lower()
        if any(keyword in lower for keyword in _REASON_KEYWORDS):
            if len(sentence) <= REASON_MAX_LENGTH:
                return sentence
            return sentence[: REASON_MAX_LENGTH - 3] + "..."

    if category is None:
        return _DEFAULT_REASON
    return _FALLBACK_REASONS.get(category, _DEFAULT_REASON)


def detect_blocker(text: str, session_ended: bool = False) -> BlockerInfo | None:
    """Detect whether an assistant message describes a blocker.

    A candidate is reported only on a strong signal: the session ended,
    two or more patterns matched, or the primary category is funding.
    """
    if not text or len(text) < MIN_TEXT_LENGTH:
        return None

    clean_text = strip_code_and_tables(text)
    # The length gate applies to the message as written, not what survives stripping
    matches = classify(clean_text, min_length=0)
    if not matches:
        return None

    category = primary_category(matches)
    matched_patterns = tuple(m.pattern_id for m in matches)

    is_funding = category == BlockerCategory.FUNDING_NEEDED
    has_multiple = len(matched_patterns) >= 2
    if not (session_ended or has_multiple or is_funding):
        logger.debug(
            "Weak blocker signal (patterns: %s) - not triggering", ", ".join(matched_patterns)
        )
        return None

    reason = extract_blocker_reason(clean_text, category)
    extracted = extract_fields(clean_text, matches)

    logger.info(
        "Blocker detected: category=%s, patterns=%d, reason=%r",
        category.value, len(matched_patterns), reason[:50],
    )
    return BlockerInfo(
        reason=reason,
        last_message=clean_text,
        matched_patterns=matched_patterns,
        category=category,
        extracted_context=extracted or None,
    )


def check_events_for_blocker(
    events: list[SessionEvent],
    last_n: int = DEFAULT_END_SCAN_MESSAGES,
) -> BlockerInfo | None:
    """End-of-session scan over the last N assistant messages.

    A completion signal in the most recent message wins over anything
    earlier. Messages are scanned most-recent-first and list-like ones
    are skipped.
    """
    if last_n <= 0:
        return None
    recent = [e for e in events if e.is_assistant_text][-last_n:]
    if not recent:
        return None

    if has_completion_signal(recent[-1].text):
        logger.debug("Completion signal in last message - skipping blocker check")
        return None

    for event in reversed(recent):
        if is_likely_list_item(event.text):
            logger.debug("Skipping list-like message for blocker detection")
            continue
        blocker = detect_blocker(event.text, session_ended=True)
        if blocker:
            return blocker
    return None


def check_realtime_candidate(text: str) -> BlockerInfo | None:
    """Strict pre-check for a single streaming message.

    No session-ended leniency, and the completion and list vetoes apply
    so this is never looser than the end-of-session scan.
    """
    if not text:
        return None
    if has_completion_signal(text) or is_likely_list_item(text):
        return None
    return detect_blocker(text, session_ended=False)
