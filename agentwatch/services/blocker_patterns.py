"""Blocker pattern table and classifier.

Each category owns an ordered list of case-insensitive patterns and,
optionally, field extractors that only run once the category matched.
Category precedence is the declaration order of ``BLOCKER_CATEGORIES``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from agentwatch.models.blocker import BlockerCategory

# Shorter texts are fragments, never classified
MIN_TEXT_LENGTH = 20


@dataclass(frozen=True)
class FieldExtractor:
    """Pulls one structured value out of matched text (group 1)."""

    field: str
    pattern: re.Pattern


@dataclass(frozen=True)
class CategoryRule:
    category: BlockerCategory
    patterns: tuple[re.Pattern, ...]
    extractors: tuple[FieldExtractor, ...] = ()


@dataclass(frozen=True)
class PatternMatch:
    category: BlockerCategory
    pattern_id: str


def _compile(*sources: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(s, re.IGNORECASE) for s in sources)


BLOCKER_CATEGORIES: tuple[CategoryRule, ...] = (
    CategoryRule(
        category=BlockerCategory.WAITING_FOR_USER,
        patterns=_compile(
            r"let me know when",
            r"once you['’]ve",
            r"after you['’]ve",
            r"when you['’]re ready",
            r"waiting for you",
            r"please (complete|finish|do|run|execute|claim|fund)",
            r"you['’]ll need to",
            r"you need to",
            r"please let me know",
        ),
    ),
    CategoryRule(
        category=BlockerCategory.FUNDING_NEEDED,
        patterns=_compile(
            r"need(s|ed)? (more )?(sol|funds|funding|balance)",
            r"need(s|ed)?\s+\d+(\.\d+)?\s*sol\b",
            r"insufficient (sol|balance|funds)",
            r"airdrop (failed|rate.?limit)",
            r"faucet",
            r"claim (sol|tokens)",
        ),
        extractors=(
            # Solana-style base58 address
            FieldExtractor("wallet", re.compile(r"\b([1-9A-HJ-NP-Za-km-z]{32,44})\b")),
            FieldExtractor("needed", re.compile(r"need(?:s|ed)?\s+(\d+(?:\.\d+)?)\s*sol", re.IGNORECASE)),
            FieldExtractor(
                "current",
                re.compile(r"(?:current|balance)[:\s]+(\d+(?:\.\d+)?)\s*sol", re.IGNORECASE),
            ),
        ),
    ),
    CategoryRule(
        category=BlockerCategory.EXTERNAL_ACTION,
        patterns=_compile(
            r"manual(ly)?",
            r"browser",
            r"captcha",
            r"verification",
            r"authenticate",
            r"2fa|two.?factor",
        ),
    ),
    CategoryRule(
        category=BlockerCategory.RATE_LIMITED,
        patterns=_compile(
            r"rate.?limit",
            r"too many requests",
            r"try again (later|in)",
            r"cooldown",
            r"quota",
        ),
    ),
    CategoryRule(
        category=BlockerCategory.PERMISSION_NEEDED,
        patterns=_compile(
            r"permission denied",
            r"access denied",
            r"unauthorized",
            r"need(s)? (permission|access|credentials)",
        ),
    ),
)

_RULES_BY_CATEGORY = {rule.category: rule for rule in BLOCKER_CATEGORIES}


def pattern_id(category: BlockerCategory, pattern: re.Pattern) -> str:
    return f"{category.value}:{pattern.pattern}"


def classify(text: str, min_length: int = MIN_TEXT_LENGTH) -> list[PatternMatch]:
    """Return every (category, pattern) hit, in table order.

    Never raises; texts under ``min_length`` yield no matches.
    """
    if not text or len(text) < min_length:
        return []

    matches: list[PatternMatch] = []
    for rule in BLOCKER_CATEGORIES:
        for pattern in rule.patterns:
            if pattern.search(text):
                matches.append(PatternMatch(rule.category, pattern_id(rule.category, pattern)))
    return matches


def primary_category(matches: list[PatternMatch]) -> BlockerCategory | None:
    """The first matching category in declaration order."""
    return matches[0].category if matches else None


def extract_fields(text: str, matches: list[PatternMatch]) -> dict[str, str]:
    """Run the extractors of every category that matched."""
    extracted: dict[str, str] = {}
    seen: set[BlockerCategory] = set()
    for match in matches:
        if match.category in seen:
            continue
        seen.add(match.category)
        for extractor in _RULES_BY_CATEGORY[match.category].extractors:
            found = extractor.pattern.search(text)
            if found and found.group(1):
                extracted[extractor.field] = found.group(1)
    return extracted
