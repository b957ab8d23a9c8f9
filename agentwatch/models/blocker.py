"""Blocker detection domain models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class BlockerCategory(str, Enum):
    """Closed set of blocker categories, in precedence order."""

    WAITING_FOR_USER = "waiting_for_user"
    FUNDING_NEEDED = "funding_needed"
    EXTERNAL_ACTION = "external_action"
    RATE_LIMITED = "rate_limited"
    PERMISSION_NEEDED = "permission_needed"


@dataclass(frozen=True)
class BlockerInfo:
    """A blocker candidate that passed the detector's strength policy."""

    reason: str
    last_message: str
    matched_patterns: tuple[str, ...]
    category: BlockerCategory
    extracted_context: dict | None = None

    def to_doc(self) -> dict:
        return {
            "reason": self.reason,
            "last_message": self.last_message,
            "matched_patterns": list(self.matched_patterns),
            "category": self.category.value,
            "extracted_context": self.extracted_context,
        }


def _coerce_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _coerce_confidence(value) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.5
    return min(1.0, max(0.0, confidence))


@dataclass(frozen=True)
class BlockerAssessment:
    """Level 2 judgment on whether a detected blocker is real."""

    is_real_blocker: bool
    confidence: float
    reasoning: str
    can_auto_handle: bool = False
    auto_response: str = ""

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")

    @classmethod
    def from_judgment(cls, data: dict) -> BlockerAssessment:
        """Build from the oracle's JSON-shaped answer.

        Raises ValueError when the mandatory verdict is missing.
        """
        if "isRealBlocker" not in data:
            raise ValueError("judgment is missing 'isRealBlocker'")
        return cls(
            is_real_blocker=_coerce_bool(data["isRealBlocker"]),
            confidence=_coerce_confidence(data.get("confidence", 0.5)),
            reasoning=str(data.get("reasoning", "")),
            can_auto_handle=_coerce_bool(data.get("canAutoHandle", False)),
            auto_response=str(data.get("autoResponse") or ""),
        )

    def to_doc(self) -> dict:
        return {
            "isRealBlocker": self.is_real_blocker,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "canAutoHandle": self.can_auto_handle,
            "autoResponse": self.auto_response,
        }


@dataclass(frozen=True)
class InterventionDecision:
    """Level 3 oracle answer: can the situation be resolved right now?"""

    can_handle: bool
    reasoning: str
    response: str = ""

    @classmethod
    def from_judgment(cls, data: dict) -> InterventionDecision:
        if "canHandle" not in data:
            raise ValueError("judgment is missing 'canHandle'")
        return cls(
            can_handle=_coerce_bool(data["canHandle"]),
            reasoning=str(data.get("reasoning", "")),
            response=str(data.get("response") or ""),
        )


@dataclass(frozen=True)
class InterventionResult:
    """Outcome of one realtime check."""

    intervened: bool
    reasoning: str
    response: str = ""
