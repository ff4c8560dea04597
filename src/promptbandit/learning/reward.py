"""Outcome labels and the reward models that score them.

Turn feedback produces ``referenced`` / ``unreferenced`` for every
included arm. Explicit feedback (a user accepting or rejecting what a
component produced) uses ``accepted`` / ``partial`` / ``rejected``.
A RewardModel maps either vocabulary onto [0, 1].
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

REFERENCED = "referenced"
UNREFERENCED = "unreferenced"
ACCEPTED = "accepted"
PARTIAL = "partial"
REJECTED = "rejected"

POSITIVE_OUTCOMES = frozenset({REFERENCED, ACCEPTED})


def reference_outcome(referenced: bool) -> str:
    return REFERENCED if referenced else UNREFERENCED


@runtime_checkable
class RewardModel(Protocol):
    def compute(self, outcome: str) -> float:
        """Reward in [0, 1] for an outcome label. Unknown labels score 0."""
        ...


class BinaryReward:
    """Positive outcomes score 1.0, anything else 0.0. Partial counts as a miss."""

    def compute(self, outcome: str) -> float:
        return 1.0 if outcome.lower() in POSITIVE_OUTCOMES else 0.0


class TernaryReward:
    """Binary plus half credit for ``partial``. The default model."""

    def compute(self, outcome: str) -> float:
        label = outcome.lower()
        if label in POSITIVE_OUTCOMES:
            return 1.0
        if label == PARTIAL:
            return 0.5
        return 0.0
