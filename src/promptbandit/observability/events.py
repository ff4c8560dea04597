"""Typed event dataclasses for promptbandit observability.

All events are frozen (immutable) dataclasses. Modules emit these;
they don't know about logs or sinks. Subscribers handle routing.

Grouped by lifecycle: selection, observation, persistence.
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LearningSelectionMade:
    learner: str
    candidate_count: int
    selected_count: int
    excluded_count: int
    is_baseline: bool
    token_budget: int
    used_tokens: int
    phase: str  # "passive" | "active"
    degraded: bool


# ---------------------------------------------------------------------------
# Observation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LearningTraceCaptured:
    learner: str
    trace_id: str
    run_id: str
    arm_count: int
    referenced_count: int
    is_baseline: bool
    aborted: bool
    total_tokens: int


@dataclass(frozen=True)
class LearningObservationRecorded:
    learner: str
    arm_id: str
    reward: float
    outcome: str  # "accepted" | "rejected" | "partial" | custom


@dataclass(frozen=True)
class LearningPosteriorUpdated:
    learner: str
    arm_id: str
    alpha: float
    beta: float
    pulls: int
    mean: float


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LearningStoreFailed:
    learner: str
    operation: str  # "load_posteriors" | "insert_trace" | "save_posterior"
    error: str
    arm_id: str | None = None
