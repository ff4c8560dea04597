"""Core types for the promptbandit learning module.

Arm = a prompt component competing for a turn's token budget.
ArmPosterior = Beta(alpha, beta) belief about an arm's usefulness.
RunTrace = immutable record of one agent turn.

Arm IDs are hierarchical: "type:category:label", e.g. "tool:exec:Bash",
"skill:coding:main", "file:workspace:notes.md".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

ArmId = str


class ArmType(StrEnum):
    TOOL = "tool"
    SKILL = "skill"
    FILE = "file"


class ArmSource(StrEnum):
    """Where an arm comes from; decides its initial prior."""

    CURATED = "curated"  # shipped deliberately: tools, skills
    LEARNED = "learned"  # arbitrary workspace content: files


def arm_source(arm_type: ArmType) -> ArmSource:
    return ArmSource.LEARNED if arm_type == ArmType.FILE else ArmSource.CURATED


@dataclass(frozen=True)
class ParsedArmId:
    type: ArmType
    category: str
    label: str


def build_arm_id(arm_type: ArmType | str, category: str, label: str) -> ArmId:
    """Build an arm ID from components."""
    return f"{ArmType(arm_type).value}:{category}:{label}"


def parse_arm_id(arm_id: str) -> ParsedArmId | None:
    """Parse "type:category:label". Returns None if malformed.

    Labels may themselves contain ':' (e.g. file paths on some hosts).
    """
    parts = arm_id.split(":")
    if len(parts) < 3:
        return None
    type_, category, *rest = parts
    try:
        arm_type = ArmType(type_)
    except ValueError:
        return None
    label = ":".join(rest)
    if not category or not label:
        return None
    return ParsedArmId(type=arm_type, category=category, label=label)


@dataclass(frozen=True)
class Arm:
    """A candidate for inclusion this turn. Rebuilt every turn."""

    id: ArmId
    type: ArmType
    category: str
    label: str
    token_cost: int = 0
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def source(self) -> ArmSource:
        return arm_source(self.type)


@dataclass
class ArmPosterior:
    """Durable Beta-Bernoulli state for one arm."""

    arm_id: ArmId
    alpha: float = 1.0  # successes + prior
    beta: float = 1.0  # failures + prior
    pulls: int = 0
    last_updated: int = 0  # epoch ms

    @property
    def mean(self) -> float:
        total = self.alpha + self.beta
        if total == 0:
            return 0.5
        return self.alpha / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "arm_id": self.arm_id,
            "alpha": self.alpha,
            "beta": self.beta,
            "pulls": self.pulls,
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ArmPosterior:
        return cls(
            arm_id=d["arm_id"],
            alpha=d.get("alpha", 1.0),
            beta=d.get("beta", 1.0),
            pulls=d.get("pulls", 0),
            last_updated=d.get("last_updated", 0),
        )


@dataclass(frozen=True)
class SelectionContext:
    """Audit metadata about the invoking turn. Never conditions the model."""

    session_key: str | None = None
    channel: str | None = None
    provider: str | None = None
    model: str | None = None
    prompt_length: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass
class SelectionResult:
    """Outcome of one selection over the candidate set."""

    selected_arms: list[ArmId]
    excluded_arms: list[ArmId]
    is_baseline: bool
    total_token_budget: int
    used_tokens: int
    scores: dict[ArmId, float] = field(default_factory=dict)  # Thompson draws


@dataclass(frozen=True)
class ArmOutcome:
    """Per-arm row of a RunTrace."""

    arm_id: ArmId
    included: bool
    referenced: bool
    token_cost: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "arm_id": self.arm_id,
            "included": self.included,
            "referenced": self.referenced,
            "token_cost": self.token_cost,
        }


@dataclass(frozen=True)
class TokenUsage:
    input: int = 0
    output: int = 0
    cache_read: int = 0
    total: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "input": self.input,
            "output": self.output,
            "cache_read": self.cache_read,
            "total": self.total,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> TokenUsage:
        d = d or {}
        return cls(
            input=int(d.get("input", 0) or 0),
            output=int(d.get("output", 0) or 0),
            cache_read=int(d.get("cache_read", 0) or 0),
            total=int(d.get("total", 0) or 0),
        )


@dataclass(frozen=True)
class RunTrace:
    """Immutable record of one agent turn. Created once, after the turn."""

    trace_id: str
    run_id: str
    session_id: str
    timestamp: int  # epoch ms
    is_baseline: bool
    arms: tuple[ArmOutcome, ...]
    usage: TokenUsage = field(default_factory=TokenUsage)
    system_prompt_chars: int = 0
    session_key: str | None = None
    provider: str | None = None
    model: str | None = None
    channel: str | None = None
    context: dict[str, Any] = field(default_factory=dict, compare=False)
    duration_ms: int | None = None
    aborted: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "trace_id": self.trace_id,
            "run_id": self.run_id,
            "session_id": self.session_id,
            "session_key": self.session_key,
            "timestamp": self.timestamp,
            "provider": self.provider,
            "model": self.model,
            "channel": self.channel,
            "is_baseline": self.is_baseline,
            "context": dict(self.context),
            "arms": [a.to_dict() for a in self.arms],
            "usage": self.usage.to_dict(),
            "system_prompt_chars": self.system_prompt_chars,
            "duration_ms": self.duration_ms,
            "aborted": self.aborted,
            "error": self.error,
        }


@dataclass(frozen=True)
class Observation:
    """One observed outcome for an arm, input to posterior update."""

    arm_id: ArmId
    reward: float  # 0.0 to 1.0
    outcome: str = ""  # "referenced" | "unreferenced" | "accepted" | "partial" | "rejected"
