"""Learning configuration: YAML file + env var overrides.

Priority: env var > YAML file > default.
Env vars use PROMPTBANDIT_{FIELD_NAME} (e.g. PROMPTBANDIT_PHASE=active).
YAML file default: ~/.promptbandit/learning.yaml
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from enum import StrEnum
from pathlib import Path
from typing import Any

import yaml

_TRUTHY = {"1", "true", "on", "yes"}
_FALSY = {"0", "false", "off", "no"}
_DEFAULT_PATH = Path("~/.promptbandit/learning.yaml")
_ENV_PREFIX = "PROMPTBANDIT_"

DEFAULT_TOKEN_BUDGET = 8000
DEFAULT_BASELINE_RATE = 0.10
DEFAULT_MIN_PULLS = 5

# Core tools that are never excluded while the budget allows.
SEED_ARM_IDS: tuple[str, ...] = (
    "tool:fs:Read",
    "tool:fs:Write",
    "tool:fs:Edit",
    "tool:exec:Bash",
    "tool:fs:Glob",
    "tool:fs:Grep",
)


class Phase(StrEnum):
    """Operating phase of the learner."""

    PASSIVE = "passive"  # collect traces, include everything
    ACTIVE = "active"  # enforce exclusion, update posteriors


@dataclass
class LearningConfig:
    enabled: bool = True
    phase: Phase = Phase.PASSIVE
    token_budget: int = DEFAULT_TOKEN_BUDGET
    # Fraction of runs using the full prompt (counterfactual baseline)
    baseline_rate: float = DEFAULT_BASELINE_RATE
    # Arms with fewer than N pulls are surfaced ahead of scored arms
    min_pulls: int = DEFAULT_MIN_PULLS
    seed_arm_ids: list[str] = field(default_factory=lambda: list(SEED_ARM_IDS))
    # Directory holding learning.db; empty means ~/.promptbandit/learning
    state_dir: str = ""
    learner_name: str = "promptbandit"

    def __post_init__(self) -> None:
        try:
            self.phase = Phase(self.phase)
        except ValueError:
            raise ValueError(
                f"Invalid phase {self.phase!r}: expected one of {[p.value for p in Phase]}"
            ) from None
        if not 0.0 <= self.baseline_rate <= 1.0:
            raise ValueError(f"baseline_rate must be in [0, 1], got {self.baseline_rate}")
        if self.token_budget < 0:
            raise ValueError(f"token_budget must be >= 0, got {self.token_budget}")
        if self.min_pulls < 0:
            raise ValueError(f"min_pulls must be >= 0, got {self.min_pulls}")

    @property
    def is_active(self) -> bool:
        return self.enabled and self.phase == Phase.ACTIVE

    @property
    def db_path(self) -> Path:
        base = Path(self.state_dir) if self.state_dir else Path("~/.promptbandit/learning")
        return base.expanduser() / "learning.db"

    @classmethod
    def load(cls, path: Path | None = None) -> LearningConfig:
        """Load config from YAML file, then override with env vars."""
        file_path = (path or _DEFAULT_PATH).expanduser()
        file_values: dict[str, Any] = {}

        if file_path.exists():
            raw = yaml.safe_load(file_path.read_text()) or {}
            if isinstance(raw, dict):
                known = {f.name for f in fields(cls)}
                file_values = {k: v for k, v in raw.items() if k in known}

        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            env_key = f"{_ENV_PREFIX}{f.name.upper()}"
            if env_key in os.environ:
                kwargs[f.name] = _parse_env(f.name, os.environ[env_key])
            elif f.name in file_values:
                kwargs[f.name] = _coerce(f.name, file_values[f.name])
            # else: use dataclass default

        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["phase"] = self.phase.value
        return d


def _parse_env(name: str, raw: str) -> Any:
    if name == "enabled":
        val = raw.strip().lower()
        if val in _TRUTHY:
            return True
        if val in _FALSY:
            return False
        raise ValueError(f"{_ENV_PREFIX}ENABLED must be a boolean, got {raw!r}")
    if name == "seed_arm_ids":
        return [part.strip() for part in raw.split(",") if part.strip()]
    return _coerce(name, raw)


def _coerce(name: str, value: Any) -> Any:
    if name == "enabled" and isinstance(value, str):
        return value.lower() in _TRUTHY
    if name in ("token_budget", "min_pulls"):
        return int(value)
    if name == "baseline_rate":
        return float(value)
    if name == "seed_arm_ids":
        if isinstance(value, str):
            return [value]
        return [str(v) for v in value]
    return value


# Singleton
_config: LearningConfig | None = None


def get_config(path: Path | None = None) -> LearningConfig:
    """Get the process-wide LearningConfig, loading it on first use."""
    global _config
    if _config is None:
        _config = LearningConfig.load(path)
    return _config


def reset_config() -> None:
    """Reset for testing."""
    global _config
    _config = None
