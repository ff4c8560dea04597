"""Candidate builder: runtime prompt components -> Arms.

Tools, skills and context files arrive from the agent runtime either as
the dataclasses below or as plain mappings with the same keys. Entries
that cannot be read are skipped, never raised.

Arm id shapes:
    tool:{category}:{tool name}
    skill:{skill name}:main
    file:workspace:{path}
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from promptbandit.learning.types import Arm, ArmId, ArmType, build_arm_id
from promptbandit.observability.logging import get_logger

T = TypeVar("T")

# Cost for a tool that declares neither a cost nor a schema.
DEFAULT_TOOL_TOKEN_COST = 100
CHARS_PER_TOKEN = 4

SKILL_LABEL = "main"
FILE_CATEGORY = "workspace"

_TOOL_CATEGORIES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"^(bash|exec|shell|run)", re.IGNORECASE), "exec"),
    (re.compile(r"^(read|write|edit|glob|grep)", re.IGNORECASE), "fs"),
    (re.compile(r"^(memory|remember|recall)", re.IGNORECASE), "memory"),
    (re.compile(r"^(web|fetch|browse|search)", re.IGNORECASE), "web"),
    (re.compile(r"^(send|reply|message)", re.IGNORECASE), "messaging"),
)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    token_cost: int | None = None
    schema: Mapping[str, Any] | None = field(default=None, compare=False)


@dataclass(frozen=True)
class SkillEntry:
    name: str
    prompt_chars: int


@dataclass(frozen=True)
class ContextFile:
    path: str
    content: str


def infer_tool_category(tool_name: str) -> str:
    """Category from the tool name prefix, case-insensitive."""
    for pattern, category in _TOOL_CATEGORIES:
        if pattern.match(tool_name):
            return category
    return "other"


def estimate_tokens(chars: int) -> int:
    return math.ceil(max(chars, 0) / CHARS_PER_TOKEN)


def tool_arm_id(name: str) -> ArmId:
    return build_arm_id(ArmType.TOOL, infer_tool_category(name), name)


def skill_arm_id(name: str) -> ArmId:
    return build_arm_id(ArmType.SKILL, name, SKILL_LABEL)


def file_arm_id(path: str) -> ArmId:
    return build_arm_id(ArmType.FILE, FILE_CATEGORY, path)


def tool_token_cost(tool: ToolSpec) -> int:
    """Declared cost, else serialized schema size, else the default."""
    if tool.token_cost is not None:
        return max(int(tool.token_cost), 0)
    if tool.schema is not None:
        return estimate_tokens(len(json.dumps(tool.schema, default=str)))
    return DEFAULT_TOOL_TOKEN_COST


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


def coerce_tool(raw: Any) -> ToolSpec | None:
    if isinstance(raw, ToolSpec):
        return raw if raw.name else None
    if isinstance(raw, Mapping):
        name = raw.get("name")
        if not isinstance(name, str) or not name:
            return None
        cost = raw.get("token_cost")
        schema = raw.get("schema")
        return ToolSpec(
            name=name,
            token_cost=cost if isinstance(cost, int) and not isinstance(cost, bool) else None,
            schema=schema if isinstance(schema, Mapping) else None,
        )
    return None


def coerce_skill(raw: Any) -> SkillEntry | None:
    if isinstance(raw, SkillEntry):
        return raw if raw.name else None
    if isinstance(raw, Mapping):
        name = raw.get("name")
        chars = raw.get("prompt_chars", 0)
        if not isinstance(name, str) or not name:
            return None
        if not isinstance(chars, int) or isinstance(chars, bool):
            return None
        return SkillEntry(name=name, prompt_chars=chars)
    return None


def coerce_context_file(raw: Any) -> ContextFile | None:
    if isinstance(raw, ContextFile):
        return raw if raw.path else None
    if isinstance(raw, Mapping):
        path = raw.get("path")
        content = raw.get("content", "")
        if not isinstance(path, str) or not path or not isinstance(content, str):
            return None
        return ContextFile(path=path, content=content)
    return None


def coerce_tools(raw: Iterable[Any] | None) -> list[ToolSpec]:
    return _coerce_all(raw, coerce_tool, "tool")


def coerce_skills(raw: Iterable[Any] | None) -> list[SkillEntry]:
    return _coerce_all(raw, coerce_skill, "skill")


def coerce_context_files(raw: Iterable[Any] | None) -> list[ContextFile]:
    return _coerce_all(raw, coerce_context_file, "file")


def _coerce_all(
    raw: Iterable[Any] | None, coerce: Callable[[Any], T | None], kind: str
) -> list[T]:
    if raw is None:
        return []
    out: list[T] = []
    for entry in raw:
        value = coerce(entry)
        if value is None:
            get_logger(__name__).debug(
                "learning.candidates.skipped", kind=kind, entry=repr(entry)[:80]
            )
            continue
        out.append(value)
    return out


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def build_candidates(
    tools: Iterable[Any] | None = None,
    skill_entries: Iterable[Any] | None = None,
    context_files: Iterable[Any] | None = None,
) -> list[Arm]:
    """Arms for every usable component: tools, then skills, then files.

    Duplicate arm ids keep the first occurrence.
    """
    arms: list[Arm] = []
    seen: set[ArmId] = set()

    def _add(arm: Arm) -> None:
        if arm.id in seen:
            return
        seen.add(arm.id)
        arms.append(arm)

    for tool in coerce_tools(tools):
        category = infer_tool_category(tool.name)
        _add(Arm(
            id=build_arm_id(ArmType.TOOL, category, tool.name),
            type=ArmType.TOOL,
            category=category,
            label=tool.name,
            token_cost=tool_token_cost(tool),
        ))

    for skill in coerce_skills(skill_entries):
        _add(Arm(
            id=skill_arm_id(skill.name),
            type=ArmType.SKILL,
            category=skill.name,
            label=skill.name,
            token_cost=estimate_tokens(skill.prompt_chars),
        ))

    for ctx_file in coerce_context_files(context_files):
        _add(Arm(
            id=file_arm_id(ctx_file.path),
            type=ArmType.FILE,
            category=FILE_CATEGORY,
            label=ctx_file.path,
            token_cost=estimate_tokens(len(ctx_file.content)),
        ))

    return arms
