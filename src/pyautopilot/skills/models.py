from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from urllib.parse import quote_plus

from ..errors import AutopilotError, PartialFailure
from ..tools.base import ParamSpec, ToolResult


class FailurePolicy(str, Enum):
    ABORT = "abort"
    CONTINUE = "continue"


@dataclass(frozen=True)
class Step:
    tool: str
    args: Mapping[str, Any] = field(default_factory=dict)
    on_failure: FailurePolicy = FailurePolicy.ABORT

    def __post_init__(self):
        object.__setattr__(self, "args", MappingProxyType(dict(self.args)))


@dataclass(frozen=True)
class Skill:
    name: str
    description: str
    steps: tuple[Step, ...]
    required_apps: frozenset[str] = frozenset()
    parameters: tuple[ParamSpec, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "required_apps", frozenset(self.required_apps))
        object.__setattr__(self, "parameters", tuple(self.parameters))


@dataclass
class StepOutcome:
    index: int
    tool: str
    args: dict[str, Any]
    result: ToolResult

    @property
    def ok(self) -> bool:
        return self.result.ok

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "tool": self.tool, "args": self.args, **self.result.to_dict()}


@dataclass
class SkillReport:
    """What a skill run did, step by step, in order.

    ``outcomes`` holds every step that ran to completion of its policy: on an
    ABORT failure at step k it holds exactly the k earlier steps and the
    failing step is in ``failed_outcome``.
    """

    skill: str
    outcomes: list[StepOutcome] = field(default_factory=list)
    error: AutopilotError | None = None
    failed_outcome: StepOutcome | None = None

    @property
    def failed_step_index(self) -> int | None:
        if isinstance(self.error, PartialFailure):
            return self.error.step_index
        return None

    @property
    def failures(self) -> list[StepOutcome]:
        out = [o for o in self.outcomes if not o.ok]
        if self.failed_outcome is not None:
            out.append(self.failed_outcome)
        return out

    @property
    def ok(self) -> bool:
        return self.error is None and all(o.ok for o in self.outcomes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "skill": self.skill,
            "ok": self.ok,
            "error": self.error.to_dict() if self.error else None,
            "failed_step_index": self.failed_step_index,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "failed_outcome": self.failed_outcome.to_dict() if self.failed_outcome else None,
        }


_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*(\|\s*url\s*)?\}\}")


def placeholder_names(args: Mapping[str, Any]) -> set[str]:
    """Names referenced by ``{{name}}`` placeholders in step arguments."""
    return {m.group(1) for v in args.values() if isinstance(v, str) for m in _PLACEHOLDER.finditer(v)}


def render_step_args(args: Mapping[str, Any], values: Mapping[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Fill ``{{name}}`` placeholders in step arguments from skill arguments.

    A value that is exactly one placeholder takes the argument as-is (keeping
    its type). Inside longer strings the argument is formatted with str();
    ``{{name|url}}`` URL-encodes it.
    """
    out: dict[str, Any] = {}
    problems: list[str] = []

    def sub(m: re.Match) -> str:
        key = m.group(1)
        if key not in values:
            problems.append(f"no value for placeholder '{{{{{key}}}}}'")
            return m.group(0)
        text = str(values[key])
        return quote_plus(text) if m.group(2) else text

    for k, v in args.items():
        if not isinstance(v, str):
            out[k] = v
            continue
        whole = _PLACEHOLDER.fullmatch(v.strip())
        if whole is not None and not whole.group(2):
            key = whole.group(1)
            if key in values:
                out[k] = values[key]
            else:
                problems.append(f"no value for placeholder '{{{{{key}}}}}'")
                out[k] = v
            continue
        out[k] = _PLACEHOLDER.sub(sub, v)
    return out, problems
