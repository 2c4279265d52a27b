from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from ..errors import AutopilotError, NotAuthorized, PreconditionNotMet

_MISSING: Any = object()

PARAM_TYPES = {"int": int, "float": float, "str": str, "bool": bool}
_JSON_TYPES = {"int": "integer", "float": "number", "str": "string", "bool": "boolean"}

@dataclass(frozen=True)
class ParamSpec:
    name: str
    type: str                    # "int" | "float" | "str" | "bool"
    description: str = ""
    default: Any = _MISSING

    @property
    def required(self) -> bool:
        return self.default is _MISSING

@dataclass(frozen=True)
class Precondition:
    name: str
    check: Callable[[], bool]
    error: type[AutopilotError] = PreconditionNotMet

    def fail(self) -> AutopilotError:
        return self.error(f"precondition not met: {self.name}")

@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: tuple[ParamSpec, ...] = ()
    preconditions: tuple[Precondition, ...] = ()

    def json_schema(self) -> dict[str, Any]:
        props: dict[str, Any] = {}
        for p in self.parameters:
            prop: dict[str, Any] = {"type": _JSON_TYPES[p.type], "description": p.description}
            if not p.required:
                prop["default"] = p.default
            props[p.name] = prop
        return {
            "type": "object",
            "properties": props,
            "required": [p.name for p in self.parameters if p.required],
            "additionalProperties": False,
        }

class Tool(Protocol):
    spec: ToolSpec
    def execute(self, ctx: "ToolContext", args: dict[str, Any]) -> Any: ...

@dataclass
class ToolResult:
    tool: str
    ok: bool
    payload: Any = None
    error: AutopilotError | None = None

    @staticmethod
    def success(tool: str, payload: Any = None) -> "ToolResult":
        return ToolResult(tool=tool, ok=True, payload=payload)

    @staticmethod
    def failure(tool: str, error: AutopilotError) -> "ToolResult":
        return ToolResult(tool=tool, ok=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"tool": self.tool, "ok": self.ok}
        if self.ok:
            d["payload"] = self.payload
        else:
            d["error"] = self.error.to_dict() if self.error else None
        return d

@dataclass
class ToolContext:
    # Run id of the current journal, if any.
    run_id: str | None = None

def session_authorized(gateway) -> Precondition:
    """Precondition shared by every tool that needs a privileged session."""
    return Precondition(name="session authorized", check=gateway.is_authorized, error=NotAuthorized)
