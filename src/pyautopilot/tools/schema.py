from __future__ import annotations

from typing import Any, Iterable

from .base import PARAM_TYPES, ParamSpec


def _type_ok(type_name: str, value: Any) -> bool:
    expected = PARAM_TYPES[type_name]
    if type_name == "bool":
        return isinstance(value, bool)
    if isinstance(value, bool):
        # bool is an int subclass; never accept it for numeric params
        return False
    if type_name == "float":
        return isinstance(value, (int, float))
    return isinstance(value, expected)


def validate_arguments(params: Iterable[ParamSpec], args: dict[str, Any] | None) -> tuple[dict[str, Any], list[str]]:
    """Check ``args`` against ``params`` and fill defaults.

    Returns ``(normalized, problems)``. Every problem found is reported, not
    just the first: missing required params, type mismatches, unknown extras.
    """
    params = list(params)
    args = dict(args or {})
    problems: list[str] = []
    out: dict[str, Any] = {}
    known = {p.name for p in params}

    for p in params:
        if p.name not in args:
            if p.required:
                problems.append(f"missing required parameter '{p.name}'")
            else:
                out[p.name] = p.default
            continue
        value = args[p.name]
        if not _type_ok(p.type, value):
            problems.append(f"parameter '{p.name}' expects {p.type}, got {type(value).__name__}")
            continue
        out[p.name] = float(value) if p.type == "float" else value

    for name in sorted(args):
        if name not in known:
            problems.append(f"unknown parameter '{name}'")

    return out, problems
