from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..errors import AutopilotError, DuplicateIdentifier, ExecutionFailed, InvalidArguments, UnknownTool
from .base import Tool, ToolContext, ToolResult, ToolSpec
from .schema import validate_arguments

logger = logging.getLogger(__name__)

@dataclass
class ToolRegistry:
    journal: Any = None
    _tools: Dict[str, Tool] = field(default_factory=dict)

    def register(self, tool: Tool) -> None:
        name = tool.spec.name
        if name in self._tools:
            raise DuplicateIdentifier(f"Tool already registered: {name}")
        self._tools[name] = tool

    def get(self, name: str) -> Tool:
        if name not in self._tools:
            raise UnknownTool(f"Unknown tool: {name}")
        return self._tools[name]

    def get_optional(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def names(self) -> list[str]:
        return list(self._tools)

    def list_specs(self) -> list[ToolSpec]:
        return [t.spec for t in self._tools.values()]

    def dispatch(self, name: str, args: dict[str, Any] | None = None, ctx: ToolContext | None = None) -> ToolResult:
        """Validate and run a tool. Per-invocation failures come back in the result."""
        started = time.monotonic()
        result = self._dispatch(name, args, ctx or ToolContext())
        elapsed_ms = (time.monotonic() - started) * 1000
        if result.ok:
            logger.debug("tool %s ok in %.1fms", name, elapsed_ms)
        else:
            logger.info("tool %s failed: %s", name, result.error)
        if self.journal is not None:
            try:
                self.journal.append("tool.dispatch", {**result.to_dict(), "args": args or {}, "elapsed_ms": round(elapsed_ms, 1)})
            except Exception:
                logger.exception("failed to journal dispatch of %s", name)
        return result

    def _dispatch(self, name: str, args: dict[str, Any] | None, ctx: ToolContext) -> ToolResult:
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult.failure(name, UnknownTool(f"Unknown tool: {name}"))

        normalized, problems = validate_arguments(tool.spec.parameters, args)
        if problems:
            return ToolResult.failure(name, InvalidArguments(problems))

        for pre in tool.spec.preconditions:
            if not pre.check():
                return ToolResult.failure(name, pre.fail())

        try:
            payload = tool.execute(ctx, normalized)
        except AutopilotError as e:
            return ToolResult.failure(name, e)
        except Exception as e:
            logger.exception("tool %s raised unexpectedly", name)
            return ToolResult.failure(name, ExecutionFailed(e))
        return ToolResult.success(name, payload)
