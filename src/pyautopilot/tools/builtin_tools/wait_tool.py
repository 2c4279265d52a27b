from __future__ import annotations

import time
from typing import Any, Callable

from ..base import ParamSpec, ToolContext, ToolSpec
from ...errors import InvalidArguments

MAX_WAIT_SECONDS = 30.0


class WaitTool:
    """Pause between steps, e.g. while an app finishes launching."""

    spec = ToolSpec(
        name="wait",
        description=f"Sleep for a number of seconds (0 to {MAX_WAIT_SECONDS:g}).",
        parameters=(ParamSpec("seconds", "float", "Seconds to wait.", default=1.0),),
    )

    def __init__(self, sleep: Callable[[float], None] = time.sleep):
        self._sleep = sleep

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        seconds = args["seconds"]
        if not 0 <= seconds <= MAX_WAIT_SECONDS:
            raise InvalidArguments([f"seconds must be between 0 and {MAX_WAIT_SECONDS:g}, got {seconds}"])
        self._sleep(seconds)
        return {"waited": seconds}
