from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any

from ..base import ToolContext, ToolSpec, session_authorized
from ...device import DeviceController

@dataclass
class ScreenshotTool:
    controller: DeviceController
    spec: ToolSpec = field(init=False)

    def __post_init__(self):
        self.spec = ToolSpec(
            name="screenshot",
            description="Capture the screen as a PNG into the cache directory and return its path. The file is not cleaned up automatically.",
            preconditions=(session_authorized(self.controller.gateway),),
        )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        path = self.controller.screenshot()
        return {"path": str(path)}
