from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any

from ..base import ParamSpec, ToolContext, ToolSpec, session_authorized
from ...device import DeviceController

@dataclass
class TapTool:
    controller: DeviceController
    spec: ToolSpec = field(init=False)

    def __post_init__(self):
        self.spec = ToolSpec(
            name="tap",
            description="Tap the screen at pixel coordinates (x, y).",
            parameters=(
                ParamSpec("x", "int", "Horizontal pixel coordinate."),
                ParamSpec("y", "int", "Vertical pixel coordinate."),
            ),
            preconditions=(session_authorized(self.controller.gateway),),
        )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        self.controller.tap(args["x"], args["y"])
        return {"x": args["x"], "y": args["y"]}

@dataclass
class SwipeTool:
    controller: DeviceController
    spec: ToolSpec = field(init=False)

    def __post_init__(self):
        self.spec = ToolSpec(
            name="swipe",
            description="Swipe from (x1, y1) to (x2, y2) over duration_ms milliseconds.",
            parameters=(
                ParamSpec("x1", "int", "Start x."),
                ParamSpec("y1", "int", "Start y."),
                ParamSpec("x2", "int", "End x."),
                ParamSpec("y2", "int", "End y."),
                ParamSpec("duration_ms", "int", "Gesture duration in milliseconds.", default=300),
            ),
            preconditions=(session_authorized(self.controller.gateway),),
        )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        self.controller.swipe(args["x1"], args["y1"], args["x2"], args["y2"], args["duration_ms"])
        return dict(args)
