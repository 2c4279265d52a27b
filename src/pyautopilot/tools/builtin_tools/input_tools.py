from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any

from ..base import ParamSpec, ToolContext, ToolSpec, session_authorized
from ...device import DeviceController, KEYCODE_BACK, KEYCODE_HOME

@dataclass
class InputTextTool:
    controller: DeviceController
    spec: ToolSpec = field(init=False)

    def __post_init__(self):
        self.spec = ToolSpec(
            name="input_text",
            description="Type text into the focused field.",
            parameters=(ParamSpec("text", "str", "Text to type."),),
            preconditions=(session_authorized(self.controller.gateway),),
        )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        self.controller.input_text(args["text"])
        return {"typed": len(args["text"])}

@dataclass
class KeyEventTool:
    controller: DeviceController
    spec: ToolSpec = field(init=False)

    def __post_init__(self):
        self.spec = ToolSpec(
            name="key_event",
            description="Send a key event by Android keycode number (e.g. 66 for ENTER).",
            parameters=(ParamSpec("keycode", "int", "Android KeyEvent code."),),
            preconditions=(session_authorized(self.controller.gateway),),
        )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        self.controller.key_event(args["keycode"])
        return {"keycode": args["keycode"]}

@dataclass
class BackTool:
    controller: DeviceController
    spec: ToolSpec = field(init=False)

    def __post_init__(self):
        self.spec = ToolSpec(
            name="back",
            description="Press the BACK key.",
            preconditions=(session_authorized(self.controller.gateway),),
        )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        self.controller.press_back()
        return {"keycode": KEYCODE_BACK}

@dataclass
class HomeTool:
    controller: DeviceController
    spec: ToolSpec = field(init=False)

    def __post_init__(self):
        self.spec = ToolSpec(
            name="home",
            description="Press the HOME key.",
            preconditions=(session_authorized(self.controller.gateway),),
        )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        self.controller.press_home()
        return {"keycode": KEYCODE_HOME}
