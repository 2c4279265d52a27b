from __future__ import annotations

from typing import Any


class AutopilotError(RuntimeError):
    """Base class for every typed failure surfaced by pyautopilot."""

    code = "error"

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self)}


# ---- provider / session ----

class ProviderUnavailable(AutopilotError):
    code = "provider_unavailable"


class NotAuthorized(AutopilotError):
    code = "not_authorized"


class TransientProviderError(AutopilotError):
    """Transport-level failure (broken pipe, timeout). Safe to retry."""

    code = "transient_provider_error"


class ProviderError(AutopilotError):
    """The provider answered with an error reply. Never retried."""

    code = "provider_error"

    def __init__(self, message: str, provider_code: Any = None):
        super().__init__(message)
        self.provider_code = provider_code


class ExecutionFailed(AutopilotError):
    code = "execution_failed"

    def __init__(self, cause: BaseException | str, *, transient: bool = False):
        self.cause = cause
        self.transient = transient
        super().__init__(f"execution failed: {cause}")

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["cause"] = str(self.cause)
        return d


# ---- registration ----

class DuplicateIdentifier(AutopilotError):
    code = "duplicate_identifier"


class UnknownToolReference(AutopilotError):
    code = "unknown_tool_reference"


# ---- invocation ----

class UnknownTool(AutopilotError):
    code = "unknown_tool"


class UnknownSkill(AutopilotError):
    code = "unknown_skill"


class InvalidArguments(AutopilotError):
    code = "invalid_arguments"

    def __init__(self, details: list[str]):
        self.details = list(details)
        super().__init__("invalid arguments: " + "; ".join(self.details))

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["details"] = list(self.details)
        return d


class PreconditionNotMet(AutopilotError):
    code = "precondition_not_met"


class SkillUnavailable(AutopilotError):
    code = "skill_unavailable"

    def __init__(self, skill: str, missing: list[str]):
        self.skill = skill
        self.missing = sorted(missing)
        super().__init__(f"skill {skill} needs apps not installed: {', '.join(self.missing)}")


class PartialFailure(AutopilotError):
    code = "partial_failure"

    def __init__(self, step_index: int, cause: AutopilotError):
        self.step_index = step_index
        self.cause = cause
        super().__init__(f"step {step_index} failed: {cause}")

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["step_index"] = self.step_index
        d["cause"] = self.cause.to_dict()
        return d


class Cancelled(AutopilotError):
    code = "cancelled"

    def __init__(self, step_index: int):
        self.step_index = step_index
        super().__init__(f"cancelled before step {step_index}")
