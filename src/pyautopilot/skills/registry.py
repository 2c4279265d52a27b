from __future__ import annotations

import logging
import threading
from typing import Any

from ..errors import (
    Cancelled,
    DuplicateIdentifier,
    InvalidArguments,
    PartialFailure,
    SkillUnavailable,
    UnknownSkill,
    UnknownToolReference,
)
from ..scanner import AppSnapshot
from ..tools.base import ToolContext, ToolResult
from ..tools.registry import ToolRegistry
from ..tools.schema import validate_arguments
from .models import FailurePolicy, Skill, SkillReport, StepOutcome, placeholder_names, render_step_args

logger = logging.getLogger(__name__)


class SkillRegistry:
    """Named, app-gated tool sequences.

    Registration checks every step's tool against the tool registry and every
    placeholder against the declared skill parameters, so a composition
    mistake fails at startup rather than mid-run.
    """

    def __init__(self, tools: ToolRegistry, journal=None):
        self._tools = tools
        self._journal = journal
        self._skills: dict[str, Skill] = {}
        self._lock = threading.Lock()
        # (snapshot, available skills) for the last snapshot seen; keyed on identity.
        self._memo: tuple[AppSnapshot, list[Skill]] | None = None

    def register(self, skill: Skill) -> None:
        with self._lock:
            if skill.name in self._skills:
                raise DuplicateIdentifier(f"Skill already registered: {skill.name}")
            unknown = sorted({s.tool for s in skill.steps if s.tool not in self._tools})
            if unknown:
                raise UnknownToolReference(f"Skill {skill.name} references unknown tool(s): {', '.join(unknown)}")
            declared = {p.name for p in skill.parameters}
            undeclared = [
                f"step {i} ({s.tool}) uses undeclared placeholder '{{{{{n}}}}}'"
                for i, s in enumerate(skill.steps)
                for n in sorted(placeholder_names(s.args) - declared)
            ]
            if undeclared:
                raise InvalidArguments(undeclared)
            self._skills[skill.name] = skill
            self._memo = None

    def get(self, name: str) -> Skill:
        if name not in self._skills:
            raise UnknownSkill(f"Unknown skill: {name}")
        return self._skills[name]

    def names(self) -> list[str]:
        return list(self._skills)

    def all_skills(self) -> list[Skill]:
        return list(self._skills.values())

    def list_available(self, snapshot: AppSnapshot) -> list[Skill]:
        memo = self._memo
        if memo is not None and memo[0] is snapshot:
            return list(memo[1])
        installed = snapshot.package_ids()
        available = [s for s in self._skills.values() if s.required_apps <= installed]
        self._memo = (snapshot, available)
        return list(available)

    def execute(
        self,
        name: str,
        args: dict[str, Any] | None,
        snapshot: AppSnapshot,
        *,
        cancel: threading.Event | None = None,
        ctx: ToolContext | None = None,
    ) -> SkillReport:
        report = self._execute(name, args, snapshot, cancel, ctx)
        if report.error is not None:
            logger.info("skill %s: %s", name, report.error)
        if self._journal is not None:
            try:
                self._journal.append("skill.report", report.to_dict())
            except Exception:
                logger.exception("failed to journal report of skill %s", name)
        return report

    def _execute(self, name, args, snapshot, cancel, ctx) -> SkillReport:
        skill = self._skills.get(name)
        if skill is None:
            return SkillReport(skill=name, error=UnknownSkill(f"Unknown skill: {name}"))

        missing = skill.required_apps - snapshot.package_ids()
        if missing:
            return SkillReport(skill=name, error=SkillUnavailable(name, list(missing)))

        values, problems = validate_arguments(skill.parameters, args)
        if problems:
            return SkillReport(skill=name, error=InvalidArguments(problems))

        report = SkillReport(skill=name)
        for index, step in enumerate(skill.steps):
            if cancel is not None and cancel.is_set():
                report.error = Cancelled(index)
                return report

            step_args, problems = render_step_args(step.args, values)
            if problems:
                result = ToolResult.failure(step.tool, InvalidArguments(problems))
            else:
                result = self._tools.dispatch(step.tool, step_args, ctx)
            outcome = StepOutcome(index=index, tool=step.tool, args=step_args, result=result)

            if not result.ok:
                if step.on_failure == FailurePolicy.ABORT:
                    report.failed_outcome = outcome
                    report.error = PartialFailure(index, result.error)
                    return report
                logger.info("skill %s step %d (%s) failed, continuing: %s", name, index, step.tool, result.error)
            report.outcomes.append(outcome)
        return report
