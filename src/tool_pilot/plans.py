# plans.py
# Plan lifecycle: create / approve / reject / execute steps / complete.
#
# State per plan:
#   created (unapproved) → approved → steps run one at a time → complete
#   created | approved   → rejected  (deleted from the store)
#   cancel only drops the active focus; the plan stays in the store.
#
# At most one plan is active. Step execution is the only place the mode gate
# is enforced: plan mode acknowledges a step without running it, act mode
# runs it through the file / terminal tools and marks it completed.

from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from pydantic import Field, ValidationError

from tool_pilot.confirmation import ConfirmationGate
from tool_pilot.exceptions import (
    PlanNotFoundError,
    PlanValidationError,
    PreconditionFailedError,
    StepExecutionFailedError,
    StepNotFoundError,
)
from tool_pilot.log import get_logger, success
from tool_pilot.models import Mode, OperationKind, Plan, PlanProgress, Session, Step, StepType, ToolResult
from tool_pilot.modes import ModeGate
from tool_pilot.registry import ToolArgs, ToolDescriptor

log = get_logger(__name__)

ToolRunner = Callable[[str, dict[str, Any]], Awaitable[ToolResult]]

EXECUTION_KEYWORDS = ("execute", "run", "create", "modify", "delete", "install", "build")
ANALYSIS_KEYWORDS = ("analyze", "plan", "understand", "explore", "investigate")

# file_operation details.operation → (tool name, operation kind)
FILE_OPERATIONS: dict[str, tuple[str, OperationKind]] = {
    "read": ("read_file", OperationKind.FILE_READ),
    "list": ("list_files", OperationKind.FILE_LIST),
    "search": ("search_files", OperationKind.FILE_SEARCH),
    "write": ("write_file", OperationKind.FILE_WRITE),
    "modify": ("modify_file", OperationKind.FILE_MODIFY),
    "delete": ("delete_file", OperationKind.FILE_DELETE),
}


class CreatePlanArgs(ToolArgs):
    title: str = Field(..., description="Short plan title")
    description: str = Field(..., description="What the plan achieves")
    steps: list[dict[str, Any]] = Field(
        ..., description="Ordered steps: {description, type, details}"
    )
    estimated_time: str | None = Field(None, description="Rough time estimate")
    risks: list[str] | None = Field(None, description="Known risks")


class PlanManager:
    """Owns the plan store and the single active-plan reference."""

    def __init__(
        self,
        mode_gate: ModeGate,
        confirmation: ConfirmationGate | None = None,
        tool_runner: ToolRunner | None = None,
    ) -> None:
        self._modes = mode_gate
        self._confirmation = confirmation
        self._run_tool = tool_runner
        self._plans: dict[str, Plan] = {}
        self._active_id: str | None = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def active_plan_id(self) -> str | None:
        return self._active_id

    def get_plan(self, plan_id: str) -> Plan | None:
        return self._plans.get(plan_id)

    def get_active_plan(self) -> Plan | None:
        return self._plans.get(self._active_id) if self._active_id else None

    def all_plans(self) -> list[Plan]:
        return list(self._plans.values())

    def _require(self, plan_id: str) -> Plan:
        plan = self._plans.get(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_plan(
        self,
        title: str,
        description: str,
        steps: Iterable[Step | dict[str, Any]] | None,
        *,
        estimated_time: str | None = None,
        risks: list[str] | None = None,
    ) -> Plan:
        """Store a new, unapproved plan. It does not become active."""
        steps = list(steps or [])
        if not title or not description or not steps:
            raise PlanValidationError(
                "Invalid plan data: title, description, and steps are required"
            )

        normalised = []
        for index, raw in enumerate(steps, start=1):
            data = raw.model_dump() if isinstance(raw, Step) else dict(raw)
            data.setdefault("id", f"step_{index}")
            data["id"] = str(data["id"])
            data["completed"] = False
            try:
                normalised.append(Step.model_validate(data))
            except ValidationError as exc:
                raise PlanValidationError(f"Invalid step #{index}: {exc}") from exc

        if len({step.id for step in normalised}) != len(normalised):
            raise PlanValidationError("Step ids must be unique within a plan.")

        plan = Plan(
            title=title,
            description=description,
            steps=normalised,
            estimated_time=estimated_time,
            risks=risks or [],
        )
        self._plans[plan.id] = plan
        log.info("Created execution plan: %s (%s)", title, plan.id)
        return plan

    def approve_plan(self, plan_id: str) -> bool:
        plan = self._require(plan_id)
        plan.approved = True
        if self._active_id and self._active_id != plan_id:
            log.debug("Plan %s displaces active plan %s", plan_id, self._active_id)
        self._active_id = plan_id
        log.info("Plan approved: %s", plan.title)
        return True

    def reject_plan(self, plan_id: str) -> bool:
        plan = self._require(plan_id)
        del self._plans[plan_id]
        if self._active_id == plan_id:
            self._active_id = None
        log.info("Plan rejected: %s", plan.title)
        return True

    async def execute_plan_step(self, plan_id: str, step_id: str) -> bool:
        plan = self._require(plan_id)
        if not plan.approved:
            raise PreconditionFailedError("Plan must be approved before execution")
        step = plan.find_step(step_id)
        if step is None:
            raise StepNotFoundError(step_id)

        if step.completed:
            log.warning("Step already completed: %s", step.description)
            return True

        if self._modes.is_plan_mode:
            log.info("Step planned (not executed in plan mode): %s", step.description)
            return True

        log.info("Executing step: %s", step.description)
        try:
            await self._execute_step_logic(step)
        except StepExecutionFailedError:
            log.error("Step failed: %s", step.description)
            raise
        except Exception as exc:
            log.error("Step failed: %s (%s)", step.description, exc)
            raise StepExecutionFailedError(f"Step execution failed: {exc}") from exc

        step.completed = True
        success(log, "Step completed: %s", step.description)
        return True

    def complete_plan(self, plan_id: str) -> bool:
        plan = self._require(plan_id)
        if not plan.is_complete:
            raise PreconditionFailedError("Not all steps are completed")
        if self._active_id == plan_id:
            self._active_id = None
        success(log, "Plan completed: %s", plan.title)
        return True

    def cancel_active_plan(self) -> bool:
        if self._active_id is None:
            return False
        plan = self._plans.get(self._active_id)
        if plan is not None:
            log.info("Cancelled active plan: %s", plan.title)
        self._active_id = None
        return True

    def get_plan_progress(self, plan_id: str) -> PlanProgress:
        plan = self._plans.get(plan_id)
        if plan is None:
            return PlanProgress()
        completed = sum(1 for step in plan.steps if step.completed)
        total = len(plan.steps)
        # halves round up; round() would round half to even
        percentage = int(completed * 100 / total + 0.5) if total else 0
        return PlanProgress(completed=completed, total=total, percentage=percentage)

    @staticmethod
    def suggest_mode_switch(session: Session) -> Mode | None:
        """Advisory only: guess the mode the latest message calls for."""
        if not session.conversation_history:
            return None
        content = session.conversation_history[-1].content.lower()
        if any(word in content for word in EXECUTION_KEYWORDS):
            return Mode.ACT
        if any(word in content for word in ANALYSIS_KEYWORDS):
            return Mode.PLAN
        return None

    # ------------------------------------------------------------------
    # Step hooks
    # ------------------------------------------------------------------

    async def _execute_step_logic(self, step: Step) -> None:
        if step.type is StepType.ANALYSIS:
            await self._run_analysis(step)
        elif step.type is StepType.FILE_OPERATION:
            await self._run_file_operation(step)
        elif step.type is StepType.COMMAND:
            await self._run_command(step)
        elif step.type is StepType.CONFIRMATION:
            await self._run_confirmation(step)
        else:
            raise StepExecutionFailedError(f"Unknown step type: {step.type}")

    async def _invoke(self, kind: OperationKind, tool: str, arguments: dict[str, Any]) -> ToolResult:
        if not self._modes.validate_mode_for_operation(kind):
            raise StepExecutionFailedError(
                f"Operation {kind.value} is not allowed in {self._modes.mode.value} mode"
            )
        if self._run_tool is None:
            raise StepExecutionFailedError("No tool runner attached to the plan manager")
        result = await self._run_tool(tool, arguments)
        if not result.success:
            raise StepExecutionFailedError(f"{tool} failed: {result.error}")
        return result

    async def _run_analysis(self, step: Step) -> None:
        details = step.details
        if "path" in details:
            await self._invoke(OperationKind.FILE_READ, "read_file", {"path": details["path"]})
        elif "searchTerm" in details:
            args = {k: details[k] for k in ("searchTerm", "path", "filePattern") if k in details}
            await self._invoke(OperationKind.FILE_SEARCH, "search_files", args)
        else:
            log.info("Analysis step noted: %s", step.description)

    async def _run_file_operation(self, step: Step) -> None:
        details = dict(step.details)
        operation = str(details.pop("operation", "read")).lower()
        if operation not in FILE_OPERATIONS:
            raise StepExecutionFailedError(f"Unknown file operation: {operation}")
        tool, kind = FILE_OPERATIONS[operation]
        await self._invoke(kind, tool, details)

    async def _run_command(self, step: Step) -> None:
        if not step.details.get("command"):
            raise StepExecutionFailedError("Command step has no 'command' detail")
        await self._invoke(OperationKind.COMMAND_EXECUTE, "execute_command", dict(step.details))

    async def _run_confirmation(self, step: Step) -> None:
        if self._confirmation is None:
            raise StepExecutionFailedError("No confirmation gate attached to the plan manager")
        details = step.details
        approved = await self._confirmation.confirm_destructive_operation(
            details.get("operation", step.description),
            details.get("message", step.description),
            details.get("path"),
        )
        if not approved:
            raise StepExecutionFailedError(f"Confirmation declined: {step.description}")

    # ------------------------------------------------------------------
    # Built-in tool
    # ------------------------------------------------------------------

    def create_plan_tool(self) -> ToolDescriptor:
        """The create_plan tool the model uses to propose a plan."""

        async def _create(args: CreatePlanArgs, session: Session) -> ToolResult:
            try:
                plan = self.create_plan(
                    args.title,
                    args.description,
                    args.steps,
                    estimated_time=args.estimated_time,
                    risks=args.risks,
                )
            except PlanValidationError as exc:
                return ToolResult.fail(str(exc))
            return ToolResult.ok(data={"planId": plan.id})

        return ToolDescriptor("create_plan", "Create an execution plan", CreatePlanArgs, _create)
