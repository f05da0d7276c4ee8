import pytest
from unittest.mock import AsyncMock

from conftest import FakePrompter
from tool_pilot.confirmation import ConfirmationGate
from tool_pilot.exceptions import (
    NotFoundError,
    PlanNotFoundError,
    PlanValidationError,
    PreconditionFailedError,
    StepExecutionFailedError,
    StepNotFoundError,
)
from tool_pilot.models import Message, Mode, StepType, ToolResult
from tool_pilot.modes import ModeGate
from tool_pilot.plans import PlanManager


@pytest.fixture
def runner():
    return AsyncMock(return_value=ToolResult.ok(data={}))


@pytest.fixture
def manager(runner):
    confirmation = ConfirmationGate(auto_approve=True)
    return PlanManager(ModeGate(), confirmation, tool_runner=runner)


def _two_step_plan(manager):
    return manager.create_plan(
        "demo",
        "two commands",
        [
            {"description": "list", "type": "command", "details": {"command": "ls"}},
            {"description": "read", "type": "file_operation", "details": {"operation": "read", "path": "a.txt"}},
        ],
    )

# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def test_create_plan_assigns_ids_and_stays_inactive(manager):
    plan = _two_step_plan(manager)

    assert [s.id for s in plan.steps] == ["step_1", "step_2"]
    assert plan.steps[0].type is StepType.COMMAND
    assert not plan.approved
    assert all(not s.completed for s in plan.steps)
    assert manager.active_plan_id is None
    assert manager.get_plan(plan.id) is plan

def test_create_plan_ignores_supplied_completed_flag(manager):
    plan = manager.create_plan("t", "d", [{"description": "s", "completed": True}])
    assert plan.steps[0].completed is False

@pytest.mark.parametrize(
    "title, description, steps",
    [("", "d", [{"description": "s"}]), ("t", "", [{"description": "s"}]), ("t", "d", []), ("t", "d", None)],
)
def test_create_plan_requires_fields(manager, title, description, steps):
    with pytest.raises(PlanValidationError):
        manager.create_plan(title, description, steps)
    assert manager.all_plans() == []

def test_create_plan_rejects_bad_step_type(manager):
    with pytest.raises(PlanValidationError):
        manager.create_plan("t", "d", [{"description": "s", "type": "teleport"}])

def test_create_plan_rejects_duplicate_step_ids(manager):
    with pytest.raises(PlanValidationError):
        manager.create_plan("t", "d", [{"id": "x", "description": "a"}, {"id": "x", "description": "b"}])

# ---------------------------------------------------------------------------
# Approve / reject / cancel
# ---------------------------------------------------------------------------

def test_approve_displaces_previous_active_plan(manager):
    first = _two_step_plan(manager)
    second = _two_step_plan(manager)

    manager.approve_plan(first.id)
    manager.approve_plan(second.id)

    assert manager.active_plan_id == second.id
    assert manager.get_plan(first.id).approved

def test_reject_removes_plan_and_clears_active(manager):
    plan = _two_step_plan(manager)
    manager.approve_plan(plan.id)

    assert manager.reject_plan(plan.id) is True
    assert manager.get_plan(plan.id) is None
    assert manager.active_plan_id is None

def test_unknown_plan_ids_raise_not_found(manager):
    with pytest.raises(PlanNotFoundError):
        manager.approve_plan("plan_missing")
    with pytest.raises(NotFoundError):
        manager.reject_plan("plan_missing")
    with pytest.raises(NotFoundError):
        manager.complete_plan("plan_missing")

def test_cancel_keeps_plan_in_store(manager):
    assert manager.cancel_active_plan() is False

    plan = _two_step_plan(manager)
    manager.approve_plan(plan.id)

    assert manager.cancel_active_plan() is True
    assert manager.active_plan_id is None
    assert manager.get_plan(plan.id).approved

# ---------------------------------------------------------------------------
# Step execution
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_end_to_end_demo(manager, runner):
    plan = _two_step_plan(manager)
    manager.approve_plan(plan.id)
    manager._modes.switch_mode(Mode.ACT)

    assert await manager.execute_plan_step(plan.id, "step_1") is True
    assert plan.steps[0].completed
    runner.assert_awaited_once_with("execute_command", {"command": "ls"})

    with pytest.raises(PreconditionFailedError):
        manager.complete_plan(plan.id)
    assert manager.active_plan_id == plan.id

    assert await manager.execute_plan_step(plan.id, "step_2") is True
    runner.assert_awaited_with("read_file", {"path": "a.txt"})

    assert manager.complete_plan(plan.id) is True
    assert manager.active_plan_id is None

@pytest.mark.asyncio
async def test_execute_step_is_idempotent(manager, runner):
    plan = _two_step_plan(manager)
    manager.approve_plan(plan.id)
    manager._modes.switch_mode(Mode.ACT)

    assert await manager.execute_plan_step(plan.id, "step_1") is True
    assert await manager.execute_plan_step(plan.id, "step_1") is True
    assert runner.await_count == 1

@pytest.mark.asyncio
@pytest.mark.parametrize("mode", [Mode.PLAN, Mode.ACT])
async def test_unapproved_plan_always_fails(manager, runner, mode):
    plan = _two_step_plan(manager)
    manager._modes.switch_mode(mode)

    with pytest.raises(PreconditionFailedError):
        await manager.execute_plan_step(plan.id, "step_1")
    runner.assert_not_awaited()

@pytest.mark.asyncio
async def test_plan_mode_acknowledges_without_completing(manager, runner):
    plan = _two_step_plan(manager)
    manager.approve_plan(plan.id)

    assert await manager.execute_plan_step(plan.id, "step_1") is True
    assert not plan.steps[0].completed
    runner.assert_not_awaited()

@pytest.mark.asyncio
async def test_unknown_step_and_plan(manager):
    plan = _two_step_plan(manager)
    manager.approve_plan(plan.id)

    with pytest.raises(StepNotFoundError):
        await manager.execute_plan_step(plan.id, "step_9")
    with pytest.raises(PlanNotFoundError):
        await manager.execute_plan_step("plan_missing", "step_1")

@pytest.mark.asyncio
async def test_failed_tool_leaves_step_retryable(manager, runner):
    plan = _two_step_plan(manager)
    manager.approve_plan(plan.id)
    manager._modes.switch_mode(Mode.ACT)
    runner.return_value = ToolResult.fail("exit code 1")

    with pytest.raises(StepExecutionFailedError, match="exit code 1"):
        await manager.execute_plan_step(plan.id, "step_1")
    assert not plan.steps[0].completed

    runner.return_value = ToolResult.ok()
    assert await manager.execute_plan_step(plan.id, "step_1") is True
    assert plan.steps[0].completed

@pytest.mark.asyncio
async def test_runner_exception_is_wrapped(manager, runner):
    plan = _two_step_plan(manager)
    manager.approve_plan(plan.id)
    manager._modes.switch_mode(Mode.ACT)
    runner.side_effect = RuntimeError("disk on fire")

    with pytest.raises(StepExecutionFailedError, match="disk on fire"):
        await manager.execute_plan_step(plan.id, "step_1")

@pytest.mark.asyncio
async def test_analysis_step_without_target_runs_nothing(manager, runner):
    plan = manager.create_plan("t", "d", [{"description": "think it over", "type": "analysis"}])
    manager.approve_plan(plan.id)
    manager._modes.switch_mode(Mode.ACT)

    assert await manager.execute_plan_step(plan.id, "step_1") is True
    runner.assert_not_awaited()

@pytest.mark.asyncio
async def test_analysis_step_reads_or_searches_its_target(manager, runner):
    plan = manager.create_plan(
        "t",
        "d",
        [
            {"description": "look at config", "type": "analysis", "details": {"path": "setup.cfg"}},
            {"description": "find uses", "type": "analysis", "details": {"searchTerm": "TODO", "path": "src"}},
        ],
    )
    manager.approve_plan(plan.id)
    manager._modes.switch_mode(Mode.ACT)

    await manager.execute_plan_step(plan.id, "step_1")
    runner.assert_awaited_with("read_file", {"path": "setup.cfg"})
    await manager.execute_plan_step(plan.id, "step_2")
    runner.assert_awaited_with("search_files", {"searchTerm": "TODO", "path": "src"})

@pytest.mark.asyncio
async def test_declined_confirmation_step_fails(runner):
    manager = PlanManager(ModeGate(initial=Mode.ACT), ConfirmationGate(prompter=FakePrompter(False)), runner)
    plan = manager.create_plan("t", "d", [{"description": "wipe", "type": "confirmation"}])
    manager.approve_plan(plan.id)

    with pytest.raises(StepExecutionFailedError):
        await manager.execute_plan_step(plan.id, "step_1")
    assert not plan.steps[0].completed

@pytest.mark.asyncio
async def test_unknown_file_operation_fails(manager):
    plan = manager.create_plan(
        "t", "d", [{"description": "x", "type": "file_operation", "details": {"operation": "shred"}}]
    )
    manager.approve_plan(plan.id)
    manager._modes.switch_mode(Mode.ACT)

    with pytest.raises(StepExecutionFailedError, match="shred"):
        await manager.execute_plan_step(plan.id, "step_1")

# ---------------------------------------------------------------------------
# Progress and suggestions
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_progress_rounds_to_nearest(manager):
    plan = manager.create_plan("t", "d", [{"description": "a"}, {"description": "b"}, {"description": "c"}])
    manager.approve_plan(plan.id)
    manager._modes.switch_mode(Mode.ACT)

    await manager.execute_plan_step(plan.id, "step_1")
    await manager.execute_plan_step(plan.id, "step_2")
    progress = manager.get_plan_progress(plan.id)

    assert (progress.completed, progress.total, progress.percentage) == (2, 3, 67)

def test_progress_for_unknown_plan_is_zero(manager):
    progress = manager.get_plan_progress("plan_missing")
    assert (progress.completed, progress.total, progress.percentage) == (0, 0, 0)

@pytest.mark.parametrize(
    "text, expected",
    [
        ("Please run the build", Mode.ACT),
        ("Can you analyze this module?", Mode.PLAN),
        ("hello there", None),
    ],
)
def test_suggest_mode_switch(session, text, expected):
    session.append(Message(role="user", content=text))
    assert PlanManager.suggest_mode_switch(session) is expected

def test_suggest_mode_switch_empty_history(session):
    assert PlanManager.suggest_mode_switch(session) is None

# ---------------------------------------------------------------------------
# create_plan tool
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_plan_tool_returns_plan_id(manager, session):
    tool = manager.create_plan_tool()
    args = tool.parse_arguments({"title": "t", "description": "d", "steps": [{"description": "s"}]})

    result = await tool.executor(args, session)

    assert result.success
    assert manager.get_plan(result.data["planId"]) is not None

@pytest.mark.asyncio
async def test_create_plan_tool_reports_validation_failure(manager, session):
    tool = manager.create_plan_tool()
    args = tool.parse_arguments({"title": "t", "description": "d", "steps": []})

    result = await tool.executor(args, session)

    assert not result.success
    assert "required" in result.error
