import pytest
from pydantic import ValidationError

from tool_pilot.models import (
    RECENT_FILES_LIMIT,
    Message,
    Plan,
    Step,
    ToolCall,
    ToolResult,
)

# ---------------------------------------------------------------------------
# Recent files
# ---------------------------------------------------------------------------

def test_touch_file_moves_existing_entry_to_front(session):
    for path in ("a.py", "b.py", "c.py"):
        session.touch_file(path)
    session.touch_file("a.py")
    assert session.recent_files == ["a.py", "c.py", "b.py"]

def test_touch_file_is_bounded(session):
    for index in range(RECENT_FILES_LIMIT + 5):
        session.touch_file(f"file_{index}.txt")
    assert len(session.recent_files) == RECENT_FILES_LIMIT
    assert session.recent_files[0] == f"file_{RECENT_FILES_LIMIT + 4}.txt"
    assert "file_0.txt" not in session.recent_files

# ---------------------------------------------------------------------------
# Tool results and messages
# ---------------------------------------------------------------------------

def test_tool_result_requires_error_on_failure():
    with pytest.raises(ValidationError):
        ToolResult(success=False)

def test_tool_result_rejects_error_on_success():
    with pytest.raises(ValidationError):
        ToolResult(success=True, error="boom")

def test_tool_call_ids_are_generated_and_unique():
    first = ToolCall(name="read_file")
    second = ToolCall(name="read_file")
    assert first.id.startswith("call_")
    assert first.id != second.id
    assert first.arguments == {}

def test_message_results_must_align_with_calls():
    call = ToolCall(name="list_files")
    with pytest.raises(ValidationError):
        Message(role="assistant", content="", tool_calls=[call], tool_results=[])

def test_message_is_immutable():
    message = Message(role="user", content="hi")
    with pytest.raises(ValidationError):
        message.content = "changed"

# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

def test_plan_requires_at_least_one_step():
    with pytest.raises(ValidationError):
        Plan(title="t", description="d", steps=[])

def test_plan_completion_and_lookup():
    plan = Plan(
        title="t",
        description="d",
        steps=[Step(id="step_1", description="one"), Step(id="step_2", description="two")],
    )
    assert plan.id.startswith("plan_")
    assert plan.find_step("step_2").description == "two"
    assert plan.find_step("missing") is None
    assert not plan.is_complete
    for step in plan.steps:
        step.completed = True
    assert plan.is_complete
