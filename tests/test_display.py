import io
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console

from tool_pilot import display
from tool_pilot.models import Mode, Plan, Step, ToolResult

MARKUP = "Fix [/bold] handling [red]"


@pytest.fixture
def output(monkeypatch):
    buffer = io.StringIO()
    monkeypatch.setattr(display, "console", Console(file=buffer, width=200, color_system=None))
    return buffer

# ---------------------------------------------------------------------------
# Markup in model and user text
# ---------------------------------------------------------------------------

def test_plans_table_prints_markup_literally(output):
    plan = Plan(title=MARKUP, description="d", steps=[Step(id="step_1", description="s")])
    display.plans_table([plan], plan.id)
    assert MARKUP in output.getvalue()

def test_plan_steps_prints_markup_literally(output):
    steps = [Step(id="step_1", description=MARKUP, details={"path": "[b]x"})]
    display.plan_steps(MARKUP, steps)
    text = output.getvalue()
    assert MARKUP in text
    assert "[b]x" in text

def test_destructive_warning_prints_markup_literally(output):
    display.destructive_warning(MARKUP, "[/]", "[i]file")
    text = output.getvalue()
    assert MARKUP in text
    assert "[i]file" in text

def test_config_and_results_print_markup_literally(output):
    display.config_table({"model": MARKUP})
    display.tool_results([ToolResult.ok(output="[/x]"), ToolResult.fail("[/y]")])
    display.success(f"Plan approved: {MARKUP}")
    text = output.getvalue()
    assert text.count(MARKUP) == 2
    assert "[/x]" in text and "[/y]" in text

def test_mode_status_uses_given_description(output):
    display.mode_status(Mode.ACT, "Act Mode: [whatever]")
    assert "Act Mode: [whatever]" in output.getvalue()

# ---------------------------------------------------------------------------
# Spinner
# ---------------------------------------------------------------------------

def test_status_paused_without_spinner_is_a_no_op():
    with display.status_paused():
        pass

def test_status_paused_stops_and_restarts_spinner():
    status = MagicMock()
    status.__enter__.return_value = status
    with patch.object(display.console, "status", return_value=status):
        with display.thinking():
            with display.status_paused():
                status.stop.assert_called_once()
                status.start.assert_not_called()
            status.start.assert_called_once()
