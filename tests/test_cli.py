import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from tool_pilot import cli
from tool_pilot.cli import _with_default_command, build_parser, handle_command
from tool_pilot.confirmation import ConfirmationGate
from tool_pilot.engine import ConversationEngine
from tool_pilot.models import Mode
from tool_pilot.modes import MODE_DESCRIPTIONS


@pytest.fixture
def engine(config):
    return ConversationEngine(config, MagicMock(), confirmation=ConfirmationGate(auto_approve=True))


@pytest.mark.parametrize(
    "argv, expected",
    [
        ([], ["chat"]),
        (["fix the tests"], ["chat", "fix the tests"]),
        (["-v", "hello"], ["-v", "chat", "hello"]),
        (["config", "show"], ["config", "show"]),
        (["--help"], ["--help"]),
    ],
)
def test_default_command_is_chat(argv, expected):
    assert _with_default_command(argv) == expected

def test_parser_chat_flags():
    args = build_parser().parse_args(["chat", "--act", "-y", "do it"])
    assert args.act and args.yes
    assert args.prompt == "do it"

# ---------------------------------------------------------------------------
# Slash commands
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_plain_text_is_not_a_command(engine):
    assert await handle_command(engine, "hello") is False

@pytest.mark.asyncio
@patch("tool_pilot.cli.display")
async def test_mode_commands(mock_display, engine):
    await handle_command(engine, "/act")
    assert engine.mode is Mode.ACT
    mock_display.mode_status.assert_called_with(Mode.ACT, MODE_DESCRIPTIONS[Mode.ACT])
    await handle_command(engine, "/plan")
    assert engine.mode is Mode.PLAN

@pytest.mark.asyncio
@patch("tool_pilot.cli.display")
async def test_plan_commands(mock_display, engine, tmp_path):
    (tmp_path / "a.txt").write_text("x")
    plan = engine.plans.create_plan("t", "d", [{"description": "read", "type": "file_operation", "details": {"path": "a.txt"}}])

    await handle_command(engine, f"/approve {plan.id}")
    assert engine.plans.active_plan_id == plan.id

    await handle_command(engine, "/act")
    await handle_command(engine, f"/step {plan.id} step_1")
    assert plan.steps[0].completed

    await handle_command(engine, f"/complete {plan.id}")
    assert engine.plans.active_plan_id is None

@pytest.mark.asyncio
@patch("tool_pilot.cli.display")
async def test_errors_are_shown_not_raised(mock_display, engine):
    assert await handle_command(engine, "/complete plan_missing") is True
    mock_display.halt.assert_called_once_with("Plan not found: plan_missing")

@pytest.mark.asyncio
@patch("tool_pilot.cli.display")
async def test_run_prompt_renders_reply(mock_display, engine):
    engine.process_message = AsyncMock(return_value="answer")
    assert await cli.run_prompt(engine, "q") == "answer"
    mock_display.final_result.assert_called_once_with("answer")
