# cli.py
# Entry point. Argument parsing, wiring, and the interactive loop only;
# no orchestration logic lives here.

import argparse
import asyncio
import sys
from pathlib import Path

from tool_pilot import display
from tool_pilot.config import AgentConfig, load_config, save_config, validate_config
from tool_pilot.confirmation import ConfirmationGate
from tool_pilot.engine import ConversationEngine
from tool_pilot.exceptions import AgentError
from tool_pilot.log import get_logger, setup_logging
from tool_pilot.models import Mode

log = get_logger(__name__)

HELP_TEXT = """\
Commands:
  /plan, /act            switch mode (/act asks for confirmation)
  /mode                  show the current mode
  /plans                 list plans
  /approve <plan>        review and approve a plan (makes it active)
  /reject <plan>         delete a plan
  /step <plan> <step>    execute one step of an approved plan
  /complete <plan>       mark a plan complete (all steps must be done)
  /cancel                drop the active plan
  /progress <plan>       show step progress
  /save <file>, /load <file>   save / load the conversation
  /reset                 clear the conversation
  clear                  clear the screen
  exit, quit             leave
Anything else is sent to the assistant."""


# ---------------------------------------------------------------------------
# Interactive commands
# ---------------------------------------------------------------------------


async def handle_command(engine: ConversationEngine, line: str) -> bool:
    """Run a slash command. Returns False if `line` is not one."""
    if not line.startswith("/"):
        return False
    name, *args = line[1:].split()
    plans = engine.plans

    try:
        if name == "plan":
            engine.set_mode(Mode.PLAN)
            display.mode_status(engine.mode, engine.modes.describe())
        elif name == "act":
            if await engine.confirmation.confirm_mode_switch(engine.mode.value, Mode.ACT.value):
                engine.set_mode(Mode.ACT)
            display.mode_status(engine.mode, engine.modes.describe())
        elif name == "mode":
            display.mode_status(engine.mode, engine.modes.describe())
        elif name == "plans":
            display.plans_table(plans.all_plans(), plans.active_plan_id)
        elif name == "approve" and args:
            plan = plans.get_plan(args[0])
            if plan is None:
                display.halt(f"Plan not found: {args[0]}")
            elif await engine.confirmation.confirm_plan_execution(plan.title, plan.steps):
                plans.approve_plan(plan.id)
                display.success(f"Plan approved: {plan.title}")
        elif name == "reject" and args:
            plans.reject_plan(args[0])
            display.success(f"Plan rejected: {args[0]}")
        elif name == "step" and len(args) == 2:
            await plans.execute_plan_step(args[0], args[1])
            display.plan_progress(args[0], plans.get_plan_progress(args[0]))
        elif name == "complete" and args:
            plans.complete_plan(args[0])
            display.success(f"Plan completed: {args[0]}")
        elif name == "cancel":
            display.info("Active plan cancelled." if plans.cancel_active_plan() else "No active plan.")
        elif name == "progress" and args:
            display.plan_progress(args[0], plans.get_plan_progress(args[0]))
        elif name == "save" and args:
            display.success(f"Conversation saved to: {engine.save_conversation(args[0])}")
        elif name == "load" and args:
            engine.load_conversation(args[0])
            display.success(f"Conversation loaded from: {args[0]}")
        elif name == "reset":
            engine.clear_conversation()
            display.success("Conversation history cleared")
        else:
            display.info(HELP_TEXT)
    except AgentError as exc:
        display.halt(str(exc))
    return True


async def run_prompt(engine: ConversationEngine, prompt: str) -> str:
    with display.thinking():
        reply = await engine.process_message(prompt)
    display.final_result(reply)
    return reply


async def interactive_loop(engine: ConversationEngine, config: AgentConfig) -> None:
    session = engine.session
    display.banner(
        config.model, session.working_directory, session.project_type, engine.mode, engine.modes.describe()
    )

    while True:
        try:
            line = (await asyncio.to_thread(display.console.input, "[bold blue]> [/bold blue]")).strip()
        except (EOFError, KeyboardInterrupt):
            return
        if not line:
            continue

        lowered = line.lower()
        if lowered in ("exit", "quit"):
            if await engine.confirmation.confirm_exit():
                display.info("Goodbye!")
                return
            continue
        if lowered == "help":
            display.info(HELP_TEXT)
            continue
        if lowered == "clear":
            display.console.clear()
            continue
        if await handle_command(engine, line):
            continue

        await run_prompt(engine, line)
        suggestion = engine.plans.suggest_mode_switch(session)
        if suggestion is not None and suggestion is not engine.mode:
            display.mode_suggestion(suggestion)


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_config(args: argparse.Namespace, config: AgentConfig) -> int:
    action = args.config_action
    if action == "show" or action is None:
        values = config.model_dump()
        if values["api_key"]:
            values["api_key"] = values["api_key"][:4] + "…"
        display.config_table(values)
        return 0

    if action == "set-api-key":
        config = config.model_copy(update={"api_key": args.value})
        message = "API key saved successfully"
    elif action == "set-model":
        config = config.model_copy(update={"model": args.value})
        message = f"Model set to: {args.value}"
    elif action == "set-working-dir":
        directory = Path(args.value).expanduser()
        if not directory.is_dir():
            display.halt(f"Directory does not exist: {args.value}")
            return 1
        config = config.model_copy(update={"working_directory": str(directory.resolve())})
        message = f"Working directory set to: {directory.resolve()}"
    elif action == "toggle-auto-approve":
        config = config.model_copy(update={"auto_approve": not config.auto_approve})
        message = f"Auto-approve mode {'enabled' if config.auto_approve else 'disabled'}"
    elif action == "reset":
        gate = ConfirmationGate()
        if not asyncio.run(gate.confirm_destructive_operation("Reset configuration", "Restore all settings to defaults")):
            return 0
        config = AgentConfig()
        message = "Configuration reset to defaults"
    else:
        return 2

    save_config(config)
    display.success(message)
    return 0


def _cmd_tools(config: AgentConfig) -> int:
    engine = ConversationEngine(config)
    display.tools_table(engine.tools)
    return 0


async def _cmd_chat(args: argparse.Namespace, config: AgentConfig) -> int:
    problems = validate_config(config)
    if problems:
        for problem in problems:
            display.halt(problem)
        return 1

    engine = ConversationEngine(config, confirm_tool_calls=True)
    await engine.initialize()
    if args.act:
        engine.set_mode(Mode.ACT)
    elif args.plan:
        engine.set_mode(Mode.PLAN)

    log.debug("Chat started in %s mode", engine.mode.value)
    if args.prompt:
        await run_prompt(engine, args.prompt)
        return 0
    await interactive_loop(engine, config)
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tool-pilot", description="Plan/act coding assistant")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log errors")
    sub = parser.add_subparsers(dest="command")

    chat = sub.add_parser("chat", help="Talk to the assistant (default)")
    chat.add_argument("prompt", nargs="?", help="Run a single prompt and exit")
    modes = chat.add_mutually_exclusive_group()
    modes.add_argument("-p", "--plan", action="store_true", help="Start in plan mode")
    modes.add_argument("-a", "--act", action="store_true", help="Start in act mode")
    chat.add_argument("-y", "--yes", action="store_true", help="Auto-approve all actions")

    cfg = sub.add_parser("config", help="Configuration management")
    cfg_sub = cfg.add_subparsers(dest="config_action")
    cfg_sub.add_parser("show", help="Show current configuration")
    for name, meta in (("set-api-key", "KEY"), ("set-model", "MODEL"), ("set-working-dir", "DIR")):
        cfg_sub.add_parser(name).add_argument("value", metavar=meta)
    cfg_sub.add_parser("toggle-auto-approve", help="Toggle auto-approve mode")
    cfg_sub.add_parser("reset", help="Reset configuration to defaults")

    tools = sub.add_parser("tools", help="Tool information")
    tools.add_subparsers(dest="tools_action").add_parser("list", help="List available tools")
    return parser


GLOBAL_FLAGS = ("-v", "--verbose", "-q", "--quiet")
COMMANDS = ("chat", "config", "tools", "-h", "--help")


def _with_default_command(argv: list[str]) -> list[str]:
    """Insert "chat" so `tool-pilot "prompt"` works without naming the subcommand."""
    for index, arg in enumerate(argv):
        if arg in GLOBAL_FLAGS:
            continue
        if arg in COMMANDS:
            return argv
        return argv[:index] + ["chat"] + argv[index:]
    return argv + ["chat"]


def main(argv: list[str] | None = None) -> int:
    argv = _with_default_command(list(sys.argv[1:] if argv is None else argv))
    args = build_parser().parse_args(argv)

    config = load_config()
    level = "debug" if args.verbose else "error" if args.quiet else config.log_level
    setup_logging(level)

    try:
        if args.command == "config":
            return _cmd_config(args, config)
        if args.command == "tools":
            return _cmd_tools(config)
        if args.yes:
            config = config.model_copy(update={"auto_approve": True})
        return asyncio.run(_cmd_chat(args, config))
    except AgentError as exc:
        display.halt(str(exc))
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
