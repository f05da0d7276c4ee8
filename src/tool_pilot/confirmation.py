# confirmation.py
# Confirmation gate: human (or automatic) approval for destructive actions.
#
# With auto_approve on, every confirmation resolves True immediately with an
# audit log line and the prompter is never called. With it off, each method
# renders what is about to happen and asks the prompter.

import asyncio
from collections.abc import Sequence
from typing import Any, Protocol

from rich.prompt import Confirm

from tool_pilot import display
from tool_pilot.log import get_logger
from tool_pilot.models import Step, ToolCall, ToolResult

log = get_logger(__name__)

DESTRUCTIVE_TOOLS = frozenset(
    {"write_file", "modify_file", "delete_file", "execute_command", "execute_interactive_command"}
)
PREVIEW_LENGTH = 100


class Prompter(Protocol):
    """The interactive collaborator that actually asks the human."""

    async def confirm(self, message: str, default: bool = False) -> bool: ...


class RichPrompter:
    """Asks on the terminal via rich, off the event loop thread."""

    async def confirm(self, message: str, default: bool = False) -> bool:
        with display.status_paused():
            return await asyncio.to_thread(Confirm.ask, message, default=default, console=display.console)


def preview_arguments(arguments: dict[str, Any], limit: int = PREVIEW_LENGTH) -> dict[str, Any]:
    """Copy of `arguments` with long string values cut to `limit` characters."""
    return {
        key: value[:limit] + "..." if isinstance(value, str) and len(value) > limit else value
        for key, value in arguments.items()
    }


class ConfirmationGate:
    def __init__(self, auto_approve: bool = False, prompter: Prompter | None = None) -> None:
        self._auto_approve = auto_approve
        self._prompter = prompter or RichPrompter()

    # ------------------------------------------------------------------
    # Auto-approve
    # ------------------------------------------------------------------

    @property
    def auto_approve(self) -> bool:
        return self._auto_approve

    def set_auto_approve(self, enabled: bool) -> None:
        self._auto_approve = enabled
        log.info("Auto-approve set to: %s", enabled)

    def _auto(self, what: str) -> bool:
        if self._auto_approve:
            log.info("Auto-approving %s", what)
            return True
        return False

    @staticmethod
    def requires_approval(tool_name: str) -> bool:
        return tool_name in DESTRUCTIVE_TOOLS

    # ------------------------------------------------------------------
    # Confirmations
    # ------------------------------------------------------------------

    async def confirm_tool_execution(self, call: ToolCall) -> bool:
        if self._auto(f"tool execution: {call.name}"):
            return True
        if not self.requires_approval(call.name):
            return True

        display.tool_request(call.name, preview_arguments(call.arguments))
        return await self._prompter.confirm("Do you want to proceed with this action?", default=False)

    async def confirm_destructive_operation(
        self, operation: str, details: str, path: str | None = None
    ) -> bool:
        if self._auto(f"destructive operation: {operation}"):
            return True

        display.destructive_warning(operation, details, path)
        return await self._prompter.confirm("Are you absolutely sure you want to proceed?", default=False)

    async def confirm_plan_execution(self, title: str, steps: Sequence[Step]) -> bool:
        if self._auto(f"plan execution: {title}"):
            return True

        display.plan_steps(title, list(steps))
        return await self._prompter.confirm("Do you want to execute this plan?", default=False)

    async def confirm_mode_switch(self, from_mode: str, to_mode: str) -> bool:
        if self._auto(f"mode switch: {from_mode} → {to_mode}"):
            return True
        return await self._prompter.confirm(f"Switch from {from_mode} mode to {to_mode} mode?", default=True)

    async def confirm_file_overwrite(self, path: str, size: int | None = None) -> bool:
        if self._auto(f"file overwrite: {path}"):
            return True

        message = f"File {path} already exists. Overwrite?"
        if size:
            message += f" (Current size: {size} bytes)"
        return await self._prompter.confirm(message, default=False)

    async def confirm_directory_creation(self, path: str) -> bool:
        if self._auto(f"directory creation: {path}"):
            return True
        return await self._prompter.confirm(f"Create directory: {path}?", default=True)

    async def confirm_exit(self) -> bool:
        if self._auto("exit"):
            return True
        return await self._prompter.confirm("Are you sure you want to exit?", default=True)

    async def confirm_tool_results(self, results: Sequence[ToolResult]) -> bool:
        if self._auto(f"{len(results)} tool result(s)"):
            return True

        display.tool_results(list(results))
        return await self._prompter.confirm("Results look good?", default=True)
