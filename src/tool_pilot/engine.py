# engine.py
# Conversation engine: one user turn in, one assistant reply out.
#
# The engine is the kernel. The model is a passive responder: it only ever
# emits text. This class owns the session, routes extracted directives to
# the tool registry, and decides what goes back to the model.
#
# Control flow of process_message():
#   user message → model → extraction → sequential tool dispatch
#   → assistant message (narrative + calls + results) → model → reply
#
# Model-service failures never escape: they become an assistant message.

import json
from pathlib import Path
from typing import Any, Protocol

from openai import AsyncOpenAI
from pydantic import TypeAdapter, ValidationError

from tool_pilot.config import AgentConfig
from tool_pilot.confirmation import ConfirmationGate
from tool_pilot.exceptions import PersistenceError, ServiceError, ToolExecutionError
from tool_pilot.extraction import ParseFailed, extract_tool_calls
from tool_pilot.log import get_logger
from tool_pilot.models import Message, Mode, Session, ToolCall, ToolResult
from tool_pilot.modes import ModeGate
from tool_pilot.plans import PlanManager
from tool_pilot.registry import ToolDescriptor, ToolRegistry
from tool_pilot.terminal import terminal_tools
from tool_pilot.tools import file_tools

log = get_logger(__name__)

RESULT_CHAR_LIMIT = 8000

_history_adapter = TypeAdapter(list[Message])

# marker file → project type
PROJECT_MARKERS = [
    ("package.json", "Node.js"),
    ("pyproject.toml", "Python"),
    ("requirements.txt", "Python"),
    ("pom.xml", "Java/Maven"),
    ("build.gradle", "Java/Gradle"),
    ("Cargo.toml", "Rust"),
]


# ---------------------------------------------------------------------------
# System Prompt
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """\
You are tool-pilot, a coding assistant that helps developers build software \
through natural language. You work inside the project at {working_directory}.

Operating modes (current mode: {mode}):
- plan: read-only analysis and planning. Read, list, and search files, and \
propose plans with create_plan. Never write, modify, delete, or run commands.
- act: execute file modifications and commands. Destructive actions are shown \
to the user for approval before they run.

Principles:
1. Explain your reasoning and proposed actions clearly.
2. Verify files and project structure before changing them. Never guess contents.
3. Prefer small, safe steps.
4. For multi-step work, propose a plan with create_plan and wait for approval.

Available tools:
{tools}

To use tools, output the string "TOOL_CALLS:" immediately followed by a JSON \
array of calls. Do not deviate from this format:

TOOL_CALLS:[
  {{"name": "tool_name", "arguments": {{"param1": "value1"}}}},
  {{"name": "another_tool", "arguments": {{"paramA": "valueA"}}}}
]

Calls run in order; later calls may depend on earlier ones. You may add a \
natural-language explanation before or after the block. You will see the \
results in the next message and should then answer the user directly.\
"""

CLOSING_PROMPT = (
    "The tool calls above have been executed and their results are included. "
    "Respond to the user based on these results. Do not emit TOOL_CALLS."
)


# ---------------------------------------------------------------------------
# Model service
# ---------------------------------------------------------------------------


class ModelClient(Protocol):
    async def complete(self, messages: list[dict[str, str]]) -> str: ...


class OpenAIModelClient:
    """Chat-completions client for any OpenAI-compatible endpoint (OpenRouter by default)."""

    def __init__(self, config: AgentConfig) -> None:
        self._config = config
        self._model = config.model
        self._temperature = config.temperature
        self._max_tokens = config.max_tokens
        self._client: AsyncOpenAI | None = None

    @property
    def client(self) -> AsyncOpenAI:
        # Created on first use so a missing key only fails the turn that needs it.
        if self._client is None:
            self._client = AsyncOpenAI(base_url=self._config.base_url, api_key=self._config.api_key or None)
        return self._client

    async def complete(self, messages: list[dict[str, str]]) -> str:
        response = await self.client.chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        content = response.choices[0].message.content
        if content is None:
            raise ServiceError("Model returned an empty response.")
        return content.strip()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _format_results(calls: list[ToolCall], results: list[ToolResult]) -> str:
    """Render a tool batch as text the model can read on the next call."""
    lines: list[str] = ["Tool results:"]
    for index, (call, result) in enumerate(zip(calls, results), start=1):
        payload = result.model_dump(exclude_none=True)
        rendered = json.dumps(payload, default=str)
        if len(rendered) > RESULT_CHAR_LIMIT:
            rendered = rendered[:RESULT_CHAR_LIMIT] + "… (truncated)"
        lines.append(f"-- Call {index}: {call.name} {json.dumps(call.arguments, default=str)}")
        lines.append(f"   Result: {rendered}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ConversationEngine:
    """
    Drives the conversation for one session.

    Example:
        engine = ConversationEngine(load_config())
        await engine.initialize()
        reply = await engine.process_message("List the Python files here.")

    Set confirm_tool_calls to have destructive calls approved through the
    confirmation gate before they run; declined calls become failed results.
    """

    def __init__(
        self,
        config: AgentConfig,
        model_client: ModelClient | None = None,
        *,
        confirmation: ConfirmationGate | None = None,
        tool_sets: list[list[ToolDescriptor]] | None = None,
        confirm_tool_calls: bool = False,
        session: Session | None = None,
    ) -> None:
        self._config = config
        self._model = model_client or OpenAIModelClient(config)
        self._session = session or Session(working_directory=config.working_directory)
        self._confirm_tool_calls = confirm_tool_calls

        self.modes = ModeGate(self._session, initial=self._session.current_mode)
        self.confirmation = confirmation or ConfirmationGate(auto_approve=config.auto_approve)
        self.plans = PlanManager(self.modes, self.confirmation, tool_runner=self.run_tool)

        if tool_sets is None:
            tool_sets = [
                file_tools(),
                terminal_tools(config.command_timeout, config.test_timeout),
            ]
        self.registry = ToolRegistry.build(tool_sets, self.plans.create_plan_tool())

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def mode(self) -> Mode:
        return self.modes.mode

    def set_mode(self, mode: Mode | str) -> None:
        self.modes.switch_mode(mode)

    @property
    def tools(self) -> list[ToolDescriptor]:
        return self.registry.descriptors

    @property
    def history(self) -> list[Message]:
        return list(self._session.conversation_history)

    def clear_conversation(self) -> None:
        self._session.conversation_history.clear()
        log.info("Conversation history cleared")

    # ------------------------------------------------------------------
    # Project analysis
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        log.info("Initializing agent...")
        self._analyze_project()
        log.info("Working directory: %s", self._session.working_directory)
        log.info("Project type: %s", self._session.project_type or "Unknown")
        log.info("Available dependencies: %d", len(self._session.dependencies))

    def _analyze_project(self) -> None:
        root = Path(self._session.working_directory)
        try:
            entries = sorted(p.name for p in root.iterdir())
        except OSError as exc:
            log.warning("Failed to analyze project: %s", exc)
            return
        self._session.project_files = entries

        project_type = next((kind for marker, kind in PROJECT_MARKERS if marker in entries), None)
        self._session.project_type = project_type
        if project_type == "Node.js":
            try:
                package = json.loads((root / "package.json").read_text(encoding="utf-8"))
                self._session.dependencies = [
                    *package.get("dependencies", {}),
                    *package.get("devDependencies", {}),
                ]
            except (OSError, ValueError) as exc:
                log.warning("Failed to read package.json: %s", exc)
        log.debug("Project analysis completed")

    # ------------------------------------------------------------------
    # Model calls
    # ------------------------------------------------------------------

    def system_prompt(self) -> str:
        return SYSTEM_PROMPT.format(
            working_directory=self._session.working_directory,
            mode=self.modes.mode.value,
            tools=self.registry.prompt_listing(),
        )

    def render_messages(self) -> list[dict[str, str]]:
        """Map the history onto chat-completions messages, system preamble first."""
        messages = [{"role": "system", "content": self.system_prompt()}]
        for message in self._session.conversation_history:
            content = message.content
            if message.tool_calls:
                results = message.tool_results or []
                content = f"{content}\n\n{_format_results(message.tool_calls, results)}".strip()
            messages.append({"role": message.role, "content": content})
        return messages

    async def _call_model(self, extra: list[dict[str, str]] | None = None) -> str:
        messages = self.render_messages() + (extra or [])
        try:
            return await self._model.complete(messages)
        except ServiceError:
            raise
        except Exception as exc:
            raise ServiceError(f"AI service error: {exc}") from exc

    # ------------------------------------------------------------------
    # Tool dispatch
    # ------------------------------------------------------------------

    async def _execute_call(self, call: ToolCall) -> ToolResult:
        tool = self.registry.get(call.name)
        if tool is None:
            return ToolResult.fail(f"Unknown tool: {call.name}")

        try:
            args = tool.parse_arguments(call.arguments)
            if self._confirm_tool_calls and not await self.confirmation.confirm_tool_execution(call):
                log.info("Tool execution declined: %s", call.name)
                return ToolResult.fail(f"Tool execution declined by user: {call.name}")
            log.info("Executing tool: %s", call.name)
            return await tool.executor(args, self._session)
        except ToolExecutionError as exc:
            log.error("Tool call rejected: %s", exc)
            return ToolResult.fail(str(exc))
        except Exception as exc:
            log.error("Tool execution failed: %s: %s", call.name, exc)
            return ToolResult.fail(f"Tool execution failed: {exc}")

    async def dispatch(self, calls: list[ToolCall]) -> list[ToolResult]:
        """Run calls strictly in order; a failing call never stops the batch."""
        results = []
        for call in calls:
            results.append(await self._execute_call(call))
        return results

    async def run_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a single tool by name against the session (used by plan steps)."""
        return await self._execute_call(ToolCall(name=name, arguments=arguments))

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def process_message(self, text: str) -> str:
        """
        Full turn. Returns a string in all cases: a direct answer, the
        closing narrative after tool use, or a synthesized error message.
        """
        session = self._session
        session.append(Message(role="user", content=text))
        log.info("Processing message: %s", text)

        try:
            raw = await self._call_model()
            extracted = extract_tool_calls(raw)
            if isinstance(extracted, ParseFailed):
                log.warning("Directive ignored, answering with narrative only: %s", extracted.reason)

            if not extracted.calls:
                session.append(Message(role="assistant", content=extracted.narrative))
                return extracted.narrative

            results = await self.dispatch(extracted.calls)
            session.append(
                Message(
                    role="assistant",
                    content=extracted.narrative,
                    tool_calls=extracted.calls,
                    tool_results=results,
                )
            )

            closing = await self._call_model([{"role": "user", "content": CLOSING_PROMPT}])
            session.append(Message(role="assistant", content=closing))
            return closing
        except Exception as exc:
            log.error("Failed to process message: %s", exc)
            reply = f"Sorry, I encountered an error: {exc}"
            session.append(Message(role="assistant", content=reply))
            return reply

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _history_path(self, path: str | Path) -> Path:
        return Path(self._session.working_directory) / path

    def save_conversation(self, path: str | Path) -> Path:
        target = self._history_path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(_history_adapter.dump_json(self._session.conversation_history, indent=2))
        except OSError as exc:
            log.error("Failed to save conversation: %s", exc)
            raise PersistenceError(f"Failed to save conversation: {exc}") from exc
        log.info("Conversation saved to: %s", target)
        return target

    def load_conversation(self, path: str | Path) -> None:
        source = self._history_path(path)
        try:
            history = _history_adapter.validate_json(source.read_bytes())
        except (OSError, ValidationError) as exc:
            log.error("Failed to load conversation: %s", exc)
            raise PersistenceError(f"Failed to load conversation: {exc}") from exc
        self._session.conversation_history = history
        log.info("Conversation loaded from: %s", source)
