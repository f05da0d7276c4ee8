# registry.py
# Tool registry: name → descriptor, built once per engine.
#
# Every tool declares a pydantic argument record. Model-supplied arguments are
# validated against it (unknown fields rejected) before the executor runs, so
# executors only ever see typed arguments.

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from tool_pilot.exceptions import ToolExecutionError
from tool_pilot.models import Session, ToolResult


class ToolArgs(BaseModel):
    """Base for every tool's argument record."""

    model_config = ConfigDict(extra="forbid")


Executor = Callable[[Any, Session], Awaitable[ToolResult]]

_JSON_TYPES = {"string", "number", "integer", "boolean", "object", "array"}


def _field_type(prop: dict[str, Any]) -> str:
    if prop.get("type") in _JSON_TYPES:
        return prop["type"]
    # Optional fields come through as anyOf [<type>, null].
    for option in prop.get("anyOf", []):
        if option.get("type") in _JSON_TYPES:
            return option["type"]
    return "object"


@dataclass(frozen=True)
class ToolDescriptor:
    """A named capability the model may invoke."""

    name: str
    description: str
    args_model: type[ToolArgs]
    executor: Executor
    requires_approval: bool = False

    @property
    def parameters(self) -> dict[str, dict[str, Any]]:
        """Field name → {type, required, description}, derived from the args record."""
        schema = self.args_model.model_json_schema()
        required = set(schema.get("required", []))
        return {
            name: {
                "type": _field_type(prop),
                "required": name in required,
                "description": prop.get("description", ""),
            }
            for name, prop in schema.get("properties", {}).items()
        }

    def parse_arguments(self, arguments: Any) -> ToolArgs:
        """Validate a raw argument payload. Raises ToolExecutionError on any mismatch."""
        if not isinstance(arguments, dict):
            raise ToolExecutionError(
                f"Arguments for {self.name} must be an object, got {type(arguments).__name__}."
            )
        try:
            return self.args_model.model_validate(arguments)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in exc.errors()
            )
            raise ToolExecutionError(f"Invalid arguments for {self.name}: {problems}") from exc

    def signature(self) -> str:
        """One-line rendering used in the system prompt."""
        fields = ", ".join(
            f'"{name}": <{spec["type"]}>' + ("" if spec["required"] else " (optional)")
            for name, spec in self.parameters.items()
        )
        return f"- {self.name}: {self.description}. Arguments: {{{fields}}}"


class ToolRegistry:
    """Static mapping from tool name to descriptor."""

    def __init__(self, tools: Iterable[ToolDescriptor] = ()) -> None:
        self._tools: dict[str, ToolDescriptor] = {}
        for tool in tools:
            self.register(tool)

    @classmethod
    def build(
        cls, tool_sets: Iterable[Iterable[ToolDescriptor]], *builtins: ToolDescriptor
    ) -> "ToolRegistry":
        registry = cls()
        for tool_set in tool_sets:
            for tool in tool_set:
                registry.register(tool)
        for tool in builtins:
            registry.register(tool)
        return registry

    def register(self, tool: ToolDescriptor) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Duplicate tool name: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    @property
    def descriptors(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    def prompt_listing(self) -> str:
        return "\n".join(tool.signature() for tool in self._tools.values())
