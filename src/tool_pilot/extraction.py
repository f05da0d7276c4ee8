# extraction.py
# Directive extraction: free-form model text → (narrative, tool calls).
#
# Two stages:
#   1. find_directives() locates each marker and the JSON payload after it.
#   2. decode_directive() turns one payload into ToolCalls with fresh ids.
#
# Recognised markers:
#   TOOL_CALLS:  [{"name": ..., "arguments": {...}}, ...]
#   CREATE_PLAN: {...}   (legacy, becomes one create_plan call)
#
# A marker whose payload does not decode is not an error: it stays in the
# narrative. Only when nothing decodes is the original text returned untouched.

import json
import re
from dataclasses import dataclass, field, replace
from enum import Enum

from tool_pilot.log import get_logger
from tool_pilot.models import ToolCall

log = get_logger(__name__)

TOOL_CALLS_MARKER = "TOOL_CALLS:"
CREATE_PLAN_MARKER = "CREATE_PLAN:"
CREATE_PLAN_TOOL = "create_plan"

_decoder = json.JSONDecoder()
_FENCE_OPEN = re.compile(r"\s*```(?:json)?[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\s*```")


class DirectiveKind(Enum):
    TOOL_CALLS = TOOL_CALLS_MARKER
    CREATE_PLAN = CREATE_PLAN_MARKER


class DirectiveError(ValueError):
    """Raised by the decoder when a payload has the wrong shape."""


@dataclass(frozen=True)
class Directive:
    """One marker occurrence. `payload` is None when no JSON value follows it."""

    kind: DirectiveKind
    start: int
    end: int
    payload: object = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Result sum type
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Calls:
    narrative: str
    calls: list[ToolCall] = field(default_factory=list)


@dataclass(frozen=True)
class PlainText:
    text: str

    @property
    def narrative(self) -> str:
        return self.text

    @property
    def calls(self) -> list[ToolCall]:
        return []


@dataclass(frozen=True)
class ParseFailed:
    text: str
    reason: str

    @property
    def narrative(self) -> str:
        return self.text

    @property
    def calls(self) -> list[ToolCall]:
        return []


Extracted = Calls | PlainText | ParseFailed


# ---------------------------------------------------------------------------
# Stage 1: lexer
# ---------------------------------------------------------------------------


def _read_payload(text: str, kind: DirectiveKind, marker_at: int) -> Directive:
    pos = marker_at + len(kind.value)
    fence = _FENCE_OPEN.match(text, pos)
    if fence:
        pos = fence.end()
    while pos < len(text) and text[pos].isspace():
        pos += 1

    try:
        payload, end = _decoder.raw_decode(text, pos)
    except json.JSONDecodeError as exc:
        return Directive(kind, marker_at, pos, error=str(exc))
    except RecursionError:
        return Directive(kind, marker_at, pos, error="payload is nested too deeply")

    if fence:
        closing = _FENCE_CLOSE.match(text, end)
        if closing:
            end = closing.end()
    return Directive(kind, marker_at, end, payload=payload)


def _locate(text: str, kind: DirectiveKind) -> Directive | None:
    """First occurrence of `kind` whose payload decodes, else the first failed one.

    Models often mention a marker in prose before emitting the real block, so
    an occurrence that does not decode does not stop the search.
    """
    first_failure = None
    at = text.find(kind.value)
    while at != -1:
        directive = _read_payload(text, kind, at)
        if directive.error is None:
            try:
                decode_directive(directive)
                return directive
            except DirectiveError as exc:
                directive = replace(directive, error=str(exc))
        if first_failure is None:
            first_failure = directive
        at = text.find(kind.value, at + 1)
    return first_failure


def find_directives(text: str) -> list[Directive]:
    """Locate one directive per marker kind, in text order.

    Failed directives are returned too (with `error` set) so the caller can
    report them. A marker that sits inside a decoded directive's payload (e.g.
    a plan quoted in a tool argument) belongs to that payload and is dropped.
    """
    found = []
    for kind in DirectiveKind:
        directive = _locate(text, kind)
        if directive is not None:
            found.append(directive)
    found.sort(key=lambda d: d.start)

    directives: list[Directive] = []
    covered_until = -1
    for directive in found:
        if directive.start < covered_until:
            continue
        if directive.error is None:
            covered_until = directive.end
        directives.append(directive)
    return directives


# ---------------------------------------------------------------------------
# Stage 2: decoder
# ---------------------------------------------------------------------------


def decode_directive(directive: Directive) -> list[ToolCall]:
    """Build ToolCalls from a lexed payload. Ids are always generated here."""
    if directive.error is not None:
        raise DirectiveError(directive.error)

    payload = directive.payload
    if directive.kind is DirectiveKind.CREATE_PLAN:
        if not isinstance(payload, dict):
            raise DirectiveError("CREATE_PLAN payload must be a JSON object.")
        return [ToolCall(name=CREATE_PLAN_TOOL, arguments=payload)]

    if not isinstance(payload, list):
        raise DirectiveError("TOOL_CALLS payload must be a JSON array.")
    calls = []
    for index, entry in enumerate(payload):
        if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
            raise DirectiveError(f"Tool call #{index} must be an object with a string 'name'.")
        arguments = entry.get("arguments", {})
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise DirectiveError(f"Tool call #{index} 'arguments' must be an object.")
        calls.append(ToolCall(name=entry["name"], arguments=arguments))
    return calls


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def extract_tool_calls(text: str) -> Extracted:
    """
    Split model text into narrative and tool calls.

    Each marker kind is handled on its own: a directive that fails to decode
    is logged and left in the narrative, while the other kind still yields
    its calls. Returns PlainText when no marker is present, ParseFailed (with
    the input byte-for-byte) when no directive decodes, and Calls otherwise.
    TOOL_CALLS entries precede the CREATE_PLAN call.
    """
    directives = find_directives(text)
    if not directives:
        return PlainText(text)

    decoded: list[Directive] = []
    by_kind: dict[DirectiveKind, list[ToolCall]] = {}
    failures = []
    for directive in directives:
        try:
            by_kind[directive.kind] = decode_directive(directive)
        except DirectiveError as exc:
            log.error("Failed to parse %s payload: %s", directive.kind.value, exc)
            failures.append(f"{directive.kind.value} {exc}")
            continue
        decoded.append(directive)

    if not decoded:
        return ParseFailed(text, "; ".join(failures))

    narrative = text
    for directive in reversed(decoded):
        narrative = narrative[: directive.start] + narrative[directive.end :]

    calls = by_kind.get(DirectiveKind.TOOL_CALLS, []) + by_kind.get(DirectiveKind.CREATE_PLAN, [])
    return Calls(narrative.strip(), calls)
