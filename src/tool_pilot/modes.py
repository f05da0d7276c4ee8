# modes.py
# Mode gate: the session-wide plan/act switch.
#
# Two tiers of enforcement:
#   - Plan steps (plans.PlanManager) consult validate_mode_for_operation()
#     before touching the file system or the terminal.
#   - Free-form tool calls dispatched by the conversation engine do NOT
#     consult this gate. They rely on the confirmation gate and on the
#     mode rules stated in the system prompt.

from tool_pilot.log import get_logger
from tool_pilot.models import Mode, OperationKind, Session

log = get_logger(__name__)

READ_OPERATIONS = frozenset({OperationKind.FILE_READ, OperationKind.FILE_LIST, OperationKind.FILE_SEARCH})
MUTATING_OPERATIONS = frozenset(
    {
        OperationKind.FILE_WRITE,
        OperationKind.FILE_MODIFY,
        OperationKind.FILE_DELETE,
        OperationKind.COMMAND_EXECUTE,
    }
)

MODE_DESCRIPTIONS = {
    Mode.PLAN: "Plan Mode: Read-only analysis and planning. No file modifications or command execution.",
    Mode.ACT: "Act Mode: Full execution capabilities. Can modify files and run commands (with approval).",
}


class ModeGate:
    """Two-state machine (plan ⇄ act). Starts in plan; no terminal state."""

    def __init__(self, session: Session | None = None, initial: Mode = Mode.PLAN) -> None:
        self._mode = initial
        self._session = session
        if session is not None:
            session.current_mode = initial

    def bind(self, session: Session) -> None:
        """Attach the session that mode changes propagate into."""
        self._session = session
        session.current_mode = self._mode

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def is_plan_mode(self) -> bool:
        return self._mode is Mode.PLAN

    @property
    def is_act_mode(self) -> bool:
        return self._mode is Mode.ACT

    def switch_mode(self, target: Mode | str) -> Mode:
        """Unconditionally switch. Asking the user first is the caller's job."""
        target = Mode(target)
        previous = self._mode
        self._mode = target
        if self._session is not None:
            self._session.current_mode = target
        log.info("Switched from %s mode to %s mode", previous.value, target.value)
        return previous

    def describe(self) -> str:
        return MODE_DESCRIPTIONS[self._mode]

    def validate_mode_for_operation(self, kind: OperationKind | str) -> bool:
        """
        True if the current mode permits `kind`.

        Reads are always allowed, mutations only in act mode. Unknown kinds
        are denied with a warning rather than raising.
        """
        try:
            kind = OperationKind(kind)
        except ValueError:
            log.warning("Unknown operation type: %s", kind)
            return False

        if kind in READ_OPERATIONS:
            return True
        if kind in MUTATING_OPERATIONS and not self.is_act_mode:
            log.warning("Operation %s not allowed in plan mode", kind.value)
            return False
        return True
