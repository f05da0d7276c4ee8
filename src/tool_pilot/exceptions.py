# exceptions.py
# Error taxonomy for the agent core.
#
# Validation / lookup / precondition errors surface to the direct caller.
# ToolExecutionError is captured into a ToolResult by the dispatcher.
# ServiceError is converted into a conversational reply by the engine.


class AgentError(Exception):
    """Base class for every error raised by tool_pilot."""


# ---------------------------------------------------------------------------
# Plan lifecycle
# ---------------------------------------------------------------------------


class PlanValidationError(AgentError):
    """Raised when a plan is created without a title, description, or steps."""


class NotFoundError(AgentError):
    """Raised when a plan or step id does not resolve."""


class PlanNotFoundError(NotFoundError):
    def __init__(self, plan_id: str) -> None:
        super().__init__(f"Plan not found: {plan_id}")
        self.plan_id = plan_id


class StepNotFoundError(NotFoundError):
    def __init__(self, step_id: str) -> None:
        super().__init__(f"Step not found: {step_id}")
        self.step_id = step_id


class PreconditionFailedError(AgentError):
    """Raised when a plan operation is attempted in the wrong lifecycle state."""


class StepExecutionFailedError(AgentError):
    """Raised when a step hook fails. The step stays incomplete and may be retried."""


# ---------------------------------------------------------------------------
# Tools and services
# ---------------------------------------------------------------------------


class ToolExecutionError(AgentError):
    """Raised for a single call's argument or executor failure. Never aborts a batch."""


class ServiceError(AgentError):
    """Raised when the model service cannot be reached or returns nothing usable."""


class PersistenceError(AgentError):
    """Raised when conversation history or configuration cannot be saved or loaded."""
