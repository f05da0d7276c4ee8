import pytest

from tool_pilot.config import AgentConfig
from tool_pilot.models import Session


class FakePrompter:
    """Records every question and answers from a fixed script."""

    def __init__(self, *answers: bool) -> None:
        self.answers = list(answers)
        self.questions: list[str] = []

    async def confirm(self, message: str, default: bool = False) -> bool:
        self.questions.append(message)
        return self.answers.pop(0) if self.answers else default


@pytest.fixture
def session(tmp_path):
    return Session(working_directory=str(tmp_path))


@pytest.fixture
def config(tmp_path):
    return AgentConfig(api_key="test-key", working_directory=str(tmp_path))
