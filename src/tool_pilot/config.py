# config.py
# Agent configuration: defaults, JSON persistence, environment overrides.
#
# Loaded once at startup by the CLI and injected into the components that
# need it. Nothing else reads the environment or the config file.

import json
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from tool_pilot.exceptions import PersistenceError
from tool_pilot.log import get_logger

log = get_logger(__name__)

CONFIG_DIR = Path.home() / ".tool-pilot"
CONFIG_FILE = CONFIG_DIR / "config.json"

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "anthropic/claude-3.5-haiku"


class AgentConfig(BaseModel):
    """Persisted settings for the agent and its collaborators."""

    api_key: str = Field(default="", description="Key for the OpenAI-compatible endpoint.")
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    max_tokens: int = Field(default=4096, gt=0)
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    working_directory: str = Field(default_factory=os.getcwd)
    auto_approve: bool = False
    log_level: str = "info"
    command_timeout: float = Field(default=30.0, gt=0, description="Seconds for one-shot commands.")
    test_timeout: float = Field(default=120.0, gt=0, description="Seconds for test runs.")


def _apply_env(config: AgentConfig) -> AgentConfig:
    updates: dict = {}
    if os.getenv("OPENROUTER_API_KEY"):
        updates["api_key"] = os.environ["OPENROUTER_API_KEY"]
    if os.getenv("TOOL_PILOT_MODEL"):
        updates["model"] = os.environ["TOOL_PILOT_MODEL"]
    if os.getenv("TOOL_PILOT_AUTO_APPROVE", "").lower() == "true":
        updates["auto_approve"] = True
    return config.model_copy(update=updates) if updates else config


def load_config(path: Path | None = None) -> AgentConfig:
    """
    Read the config file (if any), then layer .env / environment overrides.

    An unreadable or invalid file falls back to defaults with a warning so the
    CLI can still start and tell the user what is wrong.
    """
    load_dotenv()
    path = path or CONFIG_FILE
    config = AgentConfig()

    if path.exists():
        try:
            config = AgentConfig.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            log.warning("Failed to load config from %s, using defaults: %s", path, exc)

    return _apply_env(config)


def save_config(config: AgentConfig, path: Path | None = None) -> None:
    path = path or CONFIG_FILE
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
    except OSError as exc:
        raise PersistenceError(f"Failed to save config: {exc}") from exc
    log.debug("Config saved to %s", path)


def validate_config(config: AgentConfig) -> list[str]:
    """Return a list of human-readable problems. Empty means usable."""
    errors: list[str] = []
    if not config.api_key:
        errors.append(
            "API key is required. Set OPENROUTER_API_KEY or run: tool-pilot config set-api-key KEY"
        )
    if not config.model:
        errors.append("Model is required.")
    if not config.working_directory or not Path(config.working_directory).is_dir():
        errors.append("Working directory does not exist.")
    return errors
