# log.py
# Logging setup: stdlib logging with a rich console handler.
#
#   - one package logger ("tool_pilot") with a child logger per module
#   - optional plain-text file handler
#   - a SUCCESS level between INFO and WARNING for completed milestones
#
# Conversation output (panels, prompts, results) goes through display.py,
# not through the logger.

from __future__ import annotations

import logging
import os

from rich.logging import RichHandler

from tool_pilot.display import err_console

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

logger = logging.getLogger("tool_pilot")

_initialized = False

_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "SUCCESS": SUCCESS,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def parse_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    if not level:
        return logging.INFO
    return _LEVEL_MAP.get(level.upper(), logging.INFO)


def setup_logging(level: str | int | None = "info", log_file: str | None = None) -> None:
    """Initialize logging once at startup. Later calls only adjust the level.

    Args:
        level: Level name ("debug", "info", "warn", "error") or logging constant.
        log_file: Optional path; when given, records are also appended there.
    """
    global _initialized
    log_level = parse_level(level)
    logger.setLevel(log_level)
    if _initialized:
        for handler in logger.handlers:
            handler.setLevel(log_level)
        return
    _initialized = True

    console_handler = RichHandler(console=err_console, show_path=False, rich_tracebacks=True)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(console_handler)

    log_path = log_file or os.environ.get("TOOL_PILOT_LOG")
    if log_path:
        file_handler = logging.FileHandler(os.path.expanduser(log_path), mode="a", encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        logger.addHandler(file_handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return the package logger, or a child of it for `name`.

    Module names are accepted as-is ("tool_pilot.plans" -> "plans").
    """
    if not name:
        return logger
    if name.startswith("tool_pilot."):
        name = name[len("tool_pilot."):]
    return logger.getChild(name)


def success(log: logging.Logger, msg: str, *args: object) -> None:
    log.log(SUCCESS, msg, *args)
