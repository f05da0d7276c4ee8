# terminal.py
# Terminal tools: shell commands, interactive commands, system info, tests.
#
# Commands run through asyncio subprocesses in the session's working
# directory (or a sub-directory of it). One-shot commands and test runs have
# separate timeouts; interactive commands have none.

import asyncio
import json
import os
import platform
import shlex
import shutil
import time
from collections.abc import Callable
from pathlib import Path

from pydantic import Field

from tool_pilot.log import get_logger
from tool_pilot.models import Session, ToolResult
from tool_pilot.registry import ToolArgs, ToolDescriptor

log = get_logger(__name__)

DEFAULT_COMMAND_TIMEOUT = 30.0
DEFAULT_TEST_TIMEOUT = 120.0
KNOWN_DEV_TOOLS = ["git", "node", "npm", "yarn", "python", "pip", "java", "mvn", "gradle", "cargo"]


# ---------------------------------------------------------------------------
# Argument records
# ---------------------------------------------------------------------------


class ExecuteCommandArgs(ToolArgs):
    command: str = Field(..., description="The command to execute")
    cwd: str | None = Field(None, description="Working directory (relative to project root)")
    timeout: float | None = Field(None, gt=0, description="Timeout in seconds")
    env: dict[str, str] | None = Field(None, description="Environment variables to set")


class InteractiveCommandArgs(ToolArgs):
    command: str = Field(..., description="The command to execute")
    cwd: str | None = Field(None, description="Working directory for the command")
    input: str | None = Field(None, description="Input to send to the command")
    env: dict[str, str] | None = Field(None, description="Environment variables to set")


class SystemInfoArgs(ToolArgs):
    pass


class RunTestsArgs(ToolArgs):
    testCommand: str | None = Field(None, description="Custom test command (auto-detected if omitted)")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _cwd(session: Session, cwd: str | None) -> str:
    base = Path(session.working_directory)
    return str((base / cwd).resolve()) if cwd else str(base)


def _env(extra: dict[str, str] | None) -> dict[str, str]:
    env = os.environ.copy()
    if extra:
        env.update(extra)
    return env


def command_exists(command: str) -> bool:
    return shutil.which(command) is not None


def detect_test_command(working_directory: str) -> str | None:
    """Pick a test runner from the project's marker files."""
    root = Path(working_directory)
    package_json = root / "package.json"
    if package_json.is_file():
        try:
            scripts = json.loads(package_json.read_text(encoding="utf-8")).get("scripts", {})
        except (OSError, ValueError):
            scripts = {}
        if "test" in scripts:
            return "npm test"
        if "test:unit" in scripts:
            return "npm run test:unit"
    if (root / "pyproject.toml").is_file() or (root / "pytest.ini").is_file() or (root / "tests").is_dir():
        if command_exists("pytest"):
            return "pytest"
    if (root / "Cargo.toml").is_file() and command_exists("cargo"):
        return "cargo test"
    if (root / "pom.xml").is_file() and command_exists("mvn"):
        return "mvn test"
    if command_exists("pytest"):
        return "pytest"
    return None


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


async def run_shell(
    command: str,
    session: Session,
    *,
    cwd: str | None = None,
    timeout: float = DEFAULT_COMMAND_TIMEOUT,
    env: dict[str, str] | None = None,
) -> ToolResult:
    workdir = _cwd(session, cwd)
    log.info("Executing command: %s", command)
    log.debug("Working directory: %s", workdir)
    start = time.perf_counter()

    try:
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=workdir,
            env=_env(env),
        )
    except OSError as exc:
        log.error("Failed to start command %s: %s", command, exc)
        return ToolResult.fail(f"Failed to start command: {exc}", data={"command": command, "cwd": workdir})

    try:
        stdout_b, stderr_b = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        log.error("Command timed out after %ss: %s", timeout, command)
        return ToolResult.fail(
            f"Command timed out after {timeout}s",
            data={"command": command, "cwd": workdir, "signal": "SIGKILL"},
        )

    elapsed_ms = int((time.perf_counter() - start) * 1000)
    stdout = stdout_b.decode("utf-8", errors="replace").strip()
    stderr = stderr_b.decode("utf-8", errors="replace").strip()
    data = {
        "command": command,
        "stdout": stdout,
        "stderr": stderr,
        "exitCode": process.returncode,
        "executionTime": elapsed_ms,
        "cwd": workdir,
    }

    if process.returncode != 0:
        log.error("Command failed with exit code %s: %s", process.returncode, command)
        return ToolResult.fail(f"Command failed with exit code {process.returncode}", data=data)

    log.info("Command completed in %dms", elapsed_ms)
    if stderr:
        log.warning("Command stderr: %s", stderr)
    return ToolResult.ok(data=data, output=stdout)


async def run_interactive(args: InteractiveCommandArgs, session: Session) -> ToolResult:
    workdir = _cwd(session, args.cwd)
    argv = shlex.split(args.command)
    if not argv:
        return ToolResult.fail("Empty command")
    log.info("Executing interactive command: %s", args.command)
    start = time.perf_counter()

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=workdir,
            env=_env(args.env),
        )
    except OSError as exc:
        log.error("Failed to start command %s: %s", args.command, exc)
        return ToolResult.fail(f"Failed to start command: {exc}", data={"command": args.command, "cwd": workdir})

    stdin = args.input.encode("utf-8") if args.input else None
    stdout_b, stderr_b = await process.communicate(stdin)
    elapsed_ms = int((time.perf_counter() - start) * 1000)
    data = {
        "command": args.command,
        "stdout": stdout_b.decode("utf-8", errors="replace").strip(),
        "stderr": stderr_b.decode("utf-8", errors="replace").strip(),
        "exitCode": process.returncode,
        "executionTime": elapsed_ms,
        "cwd": workdir,
    }
    if process.returncode != 0:
        log.error("Interactive command failed with code %s", process.returncode)
        return ToolResult.fail(f"Command failed with exit code {process.returncode}", data=data)

    log.info("Interactive command completed in %dms", elapsed_ms)
    return ToolResult.ok(data=data, output=data["stdout"])


async def get_system_info(args: SystemInfoArgs, session: Session) -> ToolResult:
    info = {
        "platform": platform.system().lower(),
        "arch": platform.machine(),
        "pythonVersion": platform.python_version(),
        "os": platform.platform(),
        "cwd": session.working_directory,
        "availableTools": [tool for tool in KNOWN_DEV_TOOLS if command_exists(tool)],
    }
    return ToolResult.ok(data=info)


# ---------------------------------------------------------------------------
# Tool set
# ---------------------------------------------------------------------------


def terminal_tools(
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
    test_timeout: float = DEFAULT_TEST_TIMEOUT,
    runner: Callable[..., object] = run_shell,
) -> list[ToolDescriptor]:
    """Build the terminal tool set with the configured timeouts."""

    async def execute_command(args: ExecuteCommandArgs, session: Session) -> ToolResult:
        return await runner(
            args.command, session, cwd=args.cwd, timeout=args.timeout or command_timeout, env=args.env
        )

    async def run_tests(args: RunTestsArgs, session: Session) -> ToolResult:
        command = args.testCommand or detect_test_command(session.working_directory)
        if not command:
            return ToolResult.fail("No test command found. Please specify a test command.")
        log.info("Running tests with command: %s", command)
        return await runner(command, session, timeout=test_timeout)

    return [
        ToolDescriptor(
            "execute_command", "Execute a shell command",
            ExecuteCommandArgs, execute_command, requires_approval=True,
        ),
        ToolDescriptor(
            "execute_interactive_command", "Execute a command, optionally feeding it input",
            InteractiveCommandArgs, run_interactive, requires_approval=True,
        ),
        ToolDescriptor(
            "get_system_info", "Get system information and available development tools",
            SystemInfoArgs, get_system_info,
        ),
        ToolDescriptor(
            "run_tests", "Run project tests", RunTestsArgs, run_tests, requires_approval=True,
        ),
    ]
