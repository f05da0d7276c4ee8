# tools.py
# File-system tools: read / write / modify / list / search / delete.
#
# Every path is resolved against the session's working directory. Executors
# never raise for expected failures (missing file, bad regex); they return a
# failed ToolResult instead. Destructive operations keep a timestamped backup.

import difflib
import re
import shutil
import time
from pathlib import Path

from pydantic import Field

from tool_pilot.log import get_logger
from tool_pilot.models import Session, ToolResult
from tool_pilot.registry import ToolArgs, ToolDescriptor

log = get_logger(__name__)

IGNORED_DIRS = {"node_modules", ".git", "dist", "build", "__pycache__", ".venv"}
SEARCH_EXTENSIONS = {
    ".js", ".ts", ".jsx", ".tsx", ".py", ".java", ".cpp", ".c", ".h",
    ".css", ".html", ".md", ".json", ".yaml", ".yml", ".toml",
}
SEARCH_CONTEXT_LINES = 2


# ---------------------------------------------------------------------------
# Argument records
# ---------------------------------------------------------------------------


class ReadFileArgs(ToolArgs):
    path: str = Field(..., description="The path to the file to read")


class WriteFileArgs(ToolArgs):
    path: str = Field(..., description="The path to the file to write")
    content: str = Field(..., description="The content to write to the file")


class ModifyFileArgs(ToolArgs):
    path: str = Field(..., description="The path to the file to modify")
    changes: str = Field(..., description="The changes to apply to the file")


class ListFilesArgs(ToolArgs):
    path: str = Field(".", description="The directory path to list")
    pattern: str = Field("**/*", description="Glob pattern to filter files")


class SearchFilesArgs(ToolArgs):
    searchTerm: str = Field(..., description="The text or regex to search for")
    path: str = Field(".", description="The directory path to search in")
    filePattern: str | None = Field(None, description="Glob pattern to filter files to search")


class DeleteFileArgs(ToolArgs):
    path: str = Field(..., description="The path to the file to delete")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def resolve(session: Session, path: str) -> Path:
    return (Path(session.working_directory) / path).resolve()


def _backup_path(target: Path, tag: str) -> Path:
    return target.with_name(f"{target.name}.{tag}.{int(time.time() * 1000)}")


def _is_ignored(relative: Path) -> bool:
    return any(part in IGNORED_DIRS for part in relative.parts) or relative.suffix == ".log"


def apply_changes(original: str, changes: str) -> str:
    # `changes` is treated as the complete replacement content.
    return changes


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


async def read_file(args: ReadFileArgs, session: Session) -> ToolResult:
    target = resolve(session, args.path)
    if not target.is_file():
        return ToolResult.fail(f"File does not exist: {args.path}")
    try:
        content = target.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        log.error("Failed to read file %s: %s", args.path, exc)
        return ToolResult.fail(f"Failed to read file: {exc}")

    log.debug("Read file: %s (%d characters)", args.path, len(content))
    session.touch_file(args.path)
    return ToolResult.ok(
        data={
            "path": args.path,
            "content": content,
            "size": len(content),
            "lines": len(content.split("\n")),
        }
    )


async def write_file(args: WriteFileArgs, session: Session) -> ToolResult:
    target = resolve(session, args.path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        backup = None
        if target.exists():
            backup = _backup_path(target, "backup")
            shutil.copy2(target, backup)
            log.debug("Created backup: %s", backup)
        target.write_text(args.content, encoding="utf-8")
    except OSError as exc:
        log.error("Failed to write file %s: %s", args.path, exc)
        return ToolResult.fail(f"Failed to write file: {exc}")

    log.info("Wrote file: %s (%d characters)", args.path, len(args.content))
    session.touch_file(args.path)
    return ToolResult.ok(
        data={
            "path": args.path,
            "size": len(args.content),
            "lines": len(args.content.split("\n")),
            "backupPath": str(backup) if backup else None,
        }
    )


async def modify_file(args: ModifyFileArgs, session: Session) -> ToolResult:
    target = resolve(session, args.path)
    if not target.is_file():
        return ToolResult.fail(f"File does not exist: {args.path}")
    try:
        original = target.read_text(encoding="utf-8")
        backup = _backup_path(target, "backup")
        shutil.copy2(target, backup)
        modified = apply_changes(original, args.changes)
        target.write_text(modified, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        log.error("Failed to modify file %s: %s", args.path, exc)
        return ToolResult.fail(f"Failed to modify file: {exc}")

    diff = "".join(
        difflib.unified_diff(
            original.splitlines(keepends=True),
            modified.splitlines(keepends=True),
            fromfile=f"a/{args.path}",
            tofile=f"b/{args.path}",
        )
    )
    log.info("Modified file: %s", args.path)
    log.debug("Diff:\n%s", diff)
    session.touch_file(args.path)
    return ToolResult.ok(
        data={
            "path": args.path,
            "originalSize": len(original),
            "newSize": len(modified),
            "diff": diff,
            "backupPath": str(backup),
        }
    )


async def list_files(args: ListFilesArgs, session: Session) -> ToolResult:
    root = resolve(session, args.path)
    if not root.is_dir():
        return ToolResult.fail(f"Directory does not exist: {args.path}")

    entries = []
    for item in sorted(root.glob(args.pattern)):
        relative = item.relative_to(root)
        if _is_ignored(relative) or any(part.startswith(".") for part in relative.parts):
            continue
        stat = item.stat()
        entries.append(
            {
                "path": relative.as_posix(),
                "type": "directory" if item.is_dir() else "file",
                "size": stat.st_size,
                "modified": stat.st_mtime,
            }
        )

    log.debug("Listed %d files in %s", len(entries), args.path)
    return ToolResult.ok(data={"directory": args.path, "files": entries, "count": len(entries)})


async def search_files(args: SearchFilesArgs, session: Session) -> ToolResult:
    root = resolve(session, args.path)
    if not root.is_dir():
        return ToolResult.fail(f"Directory does not exist: {args.path}")
    try:
        regex = re.compile(args.searchTerm, re.IGNORECASE)
    except re.error as exc:
        return ToolResult.fail(f"Invalid search pattern: {exc}")

    candidates = root.glob(args.filePattern) if args.filePattern else root.rglob("*")
    results = []
    for item in sorted(candidates):
        relative = item.relative_to(root)
        if not item.is_file() or _is_ignored(relative):
            continue
        if not args.filePattern and item.suffix not in SEARCH_EXTENSIONS:
            continue
        try:
            lines = item.read_text(encoding="utf-8").split("\n")
        except (OSError, UnicodeDecodeError) as exc:
            log.debug("Skipped file %s: %s", relative, exc)
            continue

        matches = [
            {
                "line": index + 1,
                "content": line.strip(),
                "context": lines[max(0, index - SEARCH_CONTEXT_LINES): index + SEARCH_CONTEXT_LINES + 1],
            }
            for index, line in enumerate(lines)
            if regex.search(line)
        ]
        if matches:
            results.append({"file": relative.as_posix(), "matches": matches})

    log.info('Found %d files with matches for "%s"', len(results), args.searchTerm)
    return ToolResult.ok(
        data={
            "searchTerm": args.searchTerm,
            "directory": args.path,
            "results": results,
            "totalMatches": sum(len(r["matches"]) for r in results),
        }
    )


async def delete_file(args: DeleteFileArgs, session: Session) -> ToolResult:
    target = resolve(session, args.path)
    if not target.is_file():
        return ToolResult.fail(f"File does not exist: {args.path}")
    backup = _backup_path(target, "deleted")
    try:
        shutil.move(target, backup)
    except OSError as exc:
        log.error("Failed to delete file %s: %s", args.path, exc)
        return ToolResult.fail(f"Failed to delete file: {exc}")

    session.recent_files = [p for p in session.recent_files if p != args.path]
    log.info("Deleted file: %s (backup: %s)", args.path, backup)
    return ToolResult.ok(data={"path": args.path, "backupPath": str(backup)})


# ---------------------------------------------------------------------------
# Tool set
# ---------------------------------------------------------------------------


def file_tools() -> list[ToolDescriptor]:
    return [
        ToolDescriptor("read_file", "Read the contents of a file", ReadFileArgs, read_file),
        ToolDescriptor(
            "write_file", "Write content to a file (creates or overwrites)",
            WriteFileArgs, write_file, requires_approval=True,
        ),
        ToolDescriptor(
            "modify_file", "Apply changes to a file (changes replace the file content)",
            ModifyFileArgs, modify_file, requires_approval=True,
        ),
        ToolDescriptor("list_files", "List files and directories", ListFilesArgs, list_files),
        ToolDescriptor("search_files", "Search for text within files", SearchFilesArgs, search_files),
        ToolDescriptor(
            "delete_file", "Delete a file (keeps a backup)",
            DeleteFileArgs, delete_file, requires_approval=True,
        ),
    ]
