"""
Godot Project MCP Server

Gives an AI coding assistant read, create and modify access to the scripts
of one Godot project. The project root is supplied at start-up.
"""

import difflib
import logging
import sys

from mcp.server.fastmcp import FastMCP

from .config import load_config
from .errors import GodotMCPError, InvalidArgument
from .gdscript import analyze_script, compose_script
from .patcher import PatchRequest, apply_patch, find_functions
from .syntax import GDSCRIPT, syntax_for_path
from .workspace import Workspace

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200

# Create the FastMCP server
mcp = FastMCP("godot-project")

_workspace: Workspace | None = None


def configure(project_root) -> Workspace:
    """Point the tools at ``project_root``."""
    global _workspace
    _workspace = Workspace(project_root)
    return _workspace


def _get_workspace() -> Workspace:
    if _workspace is None:
        raise InvalidArgument("no project root configured")
    return _workspace


def _failure(tool: str, file_path: str, error: GodotMCPError) -> dict:
    logger.warning("%s %s failed: %s", tool, file_path, error)
    result = error.to_dict()
    result["file_path"] = file_path
    return result


# =============================================================================
# MCP Tools
# =============================================================================

@mcp.tool()
def read_gdscript(file_path: str) -> dict:
    """
    Read a script and summarize its declarations.

    Args:
        file_path: Path relative to the project root (res:// paths accepted)

    Returns:
        Dictionary with the full content, top-level functions with line
        spans and, for GDScript, extends/class_name/variables/signals
    """
    try:
        workspace = _get_workspace()
        syntax = syntax_for_path(file_path)
        content = workspace.read(file_path)
    except GodotMCPError as e:
        return _failure("read_gdscript", file_path, e)

    logger.info("read_gdscript %s", file_path)
    result = {
        "path": workspace.relative(file_path),
        "language": syntax.name,
        "content": content,
    }
    try:
        result["functions"] = [span.to_dict() for span in find_functions(content, syntax)]
        if syntax is GDSCRIPT:
            result["analysis"] = analyze_script(content).to_dict()
    except InvalidArgument as e:
        # Content is still useful when the scanner rejects the file
        result["analysis_error"] = str(e)
    return result


@mcp.tool()
def list_functions(file_path: str) -> dict:
    """
    List the top-level functions of a script with their line spans.

    Args:
        file_path: Path relative to the project root

    Returns:
        Dictionary with function names and 1-based start/end lines
    """
    try:
        workspace = _get_workspace()
        syntax = syntax_for_path(file_path)
        spans = find_functions(workspace.read(file_path), syntax)
    except GodotMCPError as e:
        return _failure("list_functions", file_path, e)

    return {
        "path": workspace.relative(file_path),
        "functions": [span.to_dict() for span in spans],
    }


@mcp.tool()
def create_gdscript(
    file_path: str,
    content: str,
    class_name: str | None = None,
    base: str = "Node",
    overwrite: bool = False,
) -> dict:
    """
    Create a new GDScript file.

    Adds `extends <base>` when the content extends nothing, and a
    `class_name` line when one is requested.

    Args:
        file_path: Where to create the script (relative to the project root)
        content: GDScript source
        class_name: Optional global class name for the script
        base: Type to extend when content has no extends line (default Node)
        overwrite: Replace an existing file instead of failing

    Returns:
        Dictionary with the created path and a preview of the written text
    """
    try:
        workspace = _get_workspace()
        if syntax_for_path(file_path) is not GDSCRIPT:
            raise InvalidArgument(f"{file_path} is not a .gd file")
        text = compose_script(content, class_name, base)
        target = workspace.create(file_path, text, overwrite=overwrite)
    except GodotMCPError as e:
        return _failure("create_gdscript", file_path, e)

    logger.info("create_gdscript %s", file_path)
    return {
        "path": workspace.relative(target),
        "class_name": class_name,
        "preview": text[:PREVIEW_CHARS],
        "truncated": len(text) > PREVIEW_CHARS,
    }


@mcp.tool()
def modify_gdscript(
    file_path: str,
    function_name: str,
    function_content: str,
    insert_after: str | None = None,
    dry_run: bool = False,
) -> dict:
    """
    Replace a function in a script, or add it if it does not exist.

    A top-level function named `function_name` is replaced as a whole.
    Otherwise the new function goes after the line containing
    `insert_after`, or at the end of the file when that text is absent.

    Args:
        file_path: Script to modify (relative to the project root)
        function_name: Name of the function to replace or add
        function_content: Complete definition of that one function
        insert_after: Optional text marking where a new function goes;
            must be omitted when the function already exists
        dry_run: Compute the change and diff without writing the file

    Returns:
        Dictionary with the action taken (replaced/inserted/appended), the
        line of the new definition, whether the anchor was found, and a
        unified diff
    """
    request = PatchRequest(function_name, function_content, insert_after or None)
    try:
        workspace = _get_workspace()
        syntax = syntax_for_path(file_path)
        with workspace.locked(file_path) as target:
            original = workspace.read(target)
            result = apply_patch(original, request, syntax)
            changed = result.text != original
            if changed and not dry_run:
                workspace.write(target, result.text)
    except GodotMCPError as e:
        return _failure("modify_gdscript", file_path, e)

    path = workspace.relative(target)
    logger.info("modify_gdscript %s: %s %s", path, result.action.value, function_name)
    diff = difflib.unified_diff(
        original.splitlines(keepends=True),
        result.text.splitlines(keepends=True),
        fromfile=f"a/{path}",
        tofile=f"b/{path}",
    )
    return {
        "path": path,
        "function": function_name,
        "action": result.action.value,
        "line": result.line,
        "anchor_found": result.anchor_found,
        "changed": changed,
        "written": changed and not dry_run,
        "diff": "".join(diff),
    }


# =============================================================================
# Entry Point
# =============================================================================

def main(argv=None):
    """Run the MCP server."""
    config = load_config(argv)
    # stdout carries the MCP stream
    logging.basicConfig(
        level=config.log_level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Suppress verbose MCP logging
    logging.getLogger("mcp").setLevel(logging.WARNING)

    configure(config.project_root)
    logger.info("Serving Godot project at %s", config.project_root)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
