"""
Function patcher: replace or insert one named function in a source buffer.

The patcher is a pure function from an old buffer to a new one. It never
touches storage and holds no state between calls; callers that patch the
same file concurrently must serialize the read-modify-write themselves
(see ``Workspace.locked``).

Lookup is by whole identifier against top-level headers only, and the extent
of a function is decided by the dialect's block convention (indentation or
brace depth), never by searching for the next ``func`` keyword.
"""

import bisect
import logging
import re
from dataclasses import asdict, dataclass
from enum import Enum

from .errors import AmbiguousTarget, InvalidArgument
from .syntax import GDSCRIPT, Block, Kind, Line, Syntax, split_lines

logger = logging.getLogger(__name__)

_NEWLINE = re.compile(r"\r\n|\r|\n")


class Action(str, Enum):
    REPLACED = "replaced"
    INSERTED = "inserted"
    APPENDED = "appended"


@dataclass(frozen=True)
class PatchRequest:
    target: str
    body: str
    anchor: str | None = None


@dataclass(frozen=True)
class PatchResult:
    text: str
    action: Action
    line: int
    anchor_found: bool | None = None


@dataclass(frozen=True)
class FunctionSpan:
    name: str
    start_line: int
    end_line: int

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# Public API
# =============================================================================

def patch(buffer: str, target: str, body: str, anchor: str | None = None,
          syntax: Syntax = GDSCRIPT) -> str:
    """Return ``buffer`` with function ``target`` replaced by, or extended with, ``body``."""
    return apply_patch(buffer, PatchRequest(target, body, anchor), syntax).text


def apply_patch(buffer: str, request: PatchRequest, syntax: Syntax = GDSCRIPT) -> PatchResult:
    """
    Apply one patch request and report what was done.

    - ``target`` defined once at top level: its block is replaced.
    - not defined, ``anchor`` found: ``body`` goes after the anchor's line.
    - otherwise: ``body`` is appended.

    Raises:
        InvalidArgument: bad target or body, anchor given for an existing
            function, anchor inside a block, or malformed source.
        AmbiguousTarget: ``target`` is defined more than once at top level.
    """
    _check_identifier(request.target)
    newline = _newline_style(buffer)
    definition = _normalize_body(request.body, request.target, syntax, newline)

    try:
        lines = syntax.scan(buffer)
    except InvalidArgument as exc:
        raise InvalidArgument(f"source is not well-formed: {exc}") from exc
    blocks = syntax.find_blocks(lines)
    matches = [block for block in blocks if block.name == request.target]

    if len(matches) > 1:
        raise AmbiguousTarget(request.target, [block.header + 1 for block in matches])

    if matches:
        if request.anchor:
            raise InvalidArgument(
                f"'{request.target}' already exists (line {matches[0].header + 1}); "
                "omit the anchor to replace it"
            )
        return _replace(buffer, lines, matches[0], definition, newline)

    if request.anchor:
        index = _anchor_line(buffer, lines, request.anchor)
        if index is not None:
            _check_insertion_point(lines, blocks, index, syntax)
            return _insert(buffer, lines, index, definition, newline)
        logger.info("anchor %r not found, appending '%s'", request.anchor, request.target)
        return _append(buffer, lines, definition, newline, anchor_found=False)

    return _append(buffer, lines, definition, newline, anchor_found=None)


def find_functions(buffer: str, syntax: Syntax = GDSCRIPT) -> list[FunctionSpan]:
    """Top-level functions in ``buffer`` with 1-based inclusive line spans."""
    lines = syntax.scan(buffer)
    return [
        FunctionSpan(block.name, block.start + 1, _last_content_line(lines, block) + 1)
        for block in syntax.find_blocks(lines)
    ]


# =============================================================================
# Validation
# =============================================================================

def _check_identifier(name: str) -> None:
    if not name or not name.isidentifier():
        raise InvalidArgument(f"function name {name!r} is not a valid identifier")


def _newline_style(buffer: str) -> str:
    match = _NEWLINE.search(buffer)
    return match.group() if match else "\n"


def _normalize_body(body: str, target: str, syntax: Syntax, newline: str) -> str:
    """Trim surrounding blank lines, convert line breaks, and check ``body`` defines ``target``."""
    raw = split_lines(body or "")
    while raw and not raw[0].strip():
        raw.pop(0)
    while raw and not raw[-1].strip():
        raw.pop()
    if not raw:
        raise InvalidArgument("function content is empty")

    text = _NEWLINE.sub(newline, "".join(raw).rstrip("\r\n")) + newline
    try:
        lines = syntax.scan(text)
    except InvalidArgument as exc:
        raise InvalidArgument(f"function content is not well-formed: {exc}") from exc

    blocks = syntax.find_blocks(lines)
    if not blocks:
        raise InvalidArgument(f"function content does not define '{target}'")
    if len(blocks) > 1:
        names = ", ".join(block.name for block in blocks)
        raise InvalidArgument(f"function content must define one function, found: {names}")
    block = blocks[0]
    if block.name != target:
        raise InvalidArgument(f"function content defines '{block.name}', expected '{target}'")
    if block.start != 0 or block.end != len(lines):
        raise InvalidArgument(
            f"function content has text outside the definition of '{target}'"
        )
    return text


def _check_insertion_point(lines: list[Line], blocks: list[Block], index: int,
                           syntax: Syntax) -> None:
    """Reject anchors whose following line still belongs to an open block."""
    for block in blocks:
        if block.start <= index < block.end - 1:
            raise InvalidArgument(
                f"anchor on line {index + 1} is inside function '{block.name}'"
            )
    if syntax.is_annotation(lines[index]):
        raise InvalidArgument(f"anchor on line {index + 1} is an annotation")
    for line in lines[index + 1:]:
        kind = syntax.classify(line)
        if kind is Kind.BODY:
            raise InvalidArgument(f"anchor on line {index + 1} is inside a block")
        if kind is Kind.TOP:
            break


# =============================================================================
# Edits
# =============================================================================

def _replace(buffer: str, lines: list[Line], block: Block, definition: str,
             newline: str) -> PatchResult:
    end = block.end
    while end < len(lines) and lines[end].blank:
        end += 1
    start_offset = lines[block.start].offset
    end_offset = lines[end].offset if end < len(lines) else len(buffer)

    following = buffer[end_offset:]
    replacement = definition + (newline if following else "")
    text = buffer[:start_offset] + replacement + following
    return PatchResult(text, Action.REPLACED, block.start + 1)


def _insert(buffer: str, lines: list[Line], index: int, definition: str,
            newline: str) -> PatchResult:
    # Existing blank lines after the anchor become the leading separator.
    following = index + 1
    while following < len(lines) and lines[following].blank:
        following += 1
    cut = lines[following].offset if following < len(lines) else len(buffer)
    before, after = buffer[:cut], buffer[cut:]
    if not before.endswith(("\n", "\r")):
        before += newline

    if following == index + 1:
        before += newline
        following += 1
    insertion = definition + (newline if after else "")
    return PatchResult(before + insertion + after, Action.INSERTED, following + 1,
                       anchor_found=True)


def _append(buffer: str, lines: list[Line], definition: str, newline: str,
            anchor_found: bool | None) -> PatchResult:
    text = buffer
    if text and not text.endswith(("\n", "\r")):
        text += newline
    if lines and not lines[-1].blank:
        text += newline
    line = len(split_lines(text)) + 1
    return PatchResult(text + definition, Action.APPENDED, line, anchor_found=anchor_found)


def _anchor_line(buffer: str, lines: list[Line], anchor: str) -> int | None:
    """Index of the line holding the end of the first occurrence of ``anchor``."""
    position = buffer.find(anchor)
    if position < 0:
        return None
    offsets = [line.offset for line in lines]
    return bisect.bisect_right(offsets, position + len(anchor) - 1) - 1


def _last_content_line(lines: list[Line], block: Block) -> int:
    last = block.end - 1
    while last > block.header and lines[last].blank:
        last -= 1
    return last
