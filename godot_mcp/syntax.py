"""
Source dialects and the line scanner used to find function blocks.

A dialect describes how one language opens blocks (indentation or braces),
how it writes comments and strings, and what a function header looks like.
``Syntax.scan`` walks a buffer once and records, for every line, the state
the line starts in: open brackets, an unfinished string, a block comment or
a backslash continuation. Everything above it (block boundaries, top-level
detection, anchor checks) is decided from that per-line state, so a header
that appears inside a string or a nested block is never taken for a sibling.
"""

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import InvalidArgument

INDENT = "indent"
BRACE = "brace"

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = set(_OPENERS.values())

# Each match is one line including its break; \r\n is tried before \r.
_LINE = re.compile(r"[^\r\n]*(?:\r\n|\r|\n)|[^\r\n]+$")


def split_lines(text: str) -> list[str]:
    """Split on \\n, \\r\\n and \\r only, keeping the line breaks."""
    return _LINE.findall(text)


class Kind(Enum):
    TOP = "top"
    BODY = "body"
    BLANK = "blank"
    COMMENT = "comment"


@dataclass(frozen=True)
class Line:
    index: int
    offset: int
    text: str
    depth: int          # open brackets at line start
    braces: int         # open curly braces at line start
    continued: bool     # starts inside a bracket, a string or after a backslash
    in_comment: bool    # starts inside a block comment
    opens: bool         # a '{' is opened on this line

    @property
    def content(self) -> str:
        return self.text.rstrip("\r\n")

    @property
    def blank(self) -> bool:
        return not self.text.strip()


@dataclass(frozen=True)
class Block:
    """A top-level function: ``start`` includes annotations, ``end`` is exclusive."""

    name: str
    start: int
    header: int
    end: int


@dataclass(frozen=True)
class Syntax:
    name: str
    blocks: str
    header: re.Pattern
    line_comment: str
    quotes: tuple = ('"', "'")
    block_comment: tuple = None
    annotation: re.Pattern = None
    line_continuation: bool = False

    # -------------------------------------------------------------------------
    # Scanning
    # -------------------------------------------------------------------------

    def scan(self, text: str) -> list[Line]:
        """Return one ``Line`` per line of ``text``.

        Raises InvalidArgument when brackets do not balance, or a string or
        block comment is left open.
        """
        lines = []
        stack = []  # (opener, line number)
        quote = None
        in_comment = False
        backslash = False
        offset = 0

        for index, raw in enumerate(split_lines(text)):
            braces = sum(1 for opener, _ in stack if opener == "{")
            start_state = dict(
                index=index,
                offset=offset,
                text=raw,
                depth=len(stack),
                braces=braces,
                continued=bool(stack) or quote is not None or backslash,
                in_comment=in_comment,
            )
            offset += len(raw)
            backslash = False
            string_continues = False
            opens = False
            body = raw.rstrip("\r\n")
            i = 0

            while i < len(body):
                if in_comment:
                    end = body.find(self.block_comment[1], i)
                    if end < 0:
                        break
                    in_comment = False
                    i = end + len(self.block_comment[1])
                    continue

                if quote is not None:
                    if body[i] == "\\":
                        if i == len(body) - 1:
                            string_continues = True
                        i += 2
                    elif body.startswith(quote, i):
                        i += len(quote)
                        quote = None
                    else:
                        i += 1
                    continue

                if body.startswith(self.line_comment, i):
                    break
                if self.block_comment and body.startswith(self.block_comment[0], i):
                    in_comment = True
                    i += len(self.block_comment[0])
                    continue

                opened = next((q for q in self.quotes if body.startswith(q, i)), None)
                if opened:
                    quote = opened
                    i += len(opened)
                    continue

                char = body[i]
                if char in _OPENERS:
                    stack.append((char, index + 1))
                    opens = opens or char == "{"
                elif char in _CLOSERS:
                    if not stack or _OPENERS[stack[-1][0]] != char:
                        raise InvalidArgument(f"unbalanced '{char}' on line {index + 1}")
                    stack.pop()
                elif char == "\\" and self.line_continuation and i == len(body) - 1:
                    backslash = True
                i += 1

            if quote is not None and len(quote) == 1 and not string_continues:
                raise InvalidArgument(f"unterminated string on line {index + 1}")

            lines.append(Line(opens=opens, **start_state))

        if stack:
            opener, number = stack[-1]
            raise InvalidArgument(f"'{opener}' opened on line {number} is never closed")
        if quote is not None:
            raise InvalidArgument("unterminated multi-line string")
        if in_comment:
            raise InvalidArgument("unterminated block comment")
        return lines

    # -------------------------------------------------------------------------
    # Line classification
    # -------------------------------------------------------------------------

    def classify(self, line: Line) -> Kind:
        if line.in_comment:
            return Kind.COMMENT
        if line.continued:
            return Kind.BODY
        if line.blank:
            return Kind.BLANK
        stripped = line.text.lstrip()
        if self.blocks == INDENT and line.text[0].isspace():
            return Kind.BODY
        if stripped.startswith(self.line_comment):
            return Kind.COMMENT
        if self.block_comment and stripped.startswith(self.block_comment[0]):
            return Kind.COMMENT
        return Kind.TOP

    def header_name(self, line: Line) -> str | None:
        """Name declared by ``line`` if it is a top-level function header."""
        if self.classify(line) is not Kind.TOP:
            return None
        match = self.header.match(line.content.lstrip())
        return match.group("name") if match else None

    def is_annotation(self, line: Line) -> bool:
        return (
            self.annotation is not None
            and self.classify(line) is Kind.TOP
            and self.annotation.match(line.content) is not None
        )

    # -------------------------------------------------------------------------
    # Blocks
    # -------------------------------------------------------------------------

    def find_blocks(self, lines: list[Line]) -> list[Block]:
        """All top-level function blocks, in buffer order."""
        blocks = []
        for line in lines:
            name = self.header_name(line)
            if name is None:
                continue
            start = line.index
            while start > 0 and self.is_annotation(lines[start - 1]):
                start -= 1
            blocks.append(Block(name, start, line.index, self._block_end(lines, line.index, name)))
        return blocks

    def _block_end(self, lines: list[Line], header: int, name: str) -> int:
        if self.blocks == INDENT:
            last = header
            for line in lines[header + 1:]:
                kind = self.classify(line)
                if kind is Kind.BODY:
                    last = line.index
                elif kind is Kind.TOP:
                    break
            return last + 1

        opened = False
        for line in lines[header:]:
            if not opened and line.index != header and self.classify(line) is Kind.TOP:
                if not line.content.lstrip().startswith("{"):
                    break
            opened = opened or line.opens
            following = lines[line.index + 1] if line.index + 1 < len(lines) else None
            if opened and (following is None or following.braces == 0):
                return line.index + 1
        raise InvalidArgument(f"'{name}' on line {header + 1} has no body")


# =============================================================================
# Dialects
# =============================================================================

_IDENT = r"[^\W\d]\w*"

# Script-level annotations describe the whole file, not the next function.
_SCRIPT_ANNOTATIONS = r"(?:tool|icon|static_unload)\b"

GDSCRIPT = Syntax(
    name="gdscript",
    blocks=INDENT,
    header=re.compile(
        r"(?:(?:static|remote|master|puppet|remotesync|mastersync|puppetsync)\s+)*"
        rf"func\s+(?P<name>{_IDENT})\s*\("
    ),
    line_comment="#",
    quotes=('"""', "'''", '"', "'"),
    annotation=re.compile(rf"@(?!{_SCRIPT_ANNOTATIONS}){_IDENT}(?:\(.*\))?\s*$"),
    line_continuation=True,
)

PYTHON = Syntax(
    name="python",
    blocks=INDENT,
    header=re.compile(rf"(?:async\s+)?def\s+(?P<name>{_IDENT})\s*[(\[]"),
    line_comment="#",
    quotes=('"""', "'''", '"', "'"),
    annotation=re.compile(rf"@{_IDENT}(?:\.{_IDENT})*(?:\(.*\))?\s*$"),
    line_continuation=True,
)

GDSHADER = Syntax(
    name="gdshader",
    blocks=BRACE,
    header=re.compile(rf"(?:(?:lowp|mediump|highp)\s+)?{_IDENT}\s+(?P<name>{_IDENT})\s*\("),
    line_comment="//",
    quotes=('"',),
    block_comment=("/*", "*/"),
)

SYNTAX_BY_SUFFIX = {
    ".gd": GDSCRIPT,
    ".py": PYTHON,
    ".gdshader": GDSHADER,
    ".gdshaderinc": GDSHADER,
}


def syntax_for_path(path) -> Syntax:
    """Pick the dialect for ``path`` by file extension."""
    suffix = Path(path).suffix.lower()
    try:
        return SYNTAX_BY_SUFFIX[suffix]
    except KeyError:
        supported = ", ".join(sorted(SYNTAX_BY_SUFFIX))
        raise InvalidArgument(
            f"unsupported file type '{suffix or Path(path).name}' (supported: {supported})"
        ) from None
