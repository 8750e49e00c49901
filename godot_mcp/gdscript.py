"""
GDScript helpers: a declaration summary for reading scripts, and composition
of new scripts with the ``extends`` / ``class_name`` preamble Godot expects.
"""

import re
from dataclasses import asdict, dataclass, field

from .errors import InvalidArgument
from .syntax import GDSCRIPT, Kind

_EXTENDS = re.compile(r'extends\s+("[^"]*"|[^\s#:]+)')
_CLASS_NAME = re.compile(r'class_name\s+(\w+)(?:\s+extends\s+("[^"]*"|[^\s#:]+))?')
_VARIABLE = re.compile(r"(?:@\w+(?:\([^)]*\))?\s+)*(?:static\s+)?var\s+(\w+)")
_CONSTANT = re.compile(r"const\s+(\w+)")
_SIGNAL = re.compile(r"signal\s+(\w+)")
_ENUM = re.compile(r"enum\s+(\w+)")


@dataclass
class ScriptSummary:
    extends: str | None = None
    class_name: str | None = None
    functions: list = field(default_factory=list)
    variables: list = field(default_factory=list)
    constants: list = field(default_factory=list)
    signals: list = field(default_factory=list)
    enums: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def analyze_script(text: str) -> ScriptSummary:
    """Summarize the top-level declarations of a GDScript file.

    Only lines outside strings, comments and nested blocks are considered,
    so locals and inner-class members are not reported.
    """
    lines = GDSCRIPT.scan(text)
    summary = ScriptSummary()
    summary.functions = [block.name for block in GDSCRIPT.find_blocks(lines)]

    for line in lines:
        if GDSCRIPT.classify(line) is not Kind.TOP:
            continue
        content = line.content

        match = _CLASS_NAME.match(content)
        if match:
            summary.class_name = match.group(1)
            if match.group(2):
                summary.extends = match.group(2)
            continue
        match = _EXTENDS.match(content)
        if match:
            summary.extends = match.group(1)
            continue

        for pattern, names in (
            (_VARIABLE, summary.variables),
            (_CONSTANT, summary.constants),
            (_SIGNAL, summary.signals),
            (_ENUM, summary.enums),
        ):
            match = pattern.match(content)
            if match:
                names.append(match.group(1))
                break

    return summary


def compose_script(content: str, class_name: str | None = None, base: str = "Node") -> str:
    """
    Build the text of a new script from ``content``.

    ``extends <base>`` is added when the content does not extend anything,
    and ``class_name`` is declared unless the content already does so.

    Raises:
        InvalidArgument: bad class or base name, a conflicting ``class_name``,
            or content that is not well-formed.
    """
    if class_name is not None and not class_name.isidentifier():
        raise InvalidArgument(f"class name {class_name!r} is not a valid identifier")
    if not base or not _EXTENDS.fullmatch(f"extends {base}"):
        raise InvalidArgument(f"base type {base!r} is not valid")

    summary = analyze_script(content)
    if class_name and summary.class_name not in (None, class_name):
        raise InvalidArgument(
            f"content already declares class_name {summary.class_name}"
        )

    preamble = []
    if summary.extends is None:
        preamble.append(f"extends {base}")
    if class_name and summary.class_name is None:
        preamble.append(f"class_name {class_name}")

    text = content if content.endswith("\n") else content + "\n"
    if not preamble:
        return text
    return "\n".join(preamble) + "\n\n" + text.lstrip("\r\n")
