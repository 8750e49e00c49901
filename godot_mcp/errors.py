"""Error taxonomy shared by the patcher, the workspace and the tool layer."""


class GodotMCPError(Exception):
    """Base class. ``kind`` is the name reported to the calling agent."""

    kind = "Error"

    def to_dict(self) -> dict:
        return {"error": str(self), "kind": self.kind}


class InvalidArgument(GodotMCPError):
    """Malformed request or source that cannot be patched safely."""

    kind = "InvalidArgument"


class AmbiguousTarget(GodotMCPError):
    """More than one top-level definition carries the requested name."""

    kind = "AmbiguousTarget"

    def __init__(self, name: str, lines: list[int]):
        self.name = name
        self.lines = lines
        where = ", ".join(str(n) for n in lines)
        super().__init__(f"'{name}' is defined {len(lines)} times (lines {where})")

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["lines"] = self.lines
        return result


class IOFailure(GodotMCPError):
    """Storage error, surfaced with the path that failed."""

    kind = "IOFailure"

    def __init__(self, path, cause: OSError):
        self.path = path
        self.cause = cause
        reason = cause.strerror or str(cause)
        super().__init__(f"{path}: {reason}")
