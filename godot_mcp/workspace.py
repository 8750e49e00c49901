"""
File storage for one Godot project.

Paths are resolved against the configured project root (``res://`` paths
included) and may not leave it. Writes are atomic: the new text goes to a
temporary file beside the target, is flushed and fsynced, then moved over
the original. ``locked`` serializes read-modify-write cycles per file.
"""

import contextlib
import logging
import os
import stat
import tempfile
import threading
from pathlib import Path

from .errors import InvalidArgument, IOFailure

logger = logging.getLogger(__name__)

RESOURCE_PREFIX = "res://"


class Workspace:
    def __init__(self, root):
        root = Path(root).expanduser()
        if not root.is_dir():
            raise InvalidArgument(f"project root {root} is not a directory")
        self.root = root.resolve()
        self._locks: dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def resolve(self, path) -> Path:
        """Absolute path for ``path``; raises InvalidArgument outside the root."""
        raw = str(path).strip() if path is not None else ""
        if not raw:
            raise InvalidArgument("file path is empty")
        if raw.startswith(RESOURCE_PREFIX):
            raw = raw[len(RESOURCE_PREFIX):]

        candidate = Path(raw).expanduser()
        if not candidate.is_absolute():
            candidate = self.root / candidate
        resolved = candidate.resolve()
        if not resolved.is_relative_to(self.root):
            raise InvalidArgument(f"{path} is outside the project root")
        return resolved

    def relative(self, path) -> str:
        """Project-relative POSIX form of ``path``, for messages."""
        return self.resolve(path).relative_to(self.root).as_posix()

    @contextlib.contextmanager
    def locked(self, path):
        """Hold the lock for ``path`` and yield its resolved location."""
        target = self.resolve(path)
        with self._locks_guard:
            lock = self._locks.setdefault(target, threading.Lock())
        with lock:
            yield target

    def read(self, path) -> str:
        target = self.resolve(path)
        try:
            # newline="" keeps \r\n and \r as they are on disk
            with open(target, encoding="utf-8", newline="") as handle:
                return handle.read()
        except UnicodeDecodeError as exc:
            raise InvalidArgument(f"{self.relative(target)} is not UTF-8 text") from exc
        except OSError as exc:
            raise IOFailure(self.relative(target), exc) from exc

    def write(self, path, text: str) -> Path:
        target = self.resolve(path)
        name = self.relative(target)
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=target.parent, prefix=f".{target.name}.", suffix=".tmp"
            )
        except OSError as exc:
            raise IOFailure(name, exc) from exc

        try:
            try:
                handle = os.fdopen(fd, "w", encoding="utf-8", newline="")
            except BaseException:
                os.close(fd)
                raise
            with handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
            if target.exists():
                os.chmod(tmp_name, stat.S_IMODE(target.stat().st_mode))
            os.replace(tmp_name, target)
        except UnicodeEncodeError as exc:
            raise InvalidArgument(f"{name}: text is not encodable as UTF-8") from exc
        except OSError as exc:
            raise IOFailure(name, exc) from exc
        finally:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)

        logger.debug("Wrote %d characters to %s", len(text), name)
        return target

    def create(self, path, text: str, overwrite: bool = False) -> Path:
        """Write a new file, creating parent directories as needed."""
        target = self.resolve(path)
        if target.is_dir():
            raise InvalidArgument(f"{self.relative(target)} is a directory")
        if target.exists() and not overwrite:
            raise InvalidArgument(f"{self.relative(target)} already exists")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IOFailure(self.relative(target.parent), exc) from exc
        return self.write(target, text)
