"""
Function Stores.

Backing stores for compiled function artifacts, keyed by (shape, name).

Design Principle:
    Start simple, scale as needed.
    - Development/Production: FileFunctionStore (one file per artifact)
    - Testing: MemoryFunctionStore (in-memory)

The stores abstract away WHERE artifacts are kept, allowing the registry
to work with any backend. A store holds raw top-level artifact bytes only;
turning them back into callables is the registry's job.

Usage:
    # File-based
    store = FileFunctionStore("/tmp/function-registry")

    # Memory (testing)
    store = MemoryFunctionStore()

    store.save("upper", Shape.TRANSFORM, data)
    store.load("upper", Shape.TRANSFORM)   # bytes or None
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol

from funcompile.shapes import Shape

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_DIR = "/tmp/function-registry"
FILE_SUFFIX = ".fun"


class FunctionStore(Protocol):
    """Protocol for artifact storage backends."""

    def save(self, name: str, shape: Shape, data: bytes) -> None:
        """Store artifact bytes, replacing any previous bytes."""
        ...

    def load(self, name: str, shape: Shape) -> bytes | None:
        """Stored bytes, or None if nothing is stored."""
        ...

    def delete(self, name: str, shape: Shape) -> bool:
        """Remove stored bytes; returns whether anything was removed."""
        ...

    def names(self, shape: Shape) -> list[str]:
        """Names stored for a shape, sorted."""
        ...


def _is_valid_name(name: str) -> bool:
    return bool(name) and "/" not in name and "\\" not in name and name not in (".", "..")


def _check_name(name: str) -> str:
    if not _is_valid_name(name):
        raise ValueError(f"Invalid function name: {name!r}")
    return name


class FileFunctionStore:
    """
    Stores artifacts as files.

    Layout:

    /tmp/function-registry/
    ├── producers/
    │   └── clock.fun
    ├── transforms/
    │   ├── upper.fun
    │   └── words.fun
    └── sinks/
        └── audit.fun

    Writes go to a temporary file that is then renamed over the target, so
    a reader never observes a partially written artifact.
    """

    def __init__(self, base_dir: str | Path = DEFAULT_REGISTRY_DIR):
        """
        Initialize store, creating the directory tree if needed.

        Args:
            base_dir: Root directory of the store

        Raises:
            ValueError: If base_dir exists and is not a directory
        """
        self._base_dir = Path(base_dir)
        if self._base_dir.exists() and not self._base_dir.is_dir():
            raise ValueError(f"Registry location {self._base_dir} is not a directory")

        for shape in Shape:
            (self._base_dir / shape.directory).mkdir(parents=True, exist_ok=True)

        logger.debug(f"[file_store] Using registry directory {self._base_dir}")

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def path_for(self, name: str, shape: Shape) -> Path:
        return self._base_dir / shape.directory / f"{_check_name(name)}{FILE_SUFFIX}"

    def save(self, name: str, shape: Shape, data: bytes) -> None:
        path = self.path_for(name, shape)
        descriptor, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(descriptor, "wb") as f:
                f.write(data)
            os.replace(temp_name, path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise
        logger.info(f"[file_store] Saved {shape.value} '{name}' to {path} ({len(data)} bytes)")

    def load(self, name: str, shape: Shape) -> bytes | None:
        # A name no file could be saved under is simply absent
        if not _is_valid_name(name):
            return None
        path = self.path_for(name, shape)
        if not path.is_file():
            return None
        return path.read_bytes()

    def delete(self, name: str, shape: Shape) -> bool:
        if not _is_valid_name(name):
            return False
        path = self.path_for(name, shape)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"[file_store] Deleted {path}")
        return True

    def names(self, shape: Shape) -> list[str]:
        directory = self._base_dir / shape.directory
        return sorted(path.stem for path in directory.glob(f"*{FILE_SUFFIX}") if path.is_file())


class MemoryFunctionStore:
    """
    In-memory artifact store for testing.

    Usage:
        store = MemoryFunctionStore()
        registry = FunctionRegistry(store)
    """

    def __init__(self):
        self._artifacts: dict[tuple[Shape, str], bytes] = {}
        self._lock = threading.Lock()

    def save(self, name: str, shape: Shape, data: bytes) -> None:
        with self._lock:
            self._artifacts[(shape, _check_name(name))] = bytes(data)

    def load(self, name: str, shape: Shape) -> bytes | None:
        return self._artifacts.get((shape, name))

    def delete(self, name: str, shape: Shape) -> bool:
        with self._lock:
            return self._artifacts.pop((shape, name), None) is not None

    def names(self, shape: Shape) -> list[str]:
        return sorted(name for stored_shape, name in list(self._artifacts) if stored_shape is shape)

    def clear(self) -> None:
        """Remove all artifacts."""
        with self._lock:
            self._artifacts.clear()

    def __len__(self) -> int:
        return len(self._artifacts)
