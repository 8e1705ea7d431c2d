"""
Compilation Results and Artifacts.

A CompilationResult is either a success (artifacts plus non-error
messages) or a failure (messages including at least one error). Exactly
one of the two holds, and a success always carries an artifact named
after the unit that was compiled.

Artifact bytes are the interpreter's bytecode magic number followed by the
marshalled code object, the same layout a .pyc payload uses after its
header.
"""

from __future__ import annotations

import importlib.util
import marshal
from dataclasses import dataclass, field
from types import CodeType
from typing import Iterable, Mapping

from funcompile.compiler.messages import CompilationMessage, Severity
from funcompile.errors import CompilationFailedError

MAGIC = importlib.util.MAGIC_NUMBER


def dump_code(code: CodeType) -> bytes:
    """Serialize a code object into artifact bytes."""
    return MAGIC + marshal.dumps(code)


def load_code(data: bytes) -> CodeType:
    """
    Deserialize artifact bytes.

    Raises:
        ValueError: If the bytes were produced by another interpreter
            version or are not a marshalled code object
    """
    if not data.startswith(MAGIC):
        raise ValueError("bad magic number: artifact was compiled by a different interpreter")
    try:
        code = marshal.loads(data[len(MAGIC) :])
    except (EOFError, ValueError, TypeError) as e:
        raise ValueError(f"corrupt artifact: {e}") from e
    if not isinstance(code, CodeType):
        raise ValueError(f"artifact holds {type(code).__name__}, not a code object")
    return code


def artifact_name_of(code: CodeType) -> str:
    """Qualified unit name recorded in a module code object's filename."""
    return code.co_filename.strip("<>")


@dataclass(frozen=True)
class CompilationResult:
    """
    Outcome of compiling one unit.

    Attributes:
        unit_name: Qualified name of the compiled unit
        artifacts: Qualified artifact name -> bytes (empty on failure)
        messages: Every diagnostic, in the order the compiler produced it
    """

    unit_name: str
    artifacts: Mapping[str, bytes] = field(default_factory=dict)
    messages: tuple[CompilationMessage, ...] = ()

    def __post_init__(self) -> None:
        has_errors = any(message.is_error for message in self.messages)
        if has_errors and self.artifacts:
            raise ValueError("a failed compilation cannot carry artifacts")
        if not has_errors and self.unit_name not in self.artifacts:
            raise ValueError(f"a successful compilation must produce {self.unit_name}")

    @classmethod
    def succeeded(
        cls,
        unit_name: str,
        artifacts: Mapping[str, bytes],
        messages: Iterable[CompilationMessage] = (),
    ) -> CompilationResult:
        return cls(unit_name, dict(artifacts), tuple(messages))

    @classmethod
    def failed(cls, unit_name: str, messages: Iterable[CompilationMessage]) -> CompilationResult:
        return cls(unit_name, {}, tuple(messages))

    @property
    def successful(self) -> bool:
        return not self.errors

    @property
    def errors(self) -> list[CompilationMessage]:
        return [message for message in self.messages if message.is_error]

    @property
    def warnings(self) -> list[CompilationMessage]:
        return [message for message in self.messages if message.severity is Severity.WARNING]

    @property
    def artifact_names(self) -> list[str]:
        return list(self.artifacts)

    def get_bytes(self, name: str) -> bytes | None:
        return self.artifacts.get(name)

    def raise_for_failure(self) -> None:
        """Raise CompilationFailedError if this result is a failure."""
        if not self.successful:
            raise CompilationFailedError(self.unit_name, self.messages)
