"""
Error classes for funcompile.

Every failure the compile-and-register pipeline can raise derives from
FuncompileError, so callers can catch the whole family at once:

- SynthesisError: the caller's input cannot become a compilation unit
  (empty or invalid name, malformed escape, wrong type parameters)
- ResolutionError: a classpath archive cannot be read
- CompilationFailedError: the compiler reported error diagnostics
- LoadError: a structurally valid artifact failed while being loaded
- CompositionError: a compose request names too few or unknown transforms

A lookup miss is not an error; lookups return None.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from funcompile.compiler.messages import CompilationMessage


class FuncompileError(Exception):
    """Base exception for funcompile."""

    pass


class SynthesisError(FuncompileError, ValueError):
    """Raised when a snippet cannot be turned into a compilation unit."""

    pass


class ResolutionError(FuncompileError):
    """
    Raised when a classpath root cannot be opened or read.

    Aborts the whole compile request: no partial classpath is ever used.

    Attributes:
        location: Path or composite locator of the offending archive
    """

    def __init__(self, location: str, reason: str):
        self.location = location
        self.reason = reason
        super().__init__(f"Cannot resolve classpath entry {location}: {reason}")


class CompilationFailedError(FuncompileError):
    """
    Raised when compilation produced one or more error diagnostics.

    Attributes:
        unit_name: Qualified name of the compilation unit
        messages: Every diagnostic of the failed compilation, in order
    """

    def __init__(self, unit_name: str, messages: Sequence[CompilationMessage]):
        self.unit_name = unit_name
        self.messages = tuple(messages)
        rendered = "".join(str(message) for message in self.messages)
        super().__init__(f"Compilation of {unit_name} failed:\n{rendered}")

    @property
    def errors(self) -> list[CompilationMessage]:
        return [message for message in self.messages if message.is_error]


class LoadError(FuncompileError):
    """
    Raised when a compiled artifact cannot be turned into a callable.

    Attributes:
        artifact_name: Qualified name of the artifact that failed
    """

    def __init__(self, artifact_name: str, reason: str):
        self.artifact_name = artifact_name
        self.reason = reason
        super().__init__(f"Failed to load {artifact_name}: {reason}")


class CompositionError(FuncompileError):
    """Raised when transforms cannot be chained."""

    pass
