"""
Compilation Messages.

Diagnostics produced while compiling a unit. Each message keeps enough of
the source to render the offending line with a caret marker:

    ==========
            return serializable(Transform[Any, Any], this does not compile)
                                                          ^^^^
    ERROR:invalid syntax
    ==========
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from enum import Enum

FRAME = "=========="


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class CompilationMessage:
    """
    One compiler diagnostic.

    Attributes:
        severity: error, warning or info
        message: Human-readable description
        source: Full text of the unit the message refers to, if any
        line: 1-based line number, if known
        column: 1-based column of the first offending character
        end_column: 1-based column just past the offending range (same line)
    """

    severity: Severity
    message: str
    source: str | None = None
    line: int | None = None
    column: int | None = None
    end_column: int | None = None

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    @property
    def location(self) -> str:
        if self.line is None:
            return ""
        if self.column is None:
            return str(self.line)
        return f"{self.line}:{self.column}"

    @property
    def start_position(self) -> int:
        """0-based character offset of the message start in source, or -1."""
        return self._offset(self.column)

    @property
    def end_position(self) -> int:
        """0-based character offset of the message end in source, or -1."""
        return self._offset(self.end_column or self.column)

    def source_line(self) -> str | None:
        """Text of the line the message points at."""
        if self.source is None or self.line is None:
            return None
        lines = self.source.splitlines()
        if not 1 <= self.line <= len(lines):
            return None
        return lines[self.line - 1]

    def _offset(self, column: int | None) -> int:
        if self.source is None or self.line is None or column is None:
            return -1
        lines = self.source.splitlines(keepends=True)
        if not 1 <= self.line <= len(lines):
            return -1
        return sum(len(text) for text in lines[: self.line - 1]) + column - 1

    def __str__(self) -> str:
        parts = [FRAME]
        context = self.source_line()
        if context is not None and self.column is not None:
            parts.append(context)
            start = max(self.column - 1, 0)
            width = 1
            if self.end_column is not None and self.end_column > self.column:
                width = self.end_column - self.column
            indent = "".join("\t" if char == "\t" else " " for char in context[:start])
            parts.append(indent + "^" * width)
        parts.append(f"{self.severity.name}:{self.message}")
        parts.append(FRAME)
        return "\n".join(parts) + "\n"

    # =========================================================================
    # Constructors
    # =========================================================================

    @classmethod
    def error(cls, message: str, source: str | None = None, **position: int | None) -> CompilationMessage:
        return cls(Severity.ERROR, message, source, **position)

    @classmethod
    def from_syntax_error(cls, exc: SyntaxError, source: str) -> CompilationMessage:
        end_column = None
        if exc.end_lineno == exc.lineno and exc.end_offset is not None:
            end_column = exc.end_offset
        return cls(
            severity=Severity.ERROR,
            message=exc.msg,
            source=source,
            line=exc.lineno,
            column=exc.offset,
            end_column=end_column,
        )

    @classmethod
    def from_warning(cls, warning: warnings.WarningMessage, source: str) -> CompilationMessage:
        return cls(
            severity=Severity.WARNING,
            message=f"{warning.category.__name__}: {warning.message}",
            source=source,
            line=warning.lineno,
        )
