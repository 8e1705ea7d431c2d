"""Compilation unit: the synthesized source for one registration request."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Iterable

from funcompile.compiler.classpath import ClasspathRoot
from funcompile.shapes import Shape


@dataclass(frozen=True)
class CompilationUnit:
    """
    Source text plus the classpath it compiles against.

    Attributes:
        name: Fully-qualified artifact name, e.g. funcompile.generated.FoosTransformFactory
        source: Module source text
        classpath: Resolved classpath roots
        shape: Shape the unit was synthesized for, if any
        type_params: Type parameter expressions used in the template
    """

    name: str
    source: str
    classpath: tuple[ClasspathRoot, ...] = ()
    shape: Shape | None = None
    type_params: tuple[str, ...] = ()

    @property
    def package(self) -> str:
        return self.name.rpartition(".")[0]

    @property
    def short_name(self) -> str:
        return self.name.rpartition(".")[2]

    @property
    def filename(self) -> str:
        """Pseudo filename recorded in compiled code objects."""
        return f"<{self.name}>"

    def with_classpath(self, classpath: Iterable[ClasspathRoot]) -> CompilationUnit:
        return dataclasses.replace(self, classpath=tuple(classpath))
