"""
Snippet Synthesizer.

Turns a bare code fragment into a complete compilation unit: a module
defining one factory class whose get_result() returns the snippet's value.

Processing steps:
    1. Decode the wire encoding: a literal backslash-n becomes a newline and
       a doubled double quote becomes a single one
    2. Strip one layer of enclosing double quotes
    3. Wrap bare expressions as `return serializable(<Shape>[<types>], <body>)`;
       bodies starting with 'return ' or ending with ';' are kept as written
    4. Derive the unit name: <package>.<Name><Shape>Factory
    5. Render the fixed module template

Usage:
    synthesizer = SnippetSynthesizer()
    unit = synthesizer.synthesize("upper", Shape.TRANSFORM, "lambda v: v.upper()", "str", "str")
    unit.name    # "funcompile.generated.UpperTransformFactory"
"""

from __future__ import annotations

import ast
import logging
import textwrap
from typing import Iterable

from funcompile.compiler.classpath import ClasspathRoot
from funcompile.compiler.unit import CompilationUnit
from funcompile.errors import SynthesisError
from funcompile.shapes import Shape

logger = logging.getLogger(__name__)

DEFAULT_PACKAGE = "funcompile.generated"
BODY_INDENT = " " * 8

SOURCE_TEMPLATE = """\
import collections
import functools
import itertools
from typing import *

from funcompile.shapes import (
    Producer,
    ProducerFactory,
    Sink,
    SinkFactory,
    Transform,
    TransformFactory,
    serializable,
)
from funcompile.streams import Publisher, Stream


class {class_name}({shape}Factory):
    def get_result(self) -> {declared}:
{body}
"""


def decode(code: str) -> str:
    """
    Decode the snippet wire encoding.

    Raises:
        SynthesisError: If the snippet ends in an unpaired backslash
    """
    trailing = len(code) - len(code.rstrip("\\"))
    if trailing % 2:
        raise SynthesisError("Malformed escape sequence: dangling backslash at end of snippet")
    return code.replace("\\n", "\n").replace('""', '"')


def normalize(body: str, declared: str) -> str:
    """Strip enclosing quotes and wrap bare expressions."""
    body = body.strip()
    if len(body) >= 2 and body.startswith('"') and body.endswith('"'):
        body = body[1:-1].strip()
    if not body:
        raise SynthesisError("Snippet body is empty")
    if not body.startswith("return ") and not body.endswith(";"):
        body = f"return serializable({declared}, {body})"
    return body


def class_name_for(name: str, shape: Shape) -> str:
    """
    Factory class name for a function name and shape.

    Raises:
        SynthesisError: If the name is empty or not a valid identifier
    """
    if not name:
        raise SynthesisError("Function name must not be empty")
    class_name = f"{name[0].upper()}{name[1:]}{shape.type_name}Factory"
    if not class_name.isidentifier():
        raise SynthesisError(f"Function name {name!r} is not a valid identifier")
    return class_name


class SnippetSynthesizer:
    """Renders compilation units from snippets."""

    def __init__(self, package: str = DEFAULT_PACKAGE):
        if package and not all(part.isidentifier() for part in package.split(".")):
            raise ValueError(f"Invalid package name: {package!r}")
        self._package = package

    @property
    def package(self) -> str:
        return self._package

    def qualified_name(self, name: str, shape: Shape) -> str:
        class_name = class_name_for(name, shape)
        return f"{self._package}.{class_name}" if self._package else class_name

    def synthesize(
        self,
        name: str,
        shape: Shape | str,
        code: str,
        *type_params: str,
        classpath: Iterable[ClasspathRoot] = (),
    ) -> CompilationUnit:
        """
        Build a compilation unit from a snippet.

        Args:
            name: Function name; its first letter is capitalized for the class name
            shape: Producer, transform or sink
            code: Snippet in wire encoding
            *type_params: Type expressions for the shape's parameters, either
                none (each defaults to Any) or exactly the shape's arity
            classpath: Resolved roots the unit compiles against

        Returns:
            The unit to hand to the compiler

        Raises:
            SynthesisError: On an empty or invalid name, a malformed escape or
                unusable type parameters
        """
        shape = Shape.parse(shape)
        qualified = self.qualified_name(name, shape)
        class_name = qualified.rpartition(".")[2]

        params = self._type_params(shape, type_params)
        declared = f"{shape.type_name}[{', '.join(params)}]"

        body = normalize(decode(code), declared)
        source = SOURCE_TEMPLATE.format(
            class_name=class_name,
            shape=shape.type_name,
            declared=declared,
            body=textwrap.indent(body, BODY_INDENT, lambda line: True),
        )

        logger.debug(f"[synthesizer] Rendered {qualified} | declared={declared}")
        return CompilationUnit(
            name=qualified,
            source=source,
            classpath=tuple(classpath),
            shape=shape,
            type_params=params,
        )

    def _type_params(self, shape: Shape, type_params: tuple[str, ...]) -> tuple[str, ...]:
        if not type_params:
            return ("Any",) * shape.arity
        if len(type_params) != shape.arity:
            raise SynthesisError(
                f"{shape.type_name} takes {shape.arity} type parameter(s), got {len(type_params)}"
            )
        params = []
        for param in type_params:
            param = param.strip()
            try:
                ast.parse(param, mode="eval")
            except SyntaxError as e:
                raise SynthesisError(f"Invalid type parameter {param!r}: {e.msg}") from e
            if "\n" in param:
                raise SynthesisError(f"Invalid type parameter {param!r}: must be a single line")
            params.append(param)
        return tuple(params)
