"""
Function Shapes.

The three callable contracts a snippet can be compiled into, plus the
factory base classes generated code derives from.

    Shape.PRODUCER   Producer[O]       () -> O
    Shape.TRANSFORM  Transform[I, O]   (I) -> O
    Shape.SINK       Sink[I]           (I) -> None

Design Principle:
    A bare lambda carries no declared types at runtime. serializable()
    pins the declared target type onto the value and records a capture
    descriptor, so the signature can be recovered later even though the
    lambda itself says nothing about it.

Usage:
    from funcompile.shapes import Shape, Transform, serializable

    upper = serializable(Transform[str, str], lambda v: v.upper())
    upper.__capture__.impl_signature   # "(str;)str;"
"""

from __future__ import annotations

import typing
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Protocol, TypeVar

T = TypeVar("T")
R = TypeVar("R")


# =============================================================================
# Shape
# =============================================================================


class Shape(str, Enum):
    """Kind of callable a snippet compiles into."""

    PRODUCER = "producer"
    TRANSFORM = "transform"
    SINK = "sink"

    @property
    def type_name(self) -> str:
        """Protocol name used in generated source, e.g. 'Transform'."""
        return self.value.capitalize()

    @property
    def arity(self) -> int:
        """Number of type parameters the shape's protocol takes."""
        return 2 if self is Shape.TRANSFORM else 1

    @property
    def directory(self) -> str:
        """Directory name used by file-backed stores."""
        return f"{self.value}s"

    @classmethod
    def parse(cls, value: str | Shape) -> Shape:
        """
        Coerce a shape or shape name.

        Accepts the canonical names as well as 'supplier', 'function' and
        'consumer', the names used by declarative definitions.

        Raises:
            ValueError: If the name is not a known shape
        """
        if isinstance(value, Shape):
            return value
        key = str(value).strip().lower()
        shape = _SHAPE_ALIASES.get(key)
        if shape is None:
            raise ValueError(f"Unknown function shape: {value!r}")
        return shape


_SHAPE_ALIASES = {
    "producer": Shape.PRODUCER,
    "supplier": Shape.PRODUCER,
    "transform": Shape.TRANSFORM,
    "function": Shape.TRANSFORM,
    "sink": Shape.SINK,
    "consumer": Shape.SINK,
}


# =============================================================================
# Callable Protocols
# =============================================================================


class Producer(Protocol[R]):
    def __call__(self) -> R: ...


class Transform(Protocol[T, R]):
    def __call__(self, value: T) -> R: ...


class Sink(Protocol[T]):
    def __call__(self, value: T) -> None: ...


SHAPE_PROTOCOLS: dict[Any, Shape] = {
    Producer: Shape.PRODUCER,
    Transform: Shape.TRANSFORM,
    Sink: Shape.SINK,
}


def protocol_for(shape: Shape) -> Any:
    """Return the generic protocol for a shape."""
    for protocol, candidate in SHAPE_PROTOCOLS.items():
        if candidate is shape:
            return protocol
    raise ValueError(f"No protocol for shape {shape!r}")


def shape_of(declared: Any) -> Shape | None:
    """Shape of a (possibly parameterized) protocol, or None if it is not one."""
    origin = typing.get_origin(declared) or declared
    return SHAPE_PROTOCOLS.get(origin)


# =============================================================================
# Factory Bases
# =============================================================================


class ShapeFactory(ABC):
    """
    Base for generated factory classes.

    A generated factory has a no-argument constructor and a single
    get_result() method whose return annotation names the shape and its
    type parameters.
    """

    shape: ClassVar[Shape]

    @abstractmethod
    def get_result(self) -> Any:
        """Build the callable."""
        ...


class ProducerFactory(ShapeFactory):
    shape = Shape.PRODUCER


class TransformFactory(ShapeFactory):
    shape = Shape.TRANSFORM


class SinkFactory(ShapeFactory):
    shape = Shape.SINK


# =============================================================================
# Type Names
# =============================================================================


def type_name(tp: Any) -> str:
    """
    Render a type as a stable, fully-qualified name.

    Builtins are unqualified ('str'), everything else is prefixed with its
    module ('funcompile.streams.Stream[str]'). Parameterized generics keep
    their arguments in brackets.
    """
    if tp is None or tp is type(None):
        return "None"
    if tp is Any:
        return "typing.Any"
    if isinstance(tp, str):
        return tp
    if isinstance(tp, typing.ForwardRef):
        return tp.__forward_arg__
    if isinstance(tp, (list, tuple)):
        return "[" + ", ".join(type_name(arg) for arg in tp) + "]"

    origin = typing.get_origin(tp)
    if origin is not None:
        args = typing.get_args(tp)
        base = type_name(origin)
        if not args:
            return base
        return f"{base}[{', '.join(type_name(arg) for arg in args)}]"

    if isinstance(tp, type):
        if tp.__module__ == "builtins":
            return tp.__qualname__
        return f"{tp.__module__}.{tp.__qualname__}"
    return repr(tp)


# =============================================================================
# Capture
# =============================================================================


@dataclass(frozen=True)
class CaptureDescriptor:
    """
    Serialized form of a captured callable's declared signature.

    impl_signature lists one name per parameter, each terminated by ';',
    inside parentheses, followed by the return type and ';' (omitted for
    sinks): "(str;)str;".
    """

    shape: Shape
    declared: str
    impl_signature: str


class CapturedCallable:
    """A callable tagged with the declared shape it was built for."""

    __slots__ = ("_target", "__capture__", "__wrapped__")

    def __init__(self, target: Callable[..., Any], capture: CaptureDescriptor):
        self._target = target
        self.__capture__ = capture
        self.__wrapped__ = target

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self._target(*args, **kwargs)

    def __repr__(self) -> str:
        return f"<captured {self.__capture__.declared} {self._target!r}>"


def serializable(declared: Any, target: Callable[..., Any]) -> CapturedCallable:
    """
    Mark a callable as built for a declared shape.

    Args:
        declared: A parameterized shape protocol, e.g. Transform[str, str]
        target: The callable to wrap

    Returns:
        The wrapped callable, exposing a CaptureDescriptor as __capture__

    Raises:
        TypeError: If declared is not a shape protocol or target is not callable
    """
    shape = shape_of(declared)
    if shape is None:
        raise TypeError(f"{declared!r} is not a Producer, Transform or Sink type")
    if not callable(target):
        raise TypeError(f"{target!r} is not callable")

    names = [type_name(arg) for arg in typing.get_args(declared)]
    if not names:
        names = ["typing.Any"] * shape.arity

    if shape is Shape.PRODUCER:
        params, result = [], names[0]
    elif shape is Shape.TRANSFORM:
        params, result = names[:1], names[1]
    else:
        params, result = names[:1], ""

    signature = "(" + "".join(f"{param};" for param in params) + ")"
    if result:
        signature += f"{result};"

    capture = CaptureDescriptor(
        shape=shape,
        declared=type_name(declared),
        impl_signature=signature,
    )
    return CapturedCallable(target, capture)
