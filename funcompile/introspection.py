"""
Type Signature Recovery.

Recovers the declared type names of a callable that did not come through a
compiled factory, and decides whether a signature is stream-wrapping.

Recovery order:
    1. The callable's own declared parameterization: a class deriving from
       Transform[...] (or Producer/Sink), an instance of a parameterized
       generic, or a plain function with complete annotations. Used only
       when the arity matches and every name is a stream type.
    2. The capture descriptor left by serializable(), parsed from its
       "(<param>;...)<return>;" signature string.
    3. Nothing found; callers treat the callable as not stream-wrapping.

Usage:
    names, found = recover_signature(fn, Shape.TRANSFORM.arity)
    is_stream_wrapping(fn, Shape.TRANSFORM)
"""

from __future__ import annotations

import inspect
import logging
import typing
from typing import Any, Sequence

from funcompile.shapes import CaptureDescriptor, Shape, shape_of, type_name
from funcompile.streams import Publisher, Stream

logger = logging.getLogger(__name__)

STREAM_TYPE_NAMES = (type_name(Stream), type_name(Publisher))

_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


def is_stream_type(name: str) -> bool:
    """Whether a type name is Stream or Publisher, optionally parameterized."""
    return any(name == marker or name.startswith(f"{marker}[") for marker in STREAM_TYPE_NAMES)


def is_stream_signature(type_names: Sequence[str] | None, arity: int) -> bool:
    """True only when exactly arity names are given and all are stream types."""
    if not type_names or len(type_names) != arity:
        return False
    return all(is_stream_type(name) for name in type_names)


def is_stream_wrapping(subject: Any, shape: Shape | str | None = None) -> bool:
    """
    Decide whether a callable, factory or registration result is stream-wrapping.

    Objects exposing type_names and shape (CompiledFactory, ArtifactMeta) are
    judged by their recorded signature. Bare callables need a shape and go
    through recover_signature().
    """
    type_names = getattr(subject, "type_names", None)
    recorded_shape = getattr(subject, "shape", None)
    if type_names is not None and isinstance(recorded_shape, Shape):
        return is_stream_signature(type_names, recorded_shape.arity)

    if shape is None:
        raise ValueError("A shape is required to inspect a bare callable")
    shape = Shape.parse(shape)
    names, found = recover_signature(subject, shape.arity)
    return found and is_stream_signature(names, shape.arity)


def recover_signature(target: Any, expected_arity: int) -> tuple[tuple[str, ...], bool]:
    """
    Recover the type names of a callable.

    Args:
        target: Callable to inspect
        expected_arity: Number of names the shape needs

    Returns:
        (type names, found); names are empty when nothing was found
    """
    declared = declared_type_names(target)
    if declared is not None and is_stream_signature(declared, expected_arity):
        return declared, True

    captured = captured_type_names(target)
    if captured is not None:
        return captured, True

    return (), False


def declared_type_names(target: Any) -> tuple[str, ...] | None:
    """Type names from the callable's own generic parameterization or annotations."""
    for base in getattr(type(target), "__orig_bases__", ()):
        if shape_of(base) is not None:
            return tuple(type_name(arg) for arg in typing.get_args(base))

    orig_class = getattr(target, "__orig_class__", None)
    if orig_class is not None:
        return tuple(type_name(arg) for arg in typing.get_args(orig_class))

    if inspect.isfunction(target) or inspect.ismethod(target):
        return _annotated_type_names(target)
    return None


def _annotated_type_names(function: Any) -> tuple[str, ...] | None:
    try:
        hints = typing.get_type_hints(function)
        parameters = inspect.signature(function).parameters.values()
    except (NameError, TypeError, ValueError) as e:
        logger.debug(f"[introspection] Cannot read annotations of {function!r}: {e}")
        return None

    names = []
    for parameter in parameters:
        if parameter.kind not in _POSITIONAL:
            continue
        if parameter.name not in hints:
            return None
        names.append(type_name(hints[parameter.name]))

    returned = hints.get("return")
    if returned is not None and returned is not type(None):
        names.append(type_name(returned))
    return tuple(names) or None


def captured_type_names(target: Any) -> tuple[str, ...] | None:
    """Type names from a serializable() capture descriptor, if present."""
    capture = getattr(target, "__capture__", None)
    if not isinstance(capture, CaptureDescriptor):
        return None
    return parse_impl_signature(capture.impl_signature)


def parse_impl_signature(signature: str) -> tuple[str, ...]:
    """
    Parse "(<param>;...)<return>;" into one name per parameter plus the return.

    >>> parse_impl_signature("(str;)int;")
    ('str', 'int')
    """
    params, _, returned = signature.partition(")")
    names = [name.strip() for name in params.lstrip("(").split(";") if name.strip()]
    returned = returned.strip().rstrip(";").strip()
    if returned:
        names.append(returned)
    return tuple(names)
