"""
Artifact Loader and Factory Wrapper.

Loads compiled artifact bytes, runs the generated module in a private
namespace, instantiates the factory and obtains the callable it builds.

The factory method is located by name (get_result) and by its declared
return annotation, which must be one of the shape protocols. Its type
arguments are the recovered signature of the callable:

    def get_result(self) -> Transform[Stream[str], Stream[str]]:
        ...

    factory.type_names
    # ("funcompile.streams.Stream[str]", "funcompile.streams.Stream[str]")
"""

from __future__ import annotations

import logging
import threading
import typing
from dataclasses import dataclass
from types import CodeType
from typing import Any, Callable, Sequence

from funcompile.compiler.classpath import ClasspathRoot
from funcompile.compiler.importer import ClasspathImporter
from funcompile.compiler.result import CompilationResult, artifact_name_of, load_code
from funcompile.errors import LoadError
from funcompile.introspection import is_stream_signature
from funcompile.shapes import Shape, shape_of, type_name

logger = logging.getLogger(__name__)

ENTRY_POINT = "get_result"


@dataclass(frozen=True)
class FactoryMethod:
    """The factory's entry point and what it declares to return."""

    name: str
    function: Callable[..., Any]
    declared: Any
    shape: Shape
    type_names: tuple[str, ...]


def find_factory_method(factory_class: type) -> FactoryMethod | None:
    """
    Locate the entry point of a factory class.

    Returns None when the class has no get_result() whose return annotation
    is a Producer, Transform or Sink type.
    """
    for attr_name, member in vars(factory_class).items():
        if attr_name != ENTRY_POINT or not callable(member):
            continue
        try:
            hints = typing.get_type_hints(member)
        except (NameError, TypeError) as e:
            logger.debug(f"[factory] Unresolvable annotations on {factory_class.__name__}: {e}")
            return None
        declared = hints.get("return")
        shape = shape_of(declared)
        if shape is None:
            continue
        names = tuple(type_name(arg) for arg in typing.get_args(declared))
        return FactoryMethod(attr_name, member, declared, shape, names)
    return None


class CompiledFactory:
    """
    A loaded factory and the callable it produced.

    Owns the importer that served the factory's imports; close() releases
    its archive handles. The callable stays usable after close().
    """

    def __init__(
        self,
        *,
        name: str,
        shape: Shape,
        target: Callable[..., Any],
        factory: Any,
        factory_method: FactoryMethod | None,
        data: bytes,
        importer: ClasspathImporter,
    ):
        self._name = name
        self._shape = shape
        self._target = target
        self._factory = factory
        self._factory_method = factory_method
        self._data = data
        self._importer = importer
        self._closed = False
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        """Qualified artifact name."""
        return self._name

    @property
    def shape(self) -> Shape:
        return self._shape

    @property
    def target(self) -> Callable[..., Any]:
        return self._target

    @property
    def factory(self) -> Any:
        return self._factory

    @property
    def factory_method(self) -> FactoryMethod | None:
        return self._factory_method

    @property
    def data(self) -> bytes:
        return self._data

    @property
    def type_names(self) -> tuple[str, ...]:
        if self._factory_method is None:
            return ()
        return self._factory_method.type_names

    @property
    def input_type(self) -> str | None:
        if self._shape is Shape.PRODUCER or not self.type_names:
            return None
        return self.type_names[0]

    @property
    def output_type(self) -> str | None:
        if self._shape is Shape.SINK or not self.type_names:
            return None
        return self.type_names[-1]

    @property
    def closed(self) -> bool:
        return self._closed

    def is_stream_wrapping(self) -> bool:
        return is_stream_signature(self.type_names, self._shape.arity)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._importer.close()

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self._target(*args, **kwargs)

    def __repr__(self) -> str:
        return f"CompiledFactory(name={self._name!r}, shape={self._shape.value})"


class FactoryLoader:
    """
    Turns artifact bytes into CompiledFactory instances.

    Usage:
        loader = FactoryLoader()
        factory = loader.load(result, unit.name, Shape.TRANSFORM, roots)
        factory.target("hello")
    """

    def load(
        self,
        result: CompilationResult,
        target_name: str,
        shape: Shape,
        classpath: Sequence[ClasspathRoot] = (),
    ) -> CompiledFactory:
        """
        Load one artifact of a compilation result.

        Args:
            result: Successful compilation result
            target_name: Qualified name of the factory artifact
            shape: Shape the factory is expected to produce
            classpath: Roots the factory's imports are served from

        Returns:
            The loaded factory

        Raises:
            LoadError: If the artifact is missing or fails to load
        """
        data = result.get_bytes(target_name)
        if data is None:
            raise LoadError(target_name, "no compiled artifact with that name")
        return self._load(data, self._decode(target_name, data), target_name, shape, classpath)

    def load_bytes(
        self,
        data: bytes,
        shape: Shape,
        classpath: Sequence[ClasspathRoot] = (),
        *,
        origin: str = "<bytes>",
    ) -> CompiledFactory:
        """
        Load persisted or imported artifact bytes.

        The factory's qualified name is read from the artifact itself.

        Raises:
            LoadError: If the bytes are not a loadable factory artifact
        """
        code = self._decode(origin, data)
        return self._load(data, code, artifact_name_of(code), shape, classpath)

    def _decode(self, name: str, data: bytes) -> CodeType:
        try:
            return load_code(data)
        except ValueError as e:
            raise LoadError(name, str(e)) from e

    def _load(
        self,
        data: bytes,
        code: CodeType,
        target_name: str,
        shape: Shape,
        classpath: Sequence[ClasspathRoot],
    ) -> CompiledFactory:
        package, _, class_name = target_name.rpartition(".")
        importer = ClasspathImporter(classpath)
        module = importer.new_module(package or class_name, file=code.co_filename)

        try:
            exec(code, module.__dict__)
            factory_class = module.__dict__.get(class_name)
            if not isinstance(factory_class, type):
                raise LoadError(target_name, f"artifact does not define class {class_name}")

            method = find_factory_method(factory_class)
            if method is not None and method.shape is not shape:
                raise LoadError(
                    target_name,
                    f"factory produces a {method.shape.value}, expected a {shape.value}",
                )

            factory = factory_class()
            target = getattr(factory, ENTRY_POINT)()
        except LoadError:
            importer.close()
            raise
        except Exception as e:
            importer.close()
            logger.error(f"[factory] Failed to load {target_name}: {e}", exc_info=True)
            raise LoadError(target_name, f"{type(e).__name__}: {e}") from e

        if not callable(target):
            importer.close()
            raise LoadError(target_name, f"{ENTRY_POINT}() returned {type(target).__name__}, not a callable")

        logger.debug(f"[factory] Loaded {target_name} | shape={shape.value}")
        return CompiledFactory(
            name=target_name,
            shape=shape,
            target=target,
            factory=factory,
            factory_method=method,
            data=data,
            importer=importer,
        )
