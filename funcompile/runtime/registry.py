"""
Function Registry.

The single entry point for turning snippets into callables and finding
them again by name.

Flow:
    register(name, shape, code)
        1. Synthesize a compilation unit from the snippet
        2. Resolve the classpath (fat archives expanded)
        3. Compile, failing with the compiler's diagnostics
        4. Load the factory and obtain the callable
        5. Persist the artifact bytes in the store
        6. Replace the cached entry

    lookup(name, shape)
        1. Check the cache
        2. On miss, load persisted bytes from the store
        3. Cache for future lookups

Caching:
    Entries never expire. re-registration replaces an entry, unregister()
    removes it. Reads are plain dictionary reads; writes happen under a
    lock. A store write and its cache swap happen as one step, so racing
    register() calls resolve last-writer-wins in both places; racing lookups
    that both load from the store resolve first-writer-wins. Whichever
    factory is displaced or loses is closed.

Usage:
    registry = FunctionRegistry(FileFunctionStore("/tmp/function-registry"))

    registry.register("upper", Shape.TRANSFORM, "lambda v: v.upper()", "str", "str")
    registry.lookup("upper", Shape.TRANSFORM)("hello")   # "HELLO"

    registry.register("exclaim", Shape.TRANSFORM, "lambda v: v + '!'", "str", "str")
    registry.compose("upper", "exclaim")("hello")         # "HELLO!"
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

from funcompile.compiler import (
    ArchiveResolver,
    ClasspathRoot,
    CompilationMessage,
    CompiledFactory,
    FactoryLoader,
    RuntimeCompiler,
    SnippetSynthesizer,
)
from funcompile.errors import CompilationFailedError, CompositionError
from funcompile.shapes import Shape

from .stores import FunctionStore, MemoryFunctionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArtifactMeta:
    """
    Public result of a registration.

    Attributes:
        name: Function name it was registered under
        shape: Producer, transform or sink
        class_name: Qualified name of the factory artifact
        input_type: Declared input type name, when recoverable
        output_type: Declared output type name, when recoverable
        type_names: Full recovered signature
        stream_wrapping: Whether the callable processes whole streams
        data: Top-level artifact bytes, as persisted
        messages: Non-error diagnostics of the compilation
    """

    name: str
    shape: Shape
    class_name: str
    input_type: str | None
    output_type: str | None
    type_names: tuple[str, ...]
    stream_wrapping: bool
    data: bytes
    messages: tuple[CompilationMessage, ...] = ()

    @classmethod
    def from_factory(
        cls,
        name: str,
        factory: CompiledFactory,
        messages: Iterable[CompilationMessage] = (),
    ) -> ArtifactMeta:
        return cls(
            name=name,
            shape=factory.shape,
            class_name=factory.name,
            input_type=factory.input_type,
            output_type=factory.output_type,
            type_names=factory.type_names,
            stream_wrapping=factory.is_stream_wrapping(),
            data=factory.data,
            messages=tuple(messages),
        )

    def is_stream_wrapping(self) -> bool:
        return self.stream_wrapping


class FunctionRegistry:
    """
    Compiles, caches and persists functions by (name, shape).

    A registry owns the compiler it creates; close() it (or use it as a
    context manager) to release the compiler's threads and the archive
    handles of every cached factory.
    """

    def __init__(
        self,
        store: FunctionStore | None = None,
        *,
        classpath: Sequence[ClasspathRoot | str | Path] = (),
        resolver: ArchiveResolver | None = None,
        synthesizer: SnippetSynthesizer | None = None,
        compiler: RuntimeCompiler | None = None,
        loader: FactoryLoader | None = None,
        compile_timeout: float | None = None,
        max_workers: int | None = None,
    ):
        """
        Initialize registry.

        Args:
            store: Backing store for artifact bytes (in-memory if None)
            classpath: Directories and archives snippets compile against
            resolver: Expands the classpath
            synthesizer: Renders compilation units
            compiler: Compiles units (owned by the registry if None)
            loader: Loads compiled artifacts
            compile_timeout: Seconds a single compilation may take
            max_workers: Thread pool size of an owned compiler
        """
        # Explicit None check: an empty store is falsy
        self._store = store if store is not None else MemoryFunctionStore()
        self._classpath = tuple(classpath)
        self._resolver = resolver or ArchiveResolver()
        self._synthesizer = synthesizer or SnippetSynthesizer()
        self._owns_compiler = compiler is None
        self._compiler = compiler or RuntimeCompiler(resolver=self._resolver, max_workers=max_workers)
        self._loader = loader or FactoryLoader()
        self._compile_timeout = compile_timeout
        self._entries: dict[Shape, dict[str, CompiledFactory]] = {shape: {} for shape in Shape}
        self._lock = threading.Lock()
        # Held across a store write and the matching cache swap
        self._write_lock = threading.Lock()

    @property
    def store(self) -> FunctionStore:
        return self._store

    # =========================================================================
    # Registration
    # =========================================================================

    def register(self, name: str, shape: Shape | str, code: str, *type_params: str) -> ArtifactMeta:
        """
        Compile a snippet and register the resulting callable.

        Args:
            name: Function name
            shape: Producer, transform or sink
            code: Snippet in wire encoding
            *type_params: Declared type parameters (none, or the shape's arity)

        Returns:
            Metadata of the registered function

        Raises:
            SynthesisError: If the snippet cannot become a compilation unit
            ResolutionError: If a classpath archive cannot be read
            CompilationFailedError: If compilation reported errors
            LoadError: If the compiled factory fails to load
        """
        shape = Shape.parse(shape)
        roots = self._resolve_classpath()
        unit = self._synthesizer.synthesize(name, shape, code, *type_params, classpath=roots)

        result = self._compiler.compile(unit, timeout=self._compile_timeout)
        if not result.successful:
            logger.warning(
                f"[registry] Failed to compile {shape.value} '{name}' | errors={len(result.errors)}"
            )
            raise CompilationFailedError(unit.name, result.messages)
        for warning in result.warnings:
            logger.warning(f"[registry] {shape.value} '{name}': {warning.message}")

        factory = self._loader.load(result, unit.name, shape, roots)
        self._persist_and_replace(name, shape, factory)
        meta = ArtifactMeta.from_factory(name, factory, result.messages)
        logger.info(
            f"[registry] Registered {shape.value} '{name}' | "
            f"class={factory.name} | "
            f"types={list(meta.type_names)} | "
            f"stream_wrapping={meta.stream_wrapping}"
        )
        return meta

    def import_artifact(self, name: str, shape: Shape | str, data: bytes) -> ArtifactMeta:
        """
        Register precompiled artifact bytes under a name.

        Raises:
            LoadError: If the bytes are not a loadable factory artifact
        """
        shape = Shape.parse(shape)
        factory = self._loader.load_bytes(data, shape, self._resolve_classpath(), origin=name)
        self._persist_and_replace(name, shape, factory)
        logger.info(f"[registry] Imported {shape.value} '{name}' | class={factory.name}")
        return ArtifactMeta.from_factory(name, factory)

    def unregister(self, name: str, shape: Shape | str, *, purge: bool = False) -> bool:
        """
        Evict a cached entry.

        Args:
            name: Function name
            shape: Shape it was registered as
            purge: Also delete the persisted bytes

        Returns:
            Whether anything was removed
        """
        shape = Shape.parse(shape)
        with self._write_lock:
            with self._lock:
                factory = self._entries[shape].pop(name, None)
            removed = factory is not None
            if purge:
                removed = self._store.delete(name, shape) or removed
        if factory is not None:
            factory.close()

        if removed:
            logger.info(f"[registry] Unregistered {shape.value} '{name}' | purge={purge}")
        return removed

    # =========================================================================
    # Lookup
    # =========================================================================

    def lookup(self, name: str, shape: Shape | str) -> Callable[..., Any] | None:
        """
        Find a registered callable.

        Returns:
            The callable, or None if nothing is cached or stored under the name
        """
        factory = self.get_factory(name, shape)
        return factory.target if factory is not None else None

    def get_factory(self, name: str, shape: Shape | str) -> CompiledFactory | None:
        """Like lookup(), but returns the loaded factory with its metadata."""
        shape = Shape.parse(shape)

        factory = self._entries[shape].get(name)
        if factory is not None:
            logger.debug(f"[registry] Cache hit: {shape.value} '{name}'")
            return factory

        data = self._store.load(name, shape)
        if data is None:
            logger.debug(f"[registry] Not found: {shape.value} '{name}'")
            return None

        logger.info(f"[registry] Loading persisted {shape.value} '{name}'")
        factory = self._loader.load_bytes(data, shape, self._resolve_classpath(), origin=name)
        return self._insert_if_absent(name, shape, factory)

    def compose(self, *names: str) -> Callable[[Any], Any]:
        """
        Chain transforms left to right.

        Raises:
            CompositionError: If fewer than two names are given or a name is
                not a registered transform
        """
        if len(names) < 2:
            raise CompositionError("compose() needs at least two transform names")

        functions = []
        for name in names:
            target = self.lookup(name, Shape.TRANSFORM)
            if target is None:
                raise CompositionError(f"No transform registered under '{name}'")
            functions.append(target)

        def composed(value: Any) -> Any:
            for function in functions:
                value = function(value)
            return value

        composed.__name__ = "|".join(names)
        return composed

    def names(self, shape: Shape | str) -> list[str]:
        """Names cached or stored for a shape, sorted."""
        shape = Shape.parse(shape)
        return sorted(set(self._entries[shape]) | set(self._store.names(shape)))

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Close every cached factory and the owned compiler."""
        with self._lock:
            factories = [factory for entries in self._entries.values() for factory in entries.values()]
            for entries in self._entries.values():
                entries.clear()
        for factory in factories:
            factory.close()
        if self._owns_compiler:
            self._compiler.close()

    def __enter__(self) -> FunctionRegistry:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())

    def _resolve_classpath(self) -> list[ClasspathRoot]:
        return self._resolver.resolve(self._classpath)

    def _persist_and_replace(self, name: str, shape: Shape, factory: CompiledFactory) -> None:
        with self._write_lock:
            try:
                self._store.save(name, shape, factory.data)
            except BaseException:
                factory.close()
                raise
            self._replace(name, shape, factory)

    def _replace(self, name: str, shape: Shape, factory: CompiledFactory) -> None:
        with self._lock:
            previous = self._entries[shape].get(name)
            self._entries[shape][name] = factory
        if previous is not None and previous is not factory:
            previous.close()

    def _insert_if_absent(self, name: str, shape: Shape, factory: CompiledFactory) -> CompiledFactory:
        with self._lock:
            current = self._entries[shape].get(name)
            if current is None:
                self._entries[shape][name] = factory
                return factory
        logger.debug(f"[registry] Discarding duplicate load of {shape.value} '{name}'")
        factory.close()
        return current
