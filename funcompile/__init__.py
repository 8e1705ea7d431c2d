"""
funcompile - Dynamic Snippet Compiler and Function Registry

Compile small Python snippets into producers, transforms and sinks at
runtime, against a classpath of directories, archives and fat archives,
and keep them in a registry that survives restarts.

Architecture:
    ┌───────────────────────────────────────────────────────────┐
    │ FunctionRegistry  register / lookup / compose             │
    ├───────────────────────────────────────────────────────────┤
    │ SnippetSynthesizer → RuntimeCompiler → FactoryLoader      │
    ├───────────────────────────────────────────────────────────┤
    │ ArchiveResolver / ClasspathImporter  (nested archives)    │
    ├───────────────────────────────────────────────────────────┤
    │ FunctionStore  (memory, file system)                      │
    └───────────────────────────────────────────────────────────┘

Usage:
    from funcompile import FunctionRegistry, Shape

    with FunctionRegistry() as registry:
        registry.register("upper", Shape.TRANSFORM, "lambda v: v.upper()", "str", "str")
        registry.lookup("upper", Shape.TRANSFORM)("hello")   # "HELLO"
"""

__version__ = "0.1.0"

from .errors import (
    CompilationFailedError,
    CompositionError,
    FuncompileError,
    LoadError,
    ResolutionError,
    SynthesisError,
)
from .introspection import is_stream_wrapping, recover_signature
from .runtime import (
    ArtifactMeta,
    FileFunctionStore,
    FunctionRegistry,
    MemoryFunctionStore,
    RegistryBuilder,
)
from .shapes import Producer, Shape, Sink, Transform, serializable
from .streams import Publisher, Stream

__all__ = [
    # Errors
    "FuncompileError",
    "SynthesisError",
    "ResolutionError",
    "CompilationFailedError",
    "LoadError",
    "CompositionError",
    # Shapes
    "Shape",
    "Producer",
    "Transform",
    "Sink",
    "serializable",
    # Streams
    "Stream",
    "Publisher",
    # Introspection
    "is_stream_wrapping",
    "recover_signature",
    # Runtime
    "ArtifactMeta",
    "FunctionRegistry",
    "FileFunctionStore",
    "MemoryFunctionStore",
    "RegistryBuilder",
]
