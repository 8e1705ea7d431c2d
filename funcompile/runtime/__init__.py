"""
funcompile Runtime Layer.

Connects the snippet compiler to named, persisted functions:
- Artifact storage (FileFunctionStore, MemoryFunctionStore)
- Registration and lookup (FunctionRegistry)
- Declarative bootstrap (RegistryBuilder)

Design Principle:
    "Compile once, look up many times."

    1. A snippet is registered under a name and shape
    2. The compiled artifact is persisted in the store
    3. Lookups hit the cache, or reload the artifact from the store
    4. A restarted process finds its functions without recompiling

Usage:
    registry = FunctionRegistry(FileFunctionStore("/tmp/function-registry"))
    registry.register("upper", Shape.TRANSFORM, "lambda v: v.upper()", "str", "str")

    upper = registry.lookup("upper", Shape.TRANSFORM)
"""

from .builder import RegistryBuilder
from .registry import ArtifactMeta, FunctionRegistry
from .stores import (
    DEFAULT_REGISTRY_DIR,
    FileFunctionStore,
    FunctionStore,
    MemoryFunctionStore,
)

__all__ = [
    "ArtifactMeta",
    "DEFAULT_REGISTRY_DIR",
    "FileFunctionStore",
    "FunctionRegistry",
    "FunctionStore",
    "MemoryFunctionStore",
    "RegistryBuilder",
]
