"""
Snippet Compiler.

Turns code snippets into loaded callables:

    SnippetSynthesizer -> CompilationUnit -> RuntimeCompiler -> CompilationResult
                                                   |
    ArchiveResolver -> ClasspathRoot[] ------------+--> FactoryLoader -> CompiledFactory

Usage:
    from funcompile.compiler import (
        ArchiveResolver,
        FactoryLoader,
        RuntimeCompiler,
        SnippetSynthesizer,
    )
    from funcompile.shapes import Shape

    roots = ArchiveResolver().resolve(["/opt/app.zip"])
    unit = SnippetSynthesizer().synthesize(
        "upper", Shape.TRANSFORM, "lambda v: v.upper()", "str", "str", classpath=roots
    )
    with RuntimeCompiler() as compiler:
        result = compiler.compile(unit)
    result.raise_for_failure()
    upper = FactoryLoader().load(result, unit.name, Shape.TRANSFORM, roots).target
"""

from .classpath import (
    ARCHIVE_SUFFIXES,
    CLASSES_PREFIX,
    LIB_PREFIX,
    ArchiveResolver,
    ClasspathReader,
    ClasspathRoot,
    ModuleSource,
    RootKind,
)
from .factory import CompiledFactory, FactoryLoader, FactoryMethod, find_factory_method
from .importer import ClasspathImporter
from .messages import CompilationMessage, Severity
from .result import CompilationResult, dump_code, load_code
from .runtime import RuntimeCompiler
from .synthesizer import DEFAULT_PACKAGE, SnippetSynthesizer, class_name_for, decode
from .unit import CompilationUnit

__all__ = [
    # Classpath
    "ARCHIVE_SUFFIXES",
    "CLASSES_PREFIX",
    "LIB_PREFIX",
    "ArchiveResolver",
    "ClasspathReader",
    "ClasspathRoot",
    "ModuleSource",
    "RootKind",
    "ClasspathImporter",
    # Synthesis
    "DEFAULT_PACKAGE",
    "SnippetSynthesizer",
    "CompilationUnit",
    "class_name_for",
    "decode",
    # Compilation
    "RuntimeCompiler",
    "CompilationMessage",
    "CompilationResult",
    "Severity",
    "dump_code",
    "load_code",
    # Loading
    "CompiledFactory",
    "FactoryLoader",
    "FactoryMethod",
    "find_factory_method",
]
