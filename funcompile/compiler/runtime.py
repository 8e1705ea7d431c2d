"""
Runtime Compiler.

Compiles a CompilationUnit with the interpreter's built-in compiler and
reports the outcome as a CompilationResult. The generated module is never
executed here: the compiler only parses, compiles and checks the unit.

Checks, in order:
    1. Syntax (SyntaxError becomes an error diagnostic with position; a
       unit nested too deeply for the parser becomes a plain error)
    2. Compiler warnings (captured as warning diagnostics)
    3. Absolute imports resolve on the classpath or in the host interpreter
    4. The unit defines a top-level class named after the unit

On success every class produced by the compilation becomes an artifact:
the unit name maps to the module code, and each helper class declared in
the snippet maps <package>.<qualname> to its class-body code.

Design Principle:
    Compilation is idempotent and safe to call concurrently for distinct
    units. Work runs on an owned thread pool so callers can bound it with a
    timeout; an expired timeout is reported as a failure, not raised.

Usage:
    compiler = RuntimeCompiler()
    result = compiler.compile(unit, timeout=30)
    if result.successful:
        data = result.get_bytes(unit.name)
"""

from __future__ import annotations

import ast
import logging
import threading
import warnings
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from types import CodeType
from typing import Iterable, Iterator

from funcompile.compiler.classpath import ArchiveResolver, ClasspathReader
from funcompile.compiler.importer import host_provides
from funcompile.compiler.messages import CompilationMessage
from funcompile.compiler.result import CompilationResult, dump_code
from funcompile.compiler.unit import CompilationUnit

logger = logging.getLogger(__name__)

# warnings.catch_warnings mutates process-wide state
_WARNINGS_LOCK = threading.Lock()


class RuntimeCompiler:
    """
    Compiles units against a resolved classpath.

    Owns a thread pool; call close() (or use as a context manager) to shut
    it down.
    """

    def __init__(
        self,
        *,
        resolver: ArchiveResolver | None = None,
        max_workers: int | None = None,
        optimize: int = -1,
    ):
        """
        Initialize compiler.

        Args:
            resolver: Resolves extra dependencies passed to compile()
            max_workers: Size of the compile thread pool
            optimize: Optimization level passed to compile()
        """
        self._resolver = resolver or ArchiveResolver()
        self._optimize = optimize
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="funcompile")

    def compile(
        self,
        unit: CompilationUnit,
        *,
        dependencies: Iterable[str] = (),
        timeout: float | None = None,
    ) -> CompilationResult:
        """
        Compile a unit.

        Args:
            unit: Unit to compile
            dependencies: Extra classpath entries as paths or file: URIs
            timeout: Seconds to wait before reporting a timeout failure

        Returns:
            Success with artifacts, or failure with diagnostics

        Raises:
            ResolutionError: If a classpath archive cannot be read
        """
        logger.info(f"[compiler] Compiling {unit.name} | classpath={len(unit.classpath)} roots")

        future = self._executor.submit(self._compile, unit, tuple(dependencies))
        try:
            result = future.result(timeout=timeout)
        except FuturesTimeoutError:
            future.cancel()
            logger.warning(f"[compiler] Compilation of {unit.name} timed out after {timeout}s")
            return CompilationResult.failed(
                unit.name,
                [CompilationMessage.error(f"compilation timed out after {timeout}s")],
            )

        if result.successful:
            logger.info(
                f"[compiler] Compiled {unit.name} | "
                f"artifacts={len(result.artifacts)} | warnings={len(result.warnings)}"
            )
        else:
            logger.info(f"[compiler] Compilation of {unit.name} failed | errors={len(result.errors)}")
        return result

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> RuntimeCompiler:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # =========================================================================
    # Compilation Steps
    # =========================================================================

    def _compile(self, unit: CompilationUnit, dependencies: tuple[str, ...]) -> CompilationResult:
        messages: list[CompilationMessage] = []
        roots = list(unit.classpath)

        if dependencies:
            extra, problems = self._resolver.resolve_dependencies(dependencies)
            roots.extend(extra)
            messages.extend(problems)

        tree, code, diagnostics = self._translate(unit)
        messages.extend(diagnostics)
        if code is None:
            return CompilationResult.failed(unit.name, messages)

        with ClasspathReader(roots) as reader:
            messages.extend(_check_imports(tree, unit.source, reader))
        messages.extend(_check_entry_class(tree, unit))

        if any(message.is_error for message in messages):
            return CompilationResult.failed(unit.name, messages)
        return CompilationResult.succeeded(unit.name, collect_artifacts(unit, code, tree), messages)

    def _translate(
        self,
        unit: CompilationUnit,
    ) -> tuple[ast.Module | None, CodeType | None, list[CompilationMessage]]:
        messages: list[CompilationMessage] = []
        tree = code = None

        with _WARNINGS_LOCK, warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                tree = ast.parse(unit.source, unit.filename)
                code = compile(
                    tree,
                    unit.filename,
                    "exec",
                    dont_inherit=True,
                    optimize=self._optimize,
                )
            except SyntaxError as e:
                messages.append(CompilationMessage.from_syntax_error(e, unit.source))
            except (MemoryError, RecursionError, ValueError) as e:
                # Nesting too deep for the parser, or source it refuses outright
                detail = str(e) or "source too deeply nested to compile"
                messages.append(CompilationMessage.error(f"{type(e).__name__}: {detail}", unit.source))

        # The warnings filter is process-wide; keep only what this unit raised
        warning_messages = [
            CompilationMessage.from_warning(w, unit.source) for w in caught if w.filename == unit.filename
        ]
        return tree, code, warning_messages + messages


# =============================================================================
# Checks
# =============================================================================


def _check_imports(
    tree: ast.Module,
    source: str,
    reader: ClasspathReader,
) -> list[CompilationMessage]:
    messages = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            names = [alias.name for alias in node.names]
        elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
            names = [node.module]
        else:
            continue

        for name in names:
            if _is_available(name, reader):
                continue
            end_column = node.end_col_offset + 1 if node.end_lineno == node.lineno else None
            messages.append(
                CompilationMessage.error(
                    f"cannot find module '{name}'",
                    source,
                    line=node.lineno,
                    column=node.col_offset + 1,
                    end_column=end_column,
                )
            )
    return messages


def _is_available(name: str, reader: ClasspathReader) -> bool:
    top_level = name.partition(".")[0]
    if host_provides(top_level):
        return True
    return reader.find_module(name) is not None


def _check_entry_class(tree: ast.Module, unit: CompilationUnit) -> list[CompilationMessage]:
    short_name = unit.short_name
    for node in tree.body:
        if isinstance(node, ast.ClassDef) and node.name == short_name:
            return []
    return [
        CompilationMessage.error(
            f"compilation unit '{unit.name}' does not define class '{short_name}'",
            unit.source,
        )
    ]


# =============================================================================
# Artifacts
# =============================================================================


def collect_artifacts(unit: CompilationUnit, code: CodeType, tree: ast.Module) -> dict[str, bytes]:
    """Map every class produced by the compilation to its bytes."""
    artifacts = {unit.name: dump_code(code)}
    class_names = _class_qualnames(tree)

    for nested in _iter_code(code):
        qualname = nested.co_qualname
        if qualname not in class_names or qualname == unit.short_name:
            continue
        key = f"{unit.package}.{qualname}" if unit.package else qualname
        artifacts.setdefault(key, dump_code(nested))
    return artifacts


def _iter_code(code: CodeType) -> Iterator[CodeType]:
    for const in code.co_consts:
        if isinstance(const, CodeType):
            yield const
            yield from _iter_code(const)


def _class_qualnames(tree: ast.AST) -> set[str]:
    names: set[str] = set()

    def visit(node: ast.AST, prefix: str) -> None:
        for child in ast.iter_child_nodes(node):
            if isinstance(child, ast.ClassDef):
                qualname = f"{prefix}{child.name}"
                names.add(qualname)
                visit(child, f"{qualname}.")
            elif isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef)):
                visit(child, f"{prefix}{child.name}.<locals>.")
            else:
                visit(child, prefix)

    visit(tree, "")
    return names
