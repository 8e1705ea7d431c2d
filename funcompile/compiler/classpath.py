"""
Classpath Resolution.

Flattens the roots a snippet compiles against into a list of places that
can serve module source: plain directories, zip archives, and the nested
roots of "fat" archives.

A fat archive keeps its own modules under classes/ and its dependencies as
further archives under lib/:

    app.zip
    ├── classes/
    │   └── greetings.py
    └── lib/
        ├── util.zip
        └── extras.whl

Resolving app.zip yields, in order:

    app.zip                      (archive)
    app.zip!classes/             (nested, prefix "classes/")
    app.zip!lib/util.zip         (nested, read in memory)
    app.zip!lib/extras.whl       (nested, read in memory)

Nested archives are never unpacked to disk and nesting is followed one
level only. First match wins when a module name is ambiguous.

Usage:
    resolver = ArchiveResolver()
    roots = resolver.resolve(["/opt/lib", "/opt/app.zip"])

    with ClasspathReader(roots) as reader:
        found = reader.find_module("greetings")
"""

from __future__ import annotations

import io
import logging
import sys
import threading
import zipfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Sequence
from urllib.parse import urlparse
from urllib.request import url2pathname

from funcompile.compiler.messages import CompilationMessage
from funcompile.errors import ResolutionError

logger = logging.getLogger(__name__)

CLASSES_PREFIX = "classes/"
LIB_PREFIX = "lib/"
ARCHIVE_SUFFIXES = (".zip", ".whl", ".pyz", ".jar")
NESTED_SEPARATOR = "!"

_ARCHIVE_ERRORS = (OSError, zipfile.BadZipFile, zipfile.LargeZipFile)


class RootKind(str, Enum):
    DIRECTORY = "directory"
    ARCHIVE = "archive"
    FAT_ARCHIVE = "fat-archive"
    NESTED = "nested"


@dataclass(frozen=True)
class ClasspathRoot:
    """
    One place modules can be read from.

    Attributes:
        location: Filesystem path of the directory or outermost archive
        kind: What the location is
        prefix: Directory inside the archive that holds modules (nested roots)
        entry: Archive entry holding a nested archive (nested library roots)
    """

    location: str
    kind: RootKind = RootKind.DIRECTORY
    prefix: str = ""
    entry: str | None = None

    @property
    def locator(self) -> str:
        """Composite address, e.g. 'app.zip!lib/util.zip'."""
        if self.entry is not None:
            return f"{self.location}{NESTED_SEPARATOR}{self.entry}"
        if self.prefix:
            return f"{self.location}{NESTED_SEPARATOR}{self.prefix}"
        return self.location

    @property
    def is_archive(self) -> bool:
        return self.kind is not RootKind.DIRECTORY

    def __str__(self) -> str:
        return self.locator


@dataclass(frozen=True)
class ModuleSource:
    """Source of one module found on the classpath."""

    name: str
    source: bytes
    origin: str
    is_package: bool
    root: ClasspathRoot


# =============================================================================
# Resolver
# =============================================================================


class ArchiveResolver:
    """
    Expands classpath entries into readable roots.

    Missing entries are skipped. An archive that exists but cannot be read,
    or a nested library that is not a valid archive, raises ResolutionError
    and nothing is returned for the whole request.
    """

    def __init__(
        self,
        *,
        classes_prefix: str = CLASSES_PREFIX,
        lib_prefix: str = LIB_PREFIX,
        archive_suffixes: Sequence[str] = ARCHIVE_SUFFIXES,
    ):
        self._classes_prefix = _as_prefix(classes_prefix)
        self._lib_prefix = _as_prefix(lib_prefix)
        self._archive_suffixes = tuple(archive_suffixes)

    @classmethod
    def from_sys_path(cls, **kwargs: object) -> tuple[ArchiveResolver, list[ClasspathRoot]]:
        """Resolver plus the host interpreter's sys.path, resolved."""
        resolver = cls(**kwargs)
        entries = [entry for entry in sys.path if entry]
        return resolver, resolver.resolve(entries)

    def resolve(self, entries: Iterable[ClasspathRoot | str | Path]) -> list[ClasspathRoot]:
        """
        Flatten classpath entries into roots.

        Args:
            entries: Paths or roots, in search order

        Returns:
            Resolved roots, outer roots before the roots nested in them

        Raises:
            ResolutionError: If an archive cannot be read
        """
        resolved: list[ClasspathRoot] = []
        seen: set[str] = set()

        for entry in entries:
            if isinstance(entry, ClasspathRoot) and entry.kind is RootKind.NESTED:
                # Already expanded
                if entry.locator not in seen:
                    seen.add(entry.locator)
                    resolved.append(entry)
                continue

            location = entry.location if isinstance(entry, ClasspathRoot) else str(entry)
            if location in seen:
                continue
            seen.add(location)

            path = Path(location)
            if not path.exists():
                logger.debug(f"[classpath] Skipping missing entry: {location}")
                continue

            if path.is_dir():
                resolved.append(ClasspathRoot(location, RootKind.DIRECTORY))
                continue

            expanded = self._expand_archive(path)
            seen.update(root.locator for root in expanded)
            resolved.extend(expanded)

        logger.debug(f"[classpath] Resolved {len(resolved)} roots")
        return resolved

    def resolve_dependencies(
        self,
        dependencies: Iterable[str],
    ) -> tuple[list[ClasspathRoot], list[CompilationMessage]]:
        """
        Resolve extra dependency strings.

        Accepts plain paths and file: URIs. Anything else is reported as an
        error diagnostic instead of being fetched.

        Returns:
            (resolved roots, diagnostics for unrecognized dependencies)
        """
        paths: list[str] = []
        messages: list[CompilationMessage] = []

        for dependency in dependencies:
            parsed = urlparse(dependency)
            if parsed.scheme == "file":
                paths.append(url2pathname(parsed.path))
            elif parsed.scheme == "" or _is_drive_letter(parsed.scheme):
                paths.append(dependency)
            else:
                messages.append(CompilationMessage.error(f"Unrecognized dependency: {dependency}"))

        return self.resolve(paths), messages

    def _expand_archive(self, path: Path) -> list[ClasspathRoot]:
        location = str(path)
        try:
            with zipfile.ZipFile(path) as archive:
                names = archive.namelist()
                has_classes = any(name.startswith(self._classes_prefix) for name in names)
                libraries = [
                    name
                    for name in names
                    if name.startswith(self._lib_prefix)
                    and name.endswith(self._archive_suffixes)
                    and not name.endswith("/")
                ]
                for name in libraries:
                    self._validate_nested(archive, location, name)
        except ResolutionError:
            raise
        except _ARCHIVE_ERRORS as e:
            raise ResolutionError(location, f"cannot read archive: {e}") from e

        if not has_classes and not libraries:
            return [ClasspathRoot(location, RootKind.ARCHIVE)]

        logger.debug(
            f"[classpath] Expanding fat archive {location} | "
            f"classes={has_classes} | libraries={len(libraries)}"
        )
        roots = [ClasspathRoot(location, RootKind.FAT_ARCHIVE)]
        if has_classes:
            roots.append(ClasspathRoot(location, RootKind.NESTED, prefix=self._classes_prefix))
        roots.extend(ClasspathRoot(location, RootKind.NESTED, entry=name) for name in libraries)
        return roots

    def _validate_nested(self, archive: zipfile.ZipFile, location: str, name: str) -> None:
        locator = f"{location}{NESTED_SEPARATOR}{name}"
        try:
            data = archive.read(name)
            with zipfile.ZipFile(io.BytesIO(data)) as nested:
                bad = nested.testzip()
        except _ARCHIVE_ERRORS as e:
            raise ResolutionError(locator, f"invalid nested archive: {e}") from e
        if bad is not None:
            raise ResolutionError(locator, f"corrupt entry {bad}")
        logger.debug(f"[classpath] Opened nested archive {locator}")


def _as_prefix(prefix: str) -> str:
    prefix = prefix.strip("/")
    return f"{prefix}/" if prefix else ""


def _is_drive_letter(scheme: str) -> bool:
    return len(scheme) == 1 and scheme.isalpha()


# =============================================================================
# Reader
# =============================================================================


class ClasspathReader:
    """
    Reads module source from resolved roots.

    Archive handles are opened on first use and kept until close(). A
    closed reader reopens handles on demand, so it can be reused.

    Raises ResolutionError if an archive that resolved earlier can no
    longer be read.
    """

    def __init__(self, roots: Sequence[ClasspathRoot]):
        self._roots = tuple(roots)
        self._archives: dict[str, zipfile.ZipFile] = {}
        self._lock = threading.RLock()

    @property
    def roots(self) -> tuple[ClasspathRoot, ...]:
        return self._roots

    def find_module(self, fullname: str) -> ModuleSource | None:
        """
        Find a module by dotted name.

        Packages (a/b/__init__.py) take precedence over modules (a/b.py)
        within one root; earlier roots take precedence over later ones.
        """
        relative = fullname.replace(".", "/")
        candidates = ((f"{relative}/__init__.py", True), (f"{relative}.py", False))

        for root in self._roots:
            for path, is_package in candidates:
                data = self._read(root, path)
                if data is not None:
                    if root.is_archive:
                        origin = f"{root.locator.rstrip('/')}/{path}"
                    else:
                        origin = str(Path(root.location) / path)
                    return ModuleSource(fullname, data, origin, is_package, root)
        return None

    def close(self) -> None:
        with self._lock:
            archives = list(self._archives.values())
            self._archives.clear()
        for archive in archives:
            archive.close()

    def __enter__(self) -> ClasspathReader:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _read(self, root: ClasspathRoot, path: str) -> bytes | None:
        if root.kind is RootKind.DIRECTORY:
            file = Path(root.location) / path
            return file.read_bytes() if file.is_file() else None

        archive = self._archive_for(root)
        try:
            return archive.read(root.prefix + path)
        except KeyError:
            return None
        except _ARCHIVE_ERRORS as e:
            raise ResolutionError(root.locator, f"cannot read {path}: {e}") from e

    def _archive_for(self, root: ClasspathRoot) -> zipfile.ZipFile:
        key = root.location if root.entry is None else root.locator
        with self._lock:
            archive = self._archives.get(key)
            if archive is not None:
                return archive
            try:
                if root.entry is None:
                    archive = zipfile.ZipFile(root.location)
                else:
                    outer = self._archive_for(ClasspathRoot(root.location, RootKind.ARCHIVE))
                    archive = zipfile.ZipFile(io.BytesIO(outer.read(root.entry)))
            except ResolutionError:
                raise
            except (KeyError, *_ARCHIVE_ERRORS) as e:
                raise ResolutionError(root.locator, f"cannot open archive: {e}") from e
            self._archives[key] = archive
            return archive
