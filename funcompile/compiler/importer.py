"""
Classpath Importer.

Generated code imports through a ClasspathImporter instead of the host
interpreter's import system, so modules living in directories, archives
or nested archives of the classpath become importable without touching
sys.path or sys.modules.

Delegation is parent-first by top-level name: if the host interpreter can
import the top-level package of an import, the import goes to the host
unchanged; otherwise the whole package is served from the classpath.

Modules loaded from the classpath are cached per importer and share the
importer's builtins, so their own imports are routed the same way.
"""

from __future__ import annotations

import builtins
import importlib.util
import logging
import sys
import threading
from types import ModuleType
from typing import Any, Mapping, Sequence

from funcompile.compiler.classpath import ClasspathReader, ClasspathRoot

logger = logging.getLogger(__name__)


class ClasspathImporter:
    """
    Serves imports for generated code from classpath roots.

    Usage:
        importer = ClasspathImporter(roots)
        module = importer.new_module("funcompile.generated")
        exec(code, module.__dict__)   # imports inside code use the classpath
        importer.close()
    """

    def __init__(self, classpath: Sequence[ClasspathRoot] = ()):
        self._reader = ClasspathReader(classpath)
        self._modules: dict[str, ModuleType] = {}
        self._provided: dict[str, bool] = {}
        self._lock = threading.RLock()
        self._builtins = dict(vars(builtins))
        self._builtins["__import__"] = self.import_module

    @property
    def classpath(self) -> tuple[ClasspathRoot, ...]:
        return self._reader.roots

    @property
    def builtins(self) -> dict[str, Any]:
        return self._builtins

    @property
    def modules(self) -> Mapping[str, ModuleType]:
        return dict(self._modules)

    def new_module(self, name: str, *, file: str | None = None) -> ModuleType:
        """Create an unregistered module whose imports go through this importer."""
        module = ModuleType(name)
        module.__dict__["__builtins__"] = self._builtins
        if file is not None:
            module.__file__ = file
        return module

    def provides(self, top_level: str) -> bool:
        """Whether a top-level module or package is served from the classpath."""
        provided = self._provided.get(top_level)
        if provided is None:
            provided = not host_provides(top_level) and self._reader.find_module(top_level) is not None
            self._provided[top_level] = provided
        return provided

    def import_module(
        self,
        name: str,
        globals: Mapping[str, Any] | None = None,
        locals: Mapping[str, Any] | None = None,
        fromlist: Sequence[str] | None = (),
        level: int = 0,
    ) -> ModuleType:
        """Drop-in replacement for builtins.__import__."""
        if level > 0:
            package = (globals or {}).get("__package__") or ""
            fullname = importlib.util.resolve_name("." * level + name, package)
        else:
            fullname = name

        top_level = fullname.partition(".")[0]
        if not self.provides(top_level):
            return builtins.__import__(name, globals, locals, fromlist, level)

        module = self._load_chain(fullname)

        if fromlist:
            if hasattr(module, "__path__"):
                for item in fromlist:
                    if item != "*" and not hasattr(module, item):
                        self._try_load(f"{module.__name__}.{item}")
            return module
        return self._modules[top_level]

    def close(self) -> None:
        """Release archive handles. Loaded modules stay usable."""
        self._reader.close()

    # =========================================================================
    # Loading
    # =========================================================================

    def _load_chain(self, fullname: str) -> ModuleType:
        parts = fullname.split(".")
        module = None
        for index in range(1, len(parts) + 1):
            module = self._load(".".join(parts[:index]))
        return module

    def _try_load(self, fullname: str) -> None:
        if self._reader.find_module(fullname) is not None:
            self._load(fullname)

    def _load(self, fullname: str) -> ModuleType:
        with self._lock:
            module = self._modules.get(fullname)
            if module is not None:
                return module

            found = self._reader.find_module(fullname)
            if found is None:
                raise ModuleNotFoundError(f"No module named {fullname!r}", name=fullname)

            module = self.new_module(fullname, file=found.origin)
            if found.is_package:
                module.__path__ = [found.origin.rpartition("/")[0]]
                module.__package__ = fullname
            else:
                module.__package__ = fullname.rpartition(".")[0]

            self._modules[fullname] = module
            try:
                code = compile(found.source, found.origin, "exec", dont_inherit=True)
                exec(code, module.__dict__)
            except BaseException:
                del self._modules[fullname]
                raise

            parent, _, child = fullname.rpartition(".")
            if parent:
                setattr(self._modules[parent], child, module)

            logger.debug(f"[importer] Loaded {fullname} from {found.origin}")
            return module


def host_provides(top_level: str) -> bool:
    """Whether the host interpreter can import a top-level module."""
    if top_level in sys.modules:
        return True
    try:
        return importlib.util.find_spec(top_level) is not None
    except (ImportError, ValueError):
        return False
