"""
funcompile Configuration.

Environment-driven settings and declarative function definitions.

Usage:
    configure_logging()
    settings = get_settings()

    with create_registry(settings) as registry:
        build_registry(registry, load_definitions("functions.json"))
"""

from __future__ import annotations

import json
import logging
import os
import sys
from functools import lru_cache
from pathlib import Path

import yaml

from funcompile.compiler import ArchiveResolver, SnippetSynthesizer
from funcompile.runtime import FileFunctionStore, FunctionRegistry, RegistryBuilder
from funcompile.runtime.registry import ArtifactMeta

from .schemas import CompileDefinition, CompilerSettings, FunctionDefinitions, ImportDefinition

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_optional(name: str) -> str | None:
    value = os.getenv(name)
    return value if value else None


@lru_cache()
def get_settings() -> CompilerSettings:
    """
    Get compiler settings from environment.

    Uses lru_cache for singleton pattern; call get_settings.cache_clear()
    after changing the environment.
    """
    classpath = os.getenv("FUNCOMPILE_CLASSPATH", "")
    return CompilerSettings(
        # Registry
        registry_dir=os.getenv("FUNCOMPILE_REGISTRY_DIR", "/tmp/function-registry"),
        # Classpath
        classpath=[entry for entry in classpath.split(os.pathsep) if entry],
        include_sys_path=_env_bool("FUNCOMPILE_INCLUDE_SYS_PATH"),
        classes_prefix=os.getenv("FUNCOMPILE_CLASSES_PREFIX", "classes/"),
        lib_prefix=os.getenv("FUNCOMPILE_LIB_PREFIX", "lib/"),
        # Compiler
        compile_timeout=_env_optional("FUNCOMPILE_COMPILE_TIMEOUT") or 30.0,
        generated_package=os.getenv("FUNCOMPILE_GENERATED_PACKAGE", "funcompile.generated"),
        max_workers=_env_optional("FUNCOMPILE_MAX_WORKERS"),
        debug=_env_bool("FUNCOMPILE_DEBUG"),
    )


def configure_logging(level: int | str | None = None) -> None:
    """
    Configure root logging with the standard format.

    Defaults to DEBUG when settings have debug enabled, INFO otherwise.
    """
    if level is None:
        level = logging.DEBUG if get_settings().debug else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)


def load_definitions(path: str | Path) -> FunctionDefinitions:
    """
    Load function definitions from a JSON or YAML file.

    Files ending in .yaml or .yml are read as YAML, anything else as JSON.

    Raises:
        OSError: If the file cannot be read
        ValueError: If the document is not a mapping
        pydantic.ValidationError: If the document is not valid
    """
    path = Path(path)
    with path.open(encoding="utf-8") as f:
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Definitions in {path} must be a mapping, got {type(data).__name__}")
    definitions = FunctionDefinitions.model_validate(data)
    logger.info(
        f"[config] Loaded definitions from {path} | "
        f"compile={len(definitions.compile)} | imports={len(definitions.imports)}"
    )
    return definitions


def create_registry(settings: CompilerSettings | None = None) -> FunctionRegistry:
    """
    Create a file-backed FunctionRegistry from settings.

    Args:
        settings: Settings to use (get_settings() if None)

    Returns:
        Configured registry; the caller owns it and must close it
    """
    settings = settings or get_settings()

    resolver = ArchiveResolver(
        classes_prefix=settings.classes_prefix,
        lib_prefix=settings.lib_prefix,
    )
    classpath: list[str] = list(settings.classpath)
    if settings.include_sys_path:
        classpath.extend(entry for entry in sys.path if entry)

    logger.info(
        f"[config] Creating registry | dir={settings.registry_dir} | classpath={len(classpath)} entries"
    )
    return FunctionRegistry(
        FileFunctionStore(settings.registry_dir),
        classpath=classpath,
        resolver=resolver,
        synthesizer=SnippetSynthesizer(settings.generated_package),
        compile_timeout=settings.compile_timeout,
        max_workers=settings.max_workers,
    )


def build_registry(
    registry: FunctionRegistry,
    definitions: FunctionDefinitions,
    *,
    builder: RegistryBuilder | None = None,
) -> dict[str, ArtifactMeta]:
    """Register every definition in a registry."""
    return (builder or RegistryBuilder()).build(definitions, registry)


__all__ = [
    "CompileDefinition",
    "CompilerSettings",
    "FunctionDefinitions",
    "ImportDefinition",
    "build_registry",
    "configure_logging",
    "create_registry",
    "get_settings",
    "load_definitions",
]
