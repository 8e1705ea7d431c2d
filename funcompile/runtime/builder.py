"""
Registry Builder.

Populates a FunctionRegistry from declarative FunctionDefinitions:
snippets under "compile" are compiled and registered, precompiled
artifacts under "imports" are fetched and imported.

Import locations may be local paths, file: URIs or http(s) URLs.

Usage:
    definitions = load_definitions("functions.json")

    with httpx.Client() as client:
        builder = RegistryBuilder(http_client=client)
        registered = builder.build(definitions, registry)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlparse
from urllib.request import url2pathname

import httpx

from funcompile.errors import LoadError

if TYPE_CHECKING:
    from funcompile.config.schemas import FunctionDefinitions

    from .registry import ArtifactMeta, FunctionRegistry

logger = logging.getLogger(__name__)


class RegistryBuilder:
    """
    Registers every function of a FunctionDefinitions document.

    Compile entries are registered before imports, each group in document
    order. The first failure propagates; entries registered before it stay
    registered.
    """

    def __init__(
        self,
        *,
        http_client: httpx.Client | None = None,
        timeout: float = 30.0,
    ):
        """
        Initialize builder.

        Args:
            http_client: Client for http(s) import locations (one is created
                per fetch if None)
            timeout: Timeout for http(s) fetches without a client
        """
        self._http_client = http_client
        self._timeout = timeout

    def build(
        self,
        definitions: FunctionDefinitions,
        registry: FunctionRegistry,
    ) -> dict[str, ArtifactMeta]:
        """
        Register all definitions.

        Args:
            definitions: Validated function definitions
            registry: Registry to populate

        Returns:
            Registered metadata by function name
        """
        logger.info(
            f"[registry_builder] Building registry | "
            f"compile={len(definitions.compile)} | "
            f"imports={len(definitions.imports)}"
        )

        registered: dict[str, ArtifactMeta] = {}

        for name, definition in definitions.compile.items():
            registered[name] = registry.register(
                name,
                definition.type,
                definition.lambda_,
                *definition.type_params(),
            )

        for name, definition in definitions.imports.items():
            data = self.fetch(name, definition.location)
            registered[name] = registry.import_artifact(name, definition.type, data)

        logger.info(f"[registry_builder] Registered {len(registered)} functions")
        return registered

    def fetch(self, name: str, location: str) -> bytes:
        """
        Read artifact bytes from a location.

        Raises:
            LoadError: If the location cannot be read
        """
        parsed = urlparse(location)

        if parsed.scheme in ("http", "https"):
            logger.info(f"[registry_builder] Fetching '{name}' from {location}")
            try:
                if self._http_client is not None:
                    response = self._http_client.get(location)
                else:
                    with httpx.Client(timeout=self._timeout) as client:
                        response = client.get(location)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise LoadError(name, f"cannot fetch {location}: {e}") from e
            return response.content

        if parsed.scheme == "file":
            path = Path(url2pathname(parsed.path))
        elif parsed.scheme == "" or len(parsed.scheme) == 1:
            path = Path(location)
        else:
            raise LoadError(name, f"unsupported import location: {location}")

        try:
            return path.read_bytes()
        except OSError as e:
            raise LoadError(name, f"cannot read {path}: {e}") from e
