import json
import logging
import os
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Union
from .errors import ConfigError

logger = logging.getLogger(__name__)


class RouteTable:
    """Read-only mapping of API namespace -> upstream base URL."""

    def __init__(self, routes: Mapping[str, str]):
        self._routes = MappingProxyType(dict(routes))

    @classmethod
    def load(cls, source: Union[str, os.PathLike]) -> "RouteTable":
        try:
            with open(source, "r", encoding="utf-8") as fh:
                raw = fh.read()
        except OSError as e:
            raise ConfigError(f"Cannot read route config '{source}': {e}") from e
        except UnicodeDecodeError as e:
            raise ConfigError(f"Route config '{source}' is not valid UTF-8: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Route config '{source}' is not valid JSON: {e}") from e

        table = cls.from_mapping(data)
        logger.info(f"Route configuration loaded from {source}")
        logger.info("Available API routes: " + ", ".join(f"/api/{n}" for n in table.namespaces()))
        return table

    @classmethod
    def from_mapping(cls, data: Any) -> "RouteTable":
        if not isinstance(data, dict):
            raise ConfigError(
                f"Route config must be a JSON object, got {type(data).__name__}")

        for namespace, base_url in data.items():
            if not isinstance(namespace, str) or not namespace:
                raise ConfigError(f"Invalid namespace {namespace!r}: must be a non-empty string")
            if not isinstance(base_url, str):
                raise ConfigError(
                    f"Upstream for '{namespace}' must be a string, got {type(base_url).__name__}")
            if "/" in namespace:
                # lookups only ever see a single path segment
                logger.warning(f"Namespace '{namespace}' contains '/' and can never match")

        return cls(data)

    def resolve(self, namespace: str) -> Optional[str]:
        return self._routes.get(namespace)

    def namespaces(self) -> list[str]:
        return list(self._routes)

    def as_dict(self) -> dict[str, str]:
        return dict(self._routes)

    def __contains__(self, namespace: object) -> bool:
        return namespace in self._routes

    def __iter__(self) -> Iterator[str]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def __repr__(self) -> str:
        return f"RouteTable({len(self._routes)} routes)"
