import os
import json
from dataclasses import dataclass, field
from typing import Mapping, Optional
from api_proxy.core.errors import ConfigError

DEFAULT_PORT = 3000
DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    route_config_path: str = "api-config.json"
    static_dir: str = "public"
    static_fallback: Optional[str] = "index.html"
    upstream_timeout: float = DEFAULT_TIMEOUT
    # None forwards every client header
    forward_headers: Optional[tuple[str, ...]] = ("content-type",)
    upstream_headers: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            host=env.get("HOST") or "0.0.0.0",
            port=_port(env.get("PORT")),
            route_config_path=env.get("API_CONFIG_PATH") or "api-config.json",
            static_dir=env.get("STATIC_DIR") or "public",
            static_fallback=env.get("STATIC_FALLBACK", "index.html") or None,
            upstream_timeout=_timeout(env.get("UPSTREAM_TIMEOUT")),
            forward_headers=_header_list(env.get("FORWARD_HEADERS", "content-type")),
            upstream_headers=_header_map(env.get("UPSTREAM_HEADERS")),
        )


def _port(value: Optional[str]) -> int:
    if not value:
        return DEFAULT_PORT
    try:
        port = int(value)
    except ValueError:
        raise ConfigError(f"PORT must be an integer, got {value!r}") from None
    if not 0 < port < 65536:
        raise ConfigError(f"PORT out of range: {port}")
    return port


def _timeout(value: Optional[str]) -> float:
    if not value:
        return DEFAULT_TIMEOUT
    try:
        timeout = float(value)
    except ValueError:
        raise ConfigError(f"UPSTREAM_TIMEOUT must be a number, got {value!r}") from None
    if timeout <= 0:
        raise ConfigError(f"UPSTREAM_TIMEOUT must be positive, got {timeout}")
    return timeout


def _header_list(value: str) -> Optional[tuple[str, ...]]:
    value = value.strip()
    if value == "*":
        return None
    return tuple(h.strip().lower() for h in value.split(",") if h.strip())


def _header_map(value: Optional[str]) -> dict[str, str]:
    if not value:
        return {}
    try:
        data = json.loads(value)
    except json.JSONDecodeError as e:
        raise ConfigError(f"UPSTREAM_HEADERS is not valid JSON: {e}") from e
    if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()):
        raise ConfigError("UPSTREAM_HEADERS must be a JSON object of string values")
    return data
