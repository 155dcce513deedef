"""Engine configuration

Supports configuration via:
1. Builder methods (highest priority)
2. Environment variables
3. Default values

| Setting           | Environment            | Default |
|-------------------|------------------------|---------|
| max_bundle_rows   | SSE_MAX_BUNDLE_ROWS    | 2000    |
| max_bundle_bytes  | SSE_MAX_BUNDLE_BYTES   | 262144  |
| port              | SSE_PORT               | 50053   |
| max_workers       | SSE_MAX_WORKERS        | 10      |
| disable_cache     | SSE_DISABLE_CACHE      | false   |
"""

import os
from typing import Optional

from ssekit.errors import ConfigError
from ssekit.wire.bundle import DEFAULT_MAX_BUNDLE_BYTES, DEFAULT_MAX_BUNDLE_ROWS, BundleLimits


DEFAULT_PORT = 50053
DEFAULT_MAX_WORKERS = 10

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _positive(name: str, value: int) -> int:
    if not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{name} must be a positive integer, got {value!r}")
    return value


class EngineConfig:
    """Tunables for bundling and for the gRPC adapter"""

    def __init__(
        self,
        max_bundle_rows: Optional[int] = None,
        max_bundle_bytes: Optional[int] = None,
        port: Optional[int] = None,
        max_workers: Optional[int] = None,
        disable_cache: Optional[bool] = None,
    ):
        self.max_bundle_rows = (
            _positive("max_bundle_rows", max_bundle_rows)
            if max_bundle_rows is not None
            else _env_int("SSE_MAX_BUNDLE_ROWS", DEFAULT_MAX_BUNDLE_ROWS)
        )
        self.max_bundle_bytes = (
            _positive("max_bundle_bytes", max_bundle_bytes)
            if max_bundle_bytes is not None
            else _env_int("SSE_MAX_BUNDLE_BYTES", DEFAULT_MAX_BUNDLE_BYTES)
        )
        self.port = _positive("port", port) if port is not None else _env_int("SSE_PORT", DEFAULT_PORT)
        self.max_workers = (
            _positive("max_workers", max_workers)
            if max_workers is not None
            else _env_int("SSE_MAX_WORKERS", DEFAULT_MAX_WORKERS)
        )
        self.disable_cache = (
            bool(disable_cache) if disable_cache is not None else _env_bool("SSE_DISABLE_CACHE", False)
        )

    def with_bundle_rows(self, max_rows: int) -> "EngineConfig":
        """Set the maximum rows per output bundle"""
        self.max_bundle_rows = _positive("max_bundle_rows", max_rows)
        return self

    def with_bundle_bytes(self, max_bytes: int) -> "EngineConfig":
        """Set the maximum encoded bytes per output bundle"""
        self.max_bundle_bytes = _positive("max_bundle_bytes", max_bytes)
        return self

    def with_port(self, port: int) -> "EngineConfig":
        self.port = _positive("port", port)
        return self

    def with_max_workers(self, max_workers: int) -> "EngineConfig":
        self.max_workers = _positive("max_workers", max_workers)
        return self

    def with_cache_disabled(self, disabled: bool = True) -> "EngineConfig":
        """Ask the engine not to cache results of this plugin"""
        self.disable_cache = disabled
        return self

    def bundle_limits(self) -> BundleLimits:
        return BundleLimits(max_rows=self.max_bundle_rows, max_bytes=self.max_bundle_bytes)
