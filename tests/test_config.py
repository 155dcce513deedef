"""Tests for engine configuration"""

import pytest

from ssekit.config import DEFAULT_MAX_WORKERS, DEFAULT_PORT, EngineConfig
from ssekit.errors import ConfigError
from ssekit.wire.bundle import DEFAULT_MAX_BUNDLE_BYTES, DEFAULT_MAX_BUNDLE_ROWS


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("SSE_MAX_BUNDLE_ROWS", "SSE_MAX_BUNDLE_BYTES", "SSE_PORT", "SSE_MAX_WORKERS", "SSE_DISABLE_CACHE"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


# TEST701: Test defaults apply when nothing is configured
def test_defaults(clean_env):
    config = EngineConfig()
    assert config.max_bundle_rows == DEFAULT_MAX_BUNDLE_ROWS
    assert config.max_bundle_bytes == DEFAULT_MAX_BUNDLE_BYTES
    assert config.port == DEFAULT_PORT
    assert config.max_workers == DEFAULT_MAX_WORKERS
    assert config.disable_cache is False


# TEST702: Test environment variables override defaults
def test_environment(clean_env):
    clean_env.setenv("SSE_MAX_BUNDLE_ROWS", "50")
    clean_env.setenv("SSE_PORT", "60000")
    clean_env.setenv("SSE_DISABLE_CACHE", "yes")
    config = EngineConfig()
    assert config.max_bundle_rows == 50
    assert config.port == 60000
    assert config.disable_cache is True


# TEST703: Test explicit arguments and builders override the environment
def test_builders(clean_env):
    clean_env.setenv("SSE_MAX_BUNDLE_ROWS", "50")
    config = EngineConfig(max_bundle_rows=10).with_bundle_bytes(4096).with_cache_disabled()
    assert config.max_bundle_rows == 10
    limits = config.bundle_limits()
    assert limits.max_rows == 10
    assert limits.max_bytes == 4096
    assert config.disable_cache is True


# TEST704: Test invalid values raise ConfigError
def test_invalid(clean_env):
    clean_env.setenv("SSE_MAX_BUNDLE_BYTES", "lots")
    with pytest.raises(ConfigError):
        EngineConfig()
    clean_env.delenv("SSE_MAX_BUNDLE_BYTES")
    clean_env.setenv("SSE_DISABLE_CACHE", "maybe")
    with pytest.raises(ConfigError):
        EngineConfig()
    clean_env.delenv("SSE_DISABLE_CACHE")
    with pytest.raises(ConfigError):
        EngineConfig().with_port(0)
