"""Tests for explicit engine configuration."""

import pytest
from pydantic import ValidationError

from portal_docs.config import EngineConfig


def test_defaults():
    config = EngineConfig()

    assert config.base_url == "https://is.mendelu.cz"
    assert config.documents_url == "https://is.mendelu.cz/auth/dok_server/"
    assert config.allowed_host == "is.mendelu.cz"
    assert config.short_ttl == 300
    assert config.long_ttl == 86400
    assert config.max_concurrent_requests == 3


def test_paths_are_normalized():
    config = EngineConfig(base_url="https://portal.example.org/", documents_path="docs")

    assert config.documents_url == "https://portal.example.org/docs/"
    assert config.allowed_host == "portal.example.org"


def test_invalid_values_are_rejected():
    with pytest.raises(ValidationError):
        EngineConfig(short_ttl=0)
    with pytest.raises(ValidationError):
        EngineConfig(max_concurrent_requests=0)


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("PORTAL_DOCS_SHORT_TTL", "60")
    monkeypatch.setenv("PORTAL_DOCS_ENCRYPTION_KEY", "from-env")
    monkeypatch.setenv("PORTAL_DOCS_CACHE_DIR", str(tmp_path))
    monkeypatch.setenv("PORTAL_DOCS_BASE_URL", "")

    config = EngineConfig.from_env(encryption_key="override", long_ttl=None)

    assert config.short_ttl == 60
    assert config.encryption_key == "override"
    assert config.cache_dir == tmp_path
    assert config.base_url == "https://is.mendelu.cz"
    assert config.long_ttl == 86400
