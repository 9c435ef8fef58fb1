"""
Engine configuration.

Everything that used to behave as ambient global state (portal base URL,
TTL durations, the encryption key) is passed explicitly through an
EngineConfig at construction time.
"""

import os
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

DEFAULT_BASE_URL = "https://is.mendelu.cz"
DOCUMENTS_PATH = "/auth/dok_server/"

# Environment variable prefix used by EngineConfig.from_env()
ENV_PREFIX = "PORTAL_DOCS_"


class EngineConfig(BaseModel):
    """Explicit configuration for parser, resolver, cache and engine."""

    base_url: str = DEFAULT_BASE_URL
    documents_path: str = DOCUMENTS_PATH
    short_ttl: float = Field(default=5 * 60, gt=0)          # volatile listings
    long_ttl: float = Field(default=24 * 60 * 60, gt=0)     # near-static metadata
    encryption_key: Optional[str] = None
    max_concurrent_requests: int = Field(default=3, ge=1)
    request_timeout: float = Field(default=30.0, gt=0)
    cache_dir: Optional[Path] = None

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("documents_path")
    @classmethod
    def _wrap_in_slashes(cls, value: str) -> str:
        return "/" + value.strip("/") + "/"

    @property
    def allowed_host(self) -> str:
        """Host every extracted reference must belong to."""
        return urlparse(self.base_url).hostname or ""

    @property
    def documents_url(self) -> str:
        return f"{self.base_url}{self.documents_path}"

    @classmethod
    def from_env(cls, **overrides) -> "EngineConfig":
        """
        Build a config from PORTAL_DOCS_* environment variables.

        Call load_dotenv() first if the values live in a .env file.
        Explicit keyword overrides win over the environment.
        """
        values = {}
        for field_name in cls.model_fields:
            raw = os.getenv(f"{ENV_PREFIX}{field_name.upper()}")
            if raw is not None and raw != "":
                values[field_name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
