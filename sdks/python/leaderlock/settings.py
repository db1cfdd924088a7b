"""Environment-driven configuration."""

from __future__ import annotations

import os
from pathlib import Path
from uuid import uuid4

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_identity() -> str:
    """Hostname-based candidate identity, unique per process."""
    hostname = os.environ.get("HOSTNAME", os.environ.get("POD_NAME", "unknown"))
    return f"{hostname}-{uuid4().hex[:8]}"


class LockSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LEADERLOCK_", env_file=".env", extra="ignore")

    # API server
    api_url: str = "https://kubernetes.default.svc"
    token: str | None = None
    token_file: Path | None = None
    timeout: float = 30.0
    verify_tls: bool = True
    resource_kind: str = "endpoints"

    # Lock object
    namespace: str = "default"
    name: str | None = None
    identity: str = Field(default_factory=_default_identity)

    def resolve_token(self) -> str | None:
        """Explicit token first, then the contents of ``token_file``."""
        if self.token:
            return self.token
        if self.token_file is not None:
            return self.token_file.read_text().strip() or None
        return None
