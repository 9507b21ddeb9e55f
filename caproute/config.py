"""
Engine configuration.

Settings are read from the environment once and cached. Tests and
embedding applications either build ``EngineSettings`` directly or call
``get_settings.cache_clear()`` after changing the environment.

Security:
    The credential is a SecretStr so it never shows up in logs or reprs.
    Access the value with ``.get_secret_value()``.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, SecretStr

PACKAGE_DIR = Path(__file__).parent
DEFAULT_CARDS_DIR = PACKAGE_DIR / "cards"
DEFAULT_GRAPHQL_URL = "https://api.github.com/graphql"


class EngineSettings(BaseModel):
    """Runtime settings for the routing engine."""

    model_config = ConfigDict(frozen=True)

    log_level: str = Field("WARNING", description="Level for the caproute logger")
    cards_dir: Path = Field(DEFAULT_CARDS_DIR, description="Directory of operation card documents")

    # GraphQL transport
    graphql_url: str = Field(DEFAULT_GRAPHQL_URL, description="GraphQL endpoint")
    token: SecretStr | None = Field(None, description="API credential")
    http_timeout: float = Field(30.0, gt=0, description="HTTP timeout in seconds")

    # Route engine
    max_attempts_per_route: int = Field(2, ge=1)

    # CLI route
    cli_command: str = Field("gh", description="Executable used by the CLI route")
    cli_timeout_ms: int = Field(10_000, ge=1)
    skip_cli_preflight: bool = Field(
        False, description="Assume the CLI is installed and authenticated instead of probing"
    )

    # Resolution cache
    cache_ttl_seconds: float = Field(60.0, gt=0)
    cache_max_entries: int = Field(200, ge=1)

    @property
    def token_value(self) -> str | None:
        return self.token.get_secret_value() if self.token else None


def _graphql_url_from_env() -> str:
    explicit = os.getenv("CAPROUTE_GRAPHQL_URL") or os.getenv("GITHUB_GRAPHQL_URL")
    if explicit:
        return explicit
    host = os.getenv("GH_HOST")
    if host and host != "github.com":
        return f"https://{host}/api/graphql"
    return DEFAULT_GRAPHQL_URL


@lru_cache()
def get_settings() -> EngineSettings:
    """
    Get engine settings from environment.

    Uses lru_cache for singleton pattern.
    """
    token = os.getenv("CAPROUTE_TOKEN") or os.getenv("GITHUB_TOKEN") or os.getenv("GH_TOKEN")
    return EngineSettings(
        log_level=os.getenv("CAPROUTE_LOG_LEVEL", "WARNING"),
        cards_dir=Path(os.getenv("CAPROUTE_CARDS_DIR", str(DEFAULT_CARDS_DIR))),
        graphql_url=_graphql_url_from_env(),
        token=SecretStr(token) if token else None,
        http_timeout=float(os.getenv("CAPROUTE_HTTP_TIMEOUT", "30")),
        max_attempts_per_route=int(os.getenv("CAPROUTE_MAX_ATTEMPTS_PER_ROUTE", "2")),
        cli_command=os.getenv("CAPROUTE_CLI_COMMAND", "gh"),
        cli_timeout_ms=int(os.getenv("CAPROUTE_CLI_TIMEOUT_MS", "10000")),
        skip_cli_preflight=os.getenv("CAPROUTE_SKIP_CLI_PREFLIGHT", "false").lower() == "true",
        cache_ttl_seconds=float(os.getenv("CAPROUTE_CACHE_TTL_SECONDS", "60")),
        cache_max_entries=int(os.getenv("CAPROUTE_CACHE_MAX_ENTRIES", "200")),
    )
