"""Composition root for wiring CLI dependencies."""

from __future__ import annotations

from pathlib import Path

import requests

from .cli import CliDependencies, create_app
from .config import AsanaConfig
from .credentials import StaticTokenProvider
from .infrastructure import (
    CachingTransport,
    CancellationToken,
    DiskCache,
    RateLimitState,
    RequestsTransport,
    ResponseCache,
    RetryPolicy,
)
from .protocols import Transport


def build_cli_dependencies(*, config: AsanaConfig, authenticated: bool) -> CliDependencies:
    """Build concrete dependencies for CLI commands.

    Args:
        config: CLI configuration (credentials, transport, cache and scope defaults).
        authenticated: Whether to construct the API transport; requires ASANA_PAT.

    Raises:
        MissingTokenError: If `authenticated` is set and no token is configured.
    """
    cancellation = CancellationToken()
    cache = ResponseCache(
        disk=DiskCache(Path(config.cache_dir).expanduser()),
        ttl_seconds=config.cache_ttl_seconds,
    )
    if not authenticated:
        return CliDependencies(cache=cache, cancellation=cancellation)

    token_provider = StaticTokenProvider(config.personal_access_token)
    rate_limit = RateLimitState()
    transport: Transport = RequestsTransport(
        session=requests.Session(),
        token_provider=token_provider,
        base_url=config.base_url,
        retry_policy=RetryPolicy(
            max_retries=config.max_retries,
            backoff_factor=config.backoff_factor,
            max_backoff_seconds=config.backoff_max_seconds,
            jitter_seconds=config.backoff_jitter_seconds,
        ),
        sleeper=cancellation,
        timeout_seconds=config.timeout_seconds,
        connect_timeout_seconds=config.connect_timeout_seconds,
        rate_limit=rate_limit,
    )
    transport = CachingTransport(inner=transport, cache=cache, offline=config.offline)
    return CliDependencies(
        cache=cache,
        cancellation=cancellation,
        transport=transport,
        principal=token_provider.principal,
        rate_limit=rate_limit,
    )


app = create_app(build_cli_dependencies)
