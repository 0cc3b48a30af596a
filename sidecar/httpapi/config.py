"""Settings for the HTTP server."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ServerConfig:
    """Where and how the HTTP API is served."""

    dapr_id: str
    host_address: str
    port: int
    profile_port: int
    allowed_origins: str
    enable_profiling: bool