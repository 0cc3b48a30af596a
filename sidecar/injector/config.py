"""Settings of the sidecar injector webhook server."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Mapping


class ConfigError(ValueError):
    """A required setting is missing from the environment."""


@dataclass
class Config:
    """Configuration of the sidecar injector webhook server."""

    tls_cert_file: str = ""
    tls_key_file: str = ""
    sidecar_image: str = ""
    sidecar_image_pull_policy: str = "Always"
    namespace: str = ""

    _ENVIRONMENT = {
        "tls_cert_file": ("TLS_CERT_FILE", True),
        "tls_key_file": ("TLS_KEY_FILE", True),
        "sidecar_image": ("SIDECAR_IMAGE", True),
        "sidecar_image_pull_policy": ("SIDECAR_IMAGE_PULL_POLICY", False),
        "namespace": ("NAMESPACE", True),
    }

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] | None = None) -> Config:
        """Read settings from the environment; raise ConfigError if one is missing."""
        env = os.environ if environ is None else environ
        config = cls()
        for item in fields(cls):
            variable, required = cls._ENVIRONMENT[item.name]
            if variable in env:
                setattr(config, item.name, env[variable])
            elif required:
                raise ConfigError(f"required key {variable} missing value")
        return config