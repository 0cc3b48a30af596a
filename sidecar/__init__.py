"""Sidecar runtime HTTP API and Kubernetes sidecar injector."""

__version__ = "0.1.0"