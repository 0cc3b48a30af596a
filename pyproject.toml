[build-system]
requires = ["setuptools>=64"]
build-backend = "setuptools.build_meta"

[project]
name = "sidecar"
version = "0.1.0"
description = "Sidecar runtime HTTP API for state, pub/sub, bindings and actors, plus a Kubernetes pod sidecar injector"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "sidecar",
    "microservices",
    "actors",
    "pubsub",
    "state",
    "kubernetes",
    "admission-webhook",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.setuptools.packages.find]
include = ["sidecar", "sidecar.*"]

[tool.pytest.ini_options]
addopts = "-ra"
