"""Decides whether a pod gets a sidecar and builds the patch that adds it."""

from __future__ import annotations

import copy
import logging
import re
from typing import Any, Mapping

from sidecar.injector.patch_operation import PatchOperation

_log = logging.getLogger(__name__)

SIDECAR_CONTAINER_NAME = "daprd"
DAPR_ENABLED_KEY = "dapr.io/enabled"
DAPR_PORT_KEY = "dapr.io/port"
DAPR_CONFIG_KEY = "dapr.io/config"
DAPR_PROTOCOL_KEY = "dapr.io/protocol"
DAPR_ID_KEY = "dapr.io/id"
DAPR_PROFILING_KEY = "dapr.io/profiling"
DAPR_LOG_LEVEL_KEY = "dapr.io/log-level"
DAPR_MAX_CONCURRENCY_KEY = "dapr.io/max-concurrency"
SIDECAR_HTTP_PORT = 3500
SIDECAR_GRPC_PORT = 50001
API_ADDRESS = "http://dapr-api"
PLACEMENT_SERVICE = "dapr-placement"
SIDECAR_HTTP_PORT_NAME = "dapr-http"
SIDECAR_GRPC_PORT_NAME = "dapr-grpc"
DEFAULT_LOG_LEVEL = "info"
KUBERNETES_MOUNT_PATH = "/var/run/secrets/kubernetes.io/serviceaccount"

_TRUTHY = frozenset({"y", "yes", "true", "on", "1"})
_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT32_MIN, _INT32_MAX = -(2**31), 2**31 - 1


class AnnotationError(ValueError):
    """A pod annotation holds a value that cannot be used."""


def _annotations(pod: Mapping[str, Any]) -> dict[str, str]:
    return (pod.get("metadata") or {}).get("annotations") or {}


def _containers(pod: Mapping[str, Any]) -> list[dict[str, Any]]:
    return (pod.get("spec") or {}).get("containers") or []


def _parse_int32(text: str, what: str) -> int:
    if _INTEGER.fullmatch(text) is None:
        raise AnnotationError(f"error parsing {what} int value {text}: invalid syntax")
    value = int(text)
    if not _INT32_MIN <= value <= _INT32_MAX:
        raise AnnotationError(f"error parsing {what} int value {text}: value out of range")
    return value


def _is_truthy(annotations: Mapping[str, str], key: str) -> bool:
    value = annotations.get(key)
    return value is not None and value.lower() in _TRUTHY


def get_token_volume_mount(pod: Mapping[str, Any]) -> dict[str, Any] | None:
    """Return a copy of the first service-account token mount, if any."""
    for container in _containers(pod):
        for mount in container.get("volumeMounts") or []:
            if mount.get("mountPath") == KUBERNETES_MOUNT_PATH:
                return copy.deepcopy(mount)
    return None


def pod_contains_sidecar_container(pod: Mapping[str, Any]) -> bool:
    """Tell whether the pod already runs the sidecar."""
    return any(c.get("name") == SIDECAR_CONTAINER_NAME for c in _containers(pod))


def get_max_concurrency(annotations: Mapping[str, str]) -> int:
    """Return the max concurrency annotation, -1 when absent."""
    value = annotations.get(DAPR_MAX_CONCURRENCY_KEY)
    if value is None:
        return -1
    return _parse_int32(value, "max concurrency")


def get_app_port(annotations: Mapping[str, str]) -> int:
    """Return the application port annotation, -1 when absent."""
    value = annotations.get(DAPR_PORT_KEY)
    if value is None:
        return -1
    return _parse_int32(value, "port")


def get_config(annotations: Mapping[str, str]) -> str:
    """Return the configuration name annotation, or an empty string."""
    return annotations.get(DAPR_CONFIG_KEY, "")


def get_protocol(annotations: Mapping[str, str]) -> str:
    """Return the application protocol, "http" by default."""
    return annotations.get(DAPR_PROTOCOL_KEY) or "http"


def get_app_id(pod: Mapping[str, Any]) -> str:
    """Return the app id annotation, falling back to the pod name."""
    return _annotations(pod).get(DAPR_ID_KEY) or (pod.get("metadata") or {}).get("name", "")


def get_log_level(annotations: Mapping[str, str]) -> str:
    """Return the sidecar log level, "info" by default."""
    return annotations.get(DAPR_LOG_LEVEL_KEY) or DEFAULT_LOG_LEVEL


def profiling_enabled(annotations: Mapping[str, str]) -> bool:
    """Tell whether profiling is switched on."""
    return _is_truthy(annotations, DAPR_PROFILING_KEY)


def is_resource_dapr_enabled(annotations: Mapping[str, str]) -> bool:
    """Tell whether the resource asks for a sidecar."""
    return _is_truthy(annotations, DAPR_ENABLED_KEY)


def get_kubernetes_dns(name: str, namespace: str) -> str:
    """Return the cluster-local DNS name of a service."""
    return f"{name}.{namespace}.svc.cluster.local"


def get_sidecar_container(
    application_port: str,
    application_protocol: str,
    app_id: str,
    config: str,
    image: str,
    namespace: str,
    control_plane_address: str,
    placement_address: str,
    enable_profiling: str,
    log_level: str,
    max_concurrency: str,
    token_volume_mount: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Return the sidecar container specification."""
    container: dict[str, Any] = {
        "name": SIDECAR_CONTAINER_NAME,
        "image": image,
        "command": ["/daprd"],
        "args": [
            "--mode", "kubernetes",
            "--dapr-http-port", str(SIDECAR_HTTP_PORT),
            "--dapr-grpc-port", str(SIDECAR_GRPC_PORT),
            "--app-port", application_port,
            "--dapr-id", app_id,
            "--control-plane-address", control_plane_address,
            "--protocol", application_protocol,
            "--placement-address", placement_address,
            "--config", config,
            "--enable-profiling", enable_profiling,
            "--log-level", log_level,
            "--max-concurrency", max_concurrency,
        ],
        "ports": [
            {"name": SIDECAR_HTTP_PORT_NAME, "containerPort": SIDECAR_HTTP_PORT},
            {"name": SIDECAR_GRPC_PORT_NAME, "containerPort": SIDECAR_GRPC_PORT},
        ],
        "env": [
            {"name": "HOST_IP", "valueFrom": {"fieldRef": {"fieldPath": "status.podIP"}}},
            {"name": "NAMESPACE", "value": namespace},
        ],
        "resources": {},
        "imagePullPolicy": "Always",
    }
    if token_volume_mount is not None:
        container["volumeMounts"] = [dict(token_volume_mount)]
    return container


def get_pod_patch_operations(
    pod: Mapping[str, Any],
    namespace: str,
    image: str,
    request_namespace: str = "",
) -> list[PatchOperation]:
    """Return the patch adding a sidecar to the pod, empty when none is needed.

    Raises AnnotationError when the application port annotation is invalid.
    """
    annotations = _annotations(pod)
    _log.info(
        "AdmissionReview for Namespace=%s Name=%s",
        request_namespace,
        (pod.get("metadata") or {}).get("name", ""),
    )
    if not is_resource_dapr_enabled(annotations) or pod_contains_sidecar_container(pod):
        return []

    app_port = get_app_port(annotations)
    try:
        max_concurrency = get_max_concurrency(annotations)
    except AnnotationError as err:
        _log.warning("%s", err)
        max_concurrency = -1

    container = get_sidecar_container(
        str(app_port) if app_port > 0 else "",
        get_protocol(annotations),
        get_app_id(pod),
        get_config(annotations),
        image,
        request_namespace,
        get_kubernetes_dns(API_ADDRESS, namespace),
        f"{get_kubernetes_dns(PLACEMENT_SERVICE, namespace)}:80",
        "true" if profiling_enabled(annotations) else "false",
        get_log_level(annotations),
        str(max_concurrency),
        get_token_volume_mount(pod),
    )
    if _containers(pod):
        return [PatchOperation(op="add", path="/spec/containers/-", value=container)]
    return [PatchOperation(op="add", path="/spec/containers", value=[container])]