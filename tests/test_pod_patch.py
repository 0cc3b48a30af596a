import pytest

from sidecar.injector.pod_patch import (
    DAPR_CONFIG_KEY,
    DAPR_ENABLED_KEY,
    DAPR_ID_KEY,
    DAPR_LOG_LEVEL_KEY,
    DAPR_MAX_CONCURRENCY_KEY,
    DAPR_PORT_KEY,
    DAPR_PROFILING_KEY,
    DAPR_PROTOCOL_KEY,
    KUBERNETES_MOUNT_PATH,
    AnnotationError,
    get_app_id,
    get_app_port,
    get_config,
    get_kubernetes_dns,
    get_log_level,
    get_max_concurrency,
    get_pod_patch_operations,
    get_protocol,
    get_sidecar_container,
    get_token_volume_mount,
    is_resource_dapr_enabled,
    pod_contains_sidecar_container,
    profiling_enabled,
)


def _pod(annotations=None, name="pod", containers=None):
    return {
        "metadata": {"name": name, "annotations": annotations or {}},
        "spec": {"containers": containers or []},
    }


def _arg(container, flag):
    args = container["args"]
    return args[args.index(flag) + 1]


def test_get_config():
    assert get_config({DAPR_CONFIG_KEY: "config1"}) == "config1"


def test_profiling_missing_annotation():
    assert profiling_enabled({}) is False


def test_profiling_enabled():
    assert profiling_enabled({DAPR_PROFILING_KEY: "yes"}) is True


def test_profiling_disabled():
    assert profiling_enabled({DAPR_PROFILING_KEY: "false"}) is False


def test_app_port_valid():
    assert get_app_port({DAPR_PORT_KEY: "3000"}) == 3000


def test_app_port_invalid():
    with pytest.raises(AnnotationError):
        get_app_port({DAPR_PORT_KEY: "a"})


def test_app_port_missing():
    assert get_app_port({}) == -1


@pytest.mark.parametrize("annotations,expected", [
    ({DAPR_PROTOCOL_KEY: "grpc"}, "grpc"),
    ({DAPR_PROTOCOL_KEY: "http"}, "http"),
    ({}, "http"),
])
def test_get_protocol(annotations, expected):
    assert get_protocol(annotations) == expected


def test_get_app_id_from_annotation():
    assert get_app_id(_pod({DAPR_ID_KEY: "app"})) == "app"


def test_get_app_id_from_pod_name():
    assert get_app_id(_pod(name="pod")) == "pod"


def test_log_level_default():
    assert get_log_level({}) == "info"


def test_log_level_error():
    assert get_log_level({DAPR_LOG_LEVEL_KEY: "error"}) == "error"


def test_max_concurrency_empty():
    assert get_max_concurrency({}) == -1


def test_max_concurrency_invalid():
    with pytest.raises(AnnotationError):
        get_max_concurrency({DAPR_MAX_CONCURRENCY_KEY: "invalid"})


def test_max_concurrency_valid():
    assert get_max_concurrency({DAPR_MAX_CONCURRENCY_KEY: "10"}) == 10


def test_max_concurrency_out_of_int32_range():
    with pytest.raises(AnnotationError):
        get_max_concurrency({DAPR_MAX_CONCURRENCY_KEY: "4294967296"})


def test_kubernetes_dns():
    assert get_kubernetes_dns("a", "b") == "a.b.svc.cluster.local"


def test_get_container():
    c = get_sidecar_container("5000", "http", "app", "config1", "image", "ns", "a", "b", "false", "info", "-1", None)
    assert c["image"] == "image"
    assert c["name"] == "daprd"
    assert _arg(c, "--app-port") == "5000"
    assert _arg(c, "--dapr-id") == "app"
    assert {"name": "NAMESPACE", "value": "ns"} in c["env"]
    assert "volumeMounts" not in c


def test_get_container_with_token_mount():
    mount = {"name": "token", "mountPath": KUBERNETES_MOUNT_PATH}
    c = get_sidecar_container("", "http", "app", "", "image", "ns", "a", "b", "false", "info", "-1", mount)
    assert c["volumeMounts"] == [mount]


@pytest.mark.parametrize("value", ["y", "YES", "true", "On", "1"])
def test_resource_enabled(value):
    assert is_resource_dapr_enabled({DAPR_ENABLED_KEY: value}) is True


def test_resource_not_enabled():
    assert is_resource_dapr_enabled({DAPR_ENABLED_KEY: "no"}) is False
    assert is_resource_dapr_enabled({}) is False


def test_contains_sidecar():
    assert pod_contains_sidecar_container(_pod(containers=[{"name": "daprd"}])) is True
    assert pod_contains_sidecar_container(_pod(containers=[{"name": "app"}])) is False


def test_token_volume_mount_found():
    mount = {"name": "token", "mountPath": KUBERNETES_MOUNT_PATH}
    pod = _pod(containers=[{"name": "app", "volumeMounts": [{"name": "x", "mountPath": "/x"}, mount]}])
    assert get_token_volume_mount(pod) == mount
    assert get_token_volume_mount(_pod(containers=[{"name": "app"}])) is None


def test_no_patch_when_not_enabled():
    assert get_pod_patch_operations(_pod(), "dapr-system", "image", "default") == []


def test_no_patch_when_sidecar_present():
    pod = _pod({DAPR_ENABLED_KEY: "true"}, containers=[{"name": "daprd"}])
    assert get_pod_patch_operations(pod, "dapr-system", "image", "default") == []


def test_patch_for_pod_without_containers():
    pod = _pod({DAPR_ENABLED_KEY: "true", DAPR_PORT_KEY: "3000"})
    (op,) = get_pod_patch_operations(pod, "dapr-system", "image", "default")
    assert op.op == "add"
    assert op.path == "/spec/containers"
    (container,) = op.value
    assert _arg(container, "--app-port") == "3000"
    assert _arg(container, "--dapr-id") == "pod"
    assert _arg(container, "--placement-address") == "dapr-placement.dapr-system.svc.cluster.local:80"
    assert _arg(container, "--control-plane-address") == "http://dapr-api.dapr-system.svc.cluster.local"
    assert _arg(container, "--enable-profiling") == "false"
    assert _arg(container, "--max-concurrency") == "-1"


def test_patch_appends_to_existing_containers():
    mount = {"name": "token", "mountPath": KUBERNETES_MOUNT_PATH}
    pod = _pod(
        {DAPR_ENABLED_KEY: "yes", DAPR_PROFILING_KEY: "on", DAPR_MAX_CONCURRENCY_KEY: "bad"},
        containers=[{"name": "app", "volumeMounts": [mount]}],
    )
    (op,) = get_pod_patch_operations(pod, "dapr-system", "image", "default")
    assert op.path == "/spec/containers/-"
    assert op.value["volumeMounts"] == [mount]
    assert _arg(op.value, "--app-port") == ""
    assert _arg(op.value, "--enable-profiling") == "true"
    assert _arg(op.value, "--max-concurrency") == "-1"


def test_patch_invalid_port_raises():
    pod = _pod({DAPR_ENABLED_KEY: "true", DAPR_PORT_KEY: "a"})
    with pytest.raises(AnnotationError):
        get_pod_patch_operations(pod, "dapr-system", "image", "default")