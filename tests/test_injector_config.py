import pytest

from sidecar.injector.config import Config, ConfigError


def _full_environment():
    return {
        "TLS_CERT_FILE": "a",
        "TLS_KEY_FILE": "b",
        "SIDECAR_IMAGE": "c",
        "SIDECAR_IMAGE_PULL_POLICY": "d",
        "NAMESPACE": "e",
    }


def test_defaults_pull_policy_always():
    assert Config().sidecar_image_pull_policy == "Always"


def test_reads_every_variable():
    config = Config.from_environment(_full_environment())
    assert config == Config(
        tls_cert_file="a",
        tls_key_file="b",
        sidecar_image="c",
        sidecar_image_pull_policy="d",
        namespace="e",
    )


def test_pull_policy_keeps_default_when_absent():
    env = _full_environment()
    del env["SIDECAR_IMAGE_PULL_POLICY"]
    assert Config.from_environment(env).sidecar_image_pull_policy == "Always"


@pytest.mark.parametrize("variable", ["TLS_CERT_FILE", "TLS_KEY_FILE", "SIDECAR_IMAGE", "NAMESPACE"])
def test_missing_required_variable_raises(variable):
    env = _full_environment()
    del env[variable]
    with pytest.raises(ConfigError) as info:
        Config.from_environment(env)
    assert variable in str(info.value)


def test_empty_required_value_is_accepted():
    env = _full_environment()
    env["NAMESPACE"] = ""
    assert Config.from_environment(env).namespace == ""