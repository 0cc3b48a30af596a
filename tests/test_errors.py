import json

from sidecar.httpapi.errors import ErrorResponse


def test_to_dict_uses_wire_keys():
    resp = ErrorResponse("ERR_STATE_STORE_NOT_FOUND", "")
    assert resp.to_dict() == {"errorCode": "ERR_STATE_STORE_NOT_FOUND", "message": ""}


def test_message_defaults_to_empty():
    assert ErrorResponse("ERR_PUB_SUB_NOT_FOUND").message == ""


def test_to_json_wire_bytes():
    resp = ErrorResponse("ERR_GET_STATE", "boom")
    assert resp.to_json() == b'{"errorCode":"ERR_GET_STATE","message":"boom"}'


def test_to_json_round_trip():
    resp = ErrorResponse("ERR_DIRECT_INVOKE", "failed: ünïcode")
    assert json.loads(resp.to_json()) == resp.to_dict()


def test_to_json_escapes_html_characters():
    resp = ErrorResponse("ERR_MALFORMED_REQUEST", "<a&b>")
    encoded = resp.to_json()
    assert b"<" not in encoded
    assert b"&" not in encoded
    assert b"\\u003c" in encoded
    assert json.loads(encoded)["message"] == "<a&b>"


def test_equality():
    assert ErrorResponse("ERR_X", "m") == ErrorResponse("ERR_X", "m")
    assert ErrorResponse("ERR_X", "m") != ErrorResponse("ERR_Y", "m")