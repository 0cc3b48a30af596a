from sidecar.httpapi.endpoint import Endpoint, RequestContext, Response


def _noop(ctx):
    ctx.response.status_code = 204


def test_full_path_joins_version_and_route():
    ep = Endpoint(["GET"], "state/<key>", "v1.0", _noop)
    assert ep.full_path() == "/v1.0/state/<key>"


def test_handler_is_callable_on_context():
    ep = Endpoint(["POST", "PUT"], "bindings/<name>", "v1.0", _noop)
    ctx = RequestContext()
    ep.handler(ctx)
    assert ctx.response.status_code == 204


def test_param_present_and_missing():
    ctx = RequestContext(params={"key": "good-key"})
    assert ctx.param("key") == "good-key"
    assert ctx.param("topic") == ""


def test_query_arg_first_value_and_missing():
    ctx = RequestContext(query_string="param1=val1&param2=val2&param1=other")
    assert ctx.query_arg("param1") == "val1"
    assert ctx.query_arg("param2") == "val2"
    assert ctx.query_arg("absent") == ""


def test_query_arg_blank_value():
    ctx = RequestContext(query_string="consistency=")
    assert ctx.query_arg("consistency") == ""


def test_header_is_case_insensitive():
    ctx = RequestContext(headers=[("If-Match", "etag-1"), ("H2", "v2")])
    assert ctx.header("if-match") == "etag-1"
    assert ctx.header("H2") == "v2"
    assert ctx.header("missing") == ""


def test_response_defaults():
    resp = Response()
    assert resp.status_code == 200
    assert resp.headers == {}
    assert resp.body == b""


def test_contexts_do_not_share_responses():
    first = RequestContext()
    second = RequestContext()
    first.response.headers["X"] = "1"
    assert second.response.headers == {}