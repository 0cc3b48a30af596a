"""HTTP endpoints of the sidecar and the handlers behind them."""

from __future__ import annotations

import base64
import dataclasses
import functools
import json
import uuid
from typing import Any, Callable

from sidecar.httpapi.contracts import (
    DEFAULT_CLOUD_EVENT_TYPE,
    ActorHostedRequest,
    CallRequest,
    CloudEventsEnvelope,
    CreateReminderRequest,
    CreateTimerRequest,
    DeleteReminderRequest,
    DeleteRequest,
    DeleteStateRequest,
    DeleteTimerRequest,
    GetReminderRequest,
    GetRequest,
    GetStateRequest,
    PublishRequest,
    RetryPolicy,
    SaveStateRequest,
    SetRequest,
    TransactionalOperation,
    TransactionalRequest,
    WriteRequest,
)
from sidecar.httpapi.endpoint import Endpoint, RequestContext
from sidecar.httpapi.errors import ErrorResponse
from sidecar.httpapi.requests import OutputBindingRequest
from sidecar.httpapi.responses import (
    respond_empty,
    respond_with_error,
    respond_with_etagged_json,
    respond_with_json,
)

API_VERSION_V1 = "v1.0"
HTTP_STATUS_CODE = "http.status_code"

_HEADER_EQUALS = "&__header_equals__&"
_HEADER_DELIM = "&__header_delim__&"

_GET, _POST, _PUT, _DELETE = "GET", "POST", "PUT", "DELETE"


def _encode_default(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, (bytes, bytearray)):
        return base64.b64encode(obj).decode("ascii")
    raise TypeError(f"cannot encode {type(obj).__name__}")


def _to_json(obj: Any) -> bytes:
    return json.dumps(
        obj, ensure_ascii=False, separators=(",", ":"), default=_encode_default
    ).encode("utf-8")


def _atoi(text: str) -> int:
    if not text:
        return 0
    try:
        return int(text)
    except ValueError:
        return 0


def _fail(ctx: RequestContext, code: int, error_code: str, message: str = "") -> None:
    respond_with_error(ctx, code, ErrorResponse(error_code, message))


def _new_cloud_events_envelope(event_id: str, source: str, data: bytes) -> CloudEventsEnvelope:
    try:
        payload: Any = json.loads(data)
        content_type = "application/json"
    except ValueError:
        payload = data.decode("utf-8", errors="replace")
        content_type = "text/plain"
    return CloudEventsEnvelope(
        event_id=event_id,
        source=source,
        event_type=DEFAULT_CLOUD_EVENT_TYPE,
        data=payload,
        data_content_type=content_type,
    )


def get_status_code_from_metadata(metadata: dict[str, str] | None) -> int:
    """Return the HTTP status carried in metadata, or 200."""
    code = (metadata or {}).get(HTTP_STATUS_CODE, "")
    if code:
        try:
            return int(code)
        except ValueError:
            pass
    return 200


def _requires(attribute: str, error_code: str) -> Callable:
    """Answer 400 when the named component is not configured."""

    def decorate(handler: Callable[[Api, RequestContext], None]) -> Callable:
        @functools.wraps(handler)
        def wrapper(self: Api, ctx: RequestContext) -> None:
            if getattr(self, attribute) is None:
                _fail(ctx, 400, error_code)
                return
            handler(self, ctx)

        return wrapper

    return decorate


_needs_actor = _requires("actor", "ERR_ACTOR_RUNTIME_NOT_FOUND")
_needs_state_store = _requires("state_store", "ERR_STATE_STORE_NOT_FOUND")
_needs_pub_sub = _requires("pub_sub", "ERR_PUB_SUB_NOT_FOUND")


class Api:
    """The sidecar's HTTP API over a state store, pub/sub, actors and bindings."""

    def __init__(
        self,
        dapr_id: str = "",
        state_store: Any = None,
        pub_sub: Any = None,
        actor: Any = None,
        send_to_output_binding: Callable[[str, WriteRequest], None] | None = None,
    ) -> None:
        self.dapr_id = dapr_id
        self.state_store = state_store
        self.pub_sub = pub_sub
        self.actor = actor
        self.send_to_output_binding = send_to_output_binding
        self._endpoints = [
            *self.construct_state_endpoints(),
            *self.construct_pubsub_endpoints(),
            *self.construct_actor_endpoints(),
            *self.construct_metadata_endpoints(),
            *self.construct_bindings_endpoints(),
        ]

    def endpoints(self) -> list[Endpoint]:
        """Return every registered endpoint."""
        return list(self._endpoints)

    def construct_state_endpoints(self) -> list[Endpoint]:
        return [
            Endpoint([_GET], "state/<key>", API_VERSION_V1, self.on_get_state),
            Endpoint([_POST], "state", API_VERSION_V1, self.on_post_state),
            Endpoint([_DELETE], "state/<key>", API_VERSION_V1, self.on_delete_state),
        ]

    def construct_pubsub_endpoints(self) -> list[Endpoint]:
        return [Endpoint([_POST, _PUT], "publish/<topic>", API_VERSION_V1, self.on_publish)]

    def construct_bindings_endpoints(self) -> list[Endpoint]:
        return [
            Endpoint(
                [_POST, _PUT], "bindings/<name>", API_VERSION_V1, self.on_output_binding_message
            )
        ]

    def construct_actor_endpoints(self) -> list[Endpoint]:
        base = "actors/<actorType>/<actorId>"
        return [
            Endpoint([_POST, _PUT], f"{base}/state", API_VERSION_V1, self.on_actor_state_transaction),
            Endpoint(
                [_GET, _POST, _DELETE, _PUT],
                f"{base}/method/<method>",
                API_VERSION_V1,
                self.on_direct_actor_message,
            ),
            Endpoint([_POST, _PUT], f"{base}/state/<key>", API_VERSION_V1, self.on_save_actor_state),
            Endpoint([_GET], f"{base}/state/<key>", API_VERSION_V1, self.on_get_actor_state),
            Endpoint([_DELETE], f"{base}/state/<key>", API_VERSION_V1, self.on_delete_actor_state),
            Endpoint(
                [_POST, _PUT], f"{base}/reminders/<name>", API_VERSION_V1, self.on_create_actor_reminder
            ),
            Endpoint([_POST, _PUT], f"{base}/timers/<name>", API_VERSION_V1, self.on_create_actor_timer),
            Endpoint([_DELETE], f"{base}/reminders/<name>", API_VERSION_V1, self.on_delete_actor_reminder),
            Endpoint([_DELETE], f"{base}/timers/<name>", API_VERSION_V1, self.on_delete_actor_timer),
            Endpoint([_GET], f"{base}/reminders/<name>", API_VERSION_V1, self.on_get_actor_reminder),
        ]

    def construct_metadata_endpoints(self) -> list[Endpoint]:
        return [Endpoint([_GET], "metadata", API_VERSION_V1, self.on_get_metadata)]

    def _state_key(self, key: str) -> str:
        return f"{self.dapr_id}-{key}" if self.dapr_id else key

    def set_headers(self, ctx: RequestContext, metadata: dict[str, str]) -> None:
        """Pack the request headers into metadata under "headers"."""
        headers = [f"{key}{_HEADER_EQUALS}{value}" for key, value in ctx.headers]
        if headers:
            metadata["headers"] = _HEADER_DELIM.join(headers)

    def set_headers_on_response(
        self, metadata: dict[str, str] | None, ctx: RequestContext
    ) -> None:
        """Unpack headers carried in metadata onto the response."""
        if not metadata or "headers" not in metadata:
            return
        for header in metadata["headers"].split(_HEADER_DELIM):
            parts = header.split(_HEADER_EQUALS)
            if len(parts) >= 2:
                ctx.response.headers[parts[0]] = parts[1]

    def on_output_binding_message(self, ctx: RequestContext) -> None:
        name = ctx.param("name")
        try:
            req = OutputBindingRequest.from_json(ctx.body)
        except ValueError as err:
            _fail(ctx, 500, "ERR_INVOKE_OUTPUT_BINDING", f"can't deserialize request: {err}")
            return
        try:
            data = _to_json(req.data)
        except (TypeError, ValueError) as err:
            _fail(
                ctx, 500, "ERR_INVOKE_OUTPUT_BINDING",
                f"can't deserialize request data field: {err}",
            )
            return
        try:
            if self.send_to_output_binding is None:
                raise LookupError("no output bindings configured")
            self.send_to_output_binding(
                name, WriteRequest(data=data, metadata=dict(req.metadata or {}))
            )
        except Exception as err:  # noqa: BLE001 - any binding failure is reported
            _fail(
                ctx, 500, "ERR_INVOKE_OUTPUT_BINDING",
                f"error invoking output binding {name}: {err}",
            )
            return
        respond_empty(ctx, 200)

    @_needs_state_store
    def on_get_state(self, ctx: RequestContext) -> None:
        req = GetRequest(
            key=self._state_key(ctx.param("key")),
            consistency=ctx.query_arg("consistency"),
        )
        try:
            resp = self.state_store.get(req)
        except Exception as err:  # noqa: BLE001
            _fail(ctx, 500, "ERR_GET_STATE", str(err))
            return
        if resp is None:
            _fail(ctx, 204, "ERR_STATE_NOT_FOUND")
            return
        respond_with_etagged_json(ctx, 200, resp.data, resp.etag)

    @_needs_state_store
    def on_delete_state(self, ctx: RequestContext) -> None:
        key = ctx.param("key")
        req = DeleteRequest(
            key=key,
            etag=ctx.header("If-Match"),
            concurrency=ctx.query_arg("concurrency"),
            consistency=ctx.query_arg("consistency"),
            retry_policy=RetryPolicy(
                interval_ns=_atoi(ctx.query_arg("retryInterval")) * 1_000_000,
                threshold=_atoi(ctx.query_arg("retryThreshold")),
                pattern=ctx.query_arg("retryPattern"),
            ),
        )
        try:
            self.state_store.delete(req)
        except Exception as err:  # noqa: BLE001
            _fail(ctx, 500, "ERR_DELETE_STATE", f"failed deleting state with key {key}: {err}")

    @_needs_state_store
    def on_post_state(self, ctx: RequestContext) -> None:
        try:
            parsed = json.loads(ctx.body)
            if parsed is None:
                parsed = []
            if not isinstance(parsed, list):
                raise ValueError("state requests must be a JSON array")
            reqs = [SetRequest.from_dict(item) for item in parsed]
        except ValueError as err:
            _fail(ctx, 400, "ERR_MALFORMED_REQUEST", str(err))
            return
        reqs = [dataclasses.replace(r, key=self._state_key(r.key)) for r in reqs]
        try:
            self.state_store.bulk_set(reqs)
        except Exception as err:  # noqa: BLE001
            _fail(ctx, 500, "ERR_SAVE_REQUEST", str(err))
            return
        respond_empty(ctx, 201)

    def _actor_ref(self, ctx: RequestContext) -> tuple[str, str]:
        return ctx.param("actorType"), ctx.param("actorId")

    def _hosted(self, ctx: RequestContext, actor_type: str, actor_id: str) -> bool:
        if self.actor.is_actor_hosted(ActorHostedRequest(actor_type, actor_id)):
            return True
        _fail(ctx, 400, "ERR_ACTOR_INSTANCE_MISSING")
        return False

    def _run(self, ctx: RequestContext, error_code: str, call: Callable[[], Any], code: int) -> None:
        try:
            call()
        except Exception as err:  # noqa: BLE001
            _fail(ctx, 500, error_code, str(err))
            return
        respond_empty(ctx, code)

    @_needs_actor
    def on_create_actor_reminder(self, ctx: RequestContext) -> None:
        actor_type, actor_id = self._actor_ref(ctx)
        try:
            req = CreateReminderRequest.from_dict(json.loads(ctx.body))
        except ValueError as err:
            _fail(ctx, 400, "ERR_MALFORMED_REQUEST", str(err))
            return
        req = dataclasses.replace(
            req, name=ctx.param("name"), actor_type=actor_type, actor_id=actor_id
        )
        self._run(ctx, "ERR_CREATE_REMINDER", lambda: self.actor.create_reminder(req), 200)

    @_needs_actor
    def on_create_actor_timer(self, ctx: RequestContext) -> None:
        actor_type, actor_id = self._actor_ref(ctx)
        try:
            req = CreateTimerRequest.from_dict(json.loads(ctx.body))
        except ValueError as err:
            _fail(ctx, 400, "ERR_MALFORMED_REQUEST", str(err))
            return
        req = dataclasses.replace(
            req, name=ctx.param("name"), actor_type=actor_type, actor_id=actor_id
        )
        self._run(ctx, "ERR_CREATE_TIMER", lambda: self.actor.create_timer(req), 200)

    @_needs_actor
    def on_delete_actor_reminder(self, ctx: RequestContext) -> None:
        req = DeleteReminderRequest(*self._actor_ref(ctx), ctx.param("name"))
        self._run(ctx, "ERR_DELETE_REMINDER", lambda: self.actor.delete_reminder(req), 200)

    @_needs_actor
    def on_actor_state_transaction(self, ctx: RequestContext) -> None:
        actor_type, actor_id = self._actor_ref(ctx)
        if not self._hosted(ctx, actor_type, actor_id):
            return
        try:
            parsed = json.loads(ctx.body)
            if parsed is None:
                parsed = []
            if not isinstance(parsed, list):
                raise ValueError("operations must be a JSON array")
            ops = [TransactionalOperation.from_dict(item) for item in parsed]
        except ValueError as err:
            _fail(ctx, 400, "ERR_MALFORMED_REQUEST", str(err))
            return
        req = TransactionalRequest(actor_type=actor_type, actor_id=actor_id, operations=ops)
        self._run(
            ctx, "ERR_ACTOR_STATE_TRANSACTION",
            lambda: self.actor.transactional_state_operation(req), 201,
        )

    @_needs_actor
    def on_get_actor_reminder(self, ctx: RequestContext) -> None:
        req = GetReminderRequest(*self._actor_ref(ctx), ctx.param("name"))
        try:
            body = _to_json(self.actor.get_reminder(req))
        except Exception as err:  # noqa: BLE001
            _fail(ctx, 500, "ERR_ACTOR_GET_REMINDER", str(err))
            return
        respond_with_json(ctx, 200, body)

    @_needs_actor
    def on_delete_actor_timer(self, ctx: RequestContext) -> None:
        req = DeleteTimerRequest(*self._actor_ref(ctx), ctx.param("name"))
        self._run(ctx, "ERR_DELETE_TIMER", lambda: self.actor.delete_timer(req), 200)

    @_needs_actor
    def on_direct_actor_message(self, ctx: RequestContext) -> None:
        actor_type, actor_id = self._actor_ref(ctx)
        req = CallRequest(
            actor_type=actor_type,
            actor_id=actor_id,
            method=ctx.param("method"),
            metadata={},
            data=ctx.body,
        )
        self.set_headers(ctx, req.metadata)
        try:
            resp = self.actor.call(req)
        except Exception as err:  # noqa: BLE001
            _fail(ctx, 500, "ERR_INVOKE_ACTOR", str(err))
            return
        status = get_status_code_from_metadata(resp.metadata)
        self.set_headers_on_response(resp.metadata, ctx)
        respond_with_json(ctx, status, resp.data)

    @_needs_actor
    def on_save_actor_state(self, ctx: RequestContext) -> None:
        actor_type, actor_id = self._actor_ref(ctx)
        if not self._hosted(ctx, actor_type, actor_id):
            return
        try:
            value = json.loads(ctx.body)
        except ValueError as err:
            _fail(ctx, 400, "ERR_DESERIALIZE_HTTP_BODY", str(err))
            return
        req = SaveStateRequest(actor_type, actor_id, ctx.param("key"), value)
        self._run(ctx, "ERR_ACTOR_SAVE_STATE", lambda: self.actor.save_state(req), 201)

    @_needs_actor
    def on_get_actor_state(self, ctx: RequestContext) -> None:
        req = GetStateRequest(*self._actor_ref(ctx), ctx.param("key"))
        try:
            resp = self.actor.get_state(req)
        except Exception as err:  # noqa: BLE001
            _fail(ctx, 500, "ERR_ACTOR_GET_STATE", str(err))
            return
        respond_with_json(ctx, 200, resp.data)

    @_needs_actor
    def on_delete_actor_state(self, ctx: RequestContext) -> None:
        actor_type, actor_id = self._actor_ref(ctx)
        if not self._hosted(ctx, actor_type, actor_id):
            return
        req = DeleteStateRequest(actor_type, actor_id, ctx.param("key"))
        self._run(ctx, "ERR_ACTOR_DELETE_STATE", lambda: self.actor.delete_state(req), 200)

    def on_get_metadata(self, ctx: RequestContext) -> None:
        respond_empty(ctx, 200)

    @_needs_pub_sub
    def on_publish(self, ctx: RequestContext) -> None:
        envelope = _new_cloud_events_envelope(str(uuid.uuid4()), self.dapr_id, ctx.body)
        try:
            data = _to_json(envelope.to_dict())
        except (TypeError, ValueError) as err:
            _fail(ctx, 500, "ERR_CLOUD_EVENTS_SER", str(err))
            return
        req = PublishRequest(topic=ctx.param("topic"), data=data)
        self._run(ctx, "ERR_PUBLISH_MESSAGE", lambda: self.pub_sub.publish(req), 200)