# sidecar

A small sidecar runtime for distributed applications, written in plain
Python with no third-party dependencies. It has two parts:

* `sidecar.httpapi` – the versioned HTTP API an application talks to in
  order to reach a state store, publish events, call output bindings and
  work with virtual actors.
* `sidecar.injector` – an admission-webhook handler that patches Kubernetes
  pods carrying the `dapr.io/enabled` annotation with a sidecar container.

## HTTP API

Every route lives under the `v1.0` version prefix:

| Methods                  | Route                                                  |
|--------------------------|--------------------------------------------------------|
| GET, DELETE              | `/v1.0/state/<key>`                                    |
| POST                     | `/v1.0/state`                                          |
| POST, PUT                | `/v1.0/publish/<topic>`                                |
| POST, PUT                | `/v1.0/bindings/<name>`                                |
| POST, PUT                | `/v1.0/actors/<actorType>/<actorId>/state`             |
| GET, POST, PUT, DELETE   | `/v1.0/actors/<actorType>/<actorId>/method/<method>`   |
| GET, POST, PUT, DELETE   | `/v1.0/actors/<actorType>/<actorId>/state/<key>`       |
| GET, POST, PUT, DELETE   | `/v1.0/actors/<actorType>/<actorId>/reminders/<name>`  |
| POST, PUT, DELETE        | `/v1.0/actors/<actorType>/<actorId>/timers/<name>`     |
| GET                      | `/v1.0/metadata`                                       |

Errors come back as JSON of the form
`{"errorCode":"ERR_STATE_STORE_NOT_FOUND","message":""}` (see
`sidecar.httpapi.errors.ErrorResponse`). A read of a missing state key
answers `204`. On reads and bulk writes the state key is prefixed with the
application id, so `good-key` for app `myapp` becomes `myapp-good-key`;
deletes pass the key through as given. Published bodies are wrapped in a
CloudEvents envelope (`sidecar.httpapi.contracts.CloudEventsEnvelope`).
`/v1.0/metadata` answers `200` with an empty body.

Build an `Api` from the components you have. Any of them may be `None`, in
which case the matching routes answer `400` with a "not found" error code:

```python
from sidecar.httpapi.api import Api
from sidecar.httpapi.config import ServerConfig
from sidecar.httpapi.server import HttpServer, build_router

api = Api(
    dapr_id="myapp",
    state_store=my_state_store,
    pub_sub=None,
    actor=None,
    send_to_output_binding=lambda name, request: None,
)

# Dispatch requests yourself ...
router = build_router(api.endpoints())
response = router.handle("GET", "/v1.0/state/good-key", [], b"")
print(response.status_code, response.headers, response.body)

# ... or serve them over HTTP in background threads.
config = ServerConfig(
    dapr_id="myapp",
    host_address="127.0.0.1",
    port=3500,
    profile_port=7777,
    allowed_origins="*",
    enable_profiling=False,
)
server = HttpServer(api, config)
server.start_non_blocking()
...
server.shutdown()
```

The components are duck-typed:

* state store: `get(GetRequest)` returning a `GetResponse` or `None`,
  `delete(DeleteRequest)`, `bulk_set(list[SetRequest])`;
* pub/sub: `publish(PublishRequest)`;
* actors: `is_actor_hosted`, `call`, `save_state`, `get_state`,
  `delete_state`, `transactional_state_operation`, `create_reminder`,
  `create_timer`, `delete_reminder`, `delete_timer`, `get_reminder`;
* output bindings: a callable taking the binding name and a `WriteRequest`.

A component reports failure by raising; the handler turns it into a `500`
error body. The request and response types live in
`sidecar.httpapi.contracts`.

Cross-origin requests are checked by `CorsPolicy` against the
comma-separated `allowed_origins`; an empty list or `*` allows any origin.
With `enable_profiling` set, a second server on `profile_port` answers every
request with a stack dump of all running threads.

## Sidecar injector

`sidecar.injector.pod_patch.get_pod_patch_operations(pod, namespace, image,
request_namespace)` turns a pod (a decoded JSON mapping) into the
`PatchOperation`s that add the `daprd` sidecar container. The pod is left
alone unless its annotations enable the sidecar and it has no `daprd`
container yet.

Recognised annotations:

* `dapr.io/enabled` – `y`, `yes`, `true`, `on` or `1` (any case) enables injection
* `dapr.io/id` – application id; defaults to the pod name
* `dapr.io/port` – application port
* `dapr.io/protocol` – defaults to `http`
* `dapr.io/config` – configuration name
* `dapr.io/profiling` – same truthy values as `dapr.io/enabled`
* `dapr.io/log-level` – defaults to `info`
* `dapr.io/max-concurrency` – defaults to `-1`

A malformed port annotation raises `AnnotationError`; a malformed
max-concurrency annotation is logged and treated as `-1`.

`Injector` wraps this in an admission-review handler:

```python
import threading

from sidecar.injector.config import Config
from sidecar.injector.injector import Injector

config = Config.from_environment()   # TLS_CERT_FILE, TLS_KEY_FILE,
                                      # SIDECAR_IMAGE, NAMESPACE and
                                      # SIDECAR_IMAGE_PULL_POLICY
injector = Injector(config)

status, body = injector.handle_request("application/json", review_bytes)

stop = threading.Event()
injector.run(stop)                    # serves /mutate over TLS on port 4000
```

`Config.from_environment` raises `ConfigError` when a required variable is
missing; `SIDECAR_IMAGE_PULL_POLICY` defaults to `Always`.

## What it does not do

The package has no command-line entry point, no gRPC API, no service-to-service
invocation route and no state store, pub/sub broker or actor runtime of its
own: those components are supplied by the caller.

## Tests

The test suite uses pytest and is installed with the `test` extra.