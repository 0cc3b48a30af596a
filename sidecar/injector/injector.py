"""Admission webhook that patches sidecar-enabled pods."""

from __future__ import annotations

import base64
import json
import logging
import ssl
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from sidecar.injector.config import Config
from sidecar.injector.pod_patch import AnnotationError, get_pod_patch_operations

_log = logging.getLogger(__name__)

PORT = 4000
MUTATE_PATH = "/mutate"
_JSON_CONTENT_TYPE = "application/json"
_SHUTDOWN_POLL_SECONDS = 0.1


def to_admission_response(error: BaseException | str) -> dict[str, Any]:
    """Return an admission response that carries an error message."""
    return {
        "uid": "",
        "allowed": False,
        "status": {"metadata": {}, "message": str(error)},
    }


def _compact(obj: Any) -> bytes:
    return json.dumps(obj, separators=(",", ":")).encode("utf-8")


def _plain_error(code: int, message: str) -> tuple[int, bytes]:
    return code, (message + "\n").encode("utf-8")


class Injector:
    """The sidecar injector webhook server."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self.port = PORT

    @property
    def address(self) -> str:
        """The address the webhook listens on."""
        return f":{self.port}"

    def _review_patch(self, review: Any) -> list:
        if not isinstance(review, dict):
            raise ValueError("admission review must be a JSON object")
        request = review.get("request")
        if not isinstance(request, dict):
            raise ValueError("admission review has no request")
        kind = (request.get("kind") or {}).get("kind", "")
        if kind != "Pod":
            raise ValueError(f"invalid kind for review: {review.get('kind', '')}")
        pod = request.get("object")
        if not isinstance(pod, dict):
            raise ValueError("could not unmarshal raw object: not a JSON object")
        return get_pod_patch_operations(
            pod,
            self.config.namespace,
            self.config.sidecar_image,
            request.get("namespace", "") or "",
        )

    def handle_request(self, content_type: str, body: bytes) -> tuple[int, bytes]:
        """Answer one admission review; return the HTTP status and body."""
        if not body:
            _log.error("empty body")
            return _plain_error(400, "empty body")
        if content_type != _JSON_CONTENT_TYPE:
            _log.error("Content-Type=%s, expect application/json", content_type)
            return _plain_error(415, "invalid Content-Type, expect `application/json`")

        review: Any = None
        try:
            review = json.loads(body)
            patch_ops = self._review_patch(review)
        except (ValueError, AnnotationError) as err:
            _log.error("%s", err)
            response = to_admission_response(err)
        else:
            if not patch_ops:
                response = {"uid": "", "allowed": True}
            else:
                patch = _compact([op.to_dict() for op in patch_ops])
                _log.info("AdmissionResponse: patch=%s", patch.decode("utf-8"))
                response = {
                    "uid": "",
                    "allowed": True,
                    "patch": base64.b64encode(patch).decode("ascii"),
                    "patchType": "JSONPatch",
                }

        if isinstance(review, dict) and isinstance(review.get("request"), dict):
            response["uid"] = review["request"].get("uid", "") or ""

        try:
            encoded = _compact({"response": response})
        except (TypeError, ValueError) as err:
            _log.error("can't encode response: %s", err)
            return _plain_error(500, f"could not encode response: {err}")
        _log.info("ready to write response ...")
        return 200, encoded

    def run(self, stop_event: threading.Event) -> None:
        """Serve over TLS until stop_event is set or serving fails."""
        try:
            server = _WebhookServer(("", self.port), self)
        except OSError as err:
            _log.error("Sidecar injector error: %s", err)
            return
        try:
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
            context.load_cert_chain(self.config.tls_cert_file, self.config.tls_key_file)
            server.socket = context.wrap_socket(
                server.socket, server_side=True, do_handshake_on_connect=False
            )
        except (OSError, ssl.SSLError) as err:
            _log.error("Sidecar injector error: %s", err)
            server.server_close()
            return

        done = threading.Event()

        def watch() -> None:
            while not done.is_set():
                if stop_event.wait(_SHUTDOWN_POLL_SECONDS):
                    _log.info("Sidecar injector is shutting down")
                    server.shutdown()
                    return

        watcher = threading.Thread(target=watch, name="injector-shutdown", daemon=True)
        watcher.start()
        _log.info(
            "Sidecar injector is listening on %s, patching Dapr-enabled pods", self.address
        )
        try:
            server.serve_forever()
        except Exception as err:  # noqa: BLE001 - any serving failure ends the run
            _log.error("Sidecar injector error: %s", err)
        finally:
            done.set()
            server.server_close()
            watcher.join(timeout=5)


class _WebhookServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: tuple[str, int], injector: Injector) -> None:
        self.injector = injector
        super().__init__(address, _WebhookHandler)


class _WebhookHandler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def _serve(self) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length > 0 else b""
        if self.path.partition("?")[0] != MUTATE_PATH:
            status, payload, content_type = 404, b"404 page not found\n", "text/plain"
        else:
            server: _WebhookServer = self.server  # type: ignore[assignment]
            status, payload = server.injector.handle_request(
                self.headers.get("Content-Type", ""), body
            )
            content_type = _JSON_CONTENT_TYPE if status == 200 else "text/plain"
        self.send_response(status)
        self.send_header("Content-Type", f"{content_type}; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(payload)

    do_GET = do_POST = do_PUT = do_DELETE = do_PATCH = do_HEAD = _serve

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        _log.debug("%s - %s", self.address_string(), format % args)