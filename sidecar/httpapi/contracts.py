"""Requests and responses exchanged with state stores, pub/sub, bindings and actors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

CLOUD_EVENTS_SPEC_VERSION = "0.3"
DEFAULT_CLOUD_EVENT_TYPE = "com.dapr.event.sent"
UPSERT = "upsert"
DELETE = "delete"


def _object(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be a JSON object")
    return data


def _string(data: dict[str, Any], name: str) -> str:
    value = data.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    return value


def _integer(data: dict[str, Any], name: str) -> int:
    value = data.get(name)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    return value


def _string_map(data: dict[str, Any], name: str) -> dict[str, str]:
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict) or not all(
        isinstance(item, str) for item in value.values()
    ):
        raise ValueError(f"{name} must map strings to strings")
    return dict(value)


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how far apart a failing state operation is retried."""

    interval_ns: int = 0
    threshold: int = 0
    pattern: str = ""


def _retry_policy(data: Any) -> RetryPolicy:
    if data is None:
        return RetryPolicy()
    data = _object(data, "retryPolicy")
    return RetryPolicy(
        interval_ns=_integer(data, "interval"),
        threshold=_integer(data, "threshold"),
        pattern=_string(data, "pattern"),
    )


@dataclass
class GetRequest:
    """A read of one key from a state store."""

    key: str
    consistency: str = ""


@dataclass
class GetResponse:
    """A value read from a state store and its ETag."""

    data: bytes = b""
    etag: str = ""


@dataclass
class SetRequest:
    """A write of one key to a state store."""

    key: str = ""
    value: Any = None
    etag: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    concurrency: str = ""
    consistency: str = ""
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    @classmethod
    def from_dict(cls, data: Any) -> SetRequest:
        """Build a request from its JSON form; raise ValueError when malformed."""
        data = _object(data, "state request")
        options = data.get("options")
        options = {} if options is None else _object(options, "options")
        return cls(
            key=_string(data, "key"),
            value=data.get("value"),
            etag=_string(data, "etag"),
            metadata=_string_map(data, "metadata"),
            concurrency=_string(options, "concurrency"),
            consistency=_string(options, "consistency"),
            retry_policy=_retry_policy(options.get("retryPolicy")),
        )


@dataclass
class DeleteRequest:
    """A removal of one key from a state store."""

    key: str
    etag: str = ""
    concurrency: str = ""
    consistency: str = ""
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass
class PublishRequest:
    """A message to publish on a topic."""

    topic: str
    data: bytes = b""


@dataclass
class WriteRequest:
    """A payload sent to an output binding."""

    data: bytes = b""
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class CloudEventsEnvelope:
    """A published event wrapped in a CloudEvents envelope."""

    event_id: str
    source: str
    event_type: str
    data: Any
    data_content_type: str
    spec_version: str = CLOUD_EVENTS_SPEC_VERSION

    def to_dict(self) -> dict[str, Any]:
        """Return the wire form as a dictionary."""
        return {
            "id": self.event_id,
            "source": self.source,
            "type": self.event_type,
            "specversion": self.spec_version,
            "datacontenttype": self.data_content_type,
            "data": self.data,
        }


@dataclass
class ActorHostedRequest:
    """Asks whether an actor instance lives on this host."""

    actor_type: str
    actor_id: str


@dataclass
class CallRequest:
    """A method call on an actor."""

    actor_type: str
    actor_id: str
    method: str
    metadata: dict[str, str] = field(default_factory=dict)
    data: bytes = b""


@dataclass
class CallResponse:
    """What an actor method call returned."""

    data: bytes = b""
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class SaveStateRequest:
    """A write of one key of an actor's state."""

    actor_type: str
    actor_id: str
    key: str
    value: Any = None


@dataclass
class GetStateRequest:
    """A read of one key of an actor's state."""

    actor_type: str
    actor_id: str
    key: str


@dataclass
class StateResponse:
    """A value read from an actor's state."""

    data: bytes = b""


@dataclass
class DeleteStateRequest:
    """A removal of one key of an actor's state."""

    actor_type: str
    actor_id: str
    key: str


@dataclass
class CreateReminderRequest:
    """A durable reminder to register for an actor."""

    name: str = ""
    actor_type: str = ""
    actor_id: str = ""
    data: Any = None
    due_time: str = ""
    period: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> CreateReminderRequest:
        """Build a request from its JSON form; raise ValueError when malformed."""
        data = _object(data, "reminder request")
        return cls(
            name=_string(data, "name"),
            actor_type=_string(data, "actorType"),
            actor_id=_string(data, "actorId"),
            data=data.get("data"),
            due_time=_string(data, "dueTime"),
            period=_string(data, "period"),
        )


@dataclass
class CreateTimerRequest:
    """A timer to register for an actor."""

    name: str = ""
    actor_type: str = ""
    actor_id: str = ""
    data: Any = None
    due_time: str = ""
    period: str = ""
    callback: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> CreateTimerRequest:
        """Build a request from its JSON form; raise ValueError when malformed."""
        data = _object(data, "timer request")
        return cls(
            name=_string(data, "name"),
            actor_type=_string(data, "actorType"),
            actor_id=_string(data, "actorId"),
            data=data.get("data"),
            due_time=_string(data, "dueTime"),
            period=_string(data, "period"),
            callback=_string(data, "callback"),
        )


@dataclass
class DeleteReminderRequest:
    """Removes a named reminder of an actor."""

    actor_type: str
    actor_id: str
    name: str


@dataclass
class DeleteTimerRequest:
    """Removes a named timer of an actor."""

    actor_type: str
    actor_id: str
    name: str


@dataclass
class GetReminderRequest:
    """Reads a named reminder of an actor."""

    actor_type: str
    actor_id: str
    name: str


@dataclass
class TransactionalOperation:
    """One step of an actor state transaction."""

    operation: str = ""
    request: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> TransactionalOperation:
        """Build an operation from its JSON form; raise ValueError when malformed."""
        data = _object(data, "transactional operation")
        return cls(operation=_string(data, "operation"), request=data.get("request"))


@dataclass
class TransactionalRequest:
    """A batch of state operations applied to one actor."""

    actor_type: str
    actor_id: str
    operations: list[TransactionalOperation] = field(default_factory=list)