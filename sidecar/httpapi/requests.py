"""Request bodies accepted by the HTTP API."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


@dataclass
class OutputBindingRequest:
    """A request to invoke an output binding."""

    metadata: dict[str, str] | None = None
    data: Any = None

    @classmethod
    def from_json(cls, body: bytes | str) -> OutputBindingRequest:
        """Parse a request body; raise ValueError when it is malformed."""
        parsed = json.loads(body)
        if parsed is None:
            return cls()
        if not isinstance(parsed, dict):
            raise ValueError("output binding request must be a JSON object")
        metadata = parsed.get("metadata")
        if metadata is not None:
            if not isinstance(metadata, dict) or not all(
                isinstance(value, str) for value in metadata.values()
            ):
                raise ValueError("metadata must map strings to strings")
        return cls(metadata=metadata, data=parsed.get("data"))

    def to_json(self) -> bytes:
        """Return the wire form as compact JSON bytes."""
        text = json.dumps(
            {"metadata": self.metadata, "data": self.data},
            ensure_ascii=False,
            separators=(",", ":"),
        )
        for raw, escaped in _ESCAPES.items():
            text = text.replace(raw, escaped)
        return text.encode("utf-8")