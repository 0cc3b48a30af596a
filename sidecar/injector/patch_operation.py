"""A single JSON Patch step applied to a Kubernetes resource."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PatchOperation:
    """One discrete change to a Kubernetes resource."""

    op: str
    path: str
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON Patch form, leaving out an unset value."""
        result: dict[str, Any] = {"op": self.op, "path": self.path}
        if self.value is not None:
            result["value"] = self.value
        return result