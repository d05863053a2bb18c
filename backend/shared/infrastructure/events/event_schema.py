"""
Wire format of published menu events.

    {"type": "MENU_COSTS_UPDATED", "tenant_id": "t1", "location_id": "l1",
     "entity": {...}, "actor": {"service": "cost-sync"}, "ts": "...", "v": 1}
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


def _require_text(value: Any, name: str) -> None:
    if not isinstance(value, str) or not value:
        raise ValueError(f"Event {name} must be a non-empty string")


@dataclass
class Event:
    """
    One notification. ``entity`` carries the event payload and ``actor``
    names the component that produced it. ``ts`` is filled at
    serialization time when not set.
    """

    type: str
    tenant_id: str
    location_id: str
    entity: dict[str, Any] = field(default_factory=dict)
    actor: dict[str, Any] = field(default_factory=dict)
    ts: str | None = None
    v: int = 1

    def __post_init__(self) -> None:
        _require_text(self.type, "type")
        _require_text(self.tenant_id, "tenant_id")
        _require_text(self.location_id, "location_id")
        for name in ("entity", "actor"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, dict):
                raise ValueError(f"Event {name} must be a dict or None")

    def to_json(self) -> str:
        body = asdict(self)
        body["entity"] = body["entity"] or {}
        body["actor"] = body["actor"] or {}
        body["ts"] = body["ts"] or datetime.now(timezone.utc).isoformat()
        return json.dumps(body, ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, raw: str) -> Event:
        return cls(**json.loads(raw))
