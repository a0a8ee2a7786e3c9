"""Records read from the store and the JSON documents built from them."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

_NANOS_PER_SECOND = 1_000_000_000


def _dumps(obj: Any) -> str:
    """Indent by one space and escape HTML-sensitive characters."""
    text = json.dumps(obj, indent=1, ensure_ascii=False)
    for raw, escaped in (
        ("&", "\\u0026"),
        ("<", "\\u003c"),
        (">", "\\u003e"),
        ("\u2028", "\\u2028"),
        ("\u2029", "\\u2029"),
    ):
        text = text.replace(raw, escaped)
    return text


def _timestamp_dict(unix_nanos: int) -> dict[str, int]:
    seconds, nanos = divmod(unix_nanos, _NANOS_PER_SECOND)
    out: dict[str, int] = {}
    if seconds:
        out["seconds"] = seconds
    if nanos:
        out["nanos"] = nanos
    return out


@dataclass(frozen=True)
class ResourceKey:
    """Identifies one resource within one partition of a table."""

    partition_id: str = ""
    kind: str = ""
    namespace: str = ""
    name: str = ""
    uid: str = ""

    @classmethod
    def parse(cls, text: str) -> "ResourceKey":
        """Parse ``/<table>/<partition>/<kind>/<namespace>/<name>/<uid>``."""
        parts = text.split("/")
        if len(parts) != 7 or parts[0] != "" or not parts[1]:
            raise ValueError(f"key should have 6 parts: {text!r}")
        _, _table, partition_id, kind, namespace, name, uid = parts
        return cls(partition_id, kind, namespace, name, uid)


@dataclass
class Overlay:
    """A labelled span drawn on top of a timeline row."""

    text: str = ""
    start_date: int = 0
    duration: int = 0
    end_date: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "start_date": self.start_date,
            "duration": self.duration,
            "end_date": self.end_date,
        }


@dataclass
class TimelineRow:
    """One resource on the timeline."""

    text: str = ""
    duration: int = 0
    kind: str = ""
    namespace: str = ""
    overlays: Optional[list[Overlay]] = field(default_factory=list)
    changed_at: Optional[list[int]] = None
    no_change_at: Optional[list[int]] = None
    start_date: int = 0
    end_date: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "duration": self.duration,
            "kind": self.kind,
            "namespace": self.namespace,
            "overlays": None if self.overlays is None else [o.to_dict() for o in self.overlays],
            "changedat": None if self.changed_at is None else list(self.changed_at),
            "nochangeat": None if self.no_change_at is None else list(self.no_change_at),
            "start_date": self.start_date,
            "end_date": self.end_date,
        }


@dataclass
class ViewOptions:
    sort: str = ""


@dataclass
class TimelineRoot:
    """The document returned by the heat map query."""

    view_options: ViewOptions = field(default_factory=ViewOptions)
    rows: Optional[list[TimelineRow]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "view_options": {"sort": self.view_options.sort},
            "rows": None if self.rows is None else [row.to_dict() for row in self.rows],
        }

    def to_json(self) -> str:
        return _dumps(self.to_dict())


@dataclass
class ResourceSummary:
    """Lifetime of a resource; times are nanoseconds since the Unix epoch."""

    first_seen: Optional[int] = None
    last_seen: Optional[int] = None
    create_time: Optional[int] = None
    deleted_at_end: bool = False
    relationships: list[str] = field(default_factory=list)


@dataclass
class WatchActivity:
    """Unix seconds at which a watch saw a change or a no-op update."""

    changed_at: list[int] = field(default_factory=list)
    no_change_at: list[int] = field(default_factory=list)


@dataclass
class WatchResult:
    """One raw watch event; ``timestamp`` is nanoseconds since the epoch."""

    timestamp: Optional[int] = None
    kind: str = ""
    watch_type: int = 0
    payload: str = ""


@dataclass
class ResSummaryOutput:
    """A resource summary together with the key it was stored under."""

    key: ResourceKey = field(default_factory=ResourceKey)
    summary: ResourceSummary = field(default_factory=ResourceSummary)

    def is_empty(self) -> bool:
        return self == ResSummaryOutput()

    def to_json(self) -> str:
        out: dict[str, Any] = {
            "PartitionId": self.key.partition_id,
            "Kind": self.key.kind,
            "Namespace": self.key.namespace,
            "Name": self.key.name,
            "Uid": self.key.uid,
        }
        summary = self.summary
        if summary.first_seen is not None:
            out["firstSeen"] = _timestamp_dict(summary.first_seen)
        if summary.last_seen is not None:
            out["lastSeen"] = _timestamp_dict(summary.last_seen)
        if summary.create_time is not None:
            out["createTime"] = _timestamp_dict(summary.create_time)
        if summary.deleted_at_end:
            out["deletedAtEnd"] = True
        if summary.relationships:
            out["relationships"] = list(summary.relationships)
        return _dumps(out)