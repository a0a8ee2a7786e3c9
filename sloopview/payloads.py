"""Resource payload history as returned to the web page."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .models import WatchResult, _dumps


@dataclass
class PayloadOutput:
    """One stored payload of a resource and when it was seen."""

    payload_key: str = ""
    payload_time: int = 0
    payload: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "payloadKey": self.payload_key,
            "payloadTime": self.payload_time,
        }
        if self.payload:
            out["payload"] = self.payload
        return out


def _key_timestamp(key: str) -> int:
    parts = key.split("/")
    if len(parts) != 7 or parts[0] != "":
        raise ValueError(f"key should have 6 parts: {key!r}")
    try:
        return int(parts[6])
    except ValueError as err:
        raise ValueError(f"key has an invalid timestamp: {key!r}") from err


def payload_output_list(watch_results: Mapping[str, WatchResult]) -> list[PayloadOutput]:
    """Build outputs from watch-table keys (ending in Unix nanoseconds) and results."""
    return [
        PayloadOutput(payload_key=key, payload_time=_key_timestamp(key), payload=value.payload)
        for key, value in watch_results.items()
    ]


def remove_dupe_payloads(payloads: Iterable[PayloadOutput]) -> list[PayloadOutput]:
    """Sort by time and drop entries whose payload equals the one before."""
    result: list[PayloadOutput] = []
    last = ""
    for item in sorted(payloads, key=lambda p: p.payload_time):
        if item.payload != last:
            result.append(item)
        last = item.payload
    return result


def payloads_to_json(payloads: Iterable[PayloadOutput]) -> str:
    """JSON list of the payload outputs."""
    return _dumps([p.to_dict() for p in payloads])