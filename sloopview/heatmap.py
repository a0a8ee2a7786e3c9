"""Turning resource summaries into timeline rows for the heat map."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional

from .models import ResourceKey, ResourceSummary, TimelineRow

EMPTY_PARTITION = ""

_NANOS_PER_SECOND = 1_000_000_000
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _nanos(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    delta = moment - _EPOCH
    return (delta.days * 86400 + delta.seconds) * _NANOS_PER_SECOND + delta.microseconds * 1000


def _duration_nanos(span: timedelta) -> int:
    return (span.days * 86400 + span.seconds) * _NANOS_PER_SECOND + span.microseconds * 1000


def adjust_last_seen_time(
    res_sum: ResourceSummary, query_end: datetime, resync: timedelta
) -> None:
    """Extend the last-seen time to the query end if it is within one resync of it.

    A resource that was deleted is left alone. Raises ``ValueError`` if the
    last-seen time is missing.
    """
    if res_sum.deleted_at_end:
        return
    if res_sum.last_seen is None:
        raise ValueError("timestamp: nil Timestamp")
    end_ns = _nanos(query_end)
    if res_sum.last_seen + _duration_nanos(resync) >= end_ns:
        res_sum.last_seen = end_ns


def adjust_last_seen_time_map(
    res_sum_map: Mapping[ResourceKey, ResourceSummary],
    query_end: datetime,
    resync: timedelta,
) -> None:
    """Apply :func:`adjust_last_seen_time` to every summary in the map."""
    for value in res_sum_map.values():
        adjust_last_seen_time(value, query_end, resync)


def res_sum_row_to_timeline(key: ResourceKey, value: ResourceSummary) -> TimelineRow:
    """Convert one resource summary into a timeline row measured in Unix seconds."""
    if value.create_time is None or value.last_seen is None:
        raise ValueError("timestamp: nil Timestamp")
    start = value.create_time // _NANOS_PER_SECOND
    end = value.last_seen // _NANOS_PER_SECOND
    return TimelineRow(
        text=key.name,
        kind=key.kind,
        start_date=start,
        end_date=end,
        duration=end - start,
        overlays=[],
        namespace=key.namespace,
    )


def take_newest(
    left: Optional[TimelineRow], right: Optional[TimelineRow]
) -> Optional[TimelineRow]:
    """Return whichever row ends later; ``right`` wins a tie."""
    if left is None:
        return right
    if right is None:
        return left
    return left if left.end_date > right.end_date else right


def res_sum_rows_to_timeline_map(
    summaries: Mapping[ResourceKey, ResourceSummary],
) -> dict[ResourceKey, TimelineRow]:
    """Map each resource (partition cleared) to its newest timeline row."""
    result: dict[ResourceKey, TimelineRow] = {}
    for key, value in summaries.items():
        joined = replace(key, partition_id=EMPTY_PARTITION)
        row = res_sum_row_to_timeline(joined, value)
        result[joined] = take_newest(row, result.get(joined))
    return result