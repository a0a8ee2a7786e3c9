"""Event-count overlays and watch activity layered onto timeline rows."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, MutableMapping
from dataclasses import replace
from typing import Union

from .heatmap import EMPTY_PARTITION
from .models import (
    Overlay,
    ResourceKey,
    TimelineRoot,
    TimelineRow,
    ViewOptions,
    WatchActivity,
)
from .rangereadfilters import NODE_KIND

log = logging.getLogger(__name__)

_BUCKET_SECONDS = 60
# Overlays are only pulled into a row when they stick out by less than this.
_ADJUST_LIMIT = 60 * 1000

MinuteCounts = Mapping[int, Mapping[str, int]]


def _joined(key: ResourceKey) -> ResourceKey:
    return replace(key, partition_id=EMPTY_PARTITION)


def event_count_row_to_overlays(map_min_to_events: MinuteCounts) -> list[Overlay]:
    """Turn per-minute reason counts into one overlay per minute, sorted by start.

    The text of each overlay lists ``reason:count`` pairs sorted by reason.
    Minutes without any reason produce no overlay.
    """
    overlays = []
    for minute, reason_counts in map_min_to_events.items():
        totals: dict[str, int] = {}
        for reason, count in reason_counts.items():
            totals[reason] = totals.get(reason, 0) + count
        if not totals:
            continue
        text = " ".join(f"{reason}:{totals[reason]}" for reason in sorted(totals))
        overlays.append(
            Overlay(
                text=text,
                start_date=minute,
                duration=_BUCKET_SECONDS,
                end_date=minute + _BUCKET_SECONDS,
            )
        )
    overlays.sort(key=lambda overlay: overlay.start_date)
    return overlays


def event_counts_to_overlay_map(
    events: Mapping[ResourceKey, MinuteCounts],
) -> dict[ResourceKey, list[Overlay]]:
    """Group overlays by resource, with the partition cleared so keys join."""
    result: dict[ResourceKey, list[Overlay]] = {}
    for key, value in events.items():
        result.setdefault(_joined(key), []).extend(event_count_row_to_overlays(value))
    return result


def merge_overlays(
    rows: Mapping[ResourceKey, TimelineRow],
    overlay_map: Mapping[ResourceKey, list[Overlay]],
) -> None:
    """Attach overlays to their rows; rows without any get an empty list.

    Events for a Node carry the node name as the uid, so Node rows are looked
    up with their name in place of the uid.
    """
    for key, row in rows.items():
        lookup = replace(key, uid=key.name) if key.kind == NODE_KIND else key
        row.overlays = list(overlay_map.get(lookup) or [])


def watch_activity_to_map(
    activity: Mapping[ResourceKey, WatchActivity],
) -> dict[ResourceKey, WatchActivity]:
    """Combine watch activity across partitions for each resource."""
    result: dict[ResourceKey, WatchActivity] = {}
    for key, value in activity.items():
        combined = result.setdefault(_joined(key), WatchActivity())
        combined.changed_at.extend(value.changed_at)
        combined.no_change_at.extend(value.no_change_at)
    return result


def merge_watch_activity(
    rows: Mapping[ResourceKey, TimelineRow],
    activity_map: Mapping[ResourceKey, WatchActivity],
) -> None:
    """Copy the change and no-change times onto the matching rows."""
    for key, row in rows.items():
        activity = activity_map.get(key)
        if activity is None:
            log.error("DEBUG: no activity - %s", key)
            continue
        row.changed_at = activity.changed_at
        row.no_change_at = activity.no_change_at


def adjust_overlays(rows: Iterable[TimelineRow]) -> None:
    """Clip overlays in place so they lie within their row's time span.

    Overlays are bucketed by minute while resources start and end mid-minute;
    an overlay clipped to nothing collapses to a single point.
    """
    rows = list(rows)
    for row in rows:
        for overlay in row.overlays or []:
            too_early = row.start_date - overlay.start_date
            if 0 < too_early < _ADJUST_LIMIT:
                overlay.start_date += too_early
                overlay.duration -= too_early
                if overlay.duration <= 0:
                    overlay.duration = 0
                    overlay.start_date = overlay.end_date
    for row in rows:
        for overlay in row.overlays or []:
            over = overlay.end_date - row.end_date
            if 0 < over < _ADJUST_LIMIT:
                overlay.end_date -= over
                overlay.duration -= over
                if overlay.duration <= 0:
                    overlay.duration = 0
                    overlay.end_date = overlay.start_date


def validate_rows(rows: Iterable[TimelineRow], request_id: str) -> list[str]:
    """Log and return a message for every inconsistency found in the rows."""
    problems: list[str] = []
    prefix = f"reqId: {request_id}"
    for row in rows:
        if row.start_date > row.end_date:
            problems.append(f"{prefix} d3 row has start {row.start_date} > end {row.end_date}")
        if row.start_date + row.duration != row.end_date:
            problems.append(
                f"{prefix} d3 row times are inconsistent. start {row.start_date} + duration "
                f"{row.duration} != end {row.end_date}.  Off by "
                f"{row.start_date + row.duration - row.end_date}"
            )
        if row.duration < 0:
            problems.append(f"{prefix} d3row has negative duration {row.duration}")
        for ol in row.overlays or []:
            if ol.start_date > ol.end_date:
                problems.append(f"{prefix} overlay has start {ol.start_date} > end {ol.end_date}")
            if ol.start_date + ol.duration != ol.end_date:
                problems.append(
                    f"{prefix} overlay times are inconsistent. start {ol.start_date} + duration "
                    f"{ol.duration} != end {ol.end_date}.  Off by "
                    f"{ol.start_date + ol.duration - ol.end_date}"
                )
            if ol.duration < 0:
                problems.append(f"{prefix} overlay has negative duration [{ol.text}] {ol.duration}")
            if ol.start_date < row.start_date:
                problems.append(
                    f"{prefix} overlay is outside the bounds of d3 row.  OL Start {ol.start_date} "
                    f"< D3 Start {row.start_date}.  Too early by {row.start_date - ol.start_date} ms"
                )
            if ol.end_date > row.end_date:
                ol_end = ol.start_date + ol.duration
                row_end = row.start_date + row.duration
                problems.append(
                    f"{prefix} overlay is outside the bounds of d3 row.  OL End {ol_end} "
                    f"> D3 End {row_end}.  Runs over by {ol_end - row_end} ms"
                )
    for problem in problems:
        log.error("%s", problem)
    return problems


def build_timeline(
    rows: Union[Mapping[ResourceKey, TimelineRow], Iterable[TimelineRow]], sort: str
) -> TimelineRoot:
    """Collect the rows, clip their overlays and wrap them with view options.

    With no rows at all the document's ``rows`` is null.
    """
    values = rows.values() if isinstance(rows, Mapping) else rows
    row_list = list(values)
    adjust_overlays(row_list)
    return TimelineRoot(
        view_options=ViewOptions(sort=sort),
        rows=row_list or None,
    )