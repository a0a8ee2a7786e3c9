"""Working out the time range of a query and clipping rows to it."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, MutableMapping
from datetime import datetime, timedelta, timezone

from .durations import parse_duration
from .models import ResourceSummary, WatchActivity
from .params import END_TIME_PARAM, LOOKBACK_PARAM, START_TIME_PARAM, get_param

log = logging.getLogger(__name__)

MIN_LOOKBACK = timedelta(minutes=1)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_UNIX_INT = re.compile(r"[+-]?[0-9]+")
_TIMESTAMP = re.compile(r"([0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2})(?:\.([0-9]+))?")


class TimeRangeError(ValueError):
    """The time range parameters of a query are missing or malformed."""


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _to_unix_nanos(moment: datetime) -> int:
    delta = _as_utc(moment) - _EPOCH
    return (delta.days * 86400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1000


def _unix_seconds(moment: datetime) -> int:
    return _to_unix_nanos(moment) // 1_000_000_000


def compute_time_range(
    params: Mapping, end_of_time: datetime, max_lookback: timedelta
) -> tuple[datetime, datetime]:
    """Return the (start, end) of a query.

    Either ``lookback`` is given (optionally with ``endtime`` as an ISO
    timestamp; otherwise ``end_of_time`` is the end), or both ``start_time``
    and ``endtime`` as Unix seconds. The range is shifted back so it does not
    end after ``end_of_time``, widened to at least a minute and narrowed to at
    most ``max_lookback``.
    """
    end_of_time = _as_utc(end_of_time)
    lookback_text = get_param(params, LOOKBACK_PARAM)
    start_text = get_param(params, START_TIME_PARAM)
    end_text = get_param(params, END_TIME_PARAM)

    if not start_text and not end_text and not lookback_text:
        raise TimeRangeError(
            f"Time range must be set with either [{LOOKBACK_PARAM}] or both of "
            f"[{START_TIME_PARAM},{END_TIME_PARAM}] but all 3 were empty"
        )
    if lookback_text:
        if start_text:
            raise TimeRangeError(
                f"When [{LOOKBACK_PARAM}] is set, you can not set both of "
                f"[{START_TIME_PARAM},{END_TIME_PARAM}] or set only [{START_TIME_PARAM}].  "
                f"Got ({lookback_text},{start_text},{end_text}) respectively"
            )
    elif not start_text or not end_text:
        raise TimeRangeError(
            f"Either {START_TIME_PARAM} and {END_TIME_PARAM} both need to be set or neither set.  "
            f"Got ({start_text},{end_text}) respectively"
        )

    if lookback_text:
        end = end_of_time if not end_text else parse_timestamp_string(end_text)
        try:
            span = parse_duration(lookback_text)
        except ValueError as err:
            log.error("Invalid lookback param: %s.  err: %s", lookback_text, err)
            raise TimeRangeError(str(err)) from err
        start = end - span
    else:
        start, end = time_range_from_start_end(start_text, end_text)

    if end > end_of_time:
        shift = end - end_of_time
        start -= shift
        end -= shift

    if end - start < MIN_LOOKBACK:
        start = end - MIN_LOOKBACK
    if end - start > max_lookback:
        start = end - max_lookback
    return start, end


def time_range_from_start_end(start_text: str, end_text: str) -> tuple[datetime, datetime]:
    """Parse a pair of Unix-seconds strings."""
    return parse_unix_time_string(start_text), parse_unix_time_string(end_text)


def parse_unix_time_string(text: str) -> datetime:
    """Parse a decimal count of seconds since the Unix epoch into a UTC time."""
    if not _UNIX_INT.fullmatch(text):
        raise TimeRangeError(f"invalid unix time {text!r}")
    seconds = int(text)
    if not _INT64_MIN <= seconds <= _INT64_MAX:
        raise TimeRangeError(f"unix time out of range {text!r}")
    try:
        return _EPOCH + timedelta(seconds=seconds)
    except OverflowError as err:
        raise TimeRangeError(f"unix time out of range {text!r}") from err


def parse_timestamp_string(text: str) -> datetime:
    """Parse ``YYYY-MM-DDTHH:MM:SS`` (fractional seconds allowed) as UTC."""
    match = _TIMESTAMP.fullmatch(text)
    if not match:
        raise TimeRangeError(f"cannot parse {text!r} as YYYY-MM-DDTHH:MM:SS")
    try:
        moment = datetime.strptime(match.group(1), "%Y-%m-%dT%H:%M:%S")
    except ValueError as err:
        raise TimeRangeError(f"cannot parse {text!r}: {err}") from err
    fraction = match.group(2)
    if fraction:
        moment += timedelta(microseconds=int(fraction[:6].ljust(6, "0")))
    return moment.replace(tzinfo=timezone.utc)


def time_filter_res_sum_value(
    value: ResourceSummary, query_start: datetime, query_end: datetime
) -> bool:
    """Decide whether a summary overlaps the range, clipping it to the range.

    Returns False when it lies wholly outside. Raises ``ValueError`` if the
    create time or last-seen time is missing.
    """
    if value.create_time is None or value.last_seen is None:
        raise ValueError("timestamp: nil Timestamp")
    start_ns = _to_unix_nanos(query_start)
    end_ns = _to_unix_nanos(query_end)
    if value.create_time > end_ns or value.last_seen < start_ns:
        return False
    if value.create_time < start_ns:
        value.create_time = start_ns
    if value.last_seen > end_ns:
        value.last_seen = end_ns
    return True


def time_filter_res_sum_map(
    res_sum_map: MutableMapping, query_start: datetime, query_end: datetime
) -> None:
    """Clip every summary in place and drop those outside the range."""
    for key, value in list(res_sum_map.items()):
        if not time_filter_res_sum_value(value, query_start, query_end):
            del res_sum_map[key]


def filter_occurrences(
    occurrences: Iterable[int], query_start: datetime, query_end: datetime
) -> list[int]:
    """Keep the Unix-second occurrences that fall within the range, inclusive."""
    start = _unix_seconds(query_start)
    end = _unix_seconds(query_end)
    return [when for when in occurrences if start <= when <= end]


def time_filter_watch_activity(
    activity: WatchActivity, query_start: datetime, query_end: datetime
) -> WatchActivity:
    """Drop occurrences outside the range from ``activity`` and return it."""
    activity.changed_at = filter_occurrences(activity.changed_at, query_start, query_end)
    activity.no_change_at = filter_occurrences(activity.no_change_at, query_start, query_end)
    return activity


def time_filter_watch_activity_map(
    activity_map: MutableMapping, query_start: datetime, query_end: datetime
) -> None:
    """Filter every activity in place and drop those left with nothing."""
    for key, value in list(activity_map.items()):
        filtered = time_filter_watch_activity(value, query_start, query_end)
        if not filtered.changed_at and not filtered.no_change_at:
            del activity_map[key]
        else:
            activity_map[key] = filtered