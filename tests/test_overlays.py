import json
from datetime import datetime, timedelta, timezone

import pytest

from sloopview.heatmap import adjust_last_seen_time_map, res_sum_rows_to_timeline_map
from sloopview.models import (
    Overlay,
    ResourceKey,
    ResourceSummary,
    TimelineRow,
    WatchActivity,
)
from sloopview.overlays import (
    adjust_overlays,
    build_timeline,
    event_count_row_to_overlays,
    event_counts_to_overlay_map,
    merge_overlays,
    merge_watch_activity,
    validate_rows,
    watch_activity_to_map,
)
from sloopview.timerange import time_filter_res_sum_map, time_filter_watch_activity_map

NS = 1_000_000_000
QUERY_START = datetime(2019, 3, 1, tzinfo=timezone.utc)
QUERY_END = QUERY_START + timedelta(minutes=60)
START_SECONDS = 1551398400
FIRST_SEEN = (START_SECONDS + 2 * 60) * NS
LAST_SEEN = (START_SECONDS + 50 * 60) * NS
EVENTS1 = START_SECONDS + 7 * 60
EVENTS2 = START_SECONDS + 28 * 60
PARTITION = "001551398400"


def _key(kind="Pod", partition=PARTITION):
    return ResourceKey(partition, kind, "somens", "somename", "someuid")


def _summaries():
    return {_key(): ResourceSummary(create_time=FIRST_SEEN, last_seen=LAST_SEEN)}


def _events():
    return {
        _key(): {
            EVENTS1: {"ImagePullError": 1, "LivenessProveFailed": 2},
            EVENTS2: {"ContainerCreated": 3},
        }
    }


def _activity():
    return {_key(): WatchActivity(no_change_at=[EVENTS1], changed_at=[EVENTS2])}


def _run(summaries, events, activity):
    time_filter_res_sum_map(summaries, QUERY_START, QUERY_END)
    time_filter_watch_activity_map(activity, QUERY_START, QUERY_END)
    adjust_last_seen_time_map(summaries, QUERY_END, timedelta(minutes=30))
    rows = res_sum_rows_to_timeline_map(summaries)
    merge_overlays(rows, event_counts_to_overlay_map(events))
    merge_watch_activity(rows, watch_activity_to_map(activity))
    root = build_timeline(rows, "")
    validate_rows(root.rows, "someReqId")
    return json.loads(root.to_json())


def test_simple_test_with_one_deployment():
    assert _run(_summaries(), {}, {}) == {
        "view_options": {"sort": ""},
        "rows": [
            {
                "text": "somename",
                "duration": 3480,
                "kind": "Pod",
                "namespace": "somens",
                "overlays": [],
                "changedat": None,
                "nochangeat": None,
                "start_date": 1551398520,
                "end_date": 1551402000,
            }
        ],
    }


def test_one_deployment_and_3_events():
    assert EVENTS1 == 1551398820
    assert EVENTS2 == 1551400080
    assert _run(_summaries(), _events(), _activity()) == {
        "view_options": {"sort": ""},
        "rows": [
            {
                "text": "somename",
                "duration": 3480,
                "kind": "Pod",
                "namespace": "somens",
                "overlays": [
                    {
                        "text": "ImagePullError:1 LivenessProveFailed:2",
                        "start_date": 1551398820,
                        "duration": 60,
                        "end_date": 1551398880,
                    },
                    {
                        "text": "ContainerCreated:3",
                        "start_date": 1551400080,
                        "duration": 60,
                        "end_date": 1551400140,
                    },
                ],
                "changedat": [1551400080],
                "nochangeat": [1551398820],
                "start_date": 1551398520,
                "end_date": 1551402000,
            }
        ],
    }


def test_event_count_row_sorted_and_empty_minutes_skipped():
    overlays = event_count_row_to_overlays({120: {"b": 2, "a": 1}, 60: {"x": 5}, 180: {}})
    assert overlays == [
        Overlay(text="x:5", start_date=60, duration=60, end_date=120),
        Overlay(text="a:1 b:2", start_date=120, duration=60, end_date=180),
    ]


def test_event_counts_join_across_partitions():
    events = {
        _key(partition="p1"): {60: {"a": 1}},
        _key(partition="p2"): {120: {"b": 2}},
    }
    result = event_counts_to_overlay_map(events)
    assert list(result) == [_key(partition="")]
    assert sorted(o.text for o in result[_key(partition="")]) == ["a:1", "b:2"]


def test_merge_overlays_node_uses_name_as_uid():
    node_key = ResourceKey("", "Node", "", "host1", "real-uid")
    rows = {node_key: TimelineRow(text="host1"), _key(partition=""): TimelineRow()}
    overlay = Overlay(text="a:1", start_date=0, duration=60, end_date=60)
    merge_overlays(rows, {ResourceKey("", "Node", "", "host1", "host1"): [overlay]})
    assert rows[node_key].overlays == [overlay]
    assert rows[_key(partition="")].overlays == []


def test_watch_activity_combined():
    activity = {
        _key(partition="p1"): WatchActivity(changed_at=[1], no_change_at=[2]),
        _key(partition="p2"): WatchActivity(changed_at=[3], no_change_at=[]),
    }
    result = watch_activity_to_map(activity)
    combined = result[_key(partition="")]
    assert sorted(combined.changed_at) == [1, 3]
    assert combined.no_change_at == [2]
    assert activity[_key(partition="p1")].changed_at == [1]


def test_merge_watch_activity_missing_leaves_none():
    rows = {_key(partition=""): TimelineRow()}
    merge_watch_activity(rows, {})
    assert rows[_key(partition="")].changed_at is None
    assert rows[_key(partition="")].no_change_at is None


def test_adjust_overlays_clips_start_and_end():
    early = Overlay(start_date=90, duration=60, end_date=150)
    late = Overlay(start_date=180, duration=60, end_date=240)
    row = TimelineRow(start_date=100, end_date=200, duration=100, overlays=[early, late])
    adjust_overlays([row])
    assert (early.start_date, early.duration, early.end_date) == (100, 50, 150)
    assert (late.start_date, late.duration, late.end_date) == (180, 20, 200)


def test_adjust_overlays_collapses_to_point():
    ol = Overlay(start_date=30, duration=60, end_date=90)
    row = TimelineRow(start_date=100, end_date=200, duration=100, overlays=[ol])
    adjust_overlays([row])
    assert (ol.start_date, ol.duration, ol.end_date) == (90, 0, 90)


def test_validate_rows_consistent():
    ol = Overlay(start_date=110, duration=60, end_date=170)
    row = TimelineRow(start_date=100, end_date=200, duration=100, overlays=[ol])
    assert validate_rows([row], "req") == []


@pytest.mark.parametrize(
    "row, fragment",
    [
        (TimelineRow(start_date=300, end_date=200, duration=-100), "start 300 > end 200"),
        (TimelineRow(start_date=100, end_date=200, duration=50), "inconsistent"),
        (TimelineRow(start_date=300, end_date=200, duration=-100), "negative duration"),
        (
            TimelineRow(
                start_date=100,
                end_date=200,
                duration=100,
                overlays=[Overlay(start_date=50, duration=60, end_date=110)],
            ),
            "Too early by 50",
        ),
        (
            TimelineRow(
                start_date=100,
                end_date=200,
                duration=100,
                overlays=[Overlay(start_date=180, duration=60, end_date=240)],
            ),
            "Runs over by 40",
        ),
    ],
)
def test_validate_rows_reports(row, fragment):
    problems = validate_rows([row], "req")
    assert any(fragment in p for p in problems)
    assert all(p.startswith("reqId: req") for p in problems)


def test_build_timeline_empty_rows_is_null():
    root = build_timeline({}, "name")
    assert json.loads(root.to_json()) == {"view_options": {"sort": "name"}, "rows": None}


def test_build_timeline_from_list_adjusts():
    ol = Overlay(start_date=90, duration=60, end_date=150)
    row = TimelineRow(start_date=100, end_date=200, duration=100, overlays=[ol])
    root = build_timeline([row], "")
    assert root.rows == [row]
    assert root.rows[0].overlays[0].start_date == 100