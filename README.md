# sloopview

`sloopview` is the query layer behind a viewer for the history of Kubernetes
resources. It takes the parameters a web page sends, works out the time range
to look at, filters stored rows by kind, namespace, name and uid, and turns
resource summaries, event counts and watch activity into timeline rows ready
to be drawn as a Gantt chart with a per-minute heatmap overlay.

It also holds the service configuration: defaults, loading from a YAML or JSON
file, command-line style overrides and validation.

## What is in it

- `sloopview.timerange` – `compute_time_range` resolves either a `lookback`
  duration or a `start_time`/`endtime` pair into a start and end, shifted back
  so it does not run past the newest data and clipped to the maximum lookback.
  `parse_unix_time_string`, `parse_timestamp_string` and
  `time_range_from_start_end` parse the parameter values; the `time_filter_*`
  helpers and `filter_occurrences` drop or clip rows outside the range.
  Errors in the parameters raise `TimeRangeError`.
- `sloopview.durations` – `parse_duration` reads duration strings such as
  `90s`, `1h30m`, `-1.5s` or `336h` (units `ns`, `us`/`µs`, `ms`, `s`, `m`,
  `h`) into a `timedelta`, raising `ValueError` for malformed input.
- `sloopview.params` – the query parameter names, the `_all` markers and
  `get_param`, which returns the first value of a parameter or `""`.
- `sloopview.rangereadfilters` – `keep_row` and the predicates built from
  query parameters: `res_sum_filter`, `event_count_filter` and
  `watch_activity_filter` for stored keys, `res_summary_in_time_range` and
  `res_payload_in_time_range` for values.
- `sloopview.queryfilter` – namespace and kind lists for the filter drop-downs
  (`namespace_strings`, `kind_strings`, `is_namespace`, `is_kind`,
  `namespaces_json`, `kinds_json`) and the names of the available queries
  (`default_query`, `names_of_queries`, `available_queries_json`).
- `sloopview.heatmap` – `adjust_last_seen_time`, `res_sum_row_to_timeline`,
  `take_newest` and `res_sum_rows_to_timeline_map` turn resource summaries into
  `TimelineRow`s, one per resource.
- `sloopview.overlays` – event counts into `Overlay`s
  (`event_count_row_to_overlays`, `event_counts_to_overlay_map`), merging of
  overlays and watch activity onto rows (`merge_overlays`,
  `watch_activity_to_map`, `merge_watch_activity`), `adjust_overlays`,
  `validate_rows` (which logs and returns every inconsistency it finds) and
  `build_timeline`.
- `sloopview.payloads` – `PayloadOutput`, `payload_output_list`,
  `remove_dupe_payloads` (sorts by time and drops unchanged payloads) and
  `payloads_to_json`.
- `sloopview.models` – the data classes shared by all of the above:
  `ResourceKey`, `ResourceSummary`, `WatchActivity`, `WatchResult`, `Overlay`,
  `TimelineRow`, `ViewOptions`, `TimelineRoot` and `ResSummaryOutput`.
- `sloopview.config` – `SloopConfig`, `default_config`, `build_parser`,
  `load_from_file`, `config_file_path` and `init`; problems raise
  `ConfigError`.

## Example

```python
from datetime import datetime, timedelta, timezone

from sloopview.timerange import compute_time_range

end_of_data = datetime(2019, 3, 1, 4, 4, tzinfo=timezone.utc)
start, end = compute_time_range(
    {"lookback": ["2h"]},
    end_of_data,
    timedelta(hours=24),
)
```

A range shorter than one minute is widened to one minute, and a range longer
than the maximum lookback is cut down to it. Missing or conflicting parameters
raise `TimeRangeError`.

Building a timeline from resource summaries:

```python
from sloopview.heatmap import res_sum_rows_to_timeline_map
from sloopview.models import ResourceKey, ResourceSummary
from sloopview.overlays import build_timeline

key = ResourceKey.parse("/ressum/001551398400/Pod/somens/somename/someuid")
summary = ResourceSummary(create_time=1551398520 * 10**9, last_seen=1551402000 * 10**9)
rows = res_sum_rows_to_timeline_map({key: summary})
print(build_timeline(rows, sort="").to_json())
```

Loading the configuration:

```python
from sloopview.config import init

config = init(["--port", "9090", "--max-look-back", "72h"])
config.validate()
print(config.to_yaml())
```

Flags may be written with one or two dashes. The configuration file can be
named with `--config` or through the `SLOOP_CONFIG` environment variable; its
name must contain `.json` or `.yaml`, and values given as flags win over those
from the file. `validate` raises `ConfigError` for a non-positive maximum
lookback, an empty or invalid default lookback, or a cleanup frequency under
fifteen minutes.

## What it does not do

`sloopview` holds no storage and reads no database: every function works on
the mappings and records you pass in, so reading rows out of a store is up to
the caller. It does not watch a Kubernetes cluster, serves no web pages and
installs no command; `init` only builds a `SloopConfig` from defaults, a file
and an argument list.