"""Predicates used to select rows while reading a range of the store."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timezone

from .models import ResourceKey, ResourceSummary, WatchResult
from .params import (
    ALL_KINDS,
    ALL_NAMESPACES,
    KIND_PARAM,
    NAME_MATCH_PARAM,
    NAME_PARAM,
    NAMESPACE_PARAM,
    UUID_PARAM,
    get_param,
)

NODE_KIND = "Node"
NAMESPACE_KIND = "Namespace"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

KeyPredicate = Callable[[str], bool]


def _nanos(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    delta = moment - _EPOCH
    return (delta.days * 86400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1000


def keep_row(
    name: str,
    kind: str,
    namespace: str,
    selected_kind: str,
    selected_namespace: str,
    name_substring: str,
    name_exact: str,
    selected_uuid: str,
    uuid: str,
) -> bool:
    """Decide whether a row matches the user's selection.

    Nodes have no namespace and are hidden when all kinds are shown within a
    single namespace; selecting the Node kind ignores the namespace. A
    Namespace resource is matched on its own name instead of its namespace.
    """
    if selected_kind != ALL_KINDS:
        if selected_kind != kind:
            return False
    elif selected_namespace != ALL_NAMESPACES and kind == NODE_KIND:
        return False

    if selected_namespace != ALL_NAMESPACES and selected_kind != NODE_KIND:
        compared = name if kind == NAMESPACE_KIND else namespace
        if selected_namespace != compared:
            return False

    if name_substring and name_substring not in name:
        return False
    if name_exact and name.casefold() != name_exact.casefold():
        return False
    if selected_uuid and selected_uuid != uuid:
        return False
    return True


def _key_filter(
    name_substring: str,
    selected_kind: str,
    selected_namespace: str,
    name_exact: str,
    selected_uuid: str,
    use_uid: bool,
) -> KeyPredicate:
    def predicate(key: str) -> bool:
        try:
            parsed = ResourceKey.parse(key)
        except ValueError:
            return False
        return keep_row(
            parsed.name,
            parsed.kind,
            parsed.namespace,
            selected_kind,
            selected_namespace,
            name_substring,
            name_exact,
            selected_uuid,
            parsed.uid if use_uid else "",
        )

    return predicate


def res_sum_filter(params: Mapping) -> KeyPredicate:
    """Key predicate for the resource summary table."""
    return _key_filter(
        get_param(params, NAME_MATCH_PARAM),
        get_param(params, KIND_PARAM),
        get_param(params, NAMESPACE_PARAM),
        get_param(params, NAME_PARAM),
        get_param(params, UUID_PARAM),
        use_uid=True,
    )


def event_count_filter(params: Mapping) -> KeyPredicate:
    """Key predicate for the event count table; matches on name substring only."""
    return _key_filter(
        get_param(params, NAME_MATCH_PARAM),
        get_param(params, KIND_PARAM),
        get_param(params, NAMESPACE_PARAM),
        "",
        "",
        use_uid=False,
    )


def watch_activity_filter(params: Mapping) -> KeyPredicate:
    """Key predicate for the watch activity table."""
    return _key_filter(
        get_param(params, NAME_MATCH_PARAM),
        get_param(params, KIND_PARAM),
        get_param(params, NAMESPACE_PARAM),
        get_param(params, NAME_PARAM),
        get_param(params, UUID_PARAM),
        use_uid=True,
    )


def res_summary_in_time_range(
    start: datetime, end: datetime
) -> Callable[[ResourceSummary], bool]:
    """Value predicate: the summary's first/last seen span overlaps the range."""
    start_ns = _nanos(start)
    end_ns = _nanos(end)

    def predicate(value: ResourceSummary) -> bool:
        if value.first_seen is None or value.last_seen is None:
            return False
        return not (value.first_seen > end_ns or value.last_seen < start_ns)

    return predicate


def res_payload_in_time_range(
    start: datetime, end: datetime
) -> Callable[[WatchResult], bool]:
    """Value predicate: the watch result's timestamp lies within the range."""
    start_ns = _nanos(start)
    end_ns = _nanos(end)

    def predicate(value: WatchResult) -> bool:
        if value.timestamp is None:
            return False
        return start_ns <= value.timestamp <= end_ns

    return predicate