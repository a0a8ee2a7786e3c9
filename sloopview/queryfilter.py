"""Namespace and kind listings, and the catalogue of available queries."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, MutableSet

from .models import ResourceKey
from .params import ALL_KINDS, ALL_NAMESPACES

NAMESPACE_KIND = "Namespace"

QUERY_NAMES = (
    "EventHeatMap",
    "GetEventData",
    "GetResPayload",
    "Namespaces",
    "Kinds",
    "Queries",
    "GetResSummaryData",
)


def _to_json(obj: object) -> str:
    return json.dumps(obj, indent=1, ensure_ascii=False)


def namespace_strings(keys: Iterable[ResourceKey]) -> list[str]:
    """Sorted distinct names of the given (Namespace) resource keys."""
    return sorted({key.name for key in keys})


def kind_strings(keys: Iterable[ResourceKey]) -> list[str]:
    """Sorted distinct kinds of the given keys, led by an empty string."""
    return sorted({"", *(key.kind for key in keys)})


def is_namespace(key: str) -> bool:
    """True if the stored key belongs to a Namespace resource."""
    try:
        return ResourceKey.parse(key).kind == NAMESPACE_KIND
    except ValueError:
        return False


def keep_resource_summary_kind(key: str, kind_exists: MutableSet[str]) -> bool:
    """True the first time a kind is seen; records it in ``kind_exists``."""
    try:
        kind = ResourceKey.parse(key).kind
    except ValueError:
        return False
    if kind in kind_exists:
        return False
    kind_exists.add(kind)
    return True


def is_kind(kind_exists: MutableSet[str]) -> Callable[[str], bool]:
    """Key predicate that passes each kind once, collecting them in ``kind_exists``."""

    def predicate(key: str) -> bool:
        return keep_resource_summary_kind(key, kind_exists)

    return predicate


def namespaces_json(keys: Iterable[ResourceKey]) -> str:
    """JSON list of namespace names followed by the all-namespaces marker."""
    return _to_json([*namespace_strings(keys), ALL_NAMESPACES])


def kinds_json(kinds: Iterable[str]) -> str:
    """Sorted JSON list of the kinds together with the all-kinds marker."""
    return _to_json(sorted([ALL_KINDS, *set(kinds)]))


def default_query() -> str:
    return "EventHeatMap"


def names_of_queries() -> list[str]:
    """Names of the queries offered to the user."""
    return ["EventHeatMap"]


def available_queries_json() -> str:
    return _to_json(names_of_queries())