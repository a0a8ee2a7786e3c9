import json

from sloopview.models import ResourceKey
from sloopview.queryfilter import (
    available_queries_json,
    default_query,
    is_kind,
    is_namespace,
    keep_resource_summary_kind,
    kind_strings,
    kinds_json,
    names_of_queries,
    namespace_strings,
    namespaces_json,
)

NS_KEY = "/ressum/001546398000/Namespace//mynamespace/68510937-4ffc-11e9-8e26-1418775557c8"
DEPLOY_KEY = "/ressum/001546398000/Deployment/namespace-b/somename-b/45510937-d4fc-11e9-8e26-14187754567"


def test_get_namespaces_success():
    keys = [NS_KEY, DEPLOY_KEY]
    selected = [ResourceKey.parse(k) for k in keys if is_namespace(k)]
    assert json.loads(namespaces_json(selected)) == ["mynamespace", "_all"]


def test_get_namespaces_empty_namespace():
    keys = [
        "/ressum/001546398000/SomeKind/namespace-a/mynamespace/68510937-4ffc-11e9-8e26-1418775557c8",
        "/ressum/001546398000/SomeKind/namespace-b/somename-b/45510937-d4fc-11e9-8e26-14187754567",
    ]
    selected = [ResourceKey.parse(k) for k in keys if is_namespace(k)]
    assert json.loads(namespaces_json(selected)) == ["_all"]


def test_namespaces_json_format():
    assert namespaces_json([ResourceKey(name="a")]) == '[\n "a",\n "_all"\n]'


def test_get_kinds_simple_case():
    seen = set()
    predicate = is_kind(seen)
    passed = [k for k in [NS_KEY, DEPLOY_KEY] if predicate(k)]
    assert len(passed) == 2
    assert json.loads(kinds_json(seen)) == ["Deployment", "Namespace", "_all"]


def test_namespace_strings():
    keys = [
        ResourceKey("0", "Namespace", "", "name1", "uid1"),
        ResourceKey("1", "Namespace", "", "name2", "uid2"),
        ResourceKey("2", "Namespace", "", "name2", "uid23"),
    ]
    assert namespace_strings(keys) == ["name1", "name2"]


def test_is_namespace_namespace():
    key = "/ressum/001567094400/Namespace//some-othernamespace/96b0e282-9744-11e8-9d31-1418775557c8"
    assert is_namespace(key) is True


def test_is_namespace_kind_with_namespace():
    key = "/ressum/001562961600/Deployment/some-namespace/some-name/f8f372a3-f731-11e8-b3bd-e24c7f08fac6"
    assert is_namespace(key) is False


def test_is_namespace_kind_without_namespace():
    assert is_namespace("/eventcount/001567022400/Node//somehost/somehost") is False


def test_is_namespace_malformed():
    assert is_namespace("garbage") is False


def test_is_kind_empty():
    seen = set()
    key = "/ressum/001567105200/StatefulSet/some-namespace/some-name/52071bcf-64cf-11e9-b4c3-1418774b3e9d"
    assert is_kind(seen)(key) is True
    assert seen == {"StatefulSet"}


def test_is_kind_kind_exists():
    seen = {"Deployment"}
    key = "/ressum/001562961600/Deployment/some-namespace/some-name/f8f372a3-f731-11e8-b3bd-e24c7f08fac6"
    assert is_kind(seen)(key) is False


def test_keep_resource_summary_kind_only_first_time():
    seen = set()
    assert keep_resource_summary_kind(DEPLOY_KEY, seen) is True
    assert keep_resource_summary_kind(DEPLOY_KEY, seen) is False
    assert keep_resource_summary_kind("bad", seen) is False


def test_kind_strings():
    keys = [
        ResourceKey("0", "Pod", "", "name1", "uid1"),
        ResourceKey("1", "Deployment", "", "name2", "uid2"),
        ResourceKey("2", "Deployment", "", "name2", "uid23"),
    ]
    assert kind_strings(keys) == ["", "Deployment", "Pod"]


def test_query_catalogue():
    assert default_query() == "EventHeatMap"
    assert names_of_queries() == ["EventHeatMap"]
    assert json.loads(available_queries_json()) == ["EventHeatMap"]