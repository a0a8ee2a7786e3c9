from sloopview.params import (
    ALL_KINDS,
    ALL_NAMESPACES,
    KIND_PARAM,
    NAMESPACE_PARAM,
    get_param,
)


def test_first_value_is_returned():
    params = {KIND_PARAM: ["Pod", "Deployment"]}
    assert get_param(params, KIND_PARAM) == "Pod"


def test_missing_name_gives_empty_string():
    assert get_param({KIND_PARAM: ["Pod"]}, NAMESPACE_PARAM) == ""


def test_empty_list_gives_empty_string():
    assert get_param({KIND_PARAM: []}, KIND_PARAM) == ""


def test_plain_string_value():
    assert get_param({NAMESPACE_PARAM: "some-namespace"}, NAMESPACE_PARAM) == "some-namespace"


def test_all_marker_roundtrips():
    params = {KIND_PARAM: [ALL_KINDS], NAMESPACE_PARAM: [ALL_NAMESPACES]}
    assert get_param(params, KIND_PARAM) == "_all"
    assert get_param(params, NAMESPACE_PARAM) == "_all"