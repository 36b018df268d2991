import random

from apiprobe.config import RunConfiguration
from apiprobe.models import Parameter, ParameterLocation, TestCase, VariableOverrides
from apiprobe.placeholders import PlaceholderResolver
from apiprobe.request_builder import build_request, path_variables, split_base_url, to_curl


def _config(**kwargs) -> RunConfiguration:
    return RunConfiguration(base_url="http://api.local", **kwargs)


def test_path_variable_override():
    case = TestCase(path="/api/users/{id}", method="GET")
    request = build_request(case, _config(), VariableOverrides(path={"id": "42"}))
    assert request.url == "http://api.local/api/users/42"


def test_path_variable_left_empty():
    case = TestCase(path="/api/users/{id}", method="GET")
    request = build_request(case, _config())
    assert request.url == "http://api.local/api/users/"
    middle = build_request(TestCase(path="/a/{id}/b", method="GET"), _config())
    assert middle.path == "/a//b"


def test_path_variable_random_value():
    case = TestCase(
        path="/api/users/{id}",
        method="GET",
        parameters=(Parameter("id", ParameterLocation.PATH, schema={"type": "integer"}),),
    )
    config = _config(use_random_values=True)
    request = build_request(case, config, resolver=PlaceholderResolver.for_config(config, random.Random(1)))
    assert int(request.path.rsplit("/", 1)[1]) >= 1


def test_unset_query_parameter_is_omitted():
    case = TestCase(
        path="/api/orders",
        method="GET",
        parameters=(Parameter("status", ParameterLocation.QUERY),),
    )
    request = build_request(case, _config())
    assert request.url == "http://api.local/api/orders"
    assert "status" not in request.url


def test_query_parameters_encoded():
    case = TestCase(
        path="/search",
        method="GET",
        parameters=(
            Parameter("q", ParameterLocation.QUERY),
            Parameter("limit", ParameterLocation.QUERY, schema={"type": "integer", "default": 10}),
        ),
    )
    request = build_request(case, _config(), VariableOverrides(query={"q": "a b&c"}))
    assert request.query == "q=a%20b%26c&limit=10"
    assert request.url.endswith("/search?q=a%20b%26c&limit=10")


def test_default_headers():
    request = build_request(TestCase(path="/ping", method="GET"), _config())
    assert request.headers == (("Accept", "application/json"),)


def test_custom_headers_replace_defaults():
    config = _config(custom_headers="X-Api-Key: abc")
    request = build_request(TestCase(path="/ping", method="GET"), config)
    assert request.headers == (("X-Api-Key", "abc"), ("Accept", "application/json"))


def test_header_parameters_merged_after_custom_headers():
    case = TestCase(
        path="/ping",
        method="GET",
        parameters=(Parameter("X-Tenant", ParameterLocation.HEADER),),
    )
    config = _config(custom_headers={"x-tenant": "default", "Accept": "text/plain"})
    request = build_request(case, config, VariableOverrides(header={"X-Tenant": "acme"}))
    assert request.headers == (("Accept", "text/plain"), ("X-Tenant", "acme"))


def test_body_resolution_and_content_type():
    case = TestCase(
        path="/users",
        method="POST",
        body_variables={"name": "string", "age": 0, "email": "user@example.com", "nickname": None},
    )
    request = build_request(case, _config(), VariableOverrides(body={"name": "alice"}))
    assert request.body == '{"name":"alice","age":0,"email":"user@example.com"}'
    assert request.body_value == {"name": "alice", "age": 0, "email": "user@example.com"}
    assert request.header("Content-Type") == "application/json"


def test_no_body_for_get():
    case = TestCase(path="/users", method="GET", body_variables={"name": "string"})
    request = build_request(case, _config())
    assert request.body is None
    assert request.header("Content-Type") is None


def test_builder_is_deterministic():
    case = TestCase(
        path="/users/{id}",
        method="PUT",
        parameters=(Parameter("verbose", ParameterLocation.QUERY, example=True),),
        body_variables={"name": "string", "tags": ["a"]},
    )
    overrides = VariableOverrides(path={"id": "9"})
    first = build_request(case, _config(), overrides)
    second = build_request(case, _config(), overrides)
    assert first == second
    assert first.body == second.body
    assert to_curl(first) == to_curl(second)


def test_base_path_prefix_kept():
    config = RunConfiguration(base_url="  https://host:8443/api/v1/ ")
    request = build_request(TestCase(path="/pets", method="GET"), config)
    assert request.url == "https://host:8443/api/v1/pets"
    assert request.path == "/api/v1/pets"
    assert split_base_url("https://host") == ("https://host", "")


def test_method_override_and_default():
    case = TestCase(path="/pets")
    assert build_request(case, _config()).method == "GET"
    assert build_request(case, _config(), method="options").method == "OPTIONS"


def test_to_curl():
    case = TestCase(path="/users", method="POST", body_variables={"name": "o'neil"})
    curl = to_curl(build_request(case, _config()))
    assert curl.startswith("curl -X POST http://api.local/users -H 'Accept: application/json'")
    assert "-H 'Content-Type: application/json'" in curl
    assert "--data-raw" in curl


def test_path_variables():
    assert path_variables("/a/{x}/b/{y}") == ["x", "y"]
