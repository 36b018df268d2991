import pytest

from apiprobe.errors import CaseFormatError
from apiprobe.loader import case_from_mapping, load_endpoint_list, load_test_cases, parse_endpoint_list
from apiprobe.models import ParameterLocation, TestCase


def test_load_yaml_test_cases(tmp_path):
    path = tmp_path / "cases.yaml"
    path.write_text(
        "testCases:\n"
        "  - path: /pets/{petId}\n"
        "    method: get\n"
        "    parameters:\n"
        "      - name: petId\n"
        "        in: path\n"
        "        required: true\n"
        "        type: integer\n"
        "      - name: limit\n"
        "        schema: {type: integer, default: 20}\n"
        "  - path: /pets\n"
        "    bodyVariables: {name: rex}\n",
        encoding="utf-8",
    )
    first, second = load_test_cases(path)
    assert first.method == "GET"
    assert first.path_parameter("petId").schema == {"type": "integer"}
    limit = first.parameters_in(ParameterLocation.QUERY)[0]
    assert limit.declared_value() == 20
    assert second.method is None
    assert second.body_variables == {"name": "rex"}


def test_load_json_list(tmp_path):
    path = tmp_path / "cases.json"
    path.write_text('[{"path": "/a", "method": "POST"}]', encoding="utf-8")
    assert load_test_cases(path) == [TestCase(path="/a", method="POST")]


@pytest.mark.parametrize(
    "entry",
    [
        "not a mapping",
        {"path": "  "},
        {"path": "/a", "bodyVariables": [1, 2]},
        {"path": "/a", "parameters": [{"in": "query"}]},
        {"path": "/a", "parameters": [{"name": "x", "in": "cookie"}]},
    ],
)
def test_malformed_entries_rejected(entry):
    with pytest.raises(CaseFormatError):
        case_from_mapping(entry)


def test_missing_file(tmp_path):
    with pytest.raises(CaseFormatError):
        load_test_cases(tmp_path / "nope.yaml")
    with pytest.raises(CaseFormatError):
        load_endpoint_list(tmp_path / "nope.txt")


def test_parse_endpoint_list():
    text = "# endpoints\n/pets\nGET /pets\n[post] /pets\npets\n/pets\n"
    cases = parse_endpoint_list(text)
    assert [(case.method, case.path) for case in cases] == [
        (None, "/pets"),
        ("GET", "/pets"),
        ("POST", "/pets"),
    ]
