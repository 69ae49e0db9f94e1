from numidium.routing.classification import (
    coerce_params,
    parse_classification_response,
    parse_param_line,
)

TOOLS = {
    "write_file": {
        "type": "object",
        "properties": {"file_path": {"type": "string"}, "content": {"type": "string"}},
        "required": ["file_path", "content"],
    },
    "read_file": {
        "type": "object",
        "properties": {
            "file_path": {"type": "string"},
            "line_limit": {"type": "integer"},
        },
        "required": ["file_path"],
    },
    "list_directory": {
        "type": "object",
        "properties": {
            "directory_path": {"type": "string"},
            "show_hidden": {"type": "boolean"},
        },
        "required": [],
    },
}


def test_full_answer_is_parsed():
    answer = (
        "TOOLS: write_file:0.9\n"
        "PARAMS: file_path:./notes.md,content:buy milk, eggs\n"
        "REASON: user wants to save a note"
    )

    result = parse_classification_response(answer, TOOLS)

    assert result is not None
    assert not result.none
    assert result.reason == "user wants to save a note"
    assert len(result.calls) == 1
    call = result.calls[0]
    assert call.tool_name == "write_file"
    assert call.confidence == 0.9
    assert call.params == {"file_path": "./notes.md", "content": "buy milk, eggs"}


def test_none_answer():
    result = parse_classification_response("TOOLS: NONE\nPARAMS: none\nREASON: just chatting", TOOLS)

    assert result is not None
    assert result.none
    assert result.calls == []
    assert result.reason == "just chatting"


def test_missing_tools_line_is_unparseable():
    assert parse_classification_response("I think you want to read a file.", TOOLS) is None
    assert parse_classification_response("", TOOLS) is None


def test_unparseable_confidence_defaults():
    result = parse_classification_response("TOOLS: read_file:high\nPARAMS: file_path:README.md", TOOLS)

    assert result.calls[0].confidence == 0.5
    assert result.calls[0].params == {"file_path": "README.md"}


def test_percentages_are_scaled():
    result = parse_classification_response("TOOLS: read_file:90%\nPARAMS: file_path:a.txt", TOOLS)
    assert result.calls[0].confidence == 0.9

    result = parse_classification_response("TOOLS: read_file:85\nPARAMS: file_path:a.txt", TOOLS)
    assert result.calls[0].confidence == 0.85


def test_unknown_tools_are_dropped():
    answer = "TOOLS: delete_everything:0.99, read_file:0.8\nPARAMS: file_path:a.txt"

    result = parse_classification_response(answer, TOOLS)

    assert [call.tool_name for call in result.calls] == ["read_file"]


def test_missing_required_params_cap_confidence():
    result = parse_classification_response("TOOLS: write_file:0.95\nPARAMS: file_path:out.txt", TOOLS)

    assert result.calls[0].confidence == 0.5


def test_lenient_line_prefixes():
    answer = "- TOOLS: list_directory:0.8\n- PARAMS: directory_path:src, show_hidden:yes"
    result = parse_classification_response(answer, TOOLS)
    assert result.calls[0].params == {"directory_path": "src", "show_hidden": True}


def test_parse_param_line():
    assert parse_param_line("file_path:a.txt, line_limit=20") == {"file_path": "a.txt", "line_limit": "20"}
    assert parse_param_line("command:'ls -la'") == {"command": "ls -la"}
    assert parse_param_line("NONE") == {}
    assert parse_param_line("") == {}


def test_coerce_params():
    schema = TOOLS["read_file"]

    assert coerce_params({"file_path": "a.txt", "line_limit": "20", "extra": "x"}, schema) == {
        "file_path": "a.txt",
        "line_limit": 20,
    }
    assert coerce_params({"line_limit": "many"}, schema) == {}
    assert coerce_params({"show_hidden": "off"}, TOOLS["list_directory"]) == {"show_hidden": False}
    assert coerce_params({"show_hidden": "maybe"}, TOOLS["list_directory"]) == {}
