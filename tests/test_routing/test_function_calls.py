from numidium.routing.function_calls import extract_first_json_object, extract_function_call


def test_first_object_with_braces_inside_strings():
    text = 'Sure! {"function_call": {"name": "read_file", "arguments": {"file_path": "a}b{.txt"}}} done'

    assert extract_first_json_object(text) == {
        "function_call": {"name": "read_file", "arguments": {"file_path": "a}b{.txt"}}
    }


def test_invalid_candidates_are_skipped():
    assert extract_first_json_object("{not json} and then {\"a\": 1}") == {"a": 1}
    assert extract_first_json_object("no braces") is None
    assert extract_first_json_object("{\"unterminated\": ") is None


def test_function_call_with_object_arguments():
    reply = (
        "I'll list the directory.\n"
        '{"function_call": {"name": "list_directory", "arguments": {"directory_path": "src"}}}'
    )

    call = extract_function_call(reply)

    assert call is not None
    assert call.name == "list_directory"
    assert call.args == {"directory_path": "src"}


def test_function_call_with_string_arguments():
    reply = '{"function_call": {"name": "read_file", "arguments": "{\\"file_path\\": \\"x.py\\"}"}}'

    call = extract_function_call(reply)

    assert call.name == "read_file"
    assert call.args == {"file_path": "x.py"}


def test_function_call_in_fenced_block():
    reply = '```json\n{"function_call": {"name": "analyze_project", "arguments": {}}}\n```'

    call = extract_function_call(reply)

    assert call.name == "analyze_project"
    assert call.args == {}


def test_missing_arguments_default_to_empty():
    call = extract_function_call('{"function_call": {"name": "list_directory"}}')

    assert call.args == {}


def test_non_calls_return_none():
    assert extract_function_call("Hello! How can I help?") is None
    assert extract_function_call('{"name": "read_file"}') is None
    assert extract_function_call('{"function_call": {"name": ""}}') is None
    assert extract_function_call('{"function_call": {"name": "x", "arguments": "[1, 2]"}}') is None
