import pytest

from numidium.routing.patterns import extract_code_block, match_patterns, normalize_file_path

HELLO_REQUEST = "create a file called hello.py\n```python\nprint('Hello, World!')\n```"


def _as_tuples(calls):
    return [(call.tool_name, call.params, call.confidence) for call in calls]


def test_create_file_with_code_block():
    calls = match_patterns(HELLO_REQUEST)

    assert _as_tuples(calls) == [
        ("write_file", {"file_path": "./hello.py", "content": "print('Hello, World!')"}, 0.9)
    ]


def test_matching_is_deterministic():
    assert _as_tuples(match_patterns(HELLO_REQUEST)) == _as_tuples(match_patterns(HELLO_REQUEST))


def test_write_without_content_stays_below_threshold():
    calls = match_patterns("create a python script called fib.py that prints fibonacci numbers")

    assert len(calls) == 1
    assert calls[0].tool_name == "write_file"
    assert calls[0].params == {"file_path": "./fib.py", "content": ""}
    assert calls[0].confidence == 0.5


def test_inline_quoted_content_is_used():
    calls = match_patterns("create a file notes.txt with content 'remember the milk'")

    assert calls[0].params == {"file_path": "./notes.txt", "content": "remember the milk"}
    assert calls[0].confidence == 0.9


def test_save_without_content_is_capped():
    calls = match_patterns('save "remember the milk" to todo.txt')

    assert _as_tuples(calls) == [("write_file", {"file_path": "./todo.txt", "content": ""}, 0.5)]


@pytest.mark.parametrize(
    "text, path",
    [
        ("show me the contents of config.json", "./config.json"),
        ("read src/app.py", "./src/app.py"),
        ("what's in package.json?", "./package.json"),
        ("can you open the file /etc/nginx/nginx.conf please", "/etc/nginx/nginx.conf"),
    ],
)
def test_read_requests(text, path):
    calls = match_patterns(text)

    assert [call.tool_name for call in calls] == ["read_file"]
    assert calls[0].params == {"file_path": path}
    assert calls[0].confidence >= 0.8


@pytest.mark.parametrize(
    "text, command, confidence",
    [
        ("run the command `ls -la`", "ls -la", 0.9),
        ("please execute `npm test` for me", "npm test", 0.85),
        ("git status", "git status", 0.8),
        ("sudo rm -rf /tmp/demo", "sudo rm -rf /tmp/demo", 0.8),
        ("run tests", "tests", 0.6),
    ],
)
def test_shell_requests(text, command, confidence):
    calls = match_patterns(text)

    assert [call.tool_name for call in calls] == ["run_shell_command"]
    assert calls[0].params == {"command": command}
    assert calls[0].confidence == confidence


def test_prose_starting_with_a_command_name_is_not_a_command():
    assert match_patterns("python is slow, right?") == []
    assert match_patterns("git is confusing") == []


@pytest.mark.parametrize("text", ["which approach is better", "cat videos are funny", "git gud at rebasing"])
def test_prose_shaped_like_a_command_stays_below_threshold(text):
    calls = match_patterns(text)

    assert [call.tool_name for call in calls] == ["run_shell_command"]
    assert calls[0].confidence == 0.5


@pytest.mark.parametrize(
    "text",
    ["pwd", "cat README.md", "python --version", "npm install", "docker ps", "grep -rn TODO src", "ls | wc -l"],
)
def test_command_lines_keep_full_confidence(text):
    calls = match_patterns(text)

    assert _as_tuples(calls) == [("run_shell_command", {"command": text}, 0.8)]


@pytest.mark.parametrize(
    "text, path",
    [
        ("list the files in the current directory", "."),
        ("show all files in this folder please", "."),
        ("list files in src", "src"),
        ("what's in the directory ./docs", "./docs"),
        ("list files", "."),
    ],
)
def test_directory_requests(text, path):
    calls = match_patterns(text)

    assert [call.tool_name for call in calls] == ["list_directory"]
    assert calls[0].params == {"directory_path": path}


def test_project_analysis():
    calls = match_patterns("Can you analyze this project for me?")

    assert _as_tuples(calls) == [("analyze_project", {"project_path": "."}, 0.9)]


@pytest.mark.parametrize(
    "text, params, confidence",
    [
        ("create a component named UserCard", {"kind": "component", "name": "UserCard"}, 0.85),
        ("please add a helper function called slugify", {"kind": "function", "name": "slugify"}, 0.85),
        ("implement a new feature called billing", {"kind": "module", "name": "billing"}, 0.85),
        ("generate unit tests for the parser", {"kind": "test", "name": "parser"}, 0.8),
        ("build an API layer for orders", {"kind": "service", "name": "orders"}, 0.8),
    ],
)
def test_code_generation_requests(text, params, confidence):
    assert _as_tuples(match_patterns(text)) == [("generate_code", params, confidence)]


def test_named_file_is_a_write_not_a_generation():
    calls = match_patterns("create a module named payments.py")

    assert [call.tool_name for call in calls] == ["write_file"]


def test_code_inside_fences_is_not_a_request():
    text = "what does this do?\n```python\nopen('data.txt')\nos.system('ls -la')\n```"

    assert match_patterns(text) == []


def test_unavailable_tools_are_skipped():
    assert match_patterns(HELLO_REQUEST, available_tools=["read_file"]) == []


def test_first_rule_per_tool_wins():
    calls = match_patterns("create a file called a.py and then write b.py")

    assert len(calls) == 1
    assert calls[0].params["file_path"] == "./a.py"


def test_extract_code_block():
    assert extract_code_block("x\n```\nabc\n```\ny") == "abc"
    assert extract_code_block("```js\nconsole.log(1)\n```") == "console.log(1)"
    assert extract_code_block("no code here") is None


def test_normalize_file_path():
    assert normalize_file_path("hello.py") == "./hello.py"
    assert normalize_file_path("src/app.py,") == "./src/app.py"
    assert normalize_file_path("/tmp/x.py") == "/tmp/x.py"
    assert normalize_file_path("../up.md") == "../up.md"
