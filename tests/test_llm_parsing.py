import json

import pytest

from promptsite.errors import InvalidFormat
from promptsite.llm_parsing import (
    BareHtml,
    Invalid,
    LegacyTriple,
    MultiFile,
    detect_shape,
    extract_body,
    normalize,
    repair_control_chars,
    strip_fences,
)


def _names(project):
    return [f.name for f in project.files]


def test_three_file_reply_round_trips():
    raw = json.dumps(
        {"files": {"index.html": "<h1>Hi</h1>", "style.css": "h1{color:red}", "script.js": "console.log(1)"}}
    )
    project = normalize(raw)
    assert _names(project) == ["index.html", "style.css", "script.js"]
    assert [f.kind for f in project.files] == ["html", "css", "js"]
    assert project.get("style.css").content == "h1{color:red}"


def test_fenced_reply_is_unwrapped():
    body = json.dumps({"files": {"index.html": "<p>x</p>", "style.css": "", "script.js": ""}})
    project = normalize(f"```json\n{body}\n```")
    assert project.get("index.html").content == "<p>x</p>"


def test_strip_fences_variants():
    assert strip_fences("```\n{}\n```") == "{}"
    assert strip_fences("```html\n<p>a</p>\n```") == "<p>a</p>"
    assert strip_fences('  {"a": 1}```') == '{"a": 1}'
    assert strip_fences("plain") == "plain"


def test_literal_newline_inside_string_is_repaired():
    raw = '{"files": {"index.html": "<h1>Hi</h1>\n<p>there</p>", "style.css": "", "script.js": ""}}'
    project = normalize(raw)
    assert project.get("index.html").content == "<h1>Hi</h1>\n<p>there</p>"


def test_repair_leaves_structural_whitespace_and_escapes_alone():
    text = '{\n\t"a": "line1\nline2",\n  "b": "keep \\n this"\n}'
    repaired = repair_control_chars(text)
    assert json.loads(repaired) == {"a": "line1\nline2", "b": "keep \n this"}
    assert repaired.startswith("{\n\t")


def test_legacy_triple_becomes_three_files():
    raw = json.dumps({"html": "<div>old</div>", "css": "div{}", "js": "run()"})
    parsed = detect_shape(raw)
    assert isinstance(parsed, LegacyTriple)
    project = normalize(raw)
    assert _names(project) == ["index.html", "style.css", "script.js"]
    assert project.get("script.js").content == "run()"


def test_files_take_priority_over_legacy_keys():
    raw = json.dumps({"files": {"index.html": "<p>new</p>"}, "html": "<p>old</p>"})
    parsed = detect_shape(raw)
    assert isinstance(parsed, MultiFile)
    assert normalize(raw).get("index.html").content == "<p>new</p>"


def test_files_as_list_of_entries():
    raw = json.dumps(
        {
            "files": [
                {"name": "html/index.html", "content": "<p>a</p>"},
                {"path": "css/style.css", "content": "p{}"},
                {"filename": "pages/about.html", "content": "<p>about</p>"},
            ]
        }
    )
    project = normalize(raw)
    assert _names(project) == ["html/index.html", "css/style.css", "pages/about.html", "script.js"]


def test_missing_css_and_js_get_empty_defaults():
    project = normalize(json.dumps({"files": {"index.html": "<p>a</p>"}}))
    assert project.get("style.css").content == ""
    assert project.get("script.js").content == ""


def test_unsupported_files_are_dropped():
    raw = json.dumps({"files": {"index.html": "<p>a</p>", "logo.png": "xx", "README": "hi"}})
    project = normalize(raw)
    assert "logo.png" not in _names(project)
    assert "README" not in _names(project)


def test_bare_html_reply():
    parsed = detect_shape("<!DOCTYPE html><html><body><h1>Plain</h1></body></html>")
    assert isinstance(parsed, BareHtml)
    project = normalize("<h1>Plain</h1>")
    assert project.get("index.html").content == "<h1>Plain</h1>"
    assert project.get("style.css").content == ""


@pytest.mark.parametrize(
    "raw",
    [
        '{"unexpectedKey": 1}',
        '{"files": {"about.html": "<p>x</p>"}}',
        '{"files": "nope"}',
        '{"html": ""}',
        "[1, 2, 3]",
        '{"files": {"index.html": "<p>unterminated',
        "just some words",
        "",
    ],
)
def test_unusable_replies_raise_invalid_format(raw):
    with pytest.raises(InvalidFormat) as exc_info:
        normalize(raw)
    assert exc_info.value.code == "INVALID_FORMAT"
    assert exc_info.value.message == "AI returned invalid format. Please try again."


def test_invalid_carries_reason():
    parsed = detect_shape('{"unexpectedKey": 1}')
    assert isinstance(parsed, Invalid)
    assert "unexpectedKey" in " ".join(parsed.details)


def test_extract_body():
    doc = "<html><head><title>t</title></head><body class='x'>\n<main>hi</main>\n</body></html>"
    assert extract_body(doc) == "<main>hi</main>"
    assert extract_body("<section>frag</section>") == "<section>frag</section>"
    # nested closing tags inside content: last one wins
    assert extract_body("<body><p>a</p></body><!-- </body> -->") == "<p>a</p></body><!--"


def test_broken_files_falls_through_to_legacy_shape():
    raw = json.dumps({"files": {"about.html": "<p>x</p>"}, "html": "<p>legacy</p>", "css": "", "js": ""})
    assert isinstance(detect_shape(raw), LegacyTriple)
    project = normalize(raw)
    assert _names(project) == ["index.html", "style.css", "script.js"]
    assert project.get("index.html").content == "<p>legacy</p>"


def test_broken_files_without_fallback_keeps_files_reason():
    parsed = detect_shape(json.dumps({"files": {"about.html": "<p>x</p>"}}))
    assert isinstance(parsed, Invalid)
    assert "index.html" in parsed.reason


def test_prose_wrapped_reply_is_not_bare_html():
    body = json.dumps({"files": {"index.html": "<h1>Hi</h1>", "style.css": "", "script.js": ""}})
    raw = "Here is your site:\n```json\n" + body + "\n```"
    assert isinstance(detect_shape(raw), Invalid)
    with pytest.raises(InvalidFormat):
        normalize(raw)


def test_leading_slash_and_dot_are_stripped_from_names():
    raw = json.dumps({"files": {"/index.html": "<p>a</p>", "./css/style.css": "p{}", "/js/app.js": ""}})
    project = normalize(raw)
    assert _names(project) == ["index.html", "css/style.css", "js/app.js"]
