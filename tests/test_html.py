"""Tests for HTML to text reduction."""

from core.html import html_to_text


def test_strips_tags_and_scripts() -> None:
    assert html_to_text("<p>Hi <b>there</b></p><script>evil()</script>") == "Hi there"


def test_script_and_style_blocks_span_lines_case_insensitively() -> None:
    html = (
        "<HTML><head><STYLE type='text/css'>\nbody { color: red; }\n</STYLE></head>"
        "<body><Script>\nvar a = 1;\n</SCRIPT><div>Hello</div>\n\n<div>World</div></body></HTML>"
    )
    assert html_to_text(html) == "Hello World"


def test_whitespace_is_collapsed() -> None:
    assert html_to_text("  <div>a\n\n\tb</div>   c ") == "a b c"


def test_malformed_markup_does_not_raise() -> None:
    assert html_to_text("<p>unclosed <b") == "unclosed <b"
    assert html_to_text("<script>never closed") == "never closed"


def test_empty_input() -> None:
    assert html_to_text("") == ""
    assert html_to_text(None) == ""
