"""PageInfoResolver tests using canned tool output."""

from pathlib import Path

import pytest

from scan2search.errors import ParseError, ToolExecutionError, ZeroPageError
from scan2search.pageinfo import PageInfoResolver, parse_page_count
from scan2search.tools import ToolInvoker, ToolResult


class CannedInvoker(ToolInvoker):
    def __init__(self, exit_code: int, output: str):
        super().__init__()
        self.result = ToolResult(exit_code, output)
        self.calls = []

    def run(self, executable, args):
        self.calls.append([str(executable)] + [str(a) for a in args])
        return self.result


PDFINFO_OUTPUT = """\
Title:          Scanned book
Producer:       Scanner 2.1
Tagged:         no
Pages:          214
Encrypted:      no
Page size:      595 x 842 pts (A4)
"""


def resolve(exit_code, output, path="book.pdf"):
    invoker = CannedInvoker(exit_code, output)
    return PageInfoResolver(invoker, "pdfinfo").get_page_count(Path(path)), invoker


def test_parses_page_count():
    pages, invoker = resolve(0, PDFINFO_OUTPUT)

    assert pages == 214
    assert invoker.calls == [["pdfinfo", "book.pdf"]]


def test_first_pages_line_wins():
    assert parse_page_count("Pages: 3\nPages: 9\n") == 3


def test_pages_must_start_a_line():
    assert parse_page_count("Title: Pages: 12\n") is None


def test_nonzero_exit_is_tool_error_with_output():
    with pytest.raises(ToolExecutionError) as exc:
        resolve(1, "I/O Error: Couldn't open file 'book.pdf'\n")

    assert exc.value.exit_code == 1
    assert "Couldn't open file" in exc.value.output


def test_missing_pages_line_is_parse_error():
    with pytest.raises(ParseError) as exc:
        resolve(0, "Title: something\nProducer: x\n")

    assert "Producer: x" in exc.value.output


def test_zero_pages_is_its_own_error():
    with pytest.raises(ZeroPageError):
        resolve(0, "Pages:          0\n")


def test_zero_page_error_is_not_a_tool_error():
    with pytest.raises(ZeroPageError) as exc:
        resolve(0, "Pages: 0\n")

    assert not isinstance(exc.value, ToolExecutionError)
