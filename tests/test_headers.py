"""Tests for response header block parsing."""

import pytest

from s3http.errors import ParseError
from s3http.headers import ObjectStat, parse_header_block, parse_http_date, parse_object_stat

from conftest import LAST_MODIFIED, LAST_MODIFIED_EPOCH


class TestParseHeaderBlock:
    def test_status_line_skipped_and_names_lowered(self):
        block = "HTTP/1.1 200 OK\r\nContent-Length: 42\r\nETag:  \"abc\"  \r\n\r\n"
        assert parse_header_block(block) == {"content-length": "42", "etag": '"abc"'}

    def test_lf_only_lines(self):
        assert parse_header_block("Content-Length: 7\nX-Other: y\n") == {
            "content-length": "7",
            "x-other": "y",
        }

    def test_first_value_wins(self):
        block = "Content-Length: 1\r\ncontent-length: 2\r\n"
        assert parse_header_block(block)["content-length"] == "1"

    def test_value_may_contain_colons(self):
        block = f"Last-Modified: {LAST_MODIFIED}\r\n"
        assert parse_header_block(block)["last-modified"] == LAST_MODIFIED

    def test_garbage_lines_ignored(self):
        assert parse_header_block("no separator here\r\n\r\n") == {}


class TestParseHttpDate:
    def test_rfc7231_date(self):
        assert parse_http_date(LAST_MODIFIED) == LAST_MODIFIED_EPOCH

    def test_epoch(self):
        assert parse_http_date("Thu, 01 Jan 1970 00:00:00 GMT") == 0

    @pytest.mark.parametrize("value", ["", "yesterday", "Wed, 99 Foo 2015"])
    def test_invalid_date_is_zero(self, value):
        assert parse_http_date(value) == 0


class TestParseObjectStat:
    """Content-Length and Last-Modified extraction from a HEAD response."""

    def test_full_block(self):
        block = (
            "HTTP/1.1 200 OK\r\n"
            "x-amz-request-id: 1234\r\n"
            f"last-modified: {LAST_MODIFIED}\r\n"
            "CONTENT-LENGTH: 1048576\r\n"
            "\r\n"
        )
        assert parse_object_stat(block) == ObjectStat(size=1048576, last_modified=LAST_MODIFIED_EPOCH)

    def test_header_order_does_not_matter(self):
        a = f"Content-Length: 5\r\nLast-Modified: {LAST_MODIFIED}\r\n"
        b = f"Last-Modified: {LAST_MODIFIED}\r\nContent-Length: 5\r\n"
        assert parse_object_stat(a) == parse_object_stat(b)

    def test_missing_last_modified(self):
        assert parse_object_stat("Content-Length: 0\r\n") == ObjectStat(size=0, last_modified=0)

    def test_invalid_last_modified(self):
        stat = parse_object_stat("Content-Length: 3\r\nLast-Modified: soon\r\n")
        assert stat.last_modified == 0

    def test_missing_content_length(self):
        with pytest.raises(ParseError, match="Content-Length"):
            parse_object_stat(f"HTTP/1.1 200 OK\r\nLast-Modified: {LAST_MODIFIED}\r\n\r\n")

    @pytest.mark.parametrize("value", ["abc", "-1", "1.5"])
    def test_invalid_content_length(self, value):
        with pytest.raises(ParseError):
            parse_object_stat(f"Content-Length: {value}\r\n")
