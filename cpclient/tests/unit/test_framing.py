# cpclient/tests/unit/test_framing.py

"""
Tests for newline framing of the engine stream.
"""

import pytest

from cpclient.core.exceptions import ProtocolError
from cpclient.protocol.framing import LineBuffer


class TestLineBuffer:
    """Tests for LineBuffer"""

    def test_complete_lines(self):
        """Test that each complete line is returned once"""
        buffer = LineBuffer()
        assert buffer.feed(b'{"a": 1}\n{"b": 2}\n') == ['{"a": 1}', '{"b": 2}']
        assert buffer.pending == ""

    def test_split_line(self):
        """Test that a line split across chunks is only returned when complete"""
        buffer = LineBuffer()
        assert buffer.feed(b'{"msg": "lo') == []
        assert buffer.pending == '{"msg": "lo'
        assert buffer.feed(b'g"}\n{"msg"') == ['{"msg": "log"}']
        assert buffer.pending == '{"msg"'

    def test_split_multibyte_character(self):
        """Test that UTF-8 sequences may be split between chunks"""
        encoded = "café\n".encode("utf-8")
        buffer = LineBuffer()

        assert buffer.feed(encoded[:4]) == []
        assert buffer.feed(encoded[4:]) == ["café"]

    def test_blank_lines_and_crlf(self):
        """Test that empty lines are skipped and carriage returns stripped"""
        buffer = LineBuffer()
        assert buffer.feed("one\r\n\n  \ntwo\n") == ["one", "two"]

    def test_flush(self):
        """Test that the trailing fragment is returned at end of stream"""
        buffer = LineBuffer()
        buffer.feed(b"partial")

        assert buffer.flush() == ["partial"]
        assert buffer.flush() == []

    def test_invalid_utf8_line(self):
        """Test that a complete line that does not decode is a protocol error"""
        buffer = LineBuffer()

        with pytest.raises(ProtocolError):
            buffer.feed(b'{"msg": "log", "data": "\xff\xfe"}\n')

    def test_invalid_utf8_at_end_of_stream(self):
        """Test that the trailing fragment is checked when flushed"""
        buffer = LineBuffer()
        buffer.feed(b"\xc3\x28")

        with pytest.raises(ProtocolError):
            buffer.flush()
