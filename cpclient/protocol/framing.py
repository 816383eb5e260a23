# cpclient/protocol/framing.py

"""Newline-delimited framing of the engine byte stream."""

from typing import List, Union

from ..core.exceptions import ProtocolError


class LineBuffer:
    """Accumulates stream chunks and yields complete lines only.

    Chunks may split a line (or a multi-byte UTF-8 character) anywhere; the
    trailing fragment is kept until the next newline arrives. A complete line
    that does not decode raises ``ProtocolError``.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._encoding = encoding
        self._pending = b""

    def feed(self, chunk: Union[bytes, str]) -> List[str]:
        if isinstance(chunk, str):
            chunk = chunk.encode(self._encoding)
        data = self._pending + chunk
        *lines, self._pending = data.split(b"\n")
        return [self._decode(line) for line in lines if line.strip()]

    @property
    def pending(self) -> str:
        """Incomplete trailing fragment, if any."""
        return self._pending.decode(self._encoding, errors="replace")

    def flush(self) -> List[str]:
        """Return the trailing fragment as a final line (used at end of stream)."""
        rest, self._pending = self._pending, b""
        if rest.strip():
            return [self._decode(rest)]
        return []

    def _decode(self, line: bytes) -> str:
        try:
            return line.rstrip(b"\r").decode(self._encoding)
        except UnicodeDecodeError as e:
            raise ProtocolError(
                f"Engine line is not valid {self._encoding}", details=repr(line[:200]), cause=e
            ) from e
