"""Content-Length message framing over an unbounded byte stream."""

from __future__ import annotations

from enum import Enum

from lunals.exceptions import FramingError

HEADER_TERMINATOR = b"\r\n\r\n"
CONTENT_LENGTH = b"content-length"


class FrameState(Enum):
    AWAITING_HEADER = "awaiting_header"
    AWAITING_BODY = "awaiting_body"


def encode_frame(body: bytes) -> bytes:
    header = f"Content-Length: {len(body)}\r\n\r\n".encode("ascii")
    return header + body


def _content_length(header: bytes) -> int:
    for line in header.split(b"\r\n"):
        name, sep, value = line.partition(b":")
        if not sep or name.strip().lower() != CONTENT_LENGTH:
            continue
        value = value.strip()
        if not value.isdigit():
            raise FramingError(
                f"non-numeric Content-Length: {value.decode('ascii', 'replace')!r}"
            )
        return int(value)
    raise FramingError("missing Content-Length header")


class FrameReader:
    """Incremental frame decoder.

    ``feed`` may be called with arbitrarily sized chunks; each call returns
    the payloads completed by that chunk, in stream order.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._expected: int | None = None

    @property
    def state(self) -> FrameState:
        if self._expected is None:
            return FrameState.AWAITING_HEADER
        return FrameState.AWAITING_BODY

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def feed(self, data: bytes) -> list[bytes]:
        self._buffer.extend(data)
        payloads: list[bytes] = []
        while True:
            if self._expected is None:
                end = self._buffer.find(HEADER_TERMINATOR)
                if end < 0:
                    break
                header = bytes(self._buffer[:end])
                # Drop the header first so a bad one is not re-read next time.
                del self._buffer[: end + len(HEADER_TERMINATOR)]
                self._expected = _content_length(header)
            if len(self._buffer) < self._expected:
                break
            payloads.append(bytes(self._buffer[: self._expected]))
            del self._buffer[: self._expected]
            self._expected = None
        return payloads
