from __future__ import annotations

from dataclasses import dataclass, field

from streamcraft.core.bytes import DEFAULT_DELIMITER, ends_with_byte


@dataclass(frozen=True, slots=True)
class DelimitedFraming:
    """
    Single-byte delimited framing.

    Frame format:
    - payload bytes
    - followed by the delimiter byte

    There is no escaping: a payload containing the delimiter is split there.
    """

    delimiter: int = DEFAULT_DELIMITER

    def __post_init__(self) -> None:
        if not 0 <= int(self.delimiter) <= 0xFF:
            raise ValueError(f"delimiter out of byte range: {self.delimiter}")

    def encode(self, payload: bytes) -> bytes:
        if ends_with_byte(payload, self.delimiter):
            return bytes(payload)
        return bytes(payload) + bytes([self.delimiter])


@dataclass(slots=True)
class FrameAssembler:
    """
    Rebuilds delimited messages from arbitrarily chunked reads.

    Bytes after the last delimiter of a chunk are kept as carry and prefixed
    to the first message closed by a later chunk.
    """

    delimiter: int = DEFAULT_DELIMITER
    _carry: bytes = field(default=b"", repr=False)

    @property
    def carry(self) -> bytes:
        return self._carry

    def reset(self) -> None:
        self._carry = b""

    def feed(self, chunk: bytes) -> list[bytes]:
        data = bytes(chunk)
        out: list[bytes] = []
        start = 0
        while True:
            i = data.find(self.delimiter, start)
            if i < 0:
                break
            out.append(self._carry + data[start:i])
            self._carry = b""
            start = i + 1
        # carry is already empty when at least one delimiter matched
        self._carry = self._carry + data[start:]
        return out
