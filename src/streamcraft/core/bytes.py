from __future__ import annotations


class BytesError(ValueError):
    pass


DEFAULT_DELIMITER = 0x13


def as_delimiter(value: int | bytes | bytearray | str) -> int:
    """
    Coerce a delimiter given as an int, a single byte or a one-character string.

    Strings of length > 1 are parsed as decimal or 0x-prefixed hex numbers.
    """
    if isinstance(value, bool):
        raise BytesError("delimiter must not be a bool")
    if isinstance(value, int):
        out = value
    elif isinstance(value, (bytes, bytearray)):
        if len(value) != 1:
            raise BytesError("delimiter must be a single byte")
        out = value[0]
    elif isinstance(value, str):
        s = value.strip() if len(value) > 1 else value
        if len(s) == 1:
            out = ord(s)
        else:
            try:
                out = int(s, 0)
            except ValueError as e:
                raise BytesError(f"Invalid delimiter: {value!r}") from e
    else:
        raise BytesError(f"Unsupported delimiter type: {type(value).__name__}")
    if not 0 <= out <= 0xFF:
        raise BytesError(f"delimiter out of byte range: {out}")
    return out


def ends_with_byte(data: bytes | bytearray, byte: int) -> bool:
    return bool(data) and data[-1] == byte


def to_bytes(data: bytes | bytearray | memoryview | str, encoding: str) -> bytes:
    if isinstance(data, str):
        return data.encode(encoding)
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    raise BytesError(f"Expected bytes or str, got {type(data).__name__}")
