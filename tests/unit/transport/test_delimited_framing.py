from __future__ import annotations

import random

import pytest

from streamcraft.transport.delimited import DelimitedFraming, FrameAssembler

D = 0x13


def _split(data: bytes, cuts: list[int]) -> list[bytes]:
    out: list[bytes] = []
    prev = 0
    for c in sorted(cuts):
        out.append(data[prev:c])
        prev = c
    out.append(data[prev:])
    return out


def test_assembler__feed__concrete_example() -> None:
    a = FrameAssembler(delimiter=D)
    assert a.feed(b"abc\x13def\x13gh") == [b"abc", b"def"]
    assert a.carry == b"gh"


def test_assembler__feed__chunk_boundary_independent() -> None:
    data = b"abc\x13def\x13\x13hello world\x13gh"
    expected = FrameAssembler(delimiter=D).feed(data)
    assert expected == [b"abc", b"def", b"", b"hello world"]

    rng = random.Random(1234)
    for _ in range(200):
        n = rng.randint(0, 8)
        cuts = [rng.randint(0, len(data)) for _ in range(n)]
        a = FrameAssembler(delimiter=D)
        got: list[bytes] = []
        for chunk in _split(data, cuts):
            got.extend(a.feed(chunk))
        assert got == expected
        assert a.carry == b"gh"


def test_assembler__feed__byte_by_byte() -> None:
    a = FrameAssembler(delimiter=D)
    got: list[bytes] = []
    for b in b"abc\x13def\x13gh":
        got.extend(a.feed(bytes([b])))
    assert got == [b"abc", b"def"]
    assert a.carry == b"gh"


def test_assembler__feed__message_spans_three_chunks() -> None:
    a = FrameAssembler(delimiter=D)
    assert a.feed(b"he") == []
    assert a.feed(b"ll") == []
    assert a.carry == b"hell"
    assert a.feed(b"o\x13") == [b"hello"]
    assert a.carry == b""


def test_assembler__feed__consecutive_delimiters_yield_empty_message() -> None:
    a = FrameAssembler(delimiter=D)
    assert a.feed(b"\x13\x13") == [b"", b""]
    assert a.feed(b"x\x13") == [b"x"]


def test_assembler__feed__trailing_suffix_never_emitted_alone() -> None:
    a = FrameAssembler(delimiter=D)
    assert a.feed(b"tail") == []
    assert a.feed(b"") == []
    assert a.carry == b"tail"


def test_assembler__reset__drops_carry() -> None:
    a = FrameAssembler(delimiter=D)
    a.feed(b"partial")
    a.reset()
    assert a.feed(b"x\x13") == [b"x"]


def test_assembler__feed__custom_delimiter() -> None:
    a = FrameAssembler(delimiter=ord("\n"))
    assert a.feed(b"one\ntwo\r\n") == [b"one", b"two\r"]


def test_framing__encode__appends_delimiter_when_absent() -> None:
    f = DelimitedFraming(D)
    assert f.encode(b"ping") == b"ping\x13"
    assert f.encode(b"ping\x13") == b"ping\x13"
    assert f.encode(b"") == b"\x13"


def test_framing__rejects_out_of_range_delimiter() -> None:
    with pytest.raises(ValueError):
        DelimitedFraming(256)
