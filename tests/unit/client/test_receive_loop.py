from __future__ import annotations

import asyncio
import socket

import pytest

from streamcraft.client.events import Message, NotificationBus
from streamcraft.client.receiver import ReceiveLoop
from streamcraft.transport.delimited import FrameAssembler
from streamcraft.transport.tcp import TcpConnection


def _factory(data: bytes) -> Message:
    return Message(data=data, connection=None)


async def _settle(conn: TcpConnection) -> None:
    # socketpair delivery is immediate, but give the kernel a moment anyway
    for _ in range(50):
        if conn.readable():
            return
        await asyncio.sleep(0.01)


def test_receive_loop__step__one_batch_per_read() -> None:
    async def _case() -> list[tuple[str, bytes]]:
        a, b = socket.socketpair()
        conn = TcpConnection.from_socket(a)
        bus = NotificationBus()
        seen: list[tuple[str, bytes]] = []
        bus.add_message_handler(lambda m: seen.append(("message", m.data)))
        bus.add_data_handler(lambda m: seen.append(("data", m.data)))
        loop = ReceiveLoop(conn, FrameAssembler(0x13), bus, _factory)
        try:
            b.sendall(b"abc\x13de")
            await _settle(conn)
            await loop.step()
            b.sendall(b"f\x13gh")
            await _settle(conn)
            await loop.step()
            await loop.step()  # nothing pending
            return seen
        finally:
            conn.close()
            b.close()

    assert asyncio.run(_case()) == [
        ("message", b"abc"),
        ("data", b"abc\x13de"),
        ("message", b"def"),
        ("data", b"f\x13gh"),
    ]


def test_receive_loop__peer_close__single_disconnect_and_stop() -> None:
    async def _case() -> tuple[int, bool, list[bytes]]:
        a, b = socket.socketpair()
        conn = TcpConnection.from_socket(a)
        bus = NotificationBus()
        disconnects = 0
        lines: list[bytes] = []

        @bus.on_disconnected()
        def _gone() -> None:
            nonlocal disconnects
            disconnects += 1

        bus.add_message_handler(lambda m: lines.append(m.data))
        assembler = FrameAssembler(0x13)
        loop = ReceiveLoop(conn, assembler, bus, _factory, interval=0.005)
        loop.start()
        b.sendall(b"last\x13unterminated")
        b.close()
        await asyncio.wait_for(loop.wait_stopped(), timeout=2.0)
        assert assembler.carry == b"unterminated"
        conn.close()
        return disconnects, loop.running, lines

    disconnects, running, lines = asyncio.run(_case())
    assert disconnects == 1
    assert running is False
    assert lines == [b"last"]


def test_receive_loop__tick_failure_does_not_stop_loop() -> None:
    class _FlakyAssembler:
        def __init__(self) -> None:
            self.calls = 0
            self.inner = FrameAssembler(0x13)

        def feed(self, chunk: bytes) -> list[bytes]:
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("first chunk fails")
            return self.inner.feed(chunk)

    async def _case() -> list[bytes]:
        a, b = socket.socketpair()
        conn = TcpConnection.from_socket(a)
        bus = NotificationBus()
        lines: list[bytes] = []
        bus.add_message_handler(lambda m: lines.append(m.data))
        loop = ReceiveLoop(conn, _FlakyAssembler(), bus, _factory, interval=0.005)
        loop.start()
        try:
            b.sendall(b"lost\x13")
            for _ in range(100):
                if _flaky_called(loop):
                    break
                await asyncio.sleep(0.005)
            b.sendall(b"kept\x13")
            for _ in range(200):
                if lines:
                    break
                await asyncio.sleep(0.005)
            assert loop.running is True
            return lines
        finally:
            loop.stop()
            await loop.wait_stopped()
            conn.close()
            b.close()

    def _flaky_called(loop: ReceiveLoop) -> bool:
        return loop._assembler.calls >= 1  # type: ignore[attr-defined]

    assert asyncio.run(_case()) == [b"kept"]


def test_receive_loop__cannot_restart() -> None:
    async def _case() -> None:
        a, b = socket.socketpair()
        conn = TcpConnection.from_socket(a)
        loop = ReceiveLoop(conn, FrameAssembler(), NotificationBus(), _factory)
        loop.start()
        try:
            with pytest.raises(RuntimeError):
                loop.start()
        finally:
            loop.stop()
            loop.stop()
            await loop.wait_stopped()
            assert loop.stop_requested is True
            conn.close()
            b.close()

    asyncio.run(_case())
