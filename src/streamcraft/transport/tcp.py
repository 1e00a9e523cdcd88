from __future__ import annotations

import asyncio
import logging
import select
import socket
from dataclasses import dataclass, field
from typing import Any

from .base import (
    ConnectFailedError,
    ConnectTimeoutError,
    Endpoint,
    NotConnectedError,
    ResolutionError,
)

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 65536

AddrInfo = tuple[Any, Any, Any, Any, Any]


class TcpConnection:
    """
    A live, connected, non-blocking stream socket.

    Reads are polled (readable/read_available) by a single receive task, writes go
    through the event loop. The connected flag flips to False once a read sees EOF
    or a socket error, or after close().
    """

    def __init__(
        self,
        sock: socket.socket,
        endpoint: Endpoint,
        *,
        read_size: int = DEFAULT_READ_SIZE,
    ) -> None:
        if read_size <= 0:
            raise ValueError("read_size must be > 0")
        sock.setblocking(False)
        self._sock: socket.socket | None = sock
        self.endpoint = endpoint
        self.read_size = int(read_size)
        self._connected = True

    @classmethod
    def from_socket(cls, sock: socket.socket, *, read_size: int = DEFAULT_READ_SIZE) -> TcpConnection:
        """
        Adopt a socket connected elsewhere (e.g. returned by a listener's accept()).
        """
        try:
            peer = sock.getpeername()
        except OSError as e:
            raise NotConnectedError("Socket is not connected.") from e
        if isinstance(peer, tuple):
            endpoint = Endpoint(host=str(peer[0]), port=int(peer[1]))
        else:
            endpoint = Endpoint(host=str(peer) or "local", port=0)
        return cls(sock, endpoint, read_size=read_size)

    @property
    def connected(self) -> bool:
        return self._sock is not None and self._connected

    @property
    def raw_socket(self) -> socket.socket | None:
        return self._sock

    def readable(self) -> bool:
        """True when a read would not block (data pending or EOF)."""
        if self._sock is None:
            return False
        ready, _, _ = select.select([self._sock], [], [], 0)
        return bool(ready)

    def read_available(self) -> bytes:
        """
        One read of whatever is pending, up to read_size bytes.

        Returns b"" when nothing is pending or the peer closed the stream; the
        latter also marks the connection as disconnected.
        """
        if self._sock is None:
            raise NotConnectedError("Not connected.")
        try:
            data = self._sock.recv(self.read_size)
        except (BlockingIOError, InterruptedError):
            return b""
        except OSError:
            self._connected = False
            raise
        if not data:
            logger.debug("Peer %s closed the stream", self.endpoint)
            self._connected = False
        return data

    async def send(self, data: bytes) -> None:
        if self._sock is None or not self._connected:
            raise NotConnectedError(
                "Cannot send data without a live connection (check that connect() was called)."
            )
        try:
            await asyncio.get_running_loop().sock_sendall(self._sock, data)
        except OSError:
            self._connected = False
            raise

    def close(self) -> None:
        sock, self._sock = self._sock, None
        self._connected = False
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()

    def __repr__(self) -> str:
        return f"TcpConnection(endpoint={self.endpoint!s}, connected={self.connected})"


async def _resolve(endpoint: Endpoint) -> list[AddrInfo]:
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(endpoint.host, endpoint.port, type=socket.SOCK_STREAM)
    except socket.gaierror as e:
        raise ResolutionError(f"Failed to resolve {endpoint.host!r}") from e
    if not infos:
        raise ResolutionError(f"No addresses for {endpoint.host!r}")
    return list(infos)


async def _connect_first(infos: list[AddrInfo]) -> socket.socket:
    """
    Try each resolved address in order; return the first connected socket.
    """
    loop = asyncio.get_running_loop()
    last_exc: OSError | None = None
    for family, type_, proto, _canonname, addr in infos:
        sock = socket.socket(family, type_, proto)
        try:
            sock.setblocking(False)
            await loop.sock_connect(sock, addr)
        except OSError as e:
            sock.close()
            last_exc = e
            continue
        except BaseException:
            sock.close()
            raise
        return sock
    raise last_exc or OSError("No address to connect to")


async def open_connection(
    endpoint: Endpoint, *, read_size: int = DEFAULT_READ_SIZE
) -> TcpConnection:
    endpoint.validate()
    infos = await _resolve(endpoint)
    try:
        sock = await _connect_first(infos)
    except OSError as e:
        raise ConnectFailedError(f"Failed to connect to {endpoint}") from e
    return TcpConnection(sock, endpoint, read_size=read_size)


@dataclass(slots=True)
class PendingConnect:
    """
    Outcome of one bounded connect attempt.

    `completed` is set once the attempt has fully finished, whatever the outcome.
    A socket that connects after `timed_out` was set is closed and never stored.
    """

    endpoint: Endpoint
    sock: socket.socket | None = None
    completed: asyncio.Event = field(default_factory=asyncio.Event)
    timed_out: bool = False
    failure: BaseException | None = None

    async def run(self, infos: list[AddrInfo]) -> None:
        try:
            sock = await _connect_first(infos)
        except OSError as e:
            logger.debug("Connect attempt to %s failed: %s", self.endpoint, e)
            self.failure = e
        else:
            if self.timed_out:
                logger.debug("Connected to %s after the timeout; closing it", self.endpoint)
                sock.close()
            else:
                self.sock = sock
        finally:
            self.completed.set()


async def open_connection_with_timeout(
    endpoint: Endpoint,
    timeout: float,
    *,
    read_size: int = DEFAULT_READ_SIZE,
) -> TcpConnection:
    """
    Connect, failing with ConnectTimeoutError when the handshake is not done in `timeout`.

    On timeout the attempt is cancelled; if it still manages to connect, that
    socket is closed instead of being returned.
    """
    endpoint.validate()
    if timeout < 0:
        raise ValueError("timeout must be >= 0")
    infos = await _resolve(endpoint)

    logger.debug("Connecting to %s with timeout=%ss", endpoint, timeout)
    pending = PendingConnect(endpoint=endpoint)
    attempt = asyncio.create_task(pending.run(infos), name=f"streamcraft-connect:{endpoint}")
    try:
        done, _ = await asyncio.wait({attempt}, timeout=timeout)
    except asyncio.CancelledError:
        pending.timed_out = True
        attempt.cancel()
        raise
    logger.debug("Completed within timeout: %s", bool(done))

    if not done:
        pending.timed_out = True
        attempt.cancel()
        await asyncio.gather(attempt, return_exceptions=True)
        raise ConnectTimeoutError(f"Failed to connect to {endpoint} within {timeout}s")

    await pending.completed.wait()
    if pending.sock is None:
        if pending.failure is not None:
            raise ConnectFailedError(f"Failed to connect to {endpoint}") from pending.failure
        raise ConnectFailedError(f"Failed to connect to {endpoint} (no failure captured)")
    return TcpConnection(pending.sock, endpoint, read_size=read_size)
