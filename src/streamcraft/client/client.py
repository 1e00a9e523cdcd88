from __future__ import annotations

import asyncio
import codecs
import logging
import socket
from types import TracebackType

from streamcraft.client.config import ClientConfig
from streamcraft.client.events import Message, NotificationBus
from streamcraft.client.receiver import ReceiveLoop
from streamcraft.core.bytes import as_delimiter, to_bytes
from streamcraft.transport.base import Endpoint, NotConnectedError, TransportError
from streamcraft.transport.delimited import DelimitedFraming, FrameAssembler
from streamcraft.transport.tcp import (
    TcpConnection,
    open_connection,
    open_connection_with_timeout,
)

logger = logging.getLogger(__name__)


class TcpClient:
    """
    Delimited-message TCP client.

    Usage:
      client = TcpClient()

      @client.events.on_message()
      async def on_line(m): print(m.text)

      await client.connect("127.0.0.1", 8910, timeout=5.0)
      await client.write_line("hello")
      ...
      await client.close()

    Incoming bytes are polled by one background task per connection. Every read
    is cut into delimited messages (see FrameAssembler) and also reported
    verbatim as a raw chunk.
    """

    def __init__(self, config: ClientConfig | None = None) -> None:
        self.config = config or ClientConfig()
        self.config.validate()
        self.events = NotificationBus()
        self._connection: TcpConnection | None = None
        self._loop: ReceiveLoop | None = None
        self._assembler: FrameAssembler | None = None
        self._closed = False

    # configuration mirrors

    @property
    def delimiter(self) -> int:
        return self.config.delimiter

    @delimiter.setter
    def delimiter(self, value: int | bytes | str) -> None:
        self.config.delimiter = as_delimiter(value)

    @property
    def encoding(self) -> str:
        return self.config.encoding

    @encoding.setter
    def encoding(self, value: str) -> None:
        try:
            codecs.lookup(value)
        except LookupError as e:
            raise ValueError(f"Unknown encoding: {value!r}") from e
        self.config.encoding = value

    @property
    def auto_trim(self) -> bool:
        return self.config.auto_trim

    @auto_trim.setter
    def auto_trim(self, value: bool) -> None:
        self.config.auto_trim = bool(value)

    # state

    @property
    def connection(self) -> TcpConnection | None:
        return self._connection

    @property
    def connected(self) -> bool:
        return self._connection is not None and self._connection.connected

    @property
    def receive_loop(self) -> ReceiveLoop | None:
        return self._loop

    @property
    def carry(self) -> bytes:
        """Bytes received after the last delimiter, not yet part of a message."""
        return self._assembler.carry if self._assembler is not None else b""

    # connect / adopt

    async def connect(
        self, host: str, port: int, *, timeout: float | None = None
    ) -> TcpClient:
        """
        Connect to host:port and start receiving.

        Without a timeout (and no config.connect_timeout) the connect is not
        bounded. With one, ConnectTimeoutError is raised when the handshake does
        not finish in time.
        """
        if not host:
            raise ValueError("host must be a non-empty string")
        self._ensure_can_connect()
        endpoint = Endpoint(host=host, port=port)
        effective = timeout if timeout is not None else self.config.connect_timeout
        if effective is None:
            conn = await open_connection(endpoint, read_size=self.config.read_size)
        else:
            conn = await open_connection_with_timeout(
                endpoint, effective, read_size=self.config.read_size
            )
        if self._closed or self.connected:
            # close() or another connect() won while we were connecting
            conn.close()
            self._ensure_can_connect()
        self._release_dead_connection()
        self._adopt(conn)
        return self

    def attach(self, sock: socket.socket | TcpConnection) -> TcpClient:
        """
        Adopt an already-connected socket, e.g. one returned by a listener's accept().
        Must be called from a running event loop.
        """
        self._ensure_can_connect()
        if isinstance(sock, TcpConnection):
            conn = sock
        else:
            conn = TcpConnection.from_socket(sock, read_size=self.config.read_size)
        if not conn.connected:
            raise NotConnectedError("Cannot attach a closed connection.")
        self._adopt(conn)
        return self

    def _ensure_can_connect(self) -> None:
        if self._closed:
            raise TransportError("Client is closed.")
        if self.connected:
            raise TransportError("Already connected; call disconnect() first.")
        self._release_dead_connection()

    def _release_dead_connection(self) -> None:
        # The old loop still reports the lost connection once, then exits.
        self._loop = None
        conn, self._connection = self._connection, None
        if conn is not None:
            logger.debug("Releasing lost connection to %s", conn.endpoint)
            conn.close()

    def _adopt(self, conn: TcpConnection) -> None:
        self._connection = conn
        self._assembler = FrameAssembler(delimiter=self.config.delimiter)
        self._loop = ReceiveLoop(
            conn,
            self._assembler,
            self.events,
            self._make_message,
            interval=self.config.read_loop_interval,
        )
        logger.debug("Starting receive loop for %s", conn.endpoint)
        self._loop.start()

    def _make_message(self, data: bytes) -> Message:
        return Message(
            data=data,
            connection=self._connection,
            encoding=self.config.encoding,
            delimiter=self.config.delimiter,
            auto_trim=self.config.auto_trim,
        )

    # write path

    async def write(self, data: bytes | str) -> None:
        if self._connection is None:
            raise NotConnectedError(
                "Cannot send data without a connection (check that connect() was called)."
            )
        await self._connection.send(to_bytes(data, self.config.encoding))

    async def write_line(self, text: str) -> None:
        if not text:
            return
        framing = DelimitedFraming(self.config.delimiter)
        await self.write(framing.encode(text.encode(self.config.encoding)))

    async def write_line_and_get_reply(self, text: str, timeout: float) -> Message | None:
        """
        Write one line and return the next raw chunk received, or None on timeout.

        The reply is not matched to the request: use this only when requests and
        replies strictly alternate.
        """
        reply: asyncio.Future[Message] = asyncio.get_running_loop().create_future()

        def _on_data(m: Message) -> None:
            if not reply.done():
                reply.set_result(m)

        self.events.add_data_handler(_on_data)
        try:
            await self.write_line(text)
            try:
                return await asyncio.wait_for(reply, timeout=max(0.0, float(timeout)))
            except asyncio.TimeoutError:
                return None
        finally:
            self.events.remove_data_handler(_on_data)

    # lifecycle

    async def disconnect(self) -> TcpClient:
        """
        Stop receiving and close the connection. Safe to call repeatedly.
        """
        loop, self._loop = self._loop, None
        conn, self._connection = self._connection, None
        if loop is not None:
            loop.stop()
        if conn is not None:
            try:
                conn.close()
            except OSError as ex:
                logger.info("connection.close failed; ignoring", exc_info=ex)
        if loop is not None:
            await loop.wait_stopped()
        return self

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.disconnect()

    async def __aenter__(self) -> TcpClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
