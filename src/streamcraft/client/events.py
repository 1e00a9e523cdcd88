from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from streamcraft.core.bytes import DEFAULT_DELIMITER, to_bytes
from streamcraft.transport.base import NotConnectedError
from streamcraft.transport.delimited import DelimitedFraming
from streamcraft.transport.tcp import TcpConnection

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Message:
    """
    One received payload: either a delimited message or a raw chunk.

    `connection` is a lookup reference to the connection it arrived on, used by
    the reply helpers.
    """

    data: bytes
    connection: TcpConnection | None
    encoding: str = "utf-8"
    delimiter: int = DEFAULT_DELIMITER
    auto_trim: bool = False

    @property
    def text(self) -> str:
        s = self.data.decode(self.encoding, "replace")
        return s.strip() if self.auto_trim else s

    async def reply(self, data: bytes | str) -> None:
        if self.connection is None:
            raise NotConnectedError("Message has no connection to reply on.")
        await self.connection.send(to_bytes(data, self.encoding))

    async def reply_line(self, text: str) -> None:
        if not text:
            return
        framing = DelimitedFraming(self.delimiter)
        await self.reply(framing.encode(text.encode(self.encoding)))


MessageHandler = Callable[[Message], Awaitable[None] | None]
DisconnectHandler = Callable[[], Awaitable[None] | None]
MessageFactory = Callable[[bytes], Message]


async def _call(fn: Callable[..., Any], *args: Any) -> None:
    out = fn(*args)
    if asyncio.iscoroutine(out) or isinstance(out, Awaitable):
        await out


class NotificationBus:
    """
    Handler registry for delimited messages, raw chunks and disconnects.

    Per chunk the order is fixed: every delimited message of that chunk (in
    arrival order), then exactly one raw-chunk event. Handler exceptions are
    logged and do not stop the other handlers.
    """

    def __init__(self) -> None:
        self._message_handlers: list[MessageHandler] = []
        self._data_handlers: list[MessageHandler] = []
        self._disconnect_handlers: list[DisconnectHandler] = []

    # registration

    def on_message(self) -> Callable[[MessageHandler], MessageHandler]:
        """
        Decorator:
          @client.events.on_message()
          async def handler(m): ...
        """

        def _decorator(fn: MessageHandler) -> MessageHandler:
            self.add_message_handler(fn)
            return fn

        return _decorator

    def on_data(self) -> Callable[[MessageHandler], MessageHandler]:
        def _decorator(fn: MessageHandler) -> MessageHandler:
            self.add_data_handler(fn)
            return fn

        return _decorator

    def on_disconnected(self) -> Callable[[DisconnectHandler], DisconnectHandler]:
        def _decorator(fn: DisconnectHandler) -> DisconnectHandler:
            self.add_disconnect_handler(fn)
            return fn

        return _decorator

    def add_message_handler(self, fn: MessageHandler) -> None:
        self._message_handlers.append(fn)

    def add_data_handler(self, fn: MessageHandler) -> None:
        self._data_handlers.append(fn)

    def add_disconnect_handler(self, fn: DisconnectHandler) -> None:
        self._disconnect_handlers.append(fn)

    def remove_message_handler(self, fn: MessageHandler) -> None:
        _discard(self._message_handlers, fn)

    def remove_data_handler(self, fn: MessageHandler) -> None:
        _discard(self._data_handlers, fn)

    def remove_disconnect_handler(self, fn: DisconnectHandler) -> None:
        _discard(self._disconnect_handlers, fn)

    @property
    def handler_counts(self) -> tuple[int, int, int]:
        return (
            len(self._message_handlers),
            len(self._data_handlers),
            len(self._disconnect_handlers),
        )

    # dispatch

    async def dispatch_chunk(
        self,
        messages: Sequence[bytes],
        chunk: bytes,
        make_message: MessageFactory,
    ) -> None:
        if self._message_handlers:
            for payload in messages:
                await self._fan_out(self._message_handlers, make_message(payload))
        if self._data_handlers:
            await self._fan_out(self._data_handlers, make_message(chunk))

    async def dispatch_disconnected(self) -> None:
        # Snapshot: handlers may unregister themselves while running.
        for fn in list(self._disconnect_handlers):
            try:
                await _call(fn)
            except Exception as ex:  # noqa: BLE001
                logger.exception("Disconnect handler crashed", exc_info=ex)

    async def _fan_out(self, handlers: list[MessageHandler], m: Message) -> None:
        for fn in list(handlers):
            try:
                await _call(fn, m)
            except Exception as ex:  # noqa: BLE001
                logger.exception("Handler crashed", exc_info=ex)


def _discard(handlers: list[Any], fn: Any) -> None:
    try:
        handlers.remove(fn)
    except ValueError:
        pass
