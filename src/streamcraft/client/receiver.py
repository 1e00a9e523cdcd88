from __future__ import annotations

import asyncio
import logging

from streamcraft.client.events import MessageFactory, NotificationBus
from streamcraft.transport.base import Assembler
from streamcraft.transport.tcp import TcpConnection

logger = logging.getLogger(__name__)

DEFAULT_READ_LOOP_INTERVAL = 0.01


class ReceiveLoop:
    """
    Polls one connection at a fixed rate and feeds what it reads to the bus.

    Each tick: report a lost connection once (then stop), or do one read of the
    pending bytes and dispatch them. Failures inside a tick are logged and the
    loop keeps going; only stop() or a detected disconnect ends it. A loop runs
    at most once; reconnecting builds a new one.
    """

    def __init__(
        self,
        connection: TcpConnection,
        assembler: Assembler,
        bus: NotificationBus,
        make_message: MessageFactory,
        *,
        interval: float = DEFAULT_READ_LOOP_INTERVAL,
    ) -> None:
        self._connection = connection
        self._assembler = assembler
        self._bus = bus
        self._make_message = make_message
        self._interval = max(0.0, float(interval))
        self._stop = False
        self._disconnect_notified = False
        self._task: asyncio.Task[None] | None = None

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stop_requested(self) -> bool:
        return self._stop

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("ReceiveLoop already started; it cannot be restarted")
        self._task = asyncio.create_task(
            self._run(), name=f"streamcraft-receive:{self._connection.endpoint}"
        )

    def stop(self) -> None:
        self._stop = True

    async def wait_stopped(self) -> None:
        task = self._task
        if task is None or task is asyncio.current_task():
            return
        await asyncio.gather(task, return_exceptions=True)

    async def _run(self) -> None:
        logger.debug("Receive loop started for %s", self._connection.endpoint)
        while not self._stop:
            try:
                await self.step()
            except asyncio.CancelledError:
                raise
            except Exception as ex:  # noqa: BLE001
                logger.exception("Receive loop tick failed", exc_info=ex)
            await asyncio.sleep(self._interval)
        logger.debug("Receive loop stopped for %s", self._connection.endpoint)

    async def step(self) -> None:
        conn = self._connection
        if not conn.connected:
            if not self._disconnect_notified:
                self._disconnect_notified = True
                self._stop = True
                logger.debug("Connection to %s lost", conn.endpoint)
                await self._bus.dispatch_disconnected()
            return
        if not conn.readable():
            return
        chunk = conn.read_available()
        if not chunk:
            return
        messages = self._assembler.feed(chunk)
        await self._bus.dispatch_chunk(messages, chunk, self._make_message)
