from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import threading

from streamcraft.client import Message, TcpClient, load_client_config
from streamcraft.core.bytes import as_delimiter


def _start_stdin_reader(loop: asyncio.AbstractEventLoop, lines: asyncio.Queue[str]) -> None:
    # Daemon thread: a read blocked on stdin must not keep the process alive.
    def _read() -> None:
        while True:
            line = sys.stdin.readline()
            loop.call_soon_threadsafe(lines.put_nowait, line)
            if not line:
                return

    threading.Thread(target=_read, name="stdin-reader", daemon=True).start()


async def _forward_lines(client: TcpClient, lines: asyncio.Queue[str], gone: asyncio.Event) -> None:
    """
    Send each input line until stdin hits EOF or the peer disconnects.
    """
    gone_wait = asyncio.ensure_future(gone.wait())
    try:
        while client.connected:
            read = asyncio.ensure_future(lines.get())
            await asyncio.wait({read, gone_wait}, return_when=asyncio.FIRST_COMPLETED)
            if not read.done():
                read.cancel()
                return
            line = read.result()
            if not line:
                return
            await client.write_line(line.rstrip("\r\n"))
    finally:
        gone_wait.cancel()


async def _run(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    cfg = load_client_config(args.config)
    if args.delimiter is not None:
        cfg.delimiter = as_delimiter(args.delimiter)
    if args.trim:
        cfg.auto_trim = True

    async with TcpClient(cfg) as client:
        gone = asyncio.Event()

        @client.events.on_message()
        def _print_line(m: Message) -> None:
            print(f"< {m.text}")

        @client.events.on_disconnected()
        def _bye() -> None:
            print("[disconnected]")
            gone.set()

        await client.connect(args.host, args.port, timeout=args.timeout)
        print(f"Connected to {args.host}:{args.port}")

        if args.message is not None:
            reply = await client.write_line_and_get_reply(args.message, args.reply_timeout)
            if reply is None:
                print("No reply.")
                return 1
            print(f"reply: {reply.data!r}")
            return 0

        lines: asyncio.Queue[str] = asyncio.Queue()
        _start_stdin_reader(asyncio.get_running_loop(), lines)
        await _forward_lines(client, lines, gone)
    return 0


def main() -> int:
    p = argparse.ArgumentParser(description="Send delimited lines to a TCP server.")
    p.add_argument("--host", type=str, default="127.0.0.1", help="Server host")
    p.add_argument("--port", type=int, default=8910, help="Server port")
    p.add_argument("--timeout", type=float, default=None, help="Connect timeout (seconds)")
    p.add_argument("--config", type=str, default="streamcraft.json", help="JSON config path")
    p.add_argument("--delimiter", type=str, default=None, help="Delimiter byte, e.g. 0x13 or 10")
    p.add_argument("--trim", action="store_true", help="Strip whitespace from decoded text")
    p.add_argument(
        "--message",
        type=str,
        default=None,
        help="Send one line, print the next reply and exit",
    )
    p.add_argument("--reply-timeout", type=float, default=5.0, help="Reply timeout (seconds)")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = p.parse_args()
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
