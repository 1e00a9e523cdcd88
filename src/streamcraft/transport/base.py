from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class TransportError(Exception):
    pass


class ResolutionError(TransportError):
    pass


class ConnectTimeoutError(TransportError, TimeoutError):
    pass


class ConnectFailedError(TransportError, ConnectionError):
    pass


class NotConnectedError(TransportError):
    pass


class Assembler(Protocol):
    """
    Incoming half of a stream framing: keeps state across reads and cuts each
    chunk into the complete payloads it closes.
    """

    def feed(self, chunk: bytes) -> list[bytes]: ...


@dataclass(frozen=True, slots=True)
class Endpoint:
    host: str
    port: int

    def validate(self) -> None:
        if not isinstance(self.host, str) or not self.host.strip():
            raise ValueError("host must be a non-empty string")
        if not isinstance(self.port, int) or isinstance(self.port, bool):
            raise ValueError("port must be an int")
        if not 0 <= self.port < 65536:
            raise ValueError(f"port out of range: {self.port}")

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"
