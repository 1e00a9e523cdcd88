from .base import (
    ConnectFailedError,
    ConnectTimeoutError,
    Endpoint,
    NotConnectedError,
    ResolutionError,
    TransportError,
)
from .delimited import DelimitedFraming, FrameAssembler
from .tcp import TcpConnection, open_connection, open_connection_with_timeout

__all__ = [
    "ConnectFailedError",
    "ConnectTimeoutError",
    "DelimitedFraming",
    "Endpoint",
    "FrameAssembler",
    "NotConnectedError",
    "ResolutionError",
    "TcpConnection",
    "TransportError",
    "open_connection",
    "open_connection_with_timeout",
]
