from __future__ import annotations

from .client import TcpClient
from .config import ClientConfig, client_config_from_dict, load_client_config
from .events import Message, NotificationBus
from .receiver import ReceiveLoop

__all__ = [
    "ClientConfig",
    "Message",
    "NotificationBus",
    "ReceiveLoop",
    "TcpClient",
    "client_config_from_dict",
    "load_client_config",
]
