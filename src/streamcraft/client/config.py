from __future__ import annotations

import codecs
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

from streamcraft.core.bytes import DEFAULT_DELIMITER, BytesError, as_delimiter
from streamcraft.client.receiver import DEFAULT_READ_LOOP_INTERVAL
from streamcraft.transport.tcp import DEFAULT_READ_SIZE


@dataclass(slots=True)
class ClientConfig:
    encoding: str = "utf-8"
    delimiter: int = DEFAULT_DELIMITER
    auto_trim: bool = False
    read_loop_interval: float = DEFAULT_READ_LOOP_INTERVAL
    read_size: int = DEFAULT_READ_SIZE
    connect_timeout: float | None = None

    def validate(self) -> None:
        try:
            codecs.lookup(self.encoding)
        except LookupError as e:
            raise ValueError(f"Unknown encoding: {self.encoding!r}") from e
        if isinstance(self.delimiter, bool) or not 0 <= int(self.delimiter) <= 0xFF:
            raise ValueError(f"delimiter out of byte range: {self.delimiter}")
        if self.read_loop_interval < 0:
            raise ValueError("read_loop_interval must be >= 0")
        if self.read_size <= 0:
            raise ValueError("read_size must be > 0")
        if self.connect_timeout is not None and self.connect_timeout < 0:
            raise ValueError("connect_timeout must be >= 0 or None")


def _as_bool(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return default


def _as_int(value: Any, *, default: int, min_value: int | None = None) -> int:
    if value is None or isinstance(value, bool):
        out = default
    elif isinstance(value, (int, float)):
        out = int(value)
    elif isinstance(value, str):
        try:
            out = int(value.strip())
        except ValueError:
            out = default
    else:
        out = default
    if min_value is not None and out < min_value:
        return min_value
    return out


def _as_float(value: Any, *, default: float, min_value: float | None = None) -> float:
    if value is None or isinstance(value, bool):
        out = default
    elif isinstance(value, (int, float)):
        out = float(value)
    elif isinstance(value, str):
        try:
            out = float(value.strip())
        except ValueError:
            out = default
    else:
        out = default
    if min_value is not None and out < min_value:
        return min_value
    return out


def _as_optional_float(value: Any, *, default: float | None) -> float | None:
    if value is None:
        return default
    if isinstance(value, str) and value.strip().lower() in {"none", "null", ""}:
        return None
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return max(0.0, float(value))
    if isinstance(value, str):
        try:
            return max(0.0, float(value.strip()))
        except ValueError:
            return default
    return default


def _as_delimiter(value: Any, *, default: int) -> int:
    if value is None:
        return default
    try:
        return as_delimiter(value)
    except BytesError:
        return default


def client_config_from_dict(data: dict[str, Any]) -> ClientConfig:
    defaults = ClientConfig()
    encoding_raw = data.get("encoding")
    encoding = encoding_raw.strip() if isinstance(encoding_raw, str) else ""
    cfg = ClientConfig(
        encoding=encoding or defaults.encoding,
        delimiter=_as_delimiter(data.get("delimiter"), default=defaults.delimiter),
        auto_trim=_as_bool(data.get("auto_trim"), default=defaults.auto_trim),
        read_loop_interval=_as_float(
            data.get("read_loop_interval"),
            default=defaults.read_loop_interval,
            min_value=0.0,
        ),
        read_size=_as_int(data.get("read_size"), default=defaults.read_size, min_value=1),
        connect_timeout=_as_optional_float(
            data.get("connect_timeout"), default=defaults.connect_timeout
        ),
    )
    cfg.validate()
    return cfg


def load_client_config(path: str | Path) -> ClientConfig:
    """
    Load client JSON config with safe defaults.

    If file does not exist, defaults are returned.
    """
    p = Path(path).expanduser()
    if not p.exists():
        return ClientConfig()

    raw = p.read_text(encoding="utf-8")
    payload = json.loads(raw)
    if not isinstance(payload, dict):
        raise ValueError(f"Invalid client config at {p}: root must be an object")
    return client_config_from_dict(cast(dict[str, Any], payload))
