# backend/retailpos/client/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass(frozen=True)
class TerminalConfig:
    """Settings for one checkout terminal."""
    base_url: str = "http://127.0.0.1:5000"
    terminal_name: str = "POS-01"
    cart_path: Path = Path.home() / ".retailpos" / "cart.json"
    poll_interval: float = 5.0
    request_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "TerminalConfig":
        defaults = cls()
        cart_path = os.environ.get("RETAILPOS_CART_PATH")
        return cls(
            base_url=os.environ.get("RETAILPOS_API_URL", defaults.base_url).rstrip("/"),
            terminal_name=os.environ.get("RETAILPOS_TERMINAL_NAME", defaults.terminal_name),
            cart_path=Path(cart_path).expanduser() if cart_path else defaults.cart_path,
            poll_interval=_env_float("POLL_INTERVAL_SECONDS", defaults.poll_interval),
            request_timeout=_env_float("RETAILPOS_REQUEST_TIMEOUT", defaults.request_timeout),
        )
