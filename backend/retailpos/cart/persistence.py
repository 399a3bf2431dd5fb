# Overview: Storage adapters for the terminal cart (in-memory and JSON file).

"""
Cart persistence adapters.

Any object with `load() -> CartState | None` and `save(CartState)` can back
a CartStore. The file adapter keeps one JSON document per storage file and
stores the cart under a fixed key, so other terminal state can share the
file later without clobbering the cart.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

from ..validation import ValidationError
from .models import CartState

logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "pos-cart-storage"
STORAGE_VERSION = 0


class CartPersistence(Protocol):
    def load(self) -> Optional[CartState]: ...

    def save(self, state: CartState) -> None: ...


class InMemoryCartPersistence:
    """Keeps the last saved state; used by tests and throwaway terminals."""

    def __init__(self, initial: Optional[CartState] = None):
        self.state = initial
        self.save_count = 0

    def load(self) -> Optional[CartState]:
        return self.state

    def save(self, state: CartState) -> None:
        self.state = state
        self.save_count += 1


class JsonFileCartPersistence:
    """
    Cart stored as {"<key>": {"state": {...}, "version": 0}} in a JSON file.

    Writes go through a temp file + os.replace so a crash mid-write leaves
    the previous cart intact.
    """

    def __init__(self, path, key: str = CART_STORAGE_KEY):
        self.path = Path(path)
        self.key = key

    def _read_document(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                document = json.load(fh)
        except (OSError, json.JSONDecodeError):
            logger.warning("Cart storage %s is unreadable; starting with an empty cart", self.path)
            return {}
        if not isinstance(document, dict):
            logger.warning("Cart storage %s has an unexpected shape; ignoring it", self.path)
            return {}
        return document

    def load(self) -> Optional[CartState]:
        entry = self._read_document().get(self.key)
        if not isinstance(entry, dict) or "state" not in entry:
            return None
        try:
            return CartState.from_payload(entry["state"])
        except ValidationError as e:
            logger.warning("Discarding stored cart under %r: %s", self.key, e)
            return None

    def save(self, state: CartState) -> None:
        document = self._read_document()
        document[self.key] = {"state": state.to_payload(), "version": STORAGE_VERSION}

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".cart-", suffix=".json", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2)
            os.replace(tmp_name, self.path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
