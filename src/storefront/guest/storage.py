"""Client-side persistence backends for the guest cart.

A backend stores one JSON document. The guest store decides what goes in
it; backends only move it in and out.
"""

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path


class CartStorage(ABC):
    """Abstract storage for a single serialized guest cart."""

    @abstractmethod
    def load(self) -> dict | None:
        """Return the stored document, or None when nothing is stored.

        Raises ValueError when the stored document cannot be decoded.
        """
        ...

    @abstractmethod
    def save(self, payload: dict) -> None: ...

    @abstractmethod
    def delete(self) -> None: ...


class MemoryStorage(CartStorage):
    """Keeps the document in process memory, serialized like the file backend."""

    def __init__(self) -> None:
        self._raw: str | None = None

    def load(self) -> dict | None:
        if self._raw is None:
            return None
        return json.loads(self._raw)

    def save(self, payload: dict) -> None:
        self._raw = json.dumps(payload)

    def delete(self) -> None:
        self._raw = None


class JsonFileStorage(CartStorage):
    """Stores the document as a JSON file, replacing it atomically on save."""

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = Path(path)

    def load(self) -> dict | None:
        if not self.path.exists():
            return None
        return json.loads(self.path.read_text(encoding="utf-8"))

    def save(self, payload: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def delete(self) -> None:
        self.path.unlink(missing_ok=True)
