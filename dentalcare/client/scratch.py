"""Caller-managed key-value scratch areas for in-flight booking state."""

import json
import os
from pathlib import Path
from threading import Lock
from typing import Protocol


class ScratchStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryScratchStore:
    def __init__(self):
        self._values: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class FileScratchStore:
    """Scratch area persisted as one JSON object, so it survives a restart of the caller."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = Lock()

    def _load(self) -> dict[str, str]:
        try:
            with self.path.open('r', encoding='utf-8') as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            # A torn write leaves nothing worth restoring.
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temporary = self.path.with_suffix(self.path.suffix + '.tmp')
        with temporary.open('w', encoding='utf-8') as handle:
            json.dump(data, handle)
        os.replace(temporary, self.path)

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._save(data)
