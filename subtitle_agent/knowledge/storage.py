"""
Namespaced key-value string storage for the glossary and user settings.

Keys are prefixed with an application namespace so several tools can share
one settings file without clobbering each other.
"""

from __future__ import annotations

import json
import os
from typing import Protocol

DEFAULT_NAMESPACE = "subtitle_translator_"

STORAGE_KEYS = {
    "API_KEY": "api_key",
    "CUSTOM_PROMPT": "custom_prompt",
    "PROPER_NOUNS": "proper_nouns",
}


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def clear(self) -> None: ...


class MemoryStore:
    """In-process store, used for tests and throwaway runs."""

    def __init__(self, namespace: str = DEFAULT_NAMESPACE, initial: dict[str, str] | None = None):
        self.namespace = namespace
        self.data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str) -> str | None:
        return self.data.get(self.namespace + key)

    def set(self, key: str, value: str) -> None:
        self.data[self.namespace + key] = str(value)

    def remove(self, key: str) -> None:
        self.data.pop(self.namespace + key, None)

    def clear(self) -> None:
        for key in [k for k in self.data if k.startswith(self.namespace)]:
            del self.data[key]


class JsonFileStore(MemoryStore):
    """Store persisted as one flat JSON object on disk, rewritten on each change."""

    def __init__(self, path: str = "data/storage.json", namespace: str = DEFAULT_NAMESPACE):
        super().__init__(namespace=namespace)
        self.path = path
        self._load()

    def _load(self) -> None:
        if not os.path.exists(self.path):
            return
        with open(self.path, "r", encoding="utf-8") as f:
            try:
                raw = json.load(f)
            except json.JSONDecodeError:
                raw = {}
        if isinstance(raw, dict):
            self.data = {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _save(self) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self.data, f, ensure_ascii=False, indent=2)

    def set(self, key: str, value: str) -> None:
        super().set(key, value)
        self._save()

    def remove(self, key: str) -> None:
        super().remove(key)
        self._save()

    def clear(self) -> None:
        super().clear()
        self._save()
