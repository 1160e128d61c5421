# ABOUTME: Provides the key-value persistence collaborator used by the tracker and profiler.
# ABOUTME: Ships an in-memory store for tests and a JSON-file store for the CLI.

from __future__ import annotations

import json
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

ACADEMIC_STORE = "academic_state"
PROFILE_STORE = "profiles"

KEY_FIELDS = {
    ACADEMIC_STORE: "subject_id",
    PROFILE_STORE: "user_id",
}


class KeyValueStore:
    """
    Minimal object store keyed by each item's primary field.

    Items are plain dicts; the key field for a store comes from KEY_FIELDS,
    defaulting to "id".
    """

    def get(self, store: str, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def get_all(self, store: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def put(self, store: str, item: Dict[str, Any]) -> None:
        self.bulk_put(store, [item])

    def bulk_put(self, store: str, items: Iterable[Dict[str, Any]]) -> None:
        raise NotImplementedError

    def delete(self, store: str, key: str) -> None:
        raise NotImplementedError

    def clear(self, store: str) -> None:
        raise NotImplementedError

    @staticmethod
    def key_for(store: str, item: Dict[str, Any]) -> str:
        key_field = KEY_FIELDS.get(store, "id")
        if key_field not in item:
            raise ValueError(f"Item for store '{store}' is missing key field '{key_field}'.")
        return str(item[key_field])


class InMemoryStore(KeyValueStore):
    def __init__(self) -> None:
        self._stores: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def get(self, store: str, key: str) -> Optional[Dict[str, Any]]:
        item = self._stores.get(store, {}).get(str(key))
        return deepcopy(item) if item is not None else None

    def get_all(self, store: str) -> List[Dict[str, Any]]:
        return [deepcopy(item) for item in self._stores.get(store, {}).values()]

    def bulk_put(self, store: str, items: Iterable[Dict[str, Any]]) -> None:
        bucket = self._stores.setdefault(store, {})
        for item in items:
            bucket[self.key_for(store, item)] = deepcopy(item)

    def delete(self, store: str, key: str) -> None:
        self._stores.get(store, {}).pop(str(key), None)

    def clear(self, store: str) -> None:
        self._stores.pop(store, None)


class JsonFileStore(KeyValueStore):
    """One `<store>.json` file per store under `root`, rewritten on every write."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, store: str) -> Path:
        return self.root / f"{store}.json"

    def _read(self, store: str) -> Dict[str, Dict[str, Any]]:
        path = self._path(store)
        if not path.exists():
            return {}
        text = path.read_text(encoding="utf-8").strip()
        return json.loads(text) if text else {}

    def _write(self, store: str, bucket: Dict[str, Dict[str, Any]]) -> None:
        path = self._path(store)
        staging = path.with_suffix(".json.tmp")
        staging.write_text(json.dumps(bucket, indent=2, sort_keys=True), encoding="utf-8")
        staging.replace(path)

    def get(self, store: str, key: str) -> Optional[Dict[str, Any]]:
        return self._read(store).get(str(key))

    def get_all(self, store: str) -> List[Dict[str, Any]]:
        return list(self._read(store).values())

    def bulk_put(self, store: str, items: Iterable[Dict[str, Any]]) -> None:
        bucket = self._read(store)
        for item in items:
            bucket[self.key_for(store, item)] = item
        self._write(store, bucket)

    def delete(self, store: str, key: str) -> None:
        bucket = self._read(store)
        if bucket.pop(str(key), None) is not None:
            self._write(store, bucket)

    def clear(self, store: str) -> None:
        path = self._path(store)
        if path.exists():
            path.unlink()
