"""Key-value storage capability used to persist workflows and agent state."""
from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)


class StorageNamespace(str, Enum):
    AGENTS = "agents"
    WORKFLOWS = "workflows"
    SETTINGS = "settings"
    HISTORY = "history"


class Storage(Protocol):
    async def get(self, namespace: str, key: str) -> Optional[Any]:
        ...

    async def set(self, namespace: str, key: str, value: Any) -> None:
        ...

    async def delete(self, namespace: str, key: str) -> bool:
        ...

    async def keys(self, namespace: str) -> List[str]:
        ...


class MemoryStorage:
    """Process-local storage; values are kept as given."""

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}

    async def get(self, namespace: str, key: str) -> Optional[Any]:
        return self._data.get(namespace, {}).get(key)

    async def set(self, namespace: str, key: str, value: Any) -> None:
        self._data.setdefault(namespace, {})[key] = value

    async def delete(self, namespace: str, key: str) -> bool:
        return self._data.get(namespace, {}).pop(key, None) is not None

    async def keys(self, namespace: str) -> List[str]:
        return list(self._data.get(namespace, {}))


class JsonFileStorage:
    """Storage keeping one JSON document per namespace under ``root``."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def _path(self, namespace: str) -> Path:
        return self._root / f"{namespace}.json"

    async def _load(self, namespace: str) -> Dict[str, Any]:
        path = self._path(namespace)
        if not await aiofiles.os.path.exists(path):
            return {}
        async with aiofiles.open(path, mode="r", encoding="utf-8") as handle:
            text = await handle.read()
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable storage file %s", path)
            return {}

    async def _dump(self, namespace: str, data: Dict[str, Any]) -> None:
        path = self._path(namespace)
        tmp = path.with_suffix(".tmp")
        async with aiofiles.open(tmp, mode="w", encoding="utf-8") as handle:
            await handle.write(json.dumps(data, indent=2, sort_keys=True))
        await aiofiles.os.replace(tmp, path)

    async def get(self, namespace: str, key: str) -> Optional[Any]:
        async with self._lock:
            return (await self._load(namespace)).get(key)

    async def set(self, namespace: str, key: str, value: Any) -> None:
        async with self._lock:
            data = await self._load(namespace)
            data[key] = value
            await self._dump(namespace, data)

    async def delete(self, namespace: str, key: str) -> bool:
        async with self._lock:
            data = await self._load(namespace)
            if key not in data:
                return False
            del data[key]
            await self._dump(namespace, data)
            return True

    async def keys(self, namespace: str) -> List[str]:
        async with self._lock:
            return list(await self._load(namespace))
