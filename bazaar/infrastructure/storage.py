"""
Infrastructure: Key-Value Stores
"""
import asyncio
import copy
import json
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger()


class InMemoryKeyValueStore:
    """Settings storage that lives as long as the process"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = dict(initial or {})

    async def get(self, key: str, default: Any = None) -> Any:
        # Stored values are never shared with callers
        return copy.deepcopy(self._data.get(key, default))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)


class JsonFileKeyValueStore(InMemoryKeyValueStore):
    """
    Same as the in-memory store, but every write is flushed to a JSON file.
    A missing or unreadable file starts empty.
    """

    def __init__(self, file_path: str) -> None:
        super().__init__(self._load(Path(file_path)))
        self.path = Path(file_path)
        self._write_lock = asyncio.Lock()

    @staticmethod
    def _load(path: Path) -> Dict[str, Any]:
        if not path.exists():
            logger.info("store_file_not_found", path=str(path))
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                logger.error("store_file_invalid", path=str(path))
                return {}
            logger.info("store_file_loaded", path=str(path), keys=sorted(data))
            return data
        except Exception as e:
            logger.error("store_load_error", path=str(path), error=str(e))
            return {}

    async def set(self, key: str, value: Any) -> None:
        await super().set(key, value)
        async with self._write_lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(self._data, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp.replace(self.path)
