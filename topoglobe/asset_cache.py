import logging
import time
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetCacheEntry:
    '''A decoded asset and when it was stored'''
    key: str
    value: Any
    loaded_at: float = field(default_factory=time.time)


class AssetCache:
    '''Process-lifetime cache of decoded assets

    Remarks
    -------
    - Keyed by source URL or path
    - The first value stored for a key wins; later puts return the kept value
    - Entries are never evicted implicitly, static geography does not change
    - clear() disposes every value that has a dispose() method (textures,
      rasters)
    '''

    def __init__(self):
        self._entries: dict[str, AssetCacheEntry] = {}

    def get(self, key: str) -> AssetCacheEntry | None:
        return self._entries.get(key)

    def put(self, key: str, value: Any) -> Any:
        """Store value under key unless a value is already cached

        Returns
        -------
        value : Any
            The cached value for key after the call
        """
        entry = self._entries.get(key)
        if entry is not None:
            return entry.value
        self._entries[key] = AssetCacheEntry(key, value)
        return value

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[str]:
        return list(self._entries)

    def stats(self) -> dict:
        return {'size': len(self._entries), 'keys': self.keys()}

    def clear(self) -> None:
        """Drop all entries, disposing their underlying resources"""
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            dispose = getattr(entry.value, 'dispose', None)
            if callable(dispose):
                dispose()
        logger.info("Asset cache cleared (%d entries)", len(entries))
