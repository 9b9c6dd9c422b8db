"""
Process Key Cache - single slot holding the resolved Local Storage Key
"""

from typing import Optional


class ProcessKeyCache:
    """
    In-memory cache of the last resolved Local Storage Key.

    Only written with a value that was just persisted to, or read from, the
    authenticated key store. Once populated no further store reads happen
    for the life of the owning service.
    """

    def __init__(self) -> None:
        self._key: Optional[str] = None

    def read(self) -> Optional[str]:
        return self._key

    def write(self, key: str) -> None:
        self._key = key

    def clear(self) -> None:
        self._key = None

    @property
    def populated(self) -> bool:
        return bool(self._key)
