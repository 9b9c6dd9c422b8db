"""
In-Memory Key Store

Keeps entries in a dict. Used by tests and the CLI demo backend; never use it
for real data since the key is lost when the process exits.

Failures can be scripted per capability to exercise the provisioning flow:

    store = MemoryKeyStore()
    store.fail("open", KeyStoreError(KeyStoreErrorKind.INSECURE_DEVICE, "Device is not secure"))
"""

from typing import Dict, List, Optional, Set

from .errors import KeyStoreError, KeyStoreErrorKind
from .key_store_interface import AuthenticatedKeyStore, KeyStoreSession

CAPABILITIES = ("open", "list_keys", "get", "set", "secure_device")


class MemoryKeyStore(AuthenticatedKeyStore):
    """Dict-backed authenticated key store with scriptable failures."""

    def __init__(self, entries: Optional[Dict[str, Dict[str, str]]] = None, hidden: Optional[Dict[str, Set[str]]] = None):
        """
        Args:
            entries: Initial entries per store name
            hidden: Entry names per store that list_keys() does not report
                    (entries written in a legacy format)
        """
        self.stores: Dict[str, Dict[str, str]] = entries if entries is not None else {}
        self.hidden: Dict[str, Set[str]] = hidden if hidden is not None else {}
        self.failures: Dict[str, List[KeyStoreError]] = {name: [] for name in CAPABILITIES}
        self.calls: List[str] = []

    def fail(self, capability: str, error: KeyStoreError, times: int = 1) -> None:
        """Make the next `times` calls of a capability raise `error`."""
        if capability not in CAPABILITIES:
            raise ValueError(f"Unknown capability: {capability}")
        self.failures[capability].extend([error] * times)

    def _record(self, capability: str) -> None:
        self.calls.append(capability)
        if self.failures[capability]:
            raise self.failures[capability].pop(0)

    async def open(self, store_name: str) -> "MemorySession":
        self._record("open")
        return MemorySession(self, store_name)

    async def secure_device(self) -> None:
        self._record("secure_device")


class MemorySession(KeyStoreSession):
    """Opened view of one store inside a MemoryKeyStore."""

    def __init__(self, owner: MemoryKeyStore, store_name: str):
        self.owner = owner
        self.store_name = store_name

    @property
    def entries(self) -> Dict[str, str]:
        return self.owner.stores.setdefault(self.store_name, {})

    async def list_keys(self) -> Set[str]:
        self.owner._record("list_keys")
        hidden = self.owner.hidden.get(self.store_name, set())
        return set(self.entries) - hidden

    async def get(self, name: str) -> str:
        self.owner._record("get")
        if name not in self.entries:
            raise KeyStoreError(KeyStoreErrorKind.NOT_FOUND, f"Key '{name}' not found")
        return self.entries[name]

    async def set(self, name: str, value: str) -> str:
        self.owner._record("set")
        self.entries[name] = value
        # Rewriting an entry stores it in the current format
        self.owner.hidden.get(self.store_name, set()).discard(name)
        return name
