"""
Key Store Interface - Abstract base for authenticated key stores

This defines the interface the provisioning state machine consumes to keep
the Local Storage Key in hardware-backed, authenticated storage.

Implementations:
- KeyringKeyStore: Linux kernel keyring (via keyctl)
- HardwareBackedKeyStore: requires a TPM2 device before opening another store
- MemoryKeyStore: in-process store for tests and demos

Every capability is a coroutine that either returns its result or raises
KeyStoreError exactly once.
"""

from abc import ABC, abstractmethod
from typing import Set


class KeyStoreSession(ABC):
    """
    An opened key store instance.

    Obtained from AuthenticatedKeyStore.open() and used for a single
    acquisition attempt; never persisted across calls.
    """

    @abstractmethod
    async def list_keys(self) -> Set[str]:
        """
        List entry names visible in this store.

        Returns:
            Set of entry names

        Raises:
            KeyStoreError: AUTH_SKIPPED if the user skipped authentication,
                OTHER for any other failure
        """
        pass

    @abstractmethod
    async def get(self, name: str) -> str:
        """
        Read an entry.

        Raises:
            KeyStoreError: NOT_FOUND if the entry does not exist, OTHER otherwise
        """
        pass

    @abstractmethod
    async def set(self, name: str, value: str) -> str:
        """
        Write an entry, replacing any previous value.

        Returns:
            The entry name

        Raises:
            KeyStoreError: if the value could not be stored
        """
        pass


class AuthenticatedKeyStore(ABC):
    """
    Client for a platform key store that requires user authentication and may
    enforce a device security policy.
    """

    @abstractmethod
    async def open(self, store_name: str) -> KeyStoreSession:
        """
        Open (initialize) the named store.

        Raises:
            KeyStoreError: AUTH_SKIPPED, INSECURE_DEVICE, MIGRATION_FAILED,
                or KEYSTORE_SPECIFIC carrying a backend code
        """
        pass

    @abstractmethod
    async def secure_device(self) -> None:
        """
        Ask the platform to bring the device up to the required security level.

        Only invoked after open() failed with INSECURE_DEVICE and the user agreed.

        Raises:
            KeyStoreError: if the device is still not secure
        """
        pass

    def is_available(self) -> bool:
        """
        Check if this backend can be used on the system.

        Returns:
            True if backend can be used, False otherwise
        """
        return True

    def close(self) -> None:
        """Release any resources held by the backend."""
        pass
