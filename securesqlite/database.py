"""
Encrypted database opening with automatic key injection

SecureDatabaseOpener wraps a DatabaseEngine so callers can open the local
database without knowing the Local Storage Key:

    service = KeyProvisioningService(HardwareBackedKeyStore(KeyringKeyStore()))
    opener = SecureDatabaseOpener(engine, service)
    conn = await opener.open_database({"name": "app.db"})

Options carrying an explicit string "key" are passed through untouched apart
from the "location" default. Validating the key itself is the engine's job.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict

from .config import DEFAULT_DB_LOCATION
from .errors import EngineNotLoadedError
from .logger import Logger
from .provisioning import KeyProvisioningService


class DatabaseEngine(ABC):
    """
    Encrypted embedded database engine.

    supports_encryption is fixed when the engine wrapper is built and tells
    consumers the engine accepts a "key" option.
    """

    supports_encryption: bool = False

    @abstractmethod
    def open_database(self, options: Dict[str, Any]) -> Any:
        """
        Open a database.

        Args:
            options: Engine options, including "key" and "location"

        Returns:
            Engine-specific connection handle
        """
        pass


class SecureDatabaseOpener:
    """Injects the Local Storage Key into database open calls."""

    def __init__(self, engine: DatabaseEngine, provisioning: KeyProvisioningService):
        if engine is None or not callable(getattr(engine, "open_database", None)):
            raise EngineNotLoadedError(
                "Dependencies were not loaded correctly: engine does not provide an `open_database` function."
            )
        if not getattr(engine, "supports_encryption", False):
            raise EngineNotLoadedError(
                "Dependencies were not loaded correctly: engine does not support encrypted databases."
            )
        self.engine = engine
        self.provisioning = provisioning

    async def open_database(self, options: Dict[str, Any]) -> Any:
        """
        Open the database, acquiring the Local Storage Key when no key is given.

        The caller's options dict is never modified.

        Raises:
            KeyProvisioningError: key could not be acquired (recoverable)
            ProvisioningPanic: key acquisition hit a fatal condition
        """
        new_options = dict(options)
        if new_options.get("location") is None:
            new_options["location"] = DEFAULT_DB_LOCATION

        if isinstance(options.get("key"), str):
            return self.engine.open_database(new_options)

        new_options["key"] = await self.provisioning.acquire()
        Logger.debug("DB", f"Opening database at location '{new_options['location']}' with local storage key")
        return self.engine.open_database(new_options)
