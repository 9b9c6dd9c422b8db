"""
Local Storage Key Provisioning

Resolves the key used to open the encrypted local database. The flow is an
explicit state machine driven by awaited key store calls:

  CACHE_HIT                       key already resolved in this process
  OPENING -> MIGRATING -> LISTING -> READING_EXISTING | GENERATING
  REMEDIATING                     insecure device, user asked to fix it,
                                  loops back to OPENING on success
  FAILED                          fatal, the application must exit

Failure policy:
  - Fatal (ProvisioningPanic): authentication skipped, keystore not ready,
    insecure device not remediated, failed format migration.
  - Recoverable (KeyProvisioningError): any other open/list/get/set failure.
  - Ignored: failures of the migration rewrite.

An existing entry is never replaced by a generated key, even when reading it
fails.
"""

from enum import Enum
from typing import Optional, Set

from .config import (
    KEY_STORE_NAME,
    LOCAL_STORAGE_KEY_NAME,
    KEYSTORE_NOT_READY_CODE,
    AUTH_REQUIRED_NOTICE,
    SECURE_DEVICE_PROMPT,
    MIGRATION_FAILED_NOTICE,
)
from .errors import KeyStoreError, KeyStoreErrorKind, KeyProvisioningError, ProvisioningPanic
from .key_cache import ProcessKeyCache
from .key_generator import SecureRandomKeyGenerator
from .key_store_interface import AuthenticatedKeyStore, KeyStoreSession
from .logger import Logger, Colors, fingerprint
from .user_interface import UserInterface, ConsoleInterface


class ProvisioningState(Enum):
    IDLE = "idle"
    CACHE_HIT = "cache-hit"
    OPENING = "opening"
    MIGRATING = "migrating"
    LISTING = "listing"
    READING_EXISTING = "reading-existing"
    GENERATING = "generating"
    REMEDIATING = "remediating"
    RESOLVED = "resolved"
    FAILED = "failed"


class KeyProvisioningService:
    """
    Owns the process key cache and drives key acquisition.

    Construct once at start-up and hand the same instance to every consumer
    (e.g. SecureDatabaseOpener). Concurrent acquire() calls made before the
    cache is populated each perform their own key store round-trip.
    """

    def __init__(self, key_store: AuthenticatedKeyStore, ui: Optional[UserInterface] = None,
                 generator: Optional[SecureRandomKeyGenerator] = None,
                 cache: Optional[ProcessKeyCache] = None,
                 store_name: str = KEY_STORE_NAME, key_name: str = LOCAL_STORAGE_KEY_NAME):
        self.key_store = key_store
        self.ui = ui if ui else ConsoleInterface()
        self.generator = generator if generator else SecureRandomKeyGenerator()
        self.cache = cache if cache else ProcessKeyCache()
        self.store_name = store_name
        self.key_name = key_name
        self.state = ProvisioningState.IDLE

    def _transition(self, state: ProvisioningState) -> None:
        Logger.debug("LSK", f"{self.state.value} -> {state.value}")
        self.state = state

    async def acquire(self) -> str:
        """
        Provide the stored Local Storage Key, generating one on first use.

        Returns:
            The Local Storage Key

        Raises:
            KeyProvisioningError: recoverable key store failure
            ProvisioningPanic: the application cannot run without its key
        """
        cached = self.cache.read()
        if cached:
            self._transition(ProvisioningState.CACHE_HIT)
            return cached

        session = await self._open()
        await self._rewrite_entry(session)

        if self.key_name in await self._list_keys(session):
            return await self._read_existing(session)
        return await self._generate(session)

    async def has_key(self) -> bool:
        """
        Check whether the key entry exists without rewriting it.

        Entries in the legacy format are not listed, so an unlisted entry is
        confirmed with get() before reporting it missing.

        Raises:
            KeyProvisioningError: the entry could not be checked
            ProvisioningPanic: the application cannot run without its key
        """
        session = await self._open()
        if self.key_name in await self._list_keys(session):
            return True
        try:
            await session.get(self.key_name)
        except KeyStoreError as e:
            if e.kind is KeyStoreErrorKind.NOT_FOUND:
                return False
            self._transition(ProvisioningState.FAILED)
            raise KeyProvisioningError("Unable to check local storage key", cause=e) from e
        return True

    # ========================================================================
    # States
    # ========================================================================

    async def _open(self) -> KeyStoreSession:
        while True:
            self._transition(ProvisioningState.OPENING)
            try:
                return await self.key_store.open(self.store_name)
            except KeyStoreError as e:
                await self._handle_open_failure(e)

    async def _handle_open_failure(self, error: KeyStoreError) -> None:
        """
        Returns normally only when the device was remediated and opening
        should be retried. Every other branch raises.
        """
        kind = error.kind

        if kind is KeyStoreErrorKind.AUTH_SKIPPED or (
                kind is KeyStoreErrorKind.KEYSTORE_SPECIFIC and error.code == KEYSTORE_NOT_READY_CODE):
            await self._terminate(AUTH_REQUIRED_NOTICE, error)

        elif kind is KeyStoreErrorKind.INSECURE_DEVICE:
            Logger.warning("SecureSQLiteBundle: Device is not secure.")
            self._transition(ProvisioningState.REMEDIATING)
            if not await self.ui.confirm(SECURE_DEVICE_PROMPT):
                await self._terminate(None, error)
            try:
                await self.key_store.secure_device()
            except KeyStoreError as remediation_error:
                Logger.error(f"SecureSQLiteBundle: Device security setup failed: {remediation_error}")
                await self._terminate(None, remediation_error)

        elif kind is KeyStoreErrorKind.MIGRATION_FAILED:
            Logger.error("SecureSQLiteBundle: Migration failed.")
            await self._terminate(MIGRATION_FAILED_NOTICE, error)

        else:
            self._transition(ProvisioningState.FAILED)
            Logger.error(f"SecureSQLiteBundle: Error opening key store: {error}")
            raise KeyProvisioningError(f"Unable to open key store '{self.store_name}'", cause=error) from error

    async def _rewrite_entry(self, session: KeyStoreSession) -> None:
        """
        Read the entry and write it back unchanged.

        Entries written by an older store format can be missing from
        list_keys() while get() still finds them; writing them back through
        the current store normalizes them. Best effort only.
        """
        self._transition(ProvisioningState.MIGRATING)
        try:
            value = await session.get(self.key_name)
            await session.set(self.key_name, value)
        except KeyStoreError as e:
            Logger.debug("LSK", f"Skipping key rewrite: {e}")

    async def _list_keys(self, session: KeyStoreSession) -> Set[str]:
        self._transition(ProvisioningState.LISTING)
        try:
            return await session.list_keys()
        except KeyStoreError as e:
            Logger.error(f"SecureSQLiteBundle: Error while getting local storage key: {e}")
            if e.kind is KeyStoreErrorKind.AUTH_SKIPPED:
                await self._terminate(AUTH_REQUIRED_NOTICE, e)
            self._transition(ProvisioningState.FAILED)
            raise KeyProvisioningError("Unable to list key store entries", cause=e) from e

    async def _read_existing(self, session: KeyStoreSession) -> str:
        self._transition(ProvisioningState.READING_EXISTING)
        try:
            value = await session.get(self.key_name)
        except KeyStoreError as e:
            self._transition(ProvisioningState.FAILED)
            Logger.error(f"SecureSQLiteBundle: Error getting local storage key from keychain: {e}")
            raise KeyProvisioningError("Unable to read local storage key", cause=e) from e

        self.cache.write(value)
        self._transition(ProvisioningState.RESOLVED)
        Logger.debug("LSK", f"Loaded local storage key (fingerprint {fingerprint(value)})")
        return value

    async def _generate(self, session: KeyStoreSession) -> str:
        self._transition(ProvisioningState.GENERATING)
        self.cache.clear()
        new_key = self.generator.generate()
        try:
            await session.set(self.key_name, new_key)
        except KeyStoreError as e:
            self._transition(ProvisioningState.FAILED)
            Logger.error(f"SecureSQLiteBundle: Error generating new local storage key: {e}")
            raise KeyProvisioningError("Unable to store new local storage key", cause=e) from e

        Logger.info("SecureSQLiteBundle: Setting new local storage key.")
        self.cache.write(new_key)
        self._transition(ProvisioningState.RESOLVED)
        return new_key

    async def _terminate(self, notice: Optional[str], cause: KeyStoreError) -> None:
        """Notify the user (if there is something to say) and panic."""
        self._transition(ProvisioningState.FAILED)
        if notice:
            await self.ui.alert(notice)
        Logger.tagged("PANIC", Colors.RED, f"Local storage key unavailable: {cause}")
        raise ProvisioningPanic(str(cause), cause=cause)
