"""
Kernel Keyring Key Store Implementation

Keeps Local Storage Key entries in the Linux kernel keyring.
Uses the user keyring (@u) by default so entries survive logout/login cycles
for as long as the kernel keeps the user's keyring.

Entries are "user" keys described as "<store>:<name>". Releases before the
store prefix was introduced wrote the bare "<name>"; those legacy entries are
not reported by list_keys() but get() still finds them, which is what the
migration rewrite relies on.

Requirements:
- Linux kernel with keyring support (CONFIG_KEYS=y)
- keyctl utility (from keyutils package)
"""

import asyncio
import re
import subprocess
from typing import List, Optional, Set, Tuple

from .config import (
    DEFAULT_KEYRING,
    KEYCTL_TIMEOUT_SECONDS,
    KEYCTL_CHECK_TIMEOUT_SECONDS,
    KEYSTORE_NOT_READY_CODE,
)
from .errors import KeyStoreError, KeyStoreErrorKind
from .key_store_interface import AuthenticatedKeyStore, KeyStoreSession
from .logger import Logger

# Output line of `keyctl list`: "  123456: --alswrv  1000  1000 user: description"
_LIST_LINE = re.compile(r'^\s*(\d+):\s+\S+\s+-?\d+\s+-?\d+\s+([^:\s]+):\s?(.*)$')

_AUTH_ERRORS = ("Permission denied", "Key has been revoked", "Key has expired")
_NOT_FOUND_ERRORS = ("Required key not available", "No such file or directory")


def _classify(stderr: str, default: KeyStoreErrorKind = KeyStoreErrorKind.OTHER) -> KeyStoreErrorKind:
    if any(marker in stderr for marker in _AUTH_ERRORS):
        return KeyStoreErrorKind.AUTH_SKIPPED
    if any(marker in stderr for marker in _NOT_FOUND_ERRORS):
        return KeyStoreErrorKind.NOT_FOUND
    return default


class KeyringKeyStore(AuthenticatedKeyStore):
    """
    Linux kernel keyring implementation of the authenticated key store.

    Uses the kernel keyring API via the keyctl command-line tool. Every
    command runs in a worker thread so the event loop is never blocked.
    """

    def __init__(self, keyring_type: str = DEFAULT_KEYRING, timeout: float = KEYCTL_TIMEOUT_SECONDS):
        """
        Initialize keyring storage.

        Args:
            keyring_type: Keyring to use:
                - "@u" = user keyring (persistent per user, default)
                - "@s" = session keyring (cleared on logout)
                - "@us" = user session keyring
            timeout: Seconds allowed for each keyctl invocation
        """
        self.keyring_type = keyring_type
        self.timeout = timeout

    # ========================================================================
    # keyctl plumbing
    # ========================================================================

    def _keyctl(self, args: List[str], data: Optional[bytes] = None,
                timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        """
        Run a keyctl command.

        Raises:
            KeyStoreError: KEYSTORE_SPECIFIC if keyctl is missing, OTHER on timeout
                or any other OS error
        """
        cmd = ['keyctl'] + args
        try:
            return subprocess.run(
                cmd,
                input=data,
                capture_output=True,
                timeout=timeout or self.timeout
            )
        except FileNotFoundError:
            raise KeyStoreError(
                KeyStoreErrorKind.KEYSTORE_SPECIFIC,
                "keyctl command not found - install keyutils package",
                code=KEYSTORE_NOT_READY_CODE
            )
        except subprocess.TimeoutExpired:
            raise KeyStoreError(KeyStoreErrorKind.OTHER, f"Timeout while running keyctl {args[0]}")
        except OSError as e:
            raise KeyStoreError(KeyStoreErrorKind.OTHER, f"Unable to run keyctl {args[0]}: {e}")

    async def _run(self, args: List[str], data: Optional[bytes] = None,
                   timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        return await asyncio.to_thread(self._keyctl, args, data, timeout)

    def _list_entries(self) -> List[Tuple[str, str]]:
        """Return (serial, description) for every user key in the keyring."""
        result = self._keyctl(['list', self.keyring_type])
        if result.returncode != 0:
            error = result.stderr.decode(errors='replace').strip()
            raise KeyStoreError(_classify(error), f"Failed to list keyring: {error}")

        entries = []
        for line in result.stdout.decode(errors='replace').splitlines():
            match = _LIST_LINE.match(line)
            if match and match.group(2) == 'user':
                entries.append((match.group(1), match.group(3).strip()))
        return entries

    def _search(self, description: str) -> Optional[str]:
        """Return the serial of a user key by description, or None if absent."""
        result = self._keyctl(['search', self.keyring_type, 'user', description])
        if result.returncode == 0:
            return result.stdout.decode(errors='replace').strip()

        error = result.stderr.decode(errors='replace').strip()
        kind = _classify(error, default=KeyStoreErrorKind.NOT_FOUND)
        if kind is KeyStoreErrorKind.NOT_FOUND:
            return None
        raise KeyStoreError(kind, f"Failed to search keyring: {error}")

    def _read(self, serial: str) -> str:
        result = self._keyctl(['pipe', serial])
        if result.returncode != 0:
            error = result.stderr.decode(errors='replace').strip()
            raise KeyStoreError(_classify(error), f"Failed to read key from keyring: {error}")
        try:
            return result.stdout.decode('utf-8')
        except UnicodeDecodeError:
            raise KeyStoreError(KeyStoreErrorKind.OTHER, f"Key {serial} does not hold a UTF-8 value")

    def _read_description(self, description: str) -> Optional[str]:
        serial = self._search(description)
        if serial is None:
            return None
        return self._read(serial)

    def _write(self, description: str, value: str) -> str:
        # keyctl padd reads the payload from stdin and prints the key serial
        result = self._keyctl(['padd', 'user', description, self.keyring_type],
                              data=value.encode('utf-8'))
        if result.returncode != 0:
            error = result.stderr.decode(errors='replace').strip()
            raise KeyStoreError(_classify(error), f"Failed to store in keyring: {error}")
        return result.stdout.decode(errors='replace').strip()

    def _check_migration(self, store_name: str) -> None:
        """
        Fail if a legacy entry and its current counterpart hold different values.

        That state means an earlier rewrite was interrupted and there is no way
        to tell which value the database was encrypted with.
        """
        prefix = f"{store_name}:"
        entries = self._list_entries()
        current = {desc[len(prefix):]: serial for serial, desc in entries if desc.startswith(prefix)}
        legacy = {desc: serial for serial, desc in entries if ':' not in desc}

        for name in current.keys() & legacy.keys():
            if self._read(current[name]) != self._read(legacy[name]):
                raise KeyStoreError(
                    KeyStoreErrorKind.MIGRATION_FAILED,
                    f"MIGRATION FAILED: legacy and current entries for '{name}' differ"
                )

    # ========================================================================
    # AuthenticatedKeyStore
    # ========================================================================

    async def open(self, store_name: str) -> "KeyringSession":
        await asyncio.to_thread(self._check_migration, store_name)
        Logger.debug("KEYRING", f"Opened store '{store_name}' in keyring {self.keyring_type}")
        return KeyringSession(self, store_name)

    async def secure_device(self) -> None:
        # A readable keyring is all this backend can require
        result = await self._run(['list', self.keyring_type])
        if result.returncode != 0:
            error = result.stderr.decode(errors='replace').strip()
            raise KeyStoreError(_classify(error), f"Keyring {self.keyring_type} is not accessible: {error}")

    def is_available(self) -> bool:
        """
        Check if kernel keyring support is available.

        Tests by checking if keyctl command exists and keyring is accessible.
        """
        try:
            result = self._keyctl(['list', self.keyring_type], timeout=KEYCTL_CHECK_TIMEOUT_SECONDS)
        except KeyStoreError:
            return False
        return result.returncode == 0


class KeyringSession(KeyStoreSession):
    """Store opened inside a kernel keyring; entry names are namespaced by store."""

    def __init__(self, keyring: KeyringKeyStore, store_name: str):
        self.keyring = keyring
        self.store_name = store_name

    def _description(self, name: str) -> str:
        return f"{self.store_name}:{name}"

    async def list_keys(self) -> Set[str]:
        prefix = f"{self.store_name}:"
        entries = await asyncio.to_thread(self.keyring._list_entries)
        return {desc[len(prefix):] for _, desc in entries if desc.startswith(prefix)}

    def _get(self, name: str) -> str:
        value = self.keyring._read_description(self._description(name))
        if value is None:
            # Entries written before the store prefix existed
            value = self.keyring._read_description(name)
        if value is None:
            raise KeyStoreError(KeyStoreErrorKind.NOT_FOUND, f"Key '{name}' not found in keyring")
        return value

    async def get(self, name: str) -> str:
        return await asyncio.to_thread(self._get, name)

    async def set(self, name: str, value: str) -> str:
        serial = await asyncio.to_thread(self.keyring._write, self._description(name), value)
        Logger.debug("KEYRING", f"Stored '{name}' in kernel keyring (ID: {serial})")
        return name
