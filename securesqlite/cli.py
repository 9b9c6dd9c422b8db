#!/usr/bin/env python3
"""
Secure SQLite - Local Storage Key command line

Provisions the Local Storage Key in the configured key store and reports on it.
The key itself is never printed, only its fingerprint.

Exit Codes:
  0: Success
  1: Failure - key store unavailable or a fatal provisioning condition

Usage:
  python3 -m securesqlite acquire [--backend hardware] [--keyring @u] [--verbose]
  python3 -m securesqlite status
"""

import sys
import argparse
import asyncio

from .config import DEFAULT_KEYRING, KEY_STORE_NAME, LOCAL_STORAGE_KEY_NAME
from .errors import KeyProvisioningError, ProvisioningPanic
from .hardware_key_store import HardwareBackedKeyStore
from .key_store_interface import AuthenticatedKeyStore
from .keyring_store import KeyringKeyStore
from .logger import Logger, fingerprint
from .memory_key_store import MemoryKeyStore
from .provisioning import KeyProvisioningService


def build_key_store(backend: str, keyring_type: str = DEFAULT_KEYRING) -> AuthenticatedKeyStore:
    """Create the key store for a --backend choice."""
    if backend == 'memory':
        return MemoryKeyStore()
    keyring = KeyringKeyStore(keyring_type=keyring_type)
    if backend == 'keyring':
        return keyring
    return HardwareBackedKeyStore(keyring)


async def _acquire(service: KeyProvisioningService) -> int:
    key = await service.acquire()
    Logger.success(f"Local storage key ready (fingerprint {fingerprint(key)})")
    return 0


async def _status(service: KeyProvisioningService) -> int:
    if await service.has_key():
        Logger.success(f"'{LOCAL_STORAGE_KEY_NAME}' present in '{KEY_STORE_NAME}'")
    else:
        Logger.warning(f"'{LOCAL_STORAGE_KEY_NAME}' not provisioned yet")
    return 0


def run(service: KeyProvisioningService, command: str) -> int:
    """Run a command against a provisioning service and return an exit code."""
    handler = _acquire if command == 'acquire' else _status
    try:
        return asyncio.run(handler(service))
    except ProvisioningPanic as e:
        Logger.error(f"Cannot continue without local storage key: {e}")
        return 1
    except KeyProvisioningError as e:
        Logger.error(f"{e.message}: {e.cause}")
        return 1


def main(argv=None):
    parser = argparse.ArgumentParser(description='Secure SQLite Local Storage Key provisioning')
    parser.add_argument('command', choices=['acquire', 'status'], help='Operation to run')
    parser.add_argument('--backend', choices=['keyring', 'hardware', 'memory'], default='hardware',
                        help='Key store backend (hardware = keyring gated on a TPM2 device)')
    parser.add_argument('--keyring', default=DEFAULT_KEYRING, help='Kernel keyring (e.g. @u, @s)')
    parser.add_argument('--verbose', action='store_true', help='Show state transitions')

    args = parser.parse_args(argv)
    Logger.verbose = args.verbose

    key_store = build_key_store(args.backend, args.keyring)
    if not key_store.is_available():
        Logger.warning(f"Key store backend '{args.backend}' does not look available")

    try:
        return run(KeyProvisioningService(key_store), args.command)
    finally:
        key_store.close()


if __name__ == '__main__':
    sys.exit(main())
