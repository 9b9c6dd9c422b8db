"""
Secure SQLite Package
Local Storage Key provisioning for encrypted SQLite databases.
"""

__version__ = '0.1.0'

from .errors import KeyStoreError, KeyStoreErrorKind, KeyProvisioningError, ProvisioningPanic, EngineNotLoadedError
from .key_generator import SecureRandomKeyGenerator
from .key_cache import ProcessKeyCache
from .key_store_interface import AuthenticatedKeyStore, KeyStoreSession
from .provisioning import KeyProvisioningService, ProvisioningState
from .database import DatabaseEngine, SecureDatabaseOpener

__all__ = [
    'KeyStoreError',
    'KeyStoreErrorKind',
    'KeyProvisioningError',
    'ProvisioningPanic',
    'EngineNotLoadedError',
    'SecureRandomKeyGenerator',
    'ProcessKeyCache',
    'AuthenticatedKeyStore',
    'KeyStoreSession',
    'KeyProvisioningService',
    'ProvisioningState',
    'DatabaseEngine',
    'SecureDatabaseOpener',
]
