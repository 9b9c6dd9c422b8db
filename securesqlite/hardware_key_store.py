"""
Hardware-Backed Key Store

Wraps another authenticated key store and refuses to open it unless a TPM2
device is reachable and started. A TPM that has not received TPM2_Startup is
reported as an insecure device, which makes the provisioning flow ask the
user before starting it.

Requirements:
- TPM2 hardware or software emulator
- tpm2-pytss library
"""

import asyncio
from typing import Optional

from tpm2_pytss import ESAPI, TPM2_SU, TPM2_CAP, TPM2_RC, TSS2_Exception

from .config import TPM2_STARTUP_CHECK_NV_INDEX
from .errors import KeyStoreError, KeyStoreErrorKind
from .key_store_interface import AuthenticatedKeyStore, KeyStoreSession
from .logger import Logger


class HardwareBackedKeyStore(AuthenticatedKeyStore):
    """
    Key store gate requiring a started TPM2 device.

    Entries are kept by the inner store; this class only enforces the device
    security policy and performs the remediation step (TPM startup).
    """

    def __init__(self, inner: AuthenticatedKeyStore, tcti: Optional[str] = None):
        """
        Args:
            inner: Store that actually holds the entries
            tcti: TCTI configuration string (None = tpm2-tss default)
        """
        self.inner = inner
        self.tcti = tcti
        self.esapi: Optional[ESAPI] = None

    def _connect(self) -> bool:
        """Connect to the TPM without issuing startup."""
        try:
            if self.esapi is None:
                self.esapi = ESAPI(self.tcti)
            return True
        except Exception:
            return False

    def _started(self) -> bool:
        """
        Query the TPM. TPM_RC_INITIALIZE means TPM2_Startup has not run yet.

        Raises:
            KeyStoreError: OTHER if the TPM rejects the query for another reason
        """
        try:
            self.esapi.get_capability(
                TPM2_CAP.HANDLES,
                TPM2_STARTUP_CHECK_NV_INDEX,
                property_count=1
            )
        except TSS2_Exception as e:
            if e.rc == TPM2_RC.INITIALIZE:
                return False
            raise KeyStoreError(KeyStoreErrorKind.OTHER, f"TPM2 query failed: {e}")
        return True

    def _check_device(self) -> None:
        if not self._connect():
            raise KeyStoreError(KeyStoreErrorKind.INSECURE_DEVICE, "Device is not secure")
        if not self._started():
            raise KeyStoreError(KeyStoreErrorKind.INSECURE_DEVICE, "TPM2 device has not been started")

    def _startup(self) -> bool:
        """Connect and issue TPM2_Startup(CLEAR)."""
        if not self._connect():
            return False
        try:
            self.esapi.startup(TPM2_SU.CLEAR)
        except TSS2_Exception as e:
            # Startup answers TPM_RC_INITIALIZE when the TPM is already started
            if e.rc != TPM2_RC.INITIALIZE:
                Logger.error(f"TPM2 startup failed: {e}")
                return False
        return True

    async def open(self, store_name: str) -> KeyStoreSession:
        await asyncio.to_thread(self._check_device)
        return await self.inner.open(store_name)

    async def secure_device(self) -> None:
        Logger.info("Bringing up TPM2 device...")
        if not await asyncio.to_thread(self._startup):
            raise KeyStoreError(KeyStoreErrorKind.INSECURE_DEVICE, "TPM2 device is still unavailable")
        Logger.success("TPM2 device ready")

    def is_available(self) -> bool:
        return self._connect() and self.inner.is_available()

    def close(self) -> None:
        """Release the TPM context."""
        if self.esapi is not None:
            self.esapi.close()
            self.esapi = None
        self.inner.close()
