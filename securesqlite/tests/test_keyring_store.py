import subprocess
import unittest
from unittest.mock import patch, MagicMock, AsyncMock

from securesqlite.config import KEY_STORE_NAME, LOCAL_STORAGE_KEY_NAME, KEYSTORE_NOT_READY_CODE
from securesqlite.errors import KeyStoreError, KeyStoreErrorKind, KeyProvisioningError
from securesqlite.keyring_store import KeyringKeyStore
from securesqlite.logger import Logger
from securesqlite.provisioning import KeyProvisioningService

# Disable logging output during tests
Logger.enabled = False

CURRENT = f"{KEY_STORE_NAME}:{LOCAL_STORAGE_KEY_NAME}"


class FakeKeyctl:
    """
    Software simulation of the keyctl utility over a single keyring.
    Supports list, search, pipe and padd with keyctl's output formats.
    """

    def __init__(self):
        self.keys = {}  # serial -> (description, payload bytes)
        self.next_serial = 100000
        self.list_error = None
        self.invocations = []

    def add(self, description, payload):
        serial = self.next_serial
        self.next_serial += 1
        self.keys[serial] = (description, payload.encode('utf-8'))
        return serial

    def _find(self, description):
        for serial, (desc, _) in self.keys.items():
            if desc == description:
                return serial
        return None

    def __call__(self, cmd, input=None, capture_output=True, timeout=None):
        self.invocations.append(cmd)
        op = cmd[1]
        if op == 'list':
            if self.list_error:
                return subprocess.CompletedProcess(cmd, 1, b"", self.list_error.encode())
            lines = [f"{len(self.keys)} keys in keyring:"]
            for serial, (desc, _) in self.keys.items():
                lines.append(f"{serial:9d}: --alswrv  1000  1000 user: {desc}")
            lines.append(f"{999:9d}: --alswrv  1000 65534 keyring: _uid.1000")
            return subprocess.CompletedProcess(cmd, 0, ("\n".join(lines) + "\n").encode(), b"")
        if op == 'search':
            serial = self._find(cmd[4])
            if serial is None:
                return subprocess.CompletedProcess(cmd, 1, b"", b"keyctl_search: Required key not available\n")
            return subprocess.CompletedProcess(cmd, 0, f"{serial}\n".encode(), b"")
        if op == 'pipe':
            return subprocess.CompletedProcess(cmd, 0, self.keys[int(cmd[2])][1], b"")
        if op == 'padd':
            serial = self._find(cmd[3])
            if serial is None:
                serial = self.add(cmd[3], "")
            self.keys[serial] = (cmd[3], input)
            return subprocess.CompletedProcess(cmd, 0, f"{serial}\n".encode(), b"")
        return subprocess.CompletedProcess(cmd, 1, b"", b"unknown command\n")


class KeyringTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.keyctl = FakeKeyctl()
        patcher = patch('securesqlite.keyring_store.subprocess.run', side_effect=self.keyctl)
        self.mock_run = patcher.start()
        self.addCleanup(patcher.stop)
        self.store = KeyringKeyStore(keyring_type="@u")


class TestKeyringSession(KeyringTestCase):
    async def test_list_keys_only_reports_current_format(self):
        self.keyctl.add(CURRENT, "K1")
        self.keyctl.add("unrelated", "x")

        session = await self.store.open(KEY_STORE_NAME)
        keys = await session.list_keys()

        self.assertEqual(keys, {LOCAL_STORAGE_KEY_NAME})

    async def test_set_then_get(self):
        session = await self.store.open(KEY_STORE_NAME)

        name = await session.set(LOCAL_STORAGE_KEY_NAME, "K1")

        self.assertEqual(name, LOCAL_STORAGE_KEY_NAME)
        self.assertEqual(await session.get(LOCAL_STORAGE_KEY_NAME), "K1")
        self.assertEqual(self.keyctl.keys[self.keyctl._find(CURRENT)][1], b"K1")

    async def test_non_ascii_key_survives(self):
        value = "A~" + chr(161) + chr(321) + "z" * 12
        session = await self.store.open(KEY_STORE_NAME)

        await session.set(LOCAL_STORAGE_KEY_NAME, value)

        self.assertEqual(await session.get(LOCAL_STORAGE_KEY_NAME), value)

    async def test_get_falls_back_to_legacy_entry(self):
        self.keyctl.add(LOCAL_STORAGE_KEY_NAME, "LEGACY")

        session = await self.store.open(KEY_STORE_NAME)

        self.assertEqual(await session.list_keys(), set())
        self.assertEqual(await session.get(LOCAL_STORAGE_KEY_NAME), "LEGACY")

    async def test_get_missing_is_not_found(self):
        session = await self.store.open(KEY_STORE_NAME)

        with self.assertRaises(KeyStoreError) as ctx:
            await session.get(LOCAL_STORAGE_KEY_NAME)

        self.assertEqual(ctx.exception.kind, KeyStoreErrorKind.NOT_FOUND)

    async def test_list_permission_denied_is_auth_skipped(self):
        session = await self.store.open(KEY_STORE_NAME)
        self.keyctl.list_error = "keyctl_read_alloc: Permission denied\n"

        with self.assertRaises(KeyStoreError) as ctx:
            await session.list_keys()

        self.assertEqual(ctx.exception.kind, KeyStoreErrorKind.AUTH_SKIPPED)


class TestKeyringOpen(KeyringTestCase):
    async def test_missing_keyctl_is_not_ready(self):
        self.mock_run.side_effect = FileNotFoundError("keyctl")

        with self.assertRaises(KeyStoreError) as ctx:
            await self.store.open(KEY_STORE_NAME)

        self.assertEqual(ctx.exception.kind, KeyStoreErrorKind.KEYSTORE_SPECIFIC)
        self.assertEqual(ctx.exception.code, KEYSTORE_NOT_READY_CODE)

    async def test_timeout_is_other(self):
        self.mock_run.side_effect = subprocess.TimeoutExpired(cmd="keyctl", timeout=5.0)

        with self.assertRaises(KeyStoreError) as ctx:
            await self.store.open(KEY_STORE_NAME)

        self.assertEqual(ctx.exception.kind, KeyStoreErrorKind.OTHER)

    async def test_diverging_legacy_entry_is_migration_failure(self):
        self.keyctl.add(LOCAL_STORAGE_KEY_NAME, "OLD")
        self.keyctl.add(CURRENT, "NEW")

        with self.assertRaises(KeyStoreError) as ctx:
            await self.store.open(KEY_STORE_NAME)

        self.assertEqual(ctx.exception.kind, KeyStoreErrorKind.MIGRATION_FAILED)

    async def test_matching_legacy_entry_opens(self):
        self.keyctl.add(LOCAL_STORAGE_KEY_NAME, "SAME")
        self.keyctl.add(CURRENT, "SAME")

        session = await self.store.open(KEY_STORE_NAME)

        self.assertEqual(await session.get(LOCAL_STORAGE_KEY_NAME), "SAME")

    async def test_secure_device_requires_readable_keyring(self):
        self.keyctl.list_error = "keyctl_read_alloc: Permission denied\n"

        with self.assertRaises(KeyStoreError):
            await self.store.secure_device()

    def test_is_available(self):
        self.assertTrue(self.store.is_available())
        self.mock_run.side_effect = FileNotFoundError("keyctl")
        self.assertFalse(self.store.is_available())


class TestKeyringFailureTranslation(KeyringTestCase):
    async def test_non_utf8_payload_is_other(self):
        serial = self.keyctl.add(CURRENT, "")
        self.keyctl.keys[serial] = (CURRENT, b"\xff\xfe\x80")
        session = await self.store.open(KEY_STORE_NAME)

        with self.assertRaises(KeyStoreError) as ctx:
            await session.get(LOCAL_STORAGE_KEY_NAME)

        self.assertEqual(ctx.exception.kind, KeyStoreErrorKind.OTHER)

    async def test_keyctl_not_executable_is_other(self):
        self.mock_run.side_effect = PermissionError(13, "Permission denied", "keyctl")

        with self.assertRaises(KeyStoreError) as ctx:
            await self.store.open(KEY_STORE_NAME)

        self.assertEqual(ctx.exception.kind, KeyStoreErrorKind.OTHER)

    async def test_unreadable_payload_surfaces_as_provisioning_error(self):
        """Rewrite swallows the bad payload, the read reports it with a kind"""
        serial = self.keyctl.add(CURRENT, "")
        self.keyctl.keys[serial] = (CURRENT, b"\xff\xfe\x80")
        ui = MagicMock()
        ui.alert = AsyncMock()
        service = KeyProvisioningService(self.store, ui=ui)

        with self.assertRaises(KeyProvisioningError) as ctx:
            await service.acquire()

        self.assertEqual(ctx.exception.kind, KeyStoreErrorKind.OTHER)
        self.assertEqual(self.keyctl.keys[serial][1], b"\xff\xfe\x80")

    async def test_os_error_after_open_surfaces_as_provisioning_error(self):
        """keyctl becoming unrunnable mid-acquisition never escapes untagged"""
        self.keyctl.add(CURRENT, "K1")
        keyctl = self.keyctl

        def run_then_fail(cmd, **kwargs):
            if keyctl.invocations:
                keyctl.invocations.append(cmd)
                raise PermissionError(13, "Permission denied", "keyctl")
            return keyctl(cmd, **kwargs)

        self.mock_run.side_effect = run_then_fail
        ui = MagicMock()
        ui.alert = AsyncMock()
        service = KeyProvisioningService(self.store, ui=ui)

        with self.assertRaises(KeyProvisioningError) as ctx:
            await service.acquire()

        self.assertEqual(ctx.exception.kind, KeyStoreErrorKind.OTHER)
        self.assertEqual([cmd[1] for cmd in keyctl.invocations], ['list', 'search', 'list'])
        ui.alert.assert_not_called()


class TestKeyringProvisioning(KeyringTestCase):
    def make_service(self):
        ui = MagicMock()
        ui.alert = AsyncMock()
        ui.confirm = AsyncMock(return_value=False)
        return KeyProvisioningService(self.store, ui=ui)

    async def test_legacy_entry_migrated_on_acquire(self):
        """Legacy bare entry is read, rewritten under the store prefix, and reused"""
        self.keyctl.add(LOCAL_STORAGE_KEY_NAME, "LEGACYKEY0123456")

        key = await self.make_service().acquire()

        self.assertEqual(key, "LEGACYKEY0123456")
        self.assertEqual(self.keyctl.keys[self.keyctl._find(CURRENT)][1], b"LEGACYKEY0123456")

    async def test_first_launch_then_restart(self):
        first = await self.make_service().acquire()
        second = await self.make_service().acquire()

        self.assertEqual(first, second)
        self.assertEqual(len(first), 16)
        padds = [cmd for cmd in self.keyctl.invocations if cmd[1] == 'padd']
        # One generated write plus the rewrite performed on restart
        self.assertEqual(len(padds), 2)


if __name__ == '__main__':
    unittest.main()
