"""
Secure SQLite Configuration Constants

Configuration values for Local Storage Key provisioning.
"""

# Key Store Identity
# Logical name of the authenticated store instance and of the entry holding
# the Local Storage Key. Both are persisted by earlier releases, do not change.
KEY_STORE_NAME = "outsystems-key-store"
LOCAL_STORAGE_KEY_NAME = "outsystems-local-storage-key"

# Key Generation
# 16 random bytes, each shifted into a visible character range.
LSK_LENGTH = 16
PRINTABLE_OFFSET = 32
PRINTABLE_LIMIT = 127
PRINTABLE_SKIP = 34

# Database Configuration
DEFAULT_DB_LOCATION = "default"

# Keystore error code reported when the secure storage is not ready yet
KEYSTORE_NOT_READY_CODE = "OS-PLUG-KSTR-0010"

# User-facing notices
AUTH_REQUIRED_NOTICE = "Authentication required to use this app. Relaunch the app to try again."
SECURE_DEVICE_PROMPT = (
    "In order to use this app, your device must have a secure lock screen. "
    "Press OK to setup your device."
)
MIGRATION_FAILED_NOTICE = "A feature on this app failed to be upgraded. Relaunch the app to try again."

# Kernel Keyring Configuration
# "@u" = user keyring (persistent per user), "@s" = session keyring
DEFAULT_KEYRING = "@u"

# Timeouts in seconds for keyctl invocations
KEYCTL_TIMEOUT_SECONDS = 5.0
KEYCTL_CHECK_TIMEOUT_SECONDS = 2.0

# TPM2 Resource Allocation
# NVRAM index queried to confirm the TPM has been started (user-defined range)
TPM2_STARTUP_CHECK_NV_INDEX = 0x01800000
