"""
Centralized logging utility for Secure SQLite
Provides color-coded console output with consistent formatting
"""

from cryptography.hazmat.primitives import hashes


# ANSI Color Codes
class Colors:
    """ANSI escape codes for terminal colors"""
    RESET = '\033[0m'
    ORANGE = '\033[38;5;214m'
    GREEN = '\033[38;5;46m'
    RED = '\033[38;5;196m'
    YELLOW = '\033[38;5;208m'
    CYAN = '\033[38;5;51m'
    MAGENTA = '\033[38;5;201m'


def fingerprint(secret: str) -> str:
    """
    Short SHA-256 fingerprint of a secret, safe to print.

    Args:
        secret: Secret value (e.g. the Local Storage Key)

    Returns:
        First 8 hex characters of the digest
    """
    digest = hashes.Hash(hashes.SHA256())
    digest.update(secret.encode('utf-8'))
    return digest.finalize().hex()[:8]


class Logger:
    """
    Centralized logging with color support.
    Provides consistent formatting for all output types.
    """

    # Class variables for output control
    enabled: bool = True
    verbose: bool = False

    @staticmethod
    def _emit(line: str) -> None:
        if Logger.enabled:
            print(line)

    @staticmethod
    def success(message: str) -> None:
        """Print success message with green checkmark"""
        Logger._emit(f"{Colors.GREEN}✓{Colors.RESET} {message}")

    @staticmethod
    def error(message: str) -> None:
        """Print error message with red X"""
        Logger._emit(f"{Colors.RED}✗{Colors.RESET} {message}")

    @staticmethod
    def info(message: str) -> None:
        """Print info message with cyan color"""
        Logger._emit(f"{Colors.CYAN}[INFO]{Colors.RESET} {message}")

    @staticmethod
    def warning(message: str) -> None:
        """Print warning message with yellow color"""
        Logger._emit(f"{Colors.YELLOW}[WARNING]{Colors.RESET} {message}")

    @staticmethod
    def debug(tag: str, message: str) -> None:
        """Print debug message with orange color (verbose mode only)"""
        if Logger.verbose:
            Logger._emit(f"{Colors.ORANGE}[{tag}]{Colors.RESET} {message}")

    @staticmethod
    def tagged(tag: str, color: str, message: str) -> None:
        """Print message with custom colored tag"""
        Logger._emit(f"{color}[{tag}]{Colors.RESET} {message}")
