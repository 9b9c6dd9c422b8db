"""
Local Storage Key generation

Draws key material from the operating system's secure random source and maps
every byte into a visible character so the key can be handed verbatim to the
database engine as a passphrase.
"""

import os
from typing import Callable

from .config import LSK_LENGTH, PRINTABLE_OFFSET, PRINTABLE_LIMIT, PRINTABLE_SKIP


def make_visible(byte: int) -> str:
    """
    Map a random byte (0-255) to a printable character.

    Bytes landing on DEL or beyond are pushed past the C1 control range.
    Keys persisted by earlier releases depend on this exact mapping.
    """
    code = byte + PRINTABLE_OFFSET
    if code >= PRINTABLE_LIMIT:
        code += PRINTABLE_SKIP
    return chr(code)


class SecureRandomKeyGenerator:
    """
    Generates fresh Local Storage Keys.

    An unavailable random source (NotImplementedError from os.urandom) is not
    caught here: there is no safe way to continue without key material.
    """

    def __init__(self, random_source: Callable[[int], bytes] = os.urandom, length: int = LSK_LENGTH):
        self.random_source = random_source
        self.length = length

    def generate(self) -> str:
        raw = self.random_source(self.length)
        return "".join(make_visible(b) for b in raw)
