"""Symmetric XOR codec for the ``score.dat`` member of a ``.musx`` archive.

The keystream comes from a 32-bit linear congruential generator that is
reseeded every :data:`RESET_LIMIT` bytes. Applying :func:`recode` twice
restores the original bytes.
"""

from __future__ import annotations

from typing import Final

INITIAL_STATE: Final[int] = 0x28006D45
RESET_LIMIT: Final[int] = 0x20000
LCG_MUL: Final[int] = 0x41C64E6D
LCG_ADD: Final[int] = 0x3039

_MASK32: Final[int] = 0xFFFFFFFF


def keystream(length: int) -> bytes:
    """Return the first *length* mask bytes the codec XORs into its input."""
    return bytes(recode(bytearray(length)))


def recode(buffer: bytearray) -> bytearray:
    """
    Encode or decode *buffer* in place and return it.

    Args:
        buffer: The bytes to transform. Must be mutable.

    Returns:
        The same buffer object, for chaining.
    """
    state = INITIAL_STATE
    for index in range(len(buffer)):
        if index % RESET_LIMIT == 0:
            state = INITIAL_STATE
        state = (state * LCG_MUL + LCG_ADD) & _MASK32
        upper = state >> 16
        mask = (upper + upper // 255) & 0xFF
        buffer[index] ^= mask
    return buffer


def crypt(data: bytes) -> bytes:
    """Return a transformed copy of *data*, leaving the input untouched."""
    return bytes(recode(bytearray(data)))
