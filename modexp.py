"""Modular exponentiation over big-endian unsigned byte strings."""

from __future__ import annotations


WINDOW_BITS = 4


def _to_minimal_bytes(value: int) -> bytes:
    return value.to_bytes((value.bit_length() + 7) // 8, "big")


def mod_exp_int(base: int, exponent: int, modulus: int) -> int:
    """Fixed-window (2**WINDOW_BITS-ary) left-to-right exponentiation.

    Every product is reduced mod ``modulus`` so intermediates stay below
    ``modulus**2``.
    """
    if modulus <= 0:
        raise ValueError("modulus must be positive")
    if modulus == 1:
        return 0

    base %= modulus
    if exponent == 0:
        return 1

    table = [1] * (1 << WINDOW_BITS)
    for i in range(1, len(table)):
        table[i] = (table[i - 1] * base) % modulus

    digits = []
    while exponent:
        digits.append(exponent & ((1 << WINDOW_BITS) - 1))
        exponent >>= WINDOW_BITS

    result = 1
    for digit in reversed(digits):
        for _ in range(WINDOW_BITS):
            result = (result * result) % modulus
        if digit:
            result = (result * table[digit]) % modulus
    return result


def mod_exp(base: bytes, exponent: bytes, modulus: bytes) -> bytes:
    """Return ``base**exponent mod modulus`` in minimal-length big-endian form.

    Zero is returned as ``b""``; callers that need a fixed width pad the
    result themselves.
    """
    m = int.from_bytes(modulus, "big")
    if m == 0:
        raise ValueError("modulus must be non-zero")
    b = int.from_bytes(base, "big")
    e = int.from_bytes(exponent, "big")
    return _to_minimal_bytes(mod_exp_int(b, e, m))
