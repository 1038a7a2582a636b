"""Personalised BLAKE2 primitives used by the Sapling and Orchard key schedules.

Every function here is a thin wrapper over :mod:`hashlib`; the personalisation
strings are part of the protocol and must be exactly 8 (BLAKE2s) or 16
(BLAKE2b) bytes.
"""

from __future__ import annotations

import hashlib


def blake2b_256(person: bytes, data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32, person=person).digest()


def blake2b_512(person: bytes, data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=64, person=person).digest()


def blake2s_256(person: bytes, data: bytes) -> bytes:
    return hashlib.blake2s(data, digest_size=32, person=person).digest()


def prf_expand(key: bytes, tag: bytes) -> bytes:
    """PRF^expand: 64 bytes of key-derived output for domain ``tag``."""

    return blake2b_512(b"Zcash_ExpandSeed", key + tag)


def le_int(data: bytes) -> int:
    return int.from_bytes(data, "little")


def le_bytes(value: int, length: int = 32) -> bytes:
    return value.to_bytes(length, "little")


def to_scalar(wide: bytes, modulus: int) -> int:
    """Reduce a 64-byte little-endian string into ``[0, modulus)``."""

    return le_int(wide) % modulus


def bits_le(value: int, length: int) -> list[int]:
    """``I2LEBSP``: the low ``length`` bits of ``value``, least significant first."""

    return [(value >> i) & 1 for i in range(length)]


def bytes_to_bits(data: bytes) -> list[int]:
    """``LEOS2BSP``: bits of ``data`` in little-endian order within each byte."""

    return bits_le(le_int(data), 8 * len(data))


def bits_to_int(bits: list[int]) -> int:
    return sum(bit << i for i, bit in enumerate(bits))


def xor_bytes(left: bytes, right: bytes) -> bytes:
    return bytes(a ^ b for a, b in zip(left, right))
