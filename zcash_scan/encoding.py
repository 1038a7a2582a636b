"""Text and container encodings used by unified viewing keys.

Unified encodings (ZIP 316) are bech32m strings without the 90-character
limit of BIP 173, carrying an F4Jumble-scrambled list of typed items. The
helpers here are deliberately independent of the key types so they can be
tested in isolation.
"""

from __future__ import annotations

import hashlib
from typing import Iterable

from .crypto.hashes import xor_bytes
from .errors import InvalidEncoding

CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
BECH32M_CONST = 0x2BC830A3

F4JUMBLE_MIN_LENGTH = 48
F4JUMBLE_MAX_LENGTH = 4_194_368
_F4JUMBLE_HASH_LENGTH = 64


def bech32_polymod(values: Iterable[int]) -> int:
    generator = [0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3]
    chk = 1
    for value in values:
        top = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ value
        for i in range(5):
            chk ^= generator[i] if ((top >> i) & 1) else 0
    return chk


def bech32_hrp_expand(hrp: str) -> list[int]:
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def convertbits(data: Iterable[int], frombits: int, tobits: int, pad: bool = True) -> list[int] | None:
    """Regroup a sequence of ``frombits``-wide values into ``tobits``-wide values."""

    acc = 0
    bits = 0
    ret = []
    maxv = (1 << tobits) - 1
    max_acc = (1 << (frombits + tobits - 1)) - 1
    for value in data:
        if value < 0 or value >> frombits:
            return None
        acc = ((acc << frombits) | value) & max_acc
        bits += frombits
        while bits >= tobits:
            bits -= tobits
            ret.append((acc >> bits) & maxv)
    if pad:
        if bits:
            ret.append((acc << (tobits - bits)) & maxv)
    elif bits >= frombits or ((acc << (tobits - bits)) & maxv):
        return None
    return ret


def bech32m_encode(hrp: str, payload: bytes) -> str:
    data = convertbits(payload, 8, 5)
    values = bech32_hrp_expand(hrp) + data
    polymod = bech32_polymod(values + [0] * 6) ^ BECH32M_CONST
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(CHARSET[d] for d in data + checksum)


def bech32m_decode(text: str) -> tuple[str, bytes]:
    """Decode a bech32m string of any length into ``(hrp, payload)``."""

    if any(ord(ch) < 33 or ord(ch) > 126 for ch in text):
        raise InvalidEncoding("bech32m string contains invalid characters")
    if text.lower() != text and text.upper() != text:
        raise InvalidEncoding("bech32m string mixes upper and lower case")
    text = text.lower()
    separator = text.rfind("1")
    if separator < 1 or separator + 7 > len(text):
        raise InvalidEncoding("bech32m separator missing or checksum too short")
    hrp = text[:separator]
    try:
        data = [CHARSET.index(ch) for ch in text[separator + 1:]]
    except ValueError as exc:
        raise InvalidEncoding("bech32m data contains a character outside the charset") from exc
    if bech32_polymod(bech32_hrp_expand(hrp) + data) != BECH32M_CONST:
        raise InvalidEncoding("bech32m checksum mismatch")
    payload = convertbits(data[:-6], 5, 8, pad=False)
    if payload is None:
        raise InvalidEncoding("bech32m payload has invalid padding")
    return hrp, bytes(payload)


def _f4_h(round_index: int, data: bytes, length: int) -> bytes:
    person = b"UA_F4Jumble_H" + bytes([round_index, 0, 0])
    return hashlib.blake2b(data, digest_size=length, person=person).digest()


def _f4_g(round_index: int, data: bytes, length: int) -> bytes:
    blocks = []
    for counter in range(-(-length // 64)):
        person = b"UA_F4Jumble_G" + bytes([round_index]) + counter.to_bytes(2, "little")
        blocks.append(hashlib.blake2b(data, digest_size=64, person=person).digest())
    return b"".join(blocks)[:length]


def _f4_split(message: bytes) -> int:
    if not F4JUMBLE_MIN_LENGTH <= len(message) <= F4JUMBLE_MAX_LENGTH:
        raise InvalidEncoding(
            f"unified encoding length {len(message)} outside "
            f"[{F4JUMBLE_MIN_LENGTH}, {F4JUMBLE_MAX_LENGTH}]"
        )
    return min(_F4JUMBLE_HASH_LENGTH, len(message) // 2)


def f4jumble(message: bytes) -> bytes:
    left = _f4_split(message)
    a, b = message[:left], message[left:]
    x = xor_bytes(b, _f4_g(0, a, len(b)))
    y = xor_bytes(a, _f4_h(0, x, len(a)))
    d = xor_bytes(x, _f4_g(1, y, len(x)))
    c = xor_bytes(y, _f4_h(1, d, len(y)))
    return c + d


def f4jumble_inv(message: bytes) -> bytes:
    left = _f4_split(message)
    c, d = message[:left], message[left:]
    y = xor_bytes(c, _f4_h(1, d, len(c)))
    x = xor_bytes(d, _f4_g(1, y, len(d)))
    a = xor_bytes(y, _f4_h(0, x, len(y)))
    b = xor_bytes(x, _f4_g(0, a, len(x)))
    return a + b


def ser_compact_size(n: int) -> bytes:
    if n < 253:
        return bytes([n])
    elif n <= 0xFFFF:
        return b"\xfd" + n.to_bytes(2, "little")
    elif n <= 0xFFFFFFFF:
        return b"\xfe" + n.to_bytes(4, "little")
    else:
        return b"\xff" + n.to_bytes(8, "little")


def read_compact_size(data: bytes, offset: int) -> tuple[int, int] | None:
    """Read a canonical CompactSize at ``offset``; ``None`` if truncated or non-minimal."""

    if offset >= len(data):
        return None
    first = data[offset]
    if first < 253:
        return first, offset + 1
    width = {253: 2, 254: 4, 255: 8}[first]
    end = offset + 1 + width
    if end > len(data):
        return None
    value = int.from_bytes(data[offset + 1:end], "little")
    if value < {2: 253, 4: 0x10000, 8: 0x100000000}[width]:
        return None
    return value, end
