"""Pallas curve arithmetic and the Orchard primitives built on it.

Pallas is ``y^2 = x^3 + 5`` over ``F_p``; its group order ``q`` is prime, so
there is no cofactor to clear. Points are affine and field inversions go
through Python's built-in modular inverse.

Hashing to the curve follows the "pallas_XMD:BLAKE2b_SSWU_RO_" suite: two
field elements from ``expand_message_xmd`` are mapped onto the 3-isogenous
curve iso-Pallas with simplified SWU, pushed through the isogeny, and added.
Sinsemilla, ``Commit^ivk`` and the Orchard note commitment sit on top.
"""

from __future__ import annotations

import hashlib
from functools import lru_cache
from typing import Sequence

from .fields import inverse, is_square, sqrt
from .hashes import bits_le, bits_to_int, bytes_to_bits, le_int, xor_bytes

BASE_MODULUS = 0x40000000000000000000000000000000224698FC094CF91B992D30ED00000001
SCALAR_MODULUS = 0x40000000000000000000000000000000224698FC0994A8DD8C46EB2100000001
CURVE_B = 5

_P = BASE_MODULUS

ISO_A = 0x18354A2EB0EA8C9C49BE2D7258370742B74134581A27A59F92BB4B0B657A014B
ISO_B = 1265
SSWU_Z = _P - 13

ISOGENY_CONSTANTS = (
    0x0E38E38E38E38E38E38E38E38E38E38E4081775473D8375B775F6034AAAAAAAB,
    0x3509AFD51872D88E267C7FFA51CF412A0F93B82EE4B994958CF863B02814FB76,
    0x17329B9EC525375398C7D7AC3D98FD13380AF066CFEB6D690EB64FAEF37EA4F7,
    0x1C71C71C71C71C71C71C71C71C71C71C8102EEA8E7B06EB6EEBEC06955555580,
    0x1D572E7DDC099CFF5A607FCCE0494A799C434AC1C96B6980C47F2AB668BCD71F,
    0x325669BECAECD5D11D13BF2A7F22B105B4ABF9FB9A1FC81C2AA3AF1EAE5B6604,
    0x1A12F684BDA12F684BDA12F684BDA12F7642B01AD461BAD25AD985B5E38E38E4,
    0x1A84D7EA8C396C47133E3FFD28E7A09507C9DC17725CCA4AC67C31D8140A7DBB,
    0x3FB98FF0D2DDCADD303216CCE1DB9FF11765E924F745937802E2BE87D225B234,
    0x025ED097B425ED097B425ED097B425ED0AC03E8E134EB3E493E53AB371C71C4F,
    0x0C02C5BCCA0E6B7F0790BFB3506DEFB65941A3A4A97AA1B35A28279B1D1B42AE,
    0x17033D3C60C68173573B3D7F7D681310D976BBFABBC5661D4D90AB820B12320A,
    0x40000000000000000000000000000000224698FC094CF91B992D30ECFFFFFDE5,
)


class Point:
    """An affine Pallas point; ``x is None`` marks the identity."""

    __slots__ = ("x", "y")

    def __init__(self, x: int | None, y: int | None) -> None:
        self.x = x
        self.y = y

    @classmethod
    def identity(cls) -> "Point":
        return cls(None, None)

    def is_identity(self) -> bool:
        return self.x is None

    def is_on_curve(self) -> bool:
        if self.x is None:
            return True
        return (self.y * self.y - self.x ** 3 - CURVE_B) % _P == 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Point):
            return NotImplemented
        return self.x == other.x and self.y == other.y

    def __hash__(self) -> int:
        return hash((self.x, self.y))

    def __repr__(self) -> str:
        if self.x is None:
            return "pallas.Point(identity)"
        return f"pallas.Point(x={self.x:#x}, y={self.y:#x})"

    def __neg__(self) -> "Point":
        if self.x is None:
            return self
        return Point(self.x, (-self.y) % _P)

    def double(self) -> "Point":
        if self.x is None or self.y == 0:
            return Point.identity()
        lam = 3 * self.x * self.x * inverse(2 * self.y, _P) % _P
        x3 = (lam * lam - 2 * self.x) % _P
        return Point(x3, (lam * (self.x - x3) - self.y) % _P)

    def __add__(self, other: "Point") -> "Point":
        if self.x is None:
            return other
        if other.x is None:
            return self
        if self.x == other.x:
            if (self.y + other.y) % _P == 0:
                return Point.identity()
            return self.double()
        lam = (other.y - self.y) * inverse(other.x - self.x, _P) % _P
        x3 = (lam * lam - self.x - other.x) % _P
        return Point(x3, (lam * (self.x - x3) - self.y) % _P)

    def __sub__(self, other: "Point") -> "Point":
        return self + (-other)

    def __mul__(self, scalar: int) -> "Point":
        scalar %= SCALAR_MODULUS
        result = Point.identity()
        addend = self
        while scalar:
            if scalar & 1:
                result = result + addend
            addend = addend.double()
            scalar >>= 1
        return result

    __rmul__ = __mul__

    def to_bytes(self) -> bytes:
        """``repr_P``: x with the parity of y in the top bit; identity is all zeros."""

        if self.x is None:
            return bytes(32)
        return (self.x | ((self.y & 1) << 255)).to_bytes(32, "little")

    @classmethod
    def from_bytes(cls, data: bytes) -> "Point | None":
        if len(data) != 32:
            return None
        encoded = le_int(data)
        y_sign = encoded >> 255
        x = encoded & ((1 << 255) - 1)
        if x >= _P:
            return None
        if x == 0 and not y_sign:
            return cls.identity()
        y = sqrt(x ** 3 + CURVE_B, _P)
        if y is None:
            return None
        if y & 1 != y_sign:
            y = _P - y
        return cls(x, y)


def extract(point: Point) -> int:
    """``Extract_P``: the x-coordinate, with the identity mapping to zero."""

    return 0 if point.x is None else point.x


def incomplete_add(left: Point | None, right: Point | None) -> Point | None:
    """Sinsemilla's incomplete addition; ``None`` signals an exceptional case."""

    if left is None or right is None or left.is_identity() or right.is_identity():
        return None
    if left.x == right.x:
        return None
    return left + right


def is_canonical_base(data: bytes) -> bool:
    return len(data) == 32 and le_int(data) < BASE_MODULUS


def is_canonical_scalar(data: bytes) -> bool:
    return len(data) == 32 and le_int(data) < SCALAR_MODULUS


# --- hash to curve --------------------------------------------------------


def expand_message_xmd(message: bytes, dst: bytes, length: int) -> bytes:
    block_bytes = 64
    ell = -(-length // block_bytes)
    dst_prime = dst + bytes([len(dst)])
    message_prime = bytes(128) + message + length.to_bytes(2, "big") + b"\x00" + dst_prime
    b0 = hashlib.blake2b(message_prime, digest_size=64).digest()
    blocks = [hashlib.blake2b(b0 + b"\x01" + dst_prime, digest_size=64).digest()]
    for index in range(2, ell + 1):
        chained = xor_bytes(b0, blocks[-1]) + bytes([index]) + dst_prime
        blocks.append(hashlib.blake2b(chained, digest_size=64).digest())
    return b"".join(blocks)[:length]


def hash_to_field(message: bytes, dst: bytes) -> tuple[int, int]:
    uniform = expand_message_xmd(message, dst, 128)
    return (
        int.from_bytes(uniform[:64], "big") % _P,
        int.from_bytes(uniform[64:], "big") % _P,
    )


def map_to_curve_simple_swu(u: int) -> tuple[int, int]:
    """Simplified SWU onto iso-Pallas, returning affine coordinates."""

    zu2 = SSWU_Z * u * u % _P
    tv1 = inverse(zu2 * zu2 + zu2, _P)
    if tv1 == 0:
        x1 = ISO_B * inverse(SSWU_Z * ISO_A, _P) % _P
    else:
        x1 = (-ISO_B) * inverse(ISO_A, _P) * (1 + tv1) % _P
    gx1 = (x1 ** 3 + ISO_A * x1 + ISO_B) % _P
    if is_square(gx1, _P):
        x, y = x1, sqrt(gx1, _P)
    else:
        x = zu2 * x1 % _P
        y = sqrt((x ** 3 + ISO_A * x + ISO_B) % _P, _P)
    if (u & 1) != (y & 1):
        y = (-y) % _P
    return x, y


def iso_map(x: int, y: int) -> Point:
    """The 3-isogeny from iso-Pallas onto Pallas."""

    c = ISOGENY_CONSTANTS
    x_num = ((c[0] * x + c[1]) * x + c[2]) * x + c[3]
    x_den = (x + c[4]) * x + c[5]
    y_num = (((c[6] * x + c[7]) * x + c[8]) * x + c[9]) * y
    y_den = ((x + c[10]) * x + c[11]) * x + c[12]
    x_den %= _P
    y_den %= _P
    if x_den == 0 or y_den == 0:
        return Point.identity()
    return Point(x_num * inverse(x_den, _P) % _P, y_num * inverse(y_den, _P) % _P)


def hash_to_curve(domain: bytes, message: bytes) -> Point:
    """``GroupHash^P``."""

    dst = domain + b"-pallas_XMD:BLAKE2b_SSWU_RO_"
    u0, u1 = hash_to_field(message, dst)
    return iso_map(*map_to_curve_simple_swu(u0)) + iso_map(*map_to_curve_simple_swu(u1))


@lru_cache(maxsize=None)
def generator(domain: bytes, message: bytes) -> Point:
    """Cached ``GroupHash^P`` for fixed protocol bases."""

    return hash_to_curve(domain, message)


def spend_auth_generator() -> Point:
    return generator(b"z.cash:Orchard", b"G")


# --- Sinsemilla -----------------------------------------------------------

_SINSEMILLA_K = 10


def _sinsemilla_s(chunk: int) -> Point:
    return generator(b"z.cash:SinsemillaS", chunk.to_bytes(4, "little"))


def sinsemilla_hash_to_point(domain: bytes, bits: Sequence[int]) -> Point | None:
    padded = list(bits) + [0] * (-len(bits) % _SINSEMILLA_K)
    acc: Point | None = generator(b"z.cash:SinsemillaQ", domain)
    for start in range(0, len(padded), _SINSEMILLA_K):
        chunk = bits_to_int(padded[start:start + _SINSEMILLA_K])
        acc = incomplete_add(incomplete_add(acc, _sinsemilla_s(chunk)), acc)
        if acc is None:
            return None
    return acc


def sinsemilla_commit(domain: bytes, bits: Sequence[int], randomness: int) -> Point | None:
    hashed = sinsemilla_hash_to_point(domain + b"-M", bits)
    if hashed is None:
        return None
    return hashed + generator(domain + b"-r", b"") * randomness


def commit_ivk(ak: int, nk: int, rivk: int) -> int | None:
    """``Commit^ivk``: x-coordinate of the ivk commitment, or ``None`` on failure."""

    bits = bits_le(ak, 255) + bits_le(nk, 255)
    point = sinsemilla_commit(b"z.cash:Orchard-CommitIvk", bits, rivk)
    if point is None:
        return None
    return extract(point)


def note_commitment(
    g_d: bytes, pk_d: bytes, value: int, rho: int, psi: int, rcm: int
) -> Point | None:
    bits = (
        bytes_to_bits(g_d)
        + bytes_to_bits(pk_d)
        + bits_le(value, 64)
        + bits_le(rho, 255)
        + bits_le(psi, 255)
    )
    return sinsemilla_commit(b"z.cash:Orchard-NoteCommit", bits, rcm)


def diversify_hash(diversifier: bytes) -> Point:
    point = hash_to_curve(b"z.cash:Orchard-gd", diversifier)
    if point.is_identity():
        return generator(b"z.cash:Orchard-gd", b"")
    return point
