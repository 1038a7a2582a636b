"""Jubjub curve arithmetic and the Sapling primitives built on it.

Jubjub is the twisted Edwards curve ``-u^2 + v^2 = 1 + d*u^2*v^2`` over the
BLS12-381 scalar field. Points are kept in extended coordinates
``(X, Y, Z, T)`` with ``u = X/Z``, ``v = Y/Z`` and ``T = XY/Z`` so that
addition needs no field inversions. The addition law used here is complete
for Jubjub because ``d`` is a non-square.

The module implements exactly what note decryption needs: point encoding,
group hashing, windowed Pedersen commitments (note commitments), diversifier
hashing and ``CRH^ivk``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Sequence

from .fields import inverse, sqrt
from .hashes import bits_le, blake2s_256, bytes_to_bits, le_int

FIELD_MODULUS = 0x73EDA753299D7D483339D80809A1D80553BDA402FFFE5BFEFFFFFFFF00000001
SUBGROUP_ORDER = 0x0E7DB4EA6533AFA906673B0101343B00A6682093CCC81082D0970E5ED6F72CB7
COFACTOR = 8

_Q = FIELD_MODULUS
EDWARDS_D = (-10240 * inverse(10241, _Q)) % _Q
_D2 = 2 * EDWARDS_D % _Q

# First BLAKE2s block for every Sapling group hash.
URS = b"096b36a5804bfacef1691e173c366a47ff5ba84a44f26ddd7e8d9f79d5b42df0"


class Point:
    """A Jubjub point in extended twisted Edwards coordinates."""

    __slots__ = ("x", "y", "z", "t")

    def __init__(self, x: int, y: int, z: int = 1, t: int | None = None) -> None:
        self.x = x % _Q
        self.y = y % _Q
        self.z = z % _Q
        self.t = (x * y % _Q) if t is None else t % _Q

    @classmethod
    def identity(cls) -> "Point":
        return cls(0, 1, 1, 0)

    @classmethod
    def from_affine(cls, u: int, v: int) -> "Point":
        return cls(u, v)

    def affine(self) -> tuple[int, int]:
        zinv = inverse(self.z, _Q)
        return self.x * zinv % _Q, self.y * zinv % _Q

    @property
    def u(self) -> int:
        return self.affine()[0]

    def is_identity(self) -> bool:
        return self.x == 0 and self.y == self.z

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Point):
            return NotImplemented
        return (
            self.x * other.z % _Q == other.x * self.z % _Q
            and self.y * other.z % _Q == other.y * self.z % _Q
        )

    def __hash__(self) -> int:
        return hash(self.affine())

    def __repr__(self) -> str:
        u, v = self.affine()
        return f"jubjub.Point(u={u:#x}, v={v:#x})"

    def __neg__(self) -> "Point":
        return Point(-self.x, self.y, self.z, -self.t)

    def __add__(self, other: "Point") -> "Point":
        a = (self.y - self.x) * (other.y - other.x) % _Q
        b = (self.y + self.x) * (other.y + other.x) % _Q
        c = self.t * _D2 % _Q * other.t % _Q
        d = 2 * self.z * other.z % _Q
        e = b - a
        f = d - c
        g = d + c
        h = b + a
        return Point(e * f, g * h, f * g, e * h)

    def __sub__(self, other: "Point") -> "Point":
        return self + (-other)

    def double(self) -> "Point":
        a = self.x * self.x % _Q
        b = self.y * self.y % _Q
        c = 2 * self.z * self.z % _Q
        d = -a
        e = ((self.x + self.y) * (self.x + self.y) - a - b) % _Q
        g = d + b
        f = g - c
        h = d - b
        return Point(e * f, g * h, f * g, e * h)

    def __mul__(self, scalar: int) -> "Point":
        if scalar < 0:
            return (-self) * (-scalar)
        result = Point.identity()
        addend = self
        while scalar:
            if scalar & 1:
                result = result + addend
            addend = addend.double()
            scalar >>= 1
        return result

    __rmul__ = __mul__

    def mul_by_cofactor(self) -> "Point":
        return self.double().double().double()

    def is_small_order(self) -> bool:
        return self.mul_by_cofactor().is_identity()

    def is_prime_order(self) -> bool:
        """True when the point lies in the prime-order subgroup (identity included)."""

        return (self * SUBGROUP_ORDER).is_identity()

    def to_bytes(self) -> bytes:
        """``repr_J``: the v-coordinate with the sign of u in the top bit."""

        u, v = self.affine()
        return (v | ((u & 1) << 255)).to_bytes(32, "little")

    @classmethod
    def from_bytes(cls, data: bytes) -> "Point | None":
        """``abst_J`` with ZIP 216 canonicity rules; ``None`` when invalid."""

        if len(data) != 32:
            return None
        encoded = le_int(data)
        u_sign = encoded >> 255
        v = encoded & ((1 << 255) - 1)
        if v >= _Q:
            return None
        vv = v * v % _Q
        u2 = (vv - 1) * inverse(EDWARDS_D * vv + 1, _Q) % _Q
        u = sqrt(u2, _Q)
        if u is None:
            return None
        if u == 0 and u_sign:
            return None
        if u & 1 != u_sign:
            u = _Q - u
        return cls.from_affine(u, v)


def group_hash(person: bytes, message: bytes) -> Point | None:
    """``GroupHash^J``: hash into the prime-order subgroup, or ``None``."""

    point = Point.from_bytes(blake2s_256(person, URS + message))
    if point is None:
        return None
    point = point.mul_by_cofactor()
    if point.is_identity():
        return None
    return point


@lru_cache(maxsize=None)
def find_group_hash(person: bytes, message: bytes) -> Point:
    for counter in range(256):
        point = group_hash(person, message + bytes([counter]))
        if point is not None:
            return point
    raise ArithmeticError(f"no group hash found for {person!r}/{message!r}")


def spending_key_generator() -> Point:
    return find_group_hash(b"Zcash_G_", b"")


def proof_generation_key_generator() -> Point:
    return find_group_hash(b"Zcash_H_", b"")


def note_commitment_randomness_base() -> Point:
    return find_group_hash(b"Zcash_PH", b"r")


def _pedersen_generator(person: bytes, segment: int) -> Point:
    return find_group_hash(person, segment.to_bytes(4, "little"))


_CHUNKS_PER_SEGMENT = 63


def pedersen_hash_to_point(person: bytes, bits: Sequence[int]) -> Point:
    """Sapling ``PedersenHashToPoint`` over a little-endian bit sequence."""

    padded = list(bits) + [0] * (-len(bits) % 3)
    chunks = [padded[i:i + 3] for i in range(0, len(padded), 3)]
    result = Point.identity()
    for index in range(0, len(chunks), _CHUNKS_PER_SEGMENT):
        segment = chunks[index:index + _CHUNKS_PER_SEGMENT]
        scalar = 0
        for position, (s0, s1, s2) in enumerate(segment):
            scalar += ((1 - 2 * s2) * (1 + s0 + 2 * s1)) << (4 * position)
        generator = _pedersen_generator(person, index // _CHUNKS_PER_SEGMENT)
        result = result + generator * (scalar % SUBGROUP_ORDER)
    return result


def note_commitment(g_d: bytes, pk_d: bytes, value: int, rcm: int) -> Point:
    """``NoteCommit^Sapling``: windowed Pedersen commitment to a note."""

    bits = [1] * 6 + bits_le(value, 64) + bytes_to_bits(g_d) + bytes_to_bits(pk_d)
    return pedersen_hash_to_point(b"Zcash_PH", bits) + note_commitment_randomness_base() * rcm


def extract_u(point: Point) -> bytes:
    """``Extract_J``: the u-coordinate as 32 little-endian bytes."""

    return point.u.to_bytes(32, "little")


def diversify_hash(diversifier: bytes) -> Point | None:
    return group_hash(b"Zcash_gd", diversifier)


def crh_ivk(ak: bytes, nk: bytes) -> int:
    """``CRH^ivk``: the incoming viewing key scalar (251 bits)."""

    return le_int(blake2s_256(b"Zcashivk", ak + nk)) & ((1 << 251) - 1)
