"""Unified full viewing key parsing (ZIP 316) and per-pool key material.

A unified full viewing key may carry a Sapling component, an Orchard
component, a transparent component, or any mix of them. Pools without a
component are simply absent (``None``); the scanner skips them. Everything a
scan needs (external and internal incoming viewing keys, and the external
outgoing viewing key) is derived once while the key is parsed, so a parsed
key is immutable and can be shared between concurrent scans.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .crypto import jubjub, pallas
from .crypto.hashes import blake2b_256, le_int, prf_expand, to_scalar
from .encoding import (
    bech32m_decode,
    bech32m_encode,
    f4jumble,
    f4jumble_inv,
    read_compact_size,
    ser_compact_size,
)
from .errors import InvalidEncoding, NetworkMismatch
from .network import (
    MAINNET_PARAMETERS,
    TESTNET_PARAMETERS,
    ConsensusParameters,
    Network,
    resolve_parameters,
)

TYPECODE_P2PKH = 0x00
TYPECODE_P2SH = 0x01
TYPECODE_SAPLING = 0x02
TYPECODE_ORCHARD = 0x03

_TRANSPARENT_LENGTH = 65
_SAPLING_LENGTH = 128
_ORCHARD_LENGTH = 96
_PADDING_LENGTH = 16

# Other ZIP 316 prefixes, recognised only to give a clearer error.
_NON_UFVK_HRPS = {
    "u": "unified address",
    "utest": "unified address",
    "uregtest": "unified address",
    "uivk": "unified incoming viewing key",
    "uivktest": "unified incoming viewing key",
    "uivkregtest": "unified incoming viewing key",
}


@dataclass(frozen=True)
class SaplingViewingKey:
    """Sapling diversifiable full viewing key with its derived scanning keys."""

    ak: bytes
    nk: bytes
    ovk: bytes
    dk: bytes
    external_ivk: int = field(repr=False)
    internal_ivk: int = field(repr=False)
    internal_ovk: bytes = field(repr=False)

    @property
    def external_ovk(self) -> bytes:
        return self.ovk

    @classmethod
    def from_bytes(cls, data: bytes) -> "SaplingViewingKey":
        if len(data) != _SAPLING_LENGTH:
            raise InvalidEncoding(f"Sapling viewing key must be {_SAPLING_LENGTH} bytes, got {len(data)}")
        ak, nk, ovk, dk = data[:32], data[32:64], data[64:96], data[96:]

        ak_point = jubjub.Point.from_bytes(ak)
        if ak_point is None or ak_point.is_identity() or not ak_point.is_prime_order():
            raise InvalidEncoding("Sapling ak is not a prime-order Jubjub point")
        nk_point = jubjub.Point.from_bytes(nk)
        if nk_point is None or not nk_point.is_prime_order():
            raise InvalidEncoding("Sapling nk is not a prime-order Jubjub point")

        external_ivk = jubjub.crh_ivk(ak, nk)

        # ZIP 32 internal key derivation, starting from the full viewing key.
        seed = blake2b_256(b"Zcash_SaplingInt", ak + nk + ovk + dk)
        i_nsk = to_scalar(prf_expand(seed, b"\x17"), jubjub.SUBGROUP_ORDER)
        expanded = prf_expand(seed, b"\x18")
        nk_internal = jubjub.proof_generation_key_generator() * i_nsk + nk_point
        internal_ivk = jubjub.crh_ivk(ak, nk_internal.to_bytes())

        if external_ivk == 0 or internal_ivk == 0:
            raise InvalidEncoding("Sapling viewing key derives an invalid ivk")
        return cls(
            ak=ak,
            nk=nk,
            ovk=ovk,
            dk=dk,
            external_ivk=external_ivk,
            internal_ivk=internal_ivk,
            internal_ovk=expanded[32:],
        )

    def to_bytes(self) -> bytes:
        return self.ak + self.nk + self.ovk + self.dk


@dataclass(frozen=True)
class OrchardViewingKey:
    """Orchard full viewing key with its derived scanning keys."""

    ak: bytes
    nk: bytes
    rivk: bytes
    external_ivk: int = field(repr=False)
    internal_ivk: int = field(repr=False)
    external_ovk: bytes = field(repr=False)

    @classmethod
    def from_bytes(cls, data: bytes) -> "OrchardViewingKey":
        if len(data) != _ORCHARD_LENGTH:
            raise InvalidEncoding(f"Orchard viewing key must be {_ORCHARD_LENGTH} bytes, got {len(data)}")
        ak, nk, rivk = data[:32], data[32:64], data[64:]

        ak_point = pallas.Point.from_bytes(ak)
        if ak_point is None or ak_point.is_identity() or ak[31] & 0x80:
            raise InvalidEncoding("Orchard ak is not a valid spend validating key")
        if not pallas.is_canonical_base(nk):
            raise InvalidEncoding("Orchard nk is not a canonical field element")
        if not pallas.is_canonical_scalar(rivk):
            raise InvalidEncoding("Orchard rivk is not a canonical scalar")

        ak_x = pallas.extract(ak_point)
        nk_value = le_int(nk)
        external_ivk = _orchard_ivk(ak_x, nk_value, le_int(rivk))
        rivk_internal = to_scalar(prf_expand(rivk, b"\x83" + ak + nk), pallas.SCALAR_MODULUS)
        internal_ivk = _orchard_ivk(ak_x, nk_value, rivk_internal)
        expanded = prf_expand(rivk, b"\x82" + ak + nk)
        return cls(
            ak=ak,
            nk=nk,
            rivk=rivk,
            external_ivk=external_ivk,
            internal_ivk=internal_ivk,
            external_ovk=expanded[32:],
        )

    def to_bytes(self) -> bytes:
        return self.ak + self.nk + self.rivk


def _orchard_ivk(ak_x: int, nk: int, rivk: int) -> int:
    ivk = pallas.commit_ivk(ak_x, nk, rivk)
    if ivk is None or ivk % pallas.SCALAR_MODULUS == 0:
        raise InvalidEncoding("Orchard viewing key derives an invalid ivk")
    return ivk % pallas.SCALAR_MODULUS


@dataclass(frozen=True)
class UnifiedFullViewingKey:
    """Parsed unified full viewing key; absent components are ``None``."""

    sapling: SaplingViewingKey | None = None
    orchard: OrchardViewingKey | None = None
    transparent: bytes | None = None
    unknown: tuple[tuple[int, bytes], ...] = ()

    def components(self) -> list[str]:
        names = []
        if self.transparent is not None:
            names.append("transparent")
        if self.sapling is not None:
            names.append("sapling")
        if self.orchard is not None:
            names.append("orchard")
        names.extend(f"unknown:{typecode:#x}" for typecode, _ in self.unknown)
        return names

    def encode(self, network: Network) -> str:
        items: list[tuple[int, bytes]] = list(self.unknown)
        if self.transparent is not None:
            items.append((TYPECODE_P2PKH, self.transparent))
        if self.sapling is not None:
            items.append((TYPECODE_SAPLING, self.sapling.to_bytes()))
        if self.orchard is not None:
            items.append((TYPECODE_ORCHARD, self.orchard.to_bytes()))
        hrp = resolve_parameters(network).ufvk_hrp
        raw = b"".join(
            ser_compact_size(typecode) + ser_compact_size(len(value)) + value
            for typecode, value in sorted(items)
        )
        raw += hrp.encode("ascii").ljust(_PADDING_LENGTH, b"\x00")
        return bech32m_encode(hrp, f4jumble(raw))


def _check_hrp(hrp: str, params: ConsensusParameters) -> None:
    if hrp == params.ufvk_hrp:
        return
    for other in (MAINNET_PARAMETERS, TESTNET_PARAMETERS):
        if hrp == other.ufvk_hrp:
            raise NetworkMismatch(
                f"viewing key is encoded for {other.network.value}, "
                f"expected {params.network.value}"
            )
    kind = _NON_UFVK_HRPS.get(hrp)
    if kind is not None:
        raise InvalidEncoding(f"expected a unified full viewing key, found a {kind}")
    raise InvalidEncoding(f"unknown unified viewing key prefix '{hrp}'")


def _read_items(raw: bytes) -> list[tuple[int, bytes]]:
    items: list[tuple[int, bytes]] = []
    offset = 0
    while offset < len(raw):
        header = read_compact_size(raw, offset)
        if header is None:
            raise InvalidEncoding("truncated typecode in unified viewing key")
        typecode, offset = header
        header = read_compact_size(raw, offset)
        if header is None:
            raise InvalidEncoding(f"truncated length for typecode {typecode:#x}")
        length, offset = header
        if offset + length > len(raw):
            raise InvalidEncoding(f"item with typecode {typecode:#x} overruns the encoding")
        items.append((typecode, raw[offset:offset + length]))
        offset += length
    return items


def parse_viewing_key(encoded: str, network: Network) -> UnifiedFullViewingKey:
    """Decode a textual unified full viewing key for ``network``.

    Raises :class:`InvalidEncoding` for malformed strings and
    :class:`NetworkMismatch` when the key belongs to the other network.
    """

    params = resolve_parameters(network)
    hrp, jumbled = bech32m_decode(encoded.strip())
    _check_hrp(hrp, params)

    raw = f4jumble_inv(jumbled)
    padding = hrp.encode("ascii").ljust(_PADDING_LENGTH, b"\x00")
    if raw[-_PADDING_LENGTH:] != padding:
        raise InvalidEncoding("unified viewing key padding does not match its prefix")

    sapling = orchard = transparent = None
    unknown: list[tuple[int, bytes]] = []
    previous: int | None = None
    for typecode, value in _read_items(raw[:-_PADDING_LENGTH]):
        if previous is not None:
            if typecode == previous:
                raise InvalidEncoding(f"duplicate typecode {typecode:#x} in unified viewing key")
            if typecode < previous:
                raise InvalidEncoding("unified viewing key items are not in typecode order")
        previous = typecode
        if typecode == TYPECODE_P2PKH:
            if len(value) != _TRANSPARENT_LENGTH:
                raise InvalidEncoding("transparent viewing key must be 65 bytes")
            transparent = value
        elif typecode == TYPECODE_P2SH:
            raise InvalidEncoding("P2SH items are not valid in a viewing key")
        elif typecode == TYPECODE_SAPLING:
            sapling = SaplingViewingKey.from_bytes(value)
        elif typecode == TYPECODE_ORCHARD:
            orchard = OrchardViewingKey.from_bytes(value)
        else:
            unknown.append((typecode, value))

    if sapling is None and orchard is None and not unknown:
        raise InvalidEncoding("unified viewing key has no shielded component")
    return UnifiedFullViewingKey(
        sapling=sapling,
        orchard=orchard,
        transparent=transparent,
        unknown=tuple(unknown),
    )
