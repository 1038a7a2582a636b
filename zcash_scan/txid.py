"""Transaction identifiers.

Pre-v5 transactions are identified by the double SHA-256 of their encoding.
v5 transactions use the ZIP 244 BLAKE2b digest tree, which commits to the
effecting data only, so the identifier does not change with proofs or
signatures.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from typing import Iterable

from .crypto.hashes import blake2b_256
from .encoding import ser_compact_size

_V5_HEADER = 5 | (1 << 31)
_V5_VERSION_GROUP_ID = 0x26A7270A
_COMPACT_NOTE_SIZE = 52
_MEMO_END = _COMPACT_NOTE_SIZE + 512


@dataclass(frozen=True)
class TxId:
    """A 32-byte transaction identifier in internal byte order."""

    raw: bytes

    def __str__(self) -> str:
        return self.raw[::-1].hex()

    @property
    def hex(self) -> str:
        return str(self)

    @classmethod
    def from_hex(cls, text: str) -> "TxId":
        data = bytes.fromhex(text)
        if len(data) != 32:
            raise ValueError("transaction id must be 32 bytes")
        return cls(data[::-1])


def double_sha256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def legacy_txid(serialized: bytes) -> TxId:
    return TxId(double_sha256(serialized))


def _digest(person: bytes, parts: Iterable[bytes]) -> bytes:
    return blake2b_256(person, b"".join(parts))


def _transparent_digest(inputs, outputs) -> bytes:
    if not inputs and not outputs:
        return blake2b_256(b"ZTxIdTranspaHash", b"")
    prevouts = _digest(
        b"ZTxIdPrevoutHash",
        (txin.prev_hash + struct.pack("<I", txin.prev_index) for txin in inputs),
    )
    sequences = _digest(
        b"ZTxIdSequencHash",
        (struct.pack("<I", txin.sequence) for txin in inputs),
    )
    outs = _digest(
        b"ZTxIdOutputsHash",
        (
            struct.pack("<q", txout.value) + ser_compact_size(len(txout.script)) + txout.script
            for txout in outputs
        ),
    )
    return blake2b_256(b"ZTxIdTranspaHash", prevouts + sequences + outs)


def _sapling_digest(bundle) -> bytes:
    if bundle is None:
        return blake2b_256(b"ZTxIdSaplingHash", b"")

    if bundle.spends:
        compact = _digest(b"ZTxIdSSpendCHash", (s.nullifier for s in bundle.spends))
        noncompact = _digest(
            b"ZTxIdSSpendNHash",
            (s.cv + s.anchor + s.rk for s in bundle.spends),
        )
        spends = blake2b_256(b"ZTxIdSSpendsHash", compact + noncompact)
    else:
        spends = blake2b_256(b"ZTxIdSSpendsHash", b"")

    if bundle.outputs:
        compact = _digest(
            b"ZTxIdSOutC__Hash",
            (o.cmu + o.ephemeral_key + o.enc_ciphertext[:_COMPACT_NOTE_SIZE] for o in bundle.outputs),
        )
        memos = _digest(
            b"ZTxIdSOutM__Hash",
            (o.enc_ciphertext[_COMPACT_NOTE_SIZE:_MEMO_END] for o in bundle.outputs),
        )
        noncompact = _digest(
            b"ZTxIdSOutN__Hash",
            (o.cv + o.enc_ciphertext[_MEMO_END:] + o.out_ciphertext for o in bundle.outputs),
        )
        outputs = blake2b_256(b"ZTxIdSOutputHash", compact + memos + noncompact)
    else:
        outputs = blake2b_256(b"ZTxIdSOutputHash", b"")

    return blake2b_256(
        b"ZTxIdSaplingHash",
        spends + outputs + struct.pack("<q", bundle.value_balance),
    )


def _orchard_digest(bundle) -> bytes:
    if bundle is None:
        return blake2b_256(b"ZTxIdOrchardHash", b"")
    compact = _digest(
        b"ZTxIdOrcActCHash",
        (
            a.nullifier + a.cmx + a.ephemeral_key + a.enc_ciphertext[:_COMPACT_NOTE_SIZE]
            for a in bundle.actions
        ),
    )
    memos = _digest(
        b"ZTxIdOrcActMHash",
        (a.enc_ciphertext[_COMPACT_NOTE_SIZE:_MEMO_END] for a in bundle.actions),
    )
    noncompact = _digest(
        b"ZTxIdOrcActNHash",
        (a.cv + a.rk + a.enc_ciphertext[_MEMO_END:] + a.out_ciphertext for a in bundle.actions),
    )
    return blake2b_256(
        b"ZTxIdOrchardHash",
        compact
        + memos
        + noncompact
        + bytes([bundle.flags])
        + struct.pack("<q", bundle.value_balance)
        + bundle.anchor,
    )


def zip244_txid(
    branch_id: int,
    lock_time: int,
    expiry_height: int,
    inputs,
    outputs,
    sapling_bundle,
    orchard_bundle,
) -> TxId:
    """ZIP 244 identifier of a v5 transaction from its effecting data."""

    header = blake2b_256(
        b"ZTxIdHeadersHash",
        struct.pack("<IIIII", _V5_HEADER, _V5_VERSION_GROUP_ID, branch_id, lock_time, expiry_height),
    )
    person = b"ZcashTxHash_" + struct.pack("<I", branch_id)
    return TxId(
        blake2b_256(
            person,
            header
            + _transparent_digest(inputs, outputs)
            + _sapling_digest(sapling_bundle)
            + _orchard_digest(orchard_bundle),
        )
    )
