"""Consensus deserialization of Zcash transactions, v1 through v5.

The parser follows the cursor-and-``_read_*`` shape of the usual Bitcoin-family
deserializers, with one addition: every read is attributed to a named parse
step, and a failure raises :class:`MalformedTransaction` carrying that step.
Callers can therefore tell a truncated buffer ("sapling outputs") apart from a
transaction read under the wrong era (a :class:`VersionMismatch`).

Only the fields scanning needs are surfaced as structured data; proofs and
signatures are kept as opaque bytes so the transaction identifier can be
recomputed.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Union

from .crypto import jubjub, pallas
from .crypto.hashes import le_int
from .encoding import read_compact_size
from .errors import MalformedTransaction, VersionMismatch
from .network import BranchId, ConsensusParameters
from .txid import TxId, legacy_txid, zip244_txid

OVERWINTER_VERSION_GROUP_ID = 0x03C48270
SAPLING_VERSION_GROUP_ID = 0x892F2085
V5_VERSION_GROUP_ID = 0x26A7270A

ENC_CIPHERTEXT_SIZE = 580
OUT_CIPHERTEXT_SIZE = 80
GROTH_PROOF_SIZE = 192
SIGNATURE_SIZE = 64

_SAPLING_SPEND_V4_SIZE = 32 + 32 + 32 + 32 + GROTH_PROOF_SIZE + SIGNATURE_SIZE
_SAPLING_OUTPUT_V4_SIZE = 32 + 32 + 32 + ENC_CIPHERTEXT_SIZE + OUT_CIPHERTEXT_SIZE + GROTH_PROOF_SIZE
_SAPLING_SPEND_V5_SIZE = 32 + 32 + 32
_SAPLING_OUTPUT_V5_SIZE = 32 + 32 + 32 + ENC_CIPHERTEXT_SIZE + OUT_CIPHERTEXT_SIZE
_ORCHARD_ACTION_SIZE = 32 * 5 + ENC_CIPHERTEXT_SIZE + OUT_CIPHERTEXT_SIZE
_JOINSPLIT_BCTV14_SIZE = 1802
_JOINSPLIT_GROTH_SIZE = 1698

ORCHARD_FLAG_SPENDS = 0x01
ORCHARD_FLAG_OUTPUTS = 0x02
_ORCHARD_RESERVED_FLAGS = 0xFC

_MAX_MONEY = 21_000_000 * 100_000_000


@dataclass(frozen=True)
class TxIn:
    prev_hash: bytes
    prev_index: int
    script: bytes
    sequence: int


@dataclass(frozen=True)
class TxOut:
    value: int
    script: bytes


@dataclass(frozen=True)
class SaplingSpend:
    cv: bytes
    anchor: bytes
    nullifier: bytes
    rk: bytes
    zkproof: bytes = field(repr=False)
    spend_auth_sig: bytes = field(repr=False)


@dataclass(frozen=True)
class SaplingOutput:
    cv: bytes
    cmu: bytes
    ephemeral_key: bytes
    enc_ciphertext: bytes = field(repr=False)
    out_ciphertext: bytes = field(repr=False)
    zkproof: bytes = field(repr=False)


@dataclass(frozen=True)
class SaplingBundle:
    spends: tuple[SaplingSpend, ...]
    outputs: tuple[SaplingOutput, ...]
    value_balance: int
    binding_sig: bytes = field(repr=False)


@dataclass(frozen=True)
class OrchardAction:
    cv: bytes
    nullifier: bytes
    rk: bytes
    cmx: bytes
    ephemeral_key: bytes
    enc_ciphertext: bytes = field(repr=False)
    out_ciphertext: bytes = field(repr=False)
    spend_auth_sig: bytes = field(repr=False)


@dataclass(frozen=True)
class OrchardBundle:
    actions: tuple[OrchardAction, ...]
    flags: int
    value_balance: int
    anchor: bytes
    proof: bytes = field(repr=False)
    binding_sig: bytes = field(repr=False)

    @property
    def spends_enabled(self) -> bool:
        return bool(self.flags & ORCHARD_FLAG_SPENDS)

    @property
    def outputs_enabled(self) -> bool:
        return bool(self.flags & ORCHARD_FLAG_OUTPUTS)


@dataclass(frozen=True)
class Transaction:
    version: int
    overwintered: bool
    version_group_id: int
    branch_id: BranchId
    lock_time: int
    expiry_height: int
    transparent_inputs: tuple[TxIn, ...]
    transparent_outputs: tuple[TxOut, ...]
    joinsplit_count: int
    sapling_bundle: SaplingBundle | None
    orchard_bundle: OrchardBundle | None
    txid: TxId


@dataclass(frozen=True)
class AtHeight:
    """Select the transaction era from the chain state at ``height``."""

    params: ConsensusParameters
    height: int

    def resolve_branch(self) -> BranchId:
        return self.params.branch_id_at(self.height)


@dataclass(frozen=True)
class FixedBranch:
    """Parse under an explicitly named consensus branch.

    Only safe when the caller already knows the era the transaction was mined
    in. Under the wrong branch a valid transaction is reported as a
    :class:`VersionMismatch` instead of being decoded.
    """

    branch_id: BranchId

    def resolve_branch(self) -> BranchId:
        return BranchId(self.branch_id)


VersionSelector = Union[AtHeight, FixedBranch]


def accepted_versions(branch_id: BranchId) -> frozenset[int]:
    """Transaction versions a node in ``branch_id`` would accept."""

    if branch_id is BranchId.SPROUT:
        return frozenset({1, 2})
    if branch_id is BranchId.OVERWINTER:
        return frozenset({3})
    if branch_id in (BranchId.SAPLING, BranchId.BLOSSOM, BranchId.HEARTWOOD, BranchId.CANOPY):
        return frozenset({4})
    return frozenset({4, 5})


class Deserializer:
    """Cursor-based reader over one serialized transaction."""

    def __init__(self, binary: bytes, branch_id: BranchId) -> None:
        self.binary = bytes(binary)
        self.branch_id = branch_id
        self.cursor = 0
        self.step = "header"

    def read_tx(self) -> Transaction:
        header = self._read_le_uint32()
        overwintered = bool(header >> 31)
        version = header & 0x7FFFFFFF
        version_group_id = 0
        if overwintered:
            version_group_id = self._read_le_uint32()
        self._check_version(version, overwintered, version_group_id)

        if version == 5:
            return self._read_v5(version_group_id)

        self.step = "transparent inputs"
        inputs = self._read_inputs()
        self.step = "transparent outputs"
        outputs = self._read_outputs()
        self.step = "lock time"
        lock_time = self._read_le_uint32()
        expiry_height = 0
        if version >= 3:
            self.step = "expiry height"
            expiry_height = self._read_le_uint32()

        sapling_bundle = None
        if version >= 4:
            sapling_bundle, binding_pending = self._read_sapling_v4()
        else:
            binding_pending = False

        joinsplit_count = 0
        if version >= 2:
            joinsplit_count = self._read_joinsplits(version)

        if binding_pending:
            self.step = "sapling binding signature"
            binding_sig = self._read_nbytes(SIGNATURE_SIZE)
            sapling_bundle = SaplingBundle(
                spends=sapling_bundle.spends,
                outputs=sapling_bundle.outputs,
                value_balance=sapling_bundle.value_balance,
                binding_sig=binding_sig,
            )
        if sapling_bundle is not None and not sapling_bundle.spends and not sapling_bundle.outputs:
            sapling_bundle = None

        self._check_consumed()
        return Transaction(
            version=version,
            overwintered=overwintered,
            version_group_id=version_group_id,
            branch_id=self.branch_id,
            lock_time=lock_time,
            expiry_height=expiry_height,
            transparent_inputs=inputs,
            transparent_outputs=outputs,
            joinsplit_count=joinsplit_count,
            sapling_bundle=sapling_bundle,
            orchard_bundle=None,
            txid=legacy_txid(self.binary),
        )

    def _check_version(self, version: int, overwintered: bool, version_group_id: int) -> None:
        expected_group = {
            3: OVERWINTER_VERSION_GROUP_ID,
            4: SAPLING_VERSION_GROUP_ID,
            5: V5_VERSION_GROUP_ID,
        }
        if overwintered:
            if version not in expected_group:
                self._fail(f"unknown overwintered transaction version {version}")
            if version_group_id != expected_group[version]:
                self._fail(
                    f"version group id {version_group_id:#010x} does not match version {version}",
                    mismatch=True,
                )
        elif version not in (1, 2):
            self._fail(f"unknown transaction version {version}")

        allowed = accepted_versions(self.branch_id)
        if version not in allowed:
            self._fail(
                f"version {version} is not valid under branch {self.branch_id.name} "
                f"(accepted: {sorted(allowed)})",
                mismatch=True,
            )

    def _read_v5(self, version_group_id: int) -> Transaction:
        self.step = "consensus branch id"
        embedded = self._read_le_uint32()
        if embedded != self.branch_id:
            try:
                name = BranchId(embedded).name
            except ValueError:
                name = f"{embedded:#010x}"
            self._fail(
                f"transaction commits to branch {name}, selected {self.branch_id.name}",
                mismatch=True,
            )
        self.step = "lock time"
        lock_time = self._read_le_uint32()
        self.step = "expiry height"
        expiry_height = self._read_le_uint32()
        self.step = "transparent inputs"
        inputs = self._read_inputs()
        self.step = "transparent outputs"
        outputs = self._read_outputs()
        sapling_bundle = self._read_sapling_v5()
        orchard_bundle = self._read_orchard()
        self._check_consumed()
        return Transaction(
            version=5,
            overwintered=True,
            version_group_id=version_group_id,
            branch_id=self.branch_id,
            lock_time=lock_time,
            expiry_height=expiry_height,
            transparent_inputs=inputs,
            transparent_outputs=outputs,
            joinsplit_count=0,
            sapling_bundle=sapling_bundle,
            orchard_bundle=orchard_bundle,
            txid=zip244_txid(
                self.branch_id,
                lock_time,
                expiry_height,
                inputs,
                outputs,
                sapling_bundle,
                orchard_bundle,
            ),
        )

    # --- transparent ------------------------------------------------------

    def _read_inputs(self) -> tuple[TxIn, ...]:
        count = self._read_count(41)
        return tuple(self._read_input() for _ in range(count))

    def _read_input(self) -> TxIn:
        return TxIn(
            self._read_nbytes(32),
            self._read_le_uint32(),
            self._read_varbytes(),
            self._read_le_uint32(),
        )

    def _read_outputs(self) -> tuple[TxOut, ...]:
        count = self._read_count(9)
        return tuple(self._read_output() for _ in range(count))

    def _read_output(self) -> TxOut:
        value = self._read_le_int64()
        if not 0 <= value <= _MAX_MONEY:
            self._fail(f"transparent output value {value} out of range")
        return TxOut(value, self._read_varbytes())

    def _read_joinsplits(self, version: int) -> int:
        self.step = "joinsplits"
        size = _JOINSPLIT_GROTH_SIZE if version >= 4 else _JOINSPLIT_BCTV14_SIZE
        count = self._read_count(size)
        self._read_nbytes(count * size)
        if count:
            self.step = "joinsplit signature"
            self._read_nbytes(32 + SIGNATURE_SIZE)
        return count

    # --- Sapling ----------------------------------------------------------

    def _read_sapling_v4(self) -> tuple[SaplingBundle, bool]:
        self.step = "sapling value balance"
        value_balance = self._read_value_balance()
        self.step = "sapling spends"
        spend_count = self._read_count(_SAPLING_SPEND_V4_SIZE)
        spends = []
        for _ in range(spend_count):
            cv = self._read_point(jubjub.Point, "cv")
            anchor = self._read_canonical(jubjub.FIELD_MODULUS, "anchor")
            nullifier = self._read_nbytes(32)
            rk = self._read_point(jubjub.Point, "rk")
            spends.append(SaplingSpend(
                cv=cv,
                anchor=anchor,
                nullifier=nullifier,
                rk=rk,
                zkproof=self._read_nbytes(GROTH_PROOF_SIZE),
                spend_auth_sig=self._read_nbytes(SIGNATURE_SIZE),
            ))
        self.step = "sapling outputs"
        output_count = self._read_count(_SAPLING_OUTPUT_V4_SIZE)
        outputs = []
        for _ in range(output_count):
            cv = self._read_point(jubjub.Point, "cv")
            cmu = self._read_canonical(jubjub.FIELD_MODULUS, "cmu")
            outputs.append(SaplingOutput(
                cv=cv,
                cmu=cmu,
                ephemeral_key=self._read_nbytes(32),
                enc_ciphertext=self._read_nbytes(ENC_CIPHERTEXT_SIZE),
                out_ciphertext=self._read_nbytes(OUT_CIPHERTEXT_SIZE),
                zkproof=self._read_nbytes(GROTH_PROOF_SIZE),
            ))
        if not spends and not outputs and value_balance != 0:
            self._fail("non-zero value balance without spends or outputs")
        bundle = SaplingBundle(tuple(spends), tuple(outputs), value_balance, b"")
        return bundle, bool(spends or outputs)

    def _read_sapling_v5(self) -> SaplingBundle | None:
        self.step = "sapling spends"
        spend_count = self._read_count(_SAPLING_SPEND_V5_SIZE)
        spend_fields = []
        for _ in range(spend_count):
            spend_fields.append((
                self._read_point(jubjub.Point, "cv"),
                self._read_nbytes(32),
                self._read_point(jubjub.Point, "rk"),
            ))
        self.step = "sapling outputs"
        output_count = self._read_count(_SAPLING_OUTPUT_V5_SIZE)
        output_fields = []
        for _ in range(output_count):
            output_fields.append((
                self._read_point(jubjub.Point, "cv"),
                self._read_canonical(jubjub.FIELD_MODULUS, "cmu"),
                self._read_nbytes(32),
                self._read_nbytes(ENC_CIPHERTEXT_SIZE),
                self._read_nbytes(OUT_CIPHERTEXT_SIZE),
            ))
        if not spend_fields and not output_fields:
            return None

        self.step = "sapling value balance"
        value_balance = self._read_value_balance()
        anchor = b""
        if spend_fields:
            self.step = "sapling anchor"
            anchor = self._read_canonical(jubjub.FIELD_MODULUS, "anchor")
        self.step = "sapling spend proofs"
        spend_proofs = [self._read_nbytes(GROTH_PROOF_SIZE) for _ in spend_fields]
        self.step = "sapling spend signatures"
        spend_sigs = [self._read_nbytes(SIGNATURE_SIZE) for _ in spend_fields]
        self.step = "sapling output proofs"
        output_proofs = [self._read_nbytes(GROTH_PROOF_SIZE) for _ in output_fields]
        self.step = "sapling binding signature"
        binding_sig = self._read_nbytes(SIGNATURE_SIZE)

        spends = tuple(
            SaplingSpend(cv, anchor, nullifier, rk, proof, sig)
            for (cv, nullifier, rk), proof, sig in zip(spend_fields, spend_proofs, spend_sigs)
        )
        outputs = tuple(
            SaplingOutput(cv, cmu, epk, enc, out, proof)
            for (cv, cmu, epk, enc, out), proof in zip(output_fields, output_proofs)
        )
        return SaplingBundle(spends, outputs, value_balance, binding_sig)

    # --- Orchard ----------------------------------------------------------

    def _read_orchard(self) -> OrchardBundle | None:
        self.step = "orchard actions"
        action_count = self._read_count(_ORCHARD_ACTION_SIZE)
        if action_count == 0:
            return None
        action_fields = []
        for _ in range(action_count):
            action_fields.append((
                self._read_point(pallas.Point, "cv"),
                self._read_canonical(pallas.BASE_MODULUS, "nullifier"),
                self._read_point(pallas.Point, "rk"),
                self._read_canonical(pallas.BASE_MODULUS, "cmx"),
                self._read_nbytes(32),
                self._read_nbytes(ENC_CIPHERTEXT_SIZE),
                self._read_nbytes(OUT_CIPHERTEXT_SIZE),
            ))
        self.step = "orchard flags"
        flags = self._read_byte()
        if flags & _ORCHARD_RESERVED_FLAGS:
            self._fail(f"reserved flag bits set in {flags:#04x}")
        self.step = "orchard value balance"
        value_balance = self._read_value_balance()
        self.step = "orchard anchor"
        anchor = self._read_canonical(pallas.BASE_MODULUS, "anchor")
        self.step = "orchard proof"
        proof = self._read_varbytes()
        self.step = "orchard spend signatures"
        sigs = [self._read_nbytes(SIGNATURE_SIZE) for _ in action_fields]
        self.step = "orchard binding signature"
        binding_sig = self._read_nbytes(SIGNATURE_SIZE)
        actions = tuple(
            OrchardAction(cv, nf, rk, cmx, epk, enc, out, sig)
            for (cv, nf, rk, cmx, epk, enc, out), sig in zip(action_fields, sigs)
        )
        return OrchardBundle(actions, flags, value_balance, anchor, proof, binding_sig)

    # --- primitives -------------------------------------------------------

    def _fail(self, detail: str, mismatch: bool = False) -> None:
        error = VersionMismatch if mismatch else MalformedTransaction
        raise error(self.step, detail)

    def _check_consumed(self) -> None:
        if self.cursor != len(self.binary):
            self.step = "trailing data"
            self._fail(f"{len(self.binary) - self.cursor} unread bytes after transaction")

    def _read_byte(self) -> int:
        return self._read_nbytes(1)[0]

    def _read_nbytes(self, n: int) -> bytes:
        cursor = self.cursor
        end = cursor + n
        if end > len(self.binary):
            self._fail(f"needed {n} bytes at offset {cursor}, {len(self.binary) - cursor} left")
        self.cursor = end
        return self.binary[cursor:end]

    def _read_varint(self) -> int:
        result = read_compact_size(self.binary, self.cursor)
        if result is None:
            self._fail(f"truncated or non-canonical CompactSize at offset {self.cursor}")
        value, self.cursor = result
        return value

    def _read_count(self, item_size: int) -> int:
        count = self._read_varint()
        remaining = len(self.binary) - self.cursor
        if count * item_size > remaining:
            self._fail(f"count {count} needs {count * item_size} bytes, {remaining} left")
        return count

    def _read_varbytes(self) -> bytes:
        return self._read_nbytes(self._read_count(1))

    def _read_le_uint32(self) -> int:
        result, = struct.unpack("<I", self._read_nbytes(4))
        return result

    def _read_le_int64(self) -> int:
        result, = struct.unpack("<q", self._read_nbytes(8))
        return result

    def _read_value_balance(self) -> int:
        value = self._read_le_int64()
        if not -_MAX_MONEY <= value <= _MAX_MONEY:
            self._fail(f"value balance {value} out of range")
        return value

    def _read_canonical(self, modulus: int, name: str) -> bytes:
        data = self._read_nbytes(32)
        if le_int(data) >= modulus:
            self._fail(f"{name} is not a canonical field element")
        return data

    def _read_point(self, point_type: type, name: str) -> bytes:
        data = self._read_nbytes(32)
        if point_type.from_bytes(data) is None:
            self._fail(f"{name} is not a valid point encoding")
        return data


def parse_transaction(data: bytes, selector: VersionSelector) -> Transaction:
    """Parse consensus-serialized ``data`` under the era chosen by ``selector``.

    ``selector`` is mandatory: :class:`AtHeight` derives the branch from the
    chain's consensus parameters, :class:`FixedBranch` names it directly.
    """

    if not isinstance(selector, (AtHeight, FixedBranch)):
        raise TypeError("selector must be AtHeight or FixedBranch")
    return Deserializer(data, selector.resolve_branch()).read_tx()
