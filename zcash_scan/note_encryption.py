"""In-band note decryption for the Sapling and Orchard pools.

Both pools share one shape: derive a symmetric key from a Diffie-Hellman
shared secret, open the note ciphertext with ChaCha20-Poly1305 under an
all-zero nonce, parse the 564-byte plaintext, then re-derive the note
commitment and compare it with the one on chain. Output recovery with an
outgoing viewing key first opens the 80-byte ``out_ciphertext`` to learn the
recipient key and ephemeral secret, then proceeds the same way.

Every failure (a bad tag, a malformed plaintext, a commitment mismatch) means
"not decryptable by this key" and is reported as ``None``. Nothing here
raises for hostile input.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from .crypto import jubjub, pallas
from .crypto.hashes import blake2b_256, le_bytes, le_int, prf_expand, to_scalar
from .network import Zip212Enforcement

NOTE_PLAINTEXT_SIZE = 564
OUT_PLAINTEXT_SIZE = 64
MEMO_SIZE = 512

_NONCE = bytes(12)
_LEAD_BYTE_LEGACY = 0x01
_LEAD_BYTE_ZIP212 = 0x02

_ACCEPTED_SAPLING_LEAD_BYTES = {
    Zip212Enforcement.OFF: frozenset({_LEAD_BYTE_LEGACY}),
    Zip212Enforcement.GRACE_PERIOD: frozenset({_LEAD_BYTE_LEGACY, _LEAD_BYTE_ZIP212}),
    Zip212Enforcement.ON: frozenset({_LEAD_BYTE_ZIP212}),
}


@dataclass(frozen=True)
class NotePlaintext:
    """A successfully decrypted and commitment-checked note."""

    lead_byte: int
    diversifier: bytes
    value: int
    rseed: bytes = field(repr=False)
    memo: bytes = field(repr=False)
    pk_d: bytes = field(repr=False)


def aead_open(key: bytes, ciphertext: bytes) -> bytes | None:
    try:
        return ChaCha20Poly1305(key).decrypt(_NONCE, ciphertext, None)
    except InvalidTag:
        return None


def _split_plaintext(plaintext: bytes) -> tuple[int, bytes, int, bytes, bytes] | None:
    if len(plaintext) != NOTE_PLAINTEXT_SIZE:
        return None
    return (
        plaintext[0],
        plaintext[1:12],
        le_int(plaintext[12:20]),
        plaintext[20:52],
        plaintext[52:],
    )


@dataclass(frozen=True)
class SaplingDomain:
    """Sapling decryption rules at one block height."""

    zip212: Zip212Enforcement

    def kdf(self, shared: jubjub.Point, ephemeral_key: bytes) -> bytes:
        return blake2b_256(b"Zcash_SaplingKDF", shared.to_bytes() + ephemeral_key)

    def ock(self, ovk: bytes, cv: bytes, cmu: bytes, ephemeral_key: bytes) -> bytes:
        return blake2b_256(b"Zcash_Derive_ock", ovk + cv + cmu + ephemeral_key)

    def try_note_decryption(self, ivk: int, output) -> NotePlaintext | None:
        epk = jubjub.Point.from_bytes(output.ephemeral_key)
        if epk is None:
            return None
        shared = (epk * ivk).mul_by_cofactor()
        plaintext = aead_open(self.kdf(shared, output.ephemeral_key), output.enc_ciphertext)
        if plaintext is None:
            return None

        def recipient(g_d: jubjub.Point) -> jubjub.Point:
            return g_d * ivk

        return self._check_note(plaintext, output, recipient, expected_esk=None)

    def try_output_recovery(self, ovk: bytes, output) -> NotePlaintext | None:
        key = self.ock(ovk, output.cv, output.cmu, output.ephemeral_key)
        op = aead_open(key, output.out_ciphertext)
        if op is None or len(op) != OUT_PLAINTEXT_SIZE:
            return None
        pk_d = jubjub.Point.from_bytes(op[:32])
        esk = le_int(op[32:])
        if pk_d is None or not pk_d.is_prime_order() or esk >= jubjub.SUBGROUP_ORDER:
            return None
        shared = (pk_d * esk).mul_by_cofactor()
        plaintext = aead_open(self.kdf(shared, output.ephemeral_key), output.enc_ciphertext)
        if plaintext is None:
            return None
        return self._check_note(plaintext, output, lambda g_d: pk_d, expected_esk=esk)

    def _check_note(self, plaintext, output, recipient, expected_esk: int | None) -> NotePlaintext | None:
        parts = _split_plaintext(plaintext)
        if parts is None:
            return None
        lead_byte, diversifier, value, rseed, memo = parts
        if lead_byte not in _ACCEPTED_SAPLING_LEAD_BYTES[self.zip212]:
            return None
        g_d = jubjub.diversify_hash(diversifier)
        if g_d is None:
            return None
        pk_d = recipient(g_d)

        if lead_byte == _LEAD_BYTE_LEGACY:
            rcm = le_int(rseed)
            if rcm >= jubjub.SUBGROUP_ORDER:
                return None
            esk = expected_esk
        else:
            rcm = to_scalar(prf_expand(rseed, b"\x04"), jubjub.SUBGROUP_ORDER)
            esk = to_scalar(prf_expand(rseed, b"\x05"), jubjub.SUBGROUP_ORDER)
            if expected_esk is not None and esk != expected_esk:
                return None
        if esk is not None and (g_d * esk).to_bytes() != output.ephemeral_key:
            return None

        pk_d_bytes = pk_d.to_bytes()
        commitment = jubjub.note_commitment(g_d.to_bytes(), pk_d_bytes, value, rcm)
        if jubjub.extract_u(commitment) != output.cmu:
            return None
        return NotePlaintext(lead_byte, diversifier, value, rseed, memo, pk_d_bytes)


@dataclass(frozen=True)
class OrchardDomain:
    """Orchard decryption rules for one action; ``rho`` is its nullifier."""

    rho: bytes

    def kdf(self, shared: pallas.Point, ephemeral_key: bytes) -> bytes:
        return blake2b_256(b"Zcash_OrchardKDF", shared.to_bytes() + ephemeral_key)

    def ock(self, ovk: bytes, cv: bytes, cmx: bytes, ephemeral_key: bytes) -> bytes:
        return blake2b_256(b"Zcash_Orchardock", ovk + cv + cmx + ephemeral_key)

    def try_note_decryption(self, ivk: int, action) -> NotePlaintext | None:
        epk = pallas.Point.from_bytes(action.ephemeral_key)
        if epk is None or epk.is_identity():
            return None
        plaintext = aead_open(self.kdf(epk * ivk, action.ephemeral_key), action.enc_ciphertext)
        if plaintext is None:
            return None
        return self._check_note(plaintext, action, lambda g_d: g_d * ivk, expected_esk=None)

    def try_output_recovery(self, ovk: bytes, action) -> NotePlaintext | None:
        key = self.ock(ovk, action.cv, action.cmx, action.ephemeral_key)
        op = aead_open(key, action.out_ciphertext)
        if op is None or len(op) != OUT_PLAINTEXT_SIZE:
            return None
        pk_d = pallas.Point.from_bytes(op[:32])
        esk = le_int(op[32:])
        if pk_d is None or pk_d.is_identity() or not 0 < esk < pallas.SCALAR_MODULUS:
            return None
        plaintext = aead_open(self.kdf(pk_d * esk, action.ephemeral_key), action.enc_ciphertext)
        if plaintext is None:
            return None
        return self._check_note(plaintext, action, lambda g_d: pk_d, expected_esk=esk)

    def _check_note(self, plaintext, action, recipient, expected_esk: int | None) -> NotePlaintext | None:
        parts = _split_plaintext(plaintext)
        if parts is None:
            return None
        lead_byte, diversifier, value, rseed, memo = parts
        if lead_byte != _LEAD_BYTE_ZIP212:
            return None
        g_d = pallas.diversify_hash(diversifier)
        pk_d = recipient(g_d)
        if pk_d.is_identity():
            return None

        esk = to_scalar(prf_expand(rseed, b"\x04" + self.rho), pallas.SCALAR_MODULUS)
        if expected_esk is not None and esk != expected_esk:
            return None
        if (g_d * esk).to_bytes() != action.ephemeral_key:
            return None
        rcm = to_scalar(prf_expand(rseed, b"\x05" + self.rho), pallas.SCALAR_MODULUS)
        psi = to_scalar(prf_expand(rseed, b"\x09" + self.rho), pallas.BASE_MODULUS)

        pk_d_bytes = pk_d.to_bytes()
        commitment = pallas.note_commitment(
            g_d.to_bytes(), pk_d_bytes, value, le_int(self.rho), psi, rcm
        )
        if commitment is None or le_bytes(pallas.extract(commitment)) != action.cmx:
            return None
        return NotePlaintext(lead_byte, diversifier, value, rseed, memo, pk_d_bytes)
