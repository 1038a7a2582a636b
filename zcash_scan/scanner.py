"""Trial decryption and classification of shielded outputs.

For every output of a pool, the wallet's keys are tried in a fixed order:

1. the external incoming viewing key, giving an ``Incoming`` note;
2. the internal incoming viewing key, giving an ``Internal`` (change) note;
3. output recovery with the outgoing viewing key, giving an ``Outgoing`` note.

The first success wins and the output yields at most one note. An output no
key opens is simply not the wallet's, which is never an error.

Sapling and Orchard differ only in how a decryption domain is built for an
output and in which primitives run inside it, so both are driven by the same
:func:`scan_pool` routine through a :class:`ShieldedPool` object.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Optional, Sequence, TypeVar

from .keys import OrchardViewingKey, SaplingViewingKey, UnifiedFullViewingKey
from .memo import Memo, TextMemo, parse_memo
from .network import ConsensusParameters, zip212_enforcement
from .note_encryption import MEMO_SIZE, NotePlaintext, OrchardDomain, SaplingDomain
from .transaction import OrchardAction, SaplingOutput, Transaction
from .txid import TxId

K = TypeVar("K")
D = TypeVar("D")
T = TypeVar("T")


class ShieldedProtocol(enum.Enum):
    SAPLING = "Sapling"
    ORCHARD = "Orchard"


class TransferType(enum.Enum):
    INCOMING = "Incoming"
    OUTGOING = "Outgoing"
    INTERNAL = "Internal"


@dataclass(frozen=True)
class ScanContext:
    params: ConsensusParameters
    height: int
    txid: TxId


@dataclass(frozen=True)
class DecryptedNote:
    """A note the wallet can see, with how it relates to the wallet."""

    txid: TxId
    index: int
    value: int
    memo: bytes
    protocol: ShieldedProtocol
    transfer_type: TransferType
    height: int

    def to_dict(self) -> dict:
        return {
            "txid": str(self.txid),
            "index": self.index,
            "value": self.value,
            "memo": list(self.memo),
            "protocol": self.protocol.value,
            "transfer_type": self.transfer_type.value,
            "height": self.height,
        }

    def parsed_memo(self) -> Memo:
        return parse_memo(self.memo)

    def memo_text(self) -> str | None:
        memo = self.parsed_memo()
        return memo.text if isinstance(memo, TextMemo) else None


Strategy = Callable[[], Optional[NotePlaintext]]


def first_match(
    strategies: Iterable[tuple[TransferType, Strategy]],
) -> tuple[TransferType, NotePlaintext] | None:
    """Run ``strategies`` in order and stop at the first that decrypts."""

    for transfer_type, attempt in strategies:
        plaintext = attempt()
        if plaintext is not None:
            return transfer_type, plaintext
    return None


class ShieldedPool(Generic[K, D, T]):
    """What :func:`scan_pool` needs to know about one shielded pool."""

    protocol: ShieldedProtocol

    def key_for(self, ufvk: UnifiedFullViewingKey) -> K | None:
        raise NotImplementedError

    def items(self, tx: Transaction) -> Sequence[T]:
        raise NotImplementedError

    def domain_for(self, item: T, context: ScanContext) -> D:
        raise NotImplementedError

    def try_incoming(self, domain: D, ivk: int, item: T) -> NotePlaintext | None:
        return domain.try_note_decryption(ivk, item)

    def try_outgoing(self, domain: D, ovk: bytes, item: T) -> NotePlaintext | None:
        return domain.try_output_recovery(ovk, item)


class SaplingPool(ShieldedPool[SaplingViewingKey, SaplingDomain, SaplingOutput]):
    protocol = ShieldedProtocol.SAPLING

    def key_for(self, ufvk: UnifiedFullViewingKey) -> SaplingViewingKey | None:
        return ufvk.sapling

    def items(self, tx: Transaction) -> Sequence[SaplingOutput]:
        if tx.sapling_bundle is None:
            return ()
        return tx.sapling_bundle.outputs

    def domain_for(self, item: SaplingOutput, context: ScanContext) -> SaplingDomain:
        return SaplingDomain(zip212_enforcement(context.params, context.height))


class OrchardPool(ShieldedPool[OrchardViewingKey, OrchardDomain, OrchardAction]):
    protocol = ShieldedProtocol.ORCHARD

    def key_for(self, ufvk: UnifiedFullViewingKey) -> OrchardViewingKey | None:
        return ufvk.orchard

    def items(self, tx: Transaction) -> Sequence[OrchardAction]:
        if tx.orchard_bundle is None:
            return ()
        return tx.orchard_bundle.actions

    def domain_for(self, item: OrchardAction, context: ScanContext) -> OrchardDomain:
        return OrchardDomain(item.nullifier)


SAPLING = SaplingPool()
ORCHARD = OrchardPool()
POOLS: tuple[ShieldedPool, ...] = (SAPLING, ORCHARD)


def scan_pool(
    pool: ShieldedPool,
    key: SaplingViewingKey | OrchardViewingKey | None,
    items: Sequence,
    context: ScanContext,
) -> list[DecryptedNote]:
    """Trial-decrypt every item of one pool's bundle, in bundle order."""

    if key is None:
        return []
    notes = []
    for index, item in enumerate(items):
        domain = pool.domain_for(item, context)
        strategies = (
            (TransferType.INCOMING, lambda: pool.try_incoming(domain, key.external_ivk, item)),
            (TransferType.INTERNAL, lambda: pool.try_incoming(domain, key.internal_ivk, item)),
            (TransferType.OUTGOING, lambda: pool.try_outgoing(domain, key.external_ovk, item)),
        )
        match = first_match(strategies)
        if match is None:
            continue
        transfer_type, plaintext = match
        assert len(plaintext.memo) == MEMO_SIZE, "decrypted memo has the wrong length"
        notes.append(
            DecryptedNote(
                txid=context.txid,
                index=index,
                value=plaintext.value,
                memo=plaintext.memo,
                protocol=pool.protocol,
                transfer_type=transfer_type,
                height=context.height,
            )
        )
    return notes


def decrypt_transaction(
    params: ConsensusParameters,
    height: int,
    ufvk: UnifiedFullViewingKey,
    tx: Transaction,
) -> list[DecryptedNote]:
    """All notes of ``tx`` visible to ``ufvk``: Sapling first, then Orchard."""

    context = ScanContext(params, height, tx.txid)
    notes: list[DecryptedNote] = []
    for pool in POOLS:
        notes.extend(scan_pool(pool, pool.key_for(ufvk), pool.items(tx), context))
    return notes


def decrypt_transactions(
    params: ConsensusParameters,
    ufvk: UnifiedFullViewingKey,
    txs: Iterable[tuple[Transaction, int]],
) -> list[DecryptedNote]:
    notes: list[DecryptedNote] = []
    for tx, height in txs:
        notes.extend(decrypt_transaction(params, height, ufvk, tx))
    return notes
