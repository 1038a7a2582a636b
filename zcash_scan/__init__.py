"""Trial decryption of shielded Zcash transactions with a unified full viewing key."""

from .errors import (
    BatchItemError,
    InvalidEncoding,
    InvalidMemo,
    MalformedTransaction,
    NetworkMismatch,
    UnsupportedNetwork,
    VersionMismatch,
    ZcashScanError,
)
from .keys import (
    OrchardViewingKey,
    SaplingViewingKey,
    UnifiedFullViewingKey,
    parse_viewing_key,
)
from .memo import ArbitraryMemo, EmptyMemo, FutureMemo, TextMemo, parse_memo
from .network import (
    BranchId,
    ConsensusParameters,
    Network,
    parse_network,
    resolve_parameters,
)
from .scanner import (
    DecryptedNote,
    ShieldedProtocol,
    TransferType,
    decrypt_transaction,
    decrypt_transactions,
)
from .service import decrypt_history
from .transaction import AtHeight, FixedBranch, Transaction, parse_transaction
from .txid import TxId

__all__ = [
    "ArbitraryMemo",
    "AtHeight",
    "BatchItemError",
    "BranchId",
    "ConsensusParameters",
    "DecryptedNote",
    "EmptyMemo",
    "FixedBranch",
    "FutureMemo",
    "InvalidEncoding",
    "InvalidMemo",
    "MalformedTransaction",
    "Network",
    "NetworkMismatch",
    "OrchardViewingKey",
    "SaplingViewingKey",
    "ShieldedProtocol",
    "TextMemo",
    "Transaction",
    "TransferType",
    "TxId",
    "UnifiedFullViewingKey",
    "UnsupportedNetwork",
    "VersionMismatch",
    "ZcashScanError",
    "decrypt_history",
    "decrypt_transaction",
    "decrypt_transactions",
    "parse_memo",
    "parse_network",
    "parse_transaction",
    "parse_viewing_key",
    "resolve_parameters",
]
