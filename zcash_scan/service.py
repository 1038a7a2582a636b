"""Batch boundary: JSON in, JSON out.

This is the layer a web or RPC front end calls. It accepts a network name,
a textual unified full viewing key and a JSON list of
``{"raw_tx": ..., "height": ...}`` objects, and returns the decrypted notes
as JSON. Raw transactions may be hex or base64.

Two explicit modes exist. ``strict`` stops at the first bad transaction and
raises :class:`BatchItemError` naming it. ``report`` decrypts every good
transaction and lists the bad ones next to the notes.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from .errors import BatchItemError, ZcashScanError
from .keys import UnifiedFullViewingKey, parse_viewing_key
from .network import ConsensusParameters, Network, parse_network, resolve_parameters
from .scanner import DecryptedNote, decrypt_transaction
from .transaction import AtHeight, parse_transaction

logger = logging.getLogger(__name__)

MODE_STRICT = "strict"
MODE_REPORT = "report"
_MODES = (MODE_STRICT, MODE_REPORT)

_HEX_RE = re.compile(r"^(?:[0-9a-fA-F]{2})*$")


@dataclass(frozen=True)
class TxInput:
    raw_tx: str
    height: int


@dataclass
class BatchResult:
    notes: list[DecryptedNote] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "notes": [note.to_dict() for note in self.notes],
            "errors": list(self.errors),
        }


def decode_txs(txs_json: str) -> list[TxInput]:
    """Parse the batch JSON into :class:`TxInput` records."""

    try:
        payload = json.loads(txs_json)
    except json.JSONDecodeError as exc:
        raise ZcashScanError(f"invalid txs json: {exc}") from exc
    if not isinstance(payload, list):
        raise ZcashScanError("invalid txs json: expected a list of transactions")

    inputs = []
    for position, entry in enumerate(payload):
        if not isinstance(entry, dict):
            raise ZcashScanError(f"invalid txs json: entry {position} is not an object")
        raw_tx = entry.get("raw_tx")
        height = entry.get("height")
        if not isinstance(raw_tx, str):
            raise ZcashScanError(f"invalid txs json: entry {position} has no string 'raw_tx'")
        if isinstance(height, bool) or not isinstance(height, int) or not 0 <= height <= 0xFFFFFFFF:
            raise ZcashScanError(f"invalid txs json: entry {position} has an invalid 'height'")
        inputs.append(TxInput(raw_tx=raw_tx, height=height))
    return inputs


def decode_raw_tx(raw: str) -> bytes:
    """Decode a raw transaction given as even-length hex or as base64."""

    text = raw.strip()
    if _HEX_RE.match(text):
        return bytes.fromhex(text)
    try:
        return base64.b64decode(text, validate=True)
    except binascii.Error as exc:
        raise ZcashScanError(f"failed to decode transaction: {exc}") from exc


def load_viewing_key(viewing_key: str, network: Network) -> UnifiedFullViewingKey:
    try:
        return parse_viewing_key(viewing_key, network)
    except ZcashScanError as exc:
        raise type(exc)(f"invalid viewing key: {exc}") from exc


def _decrypt_item(
    params: ConsensusParameters,
    ufvk: UnifiedFullViewingKey,
    index: int,
    item: TxInput,
) -> list[DecryptedNote]:
    try:
        data = decode_raw_tx(item.raw_tx)
    except ZcashScanError as exc:
        raise BatchItemError(index, f"failed to decode tx #{index}: {exc}", exc) from exc
    try:
        tx = parse_transaction(data, AtHeight(params, item.height))
    except ZcashScanError as exc:
        raise BatchItemError(index, f"failed to parse tx #{index}: {exc}", exc) from exc
    return decrypt_transaction(params, item.height, ufvk, tx)


def _check_mode(mode: str) -> None:
    if mode not in _MODES:
        raise ValueError(f"unknown batch mode '{mode}', expected one of {', '.join(_MODES)}")


def scan_transactions(
    params: ConsensusParameters,
    ufvk: UnifiedFullViewingKey,
    inputs: list[TxInput],
    *,
    mode: str = MODE_STRICT,
) -> BatchResult:
    """Decrypt ``inputs`` in order, handling bad items according to ``mode``."""

    _check_mode(mode)
    result = BatchResult()
    for index, item in enumerate(inputs):
        try:
            result.notes.extend(_decrypt_item(params, ufvk, index, item))
        except BatchItemError as exc:
            if mode == MODE_STRICT:
                raise
            logger.warning("Skipping transaction %d: %s", index, exc)
            result.errors.append({"index": index, "error": str(exc)})
    logger.info(
        "Scanned %d transactions on %s: %d notes, %d errors",
        len(inputs),
        params.network.value,
        len(result.notes),
        len(result.errors),
    )
    return result


def decrypt_history(
    viewing_key: str,
    txs_json: str,
    network: str,
    *,
    mode: str = MODE_STRICT,
) -> str:
    """JSON entry point. Strict mode returns a list of notes; report mode an object."""

    _check_mode(mode)
    selected = parse_network(network)
    params = resolve_parameters(selected)
    ufvk = load_viewing_key(viewing_key, selected)
    inputs = decode_txs(txs_json)
    result = scan_transactions(params, ufvk, inputs, mode=mode)
    if mode == MODE_STRICT:
        return json.dumps([note.to_dict() for note in result.notes])
    return json.dumps(result.to_dict())
