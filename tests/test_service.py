import base64
import json

import pytest

from chain_builders import NU5_HEIGHT, make_ufvk, sapling_output, serialize_v5
from zcash_scan.errors import BatchItemError, InvalidEncoding, UnsupportedNetwork, ZcashScanError
from zcash_scan.network import Network
from zcash_scan.service import decode_raw_tx, decode_txs, decrypt_history


def _payment_tx() -> bytes:
    alice = make_ufvk("alice")
    bob = make_ufvk("bob")
    output = sapling_output(
        recipient_ivk=alice.sapling.external_ivk,
        sender_ovk=bob.sapling.external_ovk,
        value=1000,
    )
    return serialize_v5(sapling_outputs=[output])


def test_decrypt_history_accepts_base64_transactions() -> None:
    key = make_ufvk("alice").encode(Network.MAINNET)
    txs_json = json.dumps([
        {"raw_tx": base64.b64encode(_payment_tx()).decode(), "height": NU5_HEIGHT}
    ])

    notes = json.loads(decrypt_history(key, txs_json, "mainnet"))

    assert len(notes) == 1
    assert notes[0]["value"] == 1000
    assert notes[0]["protocol"] == "Sapling"
    assert notes[0]["transfer_type"] == "Incoming"
    assert notes[0]["memo"] == [0] * 512


def test_decrypt_history_accepts_hex_transactions() -> None:
    key = make_ufvk("bob").encode(Network.MAINNET)
    txs_json = json.dumps([{"raw_tx": _payment_tx().hex(), "height": NU5_HEIGHT}])
    notes = json.loads(decrypt_history(key, txs_json, "MAINNET"))
    assert [note["transfer_type"] for note in notes] == ["Outgoing"]


def test_unsupported_network_message() -> None:
    with pytest.raises(UnsupportedNetwork, match="unsupported network 'regtest'"):
        decrypt_history("uview1xyz", "[]", "regtest")


def test_invalid_viewing_key_message() -> None:
    with pytest.raises(InvalidEncoding, match="^invalid viewing key: "):
        decrypt_history("not-a-key", "[]", "mainnet")


def test_invalid_txs_json_message() -> None:
    key = make_ufvk("alice").encode(Network.MAINNET)
    with pytest.raises(ZcashScanError, match="^invalid txs json: "):
        decrypt_history(key, "{not json", "mainnet")


def test_strict_mode_names_failing_item() -> None:
    key = make_ufvk("alice").encode(Network.MAINNET)
    txs_json = json.dumps([
        {"raw_tx": _payment_tx().hex(), "height": NU5_HEIGHT},
        {"raw_tx": "00000000", "height": NU5_HEIGHT},
    ])
    with pytest.raises(BatchItemError) as excinfo:
        decrypt_history(key, txs_json, "mainnet")
    assert excinfo.value.index == 1
    assert str(excinfo.value).startswith("failed to parse tx #1: ")


def test_report_mode_keeps_good_items() -> None:
    key = make_ufvk("alice").encode(Network.MAINNET)
    txs_json = json.dumps([
        {"raw_tx": "!!not base64!!", "height": NU5_HEIGHT},
        {"raw_tx": _payment_tx().hex(), "height": NU5_HEIGHT},
    ])
    result = json.loads(decrypt_history(key, txs_json, "mainnet", mode="report"))
    assert [note["value"] for note in result["notes"]] == [1000]
    assert result["errors"][0]["index"] == 0
    assert result["errors"][0]["error"].startswith("failed to decode tx #0: ")


def test_decode_txs_validates_entries() -> None:
    assert decode_txs('[{"raw_tx": "", "height": 5}]')[0].height == 5
    with pytest.raises(ZcashScanError, match="height"):
        decode_txs('[{"raw_tx": "", "height": -1}]')


def test_decode_raw_tx_prefers_hex_for_even_length_hex() -> None:
    assert decode_raw_tx("0a0b") == b"\x0a\x0b"
    assert decode_raw_tx(base64.b64encode(b"\xff\xfe").decode()) == b"\xff\xfe"
