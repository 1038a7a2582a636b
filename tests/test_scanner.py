import pytest

from chain_builders import (
    NU5_HEIGHT,
    SAPLING_ERA_HEIGHT,
    TransparentOutput,
    make_ufvk,
    orchard_action,
    sapling_output,
    serialize_v4,
    serialize_v5,
)
from zcash_scan import scanner
from zcash_scan.crypto.hashes import le_bytes
from zcash_scan.network import MAINNET_PARAMETERS
from zcash_scan.note_encryption import NotePlaintext
from zcash_scan.scanner import (
    DecryptedNote,
    ShieldedProtocol,
    TransferType,
    decrypt_transaction,
    decrypt_transactions,
    first_match,
)
from zcash_scan.transaction import AtHeight, parse_transaction


def _parse(raw: bytes, height: int = NU5_HEIGHT):
    return parse_transaction(raw, AtHeight(MAINNET_PARAMETERS, height))


def _scan(raw: bytes, ufvk, height: int = NU5_HEIGHT) -> list[DecryptedNote]:
    return decrypt_transaction(MAINNET_PARAMETERS, height, ufvk, _parse(raw, height))


def test_sapling_payment_is_incoming() -> None:
    alice = make_ufvk("alice")
    bob = make_ufvk("bob")
    output = sapling_output(
        recipient_ivk=alice.sapling.external_ivk,
        sender_ovk=bob.sapling.external_ovk,
        value=1000,
    )
    tx = _parse(serialize_v5(sapling_outputs=[output]))

    notes = decrypt_transaction(MAINNET_PARAMETERS, NU5_HEIGHT, alice, tx)

    assert len(notes) == 1
    note = notes[0]
    assert note.value == 1000
    assert note.index == 0
    assert note.protocol is ShieldedProtocol.SAPLING
    assert note.transfer_type is TransferType.INCOMING
    assert note.memo == bytes(512)
    assert note.height == NU5_HEIGHT
    assert note.txid == tx.txid


def test_sender_recovers_outgoing_note_with_ovk() -> None:
    alice = make_ufvk("alice")
    bob = make_ufvk("bob")
    output = sapling_output(
        recipient_ivk=alice.sapling.external_ivk,
        sender_ovk=bob.sapling.external_ovk,
        value=1000,
    )
    notes = _scan(serialize_v5(sapling_outputs=[output]), bob)
    assert [(n.transfer_type, n.value) for n in notes] == [(TransferType.OUTGOING, 1000)]


def test_change_to_internal_key_is_internal() -> None:
    alice = make_ufvk("alice")
    output = sapling_output(
        recipient_ivk=alice.sapling.internal_ivk,
        sender_ovk=alice.sapling.internal_ovk,
        value=400,
    )
    notes = _scan(serialize_v5(sapling_outputs=[output]), alice)
    assert [(n.transfer_type, n.value) for n in notes] == [(TransferType.INTERNAL, 400)]


def test_unrelated_wallet_sees_nothing() -> None:
    alice = make_ufvk("alice")
    bob = make_ufvk("bob")
    output = sapling_output(
        recipient_ivk=alice.sapling.external_ivk,
        sender_ovk=alice.sapling.external_ovk,
        value=1000,
    )
    action = orchard_action(
        recipient_ivk=alice.orchard.external_ivk,
        sender_ovk=alice.orchard.external_ovk,
        value=5,
    )
    assert _scan(serialize_v5(sapling_outputs=[output], orchard_actions=[action]), bob) == []


def test_self_payment_yields_single_incoming_note() -> None:
    alice = make_ufvk("alice")
    output = sapling_output(
        recipient_ivk=alice.sapling.external_ivk,
        sender_ovk=alice.sapling.external_ovk,
        value=77,
    )
    notes = _scan(serialize_v5(sapling_outputs=[output]), alice)
    assert [n.transfer_type for n in notes] == [TransferType.INCOMING]


def test_orchard_payment_is_incoming() -> None:
    alice = make_ufvk("alice")
    bob = make_ufvk("bob")
    memo = b"hello orchard".ljust(512, b"\x00")
    action = orchard_action(
        recipient_ivk=alice.orchard.external_ivk,
        sender_ovk=bob.orchard.external_ovk,
        value=2500,
        memo=memo,
    )
    notes = _scan(serialize_v5(orchard_actions=[action]), alice)
    assert len(notes) == 1
    assert notes[0].protocol is ShieldedProtocol.ORCHARD
    assert notes[0].transfer_type is TransferType.INCOMING
    assert notes[0].value == 2500
    assert notes[0].memo_text() == "hello orchard"

    outgoing = _scan(serialize_v5(orchard_actions=[action]), bob)
    assert [(n.protocol, n.transfer_type) for n in outgoing] == [
        (ShieldedProtocol.ORCHARD, TransferType.OUTGOING)
    ]


def test_sapling_notes_precede_orchard_notes_and_indices_follow_bundle_order() -> None:
    alice = make_ufvk("alice")
    bob = make_ufvk("bob")
    mine = sapling_output(
        recipient_ivk=alice.sapling.external_ivk, sender_ovk=bob.sapling.external_ovk, value=10
    )
    not_mine = sapling_output(
        recipient_ivk=bob.sapling.external_ivk, sender_ovk=bob.sapling.external_ovk, value=20
    )
    action = orchard_action(
        recipient_ivk=alice.orchard.external_ivk, sender_ovk=bob.orchard.external_ovk, value=30
    )
    raw = serialize_v5(sapling_outputs=[not_mine, mine], orchard_actions=[action])

    notes = _scan(raw, alice)

    assert [(n.protocol, n.index, n.value) for n in notes] == [
        (ShieldedProtocol.SAPLING, 1, 10),
        (ShieldedProtocol.ORCHARD, 0, 30),
    ]


def test_missing_pool_key_skips_that_pool() -> None:
    alice = make_ufvk("alice")
    sapling_only = make_ufvk("alice", orchard=False)
    action = orchard_action(
        recipient_ivk=alice.orchard.external_ivk,
        sender_ovk=alice.orchard.external_ovk,
        value=30,
    )
    output = sapling_output(
        recipient_ivk=alice.sapling.external_ivk,
        sender_ovk=alice.sapling.external_ovk,
        value=10,
    )
    raw = serialize_v5(sapling_outputs=[output], orchard_actions=[action])
    notes = _scan(raw, sapling_only)
    assert [n.protocol for n in notes] == [ShieldedProtocol.SAPLING]


def test_decryption_is_deterministic() -> None:
    alice = make_ufvk("alice")
    output = sapling_output(
        recipient_ivk=alice.sapling.external_ivk,
        sender_ovk=alice.sapling.external_ovk,
        value=1000,
    )
    raw = serialize_v5(sapling_outputs=[output])
    assert _scan(raw, alice) == _scan(raw, alice)


def test_transparent_only_transaction_has_no_notes() -> None:
    raw = serialize_v5(transparent_outputs=[TransparentOutput(value=5)])
    assert _scan(raw, make_ufvk("alice")) == []


def test_zip212_note_before_canopy_is_not_decrypted() -> None:
    alice = make_ufvk("alice")
    output = sapling_output(
        recipient_ivk=alice.sapling.external_ivk,
        sender_ovk=alice.sapling.external_ovk,
        value=1000,
    )
    raw = serialize_v4(sapling_outputs=[output])
    assert _scan(raw, alice, height=SAPLING_ERA_HEIGHT) == []
    assert len(_scan(raw, alice, height=1_200_000)) == 1


def test_decrypt_transactions_concatenates_in_order() -> None:
    alice = make_ufvk("alice")
    first = sapling_output(
        recipient_ivk=alice.sapling.external_ivk, sender_ovk=alice.sapling.external_ovk, value=1
    )
    second = sapling_output(
        recipient_ivk=alice.sapling.external_ivk,
        sender_ovk=alice.sapling.external_ovk,
        value=2,
        rseed=b"\x33" * 32,
    )
    txs = [
        (_parse(serialize_v5(sapling_outputs=[first])), NU5_HEIGHT),
        (_parse(serialize_v5(sapling_outputs=[second])), NU5_HEIGHT + 1),
    ]
    notes = decrypt_transactions(MAINNET_PARAMETERS, alice, txs)
    assert [(n.value, n.height) for n in notes] == [(1, NU5_HEIGHT), (2, NU5_HEIGHT + 1)]


def test_first_match_stops_at_first_success() -> None:
    calls = []
    hit = NotePlaintext(2, bytes(11), 5, bytes(32), bytes(512), bytes(32))

    def attempt(name, result):
        def run():
            calls.append(name)
            return result
        return run

    match = first_match([
        (TransferType.INCOMING, attempt("incoming", None)),
        (TransferType.INTERNAL, attempt("internal", hit)),
        (TransferType.OUTGOING, attempt("outgoing", hit)),
    ])
    assert match == (TransferType.INTERNAL, hit)
    assert calls == ["incoming", "internal"]


def test_short_memo_trips_invariant(monkeypatch: pytest.MonkeyPatch) -> None:
    alice = make_ufvk("alice")
    output = sapling_output(
        recipient_ivk=alice.sapling.external_ivk,
        sender_ovk=alice.sapling.external_ovk,
        value=1,
    )
    broken = NotePlaintext(2, bytes(11), 1, bytes(32), b"short", bytes(32))
    monkeypatch.setattr(scanner.SaplingPool, "try_incoming", lambda self, d, ivk, item: broken)
    with pytest.raises(AssertionError):
        _scan(serialize_v5(sapling_outputs=[output]), alice)


def test_note_to_dict_uses_external_field_names() -> None:
    alice = make_ufvk("alice")
    output = sapling_output(
        recipient_ivk=alice.sapling.external_ivk,
        sender_ovk=alice.sapling.external_ovk,
        value=1000,
    )
    raw = serialize_v5(sapling_outputs=[output])
    record = _scan(raw, alice)[0].to_dict()
    assert record == {
        "txid": str(_parse(raw).txid),
        "index": 0,
        "value": 1000,
        "memo": [0] * 512,
        "protocol": "Sapling",
        "transfer_type": "Incoming",
        "height": NU5_HEIGHT,
    }


CANOPY_HEIGHT = 1_046_400


def _legacy_output(alice, bob, value: int):
    return sapling_output(
        recipient_ivk=alice.sapling.external_ivk,
        sender_ovk=bob.sapling.external_ovk,
        value=value,
        rseed=le_bytes(0xC0FFEE),
        lead_byte=0x01,
    )


@pytest.mark.parametrize("height", [SAPLING_ERA_HEIGHT, CANOPY_HEIGHT + 10])
def test_legacy_sapling_note_decrypts_before_and_during_grace_period(height: int) -> None:
    alice = make_ufvk("alice")
    bob = make_ufvk("bob")
    raw = serialize_v4(sapling_outputs=[_legacy_output(alice, bob, 42)])

    incoming = _scan(raw, alice, height=height)
    outgoing = _scan(raw, bob, height=height)

    assert [(n.transfer_type, n.value) for n in incoming] == [(TransferType.INCOMING, 42)]
    assert [(n.transfer_type, n.value) for n in outgoing] == [(TransferType.OUTGOING, 42)]


def test_legacy_sapling_note_is_rejected_after_grace_period() -> None:
    alice = make_ufvk("alice")
    bob = make_ufvk("bob")
    raw = serialize_v4(sapling_outputs=[_legacy_output(alice, bob, 42)])

    assert _scan(raw, alice, height=CANOPY_HEIGHT + 40_000) == []
    assert _scan(raw, bob, height=CANOPY_HEIGHT + 40_000) == []


def test_grace_period_accepts_zip212_notes_too() -> None:
    alice = make_ufvk("alice")
    output = sapling_output(
        recipient_ivk=alice.sapling.external_ivk,
        sender_ovk=alice.sapling.external_ovk,
        value=5,
    )
    raw = serialize_v4(sapling_outputs=[output])
    assert [n.value for n in _scan(raw, alice, height=CANOPY_HEIGHT + 10)] == [5]


def test_orchard_change_to_internal_key_is_internal() -> None:
    alice = make_ufvk("alice")
    action = orchard_action(
        recipient_ivk=alice.orchard.internal_ivk,
        sender_ovk=alice.orchard.external_ovk,
        value=9,
    )
    notes = _scan(serialize_v5(orchard_actions=[action]), alice)
    assert [(n.protocol, n.transfer_type, n.value) for n in notes] == [
        (ShieldedProtocol.ORCHARD, TransferType.INTERNAL, 9)
    ]
    assert _scan(serialize_v5(orchard_actions=[action]), make_ufvk("bob")) == []


def test_sapling_results_do_not_depend_on_orchard_bundle() -> None:
    alice = make_ufvk("alice")
    bob = make_ufvk("bob")
    outputs = [
        sapling_output(
            recipient_ivk=bob.sapling.external_ivk, sender_ovk=alice.sapling.external_ovk, value=11
        ),
        sapling_output(
            recipient_ivk=alice.sapling.internal_ivk,
            sender_ovk=alice.sapling.internal_ovk,
            value=12,
            rseed=b"\x33" * 32,
        ),
    ]
    actions = [
        orchard_action(
            recipient_ivk=alice.orchard.external_ivk, sender_ovk=bob.orchard.external_ovk, value=13
        )
    ]

    def sapling_view(notes):
        return [
            (n.index, n.value, n.memo, n.transfer_type)
            for n in notes
            if n.protocol is ShieldedProtocol.SAPLING
        ]

    mixed = _scan(serialize_v5(sapling_outputs=outputs, orchard_actions=actions), alice)
    alone = _scan(serialize_v5(sapling_outputs=outputs), alice)

    assert sapling_view(mixed) == sapling_view(alone)
    assert sapling_view(alone) == [
        (0, 11, bytes(512), TransferType.OUTGOING),
        (1, 12, bytes(512), TransferType.INTERNAL),
    ]
    assert [n.protocol for n in mixed].count(ShieldedProtocol.ORCHARD) == 1
