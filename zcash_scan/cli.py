"""Command-line interface for zcash-scan.

The CLI is a thin façade over the scanning library: it resolves the network
and viewing key from flags, environment or ``~/.zcash-scan.yaml``, obtains raw
transactions from the command line, a JSON file or a node, and prints the
decrypted notes as JSON.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

from .config import (
    ConfigurationError,
    ScanConfig,
    load_rpc_config,
    load_scan_config,
    set_default_config_path,
)
from .errors import ZcashScanError
from .keys import parse_viewing_key
from .network import BranchId, Network, resolve_parameters
from .rpc_client import RPCError, RPCTransportError, ZcashRPCClient, format_rpc_hint
from .service import (
    MODE_REPORT,
    MODE_STRICT,
    TxInput,
    decode_raw_tx,
    decode_txs,
    load_viewing_key,
    scan_transactions,
)
from .transaction import AtHeight, FixedBranch, parse_transaction

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_NODE_CHAINS = {Network.MAINNET: "main", Network.TESTNET: "test"}


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def _parse_tx_arg(raw: str) -> TxInput:
    """Parse ``RAW:HEIGHT`` where RAW is hex or base64."""

    payload, separator, height_text = raw.rpartition(":")
    if not separator or not payload:
        raise argparse.ArgumentTypeError(f"expected RAW:HEIGHT, got '{raw}'")
    try:
        height = int(height_text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid height in '{raw}'") from exc
    if height < 0:
        raise argparse.ArgumentTypeError(f"height must be non-negative in '{raw}'")
    return TxInput(raw_tx=payload, height=height)


def _parse_branch(raw: str) -> BranchId:
    normalized = raw.strip().upper().replace(".", "_").replace("-", "_")
    if normalized in BranchId.__members__:
        return BranchId[normalized]
    try:
        return BranchId(int(raw, 16))
    except ValueError as exc:
        names = ", ".join(name.lower() for name in BranchId.__members__)
        raise argparse.ArgumentTypeError(
            f"unknown branch '{raw}', expected one of {names} or a hex branch id"
        ) from exc


def _add_scan_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--viewing-key",
        default=None,
        help="Unified full viewing key (default: ZCASH_SCAN_VIEWING_KEY or config file)",
    )
    parser.add_argument(
        "--report-errors",
        action="store_true",
        help="Keep going past bad transactions and list them next to the notes",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Zcash shielded note scanner")
    parser.add_argument("--config", default=None, help="Path to a YAML config file")
    parser.add_argument(
        "--network",
        default=None,
        help="mainnet or testnet (default: ZCASH_SCAN_NETWORK, config file, then mainnet)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    decrypt_parser = subparsers.add_parser(
        "decrypt", help="decrypt raw transactions with a unified full viewing key"
    )
    _add_scan_arguments(decrypt_parser)
    decrypt_parser.add_argument(
        "--tx",
        action="append",
        default=[],
        type=_parse_tx_arg,
        metavar="RAW:HEIGHT",
        help="Raw transaction (hex or base64) and its mined height; may be repeated",
    )
    decrypt_parser.add_argument(
        "--txs-file",
        default=None,
        help='JSON file holding [{"raw_tx": ..., "height": ...}, ...]',
    )

    txid_parser = subparsers.add_parser(
        "scan-txid", help="fetch transactions by id from a node and decrypt them"
    )
    _add_scan_arguments(txid_parser)
    txid_parser.add_argument("txids", nargs="+", help="Transaction ids to fetch")
    txid_parser.add_argument(
        "--height",
        type=int,
        default=None,
        help="Height to assume for unmined transactions",
    )

    blocks_parser = subparsers.add_parser(
        "scan-blocks", help="fetch a range of blocks from a node and decrypt their transactions"
    )
    _add_scan_arguments(blocks_parser)
    blocks_parser.add_argument("--start", type=int, required=True, help="First block height")
    blocks_parser.add_argument(
        "--end", type=int, default=None, help="Last block height (default: same as --start)"
    )

    key_parser = subparsers.add_parser(
        "inspect-key", help="show which components a unified full viewing key carries"
    )
    key_parser.add_argument("viewing_key", nargs="?", default=None, help="Viewing key to inspect")

    tx_parser = subparsers.add_parser(
        "inspect-tx", help="parse a raw transaction and summarise its bundles"
    )
    tx_parser.add_argument("raw_tx", help="Raw transaction as hex or base64")
    era = tx_parser.add_mutually_exclusive_group(required=True)
    era.add_argument("--height", type=int, help="Parse under the branch active at this height")
    era.add_argument(
        "--branch",
        type=_parse_branch,
        help="Parse under this branch (e.g. nu5 or c2d6d0b4); only use when the era is known",
    )
    return parser


def _scan_config(args: argparse.Namespace) -> ScanConfig:
    overrides: dict[str, Any] = {}
    if args.network is not None:
        overrides["network"] = args.network
    if getattr(args, "viewing_key", None):
        overrides["viewing_key"] = args.viewing_key
    if getattr(args, "report_errors", False):
        overrides["mode"] = MODE_REPORT
    return load_scan_config(overrides=overrides)


def _run_scan(args: argparse.Namespace, inputs: list[TxInput]) -> None:
    config = _scan_config(args)
    if not config.viewing_key:
        raise CLIError("a viewing key is required (--viewing-key or ZCASH_SCAN_VIEWING_KEY)")
    params = resolve_parameters(config.network)
    ufvk = load_viewing_key(config.viewing_key, config.network)
    result = scan_transactions(params, ufvk, inputs, mode=config.mode)
    if config.mode == MODE_STRICT:
        print(json.dumps([note.to_dict() for note in result.notes], indent=2))
    else:
        print(json.dumps(result.to_dict(), indent=2))


def _rpc_client(args: argparse.Namespace) -> ZcashRPCClient:
    config = _scan_config(args)
    return ZcashRPCClient(load_rpc_config(network=config.network))


def cmd_decrypt(args: argparse.Namespace) -> None:
    inputs = list(args.tx)
    if args.txs_file:
        path = Path(args.txs_file).expanduser()
        try:
            inputs.extend(decode_txs(path.read_text()))
        except OSError as exc:
            raise CLIError(f"cannot read {path}: {exc}") from exc
    if not inputs:
        raise CLIError("no transactions given; use --tx RAW:HEIGHT or --txs-file")
    _run_scan(args, inputs)


def cmd_scan_txid(args: argparse.Namespace) -> None:
    rpc = _rpc_client(args)
    inputs = []
    for txid in args.txids:
        raw, height = rpc.fetch_raw_transaction(txid)
        if height is None:
            if args.height is None:
                raise CLIError(f"transaction {txid} is not mined; pass --height to scan it")
            height = args.height
        inputs.append(TxInput(raw_tx=raw.hex(), height=height))
    _run_scan(args, inputs)


def _check_node(rpc: ZcashRPCClient, network: Network, end: int) -> None:
    info = rpc.getblockchaininfo()
    chain = info.get("chain")
    expected = _NODE_CHAINS[network]
    if chain is not None and chain != expected:
        raise CLIError(f"node reports chain '{chain}', expected '{expected}' for {network.value}")
    tip = info.get("blocks")
    if tip is not None and end > tip:
        raise CLIError(f"height {end} is above the node tip {tip}")


def cmd_scan_blocks(args: argparse.Namespace) -> None:
    end = args.start if args.end is None else args.end
    if args.start < 0 or end < args.start:
        raise CLIError(f"invalid height range {args.start}..{end}")
    rpc = _rpc_client(args)
    _check_node(rpc, _scan_config(args).network, end)
    inputs = []
    for height in range(args.start, end + 1):
        for txid, raw in rpc.iter_block_transactions(height):
            logger.debug("Fetched %s at height %d", txid, height)
            inputs.append(TxInput(raw_tx=raw.hex(), height=height))
    logger.info("Fetched %d transactions from heights %d-%d", len(inputs), args.start, end)
    _run_scan(args, inputs)


def cmd_inspect_key(args: argparse.Namespace) -> None:
    config = _scan_config(args)
    encoded = args.viewing_key or config.viewing_key
    if not encoded:
        raise CLIError("no viewing key given")
    ufvk = parse_viewing_key(encoded, config.network)
    print(f"network:    {config.network.value}")
    print(f"components: {', '.join(ufvk.components())}")


def cmd_inspect_tx(args: argparse.Namespace) -> None:
    data = decode_raw_tx(args.raw_tx)
    if args.branch is not None:
        selector = FixedBranch(args.branch)
    else:
        selector = AtHeight(resolve_parameters(_scan_config(args).network), args.height)
    tx = parse_transaction(data, selector)
    sapling = tx.sapling_bundle
    orchard = tx.orchard_bundle
    summary = {
        "txid": str(tx.txid),
        "version": tx.version,
        "branch": tx.branch_id.name.lower(),
        "transparent_inputs": len(tx.transparent_inputs),
        "transparent_outputs": len(tx.transparent_outputs),
        "joinsplits": tx.joinsplit_count,
        "sapling_spends": len(sapling.spends) if sapling else 0,
        "sapling_outputs": len(sapling.outputs) if sapling else 0,
        "orchard_actions": len(orchard.actions) if orchard else 0,
    }
    print(json.dumps(summary, indent=2))


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.config:
        set_default_config_path(args.config)
    try:
        if args.command == "decrypt":
            cmd_decrypt(args)
        elif args.command == "scan-txid":
            cmd_scan_txid(args)
        elif args.command == "scan-blocks":
            cmd_scan_blocks(args)
        elif args.command == "inspect-key":
            cmd_inspect_key(args)
        elif args.command == "inspect-tx":
            cmd_inspect_tx(args)
        else:  # pragma: no cover - argparse enforces choices
            raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except RPCError as exc:
        hint = format_rpc_hint(exc)
        suffix = f"\nhint: {hint}" if hint else ""
        parser.exit(1, f"error: {exc}{suffix}\n")
    except (CLIError, ConfigurationError, RPCTransportError, ZcashScanError) as exc:
        parser.exit(1, f"error: {exc}\n")
    finally:
        set_default_config_path(None)


if __name__ == "__main__":
    main(sys.argv[1:])
