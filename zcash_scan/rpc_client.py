"""JSON-RPC client for zcashd and zebrad nodes.

The scanner itself never talks to a node; this client only backs the CLI
commands that fetch transactions by id or by block height. It forwards
requests and surfaces errors, nothing more.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Iterator, Optional

import requests
from requests import RequestException, Response

from .config import RPCConfig

logger = logging.getLogger(__name__)


class RPCError(RuntimeError):
    """Raised when the node responds with an RPC error."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message


class RPCTransportError(RuntimeError):
    """Raised when the RPC endpoint is unreachable or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def format_rpc_hint(error: RPCError | None) -> str | None:
    """Return a short remediation hint for common node errors."""

    if error is None:
        return None
    message = error.message.lower()
    if error.code == -5 and "txindex" in message:
        return "zcashd only serves arbitrary transactions with -txindex=1; restart the node with it enabled."
    if error.code == -5:
        return "The node does not know this transaction or block; check the id and the selected network."
    if error.code == -8 and "out of range" in message:
        return "The requested height is above the node's current tip."
    return None


class ZcashRPCClient:
    """Thin JSON-RPC client for zcashd and zebrad.

    Each helper maps to one node RPC and returns the parsed ``result``.
    """

    def __init__(self, config: RPCConfig) -> None:
        self.config = config
        self._session = requests.Session()
        self._url = config.base_url

    def call(self, method: str, params: Optional[list[Any]] = None) -> Any:
        """Perform a JSON-RPC request."""

        payload = {
            "jsonrpc": "1.0",
            "id": str(uuid.uuid4()),
            "method": method,
            "params": params or [],
        }
        logger.debug("RPC call %s params=%s", method, params)
        try:
            response = self._session.post(
                self._url,
                data=json.dumps(payload),
                headers={"content-type": "application/json"},
                auth=self.config.auth,
                timeout=30,
            )
        except RequestException as exc:
            logger.error(
                "RPC connection failed: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise RPCTransportError(
                "RPC connection failed. Ensure your node is reachable and ZCASH_RPC_* variables "
                "(or ~/.zcash-scan.yaml) point to the right host and port."
            ) from exc

        error = self._error_body(response)
        if error is not None:
            raise RPCError(error.get("code", -1), error.get("message", "unknown"))
        try:
            self._raise_for_status(response)
        except requests.HTTPError as exc:
            raise RPCTransportError(
                "RPC server returned an HTTP error; check the URL, authentication and ZCASH_RPC_* settings.",
                status_code=response.status_code,
            ) from exc
        try:
            result = response.json()
        except ValueError as exc:
            logger.debug("RPC JSON parse error: %s", response.text, exc_info=True)
            raise RPCTransportError("RPC server returned malformed JSON") from exc
        if result.get("error"):
            error = result["error"]
            raise RPCError(error.get("code", -1), error.get("message", "unknown"))
        return result.get("result")

    @staticmethod
    def _error_body(response: Response) -> dict[str, Any] | None:
        # zcashd reports JSON-RPC errors with HTTP 500 and a JSON body.
        if response.ok:
            return None
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            return body["error"]
        return None

    def _raise_for_status(self, response: Response) -> None:
        if not response.ok:
            logger.error("RPC HTTP error %s from %s", response.status_code, response.url)
            logger.error("RPC error body: %s", response.text)
            if response.status_code == 401:
                raise RPCTransportError(
                    "Unauthorized (401). Ensure ZCASH_RPC_USER/ZCASH_RPC_PASSWORD (or ~/.zcash-scan.yaml) are valid.",
                    status_code=response.status_code,
                )
        response.raise_for_status()

    # Convenience wrappers -------------------------------------------------

    def getblockchaininfo(self) -> Dict[str, Any]:
        return self.call("getblockchaininfo")

    def getblock(self, hash_or_height: str, verbosity: int = 1) -> Dict[str, Any]:
        return self.call("getblock", [hash_or_height, verbosity])

    def getrawtransaction(self, txid: str, verbose: bool = False) -> Any:
        return self.call("getrawtransaction", [txid, int(verbose)])

    def fetch_raw_transaction(self, txid: str) -> tuple[bytes, int | None]:
        """Return the raw bytes of ``txid`` and its mined height (``None`` if unmined)."""

        info = self.getrawtransaction(txid, verbose=True)
        raw = _decode_hex(info, txid, "getrawtransaction")
        height = info.get("height")
        if height is None or height < 0:
            return raw, None
        return raw, int(height)

    def iter_block_transactions(self, height: int) -> Iterator[tuple[str, bytes]]:
        """Yield ``(txid, raw bytes)`` for every transaction in the block at ``height``.

        Transactions come from one ``getblock`` call at verbosity 2, which
        carries their hex on zebrad and recent zcashd. Only entries without
        hex fall back to ``getrawtransaction``, which zcashd serves for
        arbitrary mined transactions only with ``-txindex``.
        """

        block = self.getblock(str(height), verbosity=2)
        for entry in block.get("tx", []):
            if isinstance(entry, str):
                txid = entry
            else:
                txid = entry.get("txid")
                if entry.get("hex"):
                    yield txid, _decode_hex(entry, txid, "getblock")
                    continue
            logger.debug("getblock returned no hex for %s; fetching it", txid)
            raw, _ = self.fetch_raw_transaction(txid)
            yield txid, raw


def _decode_hex(info: Any, txid: str, method: str) -> bytes:
    try:
        return bytes.fromhex(info["hex"])
    except (KeyError, TypeError, ValueError) as exc:
        raise RPCTransportError(f"{method} returned no usable hex for {txid}") from exc
