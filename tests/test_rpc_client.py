import json
from typing import Any

import pytest
import requests

from zcash_scan.config import RPCConfig
from zcash_scan.rpc_client import (
    RPCError,
    RPCTransportError,
    ZcashRPCClient,
    format_rpc_hint,
)


def _response(status: int, body: Any) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = json.dumps(body).encode() if not isinstance(body, bytes) else body
    response.url = "http://127.0.0.1:8232"
    return response


class _Session:
    def __init__(self, responses: list[requests.Response]) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def post(self, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append({"url": url, **kwargs})
        return self.responses.pop(0)


def _client(*responses: requests.Response) -> tuple[ZcashRPCClient, _Session]:
    client = ZcashRPCClient(RPCConfig(user="alice", password="pw"))
    session = _Session(list(responses))
    client._session = session
    return client, session


def test_call_sends_json_rpc_payload_and_returns_result() -> None:
    client, session = _client(_response(200, {"result": {"chain": "main", "blocks": 5}, "error": None}))

    assert client.getblockchaininfo() == {"chain": "main", "blocks": 5}
    payload = json.loads(session.calls[0]["data"])
    assert payload["method"] == "getblockchaininfo"
    assert payload["params"] == []
    assert session.calls[0]["auth"] == ("alice", "pw")
    assert session.calls[0]["url"] == "http://127.0.0.1:8232"


def test_error_body_on_http_500_becomes_rpc_error() -> None:
    client, _ = _client(
        _response(500, {"result": None, "error": {"code": -5, "message": "No such mempool transaction"}})
    )

    with pytest.raises(RPCError) as excinfo:
        client.getrawtransaction("00" * 32)
    assert excinfo.value.code == -5
    assert "check the id" in format_rpc_hint(excinfo.value)


def test_unauthorized_is_a_transport_error() -> None:
    client, _ = _client(_response(401, b""))

    with pytest.raises(RPCTransportError) as excinfo:
        client.getblockchaininfo()
    assert excinfo.value.status_code == 401


def test_connection_failure_is_a_transport_error() -> None:
    client = ZcashRPCClient(RPCConfig())

    class _Failing:
        def post(self, url: str, **kwargs: Any) -> requests.Response:
            raise requests.ConnectionError("refused")

    client._session = _Failing()
    with pytest.raises(RPCTransportError, match="connection failed"):
        client.getblockchaininfo()


def test_fetch_raw_transaction_reports_height() -> None:
    client, session = _client(
        _response(200, {"result": {"hex": "0a0b", "height": 123}, "error": None}),
        _response(200, {"result": {"hex": "0c", "height": -1}, "error": None}),
    )

    assert client.fetch_raw_transaction("aa") == (b"\x0a\x0b", 123)
    assert client.fetch_raw_transaction("bb") == (b"\x0c", None)
    assert json.loads(session.calls[0]["data"])["params"] == ["aa", 1]


def test_iter_block_transactions_reads_hex_from_verbose_block() -> None:
    client, session = _client(
        _response(
            200,
            {"result": {"tx": [{"txid": "t1", "hex": "01"}, {"txid": "t2", "hex": "02"}]}, "error": None},
        ),
    )

    assert list(client.iter_block_transactions(7)) == [("t1", b"\x01"), ("t2", b"\x02")]
    assert len(session.calls) == 1
    assert json.loads(session.calls[0]["data"])["params"] == ["7", 2]


def test_iter_block_transactions_falls_back_when_hex_is_missing() -> None:
    client, session = _client(
        _response(200, {"result": {"tx": ["t1", {"txid": "t2"}]}, "error": None}),
        _response(200, {"result": {"hex": "01", "height": 7}, "error": None}),
        _response(200, {"result": {"hex": "02", "height": 7}, "error": None}),
    )

    assert list(client.iter_block_transactions(7)) == [("t1", b"\x01"), ("t2", b"\x02")]
    methods = [json.loads(call["data"])["method"] for call in session.calls]
    assert methods == ["getblock", "getrawtransaction", "getrawtransaction"]


def test_bad_block_hex_is_a_transport_error() -> None:
    client, _ = _client(
        _response(200, {"result": {"tx": [{"txid": "t1", "hex": "zz"}]}, "error": None}),
    )

    with pytest.raises(RPCTransportError, match="getblock returned no usable hex for t1"):
        list(client.iter_block_transactions(7))


def test_hint_for_missing_txindex() -> None:
    error = RPCError(-5, "No such mempool or blockchain transaction. Use -txindex to enable")
    assert "txindex=1" in format_rpc_hint(error)
    assert format_rpc_hint(RPCError(-1, "other")) is None
