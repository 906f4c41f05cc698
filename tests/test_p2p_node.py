import base64

import pytest
from fastapi.testclient import TestClient
from nacl.public import PrivateKey
from starlette.websockets import WebSocketDisconnect

from txrelay.p2p import node, wire
from txrelay.p2p.node import admit_tx, app, reset_state


@pytest.fixture(autouse=True)
def clean_state():
    reset_state()
    yield
    reset_state()


def _handshake(ws):
    sk = PrivateKey.generate()
    ws.send_text(wire.encode_frame(wire.hello_frame(sk)))
    server_pk = wire.read_hello(wire.decode_frame(ws.receive_text()))
    return wire.Cipher(sk, server_pk)


def _send_tx(ws, cipher, tx):
    ws.send_text(wire.encode_frame(wire.seal(cipher, wire.tx_message(tx))))


def _recv(ws, cipher):
    return wire.unseal(cipher, wire.decode_frame(ws.receive_text()))


def test_duplicate_transaction_is_rejected():
    tx = bytes.fromhex("0200000001aa")
    with TestClient(app) as client:
        with client.websocket_connect("/p2p") as ws:
            cipher = _handshake(ws)
            _send_tx(ws, cipher, tx)
            _send_tx(ws, cipher, tx)
            reject = _recv(ws, cipher)
            assert reject == {
                "msg": "reject",
                "tx_id": wire.tx_id(tx),
                "reason": "already have transaction",
            }

            status = client.get("/p2p/status")
            assert status.status_code == 200
            payload = status.json()
            assert payload["seen_tx"] == 1
            assert payload["peers"] == 1


def test_oversized_transaction_is_rejected(monkeypatch):
    monkeypatch.setattr(node, "MAX_TX_BYTES", 4)
    with TestClient(app) as client:
        with client.websocket_connect("/p2p") as ws:
            cipher = _handshake(ws)
            _send_tx(ws, cipher, b"\x00" * 5)
            assert _recv(ws, cipher)["reason"] == "transaction too large"


def test_bad_hello_closes_socket():
    with TestClient(app) as client:
        with client.websocket_connect("/p2p") as ws:
            ws.send_text(wire.encode_frame({"type": "hi"}))
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_text()
            assert exc.value.code == 4000


def test_admission_rules():
    ok = wire.tx_message(b"\x01\x02")
    assert admit_tx(ok) == (wire.tx_id(b"\x01\x02"), None)
    assert admit_tx(ok)[1] == "already have transaction"
    assert admit_tx({"msg": "tx", "tx": "%%%"})[1] == "malformed transaction"
    assert admit_tx({"msg": "tx"})[1] == "malformed transaction"
    assert admit_tx(wire.tx_message(b""))[1] == "empty transaction"
    forged = dict(wire.tx_message(b"\x03"), tx_id="ab" * 32)
    assert admit_tx(forged) == ("ab" * 32, "malformed transaction")
    assert base64.b64decode(ok["tx"]) == b"\x01\x02"
