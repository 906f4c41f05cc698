import base64
import binascii
import os
import traceback
from typing import Dict, Set

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from nacl.exceptions import CryptoError
from nacl.public import PrivateKey
from starlette.websockets import WebSocketState

from . import wire

# ------------------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------------------
HOST = os.getenv("P2P_HOST", "0.0.0.0")
PORT = int(os.getenv("P2P_PORT", "9000"))
MAX_TX_BYTES = int(os.getenv("MAX_TX_BYTES", "100000"))

# ------------------------------------------------------------------------------
# State
# ------------------------------------------------------------------------------

# peer_id -> socket of every connected relay client
PEERS: Dict[str, WebSocket] = {}
# tx ids already admitted; used only to answer duplicate sends
SEEN_TX: Set[str] = set()


def reset_state():
    """Reset in-memory node state (used by tests)."""
    PEERS.clear()
    SEEN_TX.clear()


# ------------------------------------------------------------------------------
# Admission
# ------------------------------------------------------------------------------
def admit_tx(inner: dict) -> tuple[str, str | None]:
    """
    Check an incoming ``tx`` message. Returns ``(tx_id, reject_reason)``;
    a ``None`` reason means the transaction was admitted and recorded.
    """
    claimed = str(inner.get("tx_id", ""))
    try:
        raw = base64.b64decode(inner["tx"], validate=True)
    except (KeyError, TypeError, binascii.Error):
        return claimed, "malformed transaction"
    tid = wire.tx_id(raw)
    if claimed and claimed != tid:
        return claimed, "malformed transaction"
    if not raw:
        return tid, "empty transaction"
    if len(raw) > MAX_TX_BYTES:
        return tid, "transaction too large"
    if tid in SEEN_TX:
        return tid, "already have transaction"
    SEEN_TX.add(tid)
    return tid, None


app = FastAPI(title="txrelay test peer", version="0.1.0")


# ------------------------------------------------------------------------------
# WebSocket endpoint: /p2p
# ------------------------------------------------------------------------------
@app.websocket("/p2p")
async def p2p_socket(ws: WebSocket):
    await ws.accept()
    # 1) handshake: client sends {"type":"hello","pubkey": b64}
    try:
        remote_pk = wire.read_hello(wire.decode_frame(await ws.receive_text()))
    except ValueError:
        await ws.close(code=4000)
        return

    sk = PrivateKey.generate()
    await ws.send_text(wire.encode_frame(wire.hello_frame(sk)))

    cipher = wire.Cipher(sk, remote_pk)
    peer_id = wire.peer_fingerprint(remote_pk)
    PEERS[peer_id] = ws

    try:
        while True:
            data = await ws.receive_text()
            try:
                inner = wire.unseal(cipher, wire.decode_frame(data))
            except (CryptoError, ValueError):
                # Drop malformed/unauthenticated frames
                continue
            if not inner or inner.get("msg") != "tx":
                continue
            tid, reason = admit_tx(inner)
            if reason is not None:
                print(f"[p2p] Rejecting {tid[:16]} from {peer_id}: {reason}")
                frame = wire.seal(cipher, wire.reject_message(tid, reason))
                await ws.send_text(wire.encode_frame(frame))
    except WebSocketDisconnect:
        pass
    except Exception:
        traceback.print_exc()
    finally:
        PEERS.pop(peer_id, None)
        if ws.application_state != WebSocketState.DISCONNECTED:
            try:
                await ws.close()
            except Exception:
                pass


# ------------------------------------------------------------------------------
# Control endpoints
# ------------------------------------------------------------------------------
@app.get("/p2p/status")
async def p2p_status():
    return JSONResponse(
        {
            "peers": len(PEERS),
            "seen_tx": len(SEEN_TX),
            "max_tx_bytes": MAX_TX_BYTES,
        }
    )


def main():
    import uvicorn

    uvicorn.run(app, host=HOST, port=PORT, log_level="info")


if __name__ == "__main__":
    main()
