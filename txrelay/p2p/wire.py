"""Frame codec shared by the peer link and the receiving node.

Every channel starts with a plaintext hello exchange carrying each side's
ephemeral Curve25519 public key. After that all traffic is wrapped in cipher
frames: ``{"type": "cipher", "v": 1, "blob": <base64 NaCl box>}`` whose
plaintext is an orjson-encoded message dict.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
from typing import Any

import orjson
from nacl.public import Box, PrivateKey, PublicKey
from nacl.utils import random as nacl_random

FRAME_VERSION = 1


class Cipher:
    def __init__(self, sk: PrivateKey, pk: PublicKey):
        self.box = Box(sk, pk)

    def encrypt(self, payload: bytes) -> bytes:
        nonce = nacl_random(Box.NONCE_SIZE)
        return self.box.encrypt(payload, nonce)

    def decrypt(self, blob: bytes) -> bytes:
        return self.box.decrypt(blob)


def encode_frame(obj: dict) -> str:
    return orjson.dumps(obj).decode("utf-8")


def decode_frame(data: str | bytes) -> Any:
    return orjson.loads(data)


def hello_frame(sk: PrivateKey) -> dict:
    pk_b64 = base64.b64encode(bytes(sk.public_key)).decode("ascii")
    return {"type": "hello", "pubkey": pk_b64}


def read_hello(msg: Any) -> PublicKey:
    """Return the remote public key from a hello frame."""

    if not isinstance(msg, dict) or msg.get("type") != "hello" or "pubkey" not in msg:
        raise ValueError("Expected hello frame")
    try:
        return PublicKey(base64.b64decode(msg["pubkey"], validate=True))
    except (binascii.Error, TypeError, ValueError) as exc:
        raise ValueError("Invalid hello public key") from exc


def seal(cipher: Cipher, inner: dict) -> dict:
    blob = cipher.encrypt(orjson.dumps(inner))
    b64 = base64.b64encode(blob).decode("ascii")
    return {"type": "cipher", "v": FRAME_VERSION, "blob": b64}


def unseal(cipher: Cipher, msg: Any) -> dict | None:
    """Decrypt a cipher frame.

    Returns ``None`` for frames of any other type. Raises
    ``nacl.exceptions.CryptoError`` for unauthenticated blobs and
    ``ValueError`` for undecodable ones.
    """

    if not isinstance(msg, dict) or msg.get("type") != "cipher":
        return None
    try:
        blob = base64.b64decode(msg["blob"], validate=True)
    except (KeyError, binascii.Error, TypeError) as exc:
        raise ValueError("Malformed cipher frame") from exc
    inner = orjson.loads(cipher.decrypt(blob))
    if not isinstance(inner, dict):
        raise ValueError("Cipher payload is not an object")
    return inner


def tx_id(tx: bytes) -> str:
    return hashlib.sha256(bytes(tx)).hexdigest()


def peer_fingerprint(pk: PublicKey) -> str:
    return base64.b16encode(hashlib.sha256(bytes(pk)).digest()[:8]).decode("ascii")


def tx_message(tx: bytes) -> dict:
    return {
        "msg": "tx",
        "tx": base64.b64encode(bytes(tx)).decode("ascii"),
        "tx_id": tx_id(tx),
    }


def reject_message(tid: str, reason: str) -> dict:
    return {"msg": "reject", "tx_id": tid, "reason": reason}


__all__ = [
    "Cipher",
    "FRAME_VERSION",
    "decode_frame",
    "encode_frame",
    "hello_frame",
    "peer_fingerprint",
    "read_hello",
    "reject_message",
    "seal",
    "tx_id",
    "tx_message",
    "unseal",
]
