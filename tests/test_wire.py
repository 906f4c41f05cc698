import pytest
from nacl.exceptions import CryptoError
from nacl.public import PrivateKey

from txrelay.p2p import wire


def _pair():
    a, b = PrivateKey.generate(), PrivateKey.generate()
    return wire.Cipher(a, b.public_key), wire.Cipher(b, a.public_key)


def test_sealed_frame_opens_on_the_other_side():
    client, server = _pair()
    frame = wire.seal(client, wire.reject_message("ab", "fee too low"))
    assert frame["type"] == "cipher" and frame["v"] == wire.FRAME_VERSION
    decoded = wire.decode_frame(wire.encode_frame(frame))
    assert wire.unseal(server, decoded) == {"msg": "reject", "tx_id": "ab", "reason": "fee too low"}


def test_unseal_ignores_other_frames_and_refuses_forgeries():
    client, _ = _pair()
    _, stranger = _pair()
    assert wire.unseal(client, {"type": "hello"}) is None
    with pytest.raises(CryptoError):
        wire.unseal(stranger, wire.seal(client, {"msg": "tx"}))
    with pytest.raises(ValueError):
        wire.unseal(client, {"type": "cipher", "blob": "!!"})


def test_read_hello_validates():
    sk = PrivateKey.generate()
    assert wire.read_hello(wire.hello_frame(sk)) == sk.public_key
    with pytest.raises(ValueError):
        wire.read_hello({"type": "hello", "pubkey": "AAAA"})
    with pytest.raises(ValueError):
        wire.read_hello(["hello"])


def test_tx_id_is_sha256_hex():
    assert wire.tx_id(b"") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
    assert wire.tx_message(b"\x00")["tx_id"] == wire.tx_id(b"\x00")
