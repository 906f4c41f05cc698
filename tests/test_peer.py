import pytest

from txrelay.p2p.peer import DEFAULT_PORT, PeerIdentity, parse_peer_list


def test_parse_host_and_port():
    peer = PeerIdentity.parse("10.0.0.5:8333")
    assert peer == PeerIdentity("10.0.0.5", 8333)
    assert peer.format() == "10.0.0.5:8333"
    assert peer.url == "ws://10.0.0.5:8333"


def test_parse_uses_default_port():
    assert PeerIdentity.parse("node.example").port == DEFAULT_PORT
    assert PeerIdentity.parse("node.example", default_port=18444).port == 18444


def test_ipv6_addresses():
    peer = PeerIdentity.parse("[2001:db8::1]:9001")
    assert peer.host == "2001:db8::1"
    assert peer.port == 9001
    assert str(peer) == "[2001:db8::1]:9001"
    assert PeerIdentity.parse("::1") == PeerIdentity("::1", DEFAULT_PORT)


@pytest.mark.parametrize("text", [":9000", "host:abc", "host:0", "host:70000", "[::1", "[::1]x", ""])
def test_invalid_addresses(text):
    with pytest.raises(ValueError):
        PeerIdentity.parse(text)


def test_peer_identity_is_immutable():
    peer = PeerIdentity("a", 1)
    with pytest.raises(AttributeError):
        peer.port = 2


def test_parse_peer_list_keeps_order_and_duplicates():
    peers = parse_peer_list("b:2, a:1,,b:2 ")
    assert [p.format() for p in peers] == ["b:2", "a:1", "b:2"]
