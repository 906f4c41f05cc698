# P2P broadcast package
#
# Provides:
#  - Relay: parallel connect + timing-policy broadcast to a fixed peer set
#  - WebSocket peer link with NaCl-encrypted frames (optional SOCKS proxy)
#  - Minimal receiving peer node (FastAPI) that answers with reject frames
#
# See txrelay/p2p/relay.py for the orchestrator.
