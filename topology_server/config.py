import os

HOST = os.getenv("TOPOLOGY_HOST", "0.0.0.0")
PORT = int(os.getenv("TOPOLOGY_PORT", "6060"))

# websocket writer: how often the per-connection engine re-reconciles
WS_PUSH_INTERVAL = float(os.getenv("TOPOLOGY_WS_INTERVAL", "1.0"))
