#!/usr/bin/env python3
import argparse
import os
import sys

# Ensure project root is in path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import uvicorn


def main(argv=None):
    parser = argparse.ArgumentParser(description="Callback topology server and console view")
    sub = parser.add_subparsers(dest="cmd")

    srv = sub.add_parser("serve", help="run the topology API server")
    srv.add_argument("--host", default=os.getenv("TOPOLOGY_HOST", "0.0.0.0"))
    srv.add_argument("--port", type=int, default=int(os.getenv("TOPOLOGY_PORT", "6060")))

    w = sub.add_parser("watch", help="poll a server and print the reconciled graph")
    w.add_argument("--url", default=os.getenv("TOPOLOGY_URL", "http://127.0.0.1:6060"))
    w.add_argument("--interval", type=float, default=None)
    w.add_argument("--show-hidden", action="store_true")

    args = parser.parse_args(argv)

    if args.cmd == "watch":
        from topology import EngineConfig, PositionStore, ReconciliationEngine
        from topology import config
        from topology_client.api_client import APIClient
        from topology_client.console import watch
        from topology_client.poller import TopologyPoller

        engine = ReconciliationEngine(positions=PositionStore.from_env(), config=EngineConfig.from_env())
        engine.include_hidden = args.show_hidden
        poller = TopologyPoller(APIClient(args.url), engine,
                                interval=args.interval or config.POLL_INTERVAL_SECONDS)
        watch(poller)
        return

    host = getattr(args, "host", os.getenv("TOPOLOGY_HOST", "0.0.0.0"))
    port = getattr(args, "port", int(os.getenv("TOPOLOGY_PORT", "6060")))
    print(f"[*] Starting topology server on {host}:{port}")
    uvicorn.run("topology_server.main:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
