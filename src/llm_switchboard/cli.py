"""CLI entry point for llm-switchboard."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
import threading

from .config import SwitchboardConfig
from .errors import ConfigurationError
from .server import create_server


def main():
    parser = argparse.ArgumentParser(
        description="LLM Switchboard: cost- and latency-aware completion routing"
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to configuration YAML file (default: read the environment)",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Override listen host",
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Override listen port",
    )
    args = parser.parse_args()

    try:
        if args.config:
            config = SwitchboardConfig.from_yaml(args.config)
        else:
            config = SwitchboardConfig.from_env()
    except FileNotFoundError:
        print(f"Config file not found: {args.config}", file=sys.stderr)
        sys.exit(1)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port

    try:
        server, engine, loop = create_server(config)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    def shutdown(signum, frame):
        print("\nShutting down...")
        # shutdown() blocks until serve_forever returns, so call it off-thread
        threading.Thread(target=server.shutdown, daemon=True).start()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        print(f"LLM Switchboard listening on {config.host}:{config.port}")
        for status in engine.list_backends():
            state = "available" if status.available else "not configured"
            print(f"Backend {status.profile.name}: {state}")
        print("---")
        server.serve_forever()
    finally:
        asyncio.run_coroutine_threadsafe(engine.close(), loop).result(timeout=10)
        loop.call_soon_threadsafe(loop.stop)


if __name__ == "__main__":
    main()
