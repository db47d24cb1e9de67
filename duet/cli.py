#!/usr/bin/env python3
"""
duet/cli.py - Command line interface for duet

Usage:
    duet serve [--host HOST] [--port PORT] [--heartbeat SECONDS] [--config PATH]
    duet stats --server URL --token TOKEN
"""

import argparse
import logging
import sys
from pathlib import Path

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def cmd_serve(args):
    """Start the signaling server."""
    import uvicorn

    from duet.config import load_config
    from lobby.server import create_app

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    settings = load_config(Path(args.config) if args.config else None)
    if args.host is not None:
        settings.host = args.host
    if args.port is not None:
        settings.port = args.port
    if args.heartbeat is not None:
        settings.heartbeat_interval = args.heartbeat

    if settings.heartbeat_interval <= 0:
        logger.error(f"Heartbeat interval must be positive, got {settings.heartbeat_interval}")
        return 1

    app = create_app(settings)
    logger.info(f"Starting signaling server on ws://{settings.host}:{settings.port}/ws")
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="debug" if args.verbose else "info",
        # Protocol-level pings; a peer that misses one is disconnected
        ws_ping_interval=settings.heartbeat_interval,
        ws_ping_timeout=settings.heartbeat_interval,
    )
    return 0


def cmd_stats(args):
    """Fetch and print counters from a running server."""
    import json
    import urllib.error
    import urllib.request

    server = args.server.rstrip("/")
    req = urllib.request.Request(
        f"{server}/stats",
        headers={"Authorization": f"Bearer {args.token}"},
    )
    try:
        with urllib.request.urlopen(req) as resp:
            data = json.loads(resp.read())
    except urllib.error.HTTPError as e:
        logger.error(f"Server refused stats request: HTTP {e.code}")
        return 1
    except urllib.error.URLError as e:
        logger.error(f"Cannot reach server at {server}: {e}")
        return 1

    history = data.get("conversationHistory", {})
    print()
    print(f"   Visitors (total):      {data.get('totalVisitors', 0)}")
    print(f"   Connected now:         {data.get('currentlyConnected', 0)}")
    print(f"   Waiting in queue:      {data.get('queueLength', 0)}")
    print(f"   Active conversations:  {data.get('activeConversations', 0)}")
    print(f"   Finished conversations: {history.get('total', 0)}")
    for bucket, count in history.get("distribution", {}).items():
        print(f"     {bucket:<8} {count}")
    print()
    return 0


def main():
    parser = argparse.ArgumentParser(
        prog="duet",
        description="Anonymous one-to-one video chat signaling server",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start the signaling server")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: 0.0.0.0)")
    serve_parser.add_argument("--port", "-p", type=int, default=None, help="Server port (default: 8080)")
    serve_parser.add_argument("--heartbeat", type=float, default=None, help="Heartbeat interval in seconds (default: 30)")
    serve_parser.add_argument("--config", "-c", default=None, help="Config file (default: ~/.duet/config.toml)")
    serve_parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    serve_parser.set_defaults(func=cmd_serve)

    # stats command
    stats_parser = subparsers.add_parser("stats", help="Show counters from a running server")
    stats_parser.add_argument("--server", required=True, help="Server URL (e.g. http://localhost:8080)")
    stats_parser.add_argument("--token", required=True, help="Admin token")
    stats_parser.set_defaults(func=cmd_stats)

    args = parser.parse_args()
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
