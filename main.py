"""
Shop-floor job tracker — node entry point.

Usage:
    python main.py                      # serve (master) / check master (client)
    python main.py --config path/to/config.yaml
    python main.py ping                 # probe the master's /health
    python main.py jobs                 # list jobs through this node's backend
    python main.py clients              # peers seen by the master (master only)
"""

import argparse
import os
import signal
import sys

from shopsync.api import ShopApi
from shopsync.backends import LocalJobBackend, build_backend
from shopsync.events import EventBus
from shopsync.lan_server import create_app, run_server
from shopsync.settings import SettingsStore
from shopsync.utils import load_config, setup_logging


def _print_jobs(result: dict) -> int:
    if not result["success"]:
        print(f"Error: {result['error']}")
        return 1
    jobs = result["jobs"]
    for job in jobs:
        flag = " [archived]" if job.get("archived") else ""
        print(f"  {job.get('jobNumber', '?'):<12} {job.get('status') or '-':<14} {job.get('description', '')}{flag}")
    print(f"{len(jobs)} job(s)")
    return 0


def main() -> int:
    # ── Parse arguments ──────────────────────────────────────────────
    parser = argparse.ArgumentParser(description="Shop-floor job tracker node (LAN master / client)")
    parser.add_argument("command", nargs="?", default="serve", choices=["serve", "ping", "jobs", "clients"],
                        help="What to do (default: serve)")
    parser.add_argument("--config", "-c", default=None, help="Path to config.yaml (default: ./config.yaml)")
    args = parser.parse_args()

    # Handle Ctrl+C at the top level too
    signal.signal(signal.SIGINT, lambda *_: (print("\nCtrl+C pressed. Exiting..."), os._exit(1)))

    # ── Setup ────────────────────────────────────────────────────────
    logger = setup_logging()
    config = load_config(args.config)

    logger.info("Configuration loaded:")
    logger.info(f"  Role:             {config['role']}")
    if config["role"] == "client":
        logger.info(f"  Master:           {config['master_address'] or '(from settings)'}")
    logger.info(f"  LAN port:         {config['lan_port']}")
    logger.info(f"  Data dir:         {config['data_dir']}")

    os.makedirs(config["data_dir"], exist_ok=True)
    settings = SettingsStore.from_config(config)
    bus = EventBus()
    try:
        backend = build_backend(config, settings, bus)
    except ValueError as e:
        logger.error(str(e))
        return 2
    api = ShopApi(backend, settings, bus)

    if args.command == "ping":
        result = api.ping()
        print(result["health"] if result["success"] else f"Error: {result['error']}")
        return 0 if result["success"] else 1

    if args.command == "jobs":
        return _print_jobs(api.get_jobs())

    if args.command == "clients":
        result = api.get_client_info()
        if not result["success"]:
            print(f"Error: {result['error']}")
            return 1
        for peer in result["clients"]:
            print(f"  {peer['ip']:<40} lastSeen={peer['lastSeen']}")
        print(f"{result['count']} client(s)")
        return 0

    # ── serve ────────────────────────────────────────────────────────
    if not isinstance(backend, LocalJobBackend):
        # Client nodes have nothing to serve; report whether the master answers
        result = api.ping()
        if result["success"]:
            logger.info(f"Master reachable — version {result['health'].get('version')}")
            return 0
        logger.error(f"Master unreachable: {result['error']}")
        return 1

    app = create_app(backend.store, settings, backend.tracker, bus, config)
    run_server(app, config, settings)
    return 0


if __name__ == "__main__":
    sys.exit(main())
