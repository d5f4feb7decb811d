"""
Command line entry point for the analyzer.

    python -m trafficjam.run_worker analyze CV-1 [--probe]
    python -m trafficjam.run_worker sync
    python -m trafficjam.run_worker run
"""

import argparse
import json

from trafficjam.analyzer import build_analyzer
from trafficjam.config_loader import load_cameras
from trafficjam.logging_setup import setup_logging
from trafficjam.scheduler import build_scheduler
from trafficjam.storage import SourceRepository


def _print_json(payload):
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def cmd_analyze(args):
    analyzer = build_analyzer(use_prober=args.probe)
    outcome = analyzer.analyze(args.identifier)
    _print_json(outcome.model_dump(mode="json"))


def cmd_sync(args):
    repository = SourceRepository()
    repository.init_db()
    cameras = load_cameras(args.config or None)
    added = repository.sync_sources(cameras)
    print(f"Synced {len(cameras)} cameras ({added} new).")


def cmd_run(args):
    repository = SourceRepository()
    repository.init_db()
    repository.sync_sources(load_cameras(args.config or None))
    scheduler = build_scheduler(repository)
    scheduler.start()
    try:
        # Short joins keep the main thread responsive to Ctrl+C.
        while scheduler.is_running:
            scheduler.join(1.0)
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        scheduler.stop()


def build_parser():
    parser = argparse.ArgumentParser(description="Analyze traffic camera snapshots with a vision model.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Analyze one camera image and print the outcome.")
    analyze.add_argument("identifier", help="Camera identifier, e.g. CV-1.")
    analyze.add_argument("--probe", action="store_true", help="Query fields one by one if parsing fails.")
    analyze.set_defaults(func=cmd_analyze)

    sync = subparsers.add_parser("sync", help="Load camera sources from the YAML config into the database.")
    sync.add_argument("--config", default="", help="Optional camera config path.")
    sync.set_defaults(func=cmd_sync)

    run = subparsers.add_parser("run", help="Run the bootstrap pass and the polling loop in the foreground.")
    run.add_argument("--config", default="", help="Optional camera config path.")
    run.set_defaults(func=cmd_run)

    return parser


def main(argv=None):
    setup_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
