"""Entry point for Hotfolder Watcher.

Usage:
    python -m hotfolder [--folder PATH]    Monitor the hotfolder in the foreground
    python -m hotfolder --service ...      Install/manage the background service
                                           (Windows service, macOS launchd, or Linux)
"""

import argparse
import sys
from pathlib import Path


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="hotfolder",
        description="Watch a hotfolder, process new files one at a time and archive them",
    )
    parser.add_argument(
        "--folder", "-f",
        help="Hotfolder to watch; remembered for later runs",
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="Path to config.json (default: platform config directory)",
    )
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override the configured log level",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the monitor or delegate to the service CLI."""
    args_in = sys.argv[1:] if argv is None else argv
    if args_in and args_in[0] in ("--service", "service"):
        from hotfolder.service import main as service_main

        service_main(args_in[1:])
        return 0

    from hotfolder.app import App, setup_logging
    from hotfolder.config import Config

    args = parse_args(args_in)
    cfg = Config(args.config)
    setup_logging(cfg, level=args.log_level)
    return App(cfg).run(granted=args.folder)


if __name__ == "__main__":
    raise SystemExit(main())
