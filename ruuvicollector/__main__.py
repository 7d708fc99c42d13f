"""Entry point for ruuvicollector: python -m ruuvicollector."""

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from .app import CollectorApp
from .config import apply_env_overrides, load_config
from .errors import CollectorError, ConfigurationError


def setup_logging(verbose: bool) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from libraries
    logging.getLogger("bleak").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="ruuvicollector",
        description="Collect measurements from RuuviTag sensors",
    )

    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=Path(os.environ.get("RUUVITAG_CONFIG_FILE", "config.yaml")),
        help="Path to configuration file (default: $RUUVITAG_CONFIG_FILE or config.yaml)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    parser.add_argument(
        "-d", "--daemon",
        action="store_true",
        default=None,
        help="Run as a background service instead of scanning once",
    )

    parser.add_argument(
        "-o", "--console",
        action="store_true",
        default=None,
        help="Print measurements to the console",
    )

    parser.add_argument(
        "-i", "--scan-interval",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Seconds between scans in daemon mode, 0 = scan continuously",
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Give up a one-shot scan after this many seconds",
    )

    parser.add_argument(
        "--device",
        default=None,
        help="BLE adapter to use (default: system adapter)",
    )

    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.verbose)

    logger = logging.getLogger(__name__)

    config_path = args.config.resolve()
    try:
        config = load_config(config_path)
    except FileNotFoundError:
        logger.error("Configuration file not found: %s", config_path)
        logger.error("Copy config.example.yaml to config.yaml and edit it")
        return 1
    except ConfigurationError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    # Environment wins over the file, command line flags win over both
    config = apply_env_overrides(config)
    overrides = {
        "daemon": args.daemon,
        "console": args.console,
        "scan_interval": args.scan_interval,
        "scan_timeout": args.timeout,
        "device": args.device,
    }
    config = replace(config, **{k: v for k, v in overrides.items() if v is not None})

    try:
        asyncio.run(CollectorApp(config).run())
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except ConfigurationError as e:
        logger.error("Invalid configuration: %s", e)
        return 1
    except CollectorError as e:
        logger.error("Error while running application: %s", e)
        return 1
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
