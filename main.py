"""
Main entry point for the APOD cache command-line tool.

This module sets up logging, loads the configuration, builds the repository
and runs a single APOD operation: fetch an entry, resolve or export its
image, or list cached entries with their view counts.
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from apod.api.nasa_api_manager import ApodAPIException
from apod.cache.media_store import ApodStorageException
from apod.managers.apod_manager import ApodManager
from apod.managers.apod_repository import ApodRepository, ApodRepositoryFactory
from apod.managers.config_manager import ConfigManager, ConfigurationError
from apod.utils.helpers import parse_apod_date
from version import __app_name__, __description__, get_full_version_info, get_version_string

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Setup logging with file and console output."""
    if sys.platform == "darwin":  # macOS
        log_dir = Path.home() / "Library" / "Logs" / __app_name__
    elif sys.platform == "win32":  # Windows
        log_dir = Path(os.environ.get("APPDATA", Path.home())) / __app_name__ / "logs"
    else:  # Linux and others
        log_dir = Path.home() / ".local" / "share" / __app_name__ / "logs"

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(str(log_dir / "apod_cache.log")))
    except OSError as e:
        print(f"Warning: file logging disabled: {e}", file=sys.stderr)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )

    # Set specific log levels for different packages
    package_level = logging.DEBUG if verbose else logging.INFO
    logging.getLogger("apod.api").setLevel(package_level)
    logging.getLogger("apod.cache").setLevel(package_level)
    logging.getLogger("apod.managers").setLevel(package_level)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="apod-cache",
        description=__description__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--date",
        type=parse_apod_date,
        help="APOD date (YYYY-MM-DD). Defaults to today.",
    )
    parser.add_argument("--config", type=str, help="Path to the configuration file")
    parser.add_argument(
        "--image", action="store_true", help="Resolve the entry's image to a local file"
    )
    parser.add_argument(
        "--export", action="store_true", help="Export the entry's image to the media directory"
    )
    parser.add_argument(
        "--list", action="store_true", help="List cached entries with their view counts"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument("--version", action="version", version=get_full_version_info().strip())
    return parser.parse_args(argv)


async def run(args: argparse.Namespace, repository: ApodRepository) -> int:
    """Run the requested operation against a repository."""
    try:
        if args.list:
            for summary in await repository.get_all():
                last = summary.last_accessed.strftime("%Y-%m-%d %H:%M") if summary.last_accessed else "-"
                print(f"{summary.apod.date_string}  {summary.access_count:4d}  {last}  {summary.apod.title}")
            return 0

        record = await repository.get(args.date or ApodManager.today())
        print(f"{record.date_string}: {record.title} [{record.media_type.value}]")
        print(record.url)

        if args.image:
            print(await repository.get_image(record))
        if args.export:
            entry = await repository.download_image(record)
            print(f"Exported to {entry.uri}")
        return 0

    except ApodAPIException as e:
        logger.error(f"APOD request failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except (ApodStorageException, ValueError) as e:
        logger.error(f"APOD export failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 3
    finally:
        await repository.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Application entry point."""
    args = parse_args(argv)
    setup_logging(args.verbose)
    logger.info(f"Starting {get_version_string()}")

    try:
        config = ConfigManager(args.config).load_config()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    repository = ApodRepositoryFactory.create_repository(config)
    return asyncio.run(run(args, repository))


if __name__ == "__main__":
    sys.exit(main())
