"""
Script to run the card price sync from the command line
"""

import argparse
import asyncio
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import engine
from core.exceptions import ETLException
from core.logging import setup_logging
from ingestion.runner import STAGES, SyncRunner


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Download card and price feeds and load them into the card store."
    )
    parser.add_argument(
        "--stage",
        choices=("all",) + STAGES,
        default="all",
        help="Run a single stage against the files already in the work directory"
    )
    parser.add_argument("--skip-download", action="store_true", help="Reuse feeds already in the work directory")
    parser.add_argument("--skip-images", action="store_true", help="Skip the image enrichment pass")
    parser.add_argument("--keep-files", action="store_true", help="Leave intermediate files in place")
    parser.add_argument("--log-file", default=None, help="Override LOG_FILE")
    return parser


async def run_sync(args: argparse.Namespace) -> int:
    """Run the sync and return the process exit code"""
    logger = setup_logging(args.log_file)

    try:
        result = await SyncRunner(logger=logger).run(
            stage=args.stage,
            skip_download=args.skip_download,
            skip_images=args.skip_images,
            keep_files=args.keep_files
        )
    except ETLException as e:
        logger.error(f"Sync aborted: {e.message}", extra={"error_context": e.to_dict()})
        return 1
    except Exception:
        logger.exception("Sync aborted by unexpected error")
        return 1
    finally:
        await engine.dispose()

    logger.info(f"Sync finished with status {result['status']}")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(run_sync(args))


if __name__ == "__main__":
    sys.exit(main())
