"""
neko-deploy — Nekoweb site deployer
CLI utility that zips a local directory and replaces a folder on your Nekoweb
site with it, using the chunked big-upload API.

Usage:
    python -m neko_deploy [directory] [--folder FOLDER] [--no-clear] [--dry-run]

Features:
    - Whole-site deploys of any size through the big-upload session API
    - Chunk layout tuned by MAX_CHUNK_SIZE / MIN_CHUNK_SIZE / MIN_CHUNKS
    - Waits out exhausted rate limits instead of failing
    - Replaces the destination folder, then busts the CDN cache (cookie auth)
    - Local archive is always removed, even when the deploy fails
"""

import logging
import signal
import sys
from pathlib import Path

from neko_deploy.archive import ZipArchiver, artifact_scope
from neko_deploy.chunking import plan_chunks
from neko_deploy.config import Config
from neko_deploy.errors import ConfigError, NekoDeployError, TransferCancelled
from neko_deploy.orchestrator import TransferOrchestrator

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

EXIT_OK = 0
EXIT_SETUP = 1
EXIT_FAILED = 2
EXIT_CANCELLED = 130


def build_logger(log_dir: Path) -> logging.Logger:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "neko_deploy.log"

    logger = logging.getLogger("neko_deploy")
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    logger.addHandler(console)
    logger.addHandler(fh)
    return logger


# ---------------------------------------------------------------------------
# Arguments
# ---------------------------------------------------------------------------

def parse_args(argv=None):
    import argparse

    parser = argparse.ArgumentParser(
        prog="neko-deploy",
        description=(
            "Zip a local directory and replace a folder on your Nekoweb site "
            "with it, using chunked big uploads."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  # Deploy DIRECTORY to NEKOWEB_FOLDER as set in .env\n"
            "  python -m neko_deploy\n\n"
            "  # Deploy ./dist to /public\n"
            "  python -m neko_deploy ./dist --folder /public\n\n"
            "  # Dry run — validate config and show the chunk plan without uploading\n"
            "  python -m neko_deploy ./dist --dry-run\n"
        ),
    )
    parser.add_argument(
        "directory",
        nargs="?",
        default=None,
        help="Local directory to deploy. Overrides DIRECTORY in .env.",
    )
    parser.add_argument(
        "--folder",
        default=None,
        metavar="FOLDER",
        help="Destination folder on the site. Overrides NEKOWEB_FOLDER in .env.",
    )
    parser.add_argument(
        "--no-clear",
        action="store_true",
        help="Do not delete the destination folder before importing.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Build the archive and print the chunk plan, without uploading.",
    )
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def dry_run(cfg: Config, logger: logging.Logger) -> int:
    dest = cfg.work_dir / "neko-deploy-dry-run.zip"
    with artifact_scope(ZipArchiver(logger), cfg.directory, cfg.folder, dest, logger) as artifact:
        plan = plan_chunks(artifact.size, cfg.size_policy)
    logger.info(
        f"[DRY RUN] {plan.total_size:,} bytes -> {plan.chunk_count} chunk(s) "
        f"of {plan.chunk_size:,} bytes"
    )
    logger.info("[DRY RUN] Nothing was uploaded.")
    return EXIT_OK


def deploy(cfg: Config, logger: logging.Logger) -> int:
    orchestrator = TransferOrchestrator.from_config(cfg, logger)

    def _handle_interrupt(signum, frame):
        logger.warning("Interrupt received. Abandoning transfer and cleaning up...")
        orchestrator.cancel()

    signal.signal(signal.SIGINT, _handle_interrupt)
    signal.signal(signal.SIGTERM, _handle_interrupt)

    try:
        report = orchestrator.run()
    except TransferCancelled as exc:
        logger.warning(f"Cancelled: {exc}")
        return EXIT_CANCELLED
    except NekoDeployError as exc:
        logger.error(f"Deploy failed: {exc}")
        return EXIT_FAILED
    finally:
        orchestrator.client.close()

    logger.info("=" * 60)
    logger.info(
        f"  Deployed {report.bytes_sent:,} bytes in {report.chunks_sent} chunk(s) "
        f"to {cfg.folder}"
    )
    for outcome in report.outcomes:
        if not outcome.ok:
            logger.warning(f"  {outcome.step} did not complete: {outcome.error}")
    logger.info("=" * 60)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv=None) -> None:
    args = parse_args(argv)

    try:
        cfg = Config.from_env().with_overrides(
            directory=args.directory,
            folder=args.folder,
            clear_destination=False if args.no_clear else None,
        )
    except ConfigError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(EXIT_SETUP)

    logger = build_logger(Path(cfg.log_path) if cfg.log_path else Path.cwd() / "logs")

    logger.info("=" * 60)
    logger.info("  neko-deploy — Nekoweb site deployer")
    logger.info("=" * 60)
    logger.info(f"Source    : {cfg.directory}")
    logger.info(f"Folder    : {cfg.folder}")
    logger.info(f"Auth      : {cfg.auth_mode}")
    logger.info(
        f"Chunks    : max {cfg.size_policy.max_chunk_size:,} / "
        f"min {cfg.size_policy.min_chunk_size:,} bytes, at least {cfg.size_policy.min_chunks}"
    )

    if not cfg.directory.is_dir():
        logger.error(f"Source directory not found: {cfg.directory}")
        sys.exit(EXIT_SETUP)

    try:
        if args.dry_run:
            code = dry_run(cfg, logger)
        else:
            code = deploy(cfg, logger)
    except NekoDeployError as exc:
        logger.error(f"{exc}")
        code = EXIT_SETUP

    sys.exit(code)


if __name__ == "__main__":
    main()
