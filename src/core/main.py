import argparse
import asyncio
import logging
import sys
from datetime import datetime

from dotenv import load_dotenv

from core.executor.snapshot_executor import SnapshotExecutor
from core.executor.zfs_command_runner import DumpFileZfsCommandRunner, pool_names_from_lines
from core.ingest.raw_zfs_object import check_pool_root_properties, ensure_pool_roots_valid
from core.ingest.zfs_object_ingestor import ZfsObjectIngestor
from core.schema.siaz_config_schema import LOG_LEVELS
from core.task.timestamp_sync_task import TimestampSyncTask
from core.util.config_manager import ConfigManager
from core.util.logger_config import setup_logging
from core.util.time_util import parse_timestamp
from exception import ConfigError, ZfsSchemaIntegrityError

logger = logging.getLogger("CoreMain")


async def main(
    config_path: str,
    dump_file: str,
    dry_run: bool = False,
    take: bool = True,
    prune: bool = True,
    update_schema: bool = False,
    timestamp: datetime | None = None,
    log_level: str | None = None,
) -> int:
    load_dotenv()

    # ----------------------------------------------------------------------
    # Load config
    # ----------------------------------------------------------------------
    try:
        config = ConfigManager.load_siaz_config(config_path)
    except ConfigError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"[Config] {e}")
        return 2

    if dry_run:
        config = config.model_copy(update={"dry_run": True})
    setup_logging(config.logging, override_level=log_level)
    if config.dry_run:
        logger.info("[Main] DRY RUN mode: no changes will be made")

    # ----------------------------------------------------------------------
    # Runner (captured property dump)
    # ----------------------------------------------------------------------
    runner = DumpFileZfsCommandRunner(dump_file, dry_run=config.dry_run)
    try:
        await runner.load()
    except OSError as e:
        logger.error(f"[Main] Cannot read property dump {dump_file}: {e}")
        return 2
    pool_names = pool_names_from_lines(runner.lines)

    executor = SnapshotExecutor(runner, config)

    # ----------------------------------------------------------------------
    # Pool root schema check
    # ----------------------------------------------------------------------
    root_lines = [line for line in runner.lines if line.split("\t", 1)[0].strip() in pool_names]
    report = check_pool_root_properties(root_lines)
    try:
        ensure_pool_roots_valid(report)
    except ZfsSchemaIntegrityError as e:
        if not update_schema:
            logger.error(f"[Schema] {e}; rerun with --update_schema to write default values")
            return 1
        logger.warning(f"[Schema] {e}; writing default values")
        if not await executor.update_pool_root_schema(report):
            return 1
        if not config.dry_run:
            logger.info("[Schema] Pool roots updated; reload the property dump before scheduling")
            return 0

    # ----------------------------------------------------------------------
    # Ingest tree
    # ----------------------------------------------------------------------
    ingestor = ZfsObjectIngestor()
    await ingestor.load_pools_async(runner, pool_names)
    if ingestor.skipped:
        logger.warning(f"[Main] {len(ingestor.skipped)} object(s) skipped during ingestion")

    # Stored timestamps must reflect observed snapshots before due decisions are made
    sync_task = TimestampSyncTask(runner, ingestor.datasets, concurrency=config.sync_concurrency)
    await sync_task.run_once()

    # ----------------------------------------------------------------------
    # Take & prune
    # ----------------------------------------------------------------------
    now = timestamp or datetime.now().astimezone()
    if take:
        await executor.take_all_configured_snapshots(ingestor.datasets, now, ingestor.snapshots)
    if prune:
        await executor.prune_all_configured_snapshots(ingestor.datasets, ingestor.snapshots)

    logger.info(f"[Main] Done: {executor.counters.as_dict()}, {len(runner.mutations)} command(s) issued")
    return 0


def _parse_timestamp_arg(value: str) -> datetime:
    ts = parse_timestamp(value)
    if ts is None:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 timestamp: {value!r}")
    return ts


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Plan snapshot take/prune operations from a captured property dump")
    parser.add_argument("--config", default="res/siaz.yml", help="Path to settings YAML")
    parser.add_argument("--dump_file", required=True, help="Path to captured name/property/value/source output")
    parser.add_argument("--dry_run", action="store_true", help="Log mutations without applying them")
    parser.add_argument("--no_take", action="store_true", help="Skip taking snapshots")
    parser.add_argument("--no_prune", action="store_true", help="Skip pruning snapshots")
    parser.add_argument("--update_schema", action="store_true", help="Write defaults for invalid pool root properties")
    parser.add_argument("--timestamp", type=_parse_timestamp_arg, default=None, help="Evaluate as of this time")
    parser.add_argument(
        "--log_level", type=str.upper, choices=LOG_LEVELS, default=None, help="Override configured log level"
    )

    args = parser.parse_args()
    sys.exit(
        asyncio.run(
            main(
                config_path=args.config,
                dump_file=args.dump_file,
                dry_run=args.dry_run,
                take=not args.no_take,
                prune=not args.no_prune,
                update_schema=args.update_schema,
                timestamp=args.timestamp,
                log_level=args.log_level,
            )
        )
    )
