import asyncio
import logging

from core.executor.snapshot_executor import build_set_arguments
from core.executor.zfs_command_runner import ZfsCommandRunner
from core.model import zfs_property_names as names
from core.model.zfs_property import ZfsProperty
from core.model.zfs_record import ZfsRecord
from core.task.async_job_base import AsyncRecurringJob

logger = logging.getLogger(__name__)


class TimestampSyncTask(AsyncRecurringJob):
    """
    Reconciles stored last-snapshot timestamps with the newest snapshots actually observed.

    Snapshots taken outside this process (or while a property write failed) leave
    the stored timestamp behind the tree. Each cycle rewrites every out-of-sync
    timestamp from the observed cache, one batched property write per dataset.
    """

    def __init__(
        self,
        runner: ZfsCommandRunner,
        datasets: dict[str, ZfsRecord],
        concurrency: int = 4,
        interval_seconds: float = 0,
    ):
        """
        Args:
            runner: Command runner used for the property writes
            datasets: Dataset collection shared with ingestion
            concurrency: Maximum number of datasets written at the same time
            interval_seconds: Pause between cycles when started in the background
        """
        self.runner = runner
        self.datasets = datasets
        self.concurrency = max(1, int(concurrency))
        self.last_synced: list[str] = []

        super().__init__(interval_seconds=interval_seconds)

    # ----------------------------------------------------------------------
    # Required logic per cycle
    # ----------------------------------------------------------------------
    async def run_once(self) -> None:
        logger.info("[TimestampSync] Checking last-snapshot timestamps")
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _guarded(record: ZfsRecord) -> str | None:
            async with semaphore:
                return await self.sync_dataset(record)

        results = await asyncio.gather(*(_guarded(self.datasets[name]) for name in sorted(self.datasets)))
        self.last_synced = [name for name in results if name is not None]
        logger.info(f"[TimestampSync] {len(self.last_synced)} dataset(s) updated")

    async def sync_dataset(self, record: ZfsRecord) -> str | None:
        """Write observed timestamps for every out-of-sync period; returns the name when anything changed."""
        periods = record.out_of_sync_timestamp_periods()
        if not periods:
            return None

        updated: list[ZfsProperty] = []
        for period in periods:
            observed = record.last_observed_timestamp(period)
            stored = record.last_snapshot_timestamp(period)
            logger.debug(f"[TimestampSync] {record.name} {period}: {stored.isoformat()} -> {observed.isoformat()}")
            updated.append(record.update_property(names.LAST_TIMESTAMP_BY_PERIOD[period], observed))

        args = f"{build_set_arguments(updated)} {record.name}"
        if not await self.runner.run_mutation("set", args):
            if self.runner.dry_run:
                logger.info(f"[TimestampSync] DRY RUN: timestamps not written for {record.name}")
            else:
                logger.error(f"[TimestampSync] Failed writing timestamps for {record.name}")
        return record.name
