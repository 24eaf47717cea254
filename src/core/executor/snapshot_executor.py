import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from core.evaluator.prune_evaluator import snapshots_to_prune
from core.evaluator.snapshot_due_evaluator import SnapshotDueEvaluator
from core.executor.zfs_command_runner import ZfsCommandRunner
from core.model import zfs_property_names as names
from core.model.enum.recursion_enum import RecursionMode
from core.model.enum.snapshot_period_enum import SnapshotPeriodKind
from core.model.snapshot import Snapshot
from core.model.zfs_property import ZfsProperty
from core.model.zfs_record import ZfsRecord
from core.schema.siaz_config_schema import SiazConfig, TemplateConfig

logger = logging.getLogger(__name__)

OPERATION_LOCK_TIMEOUT_SEC = 30.0


@dataclass
class SnapshotOperationCounters:
    """Running totals of snapshot mutations since start-up."""

    snapshots_taken: int = 0
    snapshots_take_failed: int = 0
    snapshots_pruned: int = 0
    snapshots_prune_failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "snapshots_taken": self.snapshots_taken,
            "snapshots_take_failed": self.snapshots_take_failed,
            "snapshots_pruned": self.snapshots_pruned,
            "snapshots_prune_failed": self.snapshots_prune_failed,
        }


# ---------- Instruction builders ----------


def build_set_arguments(properties: Iterable[ZfsProperty]) -> str:
    """Space-joined `name=value` tokens for one batched property-set call."""
    return " ".join(prop.set_string for prop in properties)


def build_snapshot_arguments(snapshot: Snapshot) -> str:
    """Options for creating `snapshot`; native recursion adds `-r`."""
    options = [
        f"-o {snapshot[names.SNAPSHOT_PERIOD].set_string}",
        f"-o {snapshot[names.SNAPSHOT_TIMESTAMP].set_string}",
        f"-o {snapshot[names.RECURSION].set_string}",
    ]
    if snapshot.recursion == RecursionMode.ZFS:
        options.insert(0, "-r")
    return f"{' '.join(options)} {snapshot.name}"


class SnapshotExecutor:
    """
    Drives one take pass and one prune pass over the tree through the command runner.

    Only one pass runs at a time. In dry-run mode mutations are only logged;
    last-snapshot timestamps still advance and pruned snapshots still leave the
    in-memory tree, so a full cycle can be simulated.
    """

    def __init__(self, runner: ZfsCommandRunner, config: SiazConfig):
        self.runner = runner
        self.config = config
        self.counters = SnapshotOperationCounters()
        self._operation_lock = asyncio.Lock()

    # ---------- Take ----------

    async def take_all_configured_snapshots(
        self,
        datasets: dict[str, ZfsRecord],
        timestamp: datetime,
        snapshots: dict[str, Snapshot] | None = None,
    ) -> list[Snapshot]:
        """Take every due snapshot of every configured dataset; returns the snapshots added to the tree."""
        if not self.config.take_snapshots:
            logger.info("[Take] Snapshot taking disabled in configuration")
            return []
        if not await self._acquire("take snapshots"):
            return []

        taken: list[Snapshot] = []
        try:
            logger.info("[Take] Begin taking snapshots for all configured datasets")
            for name in sorted(datasets):
                record = datasets[name]
                new_snapshots = await self._take_for_dataset(record, timestamp)
                taken.extend(new_snapshots)
                if snapshots is not None:
                    for snap in new_snapshots:
                        snapshots[snap.name] = snap
            logger.info(f"[Take] Finished taking snapshots ({len(taken)} taken)")
        finally:
            self._operation_lock.release()
        return taken

    async def _take_for_dataset(self, record: ZfsRecord, timestamp: datetime) -> list[Snapshot]:
        template = self.config.templates.get(record.template)
        if template is None:
            logger.error(f"[Take] Template '{record.template}' for {record.name} not found in configuration - skipping")
            return []
        if not record.take_snapshots:
            logger.debug(f"[Take] {record.name} not configured to take snapshots - skipping")
            return []
        if not record.enabled:
            logger.debug(f"[Take] {record.name} is disabled - skipping")
            return []
        if self._covered_by_native_recursion(record):
            return []

        evaluator = SnapshotDueEvaluator(template.snapshot_timing)
        taken: list[Snapshot] = []
        props_to_set: list[ZfsProperty] = []
        for period in evaluator.periods_due(record, timestamp):
            logger.debug(f"[Take] {period} snapshot needed for {record.name}")
            snap, succeeded = await self.take_snapshot(record, period, timestamp, template)
            if not succeeded:
                continue
            props_to_set.append(record.update_property(names.LAST_TIMESTAMP_BY_PERIOD[period], timestamp))
            if snap is not None:
                taken.append(snap)

        if not props_to_set:
            logger.debug(f"[Take] No snapshots needed for {record.name}")
            return taken

        if not await self.set_properties(record, props_to_set) and not self.config.dry_run:
            logger.error(f"[Take] Error setting properties for {record.name}")
        return taken

    async def take_snapshot(
        self,
        record: ZfsRecord,
        period: SnapshotPeriodKind,
        timestamp: datetime,
        template: TemplateConfig,
    ) -> tuple[Snapshot | None, bool]:
        """
        Create one snapshot. Returns (snapshot, succeeded); in dry-run mode the
        snapshot is not added to the tree but the call still counts as succeeded.
        """
        if record.retention(period) <= 0:
            logger.debug(f"[Take] {period} snapshot requested, but {record.name} does not want them")
            return None, False

        snap = record.create_snapshot(period, timestamp, template.formatting)
        if await self.runner.run_mutation("snapshot", build_snapshot_arguments(snap)):
            record.add_snapshot(snap)
            self.counters.snapshots_taken += 1
            logger.info(f"[Take] Snapshot {snap.name} taken")
            return snap, True

        if self.config.dry_run:
            logger.info(f"[Take] DRY RUN: {period} snapshot of {record.name} not taken")
            return None, True

        self.counters.snapshots_take_failed += 1
        logger.error(f"[Take] {period} snapshot for {record.kind} {record.name} not taken")
        return None, False

    @staticmethod
    def _covered_by_native_recursion(record: ZfsRecord) -> bool:
        parent = record.parent
        if parent is None or parent.recursion != RecursionMode.ZFS:
            return False
        if record.recursion == RecursionMode.ZFS:
            logger.debug(f"[Take] Ancestor {parent.name} of {record.name} uses native recursion - skipping")
        else:
            logger.warning(
                f"[Take] Ancestor {parent.name} of {record.name} uses native recursion while {record.name} "
                f"uses {record.recursion}; no snapshot taken to avoid a name collision"
            )
        return True

    # ---------- Prune ----------

    async def prune_all_configured_snapshots(
        self,
        datasets: dict[str, ZfsRecord],
        snapshots: dict[str, Snapshot] | None = None,
    ) -> list[Snapshot]:
        """Destroy every snapshot beyond retention; returns the snapshots removed from the tree."""
        if not self.config.prune_snapshots:
            logger.info("[Prune] Snapshot pruning disabled in configuration")
            return []
        if not await self._acquire("prune snapshots"):
            return []

        try:
            logger.info("[Prune] Begin pruning snapshots for all configured datasets")
            semaphore = asyncio.Semaphore(self.config.sync_concurrency)

            async def _prune(record: ZfsRecord) -> list[Snapshot]:
                async with semaphore:
                    return await self._prune_for_dataset(record)

            results = await asyncio.gather(*(_prune(datasets[name]) for name in sorted(datasets)))
            pruned = [snap for batch in results for snap in batch]
            if snapshots is not None:
                for snap in pruned:
                    snapshots.pop(snap.name, None)
            logger.info(f"[Prune] Finished pruning snapshots ({len(pruned)} pruned)")
            return pruned
        finally:
            self._operation_lock.release()

    async def _prune_for_dataset(self, record: ZfsRecord) -> list[Snapshot]:
        candidates = snapshots_to_prune(record)
        if not candidates:
            return []
        logger.debug(f"[Prune] {record.name}: pruning {[snap.name for snap in candidates]}")

        removed: list[Snapshot] = []
        for snap in candidates:
            destroyed = await self.runner.run_mutation("destroy", snap.name)
            if not destroyed and not self.config.dry_run:
                self.counters.snapshots_prune_failed += 1
                logger.error(f"[Prune] Failed to destroy snapshot {snap.name}")
                continue

            if destroyed:
                self.counters.snapshots_pruned += 1
                logger.info(f"[Prune] Destroyed snapshot {snap.name}")
            else:
                logger.info(f"[Prune] DRY RUN: {snap.name} not destroyed, removing it from the tree for simulation")
            if not record.remove_snapshot(snap):
                logger.debug(f"[Prune] {snap.name} was already gone from {record.name}")
            removed.append(snap)
        return removed

    # ---------- Properties ----------

    async def set_properties(self, record: ZfsRecord, properties: list[ZfsProperty]) -> bool:
        if not properties:
            return True
        args = f"{build_set_arguments(properties)} {record.name}"
        succeeded = await self.runner.run_mutation("set", args)
        if not succeeded and self.config.dry_run:
            logger.info(f"[Set] DRY RUN: properties not set on {record.name}")
        return succeeded

    async def update_pool_root_schema(self, report: dict[str, dict[str, bool]]) -> bool:
        """Write default values for every missing or invalid property on each pool root."""
        errors = False
        for pool_name in sorted(report):
            invalid = [name for name, valid in report[pool_name].items() if not valid]
            invalid = [name for name in invalid if name in names.POOL_ROOT_DEFAULT_PROPERTY_VALUES]
            if not invalid:
                logger.debug(f"[Schema] Pool {pool_name} has no missing properties")
                continue

            defaults = [ZfsProperty(name, names.POOL_ROOT_DEFAULT_PROPERTY_VALUES[name]) for name in invalid]
            logger.info(f"[Schema] Updating properties for pool {pool_name}: {invalid}")
            if await self.runner.run_mutation("set", f"{build_set_arguments(defaults)} {pool_name}"):
                continue
            if self.config.dry_run:
                logger.info(f"[Schema] DRY RUN: properties intentionally not set for {pool_name}")
                continue
            errors = True
            logger.error(f"[Schema] Failed updating properties for pool {pool_name}: {invalid}")
        return not errors

    # ---------- Private helpers ----------

    async def _acquire(self, operation: str) -> bool:
        try:
            await asyncio.wait_for(self._operation_lock.acquire(), timeout=OPERATION_LOCK_TIMEOUT_SEC)
        except TimeoutError:
            logger.error(f"[Executor] Timed out waiting to {operation}; another operation is in progress")
            return False
        return True
