import logging

from core.model.enum.snapshot_period_enum import SCHEDULED_PERIODS
from core.model.snapshot import Snapshot, snapshot_sort_key
from core.model.zfs_record import ZfsRecord

logger = logging.getLogger("PruneEvaluator")


def is_prune_deferred(record: ZfsRecord) -> bool:
    """
    True when a prune deferral threshold is set and the object is not yet full enough.
    An object reporting no available bytes is full and never deferred.
    """
    deferral = record.prune_deferral
    if deferral <= 0:
        return False
    if record.bytes_available == 0:
        logger.debug(f"[Prune] {record.name}: no bytes available, deferral threshold ignored")
        return False
    return record.percent_bytes_used < deferral


def snapshots_to_prune(record: ZfsRecord) -> list[Snapshot]:
    """
    Snapshots of `record` that exceed its retention policy, oldest first within each period.

    Gates, in order:
      - nothing is pruned unless the record is enabled and prune-snapshots is on
      - nothing is pruned while the capacity used is below the prune deferral percentage
      - per scheduled period, only snapshots with their own prune-snapshots flag count;
        a negative (unset) retention leaves the period untouched

    The per-period selections are concatenated in canonical period order.
    """
    if not record.enabled or not record.prune_snapshots:
        logger.debug(f"[Prune] {record.name}: pruning disabled (enabled={record.enabled}, prune={record.prune_snapshots})")
        return []

    if is_prune_deferred(record):
        logger.debug(
            f"[Prune] {record.name}: deferred ({record.percent_bytes_used}% used < {record.prune_deferral}% threshold)"
        )
        return []

    selected: list[Snapshot] = []
    for period in SCHEDULED_PERIODS:
        retention = record.retention(period)
        if retention < 0:
            continue

        eligible = [snap for snap in record.snapshots_of(period) if snap.prune_snapshots]
        excess = len(eligible) - retention
        if excess <= 0:
            continue

        eligible.sort(key=snapshot_sort_key)
        selected.extend(eligible[:excess])
        logger.debug(f"[Prune] {record.name} {period}: keep {retention} of {len(eligible)}, pruning {excess}")

    return selected
