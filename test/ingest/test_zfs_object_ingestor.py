from datetime import datetime, timezone

import pytest

from core.executor.zfs_command_runner import InMemoryZfsCommandRunner, pool_names_from_lines
from core.ingest.raw_zfs_object import (
    RawProperty,
    check_pool_root_properties,
    ensure_pool_roots_valid,
    group_raw_lines,
    is_pool_root_property_valid,
    parse_raw_line,
)
from core.ingest.zfs_object_ingestor import ZfsObjectIngestor, format_raw_lines
from core.model import zfs_property_names as names
from core.model.enum.snapshot_period_enum import SnapshotPeriodKind
from core.model.enum.zfs_object_kind_enum import ZfsObjectKind
from exception import ZfsSchemaIntegrityError

UTC = timezone.utc
FULL_POLICY = {"frequent": 0, "hourly": 48, "daily": 90, "weekly": 0, "monthly": 6, "yearly": 0}


def lines_for(*records) -> list[str]:
    return [line for record in records for line in format_raw_lines(record)]


def without(lines: list[str], object_name: str, property_name: str) -> list[str]:
    return [line for line in lines if not line.startswith(f"{object_name}\t{property_name}\t")]


def replace_value(lines: list[str], object_name: str, property_name: str, value: str) -> list[str]:
    prefix = f"{object_name}\t{property_name}\t"
    return [f"{prefix}{value}\tlocal" if line.startswith(prefix) else line for line in lines]


def replace_line(lines: list[str], object_name: str, property_name: str, new_line: str) -> list[str]:
    prefix = f"{object_name}\t{property_name}\t"
    return [new_line if line.startswith(prefix) else line for line in lines]


@pytest.fixture
def source_tree(make_pool, add_snapshot):
    """tank (pool root) with children a and b; a has one daily snapshot"""
    pool = make_pool(bytes_available=1000, bytes_used=250, **FULL_POLICY)
    a = pool.create_child("tank/a", bytes_available=800, bytes_used=50)
    b = pool.create_child("tank/b", bytes_available=800, bytes_used=70)
    b.update_property(names.RETENTION_DAILY, 14)
    snap = add_snapshot(a, SnapshotPeriodKind.DAILY, datetime(2024, 5, 1, tzinfo=UTC))
    return pool, a, b, snap


class TestRawLines:

    def test_parse_raw_line_splits_four_fields(self):
        parsed = parse_raw_line("tank/a\tsnapsinazfs.com:enabled\ttrue\tinherited from tank\n")

        assert parsed == ("tank/a", RawProperty(names.ENABLED, "true", "inherited from tank"))

    def test_when_line_has_too_few_fields_then_it_is_ignored(self):
        assert parse_raw_line("tank\tenabled\ttrue") is None
        assert parse_raw_line("") is None

    def test_when_line_has_too_many_fields_then_it_is_rejected(self):
        assert parse_raw_line(f"tank\t{names.TEMPLATE}\tdef\tault\tlocal") is None

    def test_wrong_field_count_marks_object_malformed(self):
        grouped = group_raw_lines(["tank\ttype\tfilesystem\t-", f"tank\t{names.ENABLED}\ttrue"])

        assert grouped["tank"].malformed_lines == [f"tank\t{names.ENABLED}\ttrue"]
        assert grouped["tank"].has_all_mandatory_properties() is False

    def test_grouping_sets_kind_and_orders_parents_first(self, source_tree):
        pool, a, b, snap = source_tree

        grouped = group_raw_lines(reversed(lines_for(pool, a, b, snap)))

        assert list(grouped) == ["tank", "tank/a", snap.name, "tank/b"]
        assert grouped["tank"].kind is ZfsObjectKind.FILESYSTEM
        assert grouped[snap.name].kind is ZfsObjectKind.SNAPSHOT
        assert grouped["tank/a"].has_all_mandatory_properties()


class TestIngestion:

    def test_ingested_tree_matches_serialized_tree(self, source_tree):
        # Arrange
        pool, a, b, snap = source_tree
        ingestor = ZfsObjectIngestor()

        # Act
        ingestor.ingest_lines(lines_for(pool, a, b, snap))

        # Assert
        assert sorted(ingestor.datasets) == ["tank", "tank/a", "tank/b"]
        for original in (pool, a, b):
            ingested = ingestor.datasets[original.name]
            assert ingested.properties == original.properties
            assert ingested.bytes_used == original.bytes_used
            assert ingested.bytes_available == original.bytes_available
        assert ingestor.datasets["tank/a"].parent is ingestor.datasets["tank"]
        assert ingestor.datasets["tank"].get_child("tank/b") is ingestor.datasets["tank/b"]
        assert ingestor.skipped == []

    def test_ingested_snapshot_is_attached_to_parent(self, source_tree):
        # Arrange
        pool, a, b, snap = source_tree
        ingestor = ZfsObjectIngestor()

        # Act
        ingestor.ingest_lines(lines_for(pool, a, b, snap))

        # Assert
        parent = ingestor.datasets["tank/a"]
        ingested = ingestor.snapshots[snap.name]
        assert parent.snapshots_of(SnapshotPeriodKind.DAILY) == [ingested]
        assert ingested.timestamp == snap.timestamp
        assert ingested.properties == snap.properties
        assert parent.out_of_sync_timestamp_periods() == [SnapshotPeriodKind.DAILY]

    def test_when_one_dataset_lacks_enabled_then_only_it_is_dropped(self, source_tree):
        # Arrange
        pool, a, b, _ = source_tree
        lines = without(lines_for(pool, a, b), "tank/b", names.ENABLED)
        ingestor = ZfsObjectIngestor()

        # Act
        ingestor.ingest_lines(lines)

        # Assert
        assert sorted(ingestor.datasets) == ["tank", "tank/a"]
        assert ingestor.skipped == ["tank/b"]
        assert ingestor.datasets["tank/a"].properties == a.properties
        assert ingestor.datasets["tank"].child_count == 1

    def test_when_parent_is_dropped_then_descendants_are_dropped(self, source_tree):
        pool, a, b, snap = source_tree
        lines = without(lines_for(pool, a, b, snap), "tank/a", names.USED)
        ingestor = ZfsObjectIngestor()

        ingestor.ingest_lines(lines)

        assert sorted(ingestor.datasets) == ["tank", "tank/b"]
        assert ingestor.snapshots == {}
        assert ingestor.skipped == ["tank/a", snap.name]

    @pytest.mark.parametrize(
        "property_name, value",
        [
            (names.RETENTION_DAILY, "lots"),
            (names.ENABLED, "maybe"),
            (names.LAST_DAILY_SNAPSHOT_TIMESTAMP, "yesterday"),
            (names.AVAILABLE, "1.5G"),
        ],
    )
    def test_when_value_does_not_parse_then_object_is_skipped(self, source_tree, property_name, value):
        pool, a, b, _ = source_tree
        lines = replace_value(lines_for(pool, a, b), "tank/b", property_name, value)
        ingestor = ZfsObjectIngestor()

        ingestor.ingest_lines(lines)

        assert "tank/b" not in ingestor.datasets
        assert ingestor.skipped == ["tank/b"]

    def test_when_line_has_extra_fields_then_object_and_descendants_are_skipped(self, source_tree):
        # Arrange
        pool, a, b, snap = source_tree
        split_value = f"tank/a\t{names.TEMPLATE}\tdef\tault\tinherited from tank"
        lines = replace_line(lines_for(pool, a, b, snap), "tank/a", names.TEMPLATE, split_value)
        ingestor = ZfsObjectIngestor()

        # Act
        ingestor.ingest_lines(lines)

        # Assert
        assert sorted(ingestor.datasets) == ["tank", "tank/b"]
        assert ingestor.snapshots == {}
        assert ingestor.skipped == ["tank/a", snap.name]

    def test_when_required_line_has_too_few_fields_then_object_is_skipped(self, source_tree):
        pool, a, b, _ = source_tree
        lines = replace_line(lines_for(pool, a, b), "tank/b", names.RETENTION_DAILY, f"tank/b\t{names.RETENTION_DAILY}\t14")
        ingestor = ZfsObjectIngestor()

        ingestor.ingest_lines(lines)

        assert sorted(ingestor.datasets) == ["tank", "tank/a"]
        assert ingestor.skipped == ["tank/b"]

    def test_when_snapshot_period_unknown_then_snapshot_is_skipped(self, source_tree):
        pool, a, b, snap = source_tree
        lines = replace_value(lines_for(pool, a, snap), snap.name, names.SNAPSHOT_PERIOD, "fortnightly")
        ingestor = ZfsObjectIngestor()

        ingestor.ingest_lines(lines)

        assert ingestor.snapshots == {}
        assert ingestor.skipped == [snap.name]

    def test_when_ingested_twice_then_existing_objects_are_kept(self, source_tree):
        pool, a, b, snap = source_tree
        lines = lines_for(pool, a, b, snap)
        ingestor = ZfsObjectIngestor()

        ingestor.ingest_lines(lines)
        first = ingestor.datasets["tank/a"]
        ingestor.ingest_lines(lines)

        assert ingestor.datasets["tank/a"] is first
        assert first.snapshot_count == 1

    @pytest.mark.asyncio
    async def test_ingest_async_consumes_a_line_stream(self, source_tree):
        pool, a, b, snap = source_tree

        async def stream():
            for line in lines_for(pool, a, b, snap):
                yield line

        ingestor = ZfsObjectIngestor()
        await ingestor.ingest_async(stream())

        assert len(ingestor.datasets) == 3
        assert len(ingestor.snapshots) == 1

    @pytest.mark.asyncio
    async def test_pools_load_concurrently_into_shared_collections(self, source_tree, make_pool):
        # Arrange
        pool, a, b, snap = source_tree
        backup = make_pool("backup", **FULL_POLICY)
        archive = backup.create_child("backup/archive")
        lines = lines_for(pool, a, b, snap, backup, archive)
        runner = InMemoryZfsCommandRunner(lines=lines)
        ingestor = ZfsObjectIngestor()

        # Act
        await ingestor.load_pools_async(runner, pool_names_from_lines(lines))

        # Assert
        assert sorted(ingestor.datasets) == ["backup", "backup/archive", "tank", "tank/a", "tank/b"]
        assert ingestor.datasets["backup/archive"].parent is ingestor.datasets["backup"]
        assert pool_names_from_lines(lines) == ["backup", "tank"]


class TestPoolRootValidation:

    def test_complete_pool_root_is_valid(self, source_tree):
        pool, *_ = source_tree

        report = check_pool_root_properties(format_raw_lines(pool))

        assert all(report["tank"].values())
        ensure_pool_roots_valid(report)

    def test_unset_retention_and_missing_property_are_invalid(self, make_pool):
        # Arrange
        pool = make_pool("tank")
        lines = without(format_raw_lines(pool), "tank", names.TEMPLATE)

        # Act
        report = check_pool_root_properties(lines)

        # Assert
        assert report["tank"][names.RETENTION_DAILY] is False
        assert report["tank"][names.TEMPLATE] is False
        assert report["tank"][names.ENABLED] is True
        with pytest.raises(ZfsSchemaIntegrityError) as exc_info:
            ensure_pool_roots_valid(report)
        assert names.TEMPLATE in exc_info.value.property_names

    def test_undefined_source_is_invalid(self):
        assert is_pool_root_property_valid(RawProperty(names.ENABLED, "true", "-")) is False
        assert is_pool_root_property_valid(RawProperty(names.TYPE, "filesystem", "-")) is True

    def test_when_property_is_not_a_pool_root_property_then_raises(self):
        with pytest.raises(ValueError):
            is_pool_root_property_valid(RawProperty(names.SNAPSHOT_PERIOD, "daily", "local"))
